from __future__ import annotations
from dataclasses import dataclass
from typing import List
import logging

from .errors import PersistenceError
from .ports import ResultStore, call_with_retry
from .types import Result

log = logging.getLogger(__name__)


@dataclass
class PendingProjection:
    result_id: str
    result: Result
    error: str = ""


class ResultRecorder:
    """Writes a result, then projects it into the user's profile.

    The primary write is the source of truth. The profile projection is a
    secondary, independently retryable write: its failure is queued in
    ``pending`` and never undoes the stored result.
    """

    def __init__(self, store: ResultStore):
        self.store = store
        self.pending: List[PendingProjection] = []

    def record(self, result: Result) -> str:
        result_id = call_with_retry("persist_result", self.store.persist_result, result)
        log.info(
            "result stored id=%s user=%s instrument=%s headline=%s",
            result_id, result.user_id, result.instrument.value, result.headline,
        )
        self._project(result_id, result)
        return result_id

    def _project(self, result_id: str, result: Result) -> bool:
        try:
            call_with_retry(
                "denormalize_into_profile",
                self.store.denormalize_into_profile,
                result.user_id, result.instrument, result, result_id,
            )
            return True
        except PersistenceError as exc:
            log.warning("profile projection deferred id=%s: %s", result_id, exc)
            self.pending.append(PendingProjection(result_id, result, str(exc)))
            return False

    def flush_pending(self) -> int:
        """Retry deferred projections; returns how many succeeded."""
        queued, self.pending = self.pending, []
        done = 0
        for item in queued:
            if self._project(item.result_id, item.result):
                done += 1
        return done
