from __future__ import annotations
from typing import Any, Callable, Protocol, TypeVar
import logging

from . import config
from .errors import AssessmentError, PersistenceError
from .types import Instrument, Result

log = logging.getLogger(__name__)

T = TypeVar("T")


class ResultStore(Protocol):
    """Persistence boundary; `api.storage` satisfies it at module level."""

    def check_prior_attempt(self, user_id: str, instrument: Instrument) -> bool: ...

    def persist_result(self, result: Result) -> str: ...

    def denormalize_into_profile(self, user_id: str, instrument: Instrument, result: Result, result_id: str) -> None: ...


def call_with_retry(operation: str, fn: Callable[..., T], *args: Any, retries: int | None = None) -> T:
    """Run a remote call, retrying once (by default) before surfacing PersistenceError.

    Domain errors (duplicate result and the like) are answers, not failures,
    and propagate on the first attempt.
    """
    attempts = 1 + (config.BOUNDARY_RETRIES if retries is None else max(0, retries))
    last: BaseException | None = None
    for attempt in range(1, attempts + 1):
        try:
            return fn(*args)
        except AssessmentError:
            raise
        except Exception as exc:
            last = exc
            log.warning("%s failed (attempt %d/%d): %r", operation, attempt, attempts, exc)
    raise PersistenceError(operation, last)
