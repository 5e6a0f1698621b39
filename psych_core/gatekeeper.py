from __future__ import annotations
import logging

from .errors import AlreadyAttemptedError
from .ports import ResultStore, call_with_retry
from .types import Admission, Instrument

log = logging.getLogger(__name__)


class AttemptGatekeeper:
    """One completed attempt per (user, instrument).

    Always asks the store; nothing is cached, since another device may have
    finished the same instrument a moment ago.
    """

    def __init__(self, store: ResultStore):
        self.store = store

    def may_start(self, user_id: str, instrument: Instrument) -> Admission:
        instrument = Instrument.parse(instrument)
        taken = call_with_retry("check_prior_attempt", self.store.check_prior_attempt, user_id, instrument)
        if taken:
            log.info("attempt denied user=%s instrument=%s", user_id, instrument.value)
            return Admission(allowed=False, instrument=instrument, reason="already_completed")
        return Admission(allowed=True, instrument=instrument)

    def require(self, user_id: str, instrument: Instrument) -> Instrument:
        admission = self.may_start(user_id, instrument)
        if not admission.allowed:
            raise AlreadyAttemptedError(user_id, admission.instrument)
        return admission.instrument
