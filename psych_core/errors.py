from __future__ import annotations
from typing import List, Optional


class AssessmentError(Exception):
    """Base class for every error the assessment engine surfaces."""


class UnknownInstrumentError(AssessmentError, ValueError):
    def __init__(self, raw: object):
        self.raw = raw
        super().__init__(f"unknown instrument: {raw!r}")


class InstrumentUnavailableError(AssessmentError):
    def __init__(self, instrument: object):
        self.instrument = instrument
        super().__init__(f"instrument {getattr(instrument, 'value', instrument)} is not available")


class IncompleteAnswersError(AssessmentError):
    def __init__(self, missing: List[str], answered: int, total: int):
        self.missing = list(missing)
        self.answered = answered
        self.total = total
        super().__init__(f"answered {answered}/{total} questions; missing {len(self.missing)}")


class InvalidAnswerError(AssessmentError, ValueError):
    def __init__(self, question_id: str, value: object, reason: str = "not a legal choice"):
        self.question_id = question_id
        self.value = value
        super().__init__(f"answer {value!r} for {question_id}: {reason}")


class InvalidTransitionError(AssessmentError):
    def __init__(self, action: str, state: object):
        self.action = action
        self.state = state
        super().__init__(f"cannot {action} while {getattr(state, 'value', state)}")


class AlreadyAttemptedError(AssessmentError):
    def __init__(self, user_id: str, instrument: object, result_id: Optional[str] = None):
        self.user_id = user_id
        self.instrument = instrument
        self.result_id = result_id
        super().__init__(
            f"user {user_id} already completed {getattr(instrument, 'value', instrument)}"
        )


class DuplicateResultError(AlreadyAttemptedError):
    """A second result for the same (user, instrument) pair; the first write wins."""


class PersistenceError(AssessmentError):
    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause!r}")


class UnhandledInstrumentError(AssessmentError, AssertionError):
    def __init__(self, instrument: object):
        self.instrument = instrument
        super().__init__(f"no handler for instrument {instrument!r}")


class QuestionBankError(AssessmentError):
    """Pool data is malformed or too small to satisfy the selection rules."""
