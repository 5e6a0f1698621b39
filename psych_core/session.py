# psych_core/session.py
from __future__ import annotations
from enum import Enum
from typing import Callable, Dict, List, Optional
import logging, random, uuid

from . import config
from .errors import (
    AssessmentError, DuplicateResultError, IncompleteAnswersError,
    InstrumentUnavailableError, InvalidAnswerError, InvalidTransitionError,
)
from .catalog import is_available
from .gatekeeper import AttemptGatekeeper
from .question_bank import select_questions
from .recorder import ResultRecorder
from .scoring import build_result, validate_answer
from .timer import QuestionTimer, Scheduler
from .types import (
    AnswerSet, AnswerValue, AptitudeQuestion, DichotomyQuestion, Instrument, Question, Result,
)

log = logging.getLogger(__name__)


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


def _emit_trace(**values: object) -> None:
    if not config.DEBUG_TRACE:
        return
    ordered = [f"{key}={values[key]}" for key in config.TRACE_FIELDS if key in values]
    if ordered:
        log.info("trace %s", " ".join(ordered))


def serialize_question(q: Question) -> Dict[str, object]:
    if isinstance(q, DichotomyQuestion):
        return {"id": q.id, "text": q.text, "options": [{"text": o.text, "value": o.code} for o in q.options]}
    if isinstance(q, AptitudeQuestion):
        # scores and aspects stay server-side
        return {"id": q.id, "text": q.text, "options": [{"text": o.text, "value": i} for i, o in enumerate(q.options)]}
    return {
        "id": q.id,
        "text": "Pilih pernyataan yang paling menggambarkan diri Anda:",
        "options": [{"text": s.text, "value": s.dimension} for s in q.statements],
    }


class AssessmentSession:
    """One user's attempt at one instrument.

    NotStarted -> InProgress -> Submitting -> Completed, with Abandoned
    reachable from NotStarted/InProgress. The countdown runs only while
    InProgress. Nothing here is persisted except the final result, through
    the recorder.
    """

    def __init__(
        self,
        user_id: str,
        instrument: Instrument | str,
        *,
        gatekeeper: AttemptGatekeeper,
        recorder: ResultRecorder,
        scheduler: Optional[Scheduler] = None,
        rng: Optional[random.Random] = None,
        questions: Optional[List[Question]] = None,
        time_limit: Optional[int] = None,
        on_change: Optional[Callable[["AssessmentSession", str], None]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.user_id = user_id
        self.instrument = Instrument.parse(instrument)
        self.gatekeeper = gatekeeper
        self.recorder = recorder
        self.rng = rng
        self.time_limit = int(time_limit if time_limit is not None else config.QUESTION_TIME_LIMIT)
        self.on_change = on_change

        self.state = SessionState.NOT_STARTED
        self.questions: List[Question] = list(questions or [])
        self.index = 0
        self.time_remaining = self.time_limit
        self.answers: AnswerSet = {}
        self.result: Optional[Result] = None
        self.result_id: Optional[str] = None
        self.last_error: Optional[AssessmentError] = None
        self.timer = QuestionTimer(scheduler, self._on_timer, interval=config.TICK_SECONDS)

    # ---- helpers ----
    def _require(self, action: str, *states: SessionState) -> None:
        if self.state not in states:
            raise InvalidTransitionError(action, self.state)

    def _trace(self, event: str) -> None:
        log.debug(
            "session=%s event=%s state=%s index=%d/%d t=%d answered=%d",
            self.id, event, self.state.value, self.index, len(self.questions),
            self.time_remaining, len(self.answers),
        )
        _emit_trace(
            session=self.id, instrument=self.instrument.value, event=event,
            state=self.state.value, index=self.index,
            time_remaining=self.time_remaining, answered=len(self.answers),
        )
        if self.on_change is not None:
            self.on_change(self, event)

    def _enter_question(self, index: int) -> None:
        self.index = index
        self.time_remaining = self.time_limit
        self.timer.restart()

    @property
    def current_question(self) -> Optional[Question]:
        if self.state is not SessionState.IN_PROGRESS or not self.questions:
            return None
        return self.questions[self.index]

    @property
    def is_last(self) -> bool:
        return self.index >= len(self.questions) - 1

    @property
    def complete(self) -> bool:
        return all(q.id in self.answers for q in self.questions)

    # ---- transitions ----
    def start(self) -> "AssessmentSession":
        self._require("start", SessionState.NOT_STARTED)
        if not is_available(self.instrument):
            raise InstrumentUnavailableError(self.instrument)
        self.gatekeeper.require(self.user_id, self.instrument)
        if not self.questions:
            self.questions = select_questions(self.instrument, rng=self.rng)
        self.state = SessionState.IN_PROGRESS
        self._enter_question(0)
        log.info(
            "session started id=%s user=%s instrument=%s questions=%d",
            self.id, self.user_id, self.instrument.value, len(self.questions),
        )
        self._trace("start")
        return self

    def answer(self, question_id: str, value: AnswerValue) -> None:
        self._require("answer", SessionState.IN_PROGRESS)
        current = self.questions[self.index]
        if question_id != current.id:
            raise InvalidAnswerError(question_id, value, f"current question is {current.id}")
        self.answers[current.id] = validate_answer(current, value)
        self._trace("answer")

    def tick(self) -> None:
        self._require("tick", SessionState.IN_PROGRESS)
        self.time_remaining = max(0, self.time_remaining - 1)
        if self.time_remaining > 0:
            self._trace("tick")
            return
        log.debug("session=%s question %s timed out", self.id, self.questions[self.index].id)
        try:
            self._advance("timeout")
        except AssessmentError as exc:
            # no caller to raise to; the presentation layer reads last_error
            self.last_error = exc
            log.info("session=%s auto-submit held: %s", self.id, exc)

    def _on_timer(self) -> None:
        if self.state is not SessionState.IN_PROGRESS:
            return
        self.tick()

    def next(self) -> None:
        self._require("next", SessionState.IN_PROGRESS)
        self._advance("next")

    def _advance(self, event: str) -> None:
        if not self.is_last:
            self._enter_question(self.index + 1)
            self._trace(event)
            return
        self.time_remaining = self.time_limit
        self._submit(event)

    def previous(self) -> bool:
        self._require("previous", SessionState.IN_PROGRESS)
        if self.index == 0:
            return False
        self._enter_question(self.index - 1)
        self._trace("previous")
        return True

    def submit(self) -> Result:
        """Score and store. From Submitting (a failed store) only the store is retried."""
        self._require("submit", SessionState.IN_PROGRESS, SessionState.SUBMITTING)
        return self._submit("submit")

    def _submit(self, event: str) -> Result:
        resume = self.state is SessionState.IN_PROGRESS
        self.timer.cancel()
        self.state = SessionState.SUBMITTING
        self.last_error = None

        if self.result is None:
            try:
                self.result = build_result(self.instrument, self.user_id, self.questions, self.answers)
            except (IncompleteAnswersError, InvalidAnswerError) as exc:
                self.last_error = exc
                if resume:
                    self.state = SessionState.IN_PROGRESS
                    self.timer.restart()
                self._trace(f"{event}_rejected")
                raise

        try:
            self.result_id = self.recorder.record(self.result)
        except DuplicateResultError as exc:
            self.last_error = exc
            self.state = SessionState.ABANDONED
            log.warning("session=%s lost the race: %s", self.id, exc)
            self._trace(f"{event}_conflict")
            raise
        except AssessmentError as exc:
            # result is kept; submit() again retries the store only
            self.last_error = exc
            self._trace(f"{event}_store_failed")
            raise

        self.state = SessionState.COMPLETED
        log.info("session completed id=%s result=%s", self.id, self.result_id)
        self._trace(event)
        return self.result

    def abandon(self) -> None:
        self._require("abandon", SessionState.NOT_STARTED, SessionState.IN_PROGRESS)
        self.timer.cancel()
        self.state = SessionState.ABANDONED
        log.info("session abandoned id=%s answered=%d/%d", self.id, len(self.answers), len(self.questions))
        self._trace("abandon")

    # ---- views ----
    def snapshot(self) -> Dict[str, object]:
        q = self.current_question
        return {
            "session_id": self.id,
            "user_id": self.user_id,
            "instrument": self.instrument.value,
            "state": self.state.value,
            "index": self.index,
            "total": len(self.questions),
            "time_remaining": self.time_remaining,
            "time_limit": self.time_limit,
            "answered": len(self.answers),
            "current_answer": self.answers.get(q.id) if q is not None else None,
            "question": serialize_question(q) if q is not None else None,
            "result_id": self.result_id,
            "result": self.result.to_dict() if self.result is not None else None,
            "error": str(self.last_error) if self.last_error else None,
            "error_type": type(self.last_error).__name__ if self.last_error else None,
        }
