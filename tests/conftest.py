from __future__ import annotations

import pytest

from psych_core.errors import DuplicateResultError
from psych_core.gatekeeper import AttemptGatekeeper
from psych_core.recorder import ResultRecorder
from psych_core.session import AssessmentSession
from psych_core.timer import ManualScheduler
from psych_core.types import (
    ASPECTS, DIMENSIONS, TRAIT_PAIRS,
    AptitudeOption, AptitudeQuestion, DichotomyQuestion, ForcedChoicePair,
    Instrument, Result, Statement, TraitOption,
)


def build_mbti_questions(per_pair: int = 5) -> list[DichotomyQuestion]:
    """Deterministic dichotomy questions, `per_pair` for each trait pair."""

    items: list[DichotomyQuestion] = []
    for pair in TRAIT_PAIRS:
        for idx in range(per_pair):
            items.append(
                DichotomyQuestion(
                    id=f"mbti_{pair}_{idx}",
                    text=f"{pair} question #{idx}",
                    pair=pair,
                    options=[
                        TraitOption(text=f"lean {pair[0]}", code=pair[0]),
                        TraitOption(text=f"lean {pair[1]}", code=pair[1]),
                    ],
                )
            )
    return items


def build_kraepelin_questions(per_aspect: int = 5) -> list[AptitudeQuestion]:
    items: list[AptitudeQuestion] = []
    for aspect in ASPECTS:
        for idx in range(per_aspect):
            items.append(
                AptitudeQuestion(
                    id=f"krp_{aspect}_{idx}",
                    text=f"{aspect} situation #{idx}",
                    options=[
                        AptitudeOption(text="best", score=3, aspect=aspect),
                        AptitudeOption(text="middle", score=2, aspect=aspect),
                        AptitudeOption(text="weak", score=1, aspect=aspect),
                    ],
                )
            )
    return items


def build_papi_pairs(count: int = 20, anchor: str | None = None) -> list[ForcedChoicePair]:
    """Forced-choice pairs; with `anchor`, every pair offers that dimension first."""

    items: list[ForcedChoicePair] = []
    others = [d for d in DIMENSIONS if d != anchor] if anchor else list(DIMENSIONS)
    for idx in range(count):
        if anchor:
            first, second = anchor, others[idx % len(others)]
        else:
            first, second = DIMENSIONS[idx % 20], DIMENSIONS[(idx + 1) % 20]
        items.append(
            ForcedChoicePair(
                id=f"papi_{idx}",
                statements=[
                    Statement(text=f"statement {first}", dimension=first),
                    Statement(text=f"statement {second}", dimension=second),
                ],
            )
        )
    return items


class FakeStore:
    """In-memory result store with injectable failures."""

    def __init__(self) -> None:
        self.results: dict[str, Result] = {}
        self.profiles: dict[str, dict[str, str]] = {}
        self.fail_persist = 0
        self.fail_project = 0
        self.fail_check = 0
        self.check_calls = 0
        self.persist_calls = 0

    def _owner(self, user_id: str, instrument: Instrument) -> str | None:
        for rid, res in self.results.items():
            if res.user_id == user_id and res.instrument is instrument:
                return rid
        return None

    def check_prior_attempt(self, user_id: str, instrument: Instrument) -> bool:
        self.check_calls += 1
        if self.fail_check > 0:
            self.fail_check -= 1
            raise ConnectionError("store unreachable")
        return self._owner(user_id, instrument) is not None

    def persist_result(self, result: Result) -> str:
        self.persist_calls += 1
        if self.fail_persist > 0:
            self.fail_persist -= 1
            raise ConnectionError("store unreachable")
        existing = self._owner(result.user_id, result.instrument)
        if existing:
            raise DuplicateResultError(result.user_id, result.instrument, existing)
        rid = f"r{len(self.results) + 1}"
        self.results[rid] = result
        return rid

    def denormalize_into_profile(self, user_id: str, instrument: Instrument, result: Result, result_id: str) -> None:
        if self.fail_project > 0:
            self.fail_project -= 1
            raise TimeoutError("profile write timed out")
        self.profiles.setdefault(user_id, {})[instrument.value] = result_id


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def make_session(store, scheduler):
    def _make(instrument: Instrument = Instrument.MBTI, user_id: str = "u1", questions=None, **kw) -> AssessmentSession:
        if questions is None and instrument is Instrument.MBTI:
            questions = build_mbti_questions()
        return AssessmentSession(
            user_id,
            instrument,
            gatekeeper=AttemptGatekeeper(store),
            recorder=ResultRecorder(store),
            scheduler=scheduler,
            questions=questions,
            **kw,
        )

    return _make


def answer_all(session: AssessmentSession, pick=lambda q: q.options[0].code) -> None:
    """Answer every question in order, leaving the session on the last one."""

    for i, q in enumerate(session.questions):
        session.answer(q.id, pick(q))
        if i < len(session.questions) - 1:
            session.next()
