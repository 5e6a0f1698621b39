from __future__ import annotations
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from . import catalog, config
from .errors import IncompleteAnswersError, InvalidAnswerError, UnhandledInstrumentError
from .types import (
    ASPECTS, DIMENSIONS, TRAIT_CODES, TRAIT_PAIRS,
    AnswerSet, AnswerValue, AptitudeQuestion, DichotomyQuestion, DominantDimension,
    ForcedChoicePair, Instrument, KraepelinPayload, MbtiPayload, PapiPayload,
    Payload, Question, Result,
)

log = logging.getLogger(__name__)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def validate_answer(question: Question, value: AnswerValue) -> AnswerValue:
    """Normalize a raw selection and check it is legal for `question`."""
    if isinstance(question, DichotomyQuestion):
        code = str(value).strip().upper()
        if code not in question.codes():
            raise InvalidAnswerError(question.id, value, f"expected one of {question.codes()}")
        return code
    if isinstance(question, AptitudeQuestion):
        try:
            idx = int(value)
        except (TypeError, ValueError):
            raise InvalidAnswerError(question.id, value, "expected an option index") from None
        if isinstance(value, bool) or not 0 <= idx < len(question.options):
            raise InvalidAnswerError(question.id, value, f"index out of range 0..{len(question.options) - 1}")
        return idx
    if isinstance(question, ForcedChoicePair):
        dim = str(value).strip().upper()
        if dim not in question.dimensions():
            raise InvalidAnswerError(question.id, value, f"expected one of {question.dimensions()}")
        return dim
    raise InvalidAnswerError(getattr(question, "id", "?"), value, "unsupported question type")


def check_complete(questions: Sequence[Question], answers: AnswerSet) -> None:
    missing = [q.id for q in questions if answers.get(q.id) is None]
    if missing:
        raise IncompleteAnswersError(missing, len(questions) - len(missing), len(questions))


def score_mbti(questions: Sequence[DichotomyQuestion], answers: AnswerSet) -> MbtiPayload:
    check_complete(questions, answers)
    scores: Dict[str, int] = {code: 0 for code in TRAIT_CODES}
    for q in questions:
        scores[validate_answer(q, answers[q.id])] += 1

    letters: List[str] = []
    for pair in TRAIT_PAIRS:
        first, second = pair[0], pair[1]
        if scores[first] == scores[second]:
            letters.append(config.DICHOTOMY_TIE_WINNERS.get(pair, first))
        else:
            letters.append(first if scores[first] > scores[second] else second)
    type_code = "".join(letters)

    info = catalog.TYPE_DESCRIPTIONS.get(type_code)
    if info is None:
        log.warning("mbti type %s has no description, using fallback", type_code)
        info = catalog.UNKNOWN_TYPE
    return MbtiPayload(scores=scores, type_code=type_code, title=info["title"], description=info["description"])


def kraepelin_profile(scores: Dict[str, int], max_scores: Dict[str, int]) -> Tuple[str, Dict[str, float]]:
    """Map aspect totals to a profile key; ratios are normalized per aspect."""
    ratios = {
        a: (round(scores.get(a, 0) / max_scores[a], 4) if max_scores.get(a) else 0.0)
        for a in ASPECTS
    }
    high = {a: ratios[a] >= config.PROFILE_HIGH_RATIO for a in ASPECTS}
    avg = {a: ratios[a] >= config.PROFILE_AVG_RATIO for a in ASPECTS}

    if all(high.values()):
        key = "HIGH_ALL"
    elif high["concentration"] and high["accuracy"] and avg["speed"]:
        key = "HIGH_CONCENTRATION_ACCURACY"
    elif high["speed"] and avg["accuracy"] and avg["concentration"]:
        key = "HIGH_SPEED"
    elif avg["concentration"] and avg["speed"] and avg["accuracy"]:
        key = "AVG_ALL"
    elif not (avg["concentration"] or avg["speed"] or avg["accuracy"]):
        key = "LOW_ALL"
    else:
        key = "DEFAULT_PROFILE"
    return key, ratios


def score_kraepelin(questions: Sequence[AptitudeQuestion], answers: AnswerSet) -> KraepelinPayload:
    check_complete(questions, answers)
    scores: Dict[str, int] = {a: 0 for a in ASPECTS}
    max_scores: Dict[str, int] = {a: 0 for a in ASPECTS}
    for q in questions:
        opt = q.options[validate_answer(q, answers[q.id])]
        scores[opt.aspect] = scores.get(opt.aspect, 0) + int(opt.score)
        max_scores[q.aspect] = max_scores.get(q.aspect, 0) + q.max_score

    key, ratios = kraepelin_profile(scores, max_scores)
    detail = "Skor Anda (relatif): " + ", ".join(
        f"{catalog.ASPECT_LABELS[a]} {scores[a]}/{max_scores[a]}" for a in ASPECTS
    ) + "."
    return KraepelinPayload(
        scores=scores,
        max_scores=max_scores,
        ratios=ratios,
        profile_key=key,
        profile_summary=catalog.PROFILE_DESCRIPTIONS.get(key, catalog.PROFILE_DESCRIPTIONS["DEFAULT_PROFILE"]),
        profile_detail=detail,
    )


def score_papi(questions: Sequence[ForcedChoicePair], answers: AnswerSet) -> PapiPayload:
    check_complete(questions, answers)
    scores: Dict[str, int] = {d: 0 for d in DIMENSIONS}
    for q in questions:
        scores[validate_answer(q, answers[q.id])] += 1

    # sorted() is stable, so equal counts keep catalog order
    ranked = sorted(DIMENSIONS, key=lambda d: scores[d], reverse=True)
    dominant: List[DominantDimension] = []
    for dim in ranked[: config.DOMINANT_TOP_N]:
        if scores[dim] <= 0:
            continue
        info = catalog.DIMENSION_DESCRIPTIONS.get(dim, {})
        dominant.append(DominantDimension(
            dimension=dim,
            name=info.get("name", dim),
            description=info.get("description", "Deskripsi tidak tersedia."),
            score=scores[dim],
        ))

    if dominant:
        summary = catalog.PREFERENCE_LEAD + ", ".join(d.name for d in dominant) + "."
    else:
        summary = catalog.NO_PREFERENCE
    return PapiPayload(scores=scores, dominant=dominant, profile_summary=summary)


def score_answers(instrument: Instrument, questions: Sequence[Question], answers: AnswerSet) -> Payload:
    """Total dispatch over the known instruments; anything else is a bug."""
    if instrument is Instrument.MBTI:
        return score_mbti(questions, answers)  # type: ignore[arg-type]
    if instrument is Instrument.KRAEPELIN:
        return score_kraepelin(questions, answers)  # type: ignore[arg-type]
    if instrument is Instrument.PAPI_KOSTICK:
        return score_papi(questions, answers)  # type: ignore[arg-type]
    raise UnhandledInstrumentError(instrument)


def build_result(
    instrument: Instrument,
    user_id: str,
    questions: Sequence[Question],
    answers: AnswerSet,
    completed_at: Optional[str] = None,
) -> Result:
    payload = score_answers(instrument, questions, answers)
    return Result(
        instrument=instrument,
        user_id=user_id,
        completed_at=completed_at or utcnow_iso(),
        payload=payload,
        question_ids=[q.id for q in questions],
    )
