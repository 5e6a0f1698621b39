from __future__ import annotations
import json, random
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from . import config
from .errors import QuestionBankError, UnhandledInstrumentError
from .types import (
    ASPECTS, DIMENSIONS, TRAIT_PAIRS,
    AptitudeOption, AptitudeQuestion, DichotomyQuestion, ForcedChoicePair,
    Instrument, Question, Statement, TraitOption,
)

DATA_DIR = Path(__file__).with_name("data")
POOL_FILES: Dict[Instrument, str] = {
    Instrument.MBTI: "mbti.json",
    Instrument.KRAEPELIN: "kraepelin.json",
    Instrument.PAPI_KOSTICK: "papi_kostick.json",
}

_POOL_CACHE: Dict[Instrument, List[Question]] = {}


def _parse(instrument: Instrument, raw: dict) -> Question:
    if instrument is Instrument.MBTI:
        return DichotomyQuestion(
            id=raw["id"], text=raw["text"], pair=raw["pair"],
            options=[TraitOption(**o) for o in raw["options"]],
        )
    if instrument is Instrument.KRAEPELIN:
        return AptitudeQuestion(
            id=raw["id"], text=raw["text"],
            options=[AptitudeOption(**o) for o in raw["options"]],
        )
    if instrument is Instrument.PAPI_KOSTICK:
        return ForcedChoicePair(id=raw["id"], statements=[Statement(**s) for s in raw["statements"]])
    raise UnhandledInstrumentError(instrument)


def load_pool(instrument: Instrument) -> List[Question]:
    """Master pool for one instrument, read once per process."""
    if instrument not in _POOL_CACHE:
        path = DATA_DIR / POOL_FILES[instrument]
        raw = json.loads(path.read_text(encoding="utf-8"))
        _POOL_CACHE[instrument] = [_parse(instrument, r) for r in raw]
    return list(_POOL_CACHE[instrument])


def categories_of(question: Question) -> List[str]:
    """Strata a question counts toward (trait pair, aspect, or both dimensions of a pair)."""
    if isinstance(question, DichotomyQuestion):
        return [question.pair]
    if isinstance(question, AptitudeQuestion):
        return sorted({o.aspect for o in question.options})
    return sorted(set(question.dimensions()))


def _strata(instrument: Instrument) -> tuple[Sequence[str], int]:
    if instrument is Instrument.MBTI:
        return TRAIT_PAIRS, config.MBTI_PER_PAIR
    if instrument is Instrument.KRAEPELIN:
        return ASPECTS, config.KRAEPELIN_MIN_PER_ASPECT
    if instrument is Instrument.PAPI_KOSTICK:
        return DIMENSIONS, config.PAPI_MIN_PER_DIMENSION
    raise UnhandledInstrumentError(instrument)


def stratified_sample(
    pool: Sequence[Question],
    total: int,
    strata: Sequence[str],
    minimum: int,
    rng: random.Random,
    categories: Callable[[Question], List[str]] = categories_of,
) -> List[Question]:
    """Draw `total` distinct questions, at least `minimum` per stratum, in random order.

    Strata are visited in random order so that questions counting toward two
    strata (forced-choice pairs) do not systematically favour the first ones.
    """
    if len(pool) < total:
        raise QuestionBankError(f"pool has {len(pool)} questions, need {total}")
    if len({q.id for q in pool}) != len(pool):
        raise QuestionBankError("duplicate question ids in pool")

    picked: List[Question] = []
    seen: set[str] = set()
    covered = {s: 0 for s in strata}

    order = list(strata)
    rng.shuffle(order)
    for stratum in order:
        need = minimum - covered[stratum]
        if need <= 0:
            continue
        candidates = [q for q in pool if q.id not in seen and stratum in categories(q)]
        if len(candidates) < need:
            raise QuestionBankError(
                f"stratum {stratum} has {len(candidates)} unused questions, need {need}"
            )
        for q in rng.sample(candidates, need):
            picked.append(q)
            seen.add(q.id)
            for cat in categories(q):
                if cat in covered:
                    covered[cat] += 1

    if len(picked) > total:
        raise QuestionBankError(
            f"minimum of {minimum} per stratum needs {len(picked)} questions, session holds {total}"
        )
    rest = [q for q in pool if q.id not in seen]
    picked.extend(rng.sample(rest, total - len(picked)))
    rng.shuffle(picked)
    return picked


def _default_rng() -> random.Random:
    seed = config.DEBUG_SEED
    return random.Random(seed) if seed is not None else random.Random()


def select_questions(
    instrument: Instrument,
    rng: Optional[random.Random] = None,
    count: Optional[int] = None,
) -> List[Question]:
    """Fresh randomized question set for one attempt; holds no session state."""
    instrument = Instrument.parse(instrument)
    total = config.QUESTIONS_PER_SESSION if count is None else int(count)
    strata, minimum = _strata(instrument)
    return stratified_sample(load_pool(instrument), total, strata, minimum, rng or _default_rng())
