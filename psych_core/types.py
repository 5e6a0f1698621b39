from __future__ import annotations
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from .errors import UnknownInstrumentError


class Instrument(str, Enum):
    MBTI = "mbti"
    KRAEPELIN = "kraepelin"
    PAPI_KOSTICK = "papi-kostick"

    @classmethod
    def parse(cls, raw: object) -> "Instrument":
        """Resolve an enum, wire value, member name or display name; never defaults."""
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str) or not raw.strip():
            raise UnknownInstrumentError(raw)
        key = raw.strip().lower()
        for inst in cls:
            if key in (inst.value, inst.name.lower(), inst.name.lower().replace("_", "-")):
                return inst
        # display names ("Tes Kraepelin", "PAPI Kostick") come from the catalog
        from .catalog import INSTRUMENT_INFO
        for inst, info in INSTRUMENT_INFO.items():
            if key in (str(info["name"]).lower(), str(info["label"]).lower()):
                return inst
        raise UnknownInstrumentError(raw)


TRAIT_PAIRS: Tuple[str, ...] = ("EI", "SN", "TF", "JP")
TRAIT_CODES: Tuple[str, ...] = tuple(c for pair in TRAIT_PAIRS for c in pair)
ASPECTS: Tuple[str, ...] = ("concentration", "speed", "accuracy", "stamina")
DIMENSIONS: Tuple[str, ...] = (
    "L", "P", "X", "A", "R", "D", "C", "O", "B", "Z",
    "N", "G", "I", "E", "S", "K", "T", "V", "W", "F",
)


@dataclass
class TraitOption:
    text: str; code: str


@dataclass
class DichotomyQuestion:
    id: str; text: str; pair: str
    options: List[TraitOption]

    def codes(self) -> List[str]:
        return [o.code for o in self.options]


@dataclass
class AptitudeOption:
    text: str; score: int; aspect: str


@dataclass
class AptitudeQuestion:
    id: str; text: str
    options: List[AptitudeOption]

    @property
    def aspect(self) -> str:
        return self.options[0].aspect if self.options else ""

    @property
    def max_score(self) -> int:
        return max((o.score for o in self.options), default=0)


@dataclass
class Statement:
    text: str; dimension: str


@dataclass
class ForcedChoicePair:
    id: str
    statements: List[Statement]

    def dimensions(self) -> List[str]:
        return [s.dimension for s in self.statements]


Question = Union[DichotomyQuestion, AptitudeQuestion, ForcedChoicePair]
AnswerValue = Union[str, int]
AnswerSet = Dict[str, AnswerValue]


@dataclass(frozen=True)
class DominantDimension:
    dimension: str
    name: str
    description: str
    score: int


@dataclass(frozen=True)
class MbtiPayload:
    scores: Dict[str, int]
    type_code: str
    title: str
    description: str

    @property
    def headline(self) -> str:
        return self.type_code


@dataclass(frozen=True)
class KraepelinPayload:
    scores: Dict[str, int]
    max_scores: Dict[str, int]
    ratios: Dict[str, float]
    profile_key: str
    profile_summary: str
    profile_detail: str

    @property
    def headline(self) -> str:
        return self.profile_summary


@dataclass(frozen=True)
class PapiPayload:
    scores: Dict[str, int]
    dominant: List[DominantDimension]
    profile_summary: str

    @property
    def headline(self) -> str:
        if not self.dominant:
            return self.profile_summary
        return ", ".join(d.name for d in self.dominant)


Payload = Union[MbtiPayload, KraepelinPayload, PapiPayload]


@dataclass(frozen=True)
class Result:
    instrument: Instrument
    user_id: str
    completed_at: str
    payload: Payload
    question_ids: List[str] = field(default_factory=list)

    @property
    def headline(self) -> str:
        return self.payload.headline

    def to_dict(self) -> Dict[str, object]:
        return {
            "instrument": self.instrument.value,
            "userId": self.user_id,
            "completedAt": self.completed_at,
            "headline": self.headline,
            "resultData": asdict(self.payload),
            "questionIds": list(self.question_ids),
        }


def result_from_dict(raw: Dict[str, object]) -> Result:
    inst = Instrument.parse(raw.get("instrument"))
    data = dict(raw.get("resultData") or {})
    payload: Payload
    if inst is Instrument.MBTI:
        payload = MbtiPayload(**data)
    elif inst is Instrument.KRAEPELIN:
        payload = KraepelinPayload(**data)
    else:
        dominant = [DominantDimension(**d) for d in data.pop("dominant", [])]
        payload = PapiPayload(dominant=dominant, **data)
    return Result(
        instrument=inst,
        user_id=str(raw.get("userId") or ""),
        completed_at=str(raw.get("completedAt") or ""),
        payload=payload,
        question_ids=list(raw.get("questionIds") or []),
    )


@dataclass
class Admission:
    allowed: bool
    instrument: Instrument
    reason: Optional[str] = None
