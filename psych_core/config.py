from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_list(name: str) -> tuple[str, ...]:
    raw = os.getenv(name) or ""
    return tuple(p.strip().lower() for p in raw.split(",") if p.strip())


QUESTIONS_PER_SESSION: int = 20
QUESTION_TIME_LIMIT: int = 15
TICK_SECONDS: float = 1.0

MBTI_PER_PAIR: int = 5
KRAEPELIN_MIN_PER_ASPECT: int = 5
PAPI_MIN_PER_DIMENSION: int = 1

# first letter of each pair wins ties (E, S, T, J)
DICHOTOMY_TIE_WINNERS: dict[str, str] = {"EI": "E", "SN": "S", "TF": "T", "JP": "J"}

PROFILE_HIGH_RATIO: float = 0.75
PROFILE_AVG_RATIO: float = 0.5
DOMINANT_TOP_N: int = 3

BOUNDARY_RETRIES: int = 1

DISABLED_INSTRUMENTS: tuple[str, ...] = ()

DEBUG_TRACE: bool = False
DEBUG_SEED: int | None = None
TRACE_FIELDS: tuple[str, ...] = (
    "session",
    "instrument",
    "event",
    "state",
    "index",
    "time_remaining",
    "answered",
)
# // env overrides for staging/ops; defaults match the production portal.
QUESTIONS_PER_SESSION = _env_int("QUESTIONS_PER_SESSION", QUESTIONS_PER_SESSION)
QUESTION_TIME_LIMIT = _env_int("QUESTION_TIME_LIMIT", QUESTION_TIME_LIMIT)
TICK_SECONDS = _env_float("TICK_SECONDS", TICK_SECONDS)
PROFILE_HIGH_RATIO = _env_float("PROFILE_HIGH_RATIO", PROFILE_HIGH_RATIO)
PROFILE_AVG_RATIO = _env_float("PROFILE_AVG_RATIO", PROFILE_AVG_RATIO)
BOUNDARY_RETRIES = max(0, _env_int("BOUNDARY_RETRIES", BOUNDARY_RETRIES))
DISABLED_INSTRUMENTS = _env_list("DISABLED_INSTRUMENTS")
DEBUG_TRACE = _env_bool("DEBUG_TRACE", False)
_seed = os.getenv("DEBUG_SEED")
DEBUG_SEED = int(_seed) if _seed and _seed.strip().lstrip("-").isdigit() else None
