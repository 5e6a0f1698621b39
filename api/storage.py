"""JSON-file persistence for results, profile projections and session metadata.

Implements the result-store boundary (`check_prior_attempt`,
`persist_result`, `denormalize_into_profile`) at module level, so the module
itself can be handed to the gatekeeper and recorder. A hosted
backend-as-a-service can replace it without touching the engine.
"""

from __future__ import annotations

import json
import os
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from psych_core.errors import DuplicateResultError
from psych_core.types import Instrument, Result


DATA_ROOT = Path(os.getenv("DATA_DIR", "data")).resolve()
RESULTS_DIR = DATA_ROOT / "results"
RESULT_INDEX_PATH = DATA_ROOT / "results_index.json"
PROFILES_PATH = DATA_ROOT / "profiles.json"
CVS_PATH = DATA_ROOT / "cvs.json"
ACTIVITY_LOG_PATH = DATA_ROOT / "activity_log.json"
ACTIVE_SESSIONS_PATH = DATA_ROOT / "sessions_active.json"

CV_SECTION_TITLE = "Hasil Tes Psikometri"

_LOCK = threading.RLock()


def _ensure_dirs() -> None:
    RESULTS_DIR.mkdir(parents=True, exist_ok=True)
    DATA_ROOT.mkdir(parents=True, exist_ok=True)


def _read_json(path: Path, default: Any) -> Any:
    """`default` only for a file that does not exist yet.

    An unreadable or unparsable file raises (OSError / ValueError) rather
    than reading as empty.
    """
    if not path.exists():
        return default
    return json.loads(path.read_text(encoding="utf-8"))


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---- results ----
def find_result_id(user_id: str, instrument: Instrument) -> Optional[str]:
    index: Dict[str, Dict[str, Any]] = _read_json(RESULT_INDEX_PATH, {})
    for rid, meta in index.items():
        if meta.get("userId") == user_id and meta.get("instrument") == instrument.value:
            return rid
    return None


def check_prior_attempt(user_id: str, instrument: Instrument) -> bool:
    return find_result_id(user_id, instrument) is not None


def persist_result(result: Result) -> str:
    """Store a result; a second one for the same (user, instrument) is rejected."""

    _ensure_dirs()
    with _LOCK:
        existing = find_result_id(result.user_id, result.instrument)
        if existing:
            raise DuplicateResultError(result.user_id, result.instrument, existing)
        rid = str(uuid.uuid4())
        record = result.to_dict()
        record["id"] = rid
        _write_json(RESULTS_DIR / f"{rid}.json", record)

        index: Dict[str, Dict[str, Any]] = _read_json(RESULT_INDEX_PATH, {})
        index[rid] = {
            "userId": result.user_id,
            "instrument": result.instrument.value,
            "completedAt": result.completed_at,
            "headline": result.headline,
        }
        _write_json(RESULT_INDEX_PATH, index)
    return rid


def load_result(result_id: str) -> Optional[Dict[str, Any]]:
    return _read_json(RESULTS_DIR / f"{result_id}.json", None)


def list_results_for_user(user_id: str) -> List[Dict[str, Any]]:
    index: Dict[str, Dict[str, Any]] = _read_json(RESULT_INDEX_PATH, {})
    out: List[Dict[str, Any]] = []
    for rid, meta in index.items():
        if meta.get("userId") == user_id:
            item = {"id": rid}
            item.update({k: v for k, v in meta.items() if k != "id"})
            out.append(item)
    out.sort(key=lambda r: r.get("completedAt", ""), reverse=True)
    return out


# ---- projections ----
def denormalize_into_profile(user_id: str, instrument: Instrument, result: Result, result_id: str) -> None:
    """Copy the result into the user's profile and, if they have one, their CV."""

    record = result.to_dict()
    with _LOCK:
        profiles: Dict[str, Dict[str, Any]] = _read_json(PROFILES_PATH, {})
        profile = profiles.setdefault(user_id, {})
        slots = profile.setdefault("psychometricResults", {})
        slots[instrument.value] = {
            "resultId": result_id,
            "testDate": result.completed_at,
            "headline": result.headline,
            "resultData": record["resultData"],
        }
        _write_json(PROFILES_PATH, profiles)
        _update_cv_section(user_id, instrument, result)


def _update_cv_section(user_id: str, instrument: Instrument, result: Result) -> None:
    cvs: Dict[str, Dict[str, Any]] = _read_json(CVS_PATH, {})
    cv = cvs.get(user_id)
    if not cv:
        return
    line = f"**{instrument.value}**: {result.headline or 'Hasil tes tersedia'}"
    sections: List[Dict[str, Any]] = list(cv.get("sections") or [])
    section = next(
        (s for s in sections if s.get("type") == "CUSTOM" and s.get("title") == CV_SECTION_TITLE),
        None,
    )
    if section is None:
        section = {
            "id": f"psychometric-{uuid.uuid4().hex[:8]}",
            "type": "CUSTOM",
            "title": CV_SECTION_TITLE,
            "order": len(sections) + 1,
            "lines": {},
        }
        sections.append(section)
    lines: Dict[str, str] = dict(section.get("lines") or {})
    lines[instrument.value] = line
    section["lines"] = lines
    section["customContent"] = "\n".join(lines[k] for k in sorted(lines))
    cv["sections"] = sections
    cv["updatedAt"] = utcnow_iso()
    _write_json(CVS_PATH, cvs)


def load_profile(user_id: str) -> Dict[str, Any]:
    profiles: Dict[str, Dict[str, Any]] = _read_json(PROFILES_PATH, {})
    return profiles.get(user_id, {})


def load_cv(user_id: str) -> Optional[Dict[str, Any]]:
    cvs: Dict[str, Dict[str, Any]] = _read_json(CVS_PATH, {})
    return cvs.get(user_id)


# ---- activity log ----
def log_activity(user_id: str, action: str, details: Optional[Dict[str, Any]] = None) -> None:
    entry = {"userId": user_id, "action": action, "timestamp": utcnow_iso(), "details": details or {}}
    with _LOCK:
        entries: List[Dict[str, Any]] = _read_json(ACTIVITY_LOG_PATH, [])
        entries.append(entry)
        _write_json(ACTIVITY_LOG_PATH, entries)


def activity_for_user(user_id: str) -> List[Dict[str, Any]]:
    return [e for e in _read_json(ACTIVITY_LOG_PATH, []) if e.get("userId") == user_id]


# ---- active sessions ----
def _load_sessions() -> Dict[str, Dict[str, Any]]:
    return _read_json(ACTIVE_SESSIONS_PATH, {})


def record_active_session(session_id: str, payload: Dict[str, Any]) -> None:
    if not payload.get("userId"):
        return
    with _LOCK:
        sessions = _load_sessions()
        sessions[session_id] = payload
        _write_json(ACTIVE_SESSIONS_PATH, sessions)


def update_active_session(session_id: str, updates: Dict[str, Any]) -> None:
    with _LOCK:
        sessions = _load_sessions()
        if session_id not in sessions:
            return
        sessions[session_id].update(updates)
        _write_json(ACTIVE_SESSIONS_PATH, sessions)


def clear_active_session(session_id: str) -> None:
    with _LOCK:
        sessions = _load_sessions()
        if session_id in sessions:
            sessions.pop(session_id, None)
            _write_json(ACTIVE_SESSIONS_PATH, sessions)


def active_sessions_for_user(user_id: str) -> List[Dict[str, Any]]:
    sessions = _load_sessions()
    out: List[Dict[str, Any]] = []
    for payload in sessions.values():
        if payload.get("userId") == user_id:
            out.append(payload)
    out.sort(key=lambda r: r.get("startedAt", ""), reverse=True)
    return out
