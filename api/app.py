from __future__ import annotations
from collections import OrderedDict
from fastapi import FastAPI, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import asyncio, logging, os, threading, typing as t

from psych_core.catalog import describe
from psych_core.errors import (
    AlreadyAttemptedError, AssessmentError, IncompleteAnswersError, InstrumentUnavailableError,
    InvalidAnswerError, InvalidTransitionError, PersistenceError, QuestionBankError,
    UnknownInstrumentError,
)
from psych_core.gatekeeper import AttemptGatekeeper
from psych_core.recorder import ResultRecorder
from psych_core.session import AssessmentSession, SessionState
from psych_core.timer import Scheduler
from psych_core.types import Instrument, result_from_dict
from . import storage

log = logging.getLogger(__name__)

SESS: dict[str, AssessmentSession] = {}
LOCKS: dict[str, threading.RLock] = {}
FINISHED: "OrderedDict[str, dict[str, t.Any]]" = OrderedDict()  # sid -> final snapshot, oldest first
FINISHED_MAX = int(os.getenv("FINISHED_SESSIONS_MAX", "500"))

GATEKEEPER = AttemptGatekeeper(storage)  # type: ignore[arg-type]
RECORDER = ResultRecorder(storage)  # type: ignore[arg-type]

app = FastAPI(title="Psychometric Assessment API")


@app.get("/")
def root():
    return {"status": "ok", "service": "psych-assessment-api"}


ALLOWED_ORIGINS = [
    o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)


# ---- Schemas ----
class StartReq(BaseModel):
    user_id: str
    instrument: str     # "mbti" | "kraepelin" | "papi-kostick"


class AnswerReq(BaseModel):
    user_id: str
    question_id: str
    value: int | str


class ActionReq(BaseModel):
    user_id: str


# ---- Scheduling ----
class _LoopHandle:
    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self.cancelled = False
        self.timer: asyncio.TimerHandle | None = None

    def cancel(self) -> None:
        self.cancelled = True
        if self.timer is not None:
            self._loop.call_soon_threadsafe(self.timer.cancel)


class LoopScheduler:
    """Countdown on the serving event loop; each tick runs in the threadpool.

    Session calls (and the file store behind them) never run on the loop
    itself. `call_later` may be called from a worker thread; a tick that
    slips past a cancel is dropped by the timer's generation check.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.lock = threading.RLock()

    def call_later(self, delay: float, callback: t.Callable[..., t.Any], *args: t.Any) -> _LoopHandle:
        handle = _LoopHandle(self.loop)

        def arm() -> None:
            if not handle.cancelled:
                handle.timer = self.loop.call_later(delay, self._dispatch, callback, args)

        self.loop.call_soon_threadsafe(arm)
        return handle

    def _dispatch(self, callback: t.Callable[..., t.Any], args: tuple) -> None:
        self.loop.run_in_executor(None, self._run_locked, callback, args)

    def _run_locked(self, callback: t.Callable[..., t.Any], args: tuple) -> None:
        with self.lock:
            callback(*args)


def make_scheduler() -> Scheduler:
    return LoopScheduler(asyncio.get_running_loop())


# ---- Helpers ----
def _http_error(exc: AssessmentError) -> HTTPException:
    if isinstance(exc, UnknownInstrumentError):
        return HTTPException(400, str(exc))
    if isinstance(exc, InstrumentUnavailableError):
        return HTTPException(503, str(exc))
    if isinstance(exc, AlreadyAttemptedError):
        rid = exc.result_id
        if rid is None and isinstance(exc.instrument, Instrument):
            try:
                rid = storage.find_result_id(exc.user_id, exc.instrument)
            except (OSError, ValueError):
                rid = None
        return HTTPException(409, {"message": str(exc), "result_id": rid})
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(409, str(exc))
    if isinstance(exc, IncompleteAnswersError):
        return HTTPException(422, {"message": str(exc), "missing": exc.missing})
    if isinstance(exc, InvalidAnswerError):
        return HTTPException(422, str(exc))
    if isinstance(exc, PersistenceError):
        return HTTPException(502, str(exc))
    if isinstance(exc, QuestionBankError):
        return HTTPException(500, str(exc))
    return HTTPException(400, str(exc))


def _read_store(fn: t.Callable[..., t.Any], *args: t.Any) -> t.Any:
    try:
        return fn(*args)
    except (OSError, ValueError) as exc:
        log.error("store read failed %s: %r", getattr(fn, "__name__", fn), exc)
        raise HTTPException(502, "result store unavailable") from exc


def _bookkeep(fn: t.Callable[..., t.Any], *args: t.Any) -> None:
    """Activity log and active-session registry are best-effort."""
    try:
        fn(*args)
    except (OSError, ValueError) as exc:
        log.warning("%s failed: %r", getattr(fn, "__name__", fn), exc)


def _on_session_change(sess: AssessmentSession, event: str) -> None:
    if sess.state is SessionState.COMPLETED:
        _bookkeep(storage.log_activity, sess.user_id, "PSYCHOMETRIC_TEST_SUBMIT_SUCCESS", {
            "testType": sess.instrument.value, "resultId": sess.result_id,
        })
        _retire(sess)
    elif sess.state is SessionState.ABANDONED:
        _retire(sess)
    elif sess.state is SessionState.SUBMITTING and isinstance(sess.last_error, PersistenceError):
        _bookkeep(storage.log_activity, sess.user_id, "PSYCHOMETRIC_TEST_SUBMIT_FAILURE", {
            "testType": sess.instrument.value, "error": str(sess.last_error),
        })
    elif event in ("answer", "next", "previous", "timeout"):
        _bookkeep(storage.update_active_session, sess.id, {"lastUpdated": storage.utcnow_iso(), "index": sess.index})


def _retire(sess: AssessmentSession) -> None:
    FINISHED[sess.id] = sess.snapshot()
    FINISHED.move_to_end(sess.id)
    while len(FINISHED) > max(0, FINISHED_MAX):
        FINISHED.popitem(last=False)
    SESS.pop(sess.id, None)
    LOCKS.pop(sess.id, None)
    _bookkeep(storage.clear_active_session, sess.id)


def _get_session(sid: str, user_id: str) -> AssessmentSession:
    sess = SESS.get(sid)
    if not sess:
        raise HTTPException(404, "session not found")
    if sess.user_id != user_id:
        raise HTTPException(403, "session belongs to another user")
    return sess


def _locked(lock: threading.RLock, fn: t.Callable[..., t.Any], *args: t.Any) -> t.Any:
    with lock:
        return fn(*args)


async def _act(sess: AssessmentSession, fn: t.Callable[..., t.Any], *args: t.Any) -> dict[str, t.Any]:
    """Run one session transition off the event loop, serialized with its ticks."""
    lock = LOCKS.get(sess.id) or threading.RLock()
    try:
        await run_in_threadpool(_locked, lock, fn, *args)
    except AssessmentError as exc:
        raise _http_error(exc) from exc
    return await run_in_threadpool(_locked, lock, sess.snapshot)


# ---- Health ----
@app.get("/health")
def health():
    return {
        "active_sessions": len(SESS),
        "finished_sessions": len(FINISHED),
        "pending_projections": len(RECORDER.pending),
        "data_dir": str(storage.DATA_ROOT),
    }


@app.get("/instruments")
def list_instruments(user_id: str | None = None):
    out = []
    for inst in Instrument:
        info = describe(inst)
        info["completed"] = bool(user_id) and _read_store(storage.check_prior_attempt, user_id, inst)
        out.append(info)
    return {"instruments": out}


# ---- Sessions ----
def _start_session(req: StartReq, scheduler: Scheduler) -> AssessmentSession:
    instrument = Instrument.parse(req.instrument)
    sess = AssessmentSession(
        req.user_id,
        instrument,
        gatekeeper=GATEKEEPER,
        recorder=RECORDER,
        scheduler=scheduler,
        on_change=_on_session_change,
    )
    lock = getattr(scheduler, "lock", None) or threading.RLock()
    with lock:
        sess.start()
        LOCKS[sess.id] = lock
        SESS[sess.id] = sess
    _bookkeep(
        storage.record_active_session,
        sess.id,
        {
            "sessionId": sess.id,
            "userId": req.user_id,
            "instrument": instrument.value,
            "startedAt": storage.utcnow_iso(),
            "index": 0,
        },
    )
    return sess


@app.post("/sessions/start")
async def start(req: StartReq):
    scheduler = make_scheduler()
    try:
        sess = await run_in_threadpool(_start_session, req, scheduler)
    except AssessmentError as exc:
        raise _http_error(exc) from exc
    return await run_in_threadpool(_locked, LOCKS.get(sess.id) or threading.RLock(), sess.snapshot)


@app.get("/sessions/{sid}")
async def get_session(sid: str, user_id: str):
    if sid in FINISHED and sid not in SESS:
        snap = FINISHED[sid]
        if snap.get("user_id") != user_id:
            raise HTTPException(403, "session belongs to another user")
        return snap
    sess = _get_session(sid, user_id)
    return await run_in_threadpool(_locked, LOCKS.get(sid) or threading.RLock(), sess.snapshot)


@app.post("/sessions/{sid}/answer")
async def answer(sid: str, req: AnswerReq):
    sess = _get_session(sid, req.user_id)
    return await _act(sess, sess.answer, req.question_id, req.value)


@app.post("/sessions/{sid}/next")
async def next_question(sid: str, req: ActionReq):
    sess = _get_session(sid, req.user_id)
    return await _act(sess, sess.next)


@app.post("/sessions/{sid}/previous")
async def previous_question(sid: str, req: ActionReq):
    sess = _get_session(sid, req.user_id)
    return await _act(sess, sess.previous)


@app.post("/sessions/{sid}/submit")
async def submit(sid: str, req: ActionReq):
    sess = _get_session(sid, req.user_id)
    return await _act(sess, sess.submit)


@app.post("/sessions/{sid}/abandon")
async def abandon(sid: str, req: ActionReq):
    sess = _get_session(sid, req.user_id)
    return await _act(sess, sess.abandon)


# ---- Results ----
@app.get("/results/{result_id}")
def get_result(result_id: str, user_id: str, role: str | None = Query(None)):
    raw = _read_store(storage.load_result, result_id)
    if not raw:
        raise HTTPException(404, "result not found")
    try:
        result = result_from_dict(raw)
    except (AssessmentError, TypeError, ValueError) as exc:
        log.error("stored result %s is malformed: %r", result_id, exc)
        raise HTTPException(502, "stored result is malformed") from exc
    if result.user_id != user_id and (role or "").lower() != "admin":
        raise HTTPException(403, "not allowed to view this result")
    record = result.to_dict()
    record["id"] = result_id
    return record


@app.get("/users/{user_id}/results")
def list_results(user_id: str):
    return {"results": _read_store(storage.list_results_for_user, user_id)}


@app.get("/users/{user_id}/profile")
def get_profile(user_id: str):
    return {
        "profile": _read_store(storage.load_profile, user_id),
        "cv": _read_store(storage.load_cv, user_id),
    }


@app.get("/users/{user_id}/sessions/active")
def list_active_sessions(user_id: str):
    return {"sessions": _read_store(storage.active_sessions_for_user, user_id)}


@app.post("/admin/projections/flush")
def flush_projections():
    done = RECORDER.flush_pending()
    return {"flushed": done, "pending": len(RECORDER.pending)}
