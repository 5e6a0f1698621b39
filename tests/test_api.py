from __future__ import annotations

import asyncio
import importlib
import json
import sys
import threading

import pytest
from fastapi.testclient import TestClient

from psych_core import config
from psych_core.timer import ManualScheduler


def _reload_app(tmp_path, monkeypatch) -> tuple[object, object]:
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    if "api.storage" in sys.modules:
        importlib.reload(sys.modules["api.storage"])
    else:
        import api.storage  # noqa: F401
    storage = sys.modules["api.storage"]
    if "api.app" in sys.modules:
        importlib.reload(sys.modules["api.app"])
    else:
        import api.app  # noqa: F401
    app_module = sys.modules["api.app"]
    return storage, app_module


@pytest.fixture
def env(tmp_path, monkeypatch):
    storage, app_module = _reload_app(tmp_path, monkeypatch)
    sched = ManualScheduler()
    monkeypatch.setattr(app_module, "make_scheduler", lambda: sched)
    return storage, app_module, TestClient(app_module.app), sched


def _run_to_end(client, snap: dict, user_id: str = "u1") -> dict:
    sid = snap["session_id"]
    while snap["state"] == "in_progress":
        q = snap["question"]
        resp = client.post(
            f"/sessions/{sid}/answer",
            json={"user_id": user_id, "question_id": q["id"], "value": q["options"][0]["value"]},
        )
        assert resp.status_code == 200
        snap = client.post(f"/sessions/{sid}/next", json={"user_id": user_id}).json()
    return snap


def test_full_mbti_flow(env):
    storage, app_module, client, _ = env
    resp = client.post("/sessions/start", json={"user_id": "u1", "instrument": "mbti"})
    assert resp.status_code == 200
    snap = resp.json()
    assert snap["total"] == 20 and snap["index"] == 0
    assert storage.active_sessions_for_user("u1")[0]["sessionId"] == snap["session_id"]

    done = _run_to_end(client, snap)
    assert done["state"] == "completed"
    rid = done["result_id"]
    assert done["result"]["instrument"] == "mbti"
    assert len(done["result"]["resultData"]["type_code"]) == 4

    assert client.get(f"/results/{rid}", params={"user_id": "u1"}).status_code == 200
    assert client.get(f"/results/{rid}", params={"user_id": "u2"}).status_code == 403
    assert client.get(f"/results/{rid}", params={"user_id": "u2", "role": "admin"}).status_code == 200

    again = client.post("/sessions/start", json={"user_id": "u1", "instrument": "MBTI"})
    assert again.status_code == 409
    assert again.json()["detail"]["result_id"] == rid

    profile = client.get("/users/u1/profile").json()["profile"]
    assert profile["psychometricResults"]["mbti"]["resultId"] == rid
    assert client.get("/users/u1/results").json()["results"][0]["id"] == rid
    assert client.get("/users/u1/sessions/active").json()["sessions"] == []
    assert client.get(f"/sessions/{done['session_id']}", params={"user_id": "u1"}).json()["state"] == "completed"

    actions = [e["action"] for e in storage.activity_for_user("u1")]
    assert actions == ["PSYCHOMETRIC_TEST_SUBMIT_SUCCESS"]

    listed = {i["id"]: i for i in client.get("/instruments", params={"user_id": "u1"}).json()["instruments"]}
    assert listed["mbti"]["completed"] is True
    assert listed["kraepelin"]["completed"] is False


def test_cv_section_updated_when_cv_exists(env):
    storage, _, client, _ = env
    storage.CVS_PATH.write_text(json.dumps({"u1": {"sections": []}}), encoding="utf-8")
    snap = client.post("/sessions/start", json={"user_id": "u1", "instrument": "kraepelin"}).json()
    done = _run_to_end(client, snap)
    assert done["state"] == "completed"

    cv = client.get("/users/u1/profile").json()["cv"]
    section = cv["sections"][0]
    assert section["title"] == storage.CV_SECTION_TITLE
    assert section["customContent"].startswith("**kraepelin**: ")


def test_timer_advances_session(env):
    _, _, client, sched = env
    snap = client.post("/sessions/start", json={"user_id": "u1", "instrument": "papi-kostick"}).json()
    sched.advance(config.QUESTION_TIME_LIMIT)
    now = client.get(f"/sessions/{snap['session_id']}", params={"user_id": "u1"}).json()
    assert now["index"] == 1
    assert now["time_remaining"] == config.QUESTION_TIME_LIMIT
    assert now["question"]["text"].startswith("Pilih pernyataan")


def test_incomplete_submit_is_422(env):
    _, _, client, _ = env
    sid = client.post("/sessions/start", json={"user_id": "u1", "instrument": "mbti"}).json()["session_id"]
    resp = client.post(f"/sessions/{sid}/submit", json={"user_id": "u1"})
    assert resp.status_code == 422
    assert len(resp.json()["detail"]["missing"]) == 20
    assert client.get(f"/sessions/{sid}", params={"user_id": "u1"}).json()["state"] == "in_progress"


def test_bad_requests(env, monkeypatch):
    _, _, client, _ = env
    assert client.post("/sessions/start", json={"user_id": "u1", "instrument": "tarot"}).status_code == 400

    monkeypatch.setattr(config, "DISABLED_INSTRUMENTS", ("kraepelin",))
    assert client.post("/sessions/start", json={"user_id": "u1", "instrument": "kraepelin"}).status_code == 503

    snap = client.post("/sessions/start", json={"user_id": "u1", "instrument": "mbti"}).json()
    sid = snap["session_id"]
    assert client.get(f"/sessions/{sid}", params={"user_id": "u2"}).status_code == 403
    assert client.post("/sessions/missing/next", json={"user_id": "u1"}).status_code == 404

    bad = client.post(
        f"/sessions/{sid}/answer",
        json={"user_id": "u1", "question_id": snap["question"]["id"], "value": "Z"},
    )
    assert bad.status_code == 422


def test_abandon_stores_nothing(env):
    storage, _, client, sched = env
    sid = client.post("/sessions/start", json={"user_id": "u1", "instrument": "mbti"}).json()["session_id"]
    resp = client.post(f"/sessions/{sid}/abandon", json={"user_id": "u1"})
    assert resp.json()["state"] == "abandoned"
    assert sched.pending == 0
    assert storage.list_results_for_user("u1") == []
    assert storage.active_sessions_for_user("u1") == []
    assert client.post(f"/sessions/{sid}/next", json={"user_id": "u1"}).status_code == 404


def test_health_and_flush(env):
    _, _, client, _ = env
    body = client.get("/health").json()
    assert body["active_sessions"] == 0
    assert body["pending_projections"] == 0
    assert client.post("/admin/projections/flush").json() == {"flushed": 0, "pending": 0}


def test_corrupt_index_surfaces_as_store_error(env):
    storage, _, client, _ = env
    snap = client.post("/sessions/start", json={"user_id": "u1", "instrument": "mbti"}).json()
    rid = _run_to_end(client, snap)["result_id"]
    storage.RESULT_INDEX_PATH.write_text("{", encoding="utf-8")

    again = client.post("/sessions/start", json={"user_id": "u1", "instrument": "mbti"})
    assert again.status_code == 502
    assert client.get("/users/u1/results").status_code == 502
    assert client.get("/instruments", params={"user_id": "u1"}).status_code == 502
    assert storage.load_result(rid)["userId"] == "u1"


def test_result_endpoint_returns_typed_record(env):
    storage, _, client, _ = env
    snap = client.post("/sessions/start", json={"user_id": "u1", "instrument": "papi-kostick"}).json()
    rid = _run_to_end(client, snap)["result_id"]

    body = client.get(f"/results/{rid}", params={"user_id": "u1"}).json()
    assert body["id"] == rid
    assert body["instrument"] == "papi-kostick"
    assert body["headline"] == ", ".join(d["name"] for d in body["resultData"]["dominant"])

    path = storage.RESULTS_DIR / f"{rid}.json"
    raw = json.loads(path.read_text(encoding="utf-8"))
    raw["resultData"]["unexpected"] = 1
    path.write_text(json.dumps(raw), encoding="utf-8")
    assert client.get(f"/results/{rid}", params={"user_id": "u1"}).status_code == 502


def test_finished_sessions_are_capped(env, monkeypatch):
    _, app_module, client, _ = env
    monkeypatch.setattr(app_module, "FINISHED_MAX", 1)
    sids = []
    for inst in ("mbti", "kraepelin"):
        sid = client.post("/sessions/start", json={"user_id": "u1", "instrument": inst}).json()["session_id"]
        client.post(f"/sessions/{sid}/abandon", json={"user_id": "u1"})
        sids.append(sid)

    assert list(app_module.FINISHED) == [sids[1]]
    assert client.get(f"/sessions/{sids[0]}", params={"user_id": "u1"}).status_code == 404
    assert client.get(f"/sessions/{sids[1]}", params={"user_id": "u1"}).json()["state"] == "abandoned"


def test_store_calls_run_off_the_event_loop(env, monkeypatch):
    storage, _, client, _ = env
    seen: list[str] = []
    real = storage.check_prior_attempt

    def spy(user_id, instrument):
        try:
            asyncio.get_running_loop()
            seen.append("loop")
        except RuntimeError:
            seen.append("worker")
        return real(user_id, instrument)

    monkeypatch.setattr(storage, "check_prior_attempt", spy)
    assert client.post("/sessions/start", json={"user_id": "u1", "instrument": "mbti"}).status_code == 200
    assert seen == ["worker"]


def test_loop_scheduler_ticks_in_worker_thread(env):
    _, app_module, _, _ = env

    async def main():
        loop = asyncio.get_running_loop()
        sched = app_module.LoopScheduler(loop)
        fired: list[tuple[str, int]] = []
        done = asyncio.Event()

        def tick(tag: str) -> None:
            fired.append((tag, threading.get_ident()))
            loop.call_soon_threadsafe(done.set)

        sched.call_later(0.2, tick, "dropped").cancel()
        sched.call_later(0.01, tick, "kept")
        await asyncio.wait_for(done.wait(), 2)
        await asyncio.sleep(0.3)
        return fired, threading.get_ident()

    fired, loop_thread = asyncio.run(main())
    assert [tag for tag, _ in fired] == ["kept"]
    assert fired[0][1] != loop_thread
