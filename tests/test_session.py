from __future__ import annotations

import random

import pytest

from psych_core import config
from psych_core.errors import (
    AlreadyAttemptedError, DuplicateResultError, IncompleteAnswersError,
    InstrumentUnavailableError, InvalidAnswerError, InvalidTransitionError, PersistenceError,
)
from psych_core.scoring import build_result
from psych_core.session import SessionState
from psych_core.types import Instrument
from tests.conftest import answer_all, build_mbti_questions


def test_start_enters_first_question(make_session, scheduler):
    sess = make_session().start()
    assert sess.state is SessionState.IN_PROGRESS
    assert sess.index == 0
    assert sess.time_remaining == config.QUESTION_TIME_LIMIT
    assert sess.timer.active
    assert sess.snapshot()["question"]["id"] == sess.questions[0].id


def test_start_draws_questions_from_pool(make_session):
    sess = make_session(Instrument.KRAEPELIN, rng=random.Random(4)).start()
    assert len(sess.questions) == config.QUESTIONS_PER_SESSION
    opts = sess.snapshot()["question"]["options"]
    assert [o["value"] for o in opts] == list(range(len(opts)))
    assert all(set(o) == {"text", "value"} for o in opts)


def test_full_run_completes_and_records(make_session, store):
    sess = make_session().start()
    answer_all(sess)
    result = sess.submit()

    assert sess.state is SessionState.COMPLETED
    assert result.payload.type_code == "ESTJ"
    assert store.results[sess.result_id] is result
    assert store.profiles["u1"]["mbti"] == sess.result_id
    assert not sess.timer.active


def test_next_on_last_question_submits(make_session, store):
    sess = make_session().start()
    answer_all(sess)
    sess.next()
    assert sess.state is SessionState.COMPLETED
    assert len(store.results) == 1


def test_timeout_advances_without_answer(make_session, scheduler):
    sess = make_session().start()
    scheduler.advance(config.QUESTION_TIME_LIMIT - 1)
    assert sess.index == 0
    assert sess.time_remaining == 1

    scheduler.advance(1)
    assert sess.index == 1
    assert sess.time_remaining == config.QUESTION_TIME_LIMIT
    assert sess.questions[0].id not in sess.answers


def test_timeout_on_last_question_auto_submits(make_session, scheduler, store):
    sess = make_session().start()
    answer_all(sess)
    scheduler.advance(config.QUESTION_TIME_LIMIT)
    assert sess.state is SessionState.COMPLETED
    assert len(store.results) == 1
    assert scheduler.pending == 0


def test_timeout_on_last_question_with_gaps_keeps_session(make_session, scheduler, store):
    sess = make_session().start()
    for _ in range(len(sess.questions) - 1):
        sess.next()
    scheduler.advance(config.QUESTION_TIME_LIMIT)

    assert sess.state is SessionState.IN_PROGRESS
    assert isinstance(sess.last_error, IncompleteAnswersError)
    assert sess.time_remaining == config.QUESTION_TIME_LIMIT
    assert sess.timer.active
    assert store.results == {}


def test_manual_advance_resets_countdown(make_session, scheduler):
    sess = make_session().start()
    scheduler.advance(0.5)
    sess.next()
    scheduler.advance(0.6)
    assert sess.time_remaining == config.QUESTION_TIME_LIMIT
    scheduler.advance(0.5)
    assert sess.time_remaining == config.QUESTION_TIME_LIMIT - 1


def test_previous_keeps_answers(make_session):
    sess = make_session().start()
    assert sess.previous() is False
    q0 = sess.questions[0]
    sess.answer(q0.id, q0.options[1].code)
    sess.next()
    assert sess.previous() is True
    assert sess.index == 0
    assert sess.snapshot()["current_answer"] == q0.options[1].code


def test_answer_must_target_current_question(make_session):
    sess = make_session().start()
    with pytest.raises(InvalidAnswerError):
        sess.answer(sess.questions[1].id, sess.questions[1].options[0].code)
    with pytest.raises(InvalidAnswerError):
        sess.answer(sess.questions[0].id, "Q")
    assert sess.answers == {}


def test_incomplete_submit_keeps_answers(make_session, store):
    sess = make_session().start()
    q0 = sess.questions[0]
    sess.answer(q0.id, q0.options[0].code)
    with pytest.raises(IncompleteAnswersError) as exc:
        sess.submit()
    assert len(exc.value.missing) == len(sess.questions) - 1
    assert sess.state is SessionState.IN_PROGRESS
    assert sess.answers == {q0.id: q0.options[0].code}
    assert sess.timer.active
    assert store.persist_calls == 0


def test_abandon_never_persists(make_session, scheduler, store):
    sess = make_session().start()
    answer_all(sess)
    sess.abandon()
    assert sess.state is SessionState.ABANDONED
    assert scheduler.pending == 0
    assert store.persist_calls == 0
    with pytest.raises(InvalidTransitionError):
        sess.submit()
    with pytest.raises(InvalidTransitionError):
        sess.tick()


def test_store_failure_then_retry(make_session, store):
    sess = make_session().start()
    answer_all(sess)
    store.fail_persist = 2
    with pytest.raises(PersistenceError):
        sess.submit()
    assert sess.state is SessionState.SUBMITTING
    assert sess.result is not None
    assert store.results == {}
    kept = sess.result

    assert sess.submit() is kept
    assert sess.state is SessionState.COMPLETED
    assert store.persist_calls == 3


def test_single_transient_failure_is_retried(make_session, store):
    sess = make_session().start()
    answer_all(sess)
    store.fail_persist = 1
    sess.submit()
    assert sess.state is SessionState.COMPLETED
    assert store.persist_calls == 2


def test_profile_failure_does_not_undo_result(make_session, store):
    sess = make_session().start()
    answer_all(sess)
    store.fail_project = 2
    sess.submit()
    assert sess.state is SessionState.COMPLETED
    assert sess.result_id in store.results
    assert "u1" not in store.profiles
    assert len(sess.recorder.pending) == 1


def test_already_completed_user_cannot_start(make_session, store):
    qs = build_mbti_questions()
    prior = build_result(Instrument.MBTI, "u1", qs, {q.id: q.options[0].code for q in qs})
    store.persist_result(prior)
    with pytest.raises(AlreadyAttemptedError):
        make_session().start()
    make_session(user_id="u2").start()


def test_concurrent_completion_loses(make_session, store):
    a = make_session().start()
    b = make_session().start()
    answer_all(a)
    answer_all(b)
    a.submit()
    with pytest.raises(DuplicateResultError) as exc:
        b.submit()
    assert exc.value.result_id == a.result_id
    assert b.state is SessionState.ABANDONED
    assert len(store.results) == 1


def test_disabled_instrument(make_session, monkeypatch):
    monkeypatch.setattr(config, "DISABLED_INSTRUMENTS", ("mbti",))
    sess = make_session()
    with pytest.raises(InstrumentUnavailableError):
        sess.start()
    assert sess.state is SessionState.NOT_STARTED


def test_on_change_sees_events(make_session, scheduler):
    events: list[str] = []
    sess = make_session(on_change=lambda s, e: events.append(e)).start()
    q0 = sess.questions[0]
    sess.answer(q0.id, q0.options[0].code)
    scheduler.advance(1)
    sess.next()
    assert events == ["start", "answer", "tick", "next"]
