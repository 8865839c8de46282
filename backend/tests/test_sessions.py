import random
import threading
from collections import Counter

import pytest

from quiz_engine.services.quiz import rules
from quiz_engine.services.quiz.errors import (
    InsufficientQuestionPool,
    InvalidFinishReason,
    InvalidOption,
    InvalidTimeUsed,
    SessionExpired,
    SessionNotActive,
    SessionNotFound,
    SessionNotPaused,
)
from quiz_engine.services.quiz.content import InMemoryContentRepository
from quiz_engine.services.quiz.profiles import SessionHistoryProfileStore
from quiz_engine.services.quiz.selector import QuestionSelector
from quiz_engine.services.quiz.sessions import SessionManager
from quiz_engine.services.quiz.types import SessionStatus, UserContext

from conftest import make_bank


def _wrong(option):
    return next(o for o in rules.OPTIONS if o != option)


def _answer(manager, session_id, correct=True, time_used_ms=5000):
    session = manager.get_session(session_id)
    expected = session.current_question.correct_option
    option = expected if correct else _wrong(expected)
    return manager.submit_answer(session_id, option, time_used_ms)


def test_new_session_starts_active(manager, store):
    session = manager.create_session(1, 'en')
    assert session.session_id.startswith('quiz_')
    assert session.status == SessionStatus.ACTIVE
    assert session.total_questions == rules.QUESTIONS_PER_PHASE
    assert session.current_question_index == 0
    assert session.score == 0
    assert store.get(session.session_id)['status'] == 'active'


def test_perfect_phase_end_to_end(manager):
    session = manager.create_session(1, 'en')
    outcomes = [_answer(manager, session.session_id) for _ in range(10)]

    assert [o.breakdown.total_points for o in outcomes[:3]] == [20, 20, 35]
    assert all(not o.is_complete for o in outcomes[:-1])
    last = outcomes[-1]
    assert last.is_complete is True
    assert last.result.total_points == 460
    assert last.result.perfect_bonus == 230
    assert last.result.final_score == 690
    assert last.result.final_score > 10 * 20

    finished = manager.get_session(session.session_id)
    assert finished.status == SessionStatus.COMPLETED
    assert finished.score == 690
    assert finished.max_streak == 10
    assert finished.correct_answers == 10
    assert finished.current_question_index == finished.total_questions
    assert finished.finish_reason == 'completed'


def test_counters_stay_consistent(manager):
    session = manager.create_session(1, 'en')
    sid = session.session_id
    _answer(manager, sid)
    _answer(manager, sid, correct=False)
    manager.submit_answer(sid, None, None, is_timeout=True)
    _answer(manager, sid)

    current = manager.get_session(sid)
    assert current.current_question_index == len(current.answers) == 4
    assert current.correct_answers == 2
    assert current.incorrect_answers == 2
    assert current.correct_answers + current.incorrect_answers == current.current_question_index
    assert current.score == sum(a.points for a in current.answers) == 20 - 5 - 10 + 20
    assert current.streak_count == 1
    assert current.max_streak == 1

    timeout = current.answers[2]
    assert timeout.is_timeout is True
    assert timeout.selected_option is None
    assert timeout.time_used_ms == rules.TIME_PER_QUESTION_MS
    assert timeout.points == rules.TIMEOUT_PENALTY


def test_invalid_answers_do_not_change_the_session(manager):
    sid = manager.create_session(1, 'en').session_id
    before = manager.get_session(sid).to_dict()

    with pytest.raises(InvalidOption):
        manager.submit_answer(sid, 'E', 5000)
    with pytest.raises(InvalidOption):
        manager.submit_answer(sid, None, 5000)
    with pytest.raises(InvalidTimeUsed):
        manager.submit_answer(sid, 'A', -1)
    with pytest.raises(InvalidTimeUsed):
        manager.submit_answer(sid, 'A', rules.TIME_PER_QUESTION_MS + 1)

    assert manager.get_session(sid).to_dict() == before


def test_answering_a_completed_session_is_rejected(manager):
    sid = manager.create_session(1, 'en').session_id
    for _ in range(10):
        _answer(manager, sid)
    before = manager.get_session(sid).to_dict()

    with pytest.raises(SessionNotActive):
        manager.submit_answer(sid, 'A', 1000)
    with pytest.raises(SessionNotActive):
        manager.get_current_question(sid)
    assert manager.get_session(sid).to_dict() == before


def test_current_question_hides_the_answer(manager, clock):
    sid = manager.create_session(1, 'en').session_id
    view = manager.get_current_question(sid)
    assert view['question_index'] == 1
    assert view['total_questions'] == 10
    assert view['time_remaining_ms'] == rules.TIME_PER_QUESTION_MS
    assert 'correct_option' not in view['question']
    assert {'option_a', 'option_b', 'option_c', 'option_d'} <= set(view['question'])

    clock.advance(10)
    assert manager.get_current_question(sid)['time_remaining_ms'] == 20000
    clock.advance(40)
    assert manager.get_current_question(sid)['time_remaining_ms'] == 0


def test_late_answer_becomes_timeout(manager, clock):
    sid = manager.create_session(1, 'en').session_id
    clock.advance(33)
    outcome = _answer(manager, sid)
    assert outcome.answer.is_timeout is True
    assert outcome.answer.is_correct is False
    assert outcome.breakdown.total_points == rules.TIMEOUT_PENALTY


def test_answer_within_grace_is_accepted(manager, clock):
    sid = manager.create_session(1, 'en').session_id
    clock.advance(31)
    outcome = _answer(manager, sid, time_used_ms=29000)
    assert outcome.answer.is_correct is True
    assert outcome.breakdown.total_points == 10


def test_pause_and_resume(manager, clock):
    sid = manager.create_session(1, 'en').session_id
    _answer(manager, sid)

    paused = manager.pause_session(sid)
    assert paused.status == SessionStatus.PAUSED
    assert paused.paused_at == clock()
    with pytest.raises(SessionNotActive):
        manager.submit_answer(sid, 'A', 1000)
    with pytest.raises(SessionNotActive):
        manager.pause_session(sid)

    clock.advance(120)
    resumed = manager.resume_session(sid)
    assert resumed.status == SessionStatus.ACTIVE
    assert resumed.paused_at is None
    # the question clock restarts on resume
    assert manager.get_current_question(sid)['time_remaining_ms'] == rules.TIME_PER_QUESTION_MS
    assert resumed.current_question_index == 1

    with pytest.raises(SessionNotPaused):
        manager.resume_session(sid)


def test_pause_timeout_expires_the_session(manager, clock):
    sid = manager.create_session(1, 'en').session_id
    manager.pause_session(sid)
    clock.advance(rules.PAUSE_TIMEOUT_MS / 1000 + 1)

    with pytest.raises(SessionExpired) as info:
        manager.resume_session(sid)
    assert isinstance(info.value, SessionNotActive)
    assert info.value.status_code == 410

    expired = manager.get_session(sid)
    assert expired.status == SessionStatus.EXPIRED
    assert expired.finish_reason == 'pause_timeout'


def test_inactive_session_expires(manager, clock):
    sid = manager.create_session(1, 'en').session_id
    clock.advance(rules.SESSION_TIMEOUT_SEC + 1)
    with pytest.raises(SessionExpired):
        manager.submit_answer(sid, 'A', 5000)
    assert manager.get_session(sid).finish_reason == 'inactive'


def test_first_read_of_an_idle_session_reports_expiry(manager, clock):
    sid = manager.create_session(1, 'en').session_id
    clock.advance(rules.SESSION_TIMEOUT_SEC + 1)

    with pytest.raises(SessionExpired) as info:
        manager.get_session(sid)
    assert info.value.details['reason'] == 'inactive'

    # the transition is stored, later reads see it without raising
    expired = manager.get_session(sid)
    assert expired.status == SessionStatus.EXPIRED
    assert manager.get_summary(sid)['status'] == 'expired'
    with pytest.raises(SessionExpired):
        manager.submit_answer(sid, 'A', 5000)


def test_first_summary_of_an_idle_session_reports_expiry(manager, clock):
    sid = manager.create_session(1, 'en').session_id
    clock.advance(rules.SESSION_TIMEOUT_SEC + 1)
    with pytest.raises(SessionExpired):
        manager.get_summary(sid)
    assert manager.get_summary(sid)['finish_reason'] == 'inactive'


def test_sweep_expires_idle_sessions_and_evicts_old_ones(manager, clock):
    stale = manager.create_session(1, 'en').session_id
    clock.advance(3000)
    fresh = manager.create_session(2, 'en').session_id
    clock.advance(700)

    assert manager.sweep_expired() == [stale]
    assert manager.get_session(stale).status == SessionStatus.EXPIRED
    assert manager.get_session(fresh).status == SessionStatus.ACTIVE

    clock.advance(rules.SESSION_RETENTION_SEC + 1)
    manager.sweep_expired()
    with pytest.raises(SessionNotFound):
        manager.get_session(stale)
    with pytest.raises(SessionNotFound):
        manager.get_session(fresh)


def test_abandon(manager):
    sid = manager.create_session(1, 'en').session_id
    _answer(manager, sid)
    finished = manager.finish_session(sid, 'quit')
    assert finished.status == SessionStatus.ABANDONED
    assert finished.finish_reason == 'abandoned'
    assert finished.result is None

    with pytest.raises(SessionNotActive):
        _answer(manager, sid)
    with pytest.raises(SessionNotActive):
        manager.finish_session(sid)


def test_abandon_from_pause(manager):
    sid = manager.create_session(1, 'en').session_id
    manager.pause_session(sid)
    finished = manager.finish_session(sid)
    assert finished.status == SessionStatus.ABANDONED
    assert finished.paused_at is None


def test_finish_early_scores_against_the_full_phase(manager):
    sid = manager.create_session(1, 'en').session_id
    for _ in range(3):
        _answer(manager, sid)
    finished = manager.finish_session(sid, 'completed')
    assert finished.status == SessionStatus.COMPLETED
    assert finished.finish_reason == 'finished_early'
    assert finished.result.questions_total == 10
    assert finished.result.accuracy == 0.3
    assert finished.result.passed is False
    assert finished.result.perfect_bonus == 0
    assert finished.score == finished.result.final_score == 20 + 20 + 35


def test_invalid_finish_reason(manager):
    sid = manager.create_session(1, 'en').session_id
    with pytest.raises(InvalidFinishReason):
        manager.finish_session(sid, 'bored')
    assert manager.get_session(sid).status == SessionStatus.ACTIVE


def test_unknown_session(manager):
    with pytest.raises(SessionNotFound):
        manager.get_session('quiz_missing')
    with pytest.raises(SessionNotFound):
        manager.submit_answer('quiz_missing', 'A', 1000)
    with pytest.raises(SessionNotFound):
        manager.pause_session('')


def test_summary_includes_stats(manager):
    sid = manager.create_session(1, 'en').session_id
    _answer(manager, sid)
    _answer(manager, sid, correct=False)
    summary = manager.get_summary(sid)
    assert summary['progress_pct'] == 20
    assert summary['is_phase_complete'] is False
    assert summary['stats']['progress'] == {'current_question': 3, 'total_questions': 10, 'percentage': 20}
    assert summary['stats']['performance']['accuracy'] == 0.5
    assert summary['stats']['performance']['max_streak'] == 1


def test_session_survives_a_new_manager(manager, store, clock):
    sid = manager.create_session(1, 'en').session_id
    _answer(manager, sid)
    other = SessionManager(manager.selector, store, clock=clock)
    _answer(other, sid)
    assert other.get_session(sid).current_question_index == 2
    assert manager.get_session(sid).current_question_index == 2


def test_concurrent_answers_are_serialized(manager):
    sid = manager.create_session(1, 'en').session_id
    errors = []

    def worker():
        try:
            manager.submit_answer(sid, 'A', 5000)
        except Exception as exc:  # pragma: no cover
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    session = manager.get_session(sid)
    assert session.current_question_index == len(session.answers) == 10
    assert [a.question_id for a in session.answers] == [q.id for q in session.questions]
    assert session.status == SessionStatus.COMPLETED


def test_recent_questions_are_excluded_for_returning_users(manager):
    user = UserContext(user_id='u1')
    first = manager.create_session(1, 'en', user)
    for _ in range(10):
        _answer(manager, first.session_id)

    second = manager.create_session(1, 'en', UserContext(user_id='u1'))
    assert not {q.id for q in first.questions} & {q.id for q in second.questions}

    # a strong recent run nudges the next phase toward harder questions
    harder = manager.create_session(5, 'en', UserContext(user_id='u1'))
    assert dict(Counter(q.level for q in harder.questions)) == {1: 7, 2: 3}

    anonymous = manager.create_session(5, 'en')
    assert dict(Counter(q.level for q in anonymous.questions)) == {1: 8, 2: 2}


def test_returning_user_can_replay_a_small_phase(store, clock):
    # one level, 24 questions: two plays leave only 4 unseen
    selector = QuestionSelector(InMemoryContentRepository(make_bank(levels=(1,))), rng=random.Random(5))
    manager = SessionManager(selector, store, profiles=SessionHistoryProfileStore(store), clock=clock)

    played = []
    for _ in range(3):
        session = manager.create_session(1, 'en', UserContext(user_id='u1'))
        assert session.total_questions == rules.QUESTIONS_PER_PHASE
        for _ in range(10):
            _answer(manager, session.session_id)
        played.append({q.id for q in session.questions})

    assert not played[0] & played[1]
    assert len(played[2]) == rules.QUESTIONS_PER_PHASE


def test_caller_exclusions_stay_hard(store, clock):
    bank = make_bank(levels=(1,))
    selector = QuestionSelector(InMemoryContentRepository(bank), rng=random.Random(5))
    manager = SessionManager(selector, store, profiles=SessionHistoryProfileStore(store), clock=clock)
    excluded = [q.id for q in bank[:15]]
    with pytest.raises(InsufficientQuestionPool):
        manager.create_session(1, 'en', exclude_ids=excluded)
