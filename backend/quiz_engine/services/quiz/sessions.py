"""Session manager: the quiz session state machine.

States: active, paused, completed, abandoned, expired. The last three are
terminal. All mutations of one session go through a per-session lock and
end with a full snapshot written to the session store.
"""

import logging
import threading
import time
import uuid
from typing import Callable, Dict, Iterable, List, Optional

from . import rules, scoring
from .errors import (
    InsufficientQuestionPool,
    InvalidFinishReason,
    NoMoreQuestions,
    SessionExpired,
    SessionNotActive,
    SessionNotFound,
    SessionNotPaused,
)
from .profiles import NullProfileStore
from .types import AnswerOutcome, AnswerRecord, PerformanceHints, QuizSession, SessionStatus, UserContext

logger = logging.getLogger(__name__)

FINISH_REASONS = {
    'abandoned': SessionStatus.ABANDONED,
    'quit': SessionStatus.ABANDONED,
    'completed': SessionStatus.COMPLETED,
}


def generate_session_id() -> str:
    return f"quiz_{uuid.uuid4().hex[:24]}"


class SessionManager:
    def __init__(self, selector, store, profiles=None,
                 clock: Callable[[], float] = time.time,
                 time_per_question_ms: int = rules.TIME_PER_QUESTION_MS,
                 pause_timeout_ms: int = rules.PAUSE_TIMEOUT_MS,
                 session_timeout_sec: int = rules.SESSION_TIMEOUT_SEC,
                 retention_sec: int = rules.SESSION_RETENTION_SEC,
                 grace_ms: int = rules.ANSWER_GRACE_MS):
        self.selector = selector
        self.store = store
        self.profiles = profiles or NullProfileStore()
        self.clock = clock
        self.time_per_question_ms = time_per_question_ms
        self.pause_timeout_ms = pause_timeout_ms
        self.session_timeout_sec = session_timeout_sec
        self.retention_sec = retention_sec
        self.grace_ms = grace_ms
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # --- plumbing ---

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.Lock()
            return lock

    def _load(self, session_id: str) -> QuizSession:
        snapshot = self.store.get(session_id) if session_id else None
        if snapshot is None:
            raise SessionNotFound(f'Session not found or expired: {session_id}', {'session_id': session_id})
        return QuizSession.from_dict(snapshot)

    def _save(self, session: QuizSession) -> None:
        self.store.put(session.session_id, session.to_dict(), self.retention_sec)

    def _expire(self, session: QuizSession, now: float, why: str) -> None:
        session.status = SessionStatus.EXPIRED
        session.finish_reason = why
        session.completed_at = now
        self._save(session)
        logger.info('[session-expired] session=%s reason=%s', session.session_id, why)

    def _expiry_reason(self, session: QuizSession, now: float) -> Optional[str]:
        if session.status.is_terminal:
            return None
        if now - session.last_activity_at > self.session_timeout_sec:
            return 'inactive'
        if session.status == SessionStatus.PAUSED and session.paused_at is not None:
            if (now - session.paused_at) * 1000 > self.pause_timeout_ms:
                return 'pause_timeout'
        return None

    def _check_expiry(self, session: QuizSession, now: float) -> None:
        """Expire a session that is due and tell the caller about it."""
        why = self._expiry_reason(session, now)
        if why is not None:
            self._expire(session, now, why)
        if session.status == SessionStatus.EXPIRED:
            raise SessionExpired('Session has expired', {'session_id': session.session_id,
                                                          'reason': session.finish_reason})

    def _complete(self, session: QuizSession, now: float, reason: str = 'completed') -> None:
        result = scoring.score_phase(session.phase_number, session.answers, session.total_time_ms,
                                     questions_total=session.total_questions)
        session.result = result
        session.score = result.final_score
        session.status = SessionStatus.COMPLETED
        session.completed_at = now
        session.finish_reason = reason
        logger.info('[session-complete] session=%s phase=%s score=%s accuracy=%.2f grade=%s',
                    session.session_id, session.phase_number, result.final_score,
                    result.accuracy, result.grade)

    # --- operations ---

    def create_session(self, phase_number, locale: str, user_context: Optional[UserContext] = None,
                       exclude_ids: Iterable[int] = ()) -> QuizSession:
        phase = rules.validate_phase_number(phase_number)
        locale = rules.validate_locale(locale)
        user_context = user_context or UserContext()

        hints: Optional[PerformanceHints] = user_context.hints
        if user_context.user_id:
            stored = self.profiles.get_recent_performance(user_context.user_id)
            hints = hints.merged(stored) if hints else stored

        excluded = list(exclude_ids or ())
        seen = []
        if hints:
            seen = [qid for qid in hints.recent_question_ids[:rules.RECENT_QUESTIONS_BUFFER]
                    if qid not in excluded]

        recent_topics = hints.recent_topics if hints else ()
        try:
            questions = self.selector.select_phase_questions(
                phase, locale,
                exclude_ids=excluded + seen,
                recent_topics=recent_topics,
                hints=hints,
            )
        except InsufficientQuestionPool:
            if not seen:
                raise
            # Recently seen questions are only avoided while the pool allows it
            logger.info('[session-start] phase=%s locale=%s retrying without %d recently seen questions',
                        phase, locale, len(seen))
            questions = self.selector.select_phase_questions(
                phase, locale,
                exclude_ids=excluded,
                recent_topics=recent_topics,
                hints=hints,
            )
        now = self.clock()
        session = QuizSession(
            session_id=generate_session_id(),
            phase_number=phase,
            locale=locale,
            user_id=user_context.user_id,
            questions=tuple(questions),
            time_per_question_ms=self.time_per_question_ms,
            created_at=now,
            last_activity_at=now,
            question_started_at=now,
        )
        self._save(session)
        logger.info('[session-start] session=%s phase=%s locale=%s questions=%d user=%s',
                    session.session_id, phase, locale, len(questions), user_context.user_id)
        return session

    def get_session(self, session_id: str) -> QuizSession:
        """Load a session.

        The call that notices a session is due for expiry expires it and
        raises ``SessionExpired``; later reads return it with status expired.
        """
        with self._lock_for(session_id):
            session = self._load(session_id)
            now = self.clock()
            why = self._expiry_reason(session, now)
            if why is not None:
                self._expire(session, now, why)
                raise SessionExpired('Session has expired', {'session_id': session_id, 'reason': why})
            return session

    def get_summary(self, session_id: str) -> Dict:
        session = self.get_session(session_id)
        summary = session.summary()
        summary['stats'] = scoring.session_stats(session)
        return summary

    def get_current_question(self, session_id: str) -> Dict:
        with self._lock_for(session_id):
            session = self._load(session_id)
            now = self.clock()
            self._check_expiry(session, now)
            if session.status != SessionStatus.ACTIVE:
                raise SessionNotActive(f'Session is not active. Status: {session.status.value}',
                                       {'session_id': session_id, 'status': session.status.value})
            question = session.current_question
            if question is None:
                raise NoMoreQuestions('No more questions available', {'session_id': session_id})
            elapsed_ms = (now - session.question_started_at) * 1000
            return {
                'session_id': session_id,
                'question_index': session.current_question_index + 1,
                'total_questions': session.total_questions,
                'question': question.to_view(),
                'time_remaining_ms': max(0, int(session.time_per_question_ms - elapsed_ms)),
                'time_per_question_ms': session.time_per_question_ms,
                'current_score': session.score,
                'current_streak': session.streak_count,
            }

    def submit_answer(self, session_id: str, selected_option: Optional[str], time_used_ms,
                      is_timeout: bool = False) -> AnswerOutcome:
        with self._lock_for(session_id):
            session = self._load(session_id)
            now = self.clock()
            self._check_expiry(session, now)
            if session.status != SessionStatus.ACTIVE:
                raise SessionNotActive(f'Session is not active. Status: {session.status.value}',
                                       {'session_id': session_id, 'status': session.status.value})
            question = session.current_question
            if question is None:
                raise NoMoreQuestions('No more questions available', {'session_id': session_id})

            if is_timeout and time_used_ms is None:
                time_used_ms = session.time_per_question_ms
            time_used = rules.validate_time_used(time_used_ms, session.time_per_question_ms)
            option = None if is_timeout else rules.normalize_option(selected_option)

            # Late answers are timeouts no matter what the client says
            observed_ms = (now - session.question_started_at) * 1000
            if not is_timeout and observed_ms > session.time_per_question_ms + self.grace_ms:
                logger.info('[answer-late] session=%s observed_ms=%d', session_id, observed_ms)
                is_timeout = True
                option = None

            is_correct = not is_timeout and option == question.correct_option
            breakdown = scoring.score_answer(
                level=question.level,
                time_remaining_ms=session.time_per_question_ms - time_used,
                is_correct=is_correct,
                streak_before=session.streak_count,
                is_timeout=is_timeout,
            )
            answer = AnswerRecord(
                question_id=question.id,
                selected_option=option,
                correct_option=question.correct_option,
                is_correct=is_correct,
                is_timeout=is_timeout,
                time_used_ms=time_used,
                points=breakdown.total_points,
                breakdown=breakdown,
                topic=question.topic,
                level=question.level,
                answered_at=now,
            )

            if is_correct:
                session.streak_count += 1
                session.correct_answers += 1
                session.max_streak = max(session.max_streak, session.streak_count)
            else:
                session.streak_count = 0
                session.incorrect_answers += 1
            session.answers.append(answer)
            session.score += breakdown.total_points
            session.total_time_ms += time_used
            session.current_question_index += 1
            session.last_activity_at = now
            session.question_started_at = now

            is_complete = session.current_question_index >= session.total_questions
            if is_complete:
                self._complete(session, now)
            self._save(session)
            logger.info('[answer] session=%s index=%d/%d correct=%s points=%d score=%d streak=%d',
                        session_id, session.current_question_index, session.total_questions,
                        is_correct, breakdown.total_points, session.score, session.streak_count)
            return AnswerOutcome(
                answer=answer,
                breakdown=breakdown,
                summary=session.summary(),
                is_complete=is_complete,
                result=session.result,
            )

    def pause_session(self, session_id: str) -> QuizSession:
        with self._lock_for(session_id):
            session = self._load(session_id)
            now = self.clock()
            self._check_expiry(session, now)
            if session.status != SessionStatus.ACTIVE:
                raise SessionNotActive(f'Cannot pause session with status: {session.status.value}',
                                       {'session_id': session_id, 'status': session.status.value})
            session.status = SessionStatus.PAUSED
            session.paused_at = now
            session.last_activity_at = now
            self._save(session)
            logger.info('[session-pause] session=%s', session_id)
            return session

    def resume_session(self, session_id: str) -> QuizSession:
        with self._lock_for(session_id):
            session = self._load(session_id)
            now = self.clock()
            self._check_expiry(session, now)
            if session.status != SessionStatus.PAUSED:
                raise SessionNotPaused('Session is not paused',
                                       {'session_id': session_id, 'status': session.status.value})
            session.status = SessionStatus.ACTIVE
            session.paused_at = None
            session.last_activity_at = now
            session.question_started_at = now
            self._save(session)
            logger.info('[session-resume] session=%s', session_id)
            return session

    def finish_session(self, session_id: str, reason: str = 'abandoned') -> QuizSession:
        target = FINISH_REASONS.get((reason or '').lower())
        if target is None:
            raise InvalidFinishReason(
                f"Finish reason must be one of: {', '.join(sorted(FINISH_REASONS))}",
                {'field': 'reason', 'value': reason},
            )
        with self._lock_for(session_id):
            session = self._load(session_id)
            now = self.clock()
            self._check_expiry(session, now)
            if session.status.is_terminal:
                raise SessionNotActive(f'Session already finished. Status: {session.status.value}',
                                       {'session_id': session_id, 'status': session.status.value})
            if target == SessionStatus.COMPLETED:
                self._complete(session, now, reason='finished_early')
            else:
                session.status = SessionStatus.ABANDONED
                session.finish_reason = 'abandoned'
                session.completed_at = now
            session.paused_at = None
            session.last_activity_at = now
            self._save(session)
            logger.info('[session-finish] session=%s status=%s', session_id, session.status.value)
            return session

    def sweep_expired(self, now: Optional[float] = None) -> List[str]:
        """Expire idle sessions and evict snapshots past retention."""
        now = self.clock() if now is None else now
        expired = []
        for snapshot in list(self.store.scan()):
            session_id = snapshot.get('session_id')
            with self._lock_for(session_id):
                current = self.store.get(session_id)
                if current is None:
                    continue
                session = QuizSession.from_dict(current)
                why = self._expiry_reason(session, now)
                if why is None:
                    continue
                self._expire(session, now, why)
                expired.append(session_id)
        evicted = self.store.sweep()
        with self._locks_guard:
            for session_id in [sid for sid in self._locks if self.store.get(sid) is None]:
                self._locks.pop(session_id, None)
        if expired or evicted:
            logger.info('[sweep] expired=%d evicted=%d', len(expired), evicted)
        return expired
