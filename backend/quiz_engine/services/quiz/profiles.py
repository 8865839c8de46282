"""Profile stores: where per-user performance hints come from."""

from collections import defaultdict
from typing import Dict, Optional, Protocol

from . import rules
from .types import PerformanceHints, QuizSession, SessionStatus

WEAK_TOPIC_ACCURACY = 0.5
WEAK_TOPIC_MIN_ANSWERS = 2


class ProfileStore(Protocol):
    def get_recent_performance(self, user_id: str) -> Optional[PerformanceHints]:
        ...


class NullProfileStore:
    def get_recent_performance(self, user_id):
        return None


class InMemoryProfileStore:
    def __init__(self, hints: Optional[Dict[str, PerformanceHints]] = None):
        self._hints = dict(hints or {})

    def set(self, user_id: str, hints: PerformanceHints) -> None:
        self._hints[user_id] = hints

    def get_recent_performance(self, user_id):
        return self._hints.get(user_id)


def hints_from_sessions(sessions) -> PerformanceHints:
    """Build hints from a user's sessions, newest first."""
    recent_topics = []
    recent_answers = []
    recent_ids = []
    topic_results = defaultdict(list)
    for session in sessions:
        for answer in reversed(session.answers):
            if len(recent_topics) < rules.TOPIC_COOLDOWN and answer.topic not in recent_topics:
                recent_topics.append(answer.topic)
            if len(recent_ids) < rules.RECENT_QUESTIONS_BUFFER:
                recent_ids.append(answer.question_id)
            if len(recent_answers) < rules.ADAPTIVE_WINDOW:
                recent_answers.append(answer.is_correct)
            topic_results[answer.topic].append(answer.is_correct)
    weak = sorted(
        topic for topic, results in topic_results.items()
        if len(results) >= WEAK_TOPIC_MIN_ANSWERS
        and sum(results) / len(results) < WEAK_TOPIC_ACCURACY
    )
    return PerformanceHints(
        recent_topics=recent_topics,
        # collected newest first; hints keep the most recent answer last
        recent_answers=list(reversed(recent_answers)),
        weak_topics=weak,
        recent_question_ids=recent_ids,
    )


class SessionHistoryProfileStore:
    """Derives hints from the user's finished sessions in a session store."""

    FINISHED = (SessionStatus.COMPLETED, SessionStatus.ABANDONED, SessionStatus.EXPIRED)

    def __init__(self, store, history: int = 5):
        self.store = store
        self.history = history

    def get_recent_performance(self, user_id):
        if not user_id:
            return None
        sessions = []
        for snapshot in self.store.scan(user_id=user_id):
            session = QuizSession.from_dict(snapshot)
            if session.status in self.FINISHED and session.answers:
                sessions.append(session)
        if not sessions:
            return None
        sessions.sort(key=lambda s: s.last_activity_at, reverse=True)
        return hints_from_sessions(sessions[:self.history])
