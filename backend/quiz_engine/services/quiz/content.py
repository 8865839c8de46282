"""Question content sources the selector reads from."""

import logging
from typing import Iterable, List, Optional, Protocol, Sequence

from quiz_engine.models import Question
from .types import QuizQuestion

logger = logging.getLogger(__name__)

POOL_LIMIT = 1500


class ContentRepository(Protocol):
    def fetch_questions(self, locale: str, levels: Sequence[int],
                        exclude_ids: Iterable[int] = ()) -> List[QuizQuestion]:
        ...


class InMemoryContentRepository:
    """Holds a fixed question bank; used by tests and the demo seed."""

    def __init__(self, questions: Optional[Iterable[QuizQuestion]] = None):
        self._questions: List[QuizQuestion] = list(questions or [])

    def add(self, question: QuizQuestion) -> None:
        self._questions.append(question)

    def fetch_questions(self, locale, levels, exclude_ids=()):
        wanted = set(levels)
        excluded = set(exclude_ids or ())
        return [
            q for q in self._questions
            if q.locale == locale and q.level in wanted and q.id not in excluded
        ]


class SqlContentRepository:
    """Reads published questions from the ``question`` table.

    The pool cap applies per level, so a crowded level never hides the
    others. Must be called inside an application context.
    """

    def __init__(self, limit: int = POOL_LIMIT):
        self.limit = limit

    def fetch_questions(self, locale, levels, exclude_ids=()):
        excluded = list(exclude_ids or ())
        pool = []
        for level in sorted(set(levels)):
            query = Question.query.filter(
                Question.locale == locale,
                Question.level == level,
                Question.published.is_(True),
            )
            if excluded:
                query = query.filter(Question.id.notin_(excluded))
            rows = query.order_by(Question.id.asc()).limit(self.limit).all()
            pool.extend(row.to_quiz_question() for row in rows)
        logger.debug('[content] locale=%s levels=%s pool=%d', locale, list(levels), len(pool))
        return pool
