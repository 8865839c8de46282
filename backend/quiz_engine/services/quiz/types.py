"""Records shared by the selector, the scoring engine and the session manager.

Everything here is a plain dataclass with explicit fields. Records that end
up inside a session snapshot know how to turn themselves into JSON-ready
dicts and back.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class SessionStatus(str, Enum):
    ACTIVE = 'active'
    PAUSED = 'paused'
    COMPLETED = 'completed'
    ABANDONED = 'abandoned'
    EXPIRED = 'expired'

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ABANDONED, SessionStatus.EXPIRED)


@dataclass(frozen=True, slots=True)
class QuizQuestion:
    id: int
    topic: str
    level: int
    locale: str
    question: str
    options: Tuple[str, str, str, str]
    correct_option: str
    explanation: Optional[str] = None
    image_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'topic': self.topic,
            'level': self.level,
            'locale': self.locale,
            'question': self.question,
            'options': list(self.options),
            'correct_option': self.correct_option,
            'explanation': self.explanation,
            'image_url': self.image_url,
        }

    def to_view(self) -> Dict[str, Any]:
        """Client-facing view: never leaks the correct option."""
        return {
            'id': self.id,
            'question': self.question,
            'option_a': self.options[0],
            'option_b': self.options[1],
            'option_c': self.options[2],
            'option_d': self.options[3],
            'level': self.level,
            'topic': self.topic,
            'locale': self.locale,
            'question_type': 'image' if self.image_url else 'text',
            'image_url': self.image_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QuizQuestion':
        return cls(
            id=int(data['id']),
            topic=data.get('topic') or 'general',
            level=int(data['level']),
            locale=data['locale'],
            question=data.get('question', ''),
            options=tuple(data.get('options') or ('', '', '', '')),
            correct_option=data['correct_option'],
            explanation=data.get('explanation'),
            image_url=data.get('image_url'),
        )


@dataclass(frozen=True, slots=True)
class PhaseConfig:
    phase_number: int
    band: str
    allowed_levels: Tuple[int, ...]
    distribution: Dict[int, int]  # level -> percentage points, sums to 100
    counts: Dict[int, int]        # level -> question count, sums to questions_per_phase
    min_accuracy: float
    description: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'phase_number': self.phase_number,
            'band': self.band,
            'allowed_levels': list(self.allowed_levels),
            'distribution': {str(k): v for k, v in self.distribution.items()},
            'counts': {str(k): v for k, v in self.counts.items()},
            'min_accuracy': self.min_accuracy,
            'description': self.description,
        }


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    base_points: int
    speed_multiplier: float
    speed_bonus: int
    streak_bonus: int
    penalty: int
    total_points: int
    is_correct: bool
    is_timeout: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'base_points': self.base_points,
            'speed_multiplier': self.speed_multiplier,
            'speed_bonus': self.speed_bonus,
            'streak_bonus': self.streak_bonus,
            'penalty': self.penalty,
            'total_points': self.total_points,
            'is_correct': self.is_correct,
            'is_timeout': self.is_timeout,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScoreBreakdown':
        return cls(
            base_points=int(data['base_points']),
            speed_multiplier=float(data['speed_multiplier']),
            speed_bonus=int(data['speed_bonus']),
            streak_bonus=int(data['streak_bonus']),
            penalty=int(data['penalty']),
            total_points=int(data['total_points']),
            is_correct=bool(data['is_correct']),
            is_timeout=bool(data.get('is_timeout', False)),
        )


@dataclass(frozen=True, slots=True)
class AnswerRecord:
    question_id: int
    selected_option: Optional[str]
    correct_option: str
    is_correct: bool
    is_timeout: bool
    time_used_ms: int
    points: int
    breakdown: ScoreBreakdown
    topic: str
    level: int
    answered_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'question_id': self.question_id,
            'selected_option': self.selected_option,
            'correct_option': self.correct_option,
            'is_correct': self.is_correct,
            'is_timeout': self.is_timeout,
            'time_used_ms': self.time_used_ms,
            'points': self.points,
            'breakdown': self.breakdown.to_dict(),
            'topic': self.topic,
            'level': self.level,
            'answered_at': self.answered_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AnswerRecord':
        return cls(
            question_id=int(data['question_id']),
            selected_option=data.get('selected_option'),
            correct_option=data['correct_option'],
            is_correct=bool(data['is_correct']),
            is_timeout=bool(data['is_timeout']),
            time_used_ms=int(data['time_used_ms']),
            points=int(data['points']),
            breakdown=ScoreBreakdown.from_dict(data['breakdown']),
            topic=data.get('topic') or 'general',
            level=int(data['level']),
            answered_at=float(data.get('answered_at') or 0.0),
        )


@dataclass(slots=True)
class PhaseResult:
    phase_number: int
    questions_total: int
    questions_correct: int
    wrong_answers: int
    timeouts: int
    accuracy: float
    total_points: int
    perfect_bonus: int
    final_score: int
    max_score: int
    average_time_ms: int
    fastest_answer_ms: int
    slowest_answer_ms: int
    speed_bonus_total: int
    streak_bonus_total: int
    max_streak: int
    min_accuracy: float
    passed: bool
    grade: str
    is_perfect: bool
    achievements: List[Dict[str, Any]] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'phase_number': self.phase_number,
            'questions_total': self.questions_total,
            'questions_correct': self.questions_correct,
            'wrong_answers': self.wrong_answers,
            'timeouts': self.timeouts,
            'accuracy': self.accuracy,
            'total_points': self.total_points,
            'perfect_bonus': self.perfect_bonus,
            'final_score': self.final_score,
            'max_score': self.max_score,
            'average_time_ms': self.average_time_ms,
            'fastest_answer_ms': self.fastest_answer_ms,
            'slowest_answer_ms': self.slowest_answer_ms,
            'speed_bonus_total': self.speed_bonus_total,
            'streak_bonus_total': self.streak_bonus_total,
            'max_streak': self.max_streak,
            'min_accuracy': self.min_accuracy,
            'passed': self.passed,
            'grade': self.grade,
            'is_perfect': self.is_perfect,
            'achievements': [dict(a) for a in self.achievements],
            'recommendations': list(self.recommendations),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PhaseResult':
        return cls(**{
            **data,
            'achievements': [dict(a) for a in data.get('achievements') or []],
            'recommendations': list(data.get('recommendations') or []),
        })


@dataclass(slots=True)
class PerformanceHints:
    recent_topics: List[str] = field(default_factory=list)      # most recent first
    recent_answers: List[bool] = field(default_factory=list)    # most recent last
    weak_topics: List[str] = field(default_factory=list)
    recent_question_ids: List[int] = field(default_factory=list)

    def merged(self, other: Optional['PerformanceHints']) -> 'PerformanceHints':
        """Combine two hint bundles; entries from ``self`` win on order."""
        if other is None:
            return self

        def _union(first, second):
            out = list(first)
            for item in second:
                if item not in out:
                    out.append(item)
            return out

        return PerformanceHints(
            recent_topics=_union(self.recent_topics, other.recent_topics),
            recent_answers=list(other.recent_answers) + list(self.recent_answers),
            weak_topics=_union(self.weak_topics, other.weak_topics),
            recent_question_ids=_union(self.recent_question_ids, other.recent_question_ids),
        )


@dataclass(slots=True)
class UserContext:
    user_id: Optional[str] = None
    hints: Optional[PerformanceHints] = None


@dataclass(slots=True)
class QuizSession:
    session_id: str
    phase_number: int
    locale: str
    questions: Tuple[QuizQuestion, ...]
    time_per_question_ms: int
    created_at: float
    last_activity_at: float
    question_started_at: float
    user_id: Optional[str] = None
    current_question_index: int = 0
    answers: List[AnswerRecord] = field(default_factory=list)
    score: int = 0
    streak_count: int = 0
    max_streak: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0
    total_time_ms: int = 0
    status: SessionStatus = SessionStatus.ACTIVE
    paused_at: Optional[float] = None
    completed_at: Optional[float] = None
    finish_reason: Optional[str] = None
    result: Optional[PhaseResult] = None

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Optional[QuizQuestion]:
        if self.current_question_index < len(self.questions):
            return self.questions[self.current_question_index]
        return None

    def summary(self) -> Dict[str, Any]:
        answered = len(self.answers)
        total = self.total_questions
        return {
            'session_id': self.session_id,
            'phase_number': self.phase_number,
            'locale': self.locale,
            'status': self.status.value,
            'current_question_index': self.current_question_index,
            'total_questions': total,
            'progress_pct': int(answered * 100 / total) if total else 0,
            'score': self.score,
            'streak_count': self.streak_count,
            'max_streak': self.max_streak,
            'correct_answers': self.correct_answers,
            'incorrect_answers': self.incorrect_answers,
            'total_time_ms': self.total_time_ms,
            'time_per_question_ms': self.time_per_question_ms,
            'is_phase_complete': self.status == SessionStatus.COMPLETED,
            'finish_reason': self.finish_reason,
            'result': self.result.to_dict() if self.result else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'phase_number': self.phase_number,
            'locale': self.locale,
            'user_id': self.user_id,
            'questions': [q.to_dict() for q in self.questions],
            'time_per_question_ms': self.time_per_question_ms,
            'created_at': self.created_at,
            'last_activity_at': self.last_activity_at,
            'question_started_at': self.question_started_at,
            'current_question_index': self.current_question_index,
            'answers': [a.to_dict() for a in self.answers],
            'score': self.score,
            'streak_count': self.streak_count,
            'max_streak': self.max_streak,
            'correct_answers': self.correct_answers,
            'incorrect_answers': self.incorrect_answers,
            'total_time_ms': self.total_time_ms,
            'status': self.status.value,
            'paused_at': self.paused_at,
            'completed_at': self.completed_at,
            'finish_reason': self.finish_reason,
            'result': self.result.to_dict() if self.result else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QuizSession':
        return cls(
            session_id=data['session_id'],
            phase_number=int(data['phase_number']),
            locale=data['locale'],
            user_id=data.get('user_id'),
            questions=tuple(QuizQuestion.from_dict(q) for q in data.get('questions') or []),
            time_per_question_ms=int(data['time_per_question_ms']),
            created_at=float(data['created_at']),
            last_activity_at=float(data['last_activity_at']),
            question_started_at=float(data['question_started_at']),
            current_question_index=int(data.get('current_question_index', 0)),
            answers=[AnswerRecord.from_dict(a) for a in data.get('answers') or []],
            score=int(data.get('score', 0)),
            streak_count=int(data.get('streak_count', 0)),
            max_streak=int(data.get('max_streak', 0)),
            correct_answers=int(data.get('correct_answers', 0)),
            incorrect_answers=int(data.get('incorrect_answers', 0)),
            total_time_ms=int(data.get('total_time_ms', 0)),
            status=SessionStatus(data.get('status', SessionStatus.ACTIVE.value)),
            paused_at=data.get('paused_at'),
            completed_at=data.get('completed_at'),
            finish_reason=data.get('finish_reason'),
            result=PhaseResult.from_dict(data['result']) if data.get('result') else None,
        )


@dataclass(slots=True)
class AnswerOutcome:
    answer: AnswerRecord
    breakdown: ScoreBreakdown
    summary: Dict[str, Any]
    is_complete: bool
    result: Optional[PhaseResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'answer': self.answer.to_dict(),
            'score': self.breakdown.to_dict(),
            'session': self.summary,
            'is_phase_complete': self.is_complete,
            'result': self.result.to_dict() if self.result else None,
        }
