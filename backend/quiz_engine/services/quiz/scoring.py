"""Scoring engine: per-answer points and the phase summary built from them."""

import math
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from . import rules
from .types import AnswerRecord, PhaseResult, QuizSession, ScoreBreakdown


def _round(value: float) -> int:
    # Half-up, so 2.5 -> 3 the way client-side Math.round does
    return int(math.floor(value + 0.5))


def speed_multiplier(time_remaining_ms: float) -> float:
    for threshold, multiplier in rules.SPEED_TIERS:
        if time_remaining_ms >= threshold:
            return multiplier
    return 1.0


def streak_bonus(streak: int) -> int:
    if streak < rules.STREAK_THRESHOLD:
        return 0
    return min(streak * rules.STREAK_POINTS, rules.STREAK_CAP)


def perfect_bonus(total_points: int) -> int:
    return _round(total_points * (rules.PERFECT_BONUS_MULTIPLIER - 1.0))


def grade_for(accuracy: float) -> str:
    for threshold, grade in rules.GRADE_BANDS:
        if accuracy >= threshold:
            return grade
    return rules.FAILING_GRADE


def score_answer(level: int, time_remaining_ms: float, is_correct: bool,
                 streak_before: int = 0, is_timeout: bool = False) -> ScoreBreakdown:
    """Score one answer.

    Wrong answers and timeouts earn only their fixed penalty. A correct
    answer earns ``round(base * speed multiplier)`` plus the streak bonus for
    the streak this answer completes (``streak_before + 1``).
    """
    if is_timeout or not is_correct:
        penalty = rules.TIMEOUT_PENALTY if is_timeout else rules.WRONG_ANSWER_PENALTY
        return ScoreBreakdown(
            base_points=0,
            speed_multiplier=1.0,
            speed_bonus=0,
            streak_bonus=0,
            penalty=penalty,
            total_points=penalty,
            is_correct=False,
            is_timeout=is_timeout,
        )

    base = rules.BASE_POINTS[level]
    multiplier = speed_multiplier(max(0, time_remaining_ms))
    with_speed = _round(base * multiplier)
    bonus = streak_bonus(streak_before + 1)
    return ScoreBreakdown(
        base_points=base,
        speed_multiplier=multiplier,
        speed_bonus=with_speed - base,
        streak_bonus=bonus,
        penalty=0,
        total_points=with_speed + bonus,
        is_correct=True,
        is_timeout=False,
    )


def current_streak(answers: Sequence[AnswerRecord]) -> int:
    streak = 0
    for answer in reversed(answers):
        if not answer.is_correct:
            break
        streak += 1
    return streak


def max_streak(answers: Sequence[AnswerRecord]) -> int:
    best = run = 0
    for answer in answers:
        run = run + 1 if answer.is_correct else 0
        best = max(best, run)
    return best


def average_time(answers: Sequence[AnswerRecord]) -> int:
    times = [a.time_used_ms for a in answers if a.time_used_ms > 0]
    if not times:
        return 0
    return _round(sum(times) / len(times))


def _achievements(is_perfect: bool, average_ms: int, answered: int, best_streak: int,
                  answers: Sequence[AnswerRecord]) -> List[Dict]:
    found = []

    def _add(key, **extra):
        meta = rules.ACHIEVEMENTS[key]
        found.append({'key': key, 'name': meta['name'], 'points': meta['points'], **extra})

    if is_perfect:
        _add('perfectionist')
    if answered and average_ms < rules.FAST_AVERAGE_MS:
        _add('speed_demon')
    if best_streak >= rules.STREAK_MASTER_MIN:
        _add('streak_master')

    by_topic = defaultdict(list)
    for answer in answers:
        by_topic[answer.topic].append(answer.is_correct)
    for topic in sorted(by_topic):
        results = by_topic[topic]
        if len(results) >= rules.TOPIC_MASTERY_MIN and all(results):
            _add('topic_expert', topic=topic)
    return found


def score_phase(phase_number: int, answers: Sequence[AnswerRecord], total_time_ms: int,
                questions_total: Optional[int] = None) -> PhaseResult:
    """Aggregate a finished phase into a ``PhaseResult``.

    ``questions_total`` defaults to the number of answers; a session that was
    finished early passes its planned question count instead.
    """
    total = len(answers) if questions_total is None else questions_total
    correct = sum(1 for a in answers if a.is_correct)
    timeouts = sum(1 for a in answers if a.is_timeout)
    wrong = sum(1 for a in answers if not a.is_correct and not a.is_timeout)
    accuracy = correct / total if total else 0.0

    total_points = sum(a.points for a in answers)
    is_perfect = total > 0 and correct == total and total >= rules.PERFECT_MIN_QUESTIONS
    bonus = perfect_bonus(total_points) if is_perfect else 0

    times = [a.time_used_ms for a in answers if a.time_used_ms > 0]
    if answers:
        average_ms = _round(total_time_ms / len(answers))
    else:
        average_ms = 0
    best_streak = max_streak(answers)
    min_accuracy = rules.get_minimum_accuracy(phase_number)
    speed_total = sum(a.breakdown.speed_bonus for a in answers)
    streak_total = sum(a.breakdown.streak_bonus for a in answers)

    recommendations = []
    if accuracy < min_accuracy:
        recommendations.append('Practice more questions to improve your accuracy')
    if average_ms > rules.SLOW_AVERAGE_MS:
        recommendations.append('Try to answer faster to earn speed bonuses')
    if streak_total == 0 and correct > 0:
        recommendations.append('Build longer streaks to earn bonus points')
    if timeouts > 0:
        recommendations.append('Manage your time better to avoid timeouts')

    return PhaseResult(
        phase_number=phase_number,
        questions_total=total,
        questions_correct=correct,
        wrong_answers=wrong,
        timeouts=timeouts,
        accuracy=round(accuracy, 2),
        total_points=total_points,
        perfect_bonus=bonus,
        final_score=total_points + bonus,
        max_score=total * rules.BASE_POINTS[max(rules.LEVELS)],
        average_time_ms=average_ms,
        fastest_answer_ms=min(times) if times else 0,
        slowest_answer_ms=max(times) if times else 0,
        speed_bonus_total=speed_total,
        streak_bonus_total=streak_total,
        max_streak=best_streak,
        min_accuracy=min_accuracy,
        passed=accuracy >= min_accuracy,
        grade=grade_for(accuracy),
        is_perfect=is_perfect,
        achievements=_achievements(is_perfect, average_ms, len(answers), best_streak, answers),
        recommendations=recommendations,
    )


def session_stats(session: QuizSession) -> Dict:
    """Progress and performance figures for an in-flight session."""
    answers = session.answers
    answered = len(answers)
    correct = sum(1 for a in answers if a.is_correct)
    total = session.total_questions
    return {
        'progress': {
            'current_question': min(session.current_question_index + 1, total),
            'total_questions': total,
            'percentage': _round(answered * 100 / total) if total else 0,
        },
        'performance': {
            'accuracy': round(correct / answered, 2) if answered else 0.0,
            'average_time_ms': average_time(answers),
            'current_streak': current_streak(answers),
            'max_streak': max_streak(answers),
            'correct_answers': correct,
            'wrong_answers': answered - correct,
        },
        'score': {
            'total': session.score,
            'average': _round(session.score / answered) if answered else 0,
        },
    }
