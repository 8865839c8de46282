"""Game rules: static tables and the pure helpers derived from them."""

import math
from typing import Dict, List, Optional, Tuple

from .errors import InvalidOption, InvalidPhase, InvalidTimeUsed, UnsupportedLocale
from .types import PhaseConfig

# --- general ---
QUESTIONS_PER_PHASE = 10
TIME_PER_QUESTION_MS = 30000
MIN_PHASE = 1
MAX_PHASE = 50
SUPPORTED_LOCALES = ('en', 'pt', 'es', 'fr')
DEFAULT_LOCALE = 'en'
OPTIONS = ('A', 'B', 'C', 'D')
LEVELS = (1, 2, 3, 4, 5)

# --- scoring ---
BASE_POINTS = {1: 10, 2: 20, 3: 30, 4: 40, 5: 50}
# (minimum time remaining in ms, multiplier), evaluated top-down
SPEED_TIERS: Tuple[Tuple[int, float], ...] = (
    (20000, 2.0),
    (15000, 1.5),
    (10000, 1.2),
    (0, 1.0),
)
STREAK_THRESHOLD = 3
STREAK_POINTS = 5
STREAK_CAP = 50
WRONG_ANSWER_PENALTY = -5
TIMEOUT_PENALTY = -10
PERFECT_BONUS_MULTIPLIER = 1.5
PERFECT_MIN_QUESTIONS = 5
GRADE_BANDS: Tuple[Tuple[float, str], ...] = (
    (0.95, 'A+'),
    (0.85, 'A'),
    (0.75, 'B'),
    (0.65, 'C'),
    (0.50, 'D'),
)
FAILING_GRADE = 'F'

# --- achievements (informational) ---
ACHIEVEMENTS = {
    'perfectionist': {'name': 'Perfectionist', 'points': 100},
    'speed_demon': {'name': 'Speed Demon', 'points': 75},
    'streak_master': {'name': 'Streak Master', 'points': 150},
    'topic_expert': {'name': 'Topic Expert', 'points': 200},
}
FAST_AVERAGE_MS = 10000
STREAK_MASTER_MIN = 10
TOPIC_MASTERY_MIN = 3
SLOW_AVERAGE_MS = 25000

# --- timing ---
PAUSE_TIMEOUT_MS = 300000
SESSION_TIMEOUT_SEC = 3600
SESSION_RETENTION_SEC = 6 * 60 * 60
ANSWER_GRACE_MS = 2000

# --- selection ---
MAX_TOPIC_PER_PHASE = 3
MAX_SAME_TOPIC_IN_ROW = 2
TOPIC_COOLDOWN = 3
COOLDOWN_PENALTY = 0.5
WEAK_TOPIC_BOOST = 0.25
TOPIC_REPEAT_PENALTY = 0.1
SELECTION_JITTER = 0.1
RECENT_QUESTIONS_BUFFER = 20
ADAPTIVE_WINDOW = 5
ADAPTIVE_HIGH_ACCURACY = 0.8
ADAPTIVE_LOW_ACCURACY = 0.4
ADAPTIVE_SHIFT_PCT = 10

# Phase bands: allowed level range and pass threshold
PHASE_BANDS = (
    {'band': 'beginner', 'range': (1, 10), 'levels': (1, 2), 'min_accuracy': 0.6,
     'description': 'Basic astronomy concepts'},
    {'band': 'novice', 'range': (11, 20), 'levels': (1, 2, 3), 'min_accuracy': 0.65,
     'description': 'Introduction to intermediate concepts'},
    {'band': 'intermediate', 'range': (21, 30), 'levels': (2, 3, 4), 'min_accuracy': 0.7,
     'description': 'Intermediate astronomy and astrophysics'},
    {'band': 'advanced', 'range': (31, 40), 'levels': (3, 4, 5), 'min_accuracy': 0.75,
     'description': 'Advanced astrophysics and cosmology'},
    {'band': 'elite', 'range': (41, 50), 'levels': (4, 5), 'min_accuracy': 0.85,
     'description': 'Elite challenges and cutting-edge astronomy'},
)

# (last phase of the range, level -> percentage points)
DISTRIBUTION_TABLE: Tuple[Tuple[int, Dict[int, int]], ...] = (
    (3, {1: 100}),
    (7, {1: 80, 2: 20}),
    (10, {1: 60, 2: 40}),
    (15, {2: 50, 3: 50}),
    (20, {2: 30, 3: 70}),
    (25, {3: 60, 4: 40}),
    (30, {3: 50, 4: 50}),
    (35, {3: 30, 4: 70}),
    (40, {4: 60, 5: 40}),
    (45, {4: 50, 5: 50}),
    (50, {5: 100}),
)


def validate_phase_number(phase_number) -> int:
    if phase_number is None or isinstance(phase_number, bool):
        raise InvalidPhase('Phase number is required', {'field': 'phase_number'})
    try:
        num = int(phase_number)
    except (TypeError, ValueError):
        raise InvalidPhase('Phase number must be an integer', {'field': 'phase_number'})
    if num != phase_number and str(num) != str(phase_number).strip():
        raise InvalidPhase('Phase number must be an integer', {'field': 'phase_number'})
    if num < MIN_PHASE or num > MAX_PHASE:
        raise InvalidPhase(
            f'Phase number must be between {MIN_PHASE} and {MAX_PHASE}',
            {'field': 'phase_number', 'value': num},
        )
    return num


def validate_locale(locale) -> str:
    if not locale:
        raise UnsupportedLocale('Locale is required', {'field': 'locale'})
    if locale not in SUPPORTED_LOCALES:
        raise UnsupportedLocale(
            f"Invalid locale. Supported: {', '.join(SUPPORTED_LOCALES)}",
            {'field': 'locale', 'value': locale},
        )
    return locale


def normalize_option(option) -> str:
    if not option or not isinstance(option, str):
        raise InvalidOption('selected_option is required', {'field': 'selected_option'})
    value = option.strip().upper()
    if value not in OPTIONS:
        raise InvalidOption(
            f"selected_option must be one of: {', '.join(OPTIONS)}",
            {'field': 'selected_option', 'value': option},
        )
    return value


def validate_time_used(time_used_ms, limit_ms: int = TIME_PER_QUESTION_MS) -> int:
    if time_used_ms is None or isinstance(time_used_ms, bool):
        raise InvalidTimeUsed('time_used_ms is required', {'field': 'time_used_ms'})
    try:
        value = float(time_used_ms)
    except (TypeError, ValueError):
        raise InvalidTimeUsed('time_used_ms must be a number', {'field': 'time_used_ms'})
    if not math.isfinite(value):
        raise InvalidTimeUsed('time_used_ms must be a finite number', {'field': 'time_used_ms'})
    if value < 0:
        raise InvalidTimeUsed('time_used_ms cannot be negative', {'field': 'time_used_ms'})
    if value > limit_ms:
        raise InvalidTimeUsed(
            f'time_used_ms cannot exceed {limit_ms}ms',
            {'field': 'time_used_ms', 'value': value},
        )
    return int(value)


def largest_remainder(percentages: Dict[int, int], total: int) -> Dict[int, int]:
    """Turn level -> percentage points into exact counts summing to ``total``.

    Each level gets ``floor(total * pct / 100)``; leftover units go to the
    largest fractional remainders, lower level first on ties.
    """
    weight = sum(percentages.values())
    if weight <= 0:
        return {level: 0 for level in percentages}
    counts = {}
    remainders = []
    for level in sorted(percentages):
        share = total * percentages[level]
        counts[level] = share // weight
        remainders.append((share % weight, level))
    leftover = total - sum(counts.values())
    remainders.sort(key=lambda item: (-item[0], item[1]))
    for _, level in remainders[:leftover]:
        counts[level] += 1
    return counts


def _band_for(phase_number: int) -> dict:
    for band in PHASE_BANDS:
        low, high = band['range']
        if low <= phase_number <= high:
            return band
    raise InvalidPhase(
        f'Phase number must be between {MIN_PHASE} and {MAX_PHASE}',
        {'field': 'phase_number', 'value': phase_number},
    )


def _percentages_for(phase_number: int) -> Dict[int, int]:
    for last_phase, percentages in DISTRIBUTION_TABLE:
        if phase_number <= last_phase:
            return dict(percentages)
    return dict(DISTRIBUTION_TABLE[-1][1])


def get_phase_config(phase_number, questions_per_phase: int = QUESTIONS_PER_PHASE,
                     percentages: Optional[Dict[int, int]] = None) -> PhaseConfig:
    phase = validate_phase_number(phase_number)
    band = _band_for(phase)
    pct = dict(percentages) if percentages is not None else _percentages_for(phase)
    return PhaseConfig(
        phase_number=phase,
        band=band['band'],
        allowed_levels=tuple(band['levels']),
        distribution=pct,
        counts=largest_remainder(pct, questions_per_phase),
        min_accuracy=band['min_accuracy'],
        description=band['description'],
    )


def get_difficulty_distribution(phase_number, questions_per_phase: int = QUESTIONS_PER_PHASE) -> Dict[int, int]:
    """Level -> question count for a phase; always sums to ``questions_per_phase``."""
    return dict(get_phase_config(phase_number, questions_per_phase).counts)


def get_minimum_accuracy(phase_number) -> float:
    return _band_for(validate_phase_number(phase_number))['min_accuracy']


def validate_rules() -> List[str]:
    """Sanity-check the static tables. Returns a list of problems, empty when sound."""
    errors = []
    expected_start = MIN_PHASE
    for band in PHASE_BANDS:
        low, high = band['range']
        if low != expected_start:
            errors.append(f"Phase band {band['band']} starts at {low}, expected {expected_start}")
        if high < low:
            errors.append(f"Phase band {band['band']} has an empty range")
        expected_start = high + 1
    if expected_start - 1 != MAX_PHASE:
        errors.append(f'Phase bands end at {expected_start - 1}, expected {MAX_PHASE}')

    for last_phase, percentages in DISTRIBUTION_TABLE:
        total = sum(percentages.values())
        if total != 100:
            errors.append(f'Distribution ending at phase {last_phase} sums to {total}, expected 100')
        allowed = set(_band_for(last_phase)['levels'])
        if not set(percentages).issubset(allowed):
            errors.append(f'Distribution ending at phase {last_phase} uses levels outside {sorted(allowed)}')

    previous = None
    for threshold, _ in SPEED_TIERS:
        if previous is not None and threshold >= previous:
            errors.append('Speed tiers must be ordered by descending threshold')
        previous = threshold
    return errors
