"""Question selection for a phase.

The selector turns a phase number into level targets, pulls the candidate
pool from the content repository and picks a topic-diverse set. Its
guarantees are about the composition of the set; the returned order is a
uniform shuffle.
"""

import logging
import random
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Optional, Sequence

from . import rules
from .errors import InsufficientQuestionPool
from .types import PerformanceHints, PhaseConfig, QuizQuestion

logger = logging.getLogger(__name__)


def adjust_distribution(config: PhaseConfig, hints: Optional[PerformanceHints],
                        shift_pct: int = rules.ADAPTIVE_SHIFT_PCT,
                        window: int = rules.ADAPTIVE_WINDOW,
                        high: float = rules.ADAPTIVE_HIGH_ACCURACY,
                        low: float = rules.ADAPTIVE_LOW_ACCURACY) -> Dict[int, int]:
    """Shift up to ``shift_pct`` points of mass one level up or down.

    Accuracy over the last ``window`` answers above ``high`` moves mass from
    the easiest populated level to the next harder one; below ``low`` moves
    it from the hardest populated level to the next easier one. Mass never
    leaves ``config.allowed_levels``.
    """
    pct = dict(config.distribution)
    if not hints or len(hints.recent_answers) < window or shift_pct <= 0:
        return pct
    recent = hints.recent_answers[-window:]
    accuracy = sum(1 for ok in recent if ok) / len(recent)
    allowed = set(config.allowed_levels)

    if accuracy > high:
        candidates = sorted(level for level, share in pct.items() if share > 0 and level + 1 in allowed)
        if not candidates:
            return pct
        source, target = candidates[0], candidates[0] + 1
    elif accuracy < low:
        candidates = sorted((level for level, share in pct.items() if share > 0 and level - 1 in allowed),
                            reverse=True)
        if not candidates:
            return pct
        source, target = candidates[0], candidates[0] - 1
    else:
        return pct

    moved = min(shift_pct, pct[source])
    pct[source] -= moved
    pct[target] = pct.get(target, 0) + moved
    if pct[source] == 0:
        del pct[source]
    logger.debug('[adaptive] phase=%s accuracy=%.2f moved=%d %s->%s',
                 config.phase_number, accuracy, moved, source, target)
    return pct


class QuestionSelector:
    def __init__(self, repository, rng: Optional[random.Random] = None,
                 questions_per_phase: int = rules.QUESTIONS_PER_PHASE,
                 adaptive: bool = True):
        self.repository = repository
        self.rng = rng or random.Random()
        self.questions_per_phase = questions_per_phase
        self.adaptive = adaptive

    def resolve_config(self, phase_number, hints: Optional[PerformanceHints] = None) -> PhaseConfig:
        config = rules.get_phase_config(phase_number, self.questions_per_phase)
        if self.adaptive and hints is not None:
            adjusted = adjust_distribution(config, hints)
            if adjusted != config.distribution:
                config = rules.get_phase_config(config.phase_number, self.questions_per_phase, adjusted)
        return config

    def select_phase_questions(self, phase_number, locale: str,
                               exclude_ids: Iterable[int] = (),
                               recent_topics: Sequence[str] = (),
                               hints: Optional[PerformanceHints] = None) -> List[QuizQuestion]:
        phase = rules.validate_phase_number(phase_number)
        locale = rules.validate_locale(locale)
        config = self.resolve_config(phase, hints)
        needed = self.questions_per_phase

        pool = self.repository.fetch_questions(locale, config.allowed_levels, list(exclude_ids or ()))
        excluded = set(exclude_ids or ())
        pool = [q for q in pool if q.id not in excluded]
        if len(pool) < needed:
            logger.warning('[select] phase=%s locale=%s pool=%d needed=%d', phase, locale, len(pool), needed)
            raise InsufficientQuestionPool(
                f'Not enough questions for phase {phase} in locale {locale}',
                {'phase_number': phase, 'locale': locale, 'available': len(pool), 'required': needed},
            )

        cooldown = list(recent_topics or ())
        weak = set()
        if hints is not None:
            for topic in hints.recent_topics:
                if topic not in cooldown:
                    cooldown.append(topic)
            weak = set(hints.weak_topics)
        weights = {q.id: self._weight(q, cooldown, weak) for q in pool}

        by_level = defaultdict(list)
        for q in pool:
            by_level[q.level].append(q)

        picked: List[QuizQuestion] = []
        for level in sorted(config.counts):
            target = config.counts[level]
            got = self._pick(by_level.get(level, []), target, picked, weights)
            if got < target:
                logger.info('[select] phase=%s level=%s short=%d', phase, level, target - got)

        if len(picked) < needed:
            self._backfill(pool, config, picked, weights, needed)

        if len(picked) < needed:
            raise InsufficientQuestionPool(
                f'Not enough questions for phase {phase} in locale {locale}',
                {'phase_number': phase, 'locale': locale, 'available': len(picked), 'required': needed},
            )

        self.rng.shuffle(picked)
        logger.info('[select] phase=%s locale=%s levels=%s topics=%d',
                    phase, locale, dict(Counter(q.level for q in picked)),
                    len({q.topic for q in picked}))
        return picked

    def analyze_pool(self, phase_number, locale: str) -> Dict:
        phase = rules.validate_phase_number(phase_number)
        locale = rules.validate_locale(locale)
        config = rules.get_phase_config(phase, self.questions_per_phase)
        pool = self.repository.fetch_questions(locale, config.allowed_levels, [])
        by_level = Counter(q.level for q in pool)
        by_topic = Counter(q.topic for q in pool)
        return {
            'phase_number': phase,
            'locale': locale,
            'total': len(pool),
            'by_level': {str(k): by_level[k] for k in sorted(by_level)},
            'by_topic': dict(sorted(by_topic.items())),
            'targets': {str(k): v for k, v in config.counts.items()},
            'sufficient': len(pool) >= self.questions_per_phase,
        }

    # --- internals ---

    def _weight(self, question: QuizQuestion, cooldown: Sequence[str], weak) -> float:
        weight = 1.0
        window = rules.TOPIC_COOLDOWN
        if question.topic in cooldown:
            pos = cooldown.index(question.topic)
            if pos < window:
                weight *= 1.0 - rules.COOLDOWN_PENALTY * (window - pos) / window
        if question.topic in weak:
            weight += rules.WEAK_TOPIC_BOOST
        return weight + self.rng.uniform(0, rules.SELECTION_JITTER)

    @staticmethod
    def _allowed(question: QuizQuestion, picked: Sequence[QuizQuestion], topic_counts: Counter) -> bool:
        if topic_counts[question.topic] >= rules.MAX_TOPIC_PER_PHASE:
            return False
        run = picked[-rules.MAX_SAME_TOPIC_IN_ROW:]
        if len(run) == rules.MAX_SAME_TOPIC_IN_ROW and all(q.topic == question.topic for q in run):
            return False
        return True

    def _pick(self, candidates, target, picked, weights, enforce=True) -> int:
        """Greedily move up to ``target`` candidates into ``picked``."""
        taken_ids = {q.id for q in picked}
        remaining = [q for q in candidates if q.id not in taken_ids]
        got = 0
        while got < target and remaining:
            topic_counts = Counter(q.topic for q in picked)
            ranked = sorted(
                remaining,
                key=lambda q: weights[q.id] - rules.TOPIC_REPEAT_PENALTY * topic_counts[q.topic],
                reverse=True,
            )
            choice = None
            for q in ranked:
                if not enforce or self._allowed(q, picked, topic_counts):
                    choice = q
                    break
            if choice is None:
                break
            picked.append(choice)
            remaining.remove(choice)
            got += 1
        return got

    def _backfill(self, pool, config: PhaseConfig, picked, weights, needed) -> None:
        in_range = [q for q in pool if config.counts.get(q.level)]
        out_of_range = [q for q in pool if not config.counts.get(q.level)]
        for enforce in (True, False):
            for candidates in (in_range, out_of_range):
                if len(picked) >= needed:
                    return
                self._pick(candidates, needed - len(picked), picked, weights, enforce=enforce)
            if len(picked) < needed and enforce:
                logger.info('[select] phase=%s relaxing topic rules to fill %d slots',
                            config.phase_number, needed - len(picked))
