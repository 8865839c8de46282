import random

from quiz_engine import db
from quiz_engine.models import Question
from quiz_engine.services.quiz import rules

DEMO_TOPICS = ['planets', 'stars', 'galaxies', 'moons', 'space_missions', 'cosmology']


def seed_questions(per_level=12, locales=rules.SUPPORTED_LOCALES, seed=None):
    """Insert a synthetic question bank covering every locale and level."""
    rng = random.Random(seed)
    count = 0
    for locale in locales:
        for level in rules.LEVELS:
            for i in range(per_level):
                topic = DEMO_TOPICS[i % len(DEMO_TOPICS)]
                db.session.add(Question(
                    locale=locale,
                    level=level,
                    topic=topic,
                    question=f'[{locale}] {topic} question {i + 1} (level {level})',
                    option_a='Option A',
                    option_b='Option B',
                    option_c='Option C',
                    option_d='Option D',
                    correct_option=rng.choice(rules.OPTIONS),
                ))
                count += 1
    db.session.commit()
    return count
