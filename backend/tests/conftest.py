import os
import random
import sys
import pytest

# Ensure the backend root (containing the `quiz_engine` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from quiz_engine import create_app, db, socketio
from quiz_engine.services.quiz import rules
from quiz_engine.services.quiz.content import InMemoryContentRepository
from quiz_engine.services.quiz.profiles import SessionHistoryProfileStore
from quiz_engine.services.quiz.selector import QuestionSelector
from quiz_engine.services.quiz.sessions import SessionManager
from quiz_engine.services.quiz.store import MemorySessionStore
from quiz_engine.services.quiz.types import QuizQuestion

TOPICS = ['planets', 'stars', 'galaxies', 'moons', 'comets', 'nebulae']


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SESSION_STORE = 'sql'
    SWEEP_INTERVAL_SEC = 0


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_bank(locale='en', per_topic=4, topics=TOPICS, levels=rules.LEVELS, start_id=1):
    bank = []
    qid = start_id
    for level in levels:
        for topic in topics:
            for i in range(per_topic):
                bank.append(QuizQuestion(
                    id=qid,
                    topic=topic,
                    level=level,
                    locale=locale,
                    question=f'{topic} #{i} (level {level})',
                    options=('a', 'b', 'c', 'd'),
                    correct_option=rules.OPTIONS[qid % 4],
                ))
                qid += 1
    return bank


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import quiz_engine.models  # noqa: F401
        from quiz_engine.seed import seed_questions
        db.create_all()
        seed_questions(per_level=12, seed=7)
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def bank():
    return make_bank()


@pytest.fixture()
def store(clock):
    return MemorySessionStore(clock=clock)


@pytest.fixture()
def manager(bank, store, clock):
    selector = QuestionSelector(InMemoryContentRepository(bank), rng=random.Random(42))
    return SessionManager(selector, store, profiles=SessionHistoryProfileStore(store), clock=clock)
