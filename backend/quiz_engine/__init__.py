from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:8081",
    "http://127.0.0.1:8081",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)


def build_session_manager(flask_app, content=None, clock=None, rng=None):
    """Wire the selector, stores and profile source from the app config."""
    import time
    from quiz_engine.services.quiz.content import SqlContentRepository
    from quiz_engine.services.quiz.profiles import SessionHistoryProfileStore
    from quiz_engine.services.quiz.selector import QuestionSelector
    from quiz_engine.services.quiz.sessions import SessionManager
    from quiz_engine.services.quiz.store import MemorySessionStore, SqlSessionStore

    cfg = flask_app.config
    clock = clock or time.time
    if cfg.get('SESSION_STORE', 'sql') == 'memory':
        store = MemorySessionStore(clock=clock)
    else:
        store = SqlSessionStore(clock=clock)
    selector = QuestionSelector(
        content or SqlContentRepository(),
        rng=rng,
        questions_per_phase=int(cfg.get('QUESTIONS_PER_PHASE', 10)),
        adaptive=bool(cfg.get('ADAPTIVE_DIFFICULTY', True)),
    )
    return SessionManager(
        selector,
        store,
        profiles=SessionHistoryProfileStore(store),
        clock=clock,
        time_per_question_ms=int(cfg.get('TIME_PER_QUESTION_MS', 30000)),
        pause_timeout_ms=int(cfg.get('PAUSE_TIMEOUT_MS', 300000)),
        session_timeout_sec=int(cfg.get('SESSION_TIMEOUT_SEC', 3600)),
        retention_sec=int(cfg.get('SESSION_RETENTION_SEC', 6 * 60 * 60)),
        grace_ms=int(cfg.get('ANSWER_GRACE_MS', 2000)),
    )


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Import and register blueprints here
    from quiz_engine.main import main
    flask_app.register_blueprint(main)

    from quiz_engine.api.quiz import quiz
    flask_app.register_blueprint(quiz, url_prefix='/api/quiz')

    from quiz_engine.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    flask_app.extensions['quiz_sessions'] = build_session_manager(flask_app)

    from quiz_engine.services.quiz.scheduler import start_expiry_sweeper, run_sweep_once
    start_expiry_sweeper(flask_app)

    @click.command('db-reset')
    @click.option('--per-level', default=12, show_default=True, help='Questions per level and locale.')
    def db_reset_command(per_level):
        """Drops, recreates, and seeds the database with a demo question bank."""
        from quiz_engine.seed import seed_questions
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            count = seed_questions(per_level=per_level)
            print(f'Database has been reset and seeded with {count} questions!')

    @click.command('sweep-sessions')
    def sweep_sessions_command():
        """Expires idle quiz sessions and evicts stale snapshots."""
        expired = run_sweep_once(flask_app)
        print(f'Expired {len(expired)} session(s).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(sweep_sessions_command)

    return flask_app
