from flask import Blueprint, jsonify, request, current_app
from quiz_engine import socketio
from quiz_engine.services.quiz import rules
from quiz_engine.services.quiz.errors import QuizError
from quiz_engine.services.quiz.types import PerformanceHints, UserContext


quiz = Blueprint('quiz', __name__)


def _sessions():
    return current_app.extensions['quiz_sessions']


def _notify(session_id: str, payload: dict) -> None:
    socketio.emit('session_update', payload, to=f"session:{session_id}", namespace='/ws')


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes')
    return bool(value)


@quiz.errorhandler(QuizError)
def handle_quiz_error(exc: QuizError):
    current_app.logger.info(f"[quiz-error] code={exc.code} status={exc.status_code} msg={exc.message}")
    return jsonify(exc.to_dict()), exc.status_code


@quiz.route('/rules', methods=['GET'])
def get_rules():
    cfg = current_app.config
    return jsonify({
        'general': {
            'total_phases': rules.MAX_PHASE,
            'questions_per_phase': int(cfg.get('QUESTIONS_PER_PHASE', rules.QUESTIONS_PER_PHASE)),
            'time_per_question_ms': int(cfg.get('TIME_PER_QUESTION_MS', rules.TIME_PER_QUESTION_MS)),
            'supported_locales': list(rules.SUPPORTED_LOCALES),
            'options': list(rules.OPTIONS),
        },
        'scoring': {
            'base_points': {str(k): v for k, v in rules.BASE_POINTS.items()},
            'speed_tiers': [{'min_remaining_ms': t, 'multiplier': m} for t, m in rules.SPEED_TIERS],
            'streak': {'threshold': rules.STREAK_THRESHOLD, 'points_per_streak': rules.STREAK_POINTS,
                       'max_bonus': rules.STREAK_CAP},
            'penalties': {'wrong_answer': rules.WRONG_ANSWER_PENALTY, 'timeout': rules.TIMEOUT_PENALTY},
            'perfect_bonus': {'multiplier': rules.PERFECT_BONUS_MULTIPLIER,
                              'min_questions': rules.PERFECT_MIN_QUESTIONS},
        },
        'timing': {
            'pause_timeout_ms': int(cfg.get('PAUSE_TIMEOUT_MS', rules.PAUSE_TIMEOUT_MS)),
            'session_timeout_sec': int(cfg.get('SESSION_TIMEOUT_SEC', rules.SESSION_TIMEOUT_SEC)),
        },
    })


@quiz.route('/phase/<int:phase_number>', methods=['GET'])
def get_phase(phase_number):
    config = rules.get_phase_config(phase_number, int(current_app.config.get('QUESTIONS_PER_PHASE', 10)))
    return jsonify(config.to_dict())


@quiz.route('/pool-stats', methods=['GET'])
def pool_stats():
    phase_number = request.args.get('phase_number', '1')
    locale = request.args.get('locale', rules.DEFAULT_LOCALE)
    return jsonify(_sessions().selector.analyze_pool(phase_number, locale))


@quiz.route('/start', methods=['POST'])
def start_session():
    data = request.get_json(silent=True) or {}
    phase_number = data.get('phase_number', 1)
    locale = data.get('locale', rules.DEFAULT_LOCALE)
    exclude = data.get('exclude_questions') or []
    if not isinstance(exclude, list):
        exclude = []
    hints = None
    if data.get('recent_topics'):
        hints = PerformanceHints(recent_topics=[str(t) for t in data['recent_topics']])
    user_id = data.get('user_id')
    context = UserContext(user_id=str(user_id) if user_id else None, hints=hints)

    session = _sessions().create_session(phase_number, locale, context, exclude_ids=exclude)
    current_app.logger.info(
        f"[start] session={session.session_id} phase={session.phase_number} locale={session.locale}"
    )
    return jsonify({
        'message': 'Quiz session started successfully',
        'session_id': session.session_id,
        'phase_number': session.phase_number,
        'locale': session.locale,
        'total_questions': session.total_questions,
        'time_per_question_ms': session.time_per_question_ms,
        'started_at': session.created_at,
    }), 201


@quiz.route('/session/<string:session_id>', methods=['GET'])
def get_session(session_id):
    return jsonify(_sessions().get_summary(session_id))


@quiz.route('/question/<string:session_id>', methods=['GET'])
def get_current_question(session_id):
    return jsonify(_sessions().get_current_question(session_id))


@quiz.route('/answer', methods=['POST'])
def submit_answer():
    data = request.get_json(silent=True) or {}
    session_id = data.get('session_id')
    if not session_id:
        return jsonify({'error': 'session_id is required', 'code': 'validation_error'}), 400
    outcome = _sessions().submit_answer(
        session_id,
        data.get('selected_option'),
        data.get('time_used_ms'),
        is_timeout=_as_bool(data.get('is_timeout', False)),
    )
    payload = outcome.to_dict()
    _notify(session_id, payload['session'])
    return jsonify(payload)


@quiz.route('/session/<string:session_id>/pause', methods=['POST'])
def pause_session(session_id):
    session = _sessions().pause_session(session_id)
    summary = session.summary()
    _notify(session_id, summary)
    return jsonify(summary)


@quiz.route('/session/<string:session_id>/resume', methods=['POST'])
def resume_session(session_id):
    try:
        session = _sessions().resume_session(session_id)
    except QuizError as exc:
        if exc.code == 'session_expired':
            socketio.emit('session_expired', {'session_id': session_id},
                          to=f"session:{session_id}", namespace='/ws')
        raise
    summary = session.summary()
    _notify(session_id, summary)
    return jsonify(summary)


@quiz.route('/session/<string:session_id>/finish', methods=['POST'])
def finish_session(session_id):
    data = request.get_json(silent=True) or {}
    session = _sessions().finish_session(session_id, data.get('reason', 'abandoned'))
    summary = session.summary()
    _notify(session_id, summary)
    return jsonify(summary)
