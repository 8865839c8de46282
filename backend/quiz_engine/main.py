import time

from flask import Blueprint, jsonify
from sqlalchemy import text

from quiz_engine import db

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the quiz engine server!'})

@main.route('/health')
def health():
    try:
        db.session.execute(text('SELECT 1'))
        database = 'ok'
    except Exception as exc:
        db.session.rollback()
        database = f'error: {exc.__class__.__name__}'
    status = 200 if database == 'ok' else 503
    return jsonify({'status': 'ok' if status == 200 else 'degraded',
                    'database': database,
                    'timestamp': time.time()}), status
