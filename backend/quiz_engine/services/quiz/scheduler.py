import time
from typing import List, Set

from quiz_engine import socketio


_running_sweepers: Set[str] = set()


def run_sweep_once(app) -> List[str]:
    """Expire idle sessions once and notify their rooms."""
    with app.app_context():
        manager = app.extensions['quiz_sessions']
        expired = manager.sweep_expired()
        for session_id in expired:
            socketio.emit('session_expired', {'session_id': session_id},
                          to=f"session:{session_id}", namespace='/ws')
        if expired:
            app.logger.info(f"[sweep] expired={len(expired)} ids={','.join(expired)}")
        return expired


def start_expiry_sweeper(app) -> None:
    """Start the periodic expiry sweep for this app.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - No-ops when SWEEP_INTERVAL_SEC is 0
    - Ensures a single sweeper per app
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return
    interval = int(app.config.get('SWEEP_INTERVAL_SEC', 60))
    if interval <= 0:
        return
    key = f"{app.import_name}:{id(app)}"
    if key in _running_sweepers:
        app.logger.info(f"[sweep-skip] sweeper already running for {key}")
        return
    _running_sweepers.add(key)
    app.logger.info(f"[sweep-start] interval={interval}s")

    def _worker(delay: int):
        while key in _running_sweepers:
            time.sleep(delay)
            try:
                run_sweep_once(app)
            except Exception as exc:
                app.logger.exception(f"[sweep-error] {exc}")

    socketio.start_background_task(_worker, interval)


def stop_expiry_sweeper(app) -> None:
    _running_sweepers.discard(f"{app.import_name}:{id(app)}")
