import time
from typing import Callable, Optional

from battleship import socketio


def run_background(app, func: Callable, *args) -> None:
    """Run ``func(*args)`` inside an app context off the request thread.

    Under TESTING the call runs inline so tests observe its effects.
    """
    def _runner():
        with app.app_context():
            func(*args)

    if app.config.get('TESTING'):
        _runner()
    else:
        socketio.start_background_task(_runner)


def schedule_room_cleanup(app, directory, room_code: str, on_deleted: Optional[Callable] = None) -> None:
    """Delete a finished room after GAME_OVER_CLEANUP_SEC.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Only deletes if the room is still the finished one we scheduled for
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return
    delay = int(app.config.get('GAME_OVER_CLEANUP_SEC', 30))
    app.logger.info(f"[cleanup-set] room={room_code} delay={delay}s")

    def _worker(code: str, wait: int):
        if wait > 0:
            time.sleep(wait)
        with app.app_context():
            room = directory.get(code)
            if room is None or room.status != 'finished':
                app.logger.info(f"[cleanup-abort] room={code} already gone or not finished")
                return
            directory.delete(code)
            app.logger.info(f"[room-deleted] room={code} reason=game_over")
            if on_deleted is not None:
                on_deleted(code)

    if app.config.get('TESTING'):
        _worker(room_code, delay)
    else:
        socketio.start_background_task(_worker, room_code, delay)


def schedule_turn_timer(app, on_expire: Callable, room_code: str, player_id: str, shot_count: int) -> None:
    """Forfeit the player to move if they do not shoot within TURN_TIMEOUT_SEC.

    ``on_expire(room_code, player_id, shot_count)`` is expected to check that
    the turn is still the one this timer was set for. 0 disables the timer.
    """
    try:
        timeout = int(app.config.get('TURN_TIMEOUT_SEC', 0))
    except (TypeError, ValueError):
        timeout = 0
    if timeout <= 0:
        return
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return
    app.logger.info(f"[timer-set] room={room_code} player={player_id} shot={shot_count} timeout={timeout}s")

    def _worker(code: str, pid: str, expected_shots: int, delay: int):
        time.sleep(delay)
        with app.app_context():
            app.logger.info(f"[timer-fire] room={code} player={pid} shot={expected_shots}")
            on_expire(code, pid, expected_shots)

    socketio.start_background_task(_worker, room_code, player_id, shot_count, timeout)


def sweep_rooms(app, directory) -> int:
    """One expiry pass over the room directory."""
    with app.app_context():
        return directory.sweep()


def start_room_sweeper(app, directory) -> bool:
    """Purge idle rooms every ROOM_SWEEP_INTERVAL_SEC for the life of the process.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - 0 disables the sweeper; lookups still expire rooms lazily
    Returns True when a sweeper task was started.
    """
    try:
        interval = int(app.config.get('ROOM_SWEEP_INTERVAL_SEC', 60))
    except (TypeError, ValueError):
        interval = 0
    if interval <= 0:
        return False
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return False
    app.logger.info(f"[sweeper-start] interval={interval}s")

    def _worker(delay: int):
        while True:
            socketio.sleep(delay)
            try:
                sweep_rooms(app, directory)
            except Exception:
                app.logger.exception("[sweep-failed]")

    socketio.start_background_task(_worker, interval)
    return True
