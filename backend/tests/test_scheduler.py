import pytest

from battleship import socketio
from battleship.services.games import scheduler
from battleship.services.games.directory import RoomDirectory
from battleship.services.games.engine import MatchEngine


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def _directory_with_stale_room(clock):
    directory = RoomDirectory(ttl=60, clock=clock)
    engine = MatchEngine(clock=clock)
    directory.create(engine.create_room('OLD001', '1'))
    directory.assign_player('1', 'OLD001')
    clock.now += 120
    directory.create(engine.create_room('NEW001', '2'))
    return directory


def test_sweep_rooms_purges_idle_rooms(flask_app):
    directory = _directory_with_stale_room(FakeClock())
    assert scheduler.sweep_rooms(flask_app, directory) == 1
    assert set(directory._rooms) == {'NEW001'}
    assert directory.room_of('1') is None


def test_sweeper_is_off_in_tests_by_default(flask_app, monkeypatch):
    started = []
    monkeypatch.setattr(socketio, 'start_background_task', lambda *a: started.append(a))
    assert scheduler.start_room_sweeper(flask_app, RoomDirectory()) is False
    assert started == []


def test_sweeper_disabled_by_zero_interval(flask_app, monkeypatch):
    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    flask_app.config['ROOM_SWEEP_INTERVAL_SEC'] = 0
    started = []
    monkeypatch.setattr(socketio, 'start_background_task', lambda *a: started.append(a))
    assert scheduler.start_room_sweeper(flask_app, RoomDirectory()) is False
    assert started == []


def test_sweeper_loop_sweeps_each_interval(flask_app, monkeypatch):
    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    flask_app.config['ROOM_SWEEP_INTERVAL_SEC'] = 5
    started = []
    monkeypatch.setattr(socketio, 'start_background_task', lambda func, *args: started.append((func, args)))

    clock = FakeClock()
    directory = _directory_with_stale_room(clock)
    assert scheduler.start_room_sweeper(flask_app, directory) is True
    [(worker, args)] = started
    assert args == (5,)

    class StopLoop(Exception):
        pass

    naps = []

    def fake_sleep(seconds):
        # second wake-up ends the otherwise endless loop
        if len(naps) == 1:
            raise StopLoop()
        naps.append(seconds)

    monkeypatch.setattr(socketio, 'sleep', fake_sleep)
    with pytest.raises(StopLoop):
        worker(*args)
    assert naps == [5]
    assert not directory.exists('OLD001')
    assert directory.exists('NEW001')


def test_sweeper_survives_a_failing_pass(flask_app, monkeypatch, caplog):
    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    started = []
    monkeypatch.setattr(socketio, 'start_background_task', lambda func, *args: started.append((func, args)))

    class BrokenDirectory:
        def sweep(self):
            raise RuntimeError('boom')

    scheduler.start_room_sweeper(flask_app, BrokenDirectory())
    [(worker, args)] = started

    class StopLoop(Exception):
        pass

    calls = []

    def fake_sleep(seconds):
        calls.append(seconds)
        if len(calls) > 2:
            raise StopLoop()

    monkeypatch.setattr(socketio, 'sleep', fake_sleep)
    with pytest.raises(StopLoop):
        worker(*args)
    assert len(calls) == 3
    assert sum('[sweep-failed]' in r.getMessage() for r in caplog.records) == 2
