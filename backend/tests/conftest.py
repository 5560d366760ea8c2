import os
import random
import sys
from dataclasses import dataclass
from typing import Any

import pytest

# Ensure the backend root (containing the `battleship` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from battleship import create_app, db, socketio
from battleship.services.games.fleet import FLEET

PASSWORD = 'password123'


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    CORS_ORIGINS = []
    LOG_LEVEL = 'DEBUG'
    ROOM_TTL_SEC = 3600
    ROOM_CODE_LENGTH = 6
    ROOM_CODE_MAX_ATTEMPTS = 10
    GAME_OVER_CLEANUP_SEC = 0
    TURN_TIMEOUT_SEC = 0


@dataclass
class Player:
    id: str
    username: str
    http: Any
    sio: Any

    def received(self, name=None):
        packets = self.sio.get_received('/ws')
        if name is None:
            return packets
        return [p['args'][0] if p['args'] else None for p in packets if p['name'] == name]

    def send(self, event, data=None):
        if data is None:
            self.sio.emit(event, namespace='/ws')
        else:
            self.sio.emit(event, data, namespace='/ws')


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig, rng=random.Random(1234))
    with application.app_context():
        # Ensure models are imported so tables are created
        import battleship.models  # noqa: F401
        db.create_all()
    # No context stays pushed: Flask-Login caches current_user on g, so
    # every request and socket event needs its own app context.
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app_ctx(flask_app):
    """App context for tests that query the database directly."""
    with flask_app.app_context():
        yield flask_app


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def events(flask_app):
    return flask_app.extensions['game_events']


@pytest.fixture()
def make_player(flask_app):
    """Register a user over HTTP and open an authenticated socket for them."""
    players = []

    def _make(username):
        http = flask_app.test_client()
        res = http.post('/register', json={'username': username, 'password': PASSWORD})
        assert res.status_code == 201
        user_id = str(res.get_json()['user']['id'])
        sio = socketio.test_client(flask_app, flask_test_client=http, namespace='/ws')
        assert sio.is_connected('/ws')
        sio.get_received('/ws')  # flush connected
        player = Player(id=user_id, username=username, http=http, sio=sio)
        players.append(player)
        return player

    yield _make
    for p in players:
        try:
            if p.sio.is_connected('/ws'):
                p.sio.disconnect(namespace='/ws')
        except Exception:
            pass


def fleet_payload():
    """Canonical fleet laid out horizontally on rows 0-4 from column 0."""
    return [
        {
            'id': kind.id,
            'name': kind.name,
            'size': kind.length,
            'start': {'x': 0, 'y': row},
            'orientation': 'horizontal',
        }
        for row, kind in enumerate(FLEET)
    ]


def fleet_cells():
    """Cells covered by ``fleet_payload``."""
    return [(x, row) for row, kind in enumerate(FLEET) for x in range(kind.length)]


def empty_cells():
    """Cells that ``fleet_payload`` leaves open (rows 5-9)."""
    return [(x, y) for y in range(5, 10) for x in range(10)]
