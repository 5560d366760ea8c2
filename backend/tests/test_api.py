from battleship import db
from battleship.models import MATCH_ABANDONED, MATCH_COMPLETED, Match, User

from conftest import PASSWORD


def _register(client, username, password=PASSWORD):
    return client.post('/register', json={'username': username, 'password': password})


def _add_match(app, p1, p2, winner, status=MATCH_COMPLETED):
    with app.app_context():
        match = Match(room_code='ABC123', player1_id=p1, player2_id=p2, winner_id=winner, status=status)
        db.session.add(match)
        db.session.commit()
        return match.id


def test_index(client):
    res = client.get('/')
    assert res.status_code == 200
    assert 'message' in res.get_json()


def test_register_and_check_login(client):
    res = _register(client, 'alice')
    assert res.status_code == 201
    user = res.get_json()['user']
    assert user['username'] == 'alice'
    assert user['stats']['games_played'] == 0

    res = client.get('/check_login')
    assert res.status_code == 200
    assert res.get_json()['user']['id'] == user['id']


def test_register_rejects_bad_input(client):
    assert _register(client, '', PASSWORD).status_code == 400
    assert _register(client, 'alice', 'short').status_code == 400
    assert _register(client, 'alice').status_code == 201
    res = _register(client, 'alice')
    assert res.status_code == 400
    assert res.get_json()['message'] == 'Username already exists'


def test_login_logout(flask_app):
    setup = flask_app.test_client()
    _register(setup, 'alice')

    client = flask_app.test_client()
    assert client.get('/check_login').status_code == 401
    bad = client.post('/login', json={'username': 'alice', 'password': 'wrong-password'})
    assert bad.status_code == 401
    good = client.post('/login', json={'username': 'alice', 'password': PASSWORD})
    assert good.status_code == 200
    assert client.get('/check_login').status_code == 200

    assert client.post('/logout').status_code == 200
    assert client.get('/check_login').status_code == 401


def test_protected_endpoints_require_login(client):
    for path in ('/api/matches', '/api/matches/1', '/api/stats'):
        res = client.get(path)
        assert res.status_code == 401
        assert res.get_json()['message'] == 'Authentication required'


def test_match_history(flask_app):
    alice = flask_app.test_client()
    a_id = _register(alice, 'alice').get_json()['user']['id']
    bob = flask_app.test_client()
    b_id = _register(bob, 'bob').get_json()['user']['id']
    carol = flask_app.test_client()
    c_id = _register(carol, 'carol').get_json()['user']['id']

    first = _add_match(flask_app, a_id, b_id, a_id)
    second = _add_match(flask_app, b_id, a_id, b_id, status=MATCH_ABANDONED)
    other = _add_match(flask_app, b_id, c_id, c_id)

    res = alice.get('/api/matches')
    assert res.status_code == 200
    assert [m['id'] for m in res.get_json()] == [second, first]

    res = alice.get('/api/matches?limit=1&offset=1')
    assert [m['id'] for m in res.get_json()] == [first]

    res = alice.get(f'/api/matches/{first}')
    assert res.status_code == 200
    body = res.get_json()
    assert body['player1']['username'] == 'alice'
    assert 'stats' not in body['player1']

    assert alice.get(f'/api/matches/{other}').status_code == 403
    assert alice.get('/api/matches/9999').status_code == 404


def test_leaderboard_and_stats(flask_app):
    alice = flask_app.test_client()
    a_id = _register(alice, 'alice').get_json()['user']['id']
    bob = flask_app.test_client()
    b_id = _register(bob, 'bob').get_json()['user']['id']

    with flask_app.app_context():
        a = db.session.get(User, a_id)
        a.games_played, a.games_won, a.total_shots, a.total_hits = 2, 2, 40, 30
        b = db.session.get(User, b_id)
        b.games_played, b.games_lost = 2, 2
        db.session.commit()
    _add_match(flask_app, a_id, b_id, a_id)
    _add_match(flask_app, a_id, b_id, a_id, status=MATCH_ABANDONED)

    res = alice.get('/api/leaderboard')
    assert res.status_code == 200
    board = res.get_json()
    assert [u['username'] for u in board] == ['alice', 'bob']
    assert board[0]['stats']['win_rate'] == 100.0
    assert board[0]['stats']['accuracy'] == 75.0

    res = alice.get('/api/stats')
    assert res.status_code == 200
    stats = res.get_json()
    assert stats['username'] == 'alice'
    assert stats['completed_matches'] == 1
