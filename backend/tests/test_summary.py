from datetime import datetime

import pytest

from battleship import db
from battleship.models import MATCH_ABANDONED, MATCH_COMPLETED, MATCH_IN_PROGRESS, Match, User
from battleship.services.games.engine import MatchEngine
from battleship.services.games.fleet import FLEET, ShipPlacement
from battleship.services.games.grid import HORIZONTAL, Coordinate
from battleship.services.games.state import REASON_OPPONENT_LEFT
from battleship.services.games.summary import MatchRecorder, SummaryEmitter, build_summary

from conftest import empty_cells, fleet_cells


class FirstChoice:
    def choice(self, seq):
        return seq[0]


class BrokenRecorder:
    def record(self, summary):
        raise RuntimeError('database is down')


def _user(username):
    user = User(username=username)
    user.set_password('password123')
    db.session.add(user)
    db.session.commit()
    return str(user.id)


def _placements():
    return [
        ShipPlacement(kind.id, kind.name, kind.length, Coordinate(0, row), HORIZONTAL)
        for row, kind in enumerate(FLEET)
    ]


@pytest.fixture()
def players(app_ctx):
    return _user('alice'), _user('bob')


@pytest.fixture()
def engine():
    return MatchEngine(rng=FirstChoice(), clock=lambda: 1_700_000_000.0)


def _playing(engine, players):
    a, b = players
    room = engine.admit_second_player(engine.create_room('ROOM01', a), b)
    room = engine.place_ships(room, a, _placements())
    return engine.place_ships(room, b, _placements())


def _won_by_first(engine, players):
    a, b = players
    room = _playing(engine, players)
    misses = iter(empty_cells())
    targets = fleet_cells()
    for i, (x, y) in enumerate(targets):
        room, _ = engine.fire_shot(room, a, Coordinate(x, y))
        if i < len(targets) - 1:
            room, _ = engine.fire_shot(room, b, Coordinate(*next(misses)))
    return room


def test_build_summary(engine, players):
    a, b = players
    summary = build_summary(_won_by_first(engine, players))
    assert summary.winner_id == a
    assert summary.loser_id == b
    assert summary.reason == 'all_ships_sunk'
    assert summary.total_turns == 33
    assert summary.for_player(a).hits == 17
    assert summary.stats_payload()[b] == {'shots': 16, 'hits': 0, 'misses': 16, 'ships_remaining': 5}


def test_recorder_completes_started_match(engine, players):
    a, b = players
    recorder = MatchRecorder()
    room = _playing(engine, players)
    room.match_id = recorder.start_match(room)
    assert db.session.get(Match, room.match_id).status == MATCH_IN_PROGRESS

    room = _won_by_first(engine, players)
    room.match_id = db.session.query(Match).one().id
    summary = SummaryEmitter(recorder).emit(room)
    assert summary is not None

    match = db.session.get(Match, room.match_id)
    assert match.status == MATCH_COMPLETED
    assert match.winner_id == int(a)
    assert match.total_turns == 33
    assert match.player1_hits == 17
    # engine clock 1_700_000_000 is 2023-11-14 22:13:20 UTC
    assert match.ended_at.replace(tzinfo=None) == datetime(2023, 11, 14, 22, 13, 20)

    winner = db.session.get(User, int(a))
    loser = db.session.get(User, int(b))
    assert (winner.games_played, winner.games_won, winner.games_lost) == (1, 1, 0)
    assert (loser.games_played, loser.games_won, loser.games_lost) == (1, 0, 1)
    assert winner.accuracy == 100.0
    assert loser.total_shots == 16


def test_recorder_creates_match_when_missing(engine, players):
    room = engine.forfeit(_playing(engine, players), players[1], REASON_OPPONENT_LEFT)
    SummaryEmitter(MatchRecorder()).emit(room)
    match = db.session.query(Match).one()
    assert match.status == MATCH_ABANDONED
    assert match.end_reason == REASON_OPPONENT_LEFT
    assert match.winner_id == int(players[1])


def test_emitter_ignores_unfinished_rooms(engine, players):
    emitter = SummaryEmitter(BrokenRecorder())
    assert emitter.emit(_playing(engine, players)) is None
    assert emitter.emit(engine.create_room('ROOM02', players[0])) is None


def test_emitter_logs_recorder_failures(engine, players, caplog):
    room = _won_by_first(engine, players)
    with caplog.at_level('ERROR'):
        summary = SummaryEmitter(BrokenRecorder()).emit(room)
    assert summary.winner_id == players[0]
    assert any('[summary-failed]' in r.getMessage() for r in caplog.records)


def test_recorder_rolls_back_on_error(engine, players):
    room = _won_by_first(engine, players)
    summary = build_summary(room)
    broken = summary.__class__(**{**summary.__dict__, 'winner_id': 'not-a-number'})
    with pytest.raises(ValueError):
        MatchRecorder().record(broken)
    assert db.session.query(Match).count() == 0
