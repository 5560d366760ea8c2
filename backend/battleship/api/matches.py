from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from battleship import db
from battleship.models import MATCH_COMPLETED, Match, User

matches = Blueprint('matches', __name__)

MAX_PAGE_SIZE = 50


def _int_arg(name, default, lo=0, hi=None):
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        value = default
    value = max(lo, value)
    return min(hi, value) if hi is not None else value


@matches.route('/matches', methods=['GET'])
@login_required
def list_matches():
    """
    Returns the current user's match history, newest first.
    """
    limit = _int_arg('limit', 10, lo=1, hi=MAX_PAGE_SIZE)
    offset = _int_arg('offset', 0)
    rows = (
        Match.query
        .filter(db.or_(Match.player1_id == current_user.id, Match.player2_id == current_user.id))
        .order_by(Match.created_at.desc(), Match.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return jsonify([m.to_dict() for m in rows]), 200


@matches.route('/matches/<int:match_id>', methods=['GET'])
@login_required
def get_match(match_id):
    match = db.session.get(Match, match_id)
    if match is None:
        return jsonify({'error': 'Match not found'}), 404
    if not match.involves(current_user.id):
        return jsonify({'error': 'You did not play in this match'}), 403
    return jsonify(match.to_dict()), 200


@matches.route('/leaderboard', methods=['GET'])
def leaderboard():
    """
    Top players by wins, with win rate and accuracy.
    """
    limit = _int_arg('limit', 10, lo=1, hi=MAX_PAGE_SIZE)
    users = (
        User.query
        .order_by(User.games_won.desc(), User.games_played.asc(), User.id.asc())
        .limit(limit)
        .all()
    )
    return jsonify([u.to_dict() for u in users]), 200


@matches.route('/stats', methods=['GET'])
@login_required
def my_stats():
    completed = (
        Match.query
        .filter(db.or_(Match.player1_id == current_user.id, Match.player2_id == current_user.id))
        .filter(Match.status == MATCH_COMPLETED)
        .count()
    )
    payload = current_user.to_dict()
    payload['completed_matches'] = completed
    return jsonify(payload), 200
