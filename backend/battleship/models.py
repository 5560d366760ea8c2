from datetime import datetime, timezone

from flask_login import UserMixin

from battleship import bcrypt, db

MATCH_IN_PROGRESS = 'in_progress'
MATCH_COMPLETED = 'completed'
MATCH_ABANDONED = 'abandoned'


def utcnow():
    return datetime.now(timezone.utc)


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    games_played = db.Column(db.Integer, default=0, nullable=False)
    games_won = db.Column(db.Integer, default=0, nullable=False)
    games_lost = db.Column(db.Integer, default=0, nullable=False)
    total_shots = db.Column(db.Integer, default=0, nullable=False)
    total_hits = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def win_rate(self):
        if not self.games_played:
            return 0.0
        return round(self.games_won / self.games_played * 100, 2)

    @property
    def accuracy(self):
        if not self.total_shots:
            return 0.0
        return round(self.total_hits / self.total_shots * 100, 2)

    def to_dict(self, include_stats=True):
        data = {
            'id': self.id,
            'username': self.username,
        }
        if include_stats:
            data['stats'] = {
                'games_played': self.games_played or 0,
                'games_won': self.games_won or 0,
                'games_lost': self.games_lost or 0,
                'total_shots': self.total_shots or 0,
                'total_hits': self.total_hits or 0,
                'win_rate': self.win_rate,
                'accuracy': self.accuracy,
            }
        return data


class Match(db.Model):
    __tablename__ = 'match'
    id = db.Column(db.Integer, primary_key=True)
    room_code = db.Column(db.String(6), nullable=True, index=True)
    player1_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    player2_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    winner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    status = db.Column(db.String(32), default=MATCH_IN_PROGRESS, nullable=False)  # in_progress, completed, abandoned
    end_reason = db.Column(db.String(32), nullable=True)
    total_turns = db.Column(db.Integer, default=0, nullable=False)
    player1_shots = db.Column(db.Integer, default=0, nullable=False)
    player2_shots = db.Column(db.Integer, default=0, nullable=False)
    player1_hits = db.Column(db.Integer, default=0, nullable=False)
    player2_hits = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    ended_at = db.Column(db.DateTime, nullable=True)

    player1 = db.relationship('User', foreign_keys=[player1_id])
    player2 = db.relationship('User', foreign_keys=[player2_id])
    winner = db.relationship('User', foreign_keys=[winner_id])

    def involves(self, user_id):
        return user_id in (self.player1_id, self.player2_id)

    def to_dict(self):
        return {
            'id': self.id,
            'room_code': self.room_code,
            'status': self.status,
            'end_reason': self.end_reason,
            'player1': self.player1.to_dict(include_stats=False) if self.player1 else None,
            'player2': self.player2.to_dict(include_stats=False) if self.player2 else None,
            'winner_id': self.winner_id,
            'total_turns': self.total_turns,
            'player1_shots': self.player1_shots,
            'player2_shots': self.player2_shots,
            'player1_hits': self.player1_hits,
            'player2_hits': self.player2_hits,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'ended_at': self.ended_at.isoformat() if self.ended_at else None,
        }
