"""Final match summaries and their hand-off to the database.

The emitter is fire-and-forget from the game's point of view: by the time
it runs the game-over state is already stored and announced, so recorder
failures are logged and dropped.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from battleship import db
from battleship.models import MATCH_ABANDONED, MATCH_COMPLETED, Match, User, utcnow

from .engine import MatchEngine
from .state import FINISHED, REASON_ALL_SUNK, Room

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlayerSummary:
    player_id: str
    shots: int
    hits: int
    misses: int
    ships_remaining: int

    def to_dict(self):
        return {
            'shots': self.shots,
            'hits': self.hits,
            'misses': self.misses,
            'ships_remaining': self.ships_remaining,
        }


@dataclass(frozen=True)
class MatchSummary:
    room_code: str
    match_id: Optional[int]
    winner_id: str
    loser_id: str
    reason: str
    player1: PlayerSummary
    player2: PlayerSummary
    started_at: Optional[float]
    ended_at: Optional[float]

    @property
    def total_turns(self) -> int:
        return self.player1.shots + self.player2.shots

    def for_player(self, player_id: str) -> PlayerSummary:
        return self.player1 if self.player1.player_id == player_id else self.player2

    def stats_payload(self) -> Dict[str, Dict[str, int]]:
        return {p.player_id: p.to_dict() for p in (self.player1, self.player2)}


def build_summary(room: Room) -> MatchSummary:
    stats = MatchEngine.summary_stats(room)
    p1, p2 = room.player1.player_id, room.player2.player_id
    loser_id = p2 if room.winner_id == p1 else p1
    return MatchSummary(
        room_code=room.code,
        match_id=room.match_id,
        winner_id=room.winner_id,
        loser_id=loser_id,
        reason=room.end_reason or REASON_ALL_SUNK,
        player1=PlayerSummary(player_id=p1, **stats[p1]),
        player2=PlayerSummary(player_id=p2, **stats[p2]),
        started_at=room.started_at,
        ended_at=room.ended_at,
    )


class MatchRecorder:
    """Persists match records and per-user totals with SQLAlchemy."""

    def start_match(self, room: Room) -> int:
        match = Match(
            room_code=room.code,
            player1_id=int(room.player1.player_id),
            player2_id=int(room.player2.player_id),
        )
        db.session.add(match)
        db.session.commit()
        return match.id

    def record(self, summary: MatchSummary) -> Match:
        try:
            match = db.session.get(Match, summary.match_id) if summary.match_id else None
            if match is None:
                match = Match(
                    room_code=summary.room_code,
                    player1_id=int(summary.player1.player_id),
                    player2_id=int(summary.player2.player_id),
                )
                db.session.add(match)

            match.status = MATCH_COMPLETED if summary.reason == REASON_ALL_SUNK else MATCH_ABANDONED
            match.end_reason = summary.reason
            match.winner_id = int(summary.winner_id)
            match.ended_at = (
                datetime.fromtimestamp(summary.ended_at, timezone.utc) if summary.ended_at else utcnow()
            )
            match.total_turns = summary.total_turns
            match.player1_shots = summary.player1.shots
            match.player2_shots = summary.player2.shots
            match.player1_hits = summary.player1.hits
            match.player2_hits = summary.player2.hits

            for player in (summary.player1, summary.player2):
                user = db.session.get(User, int(player.player_id))
                if user is None:
                    logger.warning(f"[summary-missing-user] user={player.player_id} match={match.id}")
                    continue
                won = player.player_id == summary.winner_id
                user.games_played = (user.games_played or 0) + 1
                if won:
                    user.games_won = (user.games_won or 0) + 1
                else:
                    user.games_lost = (user.games_lost or 0) + 1
                user.total_shots = (user.total_shots or 0) + player.shots
                user.total_hits = (user.total_hits or 0) + player.hits
                db.session.add(user)

            db.session.add(match)
            db.session.commit()
            return match
        except Exception:
            db.session.rollback()
            raise


class SummaryEmitter:
    def __init__(self, recorder: MatchRecorder):
        self.recorder = recorder

    def emit(self, room: Room) -> Optional[MatchSummary]:
        """Record a finished room. Never raises for recorder failures."""
        if room.status != FINISHED or not room.winner_id or room.player2 is None:
            return None
        summary = build_summary(room)
        try:
            self.recorder.record(summary)
            logger.info(
                f"[summary-recorded] room={summary.room_code} match={summary.match_id} "
                f"winner={summary.winner_id} reason={summary.reason}"
            )
        except Exception:
            logger.exception(f"[summary-failed] room={summary.room_code} match={summary.match_id}")
        return summary
