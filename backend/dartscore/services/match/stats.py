"""Running player statistics.

Every update function takes a ``PlayerStats`` and returns a new one; the
caller stores the result. Statistics are never authoritative, ``replay``
rebuilds them from a throw history at any time.
"""

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from .validator import BOGEY_SCORES, MAX_CHECKOUT


@dataclass(frozen=True)
class PlayerStats:
    darts_thrown: int = 0
    points_scored: int = 0
    legs_won: int = 0
    leg_darts: tuple = ()
    busts: int = 0
    checkout_attempts: int = 0
    checkout_successes: int = 0
    highest_checkout: int = 0
    ton_plus: int = 0
    ton_forty_plus: int = 0
    ton_eighty: int = 0
    average_throw: float = 0.0
    checkout_percentage: float = 0.0
    darts_per_leg: float = 0.0
    best_leg_darts: int = 0

    def to_dict(self):
        data = asdict(self)
        data['leg_darts'] = list(self.leg_darts)
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'PlayerStats':
        data = data or {}
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values['leg_darts'] = tuple(values.get('leg_darts') or ())
        return cls(**values)


def on_throw(
    stats: PlayerStats,
    throw_score: int,
    is_bust: bool,
    is_checkout_attempt: bool,
    is_successful_checkout: bool,
    checkout_value: int = 0,
) -> PlayerStats:
    darts = stats.darts_thrown + 1
    points = stats.points_scored + (0 if is_bust else throw_score)
    attempts = stats.checkout_attempts + (1 if is_checkout_attempt else 0)
    successes = stats.checkout_successes + (1 if is_successful_checkout else 0)
    highest = stats.highest_checkout
    if is_successful_checkout and checkout_value > highest:
        highest = checkout_value
    return replace(
        stats,
        darts_thrown=darts,
        points_scored=points,
        busts=stats.busts + (1 if is_bust else 0),
        checkout_attempts=attempts,
        checkout_successes=successes,
        highest_checkout=highest,
        average_throw=(points / darts) * 3 if darts else 0.0,
        checkout_percentage=(successes / attempts) * 100 if attempts else 0.0,
    )


def on_turn_complete(stats: PlayerStats, turn_total: int) -> PlayerStats:
    """Classify a full turn into the ton tiers."""
    if 100 <= turn_total < 140:
        return replace(stats, ton_plus=stats.ton_plus + 1)
    if 140 <= turn_total < 180:
        return replace(stats, ton_forty_plus=stats.ton_forty_plus + 1)
    if turn_total == 180:
        return replace(stats, ton_eighty=stats.ton_eighty + 1)
    return stats


def on_leg_win(stats: PlayerStats, darts_used: int) -> PlayerStats:
    legs_won = stats.legs_won + 1
    leg_darts = stats.leg_darts + (darts_used,)
    best = stats.best_leg_darts
    if best == 0 or darts_used < best:
        best = darts_used
    return replace(
        stats,
        legs_won=legs_won,
        leg_darts=leg_darts,
        best_leg_darts=best,
        darts_per_leg=sum(leg_darts) / legs_won,
    )


def is_checkout_attempt(score):
    """A dart thrown from a finishable range counts as a checkout attempt."""
    return 0 < score <= MAX_CHECKOUT


def is_checkout_position(score):
    return 0 < score <= MAX_CHECKOUT and score not in BOGEY_SCORES


def format_player_stats(stats: PlayerStats) -> Dict[str, Any]:
    return {
        'average': round(stats.average_throw, 2),
        'checkout_percentage': round(stats.checkout_percentage),
        'darts_per_leg': round(stats.darts_per_leg, 2),
        'highest_checkout': stats.highest_checkout,
        'legs_won': stats.legs_won,
        'busts': stats.busts,
        'ton_plus': stats.ton_plus,
        'ton_forty_plus': stats.ton_forty_plus,
        'ton_eighty': stats.ton_eighty,
        'best_leg_darts': stats.best_leg_darts,
    }


def replay(throws: Iterable[Any]) -> PlayerStats:
    """Rebuild one player's statistics from their throws, oldest first.

    Throws need ``score_before``, ``turn_start``, ``points``, ``bust``,
    ``game_shot``, ``leg`` and ``throw_index``. A new turn starts whenever
    ``throw_index`` is 1 or the leg changes.
    """
    stats = PlayerStats()
    turn_total = 0
    turn_bust = False
    in_turn = False
    current_leg = None
    darts_in_leg = 0

    for t in throws:
        if in_turn and (t.throw_index == 1 or t.leg != current_leg):
            stats = on_turn_complete(stats, 0 if turn_bust else turn_total)
            turn_total, turn_bust = 0, False
        if t.leg != current_leg:
            current_leg = t.leg
            darts_in_leg = 0
        in_turn = True
        darts_in_leg += 1
        turn_total += t.points
        turn_bust = turn_bust or t.bust
        stats = on_throw(
            stats,
            t.points,
            t.bust,
            is_checkout_attempt(t.score_before),
            t.game_shot,
            t.turn_start if t.game_shot else 0,
        )
        if t.game_shot:
            stats = on_leg_win(stats, darts_in_leg)

    if in_turn:
        stats = on_turn_complete(stats, 0 if turn_bust else turn_total)
    return stats


def _utcnow():
    return datetime.now(timezone.utc)


@dataclass
class MatchStats:
    """Per-player statistics plus match level counters."""

    players: Dict[int, PlayerStats]
    legs_to_win: int
    start_time: datetime = field(default_factory=_utcnow)
    end_time: Optional[datetime] = None
    legs_played: int = 0
    current_leg: int = 1

    @classmethod
    def create(cls, player_ids: Iterable[int], legs_to_win: int) -> 'MatchStats':
        return cls(players={pid: PlayerStats() for pid in player_ids}, legs_to_win=legs_to_win)

    def get(self, player_id: int) -> PlayerStats:
        return self.players.get(player_id) or PlayerStats()

    def to_dict(self):
        return {
            'players': {str(pid): s.to_dict() for pid, s in self.players.items()},
            'legs_to_win': self.legs_to_win,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'legs_played': self.legs_played,
            'current_leg': self.current_leg,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MatchStats':
        start = data.get('start_time')
        end = data.get('end_time')
        return cls(
            players={int(pid): PlayerStats.from_dict(s) for pid, s in (data.get('players') or {}).items()},
            legs_to_win=int(data.get('legs_to_win') or 1),
            start_time=datetime.fromisoformat(start) if start else _utcnow(),
            end_time=datetime.fromisoformat(end) if end else None,
            legs_played=int(data.get('legs_played') or 0),
            current_leg=int(data.get('current_leg') or 1),
        )
