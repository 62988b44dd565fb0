"""In-memory records for one match and the snapshot codec used to persist them."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .stats import MatchStats
from .validator import MatchSettings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value):
    return datetime.fromisoformat(value) if value else None


class MatchState(str, Enum):
    PENDING = 'pending'
    WARMUP = 'warmup'
    BULLSHOT = 'bullshot'
    ACTIVE = 'active'
    COMPLETED = 'completed'
    CANCELED = 'canceled'

    @property
    def is_terminal(self) -> bool:
        return self in (MatchState.COMPLETED, MatchState.CANCELED)


@dataclass
class Throw:
    id: str
    player_id: int
    segment: str
    score: int
    leg: int
    round: int
    throw_index: int
    sequence: int
    score_before: int
    turn_start: int
    remaining: int
    bust: bool = False
    game_shot: bool = False
    corrected: bool = False
    coordinates: Optional[Tuple[float, float]] = None
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def points(self) -> int:
        """Points this dart actually took off the player's score."""
        if self.bust:
            return 0
        return self.score_before - self.remaining

    def to_dict(self):
        return {
            'id': self.id,
            'player_id': self.player_id,
            'segment': self.segment,
            'score': self.score,
            'leg': self.leg,
            'round': self.round,
            'throw_index': self.throw_index,
            'sequence': self.sequence,
            'score_before': self.score_before,
            'turn_start': self.turn_start,
            'remaining': self.remaining,
            'bust': self.bust,
            'game_shot': self.game_shot,
            'corrected': self.corrected,
            'coordinates': list(self.coordinates) if self.coordinates is not None else None,
            'timestamp': self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Throw':
        coords = data.get('coordinates')
        return cls(
            id=str(data['id']),
            player_id=int(data['player_id']),
            segment=data['segment'],
            score=int(data['score']),
            leg=int(data.get('leg') or 1),
            round=int(data.get('round') or 1),
            throw_index=int(data.get('throw_index') or 1),
            sequence=int(data.get('sequence') or 0),
            score_before=int(data['score_before']),
            turn_start=int(data.get('turn_start', data['score_before'])),
            remaining=int(data['remaining']),
            bust=bool(data.get('bust', False)),
            game_shot=bool(data.get('game_shot', False)),
            corrected=bool(data.get('corrected', False)),
            coordinates=tuple(coords) if coords is not None else None,
            timestamp=_parse_time(data.get('timestamp')) or utcnow(),
        )


@dataclass
class Player:
    id: int
    name: str
    position: int
    score: int
    original_score: int
    nickname: Optional[str] = None
    is_active: bool = False
    is_winner: bool = False
    current_turn: List[Throw] = field(default_factory=list)
    history: List[Throw] = field(default_factory=list)
    darts_thrown: int = 0
    legs_won: int = 0

    def darts_in_leg(self, leg):
        return sum(1 for t in self.history + self.current_turn if t.leg == leg)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'nickname': self.nickname,
            'position': self.position,
            'score': self.score,
            'original_score': self.original_score,
            'is_active': self.is_active,
            'is_winner': self.is_winner,
            'current_turn': [t.to_dict() for t in self.current_turn],
            'history': [t.to_dict() for t in self.history],
            'darts_thrown': self.darts_thrown,
            'legs_won': self.legs_won,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], starting_score: int) -> 'Player':
        score = data.get('score')
        score = starting_score if score is None else int(score)
        original = data.get('original_score')
        return cls(
            id=int(data['id']),
            name=data.get('name') or f"Player {data['id']}",
            nickname=data.get('nickname'),
            position=int(data.get('position') or 1),
            score=score,
            original_score=score if original is None else int(original),
            is_active=bool(data.get('is_active', False)),
            is_winner=bool(data.get('is_winner', False)),
            current_turn=[Throw.from_dict(t) for t in data.get('current_turn') or []],
            history=[Throw.from_dict(t) for t in data.get('history') or []],
            darts_thrown=int(data.get('darts_thrown') or 0),
            legs_won=int(data.get('legs_won') or 0),
        )


@dataclass
class Match:
    board_id: str
    mode: str
    players: List[Player]
    legs_to_win: int
    settings: MatchSettings
    stats: MatchStats
    id: Optional[int] = None
    current_leg: int = 1
    leg_starters: List[int] = field(default_factory=list)
    active_player_index: int = 0
    round: int = 1
    state: MatchState = MatchState.PENDING
    throw_sequence: int = 0
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def create(cls, board_id, players: Sequence[Mapping[str, Any]], mode: str,
               legs_to_win: int, settings: MatchSettings) -> 'Match':
        start = settings.starting_score
        records = [
            Player(
                id=int(p['id']),
                name=p.get('name') or f"Player {p['id']}",
                nickname=p.get('nickname'),
                position=index + 1,
                score=start,
                original_score=start,
            )
            for index, p in enumerate(players)
        ]
        return cls(
            board_id=str(board_id),
            mode=str(mode),
            players=records,
            legs_to_win=legs_to_win,
            settings=settings,
            stats=MatchStats.create([p.id for p in records], legs_to_win),
        )

    @property
    def active_player(self) -> Player:
        return self.players[self.active_player_index]

    def player_index(self, player_id: int) -> Optional[int]:
        for index, player in enumerate(self.players):
            if player.id == player_id:
                return index
        return None

    def new_throw(self, player: Player, segment: str, score: int, remaining: int,
                  bust: bool, game_shot: bool, coordinates=None) -> Throw:
        self.throw_sequence += 1
        return Throw(
            id=uuid.uuid4().hex,
            player_id=player.id,
            segment=segment,
            score=score,
            leg=self.current_leg,
            round=self.round,
            throw_index=len(player.current_turn) + 1,
            sequence=self.throw_sequence,
            score_before=player.score,
            turn_start=player.original_score,
            remaining=remaining,
            bust=bust,
            game_shot=game_shot,
            coordinates=tuple(coordinates) if coordinates is not None else None,
        )

    def find_committed_throw(self, throw_id: str) -> Optional[Tuple[Player, Throw]]:
        for player in self.players:
            for t in player.history:
                if t.id == throw_id:
                    return player, t
        return None

    def latest_sequence_in_leg(self, leg):
        return max(
            (t.sequence for p in self.players for t in p.history + p.current_turn if t.leg == leg),
            default=0,
        )

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'board_id': self.board_id,
            'mode': self.mode,
            'state': self.state.value,
            'legs_to_win': self.legs_to_win,
            'current_leg': self.current_leg,
            'leg_starters': list(self.leg_starters),
            'active_player_index': self.active_player_index,
            'round': self.round,
            'settings': self.settings.to_dict(),
            'players': [p.to_dict() for p in self.players],
            'stats': self.stats.to_dict(),
            'throw_sequence': self.throw_sequence,
            'updated_at': self.updated_at.isoformat(),
        }

    @classmethod
    def from_snapshot(cls, data: Mapping[str, Any]) -> 'Match':
        settings = MatchSettings.from_dict(data.get('settings'))
        players = [Player.from_dict(p, settings.starting_score) for p in data.get('players') or []]
        legs_to_win = int(data.get('legs_to_win') or 1)
        stats_data = data.get('stats')
        stats = (MatchStats.from_dict(stats_data) if stats_data
                 else MatchStats.create([p.id for p in players], legs_to_win))
        for p in players:
            stats.players.setdefault(p.id, stats.get(p.id))

        match = cls(
            id=data.get('id'),
            board_id=str(data.get('board_id')),
            mode=data.get('mode') or 'x01',
            players=players,
            legs_to_win=legs_to_win,
            settings=settings,
            stats=stats,
            current_leg=int(data.get('current_leg') or 1),
            leg_starters=[int(pid) for pid in data.get('leg_starters') or []],
            round=int(data.get('round') or 1),
            state=MatchState(data.get('state') or MatchState.PENDING.value),
            throw_sequence=int(data.get('throw_sequence') or 0),
            updated_at=_parse_time(data.get('updated_at')) or utcnow(),
        )
        match.throw_sequence = max(match.throw_sequence, match.latest_sequence())
        match._infer_active_player(data.get('active_player_index'))
        return match

    def latest_sequence(self) -> int:
        return max((t.sequence for p in self.players for t in p.history + p.current_turn), default=0)

    def _infer_active_player(self, stored_index: Any) -> None:
        if not self.players:
            return
        if self.state is not MatchState.ACTIVE:
            # Only an active match has an active player.
            for p in self.players:
                p.is_active = False
            if stored_index is not None and 0 <= int(stored_index) < len(self.players):
                self.active_player_index = int(stored_index)
            return
        flagged = [i for i, p in enumerate(self.players) if p.is_active]
        index = flagged[0] if flagged else 0
        for i, p in enumerate(self.players):
            p.is_active = i == index
        self.active_player_index = index
