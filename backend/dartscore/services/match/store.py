"""SQLAlchemy backed ``MatchStore``.

The full snapshot is written as JSON on the match row (``Match.scores``);
``MatchPlayer`` and ``Throw`` rows mirror it for querying and let a match
be rebuilt if the JSON is missing.
"""

import json
from contextlib import contextmanager
from typing import Any, Dict, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from dartscore import db
from dartscore.models import GameLog, Match, MatchPlayer, MatchSummary, Throw

from .errors import PersistenceError
from .state import utcnow
from .summary import build_match_summaries


class SqlMatchStore:
    def __init__(self, app) -> None:
        self.app = app

    @contextmanager
    def _session(self, operation: str):
        if has_app_context() and current_app._get_current_object() is self.app:
            ctx = None
        else:
            ctx = self.app.app_context()
            ctx.push()
        try:
            yield db.session
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            self.app.logger.error(f"[store] op={operation} failed: {exc}")
            raise PersistenceError(f'{operation} failed: {exc}') from exc
        except Exception:
            db.session.rollback()
            raise
        finally:
            if ctx is not None:
                ctx.pop()

    def save_match(self, snapshot: Dict[str, Any], autosave: bool = False) -> Optional[int]:
        with self._session('save_match') as session:
            record = session.get(Match, snapshot['id']) if snapshot.get('id') is not None else None
            if record is None:
                record = Match(id=snapshot.get('id'), board_id=str(snapshot['board_id']))
                session.add(record)
            record.board_id = str(snapshot['board_id'])
            record.game_type = snapshot.get('mode') or 'x01'
            record.status = snapshot.get('state') or 'pending'
            record.legs_to_win = snapshot.get('legs_to_win') or 1
            record.current_leg = snapshot.get('current_leg') or 1
            record.settings = json.dumps(snapshot.get('settings') or {})
            winners = [p['id'] for p in snapshot.get('players') or [] if p.get('is_winner')]
            record.winner_id = winners[0] if record.status == 'completed' and winners else None
            if autosave:
                record.last_autosave = utcnow()
            session.flush()

            existing = {mp.player_id: mp for mp in record.players}
            for p in snapshot.get('players') or []:
                mp = existing.get(p['id'])
                if mp is None:
                    mp = MatchPlayer(player_id=p['id'], position=p.get('position') or 1, score=p['score'])
                    record.players.append(mp)
                mp.position = p.get('position') or mp.position
                mp.score = p['score']
                mp.legs_won = p.get('legs_won') or 0
                mp.is_active = bool(p.get('is_active'))

            record.scores = json.dumps({**snapshot, 'id': record.id})
            match_id = record.id
        if autosave:
            self.app.logger.debug(f"[autosave] match={match_id} board={snapshot['board_id']}")
        return match_id

    def load_match(self, match_id: int) -> Optional[Dict[str, Any]]:
        with self._session('load_match') as session:
            record = session.get(Match, match_id)
            if record is None:
                return None
            snapshot = record.snapshot
            if snapshot:
                snapshot['id'] = record.id
                return snapshot
            return self._rebuild(record)

    @staticmethod
    def _rebuild(record: Match) -> Dict[str, Any]:
        """Snapshot from the relational rows of a match saved without JSON."""
        players = []
        by_id = {}
        for mp in record.players:
            data = {
                'id': mp.player_id,
                'name': mp.player.name if mp.player else None,
                'position': mp.position,
                'score': mp.score,
                'legs_won': mp.legs_won,
                'is_active': mp.is_active,
                'history': [],
            }
            players.append(data)
            by_id[mp.player_id] = data
        for row in record.throws.order_by(Throw.sequence).all():
            owner = by_id.get(row.player_id)
            if owner is not None:
                throw = row.to_dict()
                throw['timestamp'] = row.created_at.isoformat() if row.created_at else None
                owner['history'].append(throw)
        return {
            'id': record.id,
            'board_id': record.board_id,
            'mode': record.game_type,
            'state': record.status,
            'legs_to_win': record.legs_to_win,
            'current_leg': record.current_leg,
            'settings': json.loads(record.settings) if record.settings else {},
            'players': players,
        }

    def save_throw(self, match_id: int, throw: Dict[str, Any]) -> None:
        with self._session('save_throw') as session:
            coords = throw.get('coordinates')
            session.merge(Throw(
                id=throw['id'],
                match_id=match_id,
                player_id=throw['player_id'],
                leg=throw['leg'],
                round=throw['round'],
                throw_index=throw['throw_index'],
                sequence=throw['sequence'],
                segment=throw['segment'],
                score=throw['score'],
                score_before=throw['score_before'],
                turn_start=throw['turn_start'],
                remaining=throw['remaining'],
                bust=bool(throw.get('bust')),
                game_shot=bool(throw.get('game_shot')),
                corrected=bool(throw.get('corrected')),
                coordinates=json.dumps(coords) if coords is not None else None,
            ))

    def update_throw(self, match_id: int, throw: Dict[str, Any]) -> None:
        self.save_throw(match_id, throw)

    def generate_summaries(self, match_id: int) -> None:
        snapshot = self.load_match(match_id)
        if snapshot is None:
            return
        rows = build_match_summaries(snapshot)
        with self._session('generate_summaries') as session:
            existing = {s.player_id: s for s in MatchSummary.query.filter_by(match_id=match_id).all()}
            for row in rows:
                summary = existing.get(row['player_id'])
                if summary is None:
                    summary = MatchSummary(match_id=match_id, player_id=row['player_id'])
                    session.add(summary)
                for key, value in row.items():
                    if key in ('match_id', 'player_id', 'player_name'):
                        continue
                    setattr(summary, key, value)
        self.app.logger.info(f"[summary] match={match_id} rows={len(rows)}")

    def log_action(self, match_id: Optional[int], action: str, details: str,
                   performed_by: str = 'system') -> None:
        with self._session('log_action') as session:
            session.add(GameLog(match_id=match_id, action=action, details=details,
                                performed_by=performed_by or 'system'))
