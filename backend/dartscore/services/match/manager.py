"""Match state machine for one board.

A ``MatchManager`` owns at most one loaded match. Every mutating call runs
under the manager's lock: it applies the x01 rules from :mod:`.validator`,
folds the outcome into :mod:`.stats`, writes the new snapshot through the
injected ``MatchStore`` and then publishes the events it produced, in
order, to the injected ``Notifier``. ``get_match`` reads without the lock.

Phases run ``pending -> warmup -> bullshot -> active -> completed``; a
match can also be canceled from any phase before it completes.
"""

import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence

from . import stats as stats_tracker
from . import validator
from .errors import (
    AlreadyInProgress,
    InvalidInput,
    InvalidTransition,
    NotFound,
    NotYourTurn,
    PersistenceError,
    TurnComplete,
)
from .events import (
    BULLSHOT_RECORDED,
    LEG_CHANGED,
    MATCH_ENDED,
    MATCH_STATE_CHANGED,
    PERSISTENCE_DEGRADED,
    PLAYER_CHANGED,
    THROW_CORRECTED,
    THROW_PROCESSED,
    MatchEvent,
    Notifier,
    QueueNotifier,
)
from .persistence import InMemoryMatchStore, MatchStore
from .scheduler import AutosaveTimer
from .state import Match, MatchState, Player, Throw, utcnow
from .validator import MatchSettings, ValidationResult


logger = logging.getLogger(__name__)

DARTS_PER_TURN = 3


@dataclass(frozen=True)
class BullResult:
    player_id: int
    segment: str
    distance: int
    formatted_distance: str

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'segment': self.segment,
            'distance': self.distance,
            'formatted_distance': self.formatted_distance,
        }


@dataclass(frozen=True)
class ThrowOutcome:
    throw: Throw
    validation: ValidationResult
    bust: bool = False
    game_shot: bool = False
    leg_won: bool = False
    match_won: bool = False
    checkout_suggestion: Optional[List[str]] = None

    def to_dict(self):
        return {
            'throw': self.throw.to_dict(),
            'validation': self.validation.to_dict(),
            'bust': self.bust,
            'game_shot': self.game_shot,
            'leg_won': self.leg_won,
            'match_won': self.match_won,
            'checkout_suggestion': self.checkout_suggestion,
        }


class MatchManager:
    def __init__(self, store: Optional[MatchStore] = None, notifier: Optional[Notifier] = None,
                 autosave_interval=30.0, spawn=None, sleep=None, heartbeat=1.0, min_players=2,
                 board_id=None):
        self.board_id = str(board_id) if board_id is not None else None
        self.store = store if store is not None else InMemoryMatchStore()
        self.notifier = notifier if notifier is not None else QueueNotifier()
        self.min_players = max(2, int(min_players))
        self._lock = threading.RLock()
        self._match: Optional[Match] = None
        self._pending: List[MatchEvent] = []
        self._autosave: Optional[AutosaveTimer] = None
        if autosave_interval and autosave_interval > 0:
            self._autosave = AutosaveTimer(autosave_interval, self.autosave,
                                           spawn=spawn, sleep=sleep, step=heartbeat)

    # ---- queries ----

    def get_match(self) -> Optional[Dict[str, Any]]:
        match = self._match
        return match.to_snapshot() if match is not None else None

    @property
    def has_live_match(self) -> bool:
        match = self._match
        return match is not None and not match.state.is_terminal

    @property
    def match_id(self):
        match = self._match
        return match.id if match is not None else None

    # ---- lifecycle ----

    def create_match(
        self,
        board_id,
        players: Sequence[Mapping[str, Any]],
        mode: str = 'x01',
        legs_to_win: int = 3,
        settings: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        with self._lock:
            if self.has_live_match:
                raise AlreadyInProgress(f'Match {self._match.id} already in progress on board {board_id}')

            players = list(players or [])
            if len(players) < self.min_players:
                raise InvalidInput(f'At least {self.min_players} players are required')
            try:
                ids = [int(p['id']) for p in players]
            except (KeyError, TypeError, ValueError):
                raise InvalidInput('Every player needs an integer id')
            if len(set(ids)) != len(ids):
                raise InvalidInput('Players must be distinct')
            try:
                legs_to_win = int(legs_to_win)
            except (TypeError, ValueError):
                raise InvalidInput('legs_to_win must be an integer')
            if legs_to_win < 1:
                raise InvalidInput('legs_to_win must be at least 1')

            settings = dict(settings or {})
            starting_score = validator.resolve_starting_score(mode, settings.get('starting_score'))
            if starting_score is None:
                raise InvalidInput(f'Unsupported game mode: {mode}')

            match = Match.create(board_id, players, mode, legs_to_win,
                                 MatchSettings.from_dict(settings, starting_score=starting_score))
            self._match = match
            logger.info(f"[create] board={match.board_id} mode={mode} start={starting_score} "
                        f"players={ids} legs_to_win={legs_to_win}")
            snapshot = self._finish(match)
            self._start_autosave()
            return snapshot

    def start_warmup(self) -> Dict[str, Any]:
        with self._lock:
            match = self._require_match()
            self._require_state(match, 'start warmup', MatchState.PENDING, MatchState.WARMUP)
            match.state = MatchState.WARMUP
            return self._finish(match)

    def end_warmup(self) -> Dict[str, Any]:
        with self._lock:
            match = self._require_match()
            self._require_state(match, 'end warmup', MatchState.WARMUP)
            match.state = MatchState.BULLSHOT
            return self._finish(match)

    def record_bull_shot(self, player_id: int, segment: str, coordinates) -> BullResult:
        with self._lock:
            match = self._require_match()
            self._require_state(match, 'record bull shot', MatchState.BULLSHOT)
            self._find_player(match, player_id)
            if coordinates is None:
                raise InvalidInput('Bull shot needs board coordinates')
            distance, label = validator.distance_from_bull(self._coordinates(coordinates))
            result = BullResult(int(player_id), validator.normalize_segment(segment), distance, label)
            self._emit(match, BULLSHOT_RECORDED, result.to_dict())
            self._flush()
            return result

    def set_bull_winner(self, player_id: int) -> Dict[str, Any]:
        with self._lock:
            match = self._require_match()
            self._require_state(match, 'set bull winner', MatchState.BULLSHOT)
            index, winner = self._find_player(match, player_id)
            match.leg_starters.append(winner.id)
            for p in match.players:
                p.is_active = p is winner
            match.active_player_index = index
            match.state = MatchState.ACTIVE
            logger.info(f"[bull] match={match.id} winner={winner.id} starts leg 1")
            return self._finish(match)

    def end_match(self, winner_id: Optional[int] = None, performed_by: str = 'system') -> Dict[str, Any]:
        with self._lock:
            match = self._require_match()
            self._require_live(match, 'end match')
            if winner_id is not None:
                _, winner = self._find_player(match, winner_id)
                winner.is_winner = True
            self._close(match, MatchState.COMPLETED)
            self._log_action(match, 'match_ended',
                             f'Match ended by {performed_by} with winner {winner_id}', performed_by)
            return self._finish(match, ended=True)

    def cancel_match(self, performed_by: str = 'system') -> Dict[str, Any]:
        with self._lock:
            match = self._require_match()
            self._require_live(match, 'cancel match')
            self._close(match, MatchState.CANCELED)
            self._log_action(match, 'match_canceled', f'Match canceled by {performed_by}', performed_by)
            return self._finish(match, ended=True)

    def load_match(self, match_id: int) -> Dict[str, Any]:
        """Rehydrate a saved match onto this manager.

        A manager bound to a board takes the match over: the match is moved
        to this board and, if it is still live, saved that way. The registry
        makes sure no other board holds the same match live at the time.
        """
        with self._lock:
            current = self._match
            if current is not None and not current.state.is_terminal and current.id != match_id:
                raise AlreadyInProgress(f'Match {current.id} is loaded on board {current.board_id}')
            snapshot = self.store.load_match(match_id)
            if snapshot is None:
                raise NotFound(f'Match with id {match_id} not found')
            match = Match.from_snapshot(snapshot)
            if match.id is None:
                match.id = match_id
            self._stop_autosave()
            self._match = match
            moved_from = None
            if self.board_id is not None and match.board_id != self.board_id:
                moved_from, match.board_id = match.board_id, self.board_id
            logger.info(f"[load] match={match.id} board={match.board_id} state={match.state.value}"
                        + (f" moved_from={moved_from}" if moved_from else ''))
            if moved_from and not match.state.is_terminal:
                self._persist(match)
            loaded = match.to_snapshot()
            self._emit(match, MATCH_STATE_CHANGED, loaded)
            self._flush()
            if not match.state.is_terminal:
                self._start_autosave()
            return loaded

    def autosave(self) -> None:
        with self._lock:
            match = self._match
            if match is None or match.state.is_terminal:
                return
            self._persist(match, autosave=True)
            self._flush()

    def close(self) -> None:
        self._stop_autosave()

    # ---- scoring ----

    def process_throw(self, player_id: int, segment: str, score: int, coordinates=None) -> ThrowOutcome:
        with self._lock:
            match = self._require_match()
            self._require_state(match, 'process throw', MatchState.ACTIVE)
            index, player = self._find_player(match, player_id)
            if index != match.active_player_index:
                raise NotYourTurn(f"Not player {player_id}'s turn")
            if len(player.current_turn) >= DARTS_PER_TURN:
                raise TurnComplete(f'Player {player_id} has already thrown {DARTS_PER_TURN} darts')
            score = self._coerce_score(score)
            coordinates = self._coordinates(coordinates)

            segment = validator.normalize_segment(segment)
            self._check_segment(segment, score)
            result = validator.validate_throw(player.score, segment, score,
                                              len(player.current_turn), match.settings)
            if not result.valid:
                raise InvalidInput(result.reason or 'Invalid throw')

            remaining = player.original_score if result.bust else result.new_score
            throw = match.new_throw(player, segment, score, remaining,
                                    result.bust, result.game_shot, coordinates)
            player.current_turn.append(throw)
            player.darts_thrown += 1
            match.stats.players[player.id] = stats_tracker.on_throw(
                match.stats.get(player.id),
                throw.points,
                result.bust,
                stats_tracker.is_checkout_attempt(throw.score_before),
                result.game_shot,
                throw.turn_start if result.game_shot else 0,
            )
            player.score = remaining

            match_won = False
            suggestion = None
            if result.bust:
                # A busted turn is over: later darts cannot recover it.
                self._advance_turn(match)
            elif result.game_shot:
                self._commit_turn(match, player)
                match_won = self._award_leg(match, player)
            elif len(player.current_turn) >= DARTS_PER_TURN:
                self._advance_turn(match)
            elif match.settings.checkout_suggestions and stats_tracker.is_checkout_position(player.score):
                suggestion = validator.checkout_suggestion(player.score, DARTS_PER_TURN - len(player.current_turn))

            outcome = ThrowOutcome(
                throw=throw,
                validation=result,
                bust=result.bust,
                game_shot=result.game_shot,
                leg_won=result.game_shot,
                match_won=match_won,
                checkout_suggestion=suggestion,
            )
            logger.debug(f"[throw] match={match.id} player={player.id} segment={segment} score={score} "
                         f"bust={result.bust} game_shot={result.game_shot} remaining={player.score}")
            self._persist_throw(match, throw)
            self._emit(match, THROW_PROCESSED, outcome.to_dict())
            self._finish(match, ended=match_won)
            return outcome

    def correct_throw(self, throw_id: str, segment: str, score: int,
                      performed_by: str = 'system') -> ThrowOutcome:
        """Point-fix a committed throw.

        Later throws of the leg are not re-derived; only the owner's current
        score (when the throw is in the current leg) and statistics move.
        """
        with self._lock:
            match = self._require_match()
            self._require_live(match, 'correct throw')
            located = match.find_committed_throw(str(throw_id))
            if located is None:
                raise NotFound(f'Throw with id {throw_id} not found')
            player, throw = located
            score = self._coerce_score(score)
            segment = validator.normalize_segment(segment)
            self._check_segment(segment, score)

            result = validator.validate_throw(throw.score_before, segment, score,
                                              throw.throw_index - 1, match.settings)
            if not result.valid:
                raise InvalidInput(result.reason or 'Invalid throw')
            new_points = 0 if result.bust else throw.score_before - result.new_score
            delta = new_points - throw.points
            if delta and throw.leg == match.current_leg and player.score - delta <= 0:
                raise InvalidInput(f'Correcting throw {throw.id} to {segment} would leave player '
                                   f'{player.id} on {player.score - delta}; award the leg instead')
            if throw.sequence < match.latest_sequence_in_leg(throw.leg):
                logger.warning(f"[correct] match={match.id} throw={throw.id} is not the latest throw of "
                               f"leg {throw.leg}; later throws keep their recorded outcome")

            previous = f'{throw.segment}/{throw.score}'
            throw.segment = segment
            throw.score = score
            throw.bust = result.bust
            throw.game_shot = result.game_shot
            throw.remaining = throw.turn_start if result.bust else result.new_score
            throw.corrected = True
            if delta and throw.leg == match.current_leg:
                player.score -= delta
                player.original_score -= delta

            live = match.stats.get(player.id)
            match.stats.players[player.id] = replace(
                stats_tracker.replay(player.history + player.current_turn),
                legs_won=live.legs_won,
                leg_darts=live.leg_darts,
                best_leg_darts=live.best_leg_darts,
                darts_per_leg=live.darts_per_leg,
            )

            outcome = ThrowOutcome(throw=throw, validation=result,
                                   bust=result.bust, game_shot=result.game_shot)
            if match.id is not None:
                self._store_call('update_throw', match.id, throw.to_dict())
            self._log_action(match, 'throw_corrected',
                             f'Throw {throw.id} of player {player.id}: {previous} -> {segment}/{score}',
                             performed_by)
            self._emit(match, THROW_CORRECTED, outcome.to_dict())
            self._finish(match)
            return outcome

    def manual_player_switch(self, performed_by: str = 'system') -> Dict[str, Any]:
        with self._lock:
            match = self._require_match()
            self._require_state(match, 'switch player', MatchState.ACTIVE)
            previous = match.active_player.id
            self._advance_turn(match)
            self._log_action(match, 'player_switch',
                             f'Turn passed from {previous} to {match.active_player.id} by {performed_by}',
                             performed_by)
            return self._finish(match)

    # ---- admin overrides ----

    def set_active_player(self, player_id: int, performed_by: str = 'system') -> Dict[str, Any]:
        with self._lock:
            match = self._require_match()
            self._require_state(match, 'set active player', MatchState.ACTIVE)
            index, target = self._find_player(match, player_id)
            current = match.active_player
            self._commit_turn(match, current)
            current.is_active = False
            match.active_player_index = index
            target.is_active = True
            self._emit(match, PLAYER_CHANGED, {
                'previous_player_id': current.id,
                'active_player_id': target.id,
                'round': match.round,
            })
            self._log_action(match, 'player_switch_override',
                             f'Active player manually switched to {target.id} by {performed_by}',
                             performed_by)
            return self._finish(match)

    def override_score(self, player_id: int, new_score: int, performed_by: str = 'system') -> Dict[str, Any]:
        with self._lock:
            match = self._require_match()
            self._require_state(match, 'override score', MatchState.ACTIVE)
            _, player = self._find_player(match, player_id)
            new_score = self._coerce_score(new_score, upper=match.settings.starting_score)
            if new_score < 1:
                raise InvalidInput('Score override must leave at least 1 point')
            old_score = player.score
            delta = new_score - old_score
            player.score = new_score
            player.original_score += delta
            self._log_action(match, 'score_override',
                             f'Score override for player {player.id}: {old_score} -> {new_score} by {performed_by}',
                             performed_by)
            return self._finish(match)

    def force_leg_winner(self, player_id: int, performed_by: str = 'system') -> Dict[str, Any]:
        with self._lock:
            match = self._require_match()
            self._require_state(match, 'force leg result', MatchState.ACTIVE)
            _, winner = self._find_player(match, player_id)
            leg = match.current_leg
            self._commit_turn(match, match.active_player)
            match_won = self._award_leg(match, winner)
            self._log_action(match, 'leg_override',
                             f'Leg {leg} force-completed with winner {winner.id} by {performed_by}',
                             performed_by)
            return self._finish(match, ended=match_won)

    # ---- turn and leg mechanics ----

    def _commit_turn(self, match: Match, player: Player) -> None:
        turn = player.current_turn
        total = 0 if any(t.bust for t in turn) else sum(t.points for t in turn)
        match.stats.players[player.id] = stats_tracker.on_turn_complete(match.stats.get(player.id), total)
        player.history.extend(turn)
        player.current_turn = []
        player.original_score = player.score

    def _advance_turn(self, match: Match) -> None:
        current = match.active_player
        self._commit_turn(match, current)
        current.is_active = False
        match.active_player_index = (match.active_player_index + 1) % len(match.players)
        if match.active_player_index == 0:
            match.round += 1
        nxt = match.active_player
        nxt.is_active = True
        self._emit(match, PLAYER_CHANGED, {
            'previous_player_id': current.id,
            'active_player_id': nxt.id,
            'round': match.round,
        })

    def _award_leg(self, match: Match, winner: Player) -> bool:
        """Give ``winner`` the current leg; returns True when that wins the match."""
        winner.is_winner = True
        winner.legs_won += 1
        match.stats.players[winner.id] = stats_tracker.on_leg_win(
            match.stats.get(winner.id), winner.darts_in_leg(match.current_leg))
        match.stats.legs_played += 1
        logger.info(f"[leg] match={match.id} leg={match.current_leg} winner={winner.id} "
                    f"legs_won={winner.legs_won}/{match.legs_to_win}")
        if winner.legs_won >= match.legs_to_win:
            self._close(match, MatchState.COMPLETED)
            return True
        self._setup_next_leg(match)
        return False

    def _setup_next_leg(self, match: Match) -> None:
        match.current_leg += 1
        match.stats.current_leg = match.current_leg

        previous = match.player_index(match.leg_starters[-1]) if match.leg_starters else None
        if previous is None:
            previous = match.active_player_index
        next_index = (previous + 1) % len(match.players)
        starter = match.players[next_index]
        match.leg_starters.append(starter.id)

        start = match.settings.starting_score
        for p in match.players:
            p.score = start
            p.original_score = start
            p.is_winner = False
            p.is_active = p is starter
            p.current_turn = []
        match.active_player_index = next_index
        match.round = 1
        self._emit(match, LEG_CHANGED, {'current_leg': match.current_leg, 'leg_starter': starter.id})

    def _close(self, match: Match, state: MatchState) -> None:
        match.state = state
        match.stats.end_time = utcnow()
        for p in match.players:
            p.is_active = False

    # ---- guards ----

    def _require_match(self) -> Match:
        if self._match is None:
            raise NotFound('No match in progress')
        return self._match

    @staticmethod
    def _require_state(match, action, *states):
        if match.state not in states:
            raise InvalidTransition(f'Cannot {action} in state: {match.state.value}')

    @staticmethod
    def _require_live(match, action):
        if match.state.is_terminal:
            raise InvalidTransition(f'Cannot {action} in state: {match.state.value}')

    @staticmethod
    def _find_player(match, player_id):
        try:
            index = match.player_index(int(player_id))
        except (TypeError, ValueError):
            index = None
        if index is None:
            raise NotFound(f'Player with id {player_id} not found')
        return index, match.players[index]

    @staticmethod
    def _coordinates(value):
        if value is None:
            return None
        try:
            if isinstance(value, Mapping):
                return (float(value['x']), float(value['y']))
            x, y = value
            return (float(x), float(y))
        except (KeyError, TypeError, ValueError):
            raise InvalidInput(f'Invalid coordinates: {value!r}')

    @staticmethod
    def _coerce_score(value, upper=validator.MAX_DART_SCORE):
        try:
            score = int(value)
        except (TypeError, ValueError):
            raise InvalidInput(f'Invalid score: {value!r}')
        if score < 0 or score > upper:
            raise InvalidInput(f'Invalid score: {score}')
        return score

    @staticmethod
    def _check_segment(segment, score):
        # unknown labels are taken at their reported score
        expected = validator.segment_score(segment)
        if expected is not None and expected != score:
            raise InvalidInput(f'Score {score} does not match segment {segment} ({expected})')

    # ---- persistence and events ----

    def _finish(self, match: Match, ended: bool = False) -> Dict[str, Any]:
        match.updated_at = utcnow()
        self._persist(match)
        snapshot = match.to_snapshot()
        self._emit(match, MATCH_STATE_CHANGED, snapshot)
        if ended:
            self._stop_autosave()
            if match.state is MatchState.COMPLETED and match.id is not None:
                self._store_call('generate_summaries', match.id)
            self._emit(match, MATCH_ENDED, snapshot)
        self._flush()
        return snapshot

    def _persist(self, match: Match, autosave: bool = False) -> None:
        match_id = self._store_call('save_match', match.to_snapshot(), autosave=autosave)
        if match.id is None and match_id is not None:
            match.id = match_id

    def _persist_throw(self, match: Match, throw: Throw) -> None:
        if match.id is not None:
            self._store_call('save_throw', match.id, throw.to_dict())

    def _log_action(self, match, action, details, performed_by):
        logger.info(f"[{action}] match={match.id} {details}")
        self._store_call('log_action', match.id, action, details, performed_by=performed_by)

    def _store_call(self, operation, *args, **kwargs):
        """Run a store operation; failures degrade, they never undo live state."""
        try:
            return getattr(self.store, operation)(*args, **kwargs)
        except PersistenceError as exc:
            match = self._match
            logger.error(f"[persist-failed] match={match.id if match else None} op={operation} error={exc}")
            if match is not None:
                self._emit(match, PERSISTENCE_DEGRADED, {'operation': operation, 'error': str(exc)})
            return None

    def _emit(self, match, name, payload):
        self._pending.append(MatchEvent(name=name, board_id=match.board_id, match_id=match.id, payload=payload))

    def _flush(self):
        pending, self._pending = self._pending, []
        for event in pending:
            try:
                self.notifier.publish(event)
            except Exception:
                logger.exception(f"[notify-failed] event={event.name} board={event.board_id}")

    def _start_autosave(self):
        if self._autosave is not None:
            self._autosave.start()

    def _stop_autosave(self):
        if self._autosave is not None:
            self._autosave.stop()
