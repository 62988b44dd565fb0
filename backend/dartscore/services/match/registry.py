import logging
import threading
from typing import Callable, Dict, Optional

from .errors import AlreadyInProgress, NotFound
from .events import Notifier
from .manager import MatchManager
from .persistence import MatchStore


logger = logging.getLogger(__name__)


class BoardRegistry:
    """One ``MatchManager`` per board id, created on first use.

    Managers on different boards share the store and notifier but never a
    lock, so boards make progress independently.
    """

    def __init__(self, store: MatchStore, notifier: Notifier, autosave_interval: float = 30.0,
                 spawn: Optional[Callable] = None, sleep: Optional[Callable[[float], None]] = None,
                 heartbeat: float = 1.0, min_players: int = 2) -> None:
        self.store = store
        self.notifier = notifier
        self.autosave_interval = autosave_interval
        self.spawn = spawn
        self.sleep = sleep
        self.heartbeat = heartbeat
        self.min_players = min_players
        self._managers: Dict[str, MatchManager] = {}
        self._lock = threading.Lock()

    def get(self, board_id) -> MatchManager:
        with self._lock:
            return self._get(str(board_id))

    def _get(self, key):
        manager = self._managers.get(key)
        if manager is None:
            manager = MatchManager(
                store=self.store,
                notifier=self.notifier,
                autosave_interval=self.autosave_interval,
                spawn=self.spawn,
                sleep=self.sleep,
                heartbeat=self.heartbeat,
                min_players=self.min_players,
                board_id=key,
            )
            self._managers[key] = manager
            logger.info(f"[board] registered board={key}")
        return manager

    def load_match(self, board_id, match_id):
        """Load a saved match onto ``board_id``.

        Refused while any other board holds the same match live, so a match
        is only ever mutated by one manager.
        """
        key = str(board_id)
        with self._lock:
            for other_key, other in self._managers.items():
                if other_key != key and other.has_live_match and other.match_id == match_id:
                    raise AlreadyInProgress(f'Match {match_id} is in progress on board {other_key}')
            return self._get(key).load_match(match_id)

    def peek(self, board_id) -> Optional[MatchManager]:
        with self._lock:
            return self._managers.get(str(board_id))

    def release(self, board_id) -> None:
        key = str(board_id)
        with self._lock:
            manager = self._managers.get(key)
            if manager is None:
                raise NotFound(f'Board {key} is not registered')
            if manager.has_live_match:
                raise AlreadyInProgress(f'Board {key} still has a match in progress')
            manager.close()
            del self._managers[key]
        logger.info(f"[board] released board={key}")

    @property
    def boards(self):
        with self._lock:
            return sorted(self._managers)
