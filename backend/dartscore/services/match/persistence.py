"""The persistence contract the state machine writes through.

``MatchStore`` is all the engine knows about storage. ``SqlMatchStore``
in :mod:`.store` backs it with the application database;
``InMemoryMatchStore`` keeps everything in dictionaries and is what the
engine uses when no store is injected.
"""

import copy
import itertools
import threading
from typing import Any, Dict, List, Optional, Protocol

from .summary import build_match_summaries


class MatchStore(Protocol):
    def save_match(self, snapshot: Dict[str, Any], autosave: bool = False) -> Optional[int]:
        """Write a full snapshot; returns the match id (assigned on first save)."""

    def load_match(self, match_id: int) -> Optional[Dict[str, Any]]:
        ...

    def save_throw(self, match_id: int, throw: Dict[str, Any]) -> None:
        ...

    def update_throw(self, match_id: int, throw: Dict[str, Any]) -> None:
        ...

    def generate_summaries(self, match_id: int) -> None:
        ...

    def log_action(self, match_id: Optional[int], action: str, details: str,
                   performed_by: str = 'system') -> None:
        ...


class InMemoryMatchStore:
    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self.matches: Dict[int, Dict[str, Any]] = {}
        self.throws: Dict[int, Dict[str, Dict[str, Any]]] = {}
        self.summaries: Dict[int, List[Dict[str, Any]]] = {}
        self.logs: List[Dict[str, Any]] = []
        self.writes: List[Dict[str, Any]] = []

    def save_match(self, snapshot: Dict[str, Any], autosave: bool = False) -> Optional[int]:
        with self._lock:
            data = copy.deepcopy(snapshot)
            if data.get('id') is None:
                data['id'] = next(self._ids)
            self.matches[data['id']] = data
            self.writes.append(copy.deepcopy(data))
            return data['id']

    def load_match(self, match_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            data = self.matches.get(match_id)
            return copy.deepcopy(data) if data is not None else None

    def save_throw(self, match_id: int, throw: Dict[str, Any]) -> None:
        with self._lock:
            self.throws.setdefault(match_id, {})[throw['id']] = dict(throw)

    def update_throw(self, match_id: int, throw: Dict[str, Any]) -> None:
        self.save_throw(match_id, throw)

    def generate_summaries(self, match_id: int) -> None:
        snapshot = self.load_match(match_id)
        if snapshot is not None:
            self.summaries[match_id] = build_match_summaries(snapshot)

    def log_action(self, match_id: Optional[int], action: str, details: str,
                   performed_by: str = 'system') -> None:
        with self._lock:
            self.logs.append({
                'match_id': match_id,
                'action': action,
                'details': details,
                'performed_by': performed_by,
            })
