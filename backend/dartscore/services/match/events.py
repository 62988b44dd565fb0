"""Outbound event records and the notifier contract.

The state machine publishes ``MatchEvent`` records in the order its
operations were applied. A transport drains them and fans them out to
viewers; the engine does not know how.
"""

import queue
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol


MATCH_STATE_CHANGED = 'matchStateChanged'
THROW_PROCESSED = 'throwProcessed'
THROW_CORRECTED = 'throwCorrected'
PLAYER_CHANGED = 'playerChanged'
LEG_CHANGED = 'legChanged'
MATCH_ENDED = 'matchEnded'
BULLSHOT_RECORDED = 'bullshotRecorded'
PERSISTENCE_DEGRADED = 'persistenceDegraded'


@dataclass(frozen=True)
class MatchEvent:
    name: str
    board_id: str
    match_id: Optional[int]
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event': self.name,
            'board_id': self.board_id,
            'match_id': self.match_id,
            'payload': self.payload,
        }


class Notifier(Protocol):
    def publish(self, event: MatchEvent) -> None:
        ...


class QueueNotifier:
    """Collects events on a queue until a consumer drains them."""

    def __init__(self) -> None:
        self.queue: 'queue.Queue[MatchEvent]' = queue.Queue()

    def publish(self, event: MatchEvent) -> None:
        self.queue.put(event)

    def drain(self) -> List[MatchEvent]:
        events = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events
