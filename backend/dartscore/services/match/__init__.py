"""Match domain services: x01 rules, statistics and the per-board state machine.

Everything here except :mod:`.store` is plain Python with no Flask import,
so HTTP routes, socket handlers and tests drive the same engine. The SQL
store is imported explicitly by the application factory.
"""

from .errors import (
    AlreadyInProgress,
    InvalidInput,
    InvalidTransition,
    MatchError,
    NotFound,
    NotYourTurn,
    PersistenceError,
    TurnComplete,
)
from .events import MatchEvent, Notifier, QueueNotifier
from .manager import BullResult, MatchManager, ThrowOutcome
from .persistence import InMemoryMatchStore, MatchStore
from .registry import BoardRegistry
from .state import MatchState
from .validator import MatchSettings, ValidationResult
