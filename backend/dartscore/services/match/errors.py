class MatchError(Exception):
    """Base class for failures reported by the match engine."""

    code = 'match_error'


class InvalidInput(MatchError):
    code = 'invalid_input'


class InvalidTransition(MatchError):
    code = 'invalid_transition'


class NotYourTurn(MatchError):
    code = 'not_your_turn'


class TurnComplete(MatchError):
    code = 'turn_complete'


class NotFound(MatchError):
    code = 'not_found'


class AlreadyInProgress(MatchError):
    code = 'already_in_progress'


class PersistenceError(MatchError):
    """Raised by a store when a read or write could not be completed."""

    code = 'persistence_error'
