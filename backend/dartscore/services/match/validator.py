"""Throw validation and checkout arithmetic for x01 legs.

Nothing in here reads or writes match state; the state machine passes in
the numbers it needs and decides what to do with the result.
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple


SUPPORTED_STARTING_SCORES = (301, 501, 701, 901)
DEFAULT_STARTING_SCORE = 501
MAX_DART_SCORE = 60
MAX_CHECKOUT = 170
BOGEY_SCORES = frozenset({169, 168, 166, 165, 163, 162, 159})

INNER_BULL = frozenset({'BULL', 'DBULL', 'D25', 'B50', '50'})
OUTER_BULL = frozenset({'SBULL', 'S25', 'B25', '25'})
MISS = frozenset({'MISS', 'M', 'S0', '0', 'OUT'})


@dataclass(frozen=True)
class MatchSettings:
    """Rule options fixed for the lifetime of a match."""

    double_in: bool = False
    double_out: bool = True
    master_out: bool = False
    starting_score: int = DEFAULT_STARTING_SCORE
    checkout_suggestions: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]], starting_score: Optional[int] = None) -> 'MatchSettings':
        data = data or {}
        return cls(
            double_in=bool(data.get('double_in', False)),
            double_out=bool(data.get('double_out', True)),
            master_out=bool(data.get('master_out', False)),
            starting_score=int(starting_score or data.get('starting_score') or DEFAULT_STARTING_SCORE),
            checkout_suggestions=bool(data.get('checkout_suggestions', True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ValidationResult:
    valid: bool = True
    bust: bool = False
    game_shot: bool = False
    new_score: Optional[int] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def normalize_segment(segment: Any) -> str:
    return str(segment or '').strip().upper()


def is_double(segment: str) -> bool:
    seg = normalize_segment(segment)
    if seg in INNER_BULL:
        return True
    return seg.startswith('D') and seg[1:].isdigit()


def is_triple(segment: str) -> bool:
    seg = normalize_segment(segment)
    return seg.startswith('T') and seg[1:].isdigit()


def is_master(segment: str) -> bool:
    return is_double(segment) or is_triple(segment)


def segment_score(segment: str) -> Optional[int]:
    """Points for a segment label, or None when the label is not recognised."""
    seg = normalize_segment(segment)
    if seg in INNER_BULL:
        return 50
    if seg in OUTER_BULL:
        return 25
    if seg in MISS:
        return 0
    multiplier = {'S': 1, 'D': 2, 'T': 3}.get(seg[:1])
    number = seg[1:] if multiplier else seg
    if not number.isdigit():
        return None
    value = int(number)
    if not 1 <= value <= 20:
        return None
    return value * (multiplier or 1)


def resolve_starting_score(mode: str, requested: Any = None) -> Optional[int]:
    """Starting score for a game mode, or None if the mode is not an x01 variant."""
    mode = str(mode or '').strip().lower()
    if mode.isdigit() and int(mode) in SUPPORTED_STARTING_SCORES:
        return int(mode)
    if mode != 'x01':
        return None
    try:
        value = int(requested) if requested is not None else DEFAULT_STARTING_SCORE
    except (TypeError, ValueError):
        return DEFAULT_STARTING_SCORE
    return value if value in SUPPORTED_STARTING_SCORES else DEFAULT_STARTING_SCORE


def validate_throw(
    current_score: int,
    segment: str,
    throw_score: int,
    darts_thrown: int,
    options: MatchSettings,
) -> ValidationResult:
    """Classify one dart against the x01 rules.

    ``darts_thrown`` is the number of darts the player already has in the
    current turn. A malformed throw comes back with ``valid=False``; a bust
    comes back valid with ``bust=True`` and no ``new_score``.
    """
    if throw_score < 0 or throw_score > MAX_DART_SCORE:
        return ValidationResult(valid=False, reason='Invalid score')
    if darts_thrown >= 3:
        return ValidationResult(valid=False, reason='Turn already complete')

    seg = normalize_segment(segment)

    # Unopened leg: only a double counts.
    if options.double_in and current_score == options.starting_score and not is_double(seg):
        return ValidationResult(new_score=current_score, reason='Must start with a double')

    new_score = current_score - throw_score

    if new_score < 0:
        return ValidationResult(bust=True, reason='Bust: score below 0')

    if new_score == 1 and options.double_out:
        return ValidationResult(bust=True, reason='Bust: cannot finish on 1 with double out')

    if new_score == 0:
        if options.double_out and not is_double(seg):
            return ValidationResult(bust=True, reason='Bust: must finish on a double')
        if options.master_out and not is_master(seg):
            return ValidationResult(bust=True, reason='Bust: must finish on a double or triple')
        return ValidationResult(game_shot=True, new_score=0, reason='Game shot!')

    return ValidationResult(new_score=new_score)


# Finishing doubles in the order most players prefer to leave them.
_PREFERRED_DOUBLES = (20, 16, 18, 10, 12, 8, 14, 19, 17, 15, 13, 11, 9, 7, 6, 5, 4, 3, 2, 1)
_FINISHES: Tuple[Tuple[str, int], ...] = tuple((f'D{n}', n * 2) for n in _PREFERRED_DOUBLES) + (('BULL', 50),)


def _build_setup_table() -> Dict[int, str]:
    table: Dict[int, str] = {}
    for n in range(1, 21):
        table.setdefault(n, f'S{n}')
    table.setdefault(25, 'SBULL')
    for n in range(20, 0, -1):
        table.setdefault(n * 3, f'T{n}')
    table.setdefault(50, 'BULL')
    for n in range(20, 0, -1):
        table.setdefault(n * 2, f'D{n}')
    return table


_SETUP = _build_setup_table()
_OPENERS: Tuple[Tuple[str, int], ...] = (
    tuple((f'T{n}', n * 3) for n in range(20, 0, -1))
    + (('BULL', 50), ('SBULL', 25))
    + tuple((f'S{n}', n) for n in range(20, 0, -1))
)


def _one_dart(score: int) -> Optional[List[str]]:
    for label, value in _FINISHES:
        if value == score:
            return [label]
    return None


def _two_darts(score: int) -> Optional[List[str]]:
    for label, value in _FINISHES:
        setup = _SETUP.get(score - value)
        if setup:
            return [setup, label]
    return None


def _three_darts(score: int) -> Optional[List[str]]:
    for label, value in _OPENERS:
        rest = score - value
        if rest < 2:
            continue
        path = _two_darts(rest)
        if path:
            return [label] + path
    return None


def checkout_suggestion(score: int, darts_left: int) -> Optional[List[str]]:
    """Shortest finishing path for ``score`` within ``darts_left`` darts.

    Always ends on a double or the bull. Returns None when the score cannot
    be checked out with the darts available.
    """
    if darts_left <= 0 or score <= 1 or score > MAX_CHECKOUT or score in BOGEY_SCORES:
        return None
    for darts, finder in ((1, _one_dart), (2, _two_darts), (3, _three_darts)):
        if darts > darts_left:
            break
        path = finder(score)
        if path:
            return path
    return None


def distance_from_bull(coordinates) -> Tuple[int, str]:
    """Distance in mm from the board centre, rounded half up, plus a label."""
    x, y = coordinates
    distance = int(math.floor(math.hypot(float(x), float(y)) + 0.5))
    return distance, f'{distance} mm'
