from typing import Any, Dict, List, Mapping

from . import stats as stats_tracker
from .state import Match


def _first_nine(throws) -> tuple:
    """Points and darts over the first nine darts of every leg."""
    points = darts = 0
    seen: Dict[int, int] = {}
    for t in throws:
        count = seen.get(t.leg, 0)
        if count >= 9:
            continue
        seen[t.leg] = count + 1
        points += t.points
        darts += 1
    return points, darts


def build_match_summaries(snapshot: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """One summary row per player for a persisted match snapshot."""
    match = Match.from_snapshot(snapshot)
    legs_played = sum(p.legs_won for p in match.players)
    rows = []
    for player in match.players:
        throws = sorted(player.history + player.current_turn, key=lambda t: t.sequence)
        record = stats_tracker.replay(throws)
        # Forced leg results have no game-shot dart, the live record knows them.
        live = match.stats.get(player.id)
        points, darts = _first_nine(throws)
        rows.append({
            'match_id': match.id,
            'player_id': player.id,
            'player_name': player.name,
            'legs_played': legs_played,
            'legs_won': player.legs_won,
            'average': round(record.average_throw, 2),
            'first_nine_average': round((points / darts) * 3, 2) if darts else 0.0,
            'checkout_percentage': round(record.checkout_percentage, 2),
            'checkout_attempts': record.checkout_attempts,
            'checkout_successes': record.checkout_successes,
            'highest_checkout': record.highest_checkout,
            'ton_plus': record.ton_plus,
            'ton_forty_plus': record.ton_forty_plus,
            'ton_eighty': record.ton_eighty,
            'total_darts': record.darts_thrown,
            'darts_per_leg': round(live.darts_per_leg or record.darts_per_leg, 2),
        })
    return rows
