"""
Round-robin match generation for groups format events.
"""
from typing import List, Optional, Sequence, Tuple

from .models import Match


def round_robin_rounds(registration_ids: Sequence[str]) -> List[List[Tuple[str, str]]]:
    """
    Pair every registration with every other one exactly once, spread over rounds.

    Uses the circle method: the first entry stays put while the others rotate.
    With an odd count one entry rests each round.
    """
    players: List[Optional[str]] = list(registration_ids)
    if len(players) < 2:
        return []
    if len(players) % 2 == 1:
        players.append(None)

    num_players = len(players)
    rounds = []
    for _ in range(num_players - 1):
        pairs = []
        for i in range(num_players // 2):
            home = players[i]
            away = players[num_players - 1 - i]
            if home is not None and away is not None:
                pairs.append((home, away))
        rounds.append(pairs)
        players = [players[0], players[-1]] + players[1:-1]
    return rounds


def generate_group_matches(event_id: str, group_id: str, registration_ids: Sequence[str]) -> List[Match]:
    matches = []
    for round_index, pairs in enumerate(round_robin_rounds(registration_ids)):
        for match_index, (registration1_id, registration2_id) in enumerate(pairs):
            matches.append(Match(
                event_id=event_id,
                group_id=group_id,
                round=round_index + 1,
                match_number=match_index + 1,
                registration1_id=registration1_id,
                registration2_id=registration2_id,
            ))
    return matches
