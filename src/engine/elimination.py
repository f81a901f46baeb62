"""
Single elimination bracket generation.
"""
import math
import logging
from typing import List, Dict, Optional, Sequence

from .errors import InsufficientParticipants, InvalidConfiguration
from .models import Match, FIRST_PLACE, SECOND_PLACE, THIRD_PLACE, FOURTH_PLACE

logger = logging.getLogger(__name__)


def get_round_name(teams_in_round: int, total_teams: int) -> str:
    """Get the name of a round based on number of teams."""
    if teams_in_round == 2:
        return "Final"
    elif teams_in_round == 4:
        return "Semifinal"
    elif teams_in_round == 8:
        return "Quarterfinal"
    else:
        return f"Round of {teams_in_round}"


def calculate_bracket_size(num_teams: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_teams <= 0:
        return 0
    return 2 ** math.ceil(math.log2(num_teams))


def calculate_byes(num_teams: int) -> int:
    """Calculate number of byes needed."""
    bracket_size = calculate_bracket_size(num_teams)
    return bracket_size - num_teams


def calculate_total_rounds(bracket_size: int) -> int:
    if bracket_size < 2:
        return 0
    return int(math.log2(bracket_size))


def _generate_bracket_order(bracket_size: int) -> List[int]:
    """
    Generate the standard tournament bracket order (slot -> seed).
    This ensures that if all higher seeds win, they meet in the proper rounds.

    For 8 teams: [1, 8, 4, 5, 2, 7, 3, 6]
    This gives matchups: 1v8, 4v5, 2v7, 3v6
    Winners: 1v4 side, 2v3 side
    Final: 1v2 (if chalk)
    """
    if bracket_size <= 1:
        return [1]
    if bracket_size == 2:
        return [1, 2]

    half_size = bracket_size // 2
    upper_half = _generate_bracket_order(half_size)

    # Create lower half as complement
    lower_half = [bracket_size + 1 - seed for seed in upper_half]

    # Interleave: pair each upper seed with its complement
    result = []
    for u, l in zip(upper_half, lower_half):
        result.extend([u, l])

    return result


def order_by_seeds(registration_ids: Sequence[str], seeds: Optional[List[Dict]] = None) -> List[str]:
    """
    Order registrations by seed (lower seed first).
    Unseeded registrations follow the seeded ones in their input order.
    """
    if not seeds:
        return list(registration_ids)
    seed_map = {entry['registration_id']: entry['seed'] for entry in seeds}
    return sorted(registration_ids, key=lambda reg_id: seed_map.get(reg_id, math.inf))


def validate_seeds(seeds: Optional[List[Dict]], registration_ids: Sequence[str]) -> None:
    """Reject seeds that reference unknown registrations or repeat a seed."""
    if not seeds:
        return
    if not isinstance(seeds, (list, tuple)):
        raise InvalidConfiguration(f"Seeds must be a list, got {seeds!r}")
    known = set(registration_ids)
    used = set()
    for entry in seeds:
        if not isinstance(entry, dict):
            raise InvalidConfiguration(f"Seed entry must be a mapping, got {entry!r}")
        registration_id = entry.get('registration_id')
        seed = entry.get('seed')
        if not isinstance(registration_id, str) or registration_id not in known:
            raise InvalidConfiguration(f"Invalid registration ID in seeds: {registration_id}")
        if not isinstance(seed, int) or isinstance(seed, bool) or seed < 1:
            raise InvalidConfiguration(f"Seed must be a positive integer, got {seed!r}")
        if seed in used:
            raise InvalidConfiguration(f"Seed {seed} is assigned more than once")
        used.add(seed)


def place_into_slots(ordered_ids: Sequence[str], bracket_size: int) -> List[Optional[str]]:
    """
    Place registrations into bracket slots: the i-th registration takes the
    slot of seed i+1. Slots left empty are BYEs.
    """
    bracket_order = _generate_bracket_order(bracket_size)
    seed_to_registration = {seed: reg_id for seed, reg_id in enumerate(ordered_ids, start=1)}
    return [seed_to_registration.get(seed) for seed in bracket_order]


def _link_winner(match: Match, target: Match, feeder_index: int):
    match.winner_to = target.id
    match.winner_to_slot = 1 if feeder_index % 2 == 0 else 2


def build_winners_rounds(event_id: str, slots: List[Optional[str]],
                         bracket_type: Optional[str] = None) -> List[List[Match]]:
    """
    Build and link the rounds of a knockout tree over the given first-round slots.

    Round-1 matches with exactly one participant are marked as played BYEs.
    Their winners are not yet written forward; the advancement cascade does that.
    """
    bracket_size = len(slots)
    total_rounds = calculate_total_rounds(bracket_size)
    rounds: List[List[Match]] = []

    first_round = []
    for i in range(bracket_size // 2):
        match = Match(
            event_id=event_id,
            round=1,
            match_number=i + 1,
            registration1_id=slots[i * 2],
            registration2_id=slots[i * 2 + 1],
            bracket_type=bracket_type,
        )
        if match.has_single_participant():
            match.played = True
            match.is_bye = True
            match.winner_id = match.registration_ids[0]
        first_round.append(match)
    rounds.append(first_round)

    for round_number in range(2, total_rounds + 1):
        previous = rounds[-1]
        current = [
            Match(event_id=event_id, round=round_number, match_number=i + 1, bracket_type=bracket_type)
            for i in range(len(previous) // 2)
        ]
        for i, feeder in enumerate(previous):
            _link_winner(feeder, current[i // 2], i)
        rounds.append(current)

    final = rounds[-1][0]
    final.winner_to_placement = FIRST_PLACE
    final.loser_to_placement = SECOND_PLACE
    return rounds


def create_third_place_match(event_id: str, rounds: List[List[Match]]) -> Optional[Match]:
    """Create the third place match fed by both semifinal losers."""
    if len(rounds) < 2:
        return None
    semifinals = rounds[-2]
    if len(semifinals) != 2:
        return None

    third_place = Match(
        event_id=event_id,
        round=len(rounds),
        match_number=2,
        is_third_place=True,
        winner_to_placement=THIRD_PLACE,
        loser_to_placement=FOURTH_PLACE,
    )
    for slot, semifinal in enumerate(semifinals, start=1):
        semifinal.loser_to = third_place.id
        semifinal.loser_to_slot = slot
    return third_place


def generate_single_elimination_bracket(event_id: str, registration_ids: Sequence[str],
                                        has_third_place_match: bool = False) -> Dict:
    """
    Generate the complete single elimination match graph.

    Args:
        event_id: Owning event
        registration_ids: Registrations in seed order (index 0 is seed 1)
        has_third_place_match: Add a match between the semifinal losers

    Returns dict with:
    - 'matches': all matches, round by round
    - 'bracket_size': power of 2 bracket size
    - 'total_rounds': number of rounds
    - 'byes': number of empty first-round slots
    """
    num_teams = len(registration_ids)
    if num_teams < 2:
        raise InsufficientParticipants("At least 2 participants required for single elimination")

    bracket_size = calculate_bracket_size(num_teams)
    if has_third_place_match and bracket_size < 4:
        raise InvalidConfiguration("A third place match needs a bracket of at least 4")

    slots = place_into_slots(registration_ids, bracket_size)
    rounds = build_winners_rounds(event_id, slots)
    matches = [match for round_matches in rounds for match in round_matches]

    if has_third_place_match:
        third_place = create_third_place_match(event_id, rounds)
        if third_place:
            matches.append(third_place)

    logger.debug("Generated single elimination bracket: %d teams, size %d, %d matches",
                 num_teams, bracket_size, len(matches))

    return {
        'matches': matches,
        'bracket_size': bracket_size,
        'total_rounds': len(rounds),
        'byes': calculate_byes(num_teams),
    }
