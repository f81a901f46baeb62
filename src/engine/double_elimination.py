"""
Double elimination bracket generation.

In this double elimination:
- Teams must lose twice to be eliminated, except where the losers bracket
  starts late (losers_start_rounds_before_final)
- Winners Bracket: Teams that haven't lost yet; its final decides 1st and 2nd place
- Losers Bracket: Teams that have lost once; its final decides 3rd and 4th place
- There is no Grand Final between the two brackets
"""
import logging
from typing import List, Dict, Tuple, Optional, Sequence

from .elimination import (
    calculate_bracket_size,
    place_into_slots,
    build_winners_rounds,
)
from .errors import InsufficientParticipants, InvalidConfiguration
from .models import Match, WINNERS, LOSERS, THIRD_PLACE, FOURTH_PLACE

logger = logging.getLogger(__name__)

# An entrant of a losers round is either the loser of a winners bracket match
# or the winner of an earlier losers bracket match.
WB_LOSER = 'wb-loser'
LB_WINNER = 'lb-winner'
Entrant = Tuple[str, Match]


def get_losers_round_name(round_num: int, total_losers_rounds: int) -> str:
    """Get the name for a losers bracket round (0-indexed)."""
    rounds_from_end = total_losers_rounds - round_num - 1
    if rounds_from_end == 0:
        return "Losers Final"
    elif rounds_from_end == 1:
        return "Losers Semifinal"
    else:
        return f"Losers Round {round_num + 1}"


def get_winners_round_name(teams_in_round: int, bracket_size: int) -> str:
    """Get the name for a winners bracket round."""
    if teams_in_round == 2:
        return "Winners Final"
    elif teams_in_round == 4:
        return "Winners Semifinal"
    elif teams_in_round == 8:
        return "Winners Quarterfinal"
    else:
        return f"Winners Round of {teams_in_round}"


def feeding_winners_rounds(total_winners_rounds: int,
                           losers_start_rounds_before_final: Optional[int] = None) -> List[int]:
    """
    Winners bracket rounds whose losers drop into the losers bracket.

    None means every round before the final feeds the losers bracket.
    With 16 teams, 2 starts at the quarterfinals and 1 at the semifinals.
    """
    last = total_winners_rounds - 1
    if losers_start_rounds_before_final is None:
        first = 1
    else:
        first = max(1, total_winners_rounds - losers_start_rounds_before_final)
    return list(range(first, last + 1))


def _reorder_entrants(survivors: List[Entrant], wave: List[Entrant]) -> List[Entrant]:
    """
    Merge losers bracket survivors with a new wave of winners bracket losers.

    Two survivors against two newcomers are crossed so teams that met in the
    winners bracket do not meet again straight away.
    """
    if len(survivors) == 2 and len(wave) == 2:
        return [survivors[0], wave[1], survivors[1], wave[0]]

    interleaved = []
    for i in range(max(len(survivors), len(wave))):
        if i < len(survivors):
            interleaved.append(survivors[i])
        if i < len(wave):
            interleaved.append(wave[i])
    return interleaved


def _attach_entrant(entrant: Entrant, target: Match, slot: int):
    kind, source = entrant
    if kind == WB_LOSER:
        source.loser_to = target.id
        source.loser_to_slot = slot
    else:
        source.winner_to = target.id
        source.winner_to_slot = slot


def _generate_losers_bracket(event_id: str, winners_rounds: List[List[Match]],
                             losers_start_rounds_before_final: Optional[int] = None) -> List[List[Match]]:
    """
    Generate and wire the losers bracket.

    Each wave of winners bracket losers is merged with the surviving losers
    bracket entrants and paired off in order; an odd entrant sits the round out
    and is carried forward. After the last wave, survivors are paired until a
    single losers bracket champion remains.

    For 8-team bracket:
    - L Round 1: 4 W-QF losers pair off -> 2 matches
    - L Round 2: 2 L-R1 winners crossed with 2 W-SF losers -> 2 matches
    - L Round 3: 2 L-R2 winners -> Losers Final
    """
    losers_rounds: List[List[Match]] = []
    total_winners_rounds = len(winners_rounds)

    def build_round(entrants: List[Entrant]) -> List[Entrant]:
        round_number = len(losers_rounds) + 1
        round_matches = []
        next_survivors: List[Entrant] = []
        for i in range(0, len(entrants) - 1, 2):
            match = Match(
                event_id=event_id,
                round=round_number,
                match_number=len(round_matches) + 1,
                bracket_type=LOSERS,
            )
            _attach_entrant(entrants[i], match, 1)
            _attach_entrant(entrants[i + 1], match, 2)
            round_matches.append(match)
            next_survivors.append((LB_WINNER, match))
        if len(entrants) % 2 == 1:
            next_survivors.append(entrants[-1])
        losers_rounds.append(round_matches)
        return next_survivors

    survivors: List[Entrant] = []
    for winners_round in feeding_winners_rounds(total_winners_rounds, losers_start_rounds_before_final):
        wave = [(WB_LOSER, match) for match in winners_rounds[winners_round - 1]]
        entrants = _reorder_entrants(survivors, wave)
        if len(entrants) > 1:
            survivors = build_round(entrants)
        else:
            survivors = entrants

    while len(survivors) > 1:
        survivors = build_round(survivors)

    if losers_rounds:
        losers_final = losers_rounds[-1][-1]
        losers_final.winner_to_placement = THIRD_PLACE
        losers_final.loser_to_placement = FOURTH_PLACE

    return losers_rounds


def generate_double_elimination_bracket(event_id: str, registration_ids: Sequence[str],
                                        losers_start_rounds_before_final: Optional[int] = None) -> Dict:
    """
    Generate complete double elimination match graph.

    Args:
        event_id: Owning event
        registration_ids: Registrations in seed order (index 0 is seed 1)
        losers_start_rounds_before_final: How many rounds before the winners
            final the losers bracket starts; None for full double elimination

    Returns dict with:
    - 'matches': winners bracket matches followed by losers bracket matches
    - 'bracket_size': bracket size
    - 'total_winners_rounds': number of winners bracket rounds
    - 'total_losers_rounds': number of losers bracket rounds
    """
    num_teams = len(registration_ids)
    if num_teams < 2:
        raise InsufficientParticipants("At least 2 participants required for double elimination")
    if losers_start_rounds_before_final is not None and losers_start_rounds_before_final < 1:
        raise InvalidConfiguration("losers_start_rounds_before_final must be positive")

    bracket_size = calculate_bracket_size(num_teams)
    slots = place_into_slots(registration_ids, bracket_size)

    winners_rounds = build_winners_rounds(event_id, slots, bracket_type=WINNERS)
    losers_rounds = _generate_losers_bracket(event_id, winners_rounds, losers_start_rounds_before_final)

    matches = [m for round_matches in winners_rounds for m in round_matches]
    matches.extend(m for round_matches in losers_rounds for m in round_matches)

    logger.debug("Generated double elimination bracket: %d teams, %d winners rounds, %d losers rounds",
                 num_teams, len(winners_rounds), len(losers_rounds))

    return {
        'matches': matches,
        'bracket_size': bracket_size,
        'total_winners_rounds': len(winners_rounds),
        'total_losers_rounds': len(losers_rounds),
    }
