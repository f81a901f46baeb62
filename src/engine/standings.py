"""
Groups format points and standings.
"""
from typing import Dict, List, Sequence

from .models import Registration, SetScore


def calculate_match_points(winner_id: str, registration1_id: str, registration2_id: str,
                           points_per_win: int, points_per_loss: int) -> Dict:
    """Calculate match points for both registrations."""
    registration1_won = winner_id == registration1_id
    registration2_won = winner_id == registration2_id

    return {
        'registration1_points': points_per_win if registration1_won else points_per_loss,
        'registration2_points': points_per_win if registration2_won else points_per_loss,
        'registration1_won': registration1_won,
        'registration2_won': registration2_won,
    }


def calculate_set_points(sets: Sequence[SetScore]) -> Dict:
    """
    Count sets won and lost by each side. A tied set counts for neither side,
    and sets not marked as played are ignored.
    """
    registration1_sets = 0
    registration2_sets = 0

    for set_score in sets:
        if not set_score.played:
            continue
        if set_score.registration1_score > set_score.registration2_score:
            registration1_sets += 1
        elif set_score.registration2_score > set_score.registration1_score:
            registration2_sets += 1

    return {
        'registration1_sets_won': registration1_sets,
        'registration1_sets_lost': registration2_sets,
        'registration2_sets_won': registration2_sets,
        'registration2_sets_lost': registration1_sets,
    }


def apply_match_result(registration1: Registration, registration2: Registration,
                       match_points: Dict, set_results: Dict) -> None:
    """Add one match's result to both registrations' cumulative stats."""
    registration1.matches_won += 1 if match_points['registration1_won'] else 0
    registration1.matches_lost += 0 if match_points['registration1_won'] else 1
    registration1.sets_won += set_results['registration1_sets_won']
    registration1.sets_lost += set_results['registration1_sets_lost']
    registration1.points += match_points['registration1_points']

    registration2.matches_won += 1 if match_points['registration2_won'] else 0
    registration2.matches_lost += 0 if match_points['registration2_won'] else 1
    registration2.sets_won += set_results['registration2_sets_won']
    registration2.sets_lost += set_results['registration2_sets_lost']
    registration2.points += match_points['registration2_points']


def compute_standings(registrations: Sequence[Registration]) -> List[Registration]:
    """
    Order registrations for a standings table.

    Ranking: points -> set differential -> matches won. Registrations equal on
    all three keep their input order (the sort is stable); there is no
    head-to-head tie-break.
    """
    return sorted(
        registrations,
        key=lambda r: (-r.points, -(r.sets_won - r.sets_lost), -r.matches_won),
    )


def rebuild_standings(repository, event) -> List[Registration]:
    """
    Recompute every registration's aggregates of a groups event from its
    played group matches. Used after a reset instead of decrementing.
    """
    registrations = {r.id: r for r in repository.list_registrations(event.id)}
    for registration in registrations.values():
        registration.reset_stats()

    for match in repository.list_matches(event.id):
        if not match.played or match.winner_id is None:
            continue
        registration1 = registrations.get(match.registration1_id)
        registration2 = registrations.get(match.registration2_id)
        if registration1 is None or registration2 is None:
            continue
        match_points = calculate_match_points(
            match.winner_id, registration1.id, registration2.id,
            event.points_per_win, event.points_per_loss,
        )
        apply_match_result(registration1, registration2, match_points, calculate_set_points(match.sets))

    for registration in registrations.values():
        repository.save_registration(registration)
    return list(registrations.values())
