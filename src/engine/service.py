"""
Operations exposed to the host application.

Each operation runs inside one repository transaction, so a failure part way
through a cascade never leaves a half-updated match graph behind.
"""
import logging
from numbers import Number
from typing import Dict, List, Optional, Sequence

from .advancement import (
    AffectedEntities,
    MatchContext,
    get_match_handler,
    propagate_initial_byes,
    update_completion_flags,
)
from .double_elimination import (
    generate_double_elimination_bracket,
    get_losers_round_name,
    get_winners_round_name,
)
from .elimination import generate_single_elimination_bracket, get_round_name, order_by_seeds, validate_seeds
from .errors import (
    AlreadyExists,
    AlreadyPlayed,
    ConflictError,
    InvalidConfiguration,
    InvalidWinner,
    MatchNotReady,
    NoRegistrations,
    NotPlayed,
    ValidationError,
)
from .heats import get_heat_name, partition_into_heats, shuffle_registrations
from .models import (
    Group, Match, SetScore, LOSERS, WINNERS,
    ELIMINATION_FORMATS, GROUPS, GROUPS_KNOCKOUT, SINGLE_ELIMINATION, TESTS,
)
from .round_robin import generate_group_matches
from .settings import get_default_settings, validate_settings
from .standings import compute_standings, rebuild_standings

logger = logging.getLogger(__name__)

GROUP_FORMATS = (GROUPS, GROUPS_KNOCKOUT)


def _event_arena(repository, event_id: str) -> Dict[str, Match]:
    return {m.id: m for m in repository.list_matches(event_id)}


def _save_affected(repository, affected: AffectedEntities) -> None:
    for match in affected.matches.values():
        repository.save_match(match)


def parse_set_scores(set_scores) -> List[SetScore]:
    """
    Normalize set scores given as SetScore objects, mappings with
    registration1_score / registration2_score, or (score1, score2) pairs.
    """
    if set_scores is None:
        return []
    if not isinstance(set_scores, (list, tuple)):
        raise ValidationError(f"Set scores must be a list, got {set_scores!r}")
    parsed = []
    for set_number, entry in enumerate(set_scores, start=1):
        if isinstance(entry, SetScore):
            score1, score2, played = entry.registration1_score, entry.registration2_score, entry.played
        elif isinstance(entry, dict):
            score1 = entry.get('registration1_score')
            score2 = entry.get('registration2_score')
            played = entry.get('played', True)
        elif isinstance(entry, (list, tuple)) and len(entry) == 2:
            score1, score2 = entry
            played = True
        else:
            raise ValidationError(f"Set {set_number} is not a pair of scores: {entry!r}")

        for score in (score1, score2):
            if isinstance(score, bool) or not isinstance(score, Number) or score < 0:
                raise ValidationError(f"Set {set_number} has an invalid score: {score!r}")
        parsed.append(SetScore(set_number, score1, score2, played))
    return parsed


def generate_bracket(repository, event_id: str, registration_ids: Optional[Sequence[str]] = None,
                     seeds: Optional[List[Dict]] = None, options: Optional[Dict] = None) -> Dict:
    """
    Generate and persist the bracket of an elimination event.

    Args:
        repository: Store holding the event and its registrations
        event_id: Event to generate for
        registration_ids: Registrations in seed order; defaults to every
            registration of the event in registration order
        seeds: Optional [{'registration_id': ..., 'seed': n}] ordering; written
            back onto the registrations
        options: Overrides for has_third_place_match and
            losers_start_rounds_before_final

    Returns dict with 'matches', 'bracket_size', 'total_rounds' and 'match_count'.
    """
    with repository.transaction():
        event = repository.get_event(event_id)
        if event.format not in ELIMINATION_FORMATS:
            raise InvalidConfiguration("Bracket generation is only available for elimination events")
        if repository.list_matches(event_id):
            raise AlreadyExists("Bracket already generated. Clear matches to regenerate.")

        registrations = {r.id: r for r in repository.list_registrations(event_id)}
        if registration_ids is None:
            registration_ids = list(registrations)
        unknown = [r for r in registration_ids if r not in registrations]
        if unknown:
            raise InvalidConfiguration(f"Registrations not in event: {', '.join(unknown)}")
        if len(set(registration_ids)) != len(registration_ids):
            raise InvalidConfiguration("A registration is listed more than once")
        validate_seeds(seeds, registration_ids)

        options = options or {}
        has_third_place_match = options.get('has_third_place_match', event.has_third_place_match)
        losers_start = options.get('losers_start_rounds_before_final', event.losers_start_rounds_before_final)
        validate_settings({
            'has_third_place_match': has_third_place_match,
            'losers_start_rounds_before_final': losers_start,
        })
        ordered_ids = order_by_seeds(registration_ids, seeds)

        if event.format == SINGLE_ELIMINATION:
            bracket = generate_single_elimination_bracket(event_id, ordered_ids, bool(has_third_place_match))
            total_rounds = bracket['total_rounds']
        else:
            bracket = generate_double_elimination_bracket(event_id, ordered_ids, losers_start)
            total_rounds = bracket['total_winners_rounds'] + bracket['total_losers_rounds']

        for match in bracket['matches']:
            repository.add_match(match)
        arena = {m.id: m for m in bracket['matches']}
        affected = propagate_initial_byes(arena)
        _save_affected(repository, affected)

        for entry in seeds or []:
            registration = registrations[entry['registration_id']]
            registration.seed = entry['seed']
            repository.save_registration(registration)

        update_completion_flags(repository, event, arena, [], affected)

        logger.info("Generated %s bracket for event %s: %d registrations, %d matches",
                    event.format, event_id, len(ordered_ids), len(arena))

        return {
            'matches': sorted(arena.values(), key=Match.sort_key),
            'bracket_size': bracket['bracket_size'],
            'total_rounds': total_rounds,
            'match_count': len(arena),
        }


def clear_bracket(repository, event_id: str) -> int:
    """Delete every match of an event so its bracket can be regenerated."""
    with repository.transaction():
        event = repository.get_event(event_id)
        deleted = repository.delete_matches(event_id)
        event.completed = False
        repository.save_event(event)
        logger.info("Cleared %d matches of event %s", deleted, event_id)
        return deleted


def complete_match(repository, match_id: str, winner_id: str, set_scores=None) -> AffectedEntities:
    """Mark a match as played and propagate its result."""
    with repository.transaction():
        match = repository.get_match(match_id)
        if match.played:
            raise AlreadyPlayed(f"Match {match_id} is already played")
        if len(match.registration_ids) < 2:
            raise MatchNotReady(f"Match {match_id} is still waiting for an opponent")
        if winner_id not in match.registration_ids:
            raise InvalidWinner(f"Winner {winner_id} is not playing in match {match_id}")
        sets = parse_set_scores(set_scores)

        event = repository.get_event(match.event_id)
        arena = _event_arena(repository, event.id)
        arena[match.id] = match

        if sets:
            match.sets = sets
        match.played = True
        match.winner_id = winner_id

        affected = AffectedEntities()
        affected.touch_match(match)
        handler = get_match_handler(event.format)
        if handler:
            handler.handle_match_completion(MatchContext(
                match, event, arena, repository, affected, winner_id=winner_id, sets=match.sets,
            ))

        _save_affected(repository, affected)
        update_completion_flags(repository, event, arena,
                                [m.group_id for m in affected.matches.values()], affected)
        return affected


def reset_match(repository, match_id: str) -> AffectedEntities:
    """Mark a played match as unplayed and take back what its result produced."""
    with repository.transaction():
        match = repository.get_match(match_id)
        if not match.played:
            raise NotPlayed(f"Match {match_id} has not been played")
        if match.is_bye:
            raise ConflictError("BYE matches are resolved automatically and cannot be reset")

        event = repository.get_event(match.event_id)
        arena = _event_arena(repository, event.id)
        arena[match.id] = match

        affected = AffectedEntities()
        affected.touch_match(match)
        handler = get_match_handler(event.format)
        if handler:
            handler.handle_match_reset(MatchContext(match, event, arena, repository, affected))
        match.played = False
        match.winner_id = None

        _save_affected(repository, affected)
        if event.format in GROUP_FORMATS:
            for registration in rebuild_standings(repository, event):
                affected.touch_registration(registration)

        update_completion_flags(repository, event, arena,
                                [m.group_id for m in affected.matches.values()], affected)
        return affected


def get_standings(repository, event_id: str, group_id: Optional[str] = None) -> List:
    """Standings of an event, or of one of its groups."""
    registrations = repository.list_registrations(event_id)
    if group_id is not None:
        registrations = [r for r in registrations if r.group_id == group_id]
    return compute_standings(registrations)


def create_group(repository, event_id: str, registration_ids: Sequence[str]) -> Dict:
    """Create the next lettered group of a groups event with its round-robin matches."""
    with repository.transaction():
        event = repository.get_event(event_id)
        if event.format not in GROUP_FORMATS:
            raise InvalidConfiguration(
                "Groups can only be created for groups format events. "
                "Use bracket generation for elimination events.")
        if len(set(registration_ids)) < 2:
            raise InvalidConfiguration("A group needs at least 2 registrations")

        registrations = {r.id: r for r in repository.list_registrations(event_id)}
        invalid = [r for r in registration_ids if r not in registrations]
        if invalid:
            raise InvalidConfiguration(f"Registrations not in event: {', '.join(invalid)}")
        assigned = [r for r in registration_ids if registrations[r].group_id]
        if assigned:
            raise AlreadyExists(f"Registrations already in a group: {', '.join(assigned)}")

        group = repository.add_group(Group(event_id, get_heat_name(len(repository.list_groups(event_id)))))
        for registration_id in registration_ids:
            registration = registrations[registration_id]
            registration.group_id = group.id
            repository.save_registration(registration)

        matches = generate_group_matches(event_id, group.id, registration_ids)
        for match in matches:
            repository.add_match(match)

        affected = AffectedEntities()
        update_completion_flags(repository, event, _event_arena(repository, event_id), [group.id], affected)

        logger.info("Created group %s for event %s with %d matches", group.name, event_id, len(matches))
        return {'group': group, 'match_count': len(matches)}


def generate_heats(repository, event_id: str, players_per_heat: Optional[int] = None,
                   shuffle: bool = True, rng=None) -> Dict:
    """
    Distribute the registrations of a test event across heats.

    Returns dict with 'heats' (id, name, registration_count), 'total_heats'
    and 'total_registrations'.
    """
    with repository.transaction():
        event = repository.get_event(event_id)
        if event.format != TESTS:
            raise InvalidConfiguration('Event format must be "tests" to generate heats')
        if repository.list_groups(event_id):
            raise AlreadyExists("Heats already exist. Clear them to regenerate.")
        registrations = repository.list_registrations(event_id)
        if not registrations:
            raise NoRegistrations(f"Event {event_id} has no registrations")

        size = players_per_heat or event.players_per_heat or get_default_settings()['players_per_heat']
        validate_settings({'players_per_heat': size})

        ordered = shuffle_registrations(registrations, rng) if shuffle else registrations
        heats = []
        for name, heat_registrations in partition_into_heats(ordered, size):
            heat = repository.add_group(Group(event_id, name))
            for registration in heat_registrations:
                registration.group_id = heat.id
                repository.save_registration(registration)
            heats.append({'id': heat.id, 'name': name, 'registration_count': len(heat_registrations)})

        logger.info("Generated %d heats for event %s", len(heats), event_id)
        return {
            'heats': heats,
            'total_heats': len(heats),
            'total_registrations': len(registrations),
        }


def clear_heats(repository, event_id: str) -> int:
    """Unassign every registration of the event and delete its heats."""
    with repository.transaction():
        repository.get_event(event_id)
        for registration in repository.list_registrations(event_id):
            registration.group_id = None
            repository.save_registration(registration)
        groups = repository.list_groups(event_id)
        for group in groups:
            repository.delete_group(group.id)
        return len(groups)


def label_rounds(matches: Sequence[Match]) -> Dict[str, str]:
    """Display name of every match's round, keyed by match id."""
    last_round = {}
    for match in matches:
        if match.group_id is None and not match.is_third_place:
            last_round[match.bracket_type] = max(last_round.get(match.bracket_type, 0), match.round)

    names = {}
    for match in matches:
        if match.group_id is not None:
            names[match.id] = f"Round {match.round}"
        elif match.is_third_place:
            names[match.id] = "Third Place"
        elif match.bracket_type == LOSERS:
            names[match.id] = get_losers_round_name(match.round - 1, last_round[LOSERS])
        else:
            total_rounds = last_round[match.bracket_type]
            teams_in_round = 2 ** (total_rounds - match.round + 1)
            if match.bracket_type == WINNERS:
                names[match.id] = get_winners_round_name(teams_in_round, 2 ** total_rounds)
            else:
                names[match.id] = get_round_name(teams_in_round, 2 ** total_rounds)
    return names
