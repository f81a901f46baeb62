"""
Match progression: winner/loser advancement, BYE cascades and resets.

All functions work over an arena of the event's matches keyed by id; edges
are ids (winner_to / loser_to) and feeders are found by scanning the arena.
"""
import logging
from collections import deque, defaultdict
from typing import Dict, List, Optional, Iterable, Tuple

from .errors import ConsistencyError, DownstreamPlayed
from .models import (
    Match, LOSERS, GROUPS, GROUPS_KNOCKOUT, SINGLE_ELIMINATION, DOUBLE_ELIMINATION,
)
from .standings import calculate_match_points, calculate_set_points, apply_match_result

logger = logging.getLogger(__name__)


class AffectedEntities:
    """Records touched by one completion, reset or generation call."""

    def __init__(self):
        self.matches: Dict[str, Match] = {}
        self.registrations = {}
        self.groups = {}
        self.event = None

    def touch_match(self, match):
        self.matches[match.id] = match

    def touch_registration(self, registration):
        self.registrations[registration.id] = registration

    def touch_group(self, group):
        self.groups[group.id] = group

    def to_dict(self) -> Dict:
        return {
            'matches': [m.to_dict() for m in sorted(self.matches.values(), key=Match.sort_key)],
            'registrations': [r.to_dict() for r in self.registrations.values()],
            'groups': [g.to_dict() for g in self.groups.values()],
            'event': self.event.to_dict() if self.event else None,
        }


class MatchContext:
    def __init__(self, match, event, matches, repository, affected, winner_id=None, sets=None):
        self.match = match
        self.event = event
        self.matches = matches
        self.repository = repository
        self.affected = affected
        self.winner_id = winner_id
        self.sets = sets or []


def _edge_key(match: Match) -> Tuple[int, int]:
    return (1 if match.bracket_type == LOSERS else 0, match.round)


def _follow(matches: Dict[str, Match], source: Match, target_id: str, slot: Optional[int]) -> Match:
    """Resolve an outgoing edge, enforcing the DAG invariant."""
    target = matches.get(target_id)
    if target is None:
        raise ConsistencyError(f"Match {source.id} points at missing match {target_id}")
    if slot not in (1, 2):
        raise ConsistencyError(f"Match {source.id} has invalid slot {slot!r} towards {target_id}")
    if _edge_key(target) <= _edge_key(source):
        raise ConsistencyError(
            f"Match {source.id} (round {source.round}) points backwards to {target_id} (round {target.round})")
    return target


def _outputs(matches: Dict[str, Match], match: Match) -> List[Tuple[Match, int, Optional[str]]]:
    """(target, slot, produced registration) for every outgoing edge of a match."""
    outputs = []
    if match.winner_to:
        target = _follow(matches, match, match.winner_to, match.winner_to_slot)
        outputs.append((target, match.winner_to_slot, match.winner_id if match.played else None))
    if match.loser_to:
        target = _follow(matches, match, match.loser_to, match.loser_to_slot)
        outputs.append((target, match.loser_to_slot, match.loser_id))
    return outputs


def advance_results(matches: Dict[str, Match], match: Match, affected: AffectedEntities) -> List[str]:
    """
    Write a played match's winner and loser into their downstream slots.
    Returns the ids of every downstream match, written or not, so the caller
    can re-check them for BYEs.
    """
    touched = []
    for target, slot, produced in _outputs(matches, match):
        if produced is not None:
            target.set_slot(slot, produced)
            affected.touch_match(target)
        touched.append(target.id)
    return touched


def build_feeder_index(matches: Dict[str, Match]) -> Dict[str, List[Match]]:
    feeders = defaultdict(list)
    for match in matches.values():
        if match.winner_to:
            feeders[match.winner_to].append(match)
        if match.loser_to:
            feeders[match.loser_to].append(match)
    return feeders


def resolve_byes(matches: Dict[str, Match], start_ids: Iterable[str],
                 affected: Optional[AffectedEntities] = None) -> AffectedEntities:
    """
    BYE cascade over an explicit worklist.

    A match resolves once it is unplayed, no unplayed feeder still points at
    it, and it holds fewer than two registrations: with one it is a BYE won by
    that registration, with none it is void. Its own targets are then queued.
    Each match resolves at most once and edges only move forward, so the walk
    is bounded by the bracket depth.
    """
    if affected is None:
        affected = AffectedEntities()
    feeders = build_feeder_index(matches)
    queue = deque(start_ids)

    while queue:
        match = matches[queue.popleft()]
        if match.played:
            continue
        if any(not feeder.played for feeder in feeders.get(match.id, ())):
            continue
        present = match.registration_ids
        if len(present) == 2:
            continue

        match.played = True
        match.is_bye = True
        match.winner_id = present[0] if present else None
        affected.touch_match(match)
        logger.debug("Resolved BYE in round %d match %d (winner %s)",
                     match.round, match.match_number, match.winner_id)
        queue.extend(advance_results(matches, match, affected))

    return affected


def propagate_initial_byes(matches: Dict[str, Match],
                           affected: Optional[AffectedEntities] = None) -> AffectedEntities:
    """Push first-round BYE winners forward right after generation."""
    if affected is None:
        affected = AffectedEntities()
    start_ids = []
    for match in sorted(matches.values(), key=Match.sort_key):
        if match.played and match.is_bye:
            start_ids.extend(advance_results(matches, match, affected))
    return resolve_byes(matches, start_ids, affected)


def plan_unwind(matches: Dict[str, Match], match: Match) -> List[Match]:
    """
    Collect the match plus every engine-resolved BYE downstream that still
    carries its result. Raises DownstreamPlayed, before anything is mutated,
    when a real downstream result depends on it.
    """
    order = []
    seen = set()
    stack = [match]
    while stack:
        current = stack.pop()
        if current.id in seen:
            continue
        seen.add(current.id)
        order.append(current)
        for target, slot, produced in _outputs(matches, current):
            if produced is None or target.get_slot(slot) != produced:
                continue
            if not target.played:
                continue
            if not target.is_bye:
                raise DownstreamPlayed(
                    f"Match in round {target.round} (#{target.match_number}) is already played; reset it first")
            stack.append(target)
    return order


def unwind(matches: Dict[str, Match], match: Match, affected: AffectedEntities) -> None:
    """Clear the slots a match filled and mark it unplayed, downstream first."""
    for current in reversed(plan_unwind(matches, match)):
        for target, slot, produced in _outputs(matches, current):
            if produced is not None and target.get_slot(slot) == produced:
                target.set_slot(slot, None)
                affected.touch_match(target)
        current.played = False
        current.winner_id = None
        current.is_bye = False
        affected.touch_match(current)


class MatchHandler:
    """Format specific reaction to a match being completed or reset."""

    def handle_match_completion(self, context: MatchContext) -> None:
        raise NotImplementedError

    def handle_match_reset(self, context: MatchContext) -> None:
        raise NotImplementedError


class GroupsMatchHandler(MatchHandler):
    """Adds match points and set tallies to both registrations."""

    def handle_match_completion(self, context):
        match = context.match
        if not match.registration1_id or not match.registration2_id:
            return
        registration1 = context.repository.get_registration(match.registration1_id)
        registration2 = context.repository.get_registration(match.registration2_id)

        match_points = calculate_match_points(
            context.winner_id,
            match.registration1_id,
            match.registration2_id,
            context.event.points_per_win,
            context.event.points_per_loss,
        )
        set_results = calculate_set_points(context.sets)
        apply_match_result(registration1, registration2, match_points, set_results)

        for registration in (registration1, registration2):
            context.repository.save_registration(registration)
            context.affected.touch_registration(registration)

    def handle_match_reset(self, context):
        # Standings are rebuilt wholesale by the caller instead of decremented.
        pass


class EliminationMatchHandler(MatchHandler):
    def handle_match_completion(self, context):
        targets = advance_results(context.matches, context.match, context.affected)
        resolve_byes(context.matches, targets, context.affected)

    def handle_match_reset(self, context):
        unwind(context.matches, context.match, context.affected)


class SingleEliminationMatchHandler(EliminationMatchHandler):
    """Advances winners; semifinal losers go to the third place match when there is one."""


class DoubleEliminationMatchHandler(EliminationMatchHandler):
    """Advances winners and drops losers into the losers bracket."""


_HANDLERS = {
    GROUPS: GroupsMatchHandler(),
    GROUPS_KNOCKOUT: GroupsMatchHandler(),
    SINGLE_ELIMINATION: SingleEliminationMatchHandler(),
    DOUBLE_ELIMINATION: DoubleEliminationMatchHandler(),
}


def get_match_handler(event_format: str) -> Optional[MatchHandler]:
    """Get the handler for an event format, or None when matches don't progress."""
    return _HANDLERS.get(event_format)


def update_completion_flags(repository, event, matches: Dict[str, Match],
                            group_ids: Iterable[str], affected: AffectedEntities) -> None:
    """Recompute group and event completed flags from the played state of their matches."""
    for group_id in set(g for g in group_ids if g):
        group = repository.get_group(group_id)
        group.completed = all(m.played for m in matches.values() if m.group_id == group_id)
        repository.save_group(group)
        affected.touch_group(group)

    event.completed = bool(matches) and all(m.played for m in matches.values())
    repository.save_event(event)
    affected.event = event
