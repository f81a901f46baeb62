"""
Tests for match completion, BYE cascades and resets.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from engine.advancement import (
    get_match_handler,
    resolve_byes,
    plan_unwind,
    GroupsMatchHandler,
    SingleEliminationMatchHandler,
    DoubleEliminationMatchHandler,
)
from engine.errors import (
    AlreadyPlayed,
    ConflictError,
    ConsistencyError,
    DownstreamPlayed,
    InvalidWinner,
    MatchNotReady,
    NotFound,
    NotPlayed,
    ValidationError,
)
from engine.models import (
    Match, GROUPS, GROUPS_KNOCKOUT, SINGLE_ELIMINATION, DOUBLE_ELIMINATION, TESTS,
)
from engine.service import generate_bracket, complete_match, reset_match

from bracket_helpers import find_match, winners, losers, play_out


def _snapshot(repository, event_id):
    return {m.id: m.to_dict() for m in repository.list_matches(event_id)}


class TestHandlerSelection:
    """Tests for picking the handler by event format."""

    def test_handlers(self):
        """Test each format maps to its handler and tests events have none."""
        assert isinstance(get_match_handler(GROUPS), GroupsMatchHandler)
        assert isinstance(get_match_handler(GROUPS_KNOCKOUT), GroupsMatchHandler)
        assert isinstance(get_match_handler(SINGLE_ELIMINATION), SingleEliminationMatchHandler)
        assert isinstance(get_match_handler(DOUBLE_ELIMINATION), DoubleEliminationMatchHandler)
        assert get_match_handler(TESTS) is None


class TestSingleEliminationCompletion:
    """Tests for completing single elimination matches."""

    def test_winner_written_to_next_slot(self, repository, make_event):
        """Test the winner fills exactly the slot named by the edge."""
        event, regs = make_event(SINGLE_ELIMINATION, 5)
        generate_bracket(repository, event.id)
        matches = repository.list_matches(event.id)
        r1m2 = find_match(matches, 1, 2)

        affected = complete_match(repository, r1m2.id, regs[4].id, [(11, 9), (7, 11), (11, 8)])

        r2m1 = repository.get_match(find_match(matches, 2, 1).id)
        assert r2m1.registration_ids == [regs[0].id, regs[4].id]
        assert not r2m1.played
        assert r1m2.id in affected.matches
        assert r2m1.id in affected.matches
        assert len(repository.get_match(r1m2.id).sets) == 3

    def test_semifinal_loser_goes_to_third_place(self, repository, make_event):
        """Test a lone semifinal loser wins the third place match as a BYE."""
        event, regs = make_event(SINGLE_ELIMINATION, 3, has_third_place_match=True)
        generate_bracket(repository, event.id)
        matches = repository.list_matches(event.id)
        third = find_match(matches, 2, 2, is_third_place=True)
        assert not third.played

        complete_match(repository, find_match(matches, 1, 2).id, regs[1].id)

        third = repository.get_match(third.id)
        assert third.played
        assert third.is_bye
        assert third.winner_id == regs[2].id
        final = repository.get_match(find_match(matches, 2, 1).id)
        assert final.registration_ids == [regs[0].id, regs[1].id]

    def test_final_completes_event(self, repository, make_event):
        """Test the event is completed once its final is played."""
        event, regs = make_event(SINGLE_ELIMINATION, 2)
        match = generate_bracket(repository, event.id)['matches'][0]

        affected = complete_match(repository, match.id, regs[1].id)

        assert repository.get_event(event.id).completed
        assert affected.event.completed

    @pytest.mark.slow
    @pytest.mark.parametrize("num_teams", [2, 3, 4, 5, 8, 9, 16, 17])
    def test_play_out(self, repository, make_event, num_teams):
        """Test playing every ready match finishes the bracket with seed 1 as champion."""
        event, regs = make_event(SINGLE_ELIMINATION, num_teams, has_third_place_match=num_teams >= 3)
        generate_bracket(repository, event.id)

        play_out(repository, event.id)

        matches = repository.list_matches(event.id)
        assert all(m.played for m in matches)
        assert repository.get_event(event.id).completed
        final = find_match(matches, max(m.round for m in matches), 1)
        assert final.winner_id == regs[0].id


class TestDoubleEliminationCascade:
    """Tests for the BYE cascade through the losers bracket."""

    def test_chained_byes(self, repository, make_event):
        """Test losers that land alone behind a void match advance automatically."""
        event, regs = make_event(DOUBLE_ELIMINATION, 5)
        p1, p2, p3, p4, p5 = [r.id for r in regs]
        generate_bracket(repository, event.id)

        def current():
            return repository.list_matches(event.id)

        complete_match(repository, winners(current(), 1, 2).id, p4)
        lb11 = losers(current(), 1, 1)
        assert lb11.is_bye and lb11.winner_id == p5
        assert losers(current(), 2, 1).registration_ids == [p5]

        complete_match(repository, winners(current(), 2, 2).id, p2)
        assert losers(current(), 2, 1).registration_ids == [p5, p3]
        assert winners(current(), 3, 1).registration2_id == p2

        complete_match(repository, winners(current(), 2, 1).id, p1)
        lb22 = losers(current(), 2, 2)
        assert lb22.is_bye and lb22.winner_id == p4
        assert losers(current(), 3, 1).registration2_id == p4
        assert not losers(current(), 3, 1).played

    def test_reset_unwinds_resolved_bye(self, repository, make_event):
        """Test resetting a match takes back the BYE its loser produced."""
        event, regs = make_event(DOUBLE_ELIMINATION, 5)
        p1, p2, p3, p4, p5 = [r.id for r in regs]
        generate_bracket(repository, event.id)
        complete_match(repository, winners(repository.list_matches(event.id), 1, 2).id, p4)
        complete_match(repository, winners(repository.list_matches(event.id), 2, 2).id, p2)
        before = _snapshot(repository, event.id)

        w21 = winners(repository.list_matches(event.id), 2, 1)
        complete_match(repository, w21.id, p1)
        reset_match(repository, w21.id)

        assert _snapshot(repository, event.id) == before
        lb22 = losers(repository.list_matches(event.id), 2, 2)
        assert not lb22.played
        assert not lb22.is_bye

    @pytest.mark.slow
    @pytest.mark.parametrize("num_teams", [2, 3, 4, 5, 8, 9, 16, 17])
    def test_play_out(self, repository, make_event, num_teams):
        """Test both brackets finish and the event is completed."""
        event, regs = make_event(DOUBLE_ELIMINATION, num_teams)
        generate_bracket(repository, event.id)

        play_out(repository, event.id)

        matches = repository.list_matches(event.id)
        assert all(m.played for m in matches)
        assert repository.get_event(event.id).completed
        total_winners_rounds = max(m.round for m in matches if m.bracket_type == 'winners')
        assert winners(matches, total_winners_rounds, 1).winner_id == regs[0].id


class TestReset:
    """Tests for resetting elimination matches."""

    def test_reset_is_left_inverse(self, repository, make_event):
        """Test complete followed by reset restores every match."""
        event, regs = make_event(SINGLE_ELIMINATION, 8, has_third_place_match=True)
        generate_bracket(repository, event.id)
        matches = repository.list_matches(event.id)
        for number in (1, 2):
            match = find_match(matches, 1, number)
            complete_match(repository, match.id, match.registration1_id)
        before = _snapshot(repository, event.id)

        semi = find_match(repository.list_matches(event.id), 2, 1)
        complete_match(repository, semi.id, semi.registration2_id, [(5, 11)])
        reset_match(repository, semi.id)

        after = _snapshot(repository, event.id)
        # Set scores are kept on reset
        after[semi.id]['sets'] = before[semi.id]['sets']
        assert after == before

    def test_reset_blocked_by_downstream_result(self, repository, make_event):
        """Test a match whose winner already played again cannot be reset."""
        event, regs = make_event(SINGLE_ELIMINATION, 4)
        generate_bracket(repository, event.id)
        play_out(repository, event.id)
        before = _snapshot(repository, event.id)

        semi = find_match(repository.list_matches(event.id), 1, 1)
        with pytest.raises(DownstreamPlayed):
            reset_match(repository, semi.id)
        assert _snapshot(repository, event.id) == before

    def test_reset_final_reopens_event(self, repository, make_event):
        """Test resetting the final marks the event as not completed."""
        event, regs = make_event(SINGLE_ELIMINATION, 4)
        generate_bracket(repository, event.id)
        play_out(repository, event.id)
        assert repository.get_event(event.id).completed

        final = find_match(repository.list_matches(event.id), 2, 1)
        reset_match(repository, final.id)

        assert not repository.get_event(event.id).completed
        final = repository.get_match(final.id)
        assert not final.played
        assert final.winner_id is None
        assert len(final.registration_ids) == 2

    def test_reset_unplayed(self, repository, make_event):
        """Test an unplayed match cannot be reset."""
        event, _ = make_event(SINGLE_ELIMINATION, 4)
        match = generate_bracket(repository, event.id)['matches'][0]
        with pytest.raises(NotPlayed):
            reset_match(repository, match.id)

    def test_reset_bye(self, repository, make_event):
        """Test engine-resolved BYEs cannot be reset directly."""
        event, _ = make_event(SINGLE_ELIMINATION, 3)
        generate_bracket(repository, event.id)
        bye = find_match(repository.list_matches(event.id), 1, 1)
        assert bye.is_bye
        with pytest.raises(ConflictError):
            reset_match(repository, bye.id)

    def test_plan_unwind_does_not_mutate(self, repository, make_event):
        """Test a blocked plan leaves the arena untouched."""
        event, _ = make_event(SINGLE_ELIMINATION, 4)
        generate_bracket(repository, event.id)
        play_out(repository, event.id)
        arena = {m.id: m for m in repository.list_matches(event.id)}
        before = {m.id: m.to_dict() for m in arena.values()}

        with pytest.raises(DownstreamPlayed):
            plan_unwind(arena, find_match(arena, 1, 2))
        assert {m.id: m.to_dict() for m in arena.values()} == before


class TestCompletionErrors:
    """Tests for rejected completions."""

    def test_unknown_match(self, repository):
        """Test completing a missing match."""
        with pytest.raises(NotFound):
            complete_match(repository, "missing", "someone")

    def test_already_played(self, repository, make_event):
        """Test a played match cannot be completed again."""
        event, regs = make_event(SINGLE_ELIMINATION, 2)
        match = generate_bracket(repository, event.id)['matches'][0]
        complete_match(repository, match.id, regs[0].id)
        with pytest.raises(AlreadyPlayed):
            complete_match(repository, match.id, regs[1].id)

    def test_match_not_ready(self, repository, make_event):
        """Test a match still waiting for an opponent cannot be completed."""
        event, regs = make_event(SINGLE_ELIMINATION, 5)
        generate_bracket(repository, event.id)
        waiting = find_match(repository.list_matches(event.id), 2, 1)
        with pytest.raises(MatchNotReady):
            complete_match(repository, waiting.id, regs[0].id)

    def test_winner_not_in_match(self, repository, make_event):
        """Test the winner must occupy one of the slots."""
        event, regs = make_event(SINGLE_ELIMINATION, 4)
        generate_bracket(repository, event.id)
        match = find_match(repository.list_matches(event.id), 1, 1)
        outsider = next(r.id for r in regs if r.id not in match.registration_ids)
        with pytest.raises(InvalidWinner):
            complete_match(repository, match.id, outsider)

    @pytest.mark.parametrize("sets", [[(-1, 11)], [("11", 5)], [(11,)], ["bad"]])
    def test_invalid_set_scores(self, repository, make_event, sets):
        """Test malformed set scores are rejected before anything is written."""
        event, regs = make_event(SINGLE_ELIMINATION, 2)
        match = generate_bracket(repository, event.id)['matches'][0]
        with pytest.raises(ValidationError):
            complete_match(repository, match.id, regs[0].id, sets)
        assert not repository.get_match(match.id).played

    @pytest.mark.parametrize("sets", [5, "11-5", {'registration1_score': 11, 'registration2_score': 4}])
    def test_set_scores_must_be_a_list(self, repository, make_event, sets):
        """Test set scores that are not a list are rejected before anything is written."""
        event, regs = make_event(SINGLE_ELIMINATION, 2)
        match = generate_bracket(repository, event.id)['matches'][0]
        with pytest.raises(ValidationError):
            complete_match(repository, match.id, regs[0].id, sets)
        assert not repository.get_match(match.id).played

    def test_dict_set_scores(self, repository, make_event):
        """Test set scores given as mappings."""
        event, regs = make_event(SINGLE_ELIMINATION, 2)
        match = generate_bracket(repository, event.id)['matches'][0]
        complete_match(repository, match.id, regs[0].id,
                       [{'registration1_score': 11, 'registration2_score': 4}])
        stored = repository.get_match(match.id).sets
        assert stored[0].set_number == 1
        assert (stored[0].registration1_score, stored[0].registration2_score) == (11, 4)


class TestConsistency:
    """Tests for corrupt match graphs."""

    def test_dangling_edge_rolls_back(self, repository, make_event):
        """Test an edge to a missing match raises and leaves nothing written."""
        event, regs = make_event(SINGLE_ELIMINATION, 4)
        generate_bracket(repository, event.id)
        match = find_match(repository.list_matches(event.id), 1, 1)
        match.winner_to = "missing"
        repository.save_match(match)

        with pytest.raises(ConsistencyError):
            complete_match(repository, match.id, match.registration1_id)
        assert not repository.get_match(match.id).played

    def test_backward_edge(self, repository, make_event):
        """Test an edge pointing to an earlier round is rejected."""
        event, regs = make_event(SINGLE_ELIMINATION, 4)
        generate_bracket(repository, event.id)
        matches = repository.list_matches(event.id)
        first = find_match(matches, 1, 1)
        second = find_match(matches, 1, 2)
        first.winner_to = second.id
        repository.save_match(first)

        with pytest.raises(ConsistencyError):
            complete_match(repository, first.id, first.registration1_id)

    def test_resolve_byes_is_bounded(self):
        """Test a chain of empty matches resolves as void in one pass."""
        chain = [Match(event_id="e", round=r, match_number=1) for r in range(1, 6)]
        for source, target in zip(chain, chain[1:]):
            source.winner_to = target.id
            source.winner_to_slot = 1
        arena = {m.id: m for m in chain}

        affected = resolve_byes(arena, [chain[0].id])

        assert all(m.played and m.is_bye and m.winner_id is None for m in chain)
        assert len(affected.matches) == 5
