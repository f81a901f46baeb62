"""
Records consumed and mutated by the bracket engine.

Every record is a plain object that round-trips through ``to_dict`` /
``from_dict`` so the host store can keep it as a YAML mapping.
"""
import uuid
from typing import Dict, List, Optional


GROUPS = 'groups'
GROUPS_KNOCKOUT = 'groups-knockout'
SINGLE_ELIMINATION = 'single-elimination'
DOUBLE_ELIMINATION = 'double-elimination'
TESTS = 'tests'

EVENT_FORMATS = (GROUPS, GROUPS_KNOCKOUT, SINGLE_ELIMINATION, DOUBLE_ELIMINATION, TESTS)
ELIMINATION_FORMATS = (SINGLE_ELIMINATION, DOUBLE_ELIMINATION)

WINNERS = 'winners'
LOSERS = 'losers'

FIRST_PLACE = 'first-place'
SECOND_PLACE = 'second-place'
THIRD_PLACE = 'third-place'
FOURTH_PLACE = 'fourth-place'


def new_id() -> str:
    return str(uuid.uuid4())


class Event:
    def __init__(self, name, format=GROUPS, id=None, points_per_win=3, points_per_loss=0,
                 has_third_place_match=False, losers_start_rounds_before_final=None,
                 players_per_heat=None, completed=False):
        self.id = id or new_id()
        self.name = name
        self.format = format
        self.points_per_win = points_per_win
        self.points_per_loss = points_per_loss
        self.has_third_place_match = has_third_place_match
        self.losers_start_rounds_before_final = losers_start_rounds_before_final
        self.players_per_heat = players_per_heat
        self.completed = completed

    def to_dict(self) -> Dict:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Event':
        return cls(**data)

    def __repr__(self):
        return f"Event(name={self.name}, format={self.format}, completed={self.completed})"


class Registration:
    def __init__(self, event_id, id=None, name=None, group_id=None, seed=None,
                 matches_won=0, matches_lost=0, sets_won=0, sets_lost=0, points=0,
                 qualified=False):
        self.id = id or new_id()
        self.event_id = event_id
        self.name = name
        self.group_id = group_id
        self.seed = seed
        self.matches_won = matches_won
        self.matches_lost = matches_lost
        self.sets_won = sets_won
        self.sets_lost = sets_lost
        self.points = points
        # Set by the host when it promotes a group entrant; stored, never computed here.
        self.qualified = qualified

    @property
    def set_difference(self) -> int:
        return self.sets_won - self.sets_lost

    def reset_stats(self):
        self.matches_won = 0
        self.matches_lost = 0
        self.sets_won = 0
        self.sets_lost = 0
        self.points = 0

    def to_dict(self) -> Dict:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Registration':
        return cls(**data)

    def __repr__(self):
        return f"Registration(id={self.id}, name={self.name}, points={self.points})"


class SetScore:
    def __init__(self, set_number, registration1_score, registration2_score, played=True):
        self.set_number = set_number
        self.registration1_score = registration1_score
        self.registration2_score = registration2_score
        self.played = played

    def to_dict(self) -> Dict:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: Dict) -> 'SetScore':
        return cls(**data)

    def __repr__(self):
        return f"SetScore({self.set_number}: {self.registration1_score}-{self.registration2_score})"


class Match:
    def __init__(self, event_id, round, match_number, id=None, group_id=None,
                 registration1_id=None, registration2_id=None, played=False, winner_id=None,
                 bracket_type=None, winner_to=None, winner_to_slot=None, loser_to=None,
                 loser_to_slot=None, winner_to_placement=None, loser_to_placement=None,
                 is_third_place=False, is_bye=False, sets=None):
        self.id = id or new_id()
        self.event_id = event_id
        self.group_id = group_id
        self.round = round
        self.match_number = match_number
        self.registration1_id = registration1_id
        self.registration2_id = registration2_id
        self.played = played
        self.winner_id = winner_id
        self.bracket_type = bracket_type
        self.winner_to = winner_to
        self.winner_to_slot = winner_to_slot
        self.loser_to = loser_to
        self.loser_to_slot = loser_to_slot
        self.winner_to_placement = winner_to_placement
        self.loser_to_placement = loser_to_placement
        self.is_third_place = is_third_place
        self.is_bye = is_bye
        self.sets: List[SetScore] = sets if sets else []

    @property
    def registration_ids(self) -> List[str]:
        """Registrations currently occupying a slot, in slot order."""
        return [r for r in (self.registration1_id, self.registration2_id) if r]

    def has_single_participant(self) -> bool:
        return (self.registration1_id is None) != (self.registration2_id is None)

    def get_slot(self, slot: int) -> Optional[str]:
        return self.registration1_id if slot == 1 else self.registration2_id

    def set_slot(self, slot: int, registration_id: Optional[str]):
        if slot == 1:
            self.registration1_id = registration_id
        else:
            self.registration2_id = registration_id

    def opponent_of(self, registration_id: str) -> Optional[str]:
        if registration_id == self.registration1_id:
            return self.registration2_id
        if registration_id == self.registration2_id:
            return self.registration1_id
        return None

    @property
    def loser_id(self) -> Optional[str]:
        if not self.played or self.winner_id is None:
            return None
        return self.opponent_of(self.winner_id)

    def sort_key(self):
        """Topological key: every edge of the match graph strictly increases it."""
        return (1 if self.bracket_type == LOSERS else 0, self.round, self.match_number)

    def to_dict(self) -> Dict:
        data = dict(self.__dict__)
        data['sets'] = [s.to_dict() for s in self.sets]
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Match':
        data = dict(data)
        data['sets'] = [SetScore.from_dict(s) for s in data.get('sets') or []]
        return cls(**data)

    def __repr__(self):
        return (f"Match(round={self.round}, match_number={self.match_number}, "
                f"bracket_type={self.bracket_type}, registrations=({self.registration1_id}, "
                f"{self.registration2_id}), played={self.played}, winner={self.winner_id})")


class Group:
    def __init__(self, event_id, name, id=None, completed=False):
        self.id = id or new_id()
        self.event_id = event_id
        self.name = name
        self.completed = completed

    def to_dict(self) -> Dict:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Group':
        return cls(**data)

    def __repr__(self):
        return f"Group(name={self.name}, completed={self.completed})"
