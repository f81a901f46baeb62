"""
Persistence interface consumed by the engine, and its in-memory implementation.

The engine calls every mutating operation inside ``transaction()``; an
exception raised inside the block leaves the stored tables as they were.
"""
import copy
from contextlib import contextmanager
from typing import Dict, List

from .errors import NotFound
from .models import Event, Registration, Match, Group

TABLES = ('events', 'registrations', 'matches', 'groups')


class InMemoryRepository:
    """Arena of records keyed by id, one table per record type."""

    def __init__(self):
        self.tables: Dict[str, Dict] = {name: {} for name in TABLES}
        self._depth = 0

    @contextmanager
    def transaction(self):
        """Snapshot the tables and restore them if the block raises."""
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        snapshot = copy.deepcopy(self.tables)
        self._depth = 1
        try:
            yield self
        except Exception:
            self.tables = snapshot
            raise
        finally:
            self._depth = 0

    def _get(self, table: str, kind: str, record_id: str):
        record = self.tables[table].get(record_id)
        if record is None:
            raise NotFound(kind, record_id)
        return record

    # Events

    def add_event(self, event: Event) -> Event:
        self.tables['events'][event.id] = event
        return event

    def get_event(self, event_id: str) -> Event:
        return self._get('events', 'Event', event_id)

    def save_event(self, event: Event) -> None:
        self.tables['events'][event.id] = event

    # Registrations

    def add_registration(self, registration: Registration) -> Registration:
        self.tables['registrations'][registration.id] = registration
        return registration

    def get_registration(self, registration_id: str) -> Registration:
        return self._get('registrations', 'Registration', registration_id)

    def list_registrations(self, event_id: str) -> List[Registration]:
        return [r for r in self.tables['registrations'].values() if r.event_id == event_id]

    def save_registration(self, registration: Registration) -> None:
        self.tables['registrations'][registration.id] = registration

    # Matches

    def add_match(self, match: Match) -> Match:
        self.tables['matches'][match.id] = match
        return match

    def get_match(self, match_id: str) -> Match:
        return self._get('matches', 'Match', match_id)

    def list_matches(self, event_id: str) -> List[Match]:
        return [m for m in self.tables['matches'].values() if m.event_id == event_id]

    def save_match(self, match: Match) -> None:
        self.tables['matches'][match.id] = match

    def delete_matches(self, event_id: str) -> int:
        doomed = [m.id for m in self.list_matches(event_id)]
        for match_id in doomed:
            del self.tables['matches'][match_id]
        return len(doomed)

    # Groups

    def add_group(self, group: Group) -> Group:
        self.tables['groups'][group.id] = group
        return group

    def get_group(self, group_id: str) -> Group:
        return self._get('groups', 'Group', group_id)

    def list_groups(self, event_id: str) -> List[Group]:
        return [g for g in self.tables['groups'].values() if g.event_id == event_id]

    def save_group(self, group: Group) -> None:
        self.tables['groups'][group.id] = group

    def delete_group(self, group_id: str) -> None:
        self.tables['groups'].pop(group_id, None)
