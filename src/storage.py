"""
YAML file store for events, registrations, matches and groups.

The whole store lives in one YAML file. A transaction holds the data lock,
loads the file, and writes it back only if the block finishes without error.
"""
import os
from contextlib import contextmanager

import yaml
from filelock import FileLock

from engine.models import Event, Registration, Match, Group
from engine.repository import InMemoryRepository, TABLES

STORE_FILENAME = 'store.yaml'

_RECORD_TYPES = {
    'events': Event,
    'registrations': Registration,
    'matches': Match,
    'groups': Group,
}


class YamlRepository(InMemoryRepository):
    def __init__(self, data_dir: str, filename: str = STORE_FILENAME, timeout: float = 10):
        super().__init__()
        self.data_dir = data_dir
        self.path = os.path.join(data_dir, filename)
        os.makedirs(data_dir, exist_ok=True)
        self._lock = FileLock(os.path.join(data_dir, '.lock'), timeout=timeout)

    def _load(self):
        """Load all tables from the YAML file."""
        tables = {name: {} for name in TABLES}
        if not os.path.exists(self.path):
            return tables
        with open(self.path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        if not data:
            return tables
        for name, record_type in _RECORD_TYPES.items():
            for record in data.get(name) or []:
                instance = record_type.from_dict(record)
                tables[name][instance.id] = instance
        return tables

    def _save(self):
        """Save all tables to the YAML file."""
        data = {name: [record.to_dict() for record in self.tables[name].values()] for name in TABLES}
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def refresh(self):
        """Reload the tables for read-only use."""
        with self._lock:
            self.tables = self._load()
        return self

    @contextmanager
    def transaction(self):
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        with self._lock:
            self.tables = self._load()
            self._depth = 1
            try:
                yield self
            except Exception:
                self.tables = self._load()
                raise
            finally:
                self._depth = 0
            self._save()
