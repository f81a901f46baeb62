"""
Shared pytest fixtures for bracket engine tests.

Running tests:
    pytest tests/                  - full suite
    pytest tests/ -m "not slow"   - fast subset (skips exhaustive play-outs)
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from engine.models import Event, Registration, SINGLE_ELIMINATION
from engine.repository import InMemoryRepository


@pytest.fixture
def repository():
    """Empty in-memory repository."""
    return InMemoryRepository()


@pytest.fixture
def make_event(repository):
    """Factory creating an event with numbered registrations (Player 1 = seed 1)."""
    def _make_event(format=SINGLE_ELIMINATION, num_registrations=0, **options):
        event = repository.add_event(Event(name="Test Event", format=format, **options))
        registrations = [
            repository.add_registration(Registration(event_id=event.id, name=f"Player {i + 1}"))
            for i in range(num_registrations)
        ]
        return event, registrations
    return _make_event


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Flask test client backed by a temporary data directory."""
    import app as app_module

    monkeypatch.setattr(app_module, 'DATA_DIR', str(tmp_path))
    app_module.app.config['TESTING'] = True
    with app_module.app.test_client() as client:
        yield client


@pytest.fixture
def temp_data_dir(tmp_path):
    """Temporary data directory with a settings file."""
    settings_file = tmp_path / "settings.yaml"
    settings_file.write_text("points_per_win: 2\npoints_per_loss: 1\nplayers_per_heat: 4\n")
    return str(tmp_path)
