from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError

from app.db import dispose_engine, init_engine
from app.services.draw_flow import DrawFlow
from app.services.roster import ExclusionPolicy, build_roster, load_roster
from app.services.state_store import StateStore, StoreUnavailableError

ROSTER_PATH = Path(__file__).resolve().parents[1] / "roster.json"


class BrokenSessionFactory:
    def __call__(self):
        return self

    def __enter__(self):
        raise OperationalError("SELECT 1", {}, Exception("database is down"))

    def __exit__(self, *exc_info):
        return False


class FailingSaveStore(StateStore):
    def save(self, partial):
        raise StoreUnavailableError("Failed to save shared state.")


@pytest.fixture
def family_roster():
    return load_roster(str(ROSTER_PATH), ExclusionPolicy.STRICT)


@pytest.fixture
def couple_roster():
    return build_roster(
        [
            {"id": "erin", "name": "Erin", "exclusions": ["thomas"]},
            {"id": "thomas", "name": "Thomas", "exclusions": ["erin"]},
        ]
    )


@pytest.fixture
def engine():
    engine = init_engine("sqlite+pysqlite:///:memory:")
    yield engine
    dispose_engine()


@pytest.fixture
def store(engine):
    store = StateStore()
    store.ensure_table()
    return store


@pytest.fixture
def flow(store, family_roster):
    return DrawFlow(store, family_roster)
