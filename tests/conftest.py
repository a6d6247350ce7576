import pytest

from app import create_app
from case_repository import CaseRepository, seed_cases
from config import GameConfig, Settings
from db import Database
from fakes import CASE_ID, FakeModel, build_case
from game_engine import SessionService, TurnOrchestrator
from guards import RateLimiter
from session_store import SessionStore


@pytest.fixture
def case():
    return build_case()


@pytest.fixture
def database(tmp_path, case):
    """File-backed SQLite so worker threads share one database."""
    db = Database(f"sqlite:///{tmp_path / 'game.db'}")
    db.create_all()
    seed_cases(db, [case])
    yield db
    db.dispose()


@pytest.fixture
def cases(database):
    return CaseRepository(database)


@pytest.fixture
def store(database):
    return SessionStore(database)


@pytest.fixture
def records(cases):
    return cases.get_immutable_records(CASE_ID)


@pytest.fixture
def initial(cases):
    return cases.get_initial_data(CASE_ID)


@pytest.fixture
def fake_model():
    return FakeModel()


@pytest.fixture
def game_config():
    return GameConfig(cooldown_seconds=0)


@pytest.fixture
def engine(cases, store, fake_model, game_config):
    return TurnOrchestrator(cases, store, fake_model, config=game_config)


@pytest.fixture
def sessions(cases, store):
    return SessionService(cases, store)


@pytest.fixture
def session_id(sessions):
    record, _ = sessions.start_session(CASE_ID)
    return record.session_id


def _make_client(database, model, config, rate_limiter=None):
    settings = Settings(database_url=database.url, seed_sample_cases=False)
    app = create_app(
        settings=settings,
        model=model,
        database=database,
        config=config,
        rate_limiter=rate_limiter,
    )
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def client(database, fake_model, game_config):
    with _make_client(database, fake_model, game_config) as c:
        yield c


@pytest.fixture
def throttled_client(database, fake_model):
    with _make_client(database, fake_model, GameConfig(), RateLimiter(cooldown_seconds=60)) as c:
        yield c
