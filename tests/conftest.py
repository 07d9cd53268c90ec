from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from shortlink import models  # noqa: F401
from shortlink.core.cache import LookupCache, MemoryCacheBackend
from shortlink.core.generator import CounterStrategy, HashStrategy, SequenceCounter
from shortlink.database import create_db_engine
from shortlink.init_db import init_database
from shortlink.services.gateway import SqlAlchemyLinkGateway
from shortlink.services.links import LinkService


class FakeClock:
    """Settable stand-in for utcnow()."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0))


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'links.db'}", timeout=10)
    init_database(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def gateway(session_factory):
    return SqlAlchemyLinkGateway(session_factory)


@pytest.fixture
def cache():
    return LookupCache(MemoryCacheBackend(maxsize=100))


@pytest.fixture
def service(gateway, cache, clock):
    return LinkService(gateway, cache, HashStrategy(length=8), clock=clock)


@pytest.fixture
def counter_service(gateway, cache, clock):
    return LinkService(gateway, cache, CounterStrategy(SequenceCounter(), span=100), clock=clock)

