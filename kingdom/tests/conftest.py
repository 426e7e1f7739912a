"""
Shared fixtures: an in-memory remote store, an in-memory mirror, a fresh
query cache and the data services wired to them.
"""
import os

os.environ.setdefault("KINGDOM_DATABASE_URL", "sqlite://")
os.environ.setdefault("KINGDOM_API_KEY", "test-api-key")
os.environ.setdefault("KINGDOM_SCHEDULER_ENABLED", "0")
os.environ.setdefault("KINGDOM_LOG_DIR", "./logs")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kingdom.database import Base
from kingdom import models  # noqa: F401  registers tables on Base
from kingdom.cache import QueryCache
from kingdom.constants import ROLE_DOMINANT, ROLE_SUBMISSIVE
from kingdom.exceptions import MirrorWriteException
from kingdom.mirror import LocalMirror
from kingdom.notifications import Notifier
from kingdom.remote_store import RemoteStore
from kingdom.repositories.profile_repository import ProfileRepository
from kingdom.services.date_service import DateService
from kingdom.services.optimistic import MutationContext
from kingdom.services.registry import build_services


def memory_engine():
    return create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )


class FailingMirror(LocalMirror):
    """Mirror whose writes always fail"""

    def set_item(self, key, value):
        raise MirrorWriteException(key, "disk full")


@pytest.fixture
def engine():
    engine = memory_engine()
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def remote(session_factory):
    return RemoteStore(session_factory)


@pytest.fixture
def mirror():
    return LocalMirror(memory_engine())


@pytest.fixture
def failing_mirror():
    return FailingMirror(memory_engine())


@pytest.fixture
def cache():
    cache = QueryCache()
    yield cache
    cache.shutdown()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def ctx(cache, mirror, notifier):
    return MutationContext(cache=cache, mirror=mirror, notifier=notifier)


@pytest.fixture
def date_service():
    return DateService("monday")


@pytest.fixture
def services(session_factory, mirror, cache, notifier, date_service):
    return build_services(session_factory, mirror, cache=cache, notifier=notifier, date_service=date_service)


@pytest.fixture
def couple(db_session):
    """Linked submissive and dominant profiles, returns (sub_id, dom_id)"""
    sub = ProfileRepository.create(
        db_session, models.Profile(id="sub-1", nickname="Sub", role=ROLE_SUBMISSIVE, points=50)
    )
    dom = ProfileRepository.create(
        db_session,
        models.Profile(id="dom-1", nickname="Dom", role=ROLE_DOMINANT, dom_points=5, linked_partner_id=sub.id),
    )
    sub.linked_partner_id = dom.id
    db_session.commit()
    return sub.id, dom.id
