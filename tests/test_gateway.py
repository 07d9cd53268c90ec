import sqlite3
import time
from datetime import datetime, timedelta

import pytest
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from shortlink.core.errors import DuplicateCode, NotFound, StoreUnavailable
from shortlink.database import create_db_engine, session_scope
from shortlink.models import LinkState, LinkStatus, ShortLink
from shortlink.services.gateway import SqlAlchemyLinkGateway


NOW = datetime(2026, 3, 1, 12, 0, 0)


def new_link(code, url="http://example.com", **kwargs):
    return ShortLink(code=code, destination=url, created_at=NOW, updated_at=NOW, **kwargs)


def test_insert_and_find_live(gateway):
    link = gateway.insert(new_link("abc12345", owner="user-1"))

    assert link.id is not None
    assert link.state == LinkState.ACTIVE
    assert link.view_count == 0

    found = gateway.find_live("abc12345", NOW)
    assert found.destination == "http://example.com"
    assert found.owner == "user-1"
    assert gateway.exists("abc12345", NOW)


def test_duplicate_live_code_rejected(gateway):
    gateway.insert(new_link("abc12345"))

    with pytest.raises(DuplicateCode) as excinfo:
        gateway.insert(new_link("abc12345", url="http://other.com"))
    assert excinfo.value.code == "abc12345"


def test_expired_link_is_not_live(gateway):
    gateway.insert(new_link("abc12345", expires_at=NOW + timedelta(seconds=2)))

    assert gateway.exists("abc12345", NOW)
    assert not gateway.exists("abc12345", NOW + timedelta(seconds=3))
    assert gateway.find_live("abc12345", NOW + timedelta(seconds=3)) is None


def test_tombstone_frees_code_but_keeps_row(gateway):
    gateway.insert(new_link("abc12345", owner="user-1"))

    tombstoned = gateway.tombstone("abc12345", NOW)
    assert tombstoned.state == LinkState.TOMBSTONED
    assert tombstoned.tombstoned_at == NOW
    assert not gateway.exists("abc12345", NOW)
    assert gateway.find_live("abc12345", NOW) is None

    # the code can be reused by a new live link
    gateway.insert(new_link("abc12345", url="http://other.com", owner="user-1"))
    assert gateway.find_live("abc12345", NOW).destination == "http://other.com"
    assert len(gateway.list_by_owner("user-1")) == 2


def test_tombstone_unknown_code(gateway):
    with pytest.raises(NotFound):
        gateway.tombstone("nope1234", NOW)


def test_restore(gateway):
    gateway.insert(new_link("abc12345"))
    gateway.tombstone("abc12345", NOW)

    restored = gateway.restore("abc12345", NOW)
    assert restored.state == LinkState.ACTIVE
    assert restored.tombstoned_at is None
    assert gateway.exists("abc12345", NOW)

    with pytest.raises(NotFound):
        gateway.restore("abc12345", NOW)


def test_restore_conflicts_with_reused_code(gateway):
    gateway.insert(new_link("abc12345"))
    gateway.tombstone("abc12345", NOW)
    gateway.insert(new_link("abc12345", url="http://other.com"))

    with pytest.raises(DuplicateCode):
        gateway.restore("abc12345", NOW)


def test_record_view(gateway):
    gateway.insert(new_link("abc12345"))

    gateway.record_view("abc12345", NOW)
    gateway.record_view("abc12345", NOW + timedelta(minutes=1))

    link = gateway.find_live("abc12345", NOW)
    assert link.view_count == 2
    assert link.last_viewed_at == NOW + timedelta(minutes=1)


def test_set_expiry(gateway):
    gateway.insert(new_link("abc12345"))

    link = gateway.set_expiry("abc12345", NOW + timedelta(hours=1))
    assert link.expires_at == NOW + timedelta(hours=1)

    with pytest.raises(NotFound):
        gateway.set_expiry("nope1234", None)


def test_find_live_by_destination_skips_private_and_expiring(gateway):
    gateway.insert(new_link("secret01", secret_hash="$2b$12$hash"))
    gateway.insert(new_link("expires1", expires_at=NOW + timedelta(days=1)))
    assert gateway.find_live_by_destination("http://example.com", NOW) is None

    gateway.insert(new_link("public01"))
    assert gateway.find_live_by_destination("http://example.com", NOW).code == "public01"


def test_status_is_total():
    link = new_link("abc12345", state=LinkState.ACTIVE)
    assert link.status(NOW) == LinkStatus.LIVE

    link.expires_at = NOW
    assert link.status(NOW) == LinkStatus.EXPIRED
    assert not link.is_live(NOW)

    link.state = LinkState.TOMBSTONED
    assert link.status(NOW) == LinkStatus.TOMBSTONED


def test_missing_tables_surface_as_store_unavailable(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    gateway = SqlAlchemyLinkGateway(sessionmaker(bind=engine))

    with pytest.raises(StoreUnavailable):
        gateway.exists("abc12345", NOW)
    with pytest.raises(StoreUnavailable):
        gateway.find_live("abc12345", NOW)
    engine.dispose()


def test_insert_reclaims_expired_code(gateway):
    gateway.insert(new_link("abc12345", owner="user-1", expires_at=NOW + timedelta(seconds=2)))

    later = NOW + timedelta(seconds=3)
    gateway.insert(new_link("abc12345", url="http://other.com", owner="user-1"), later)

    assert gateway.find_live("abc12345", later).destination == "http://other.com"
    states = {link.destination: link for link in gateway.list_by_owner("user-1")}
    assert states["http://example.com"].state == LinkState.TOMBSTONED
    assert states["http://example.com"].tombstoned_at == later
    assert states["http://other.com"].state == LinkState.ACTIVE


def test_insert_keeps_unexpired_code(gateway):
    gateway.insert(new_link("abc12345", expires_at=NOW + timedelta(seconds=2)))

    with pytest.raises(DuplicateCode):
        gateway.insert(new_link("abc12345", url="http://other.com"), NOW + timedelta(seconds=1))


def test_restore_over_expired_holder(gateway):
    gateway.insert(new_link("abc12345"))
    gateway.tombstone("abc12345", NOW)
    gateway.insert(new_link("abc12345", url="http://other.com", expires_at=NOW + timedelta(seconds=2)), NOW)

    later = NOW + timedelta(seconds=3)
    restored = gateway.restore("abc12345", later)

    assert restored.destination == "http://example.com"
    assert gateway.find_live("abc12345", later).destination == "http://example.com"


def test_session_timeout_is_scoped(session_factory):
    with session_scope(session_factory, timeout=0.25) as db:
        assert db.execute(text("PRAGMA busy_timeout")).scalar() == 250

    # engine fixture connects with a 10 second timeout
    with session_scope(session_factory) as db:
        assert db.execute(text("PRAGMA busy_timeout")).scalar() == 10000


def test_timeout_bounds_wait_on_locked_store(engine, gateway):
    gateway.insert(new_link("abc12345"))

    locker = sqlite3.connect(engine.url.database, isolation_level=None)
    try:
        locker.execute("BEGIN EXCLUSIVE")
        started = time.monotonic()
        with pytest.raises(StoreUnavailable):
            gateway.tombstone("abc12345", NOW, timeout=0.2)
        assert time.monotonic() - started < 5
    finally:
        locker.execute("ROLLBACK")
        locker.close()

    assert gateway.exists("abc12345", NOW)


def test_repr_before_flush():
    link = new_link("abc12345")
    assert repr(link) == "<ShortLink abc12345 -> http://example.com (None)>"

    link.state = LinkState.TOMBSTONED
    assert repr(link) == "<ShortLink abc12345 -> http://example.com (tombstoned)>"
