"""
Persistence gateway for short links.

The core only talks to LinkGateway. The store is the final arbiter of
code uniqueness: insert() must report a clash as DuplicateCode.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..core.errors import DuplicateCode, NotFound, StoreUnavailable
from ..database import SessionLocal, session_scope
from ..models import ShortLink, LinkState
from ..utils.clock import utcnow


logger = logging.getLogger(__name__)


class LinkGateway(ABC):
    """Store contract consumed by the link service."""

    @abstractmethod
    def exists(self, code: str, now: Optional[datetime] = None, timeout: Optional[float] = None) -> bool:
        """True if a live link holds the code."""
        raise NotImplementedError

    @abstractmethod
    def insert(self, link: ShortLink, now: Optional[datetime] = None,
               timeout: Optional[float] = None) -> ShortLink:
        """
        Persist a new link. Raises DuplicateCode on a code clash.

        Expired active rows holding the same code are tombstoned in the
        same transaction, so only live links keep a code.
        """
        raise NotImplementedError

    @abstractmethod
    def find_live(self, code: str, now: Optional[datetime] = None,
                  timeout: Optional[float] = None) -> Optional[ShortLink]:
        raise NotImplementedError

    @abstractmethod
    def find_live_by_destination(self, url: str, now: Optional[datetime] = None,
                                 timeout: Optional[float] = None) -> Optional[ShortLink]:
        """Live, public, non-expiring link for url, if any."""
        raise NotImplementedError

    @abstractmethod
    def list_by_owner(self, owner: str) -> List[ShortLink]:
        raise NotImplementedError

    @abstractmethod
    def tombstone(self, code: str, now: Optional[datetime] = None,
                  timeout: Optional[float] = None) -> ShortLink:
        raise NotImplementedError

    @abstractmethod
    def restore(self, code: str, now: Optional[datetime] = None,
                timeout: Optional[float] = None) -> ShortLink:
        """Bring back the latest tombstoned link. DuplicateCode if the code was reused."""
        raise NotImplementedError

    @abstractmethod
    def set_expiry(self, code: str, expires_at: Optional[datetime],
                   timeout: Optional[float] = None) -> ShortLink:
        raise NotImplementedError

    @abstractmethod
    def record_view(self, code: str, now: Optional[datetime] = None) -> None:
        raise NotImplementedError


def _live_filter(now: datetime):
    return (
        ShortLink.state == LinkState.ACTIVE,
        or_(ShortLink.expires_at.is_(None), ShortLink.expires_at > now)
    )


def _reclaim_expired(db, code: str, now: datetime) -> None:
    """Tombstone active rows whose expiry has passed, releasing their code."""
    reclaimed = db.execute(
        update(ShortLink)
        .where(
            ShortLink.code == code,
            ShortLink.state == LinkState.ACTIVE,
            ShortLink.expires_at <= now
        )
        .values(state=LinkState.TOMBSTONED, tombstoned_at=now)
        .execution_options(synchronize_session=False)
    ).rowcount
    if reclaimed:
        logger.info("Reclaimed expired short code %s", code)


class SqlAlchemyLinkGateway(LinkGateway):
    """
    LinkGateway over a SQLAlchemy session factory.

    Returned rows are detached from their session with all columns loaded.
    """

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def _session(self, timeout=None):
        return session_scope(self.session_factory, timeout=timeout)

    def exists(self, code, now=None, timeout=None):
        now = now or utcnow()
        try:
            with self._session(timeout) as db:
                found = db.query(ShortLink.id).filter(
                    ShortLink.code == code,
                    *_live_filter(now)
                ).first()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Existence check failed for {code!r}: {e}") from e
        return found is not None

    def insert(self, link, now=None, timeout=None):
        now = now or utcnow()
        try:
            with self._session(timeout) as db:
                _reclaim_expired(db, link.code, now)
                db.add(link)
                db.flush()
                db.refresh(link)
                db.expunge(link)
        except IntegrityError as e:
            raise DuplicateCode(link.code) from e
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Insert failed for {link.code!r}: {e}") from e
        return link

    def find_live(self, code, now=None, timeout=None):
        now = now or utcnow()
        try:
            with self._session(timeout) as db:
                link = db.query(ShortLink).filter(
                    ShortLink.code == code,
                    *_live_filter(now)
                ).first()
                if link is not None:
                    db.expunge(link)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Lookup failed for {code!r}: {e}") from e
        return link

    def find_live_by_destination(self, url, now=None, timeout=None):
        now = now or utcnow()
        try:
            with self._session(timeout) as db:
                link = db.query(ShortLink).filter(
                    ShortLink.destination == url,
                    ShortLink.state == LinkState.ACTIVE,
                    ShortLink.expires_at.is_(None),
                    ShortLink.secret_hash.is_(None)
                ).order_by(ShortLink.id).first()
                if link is not None:
                    db.expunge(link)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Lookup by destination failed: {e}") from e
        return link

    def list_by_owner(self, owner):
        try:
            with self._session() as db:
                links = db.query(ShortLink).filter(
                    ShortLink.owner == owner
                ).order_by(ShortLink.created_at.desc(), ShortLink.id.desc()).all()
                db.expunge_all()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Listing links for {owner!r} failed: {e}") from e
        return links

    def tombstone(self, code, now=None, timeout=None):
        now = now or utcnow()
        try:
            with self._session(timeout) as db:
                link = db.query(ShortLink).filter(
                    ShortLink.code == code,
                    ShortLink.state == LinkState.ACTIVE
                ).first()
                if link is None:
                    raise NotFound(code)

                link.state = LinkState.TOMBSTONED
                link.tombstoned_at = now
                db.flush()
                db.refresh(link)
                db.expunge(link)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Tombstone failed for {code!r}: {e}") from e
        return link

    def restore(self, code, now=None, timeout=None):
        now = now or utcnow()
        try:
            with self._session(timeout) as db:
                link = db.query(ShortLink).filter(
                    ShortLink.code == code,
                    ShortLink.state == LinkState.TOMBSTONED
                ).order_by(ShortLink.tombstoned_at.desc(), ShortLink.id.desc()).first()
                if link is None:
                    raise NotFound(code)

                _reclaim_expired(db, code, now)
                link.state = LinkState.ACTIVE
                link.tombstoned_at = None
                db.flush()
                db.refresh(link)
                db.expunge(link)
        except IntegrityError as e:
            raise DuplicateCode(code) from e
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Restore failed for {code!r}: {e}") from e
        return link

    def set_expiry(self, code, expires_at, timeout=None):
        try:
            with self._session(timeout) as db:
                link = db.query(ShortLink).filter(
                    ShortLink.code == code,
                    ShortLink.state == LinkState.ACTIVE
                ).first()
                if link is None:
                    raise NotFound(code)

                link.expires_at = expires_at
                db.flush()
                db.refresh(link)
                db.expunge(link)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Expiry update failed for {code!r}: {e}") from e
        return link

    def record_view(self, code, now=None):
        now = now or utcnow()
        try:
            with self._session() as db:
                db.execute(
                    update(ShortLink)
                    .where(ShortLink.code == code, ShortLink.state == LinkState.ACTIVE)
                    .values(view_count=ShortLink.view_count + 1, last_viewed_at=now)
                )
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Recording view failed for {code!r}: {e}") from e
