import enum

from sqlalchemy import Column, Integer, String, DateTime, Enum, Index

from ..database import Base
from ..utils.clock import utcnow


class LinkState(str, enum.Enum):
    """Stored lifecycle state"""
    ACTIVE = "active"
    TOMBSTONED = "tombstoned"


class LinkStatus(str, enum.Enum):
    """Effective status at a given moment"""
    LIVE = "live"
    EXPIRED = "expired"
    TOMBSTONED = "tombstoned"


class ShortLink(Base):
    """Short link model"""
    __tablename__ = "short_links"

    id = Column(Integer, primary_key=True)
    code = Column(String(16), index=True, nullable=False)
    destination = Column(String(2048), nullable=False)
    owner = Column(String(100), index=True, nullable=True)  # user id, None for anonymous
    secret_hash = Column(String(255), nullable=True)  # opaque, hashed by the caller
    state = Column(
        Enum(LinkState, native_enum=False, length=16,
             values_callable=lambda states: [s.value for s in states]),
        nullable=False,
        default=LinkState.ACTIVE
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    expires_at = Column(DateTime, nullable=True)
    tombstoned_at = Column(DateTime, nullable=True)
    view_count = Column(Integer, nullable=False, default=0)
    last_viewed_at = Column(DateTime, nullable=True)

    # A code is unique among non-tombstoned rows; tombstoned rows stay for audit
    __table_args__ = (
        Index(
            "uq_short_links_active_code",
            "code",
            unique=True,
            sqlite_where=(state == LinkState.ACTIVE),
            postgresql_where=(state == LinkState.ACTIVE)
        ),
    )

    def status(self, now=None) -> LinkStatus:
        if self.state == LinkState.TOMBSTONED:
            return LinkStatus.TOMBSTONED
        now = now or utcnow()
        if self.expires_at is not None and self.expires_at <= now:
            return LinkStatus.EXPIRED
        return LinkStatus.LIVE

    def is_live(self, now=None) -> bool:
        return self.status(now) == LinkStatus.LIVE

    @property
    def requires_secret(self) -> bool:
        return self.secret_hash is not None

    def __repr__(self):
        state = getattr(self.state, "value", self.state)
        return f"<ShortLink {self.code} -> {self.destination} ({state})>"
