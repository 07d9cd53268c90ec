from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class LinkCreate(BaseModel):
    """Schema for creating a new short link"""
    url: str = Field(..., description="Original URL to shorten", min_length=1, max_length=2048)
    expires_at: Optional[datetime] = Field(None, description="Expiry time, naive values are UTC")
    owner: Optional[str] = Field(None, max_length=100)
    secret_hash: Optional[str] = Field(None, description="Caller-hashed secret gating resolution", max_length=255)
    custom_code: Optional[str] = Field(None, description="Custom short code", min_length=3, max_length=16)
    reuse_existing: bool = Field(True, description="Return an existing public link for the same URL")


class LinkResponse(BaseModel):
    """Schema for link response"""
    code: str
    destination: str
    owner: Optional[str] = None
    requires_secret: bool = False
    created_at: datetime
    expires_at: Optional[datetime] = None
    tombstoned_at: Optional[datetime] = None
    view_count: int = 0
    last_viewed_at: Optional[datetime] = None
    existing: bool = False

    class Config:
        from_attributes = True


class ResolvedLink(BaseModel):
    """What the redirect path needs"""
    destination: str
    requires_secret: bool = False


class CacheEntry(BaseModel):
    """Cached projection of a short link, never the source of truth"""
    code: str
    destination: str
    expires_at: Optional[datetime] = None
    tombstoned: bool = False
    requires_secret: bool = False

    def is_live(self, now: datetime) -> bool:
        if self.tombstoned:
            return False
        return self.expires_at is None or self.expires_at > now

    def resolved(self) -> ResolvedLink:
        return ResolvedLink(destination=self.destination, requires_secret=self.requires_secret)
