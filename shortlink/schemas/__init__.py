from .link import LinkCreate, LinkResponse, ResolvedLink, CacheEntry

__all__ = ["LinkCreate", "LinkResponse", "ResolvedLink", "CacheEntry"]
