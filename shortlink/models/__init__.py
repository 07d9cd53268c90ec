from .link import ShortLink, LinkState, LinkStatus

__all__ = ["ShortLink", "LinkState", "LinkStatus"]
