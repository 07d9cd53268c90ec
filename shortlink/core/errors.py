class ShortLinkError(Exception):
    """Base class for all short link errors"""


class InvalidInput(ShortLinkError):
    """Rejected URL or custom code"""


class ExhaustedRetries(ShortLinkError):
    """No free short code was found within the retry budget."""

    def __init__(self, original: str, attempts: int):
        self.original = original
        self.attempts = attempts
        super().__init__(
            f"Unable to generate unique short code for {original!r} "
            f"after {attempts} attempts"
        )


class DuplicateCode(ShortLinkError):
    """The store already holds a live link with this code."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Short code {code!r} is already taken")


class NotFound(ShortLinkError):
    """
    No usable link for the code.

    Raised alike for unknown, tombstoned and expired codes.
    """

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Short code {code!r} not found")


class StoreUnavailable(ShortLinkError):
    """The backing store failed or timed out. Safe to retry."""


class CacheUnavailable(ShortLinkError):
    """The cache backend failed. Never leaves the cache layer."""
