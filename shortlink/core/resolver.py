import logging
import time
import uuid
from typing import Callable, Optional

from .errors import ExhaustedRetries, StoreUnavailable


logger = logging.getLogger(__name__)

MAX_CODE_LENGTH = 16

ExistsCheck = Callable[[str], bool]
Derive = Callable[[str, str, int], str]


def _uuid_token() -> str:
    return uuid.uuid4().hex


class CollisionResolver:
    """
    Turn a seed code into a free one.

    Every retry mixes the original input with a fresh token and asks for
    one more symbol than the seed had, so each attempt is less likely to
    collide than the one before. The number of retries is bounded.
    """

    def __init__(self, max_retries: int = 3, token_factory: Callable[[], str] = _uuid_token):
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        self.max_retries = max_retries
        self.token_factory = token_factory

    def resolve(
        self,
        original: str,
        seed: str,
        exists: ExistsCheck,
        derive: Derive,
        deadline: Optional[float] = None
    ) -> str:
        """
        Return the first candidate for which exists() is false.

        Args:
            original: Input the seed was built from, mixed into retries
            seed: First candidate
            exists: Existence check, usually cache-then-store
            derive: (original, token, length) -> new candidate
            deadline: time.monotonic() value after which no more store
                calls are made

        Raises:
            ExhaustedRetries: every candidate was taken
            StoreUnavailable: deadline passed, or raised by exists()
        """
        candidate = seed
        attempt = 0

        while True:
            if deadline is not None and time.monotonic() >= deadline:
                raise StoreUnavailable(
                    f"Deadline exceeded while checking short code {candidate!r}"
                )

            if not exists(candidate):
                if attempt:
                    logger.debug("Resolved %r after %d collision(s)", original, attempt)
                return candidate

            if attempt >= self.max_retries:
                logger.error(
                    "Short code retries exhausted for %r (%d attempts)",
                    original, attempt + 1
                )
                raise ExhaustedRetries(original, attempt + 1)

            attempt += 1
            length = min(len(seed) + attempt, MAX_CODE_LENGTH)
            candidate = derive(original, self.token_factory(), length)
