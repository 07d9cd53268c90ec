import logging
import time
from datetime import datetime
from typing import Callable, List, Optional

from ..config import Settings, settings as default_settings
from ..core.cache import LookupCache, build_cache, entry_for
from ..core.errors import DuplicateCode, ExhaustedRetries, InvalidInput, NotFound, StoreUnavailable
from ..core.generator import CodeGenerator, CodeStrategy, build_strategy
from ..core.resolver import CollisionResolver
from ..database import SessionLocal
from ..models import ShortLink
from ..schemas.link import LinkCreate, LinkResponse, ResolvedLink
from ..utils.clock import as_naive_utc, utcnow
from ..utils.validators import is_valid_url, validate_custom_code
from .gateway import LinkGateway, SqlAlchemyLinkGateway


logger = logging.getLogger(__name__)


def to_response(link: ShortLink, existing: bool = False) -> LinkResponse:
    response = LinkResponse.model_validate(link)
    response.existing = existing
    return response


class LinkService:
    """
    Function-level API of the shortener core.

    Generation goes through the collision resolver against the cache and
    the store; resolution reads the cache first and falls back to the
    store; every mutation invalidates the cache before and after writing.
    """

    def __init__(
        self,
        gateway: LinkGateway,
        cache: LookupCache,
        strategy: CodeStrategy,
        max_retries: int = 3,
        clock: Callable[[], datetime] = utcnow
    ):
        self.gateway = gateway
        self.cache = cache
        self.max_retries = max_retries
        self.clock = clock
        self.generator = CodeGenerator(
            strategy,
            self.code_exists,
            CollisionResolver(max_retries=max_retries)
        )

    def code_exists(self, code: str) -> bool:
        """Existence check for generation: a live cache hit, else the store."""
        now = self.clock()
        if self.cache.get_live(code, now) is not None:
            return True
        return self.gateway.exists(code, now)

    def generate_code(self, strategy_input: str, exclude=(), timeout: Optional[float] = None) -> str:
        """
        Generate a free short code for strategy_input.

        Args:
            strategy_input: URL (or seed text) handed to the strategy
            exclude: Codes to treat as taken
            timeout: Seconds the existence checks may take in total

        Raises:
            ExhaustedRetries, StoreUnavailable
        """
        deadline = time.monotonic() + timeout if timeout is not None else None
        return self.generator.generate(strategy_input, exclude=exclude, deadline=deadline)

    def shorten(self, link_data: LinkCreate, timeout: Optional[float] = None) -> LinkResponse:
        """
        Create a short link, or return the existing public one for the URL.

        A code the store rejects as duplicate (lost race with another
        writer) is excluded and generation runs again, up to max_retries
        times.
        """
        is_valid, error_msg = is_valid_url(link_data.url)
        if not is_valid:
            raise InvalidInput(error_msg)

        now = self.clock()
        expires_at = as_naive_utc(link_data.expires_at)
        if expires_at is not None and expires_at <= now:
            raise InvalidInput("Expiry time must be in the future")

        public = expires_at is None and link_data.secret_hash is None
        if link_data.reuse_existing and public and not link_data.custom_code:
            existing_link = self.gateway.find_live_by_destination(link_data.url, now, timeout=timeout)
            if existing_link:
                return to_response(existing_link, existing=True)

        if link_data.custom_code:
            is_valid_code, error_msg = validate_custom_code(link_data.custom_code)
            if not is_valid_code:
                raise InvalidInput(error_msg)
            if self.code_exists(link_data.custom_code):
                raise DuplicateCode(link_data.custom_code)
            link = self._insert(link_data, link_data.custom_code, expires_at, now, timeout)
            return to_response(link)

        rejected = set()
        for _ in range(self.max_retries + 1):
            code = self.generate_code(link_data.url, exclude=rejected, timeout=timeout)
            try:
                link = self._insert(link_data, code, expires_at, now, timeout)
            except DuplicateCode:
                logger.info("Short code %s lost an insert race, regenerating", code)
                rejected.add(code)
                continue
            return to_response(link)

        logger.error("Giving up on %s after %d duplicate inserts", link_data.url, len(rejected))
        raise ExhaustedRetries(link_data.url, len(rejected))

    def _insert(self, link_data: LinkCreate, code: str, expires_at, now, timeout=None) -> ShortLink:
        link = self.gateway.insert(ShortLink(
            code=code,
            destination=link_data.url,
            owner=link_data.owner,
            secret_hash=link_data.secret_hash,
            expires_at=expires_at,
            created_at=now,
            updated_at=now
        ), now, timeout=timeout)
        self.cache.put(entry_for(link), now)
        return link

    def resolve_code(self, code: str, timeout: Optional[float] = None) -> ResolvedLink:
        """
        Destination for a live code.

        Args:
            code: Short code to resolve
            timeout: Seconds the store lookup may wait on a cache miss

        Raises:
            NotFound: unknown, tombstoned or expired (not told apart)
            StoreUnavailable: store failed on a cache miss
        """
        now = self.clock()
        entry = self.cache.get_live(code, now)

        if entry is None:
            generation = self.cache.generation
            link = self.gateway.find_live(code, now, timeout=timeout)
            if link is None:
                raise NotFound(code)
            entry = entry_for(link)
            self.cache.put(entry, now, generation=generation)

        self._record_view(code, now)
        return entry.resolved()

    def _record_view(self, code: str, now: datetime) -> None:
        # View counts are best effort and live only in the store
        try:
            self.gateway.record_view(code, now)
        except StoreUnavailable as e:
            logger.warning("Could not record view for %s: %s", code, e)

    def invalidate_code(self, code: str) -> None:
        self.cache.invalidate(code)

    def tombstone_code(self, code: str, timeout: Optional[float] = None) -> LinkResponse:
        self.cache.invalidate(code)
        link = self.gateway.tombstone(code, self.clock(), timeout=timeout)
        self.cache.invalidate(code)
        logger.info("Tombstoned short code %s", code)
        return to_response(link)

    def restore_code(self, code: str, timeout: Optional[float] = None) -> LinkResponse:
        self.cache.invalidate(code)
        link = self.gateway.restore(code, self.clock(), timeout=timeout)
        self.cache.invalidate(code)
        logger.info("Restored short code %s", code)
        return to_response(link)

    def set_expiry(self, code: str, expires_at: Optional[datetime],
                   timeout: Optional[float] = None) -> LinkResponse:
        """Change or clear the expiry of an active link."""
        self.cache.invalidate(code)
        link = self.gateway.set_expiry(code, as_naive_utc(expires_at), timeout=timeout)
        self.cache.invalidate(code)
        return to_response(link)

    def links_for_owner(self, owner: str) -> List[LinkResponse]:
        return [to_response(link) for link in self.gateway.list_by_owner(owner)]


def build_link_service(settings: Settings = None, session_factory=None,
                       clock: Callable[[], datetime] = utcnow) -> LinkService:
    """Wire a LinkService from configuration."""
    settings = settings or default_settings

    gateway = SqlAlchemyLinkGateway(session_factory or SessionLocal)

    cache = build_cache(
        settings.CACHE_BACKEND,
        redis_url=settings.REDIS_URL,
        max_entries=settings.CACHE_MAX_ENTRIES,
        max_ttl=settings.CACHE_MAX_TTL_SECONDS,
        socket_timeout=settings.CACHE_SOCKET_TIMEOUT_SECONDS
    )
    strategy = build_strategy(
        settings.SHORT_CODE_STRATEGY,
        hash_length=settings.HASH_CODE_LENGTH,
        counter_span=settings.COUNTER_SPAN
    )
    return LinkService(gateway, cache, strategy, max_retries=settings.MAX_RETRIES, clock=clock)
