import hashlib
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Collection, Optional, Tuple

from .encoder import BASE36, encode, hash_encode
from .resolver import CollisionResolver, ExistsCheck


# Counter codes count one-second buckets from this fixed epoch
COUNTER_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp()


def next_sequence(previous_epoch: Optional[int], current_epoch: int, previous_value: int) -> int:
    """Sequence value following previous_value: restarts at 0 in a new epoch bucket."""
    if previous_epoch is None or current_epoch != previous_epoch:
        return 0
    return previous_value + 1


class SequenceCounter:
    """
    Per-process sequence counter, reset every epoch bucket.

    The clock returns seconds since the Unix epoch (time.time by default).
    """

    def __init__(self, clock: Callable[[], float] = time.time, epoch: float = COUNTER_EPOCH):
        self.clock = clock
        self.epoch = epoch
        self._lock = threading.Lock()
        self._bucket = None
        self._value = 0

    def current_bucket(self) -> int:
        return max(0, int(self.clock() - self.epoch))

    def next(self) -> Tuple[int, int]:
        """Atomically advance the counter and return (bucket, value)."""
        bucket = self.current_bucket()
        with self._lock:
            self._value = next_sequence(self._bucket, bucket, self._value)
            self._bucket = bucket
            return bucket, self._value


class CodeStrategy(ABC):
    """How seeds and retry candidates are built"""

    name = None

    @abstractmethod
    def seed(self, strategy_input: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def derive(self, original: str, token: str, length: int) -> str:
        raise NotImplementedError


class CounterStrategy(CodeStrategy):
    """
    Time + counter codes in Base36.

    seed = encode(bucket * span + sequence). Codes trend upwards over time
    and stay 7 symbols long until 2048. Instances do not
    coordinate: two processes can produce the same seed in the same
    second, which the existence check and the store's unique index absorb.
    """

    name = "counter"

    def __init__(self, counter: SequenceCounter, span: int = 100):
        if span < 1:
            raise ValueError("Counter span must be positive")
        self.counter = counter
        self.span = span

    def seed_value(self) -> int:
        bucket, sequence = self.counter.next()
        return bucket * self.span + sequence

    def seed(self, strategy_input: str) -> str:
        return encode(self.seed_value())

    def derive(self, original: str, token: str, length: int) -> str:
        digest = hashlib.sha256(f"{original}:{token}".encode("utf-8")).hexdigest()
        value = int(digest, 16) % (len(BASE36) ** length)
        return encode(value).rjust(length, BASE36[0])


class HashStrategy(CodeStrategy):
    """
    Content-hash codes: the same URL always seeds the same code.
    """

    name = "hash"

    def __init__(self, length: int = 8):
        self.length = length

    def seed(self, strategy_input: str) -> str:
        return hash_encode(strategy_input, self.length)

    def derive(self, original: str, token: str, length: int) -> str:
        return hash_encode(original + token, length)


class CodeGenerator:
    """Build a store-ready short code with the configured strategy."""

    def __init__(
        self,
        strategy: CodeStrategy,
        exists: ExistsCheck,
        resolver: Optional[CollisionResolver] = None
    ):
        self.strategy = strategy
        self.exists = exists
        self.resolver = resolver or CollisionResolver()

    def generate(
        self,
        strategy_input: str,
        exclude: Collection[str] = (),
        deadline: Optional[float] = None
    ) -> str:
        """
        Generate a code not currently taken.

        Args:
            strategy_input: URL (or any seed text) for the strategy
            exclude: Codes to treat as taken, e.g. ones the store just
                rejected on insert
            deadline: time.monotonic() deadline for store calls

        Raises:
            ExhaustedRetries, StoreUnavailable
        """
        def is_taken(code: str) -> bool:
            return code in exclude or self.exists(code)

        seed = self.strategy.seed(strategy_input)
        return self.resolver.resolve(
            strategy_input,
            seed,
            is_taken,
            self.strategy.derive,
            deadline=deadline
        )


def build_strategy(name: str, hash_length: int = 8, counter_span: int = 100,
                   counter: Optional[SequenceCounter] = None) -> CodeStrategy:
    """Strategy by configuration name ("hash" or "counter")."""
    if name == HashStrategy.name:
        return HashStrategy(length=hash_length)
    if name == CounterStrategy.name:
        return CounterStrategy(counter or SequenceCounter(), span=counter_span)
    raise ValueError(f"Unknown short code strategy: {name!r}")
