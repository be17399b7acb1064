"""
Cache service for expensive external calls.

File-backed JSON entries keyed by workspace + operation, two TTL tiers,
single-flight population and invalidation on context switch.
"""

import fcntl
import json
import re
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from cpc.constants import LONG_TTL, SHORT_TTL
from cpc.logger import CpcLogger
from cpc.utils import atomic_write_text

KEY_SEPARATOR = "__"
UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class TTLClass(Enum):
    """Freshness tier of a cache entry."""

    SHORT = "short"
    LONG = "long"


@dataclass
class CacheEntry:
    """A previously computed result stored on disk."""

    context: str
    operation: str
    payload: Any
    created_at: float
    ttl_class: TTLClass

    def age(self, now: float) -> float:
        return now - self.created_at

    def to_json(self) -> str:
        return json.dumps(
            {
                "context": self.context,
                "operation": self.operation,
                "created_at": self.created_at,
                "ttl_class": self.ttl_class.value,
                "payload": self.payload,
            },
            indent=2,
        )

    @classmethod
    def from_json(cls, text: str) -> "CacheEntry":
        """
        Parse a stored entry.

        Raises:
            ValueError: If the entry is truncated or malformed
        """
        try:
            data = json.loads(text)
            return cls(
                context=str(data["context"]),
                operation=str(data["operation"]),
                payload=data["payload"],
                created_at=float(data["created_at"]),
                ttl_class=TTLClass(data["ttl_class"]),
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ValueError(f"corrupt cache entry: {e}") from e


class CacheService:
    """
    Workspace-scoped cache.

    Responsibilities:
    - cached_call(): fresh entry or producer result (persisted)
    - single-flight: one producer per key at a time (thread lock + flock)
    - invalidate(context) / clear_all()
    """

    def __init__(
        self,
        cache_dir: Path,
        context_provider: Callable[[], str],
        short_ttl: int = SHORT_TTL,
        long_ttl: int = LONG_TTL,
        ttl_overrides: Optional[Dict[str, int]] = None,
        clock: Callable[[], float] = time.time,
        logger: Optional[CpcLogger] = None,
    ):
        """
        Initialize cache service.

        Args:
            cache_dir: Directory holding <context>__<operation>.json files
            context_provider: Returns the active workspace name
            short_ttl: Seconds for TTLClass.SHORT
            long_ttl: Seconds for TTLClass.LONG
            ttl_overrides: Per-operation TTL in seconds (wins over the tier)
            clock: Time source (epoch seconds)
            logger: Logger for debug lines
        """
        self.cache_dir = cache_dir
        self.context_provider = context_provider
        self.tiers = {TTLClass.SHORT: short_ttl, TTLClass.LONG: long_ttl}
        self.ttl_overrides = dict(ttl_overrides or {})
        self.clock = clock
        self.logger = logger

        self._state_lock = threading.RLock()
        self._key_locks: Dict[str, threading.Lock] = {}
        self._generations: Dict[str, int] = {}

    def ttl_for(self, operation: str, ttl_class: TTLClass) -> int:
        """TTL in seconds for an operation (per-operation override, else tier)."""
        return self.ttl_overrides.get(operation.lower(), self.tiers[ttl_class])

    def _debug(self, message: str) -> None:
        if self.logger:
            self.logger.debug(message)

    @staticmethod
    def key(context: str, operation: str) -> str:
        return f"{UNSAFE_KEY_CHARS.sub('_', context)}{KEY_SEPARATOR}{UNSAFE_KEY_CHARS.sub('_', operation)}"

    def path_for(self, context: str, operation: str) -> Path:
        return self.cache_dir / f"{self.key(context, operation)}.json"

    def read(
        self,
        operation: str,
        ttl_class: TTLClass = TTLClass.LONG,
        context: Optional[str] = None,
    ) -> Optional[CacheEntry]:
        """
        Return the entry if it exists and is younger than its TTL.

        Missing, stale, corrupt or mismatched entries are all a miss.
        """
        context = context or self.context_provider()
        path = self.path_for(context, operation)
        with self._state_lock:
            try:
                text = path.read_text()
            except FileNotFoundError:
                return None
            except OSError as e:
                self._debug(f"Cache read failed for {path.name}: {e}")
                return None

        try:
            entry = CacheEntry.from_json(text)
        except ValueError as e:
            self._debug(f"Ignoring {path.name}: {e}")
            return None

        if entry.context != context or entry.operation != operation:
            self._debug(f"Ignoring {path.name}: key mismatch")
            return None

        ttl = self.ttl_for(operation, ttl_class)
        age = entry.age(self.clock())
        if age < 0 or age >= ttl:
            self._debug(f"Cache entry {path.name} is stale (age {age:.0f}s, ttl {ttl}s)")
            return None

        self._debug(f"Cache hit for {operation} in '{context}' (age {age:.0f}s)")
        return entry

    def write(
        self,
        operation: str,
        payload: Any,
        ttl_class: TTLClass = TTLClass.LONG,
        context: Optional[str] = None,
    ) -> CacheEntry:
        """Persist an entry atomically (temp file + rename)."""
        context = context or self.context_provider()
        entry = CacheEntry(
            context=context,
            operation=operation,
            payload=payload,
            created_at=self.clock(),
            ttl_class=ttl_class,
        )
        with self._state_lock:
            atomic_write_text(self.path_for(context, operation), entry.to_json(), mode=0o600)
        return entry

    def cached_call(
        self,
        operation: str,
        ttl_class: TTLClass,
        producer: Callable[[], Any],
        context: Optional[str] = None,
    ) -> Any:
        """
        Fresh cached payload, or the producer's result (then cached).

        At most one producer runs per key; callers that waited on the
        lock re-check the cache before producing. A result produced while
        the context was invalidated is returned but not stored.

        Args:
            operation: Operation name (part of the key)
            ttl_class: Freshness tier
            producer: Zero-argument callable returning JSON-serializable data
            context: Workspace (defaults to the active one)

        Returns:
            Payload
        """
        context = context or self.context_provider()

        entry = self.read(operation, ttl_class, context)
        if entry is not None:
            return entry.payload

        with self._single_flight(context, operation):
            entry = self.read(operation, ttl_class, context)
            if entry is not None:
                return entry.payload

            generation = self._generation(context)
            self._debug(f"Cache miss for {operation} in '{context}', running producer")
            payload = producer()

            with self._state_lock:
                if self._generation(context) == generation:
                    self.write(operation, payload, ttl_class, context)
                else:
                    self._debug(f"Context '{context}' was invalidated while producing {operation}; not caching")
            return payload

    def invalidate(self, context: str) -> int:
        """
        Delete every entry scoped to `context`.

        Workspace names may contain the key separator, so a file matching
        the prefix is only removed when its stored context agrees.

        Returns:
            Number of entries removed
        """
        prefix = f"{UNSAFE_KEY_CHARS.sub('_', context)}{KEY_SEPARATOR}"
        removed = 0
        with self._state_lock:
            self._generations[context] = self._generation(context) + 1
            if self.cache_dir.is_dir():
                for path in self.cache_dir.glob(f"{prefix}*.json"):
                    if self._stored_context(path) not in (None, context):
                        continue
                    path.unlink(missing_ok=True)
                    removed += 1
        self._debug(f"Invalidated {removed} cache entr{'y' if removed == 1 else 'ies'} for '{context}'")
        return removed

    def _stored_context(self, path: Path) -> Optional[str]:
        """Context recorded inside an entry file; None when unreadable."""
        try:
            return CacheEntry.from_json(path.read_text()).context
        except (OSError, ValueError):
            return None

    def clear_all(self) -> int:
        """
        Remove all entries and lock files unconditionally.

        Returns:
            Number of entries removed
        """
        removed = 0
        with self._state_lock:
            for context in list(self._generations):
                self._generations[context] += 1
            if self.cache_dir.is_dir():
                for path in self.cache_dir.iterdir():
                    if path.is_file() and path.suffix in (".json", ".lock", ".tmp"):
                        if path.suffix == ".json":
                            removed += 1
                        path.unlink(missing_ok=True)
        return removed

    def entries(self) -> List[CacheEntry]:
        """All readable entries on disk, regardless of freshness."""
        if not self.cache_dir.is_dir():
            return []
        found = []
        for path in sorted(self.cache_dir.glob("*.json")):
            try:
                found.append(CacheEntry.from_json(path.read_text()))
            except (OSError, ValueError):
                continue
        return found

    def _generation(self, context: str) -> int:
        return self._generations.get(context, 0)

    @contextmanager
    def _single_flight(self, context: str, operation: str) -> Iterator[None]:
        key = self.key(context, operation)
        with self._state_lock:
            lock = self._key_locks.setdefault(key, threading.Lock())

        with lock:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            lock_path = self.cache_dir / f".{key}.lock"
            with open(lock_path, "a") as handle:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
