"""TTL cache with negative entries and single-flight fetches.

Entries are checked for expiry at read time; expired entries are swept on the
next write. Every mutation happens without an intervening ``await`` so the
cache is safe to share between the polling loop and on-demand callers running
on the same event loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    Hashable,
    Optional,
    Tuple,
    TypeVar,
    Union,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class Placeholder:
    """Cached marker for a failed fetch.

    ``payload`` lets callers keep a substitute value (e.g. a generated image)
    alongside the failure.
    """

    reason: str = ""
    payload: Any = None


@dataclass(slots=True, frozen=True)
class CacheEntry(Generic[T]):
    value: Union[T, Placeholder]
    stored_at: float
    ttl: float

    @property
    def is_placeholder(self) -> bool:
        return isinstance(self.value, Placeholder)

    def expired(self, now: float) -> bool:
        return now - self.stored_at >= self.ttl


class TTLCache(Generic[T]):
    """Key/value store with per-entry TTL and a shorter TTL for placeholders."""

    def __init__(
        self,
        *,
        ttl: float,
        placeholder_ttl: float,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._placeholder_ttl = placeholder_ttl
        self._name = name
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry[T]] = {}
        self._inflight: Dict[Hashable, "asyncio.Future[Union[T, Placeholder]]"] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def placeholder_ttl(self) -> float:
        return self._placeholder_ttl

    def get(self, key: Hashable) -> Tuple[Optional[Union[T, Placeholder]], bool]:
        """Return ``(value, hit)``; an expired entry is reported as a miss."""
        entry = self._entries.get(key)
        if entry is None or entry.expired(self._clock()):
            return None, False
        return entry.value, True

    def peek(self, key: Hashable) -> Optional[CacheEntry[T]]:
        """Return the live entry for ``key`` without touching the network."""
        entry = self._entries.get(key)
        if entry is None or entry.expired(self._clock()):
            return None
        return entry

    def put(self, key: Hashable, value: T, ttl: Optional[float] = None) -> None:
        self._store(key, value, self._ttl if ttl is None else ttl)

    def put_placeholder(
        self,
        key: Hashable,
        ttl: Optional[float] = None,
        *,
        reason: str = "",
        payload: Any = None,
    ) -> Placeholder:
        placeholder = Placeholder(reason=reason, payload=payload)
        self._store(
            key, placeholder, self._placeholder_ttl if ttl is None else ttl
        )
        return placeholder

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def is_inflight(self, key: Hashable) -> bool:
        return key in self._inflight

    async def get_or_fetch(
        self,
        key: Hashable,
        fetch: Callable[[], Awaitable[T]],
        *,
        ttl: Optional[float] = None,
        on_error: Optional[Callable[[Exception], Placeholder]] = None,
    ) -> Union[T, Placeholder]:
        """Return the cached value for ``key`` or fetch it exactly once.

        Concurrent callers for a key that is already being fetched await the
        first caller's result instead of issuing a duplicate request. When
        ``on_error`` is given, a failed fetch is stored as the placeholder it
        returns; otherwise the exception propagates to every waiter and nothing
        is cached.

        The fetch runs in a task owned by the cache, so cancelling one caller
        only stops that caller from waiting.
        """
        value, hit = self.get(key)
        if hit:
            return value  # type: ignore[return-value]

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(
                self._fetch_and_store(key, fetch, ttl, on_error)
            )
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task)

    async def aclose(self) -> None:
        """Cancel fetches still in flight and wait for them to unwind."""
        pending = list(self._inflight.values())
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        self._inflight.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _fetch_and_store(
        self,
        key: Hashable,
        fetch: Callable[[], Awaitable[T]],
        ttl: Optional[float],
        on_error: Optional[Callable[[Exception], Placeholder]],
    ) -> Union[T, Placeholder]:
        try:
            result = await fetch()
        except Exception as exc:
            if on_error is None:
                raise
            placeholder = on_error(exc)
            self._store(key, placeholder, self._placeholder_ttl)
            return placeholder

        if isinstance(result, Placeholder):
            self._store(key, result, self._placeholder_ttl)
        else:
            self._store(key, result, self._ttl if ttl is None else ttl)
        return result

    def _forget(self, key: Hashable, task: "asyncio.Future[Any]") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Waiters that were cancelled never read the outcome.
            task.exception()

    def _store(self, key: Hashable, value: Union[T, Placeholder], ttl: float) -> None:
        now = self._clock()
        self._sweep(now)
        self._entries[key] = CacheEntry(value=value, stored_at=now, ttl=ttl)
        if isinstance(value, Placeholder):
            LOGGER.debug(
                "%s: cached placeholder for %r (%.1fs): %s",
                self._name,
                key,
                ttl,
                value.reason,
            )

    def _sweep(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if entry.expired(now)]
        for key in expired:
            del self._entries[key]
