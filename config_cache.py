"""Memoized, time-bounded loading of parsed configuration snapshots."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Generic, TypeVar


T = TypeVar("T")

logger = logging.getLogger("tross.config")

DEFAULT_TTL_S = 300.0


class MemoizedLoader(Generic[T]):
    """Load-or-return-cached wrapper around an async loader.

    The loader result is treated as an immutable snapshot. A reload builds
    a complete new snapshot before swapping it in, so readers holding the
    previous one keep a consistent view. Concurrent callers that find the
    snapshot stale share a single in-flight load.
    """

    def __init__(
        self,
        name: str,
        load: Callable[[], Awaitable[T]],
        ttl_s: float = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._load = load
        self.ttl_s = float(ttl_s)
        self._clock = clock
        self._value: T | None = None
        self._loaded_at: float | None = None
        self._inflight: asyncio.Future | None = None
        self.load_count = 0

    @property
    def loaded_at(self) -> float | None:
        return self._loaded_at

    @property
    def is_loaded(self) -> bool:
        return self._loaded_at is not None

    @property
    def is_fresh(self) -> bool:
        if self._loaded_at is None:
            return False
        return (self._clock() - self._loaded_at) < self.ttl_s

    def peek(self) -> T | None:
        return self._value

    def invalidate(self) -> None:
        self._loaded_at = None

    async def get(self, force_reload: bool = False) -> T:
        if not force_reload and self.is_fresh:
            return self._value  # type: ignore[return-value]
        if self._inflight is not None:
            return await asyncio.shield(self._inflight)
        loop = asyncio.get_running_loop()
        self._inflight = loop.create_future()
        inflight = self._inflight
        try:
            value = await self._load()
        except Exception as exc:
            inflight.set_exception(exc)
            # mark retrieved so a future nobody else awaited does not warn
            inflight.exception()
            raise
        except BaseException:
            inflight.cancel()
            raise
        else:
            self._value = value
            self._loaded_at = self._clock()
            self.load_count += 1
            inflight.set_result(value)
            logger.info("config_loaded name=%s load_count=%s ttl_s=%s", self.name, self.load_count, self.ttl_s)
            return value
        finally:
            self._inflight = None
