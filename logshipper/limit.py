"""A concurrency limiter that hands out numbered slots."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Generic, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


class Backoff:
    """Exponential delay: ``base ** step * multiplier`` milliseconds."""

    def __init__(self, base: int = 2, multiplier: int = 10) -> None:
        self.base = base
        self.multiplier = multiplier
        self.step = 0

    def next_delay(self) -> float:
        """Return the delay in seconds for the current step and advance a step."""
        delay = self.base**self.step * self.multiplier / 1000.0
        self.step += 1
        return delay

    async def snooze(self) -> None:
        """Sleep for the next delay."""
        log.info("hit rate limit, snoozing")
        await asyncio.sleep(self.next_delay())


class Slot(Generic[T]):
    """A held slot carrying an item; releasing it frees the slot."""

    def __init__(self, limiter: RateLimiter, item: T, slot: int) -> None:
        self._limiter = limiter
        self.item = item
        self.slot = slot
        self._released = False

    def release(self) -> None:
        """Give the slot back; calling it again has no effect."""
        if not self._released:
            self._released = True
            self._limiter._slots -= 1

    def into_inner(self) -> T:
        """Release the slot and return the item it carried."""
        self.release()
        return self.item

    def __enter__(self) -> Slot[T]:
        return self

    def __exit__(self, *args: Any) -> None:
        self.release()

    def __del__(self) -> None:
        try:
            self.release()
        except AttributeError:
            pass


class RateLimiter:
    """Allows at most ``max_slots`` items to be in flight at once."""

    def __init__(self, max_slots: int) -> None:
        self.max = max_slots
        self._slots = 0
        self.limit_hits = 0

    def in_use(self) -> int:
        """Number of slots currently held."""
        return self._slots

    async def get_slot(self, item: T) -> Slot[T]:
        """Wait, backing off, until a slot is free and take it for ``item``."""
        backoff = Backoff()
        while self._slots >= self.max:
            self.limit_hits += 1
            await backoff.snooze()
        self._slots += 1
        return Slot(self, item, self._slots)