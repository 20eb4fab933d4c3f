"""
Bounded-concurrency helpers for fanning out backend calls.

``bounded_map`` runs a fixed-width pool of workers over an ordered queue.
Items start in queue order, at most ``limit`` are awaited at once, and
every outcome is captured as a ``Settled`` so one failure never cancels
its siblings.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Iterable, List, Optional, Tuple, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class Settled(Generic[T]):
    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def bounded_map(
    func: Callable[[T], Awaitable[R]],
    items: Iterable[T],
    *,
    limit: int,
) -> List[Settled[R]]:
    """
    Apply ``func`` to every item with at most ``limit`` calls in flight.

    Returns:
        One ``Settled`` per item, in input order.

    Raises:
        ValueError: If ``limit`` is less than 1.
    """
    if limit < 1:
        raise ValueError("limit must be >= 1")

    queue: deque[Tuple[int, T]] = deque(enumerate(items))
    results: List[Optional[Settled[R]]] = [None] * len(queue)

    async def worker() -> None:
        while queue:
            index, item = queue.popleft()
            try:
                results[index] = Settled(value=await func(item))
            except Exception as exc:
                results[index] = Settled(error=exc)

    width = min(limit, len(queue))
    if width:
        await asyncio.gather(*(worker() for _ in range(width)))
    return [result for result in results if result is not None]

