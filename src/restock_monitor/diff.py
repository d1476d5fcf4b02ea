from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet

from .models import StockEntry


@dataclass(frozen=True)
class SizeRestock:
    size: str
    entry: StockEntry


@dataclass(frozen=True)
class DiffResult:
    events: list[SizeRestock]
    resets: list[str]
    notified: set[str]


def is_watched(size: str, watched_sizes: AbstractSet[str]) -> bool:
    return not watched_sizes or size in watched_sizes


def diff_stock(
    previous: dict[str, StockEntry],
    current: dict[str, StockEntry],
    watched_sizes: AbstractSet[str],
    notified: set[str],
) -> DiffResult:
    """Compare two snapshots of one product and decide what to notify.

    ``notified`` is updated in place: a size is added when its restock event
    is emitted and discarded when it goes out of stock again, which re-arms
    the alert. Sizes that only exist in ``previous`` are left alone; a
    missing size is treated as a scrape gap rather than a stock change.

    A size seen for the first time already in stock counts as a restock,
    there is no earlier baseline to compare against.
    """
    events: list[SizeRestock] = []
    resets: list[str] = []
    for size, entry in current.items():
        prev = previous.get(size)
        was_in_stock = bool(prev and prev.in_stock)
        if not is_watched(size, watched_sizes):
            continue
        if not was_in_stock and entry.in_stock:
            if size in notified:
                continue
            events.append(SizeRestock(size=size, entry=entry))
            notified.add(size)
        elif was_in_stock and not entry.in_stock:
            notified.discard(size)
            resets.append(size)
    return DiffResult(events=events, resets=resets, notified=notified)
