from __future__ import annotations

import random
from typing import Callable, Sequence, TypeVar

T = TypeVar("T")


def uniform_int(rng: random.Random, low: int, high: int) -> int:
    """Inclusive integer draw built on ``rng.random()`` so scripted sources stay simple."""
    if high <= low:
        return low
    return min(high, low + int(rng.random() * (high - low + 1)))


def pick(rng: random.Random, items: Sequence[T]) -> T:
    if not items:
        raise ValueError("Cannot pick from an empty sequence")
    return items[min(len(items) - 1, int(rng.random() * len(items)))]


def weighted_choice(rng: random.Random, items: Sequence[T], weight: Callable[[T], float]) -> T | None:
    weights = [max(0.0, float(weight(item))) for item in items]
    total = sum(weights)
    if not items or total <= 0:
        return None
    threshold = rng.random() * total
    running = 0.0
    for item, item_weight in zip(items, weights):
        running += item_weight
        if threshold < running:
            return item
    return items[-1]


def weighted_sample(
    rng: random.Random,
    items: Sequence[T],
    weight: Callable[[T], float],
    count: int,
) -> list[T]:
    """Draw up to ``count`` distinct items, each with probability proportional to its weight.

    Items with a non-positive weight are never drawn.
    """
    pool = [(item, float(weight(item))) for item in items]
    pool = [(item, value) for item, value in pool if value > 0]
    chosen: list[T] = []
    while pool and len(chosen) < count:
        total = sum(value for _, value in pool)
        threshold = rng.random() * total
        running = 0.0
        index = len(pool) - 1
        for position, (_, value) in enumerate(pool):
            running += value
            if threshold < running:
                index = position
                break
        chosen.append(pool.pop(index)[0])
    return chosen
