"""Weighted value selection.

Buckets are chosen from a fraction in ``[0, 1)``: a murmur3 hash of the
config key and a context property when ``hash_by_property_name`` resolves,
otherwise a pseudo-random draw.
"""

from __future__ import annotations

import random
import threading
from collections.abc import Callable
from typing import Any, Protocol

import mmh3

from .evaluator import stringify
from .models import WeightedValue, WeightedValues

_HASH_SPACE = 2**32


def hash_zero_to_one(value: str) -> float:
    """Map ``value`` onto ``[0, 1)`` using unsigned 32-bit murmur3 (seed 0)."""
    return mmh3.hash(value, 0, signed=False) / _HASH_SPACE


class ContextValueGetter(Protocol):
    def get_context_value(self, property_name: str) -> tuple[Any, bool]: ...


class WeightedValueResolver:
    """Pick one entry out of a ``WeightedValues`` set.

    Parameters
    ----------
    seed:
        Seed for the fallback pseudo-random generator. ``None`` seeds from
        the system.
    hasher:
        Function mapping the hash input string to a fraction in ``[0, 1)``.
    """

    def __init__(
        self,
        seed: int | None = None,
        hasher: Callable[[str], float] = hash_zero_to_one,
    ) -> None:
        self._rng = random.Random(seed)
        self._rng_lock = threading.Lock()
        self._hasher = hasher

    def _random(self) -> float:
        with self._rng_lock:
            return self._rng.random()

    def _fraction(
        self,
        weighted_values: WeightedValues,
        config_key: str,
        context: ContextValueGetter,
    ) -> float:
        if weighted_values.hash_by_property_name:
            value, ok = context.get_context_value(weighted_values.hash_by_property_name)
            if ok:
                return self._hasher(config_key + stringify(value))
        return self._random()

    def resolve(
        self,
        weighted_values: WeightedValues,
        config_key: str,
        context: ContextValueGetter,
    ) -> tuple[WeightedValue, int]:
        """Return the selected entry and its index.

        The first entry whose cumulative weight reaches ``fraction * total``
        wins; index 0 is the fallback.
        """
        fraction = self._fraction(weighted_values, config_key, context)
        entries = weighted_values.weighted_values
        threshold = fraction * sum(wv.weight for wv in entries)
        running = 0
        for index, entry in enumerate(entries):
            running += entry.weight
            if running >= threshold:
                return entry, index
        return entries[0], 0
