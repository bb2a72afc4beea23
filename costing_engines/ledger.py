"""
Module: costing_engines.ledger
Responsibility:
    In-memory bucket map keyed by (step_id, year) that a recompute fills
    and then writes back once.

Architecture position:
    Engines -- pure data structure, zero I/O.  The service seeds it from the
    snapshot, engines reset and accumulate into it, the ledger writer
    persists it.

Invariants enforced:
    - Reset-then-accumulate: a pass resets the buckets it owns for the
      step-years in scope before adding anything, so running it twice gives
      the same figures.
    - Only touched step-years are reported as dirty and written back.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Hashable

from costing_kernel.domain.records import CostBucket, StepYear
from costing_kernel.domain.values import ZERO
from costing_kernel.exceptions import StepYearNotFoundError

LedgerKey = tuple[Hashable, int]


class CostLedger:
    """
    Mutable (step_id, year) -> bucket -> amount map for one recompute.

    Contract:
        Keys must be registered (seeded from step years) before they can be
        reset or accumulated.
    Guarantees:
        - ``get`` returns 0 for buckets never set.
    """

    def __init__(self) -> None:
        self._entries: dict[LedgerKey, dict[CostBucket, Decimal]] = {}
        self._dirty: set[LedgerKey] = set()

    @classmethod
    def from_step_years(cls, step_years: Iterable[StepYear]) -> CostLedger:
        """Seed the ledger with the persisted buckets of every step year."""
        ledger = cls()
        for step_year in step_years:
            ledger._entries[step_year.key] = dict(step_year.buckets)
        return ledger

    def __contains__(self, key: LedgerKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _entry(self, key: LedgerKey) -> dict[CostBucket, Decimal]:
        entry = self._entries.get(key)
        if entry is None:
            raise StepYearNotFoundError(str(key[0]), key[1])
        return entry

    def get(self, key: LedgerKey, bucket: CostBucket) -> Decimal:
        return self._entry(key).get(bucket, ZERO)

    def buckets(self, key: LedgerKey) -> dict[CostBucket, Decimal]:
        entry = self._entry(key)
        return {bucket: entry.get(bucket, ZERO) for bucket in CostBucket}

    def set(self, key: LedgerKey, bucket: CostBucket, amount: Decimal) -> None:
        self._entry(key)[bucket] = amount
        self._dirty.add(key)

    def add(self, key: LedgerKey, bucket: CostBucket, amount: Decimal) -> None:
        entry = self._entry(key)
        entry[bucket] = entry.get(bucket, ZERO) + amount
        self._dirty.add(key)

    def reset(
        self,
        buckets: Iterable[CostBucket],
        keys: Iterable[LedgerKey] | None = None,
    ) -> int:
        """Zero ``buckets`` for ``keys`` (every key when None); returns the count."""
        buckets = tuple(buckets)
        scope = list(self._entries) if keys is None else list(keys)
        for key in scope:
            entry = self._entry(key)
            for bucket in buckets:
                entry[bucket] = ZERO
            self._dirty.add(key)
        return len(scope)

    def keys(self, year: int | None = None) -> list[LedgerKey]:
        if year is None:
            return list(self._entries)
        return [key for key in self._entries if key[1] == year]

    def dirty(self) -> dict[LedgerKey, dict[CostBucket, Decimal]]:
        """Touched step-years with all their buckets."""
        return {key: self.buckets(key) for key in self._entries if key in self._dirty}
