"""
costing_services.ledger_writer -- Persist recompute results.

Responsibility:
    Write the dirty step-years of a CostLedger into step_yearly_data and
    solved margins into deliverable_yearly_quantities.

Architecture position:
    Services -- the only writer of engine output.  Flushes but never
    commits; the caller's session_scope owns the transaction.

Invariants enforced:
    - Bucket columns are assigned, never incremented, so a rerun overwrites
      the previous figures instead of adding to them.
    - Only step-years touched by the recompute are written.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Hashable

from sqlalchemy import select
from sqlalchemy.orm import Session

from costing_engines.ledger import CostLedger
from costing_engines.margin import DeliverableYearMargin
from costing_kernel.domain.values import quantize
from costing_kernel.exceptions import StepYearNotFoundError
from costing_kernel.logging_config import get_logger
from costing_kernel.models import DeliverableYearlyQuantityModel, StepYearlyDataModel

logger = get_logger("services.ledger_writer")


class LedgerWriter:
    """Writes ledger buckets and margin solutions through one session."""

    def __init__(self, session: Session, storage_places: int = 9):
        self.session = session
        self._places = storage_places

    def write_buckets(self, ledger: CostLedger) -> int:
        """
        Assign every bucket of every dirty step-year.

        Raises:
            StepYearNotFoundError: A ledger key has no database row.
        """
        dirty = ledger.dirty()
        if not dirty:
            return 0

        step_ids = {key[0] for key in dirty}
        rows = self.session.scalars(
            select(StepYearlyDataModel).where(StepYearlyDataModel.step_id.in_(step_ids))
        ).all()
        by_key: dict[tuple[Hashable, int], StepYearlyDataModel] = {
            (row.step_id, row.year): row for row in rows
        }

        for key, buckets in dirty.items():
            row = by_key.get(key)
            if row is None:
                raise StepYearNotFoundError(str(key[0]), key[1])
            for bucket, amount in buckets.items():
                setattr(row, bucket.value, quantize(amount, self._places))

        self.session.flush()
        logger.info("ledger_buckets_written", extra={"step_year_count": len(dirty)})
        return len(dirty)

    def write_margins(self, margins: Iterable[DeliverableYearMargin]) -> int:
        margins = list(margins)
        if not margins:
            return 0

        deliverable_ids = {m.deliverable_id for m in margins}
        rows = self.session.scalars(
            select(DeliverableYearlyQuantityModel).where(
                DeliverableYearlyQuantityModel.deliverable_id.in_(deliverable_ids)
            )
        ).all()
        by_key = {(row.deliverable_id, row.year_number): row for row in rows}

        written = 0
        for margin in margins:
            row = by_key.get((margin.deliverable_id, margin.year_number))
            if row is None:
                continue
            row.operational_to = margin.solution.operational_to
            row.dm_real = margin.solution.dm_real
            row.gmbs_real = margin.solution.gmbs_real
            written += 1

        self.session.flush()
        logger.info("deliverable_margins_written", extra={"row_count": written})
        return written
