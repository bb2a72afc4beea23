"""
costing_services -- stateful orchestration over the costing engines.

Services receive a Session from the caller, read through selectors, run
pure engines and write results back.  They never commit.
"""

from costing_services.ledger_writer import LedgerWriter
from costing_services.recompute_service import RecomputeService, RecomputeSummary

__all__ = ["LedgerWriter", "RecomputeService", "RecomputeSummary"]
