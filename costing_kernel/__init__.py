"""
Costing Kernel

Persistence, reference records and error taxonomy for the project costing
engine:
- Typed, coded exceptions
- Structured JSON logging
- SQLAlchemy models for projects, steps, rate tables and pooled costs
- Read-only selectors producing immutable snapshots for the engines
"""

__version__ = "0.1.0"
