"""
Module: costing_kernel.selectors.base
Responsibility: Abstract base class for the read-only query selectors that feed
    the costing engines.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from engines, services or config.

Invariants enforced:
    - Read-only access: selectors accept a Session from the caller but never
      call session.add(), session.delete(), session.commit() or session.flush().
    - Selectors return frozen dataclasses, never ORM instances.
    - The caller owns the session and its transaction scope.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return frozen records.
    """

    def __init__(self, session: Session):
        self.session = session
