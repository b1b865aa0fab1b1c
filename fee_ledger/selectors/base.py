"""
Module: fee_ledger.selectors.base
Responsibility: Abstract base class for read-side query selectors.
Architecture position: Ledger > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/.

Invariants enforced:
    - Selectors never call session.add(), session.delete(), session.commit()
      or session.flush().
    - Selectors do not create or manage their own sessions; the caller owns
      the session and its transaction scope.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform queries and
        return ORM rows (for services to lock and mutate) or DTOs.
    """

    def __init__(self, session: Session):
        self.session = session
