"""ORM Models — SQLAlchemy declarative models for all escrow entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - EscrowTransaction is the aggregate root; all entities scoped by escrow_transaction_id

Design Decisions:
    - One file per entity for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from escrow_engine.models.escrow_transaction import EscrowTransaction  # noqa: F401
from escrow_engine.models.escrow_proof import EscrowProof  # noqa: F401
from escrow_engine.models.escrow_dispute import EscrowDispute  # noqa: F401
from escrow_engine.models.escrow_rating import EscrowRating  # noqa: F401
from escrow_engine.models.escrow_event import EscrowEvent  # noqa: F401
