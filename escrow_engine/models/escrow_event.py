"""EscrowEvent ORM — append-only event log (audit trail and settlement outbox).

Invariants:
    - One row per successful transition and per audited attempt (reversal requests)
    - Rows are never updated or deleted
    - sequence is monotonically increasing: ordering does not depend on clock resolution

Design Decisions:
    - Outbox over direct publishing: the engine never talks to a message bus;
      settlement and notification workers read this table
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger, DateTime, ForeignKey, Index, Integer, JSON, String,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from escrow_engine.db.base import Base


class EscrowEvent(Base):
    """Event entity — one entry in an escrow's audit log."""
    __tablename__ = "escrow_events"
    __table_args__ = (
        Index("ix_escrow_events_escrow_sequence", "escrow_transaction_id", "sequence"),
    )

    sequence: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, unique=True, default=uuid.uuid4,
    )
    escrow_transaction_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("escrow_transactions.id", ondelete="RESTRICT"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    old_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
