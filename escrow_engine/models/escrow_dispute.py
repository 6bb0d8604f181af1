"""EscrowDispute ORM — persists disputes and the arbitration assessment attached to them.

Invariants:
    - At most one row with status 'open' per escrow (partial unique index)
    - previous_status records the escrow status the dispute interrupted
    - assessment_* columns are null until the oracle answers
    - resolved_at set when status leaves 'open'

Design Decisions:
    - Assessment flattened into columns (not a separate table): exactly one
      assessment per dispute, and it is queried together with the dispute
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger, DateTime, Float, ForeignKey, Index, String, Text, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from escrow_engine.db.base import Base


class EscrowDispute(Base):
    """Dispute entity — a party's disagreement awaiting arbitration."""
    __tablename__ = "escrow_disputes"
    __table_args__ = (
        Index(
            "uq_escrow_disputes_one_open",
            "escrow_transaction_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    escrow_transaction_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("escrow_transactions.id", ondelete="RESTRICT"),
        nullable=False,
    )
    initiator_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="open",
    )
    previous_status: Mapped[str] = mapped_column(String(30), nullable=False)
    assessment_verdict: Mapped[str | None] = mapped_column(
        String(10), nullable=True,
    )
    assessment_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    assessment_outcome: Mapped[str | None] = mapped_column(
        String(20), nullable=True,
    )
    assessment_confidence: Mapped[float | None] = mapped_column(
        Float, nullable=True,
    )
    assessed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    outcome: Mapped[str | None] = mapped_column(String(20), nullable=True)
    resolved_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    # Relationships
    escrow_transaction: Mapped["EscrowTransaction"] = relationship(
        "EscrowTransaction", back_populates="disputes",
    )
