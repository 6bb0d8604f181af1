"""EscrowProof ORM — persists evidence artifacts submitted by a party.

Invariants:
    - Always belongs to an EscrowTransaction (escrow_transaction_id FK)
    - submitted_by is the buyer or seller (checked in the core before insert)
    - Append-only: no code path updates or deletes a proof

Design Decisions:
    - file_reference is a URL/CID string opaque to the engine
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from escrow_engine.db.base import Base


class EscrowProof(Base):
    """Evidence entity — one artifact in an escrow's proof ledger."""
    __tablename__ = "escrow_proofs"
    __table_args__ = (
        Index("ix_escrow_proofs_escrow_created", "escrow_transaction_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    escrow_transaction_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("escrow_transactions.id", ondelete="RESTRICT"),
        nullable=False,
    )
    submitted_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    proof_type: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    file_reference: Mapped[str] = mapped_column(String(2000), nullable=False)
    file_cid: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    escrow_transaction: Mapped["EscrowTransaction"] = relationship(
        "EscrowTransaction", back_populates="proofs",
    )
