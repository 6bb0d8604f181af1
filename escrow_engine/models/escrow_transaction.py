"""EscrowTransaction ORM — persists the aggregate root of the escrow lifecycle.

Invariants:
    - id is UUID primary key
    - buyer_id != seller_id (CHECK constraint + core validation)
    - status holds an EscrowStatus value; only the store's compare-and-swap
      update changes it
    - rows are never deleted: terminal statuses stay for audit

Design Decisions:
    - amount stored as String: the engine treats it as an opaque decimal string
    - JSON metadata column: caller-supplied context passed through untouched
    - (buyer_id, created_at) and (seller_id, created_at) indexes serve list_by_party
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger, CheckConstraint, DateTime, Index, JSON, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from escrow_engine.db.base import Base


class EscrowTransaction(Base):
    """Escrow aggregate root — owns proofs, disputes, ratings, events."""
    __tablename__ = "escrow_transactions"
    __table_args__ = (
        CheckConstraint("buyer_id <> seller_id", name="ck_escrow_distinct_parties"),
        Index("ix_escrow_buyer_created", "buyer_id", "created_at"),
        Index("ix_escrow_seller_created", "seller_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    buyer_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    seller_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount: Mapped[str] = mapped_column(String(78), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    chain: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="initiated",
    )
    funding_reference: Mapped[str | None] = mapped_column(
        String(256), nullable=True,
    )
    creation_verdict: Mapped[str | None] = mapped_column(
        String(10), nullable=True,
    )
    metadata_: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    funded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    disputed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    # Relationships
    proofs: Mapped[list["EscrowProof"]] = relationship(
        "EscrowProof", back_populates="escrow_transaction", lazy="noload",
    )
    disputes: Mapped[list["EscrowDispute"]] = relationship(
        "EscrowDispute", back_populates="escrow_transaction", lazy="noload",
    )
