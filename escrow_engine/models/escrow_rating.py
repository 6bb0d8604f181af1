"""EscrowRating ORM — persists post-resolution ratings between the two parties.

Invariants:
    - UNIQUE (rater_id, escrow_transaction_id): one rating per rater per escrow
    - rater_id <> rated_user_id (CHECK constraint + core validation)
    - score between 1 and 5 (CHECK constraint + core validation)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from escrow_engine.db.base import Base


class EscrowRating(Base):
    """Rating entity — one party's score of the other after resolution."""
    __tablename__ = "escrow_ratings"
    __table_args__ = (
        UniqueConstraint(
            "rater_id", "escrow_transaction_id", name="uq_escrow_ratings_rater",
        ),
        CheckConstraint("rater_id <> rated_user_id", name="ck_rating_not_self"),
        CheckConstraint("score BETWEEN 1 AND 5", name="ck_rating_score_range"),
        Index("ix_escrow_ratings_rated_user", "rated_user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    escrow_transaction_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("escrow_transactions.id", ondelete="RESTRICT"),
        nullable=False,
    )
    rater_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    rated_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
