"""Escrow schema — transactions, proofs, disputes, ratings, events.

Revision ID: 001_escrow
Revises: None
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_escrow"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "escrow_transactions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("buyer_id", sa.BigInteger, nullable=False),
        sa.Column("seller_id", sa.BigInteger, nullable=False),
        sa.Column("amount", sa.String(78), nullable=False),
        sa.Column("token_symbol", sa.String(20), nullable=False),
        sa.Column("chain", sa.String(50), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="initiated"),
        sa.Column("funding_reference", sa.String(256), nullable=True),
        sa.Column("creation_verdict", sa.String(10), nullable=True),
        sa.Column("metadata", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("funded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disputed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("buyer_id <> seller_id", name="ck_escrow_distinct_parties"),
    )
    op.create_index("ix_escrow_buyer_created", "escrow_transactions", ["buyer_id", "created_at"])
    op.create_index("ix_escrow_seller_created", "escrow_transactions", ["seller_id", "created_at"])

    op.create_table(
        "escrow_proofs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "escrow_transaction_id", UUID(as_uuid=True),
            sa.ForeignKey("escrow_transactions.id", ondelete="RESTRICT"), nullable=False,
        ),
        sa.Column("submitted_by", sa.BigInteger, nullable=False),
        sa.Column("proof_type", sa.String(30), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("file_reference", sa.String(2000), nullable=False),
        sa.Column("file_cid", sa.String(200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_escrow_proofs_escrow_created", "escrow_proofs",
        ["escrow_transaction_id", "created_at"],
    )

    op.create_table(
        "escrow_disputes",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "escrow_transaction_id", UUID(as_uuid=True),
            sa.ForeignKey("escrow_transactions.id", ondelete="RESTRICT"), nullable=False,
        ),
        sa.Column("initiator_id", sa.BigInteger, nullable=False),
        sa.Column("reason", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("previous_status", sa.String(30), nullable=False),
        sa.Column("assessment_verdict", sa.String(10), nullable=True),
        sa.Column("assessment_details", sa.Text, nullable=True),
        sa.Column("assessment_outcome", sa.String(20), nullable=True),
        sa.Column("assessment_confidence", sa.Float, nullable=True),
        sa.Column("assessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("outcome", sa.String(20), nullable=True),
        sa.Column("resolved_by", sa.BigInteger, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "uq_escrow_disputes_one_open", "escrow_disputes", ["escrow_transaction_id"],
        unique=True, postgresql_where=sa.text("status = 'open'"),
    )

    op.create_table(
        "escrow_ratings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "escrow_transaction_id", UUID(as_uuid=True),
            sa.ForeignKey("escrow_transactions.id", ondelete="RESTRICT"), nullable=False,
        ),
        sa.Column("rater_id", sa.BigInteger, nullable=False),
        sa.Column("rated_user_id", sa.BigInteger, nullable=False),
        sa.Column("score", sa.Integer, nullable=False),
        sa.Column("comment", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("rater_id", "escrow_transaction_id", name="uq_escrow_ratings_rater"),
        sa.CheckConstraint("rater_id <> rated_user_id", name="ck_rating_not_self"),
        sa.CheckConstraint("score BETWEEN 1 AND 5", name="ck_rating_score_range"),
    )
    op.create_index("ix_escrow_ratings_rated_user", "escrow_ratings", ["rated_user_id"])

    op.create_table(
        "escrow_events",
        sa.Column("sequence", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("id", UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column(
            "escrow_transaction_id", UUID(as_uuid=True),
            sa.ForeignKey("escrow_transactions.id", ondelete="RESTRICT"), nullable=False,
        ),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("actor_id", sa.BigInteger, nullable=True),
        sa.Column("old_status", sa.String(30), nullable=True),
        sa.Column("new_status", sa.String(30), nullable=True),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_escrow_events_escrow_sequence", "escrow_events",
        ["escrow_transaction_id", "sequence"],
    )


def downgrade() -> None:
    op.drop_table("escrow_events")
    op.drop_table("escrow_ratings")
    op.drop_table("escrow_disputes")
    op.drop_table("escrow_proofs")
    op.drop_table("escrow_transactions")
