"""SQL Escrow Store — SQLAlchemy implementation of the EscrowStore protocol.

Invariants:
    - update_with_expected_status is ONE statement:
      UPDATE ... WHERE id = :id AND status = :expected. rowcount 0 -> None, nothing changed
    - append_proof_with_expected_status runs the same guarded UPDATE and the
      proof INSERT under one commit; a lost guard inserts nothing
    - Every write commits before returning: a returned record is durable
    - Reads use populate_existing: expire_on_commit=False sessions never serve
      a stale status from the identity map
    - Unique-constraint races are translated into domain errors
      (DisputeAlreadyOpenError, DuplicateRatingError); other integrity
      failures (CHECK, foreign key) propagate unchanged
    - Returns core records (core/records.py), never ORM objects

Design Decisions:
    - One store per AsyncSession (request-scoped): the FastAPI dependency owns
      the session lifecycle, the store owns commit/rollback of its own writes
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_engine.core.domain_types import (
    DisputeId, DisputeOutcome, DisputeStatus, EscrowId, EscrowStatus,
    EventType, UserId, Verdict,
)
from escrow_engine.core.errors import (
    DisputeAlreadyOpenError, DuplicateRatingError, InternalError, NotFoundError,
)
from escrow_engine.core.records import (
    Assessment, Dispute, EscrowEvent, EscrowTransaction, Proof, Rating,
)
from escrow_engine.models.escrow_transaction import (
    EscrowTransaction as EscrowTransactionModel,
)
from escrow_engine.models.escrow_proof import EscrowProof as EscrowProofModel
from escrow_engine.models.escrow_dispute import EscrowDispute as EscrowDisputeModel
from escrow_engine.models.escrow_rating import EscrowRating as EscrowRatingModel
from escrow_engine.models.escrow_event import EscrowEvent as EscrowEventModel

logger = logging.getLogger(__name__)


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _enum_or_none(enum_cls, value):
    return enum_cls(value) if value is not None else None


def _is_unique_violation(error: IntegrityError, constraint: str) -> bool:
    """Postgres names the violated constraint; SQLite only reports the kind."""
    message = str(error.orig)
    return constraint in message or "UNIQUE constraint failed" in message


# ─── Row -> Record ───────────────────────────────────────────────

def _to_escrow(row: EscrowTransactionModel) -> EscrowTransaction:
    try:
        status = EscrowStatus(row.status)
    except ValueError:
        raise InternalError(f"Escrow {row.id} has unknown status {row.status!r}")
    return EscrowTransaction(
        id=EscrowId(row.id),
        buyer_id=UserId(row.buyer_id),
        seller_id=UserId(row.seller_id),
        amount=row.amount,
        token_symbol=row.token_symbol,
        chain=row.chain,
        description=row.description,
        status=status,
        created_at=row.created_at,
        updated_at=row.updated_at,
        expires_at=row.expires_at,
        funding_reference=row.funding_reference,
        funded_at=row.funded_at,
        started_at=row.started_at,
        disputed_at=row.disputed_at,
        closed_at=row.closed_at,
        creation_verdict=_enum_or_none(Verdict, row.creation_verdict),
        metadata=dict(row.metadata_ or {}),
    )


def _to_proof(row: EscrowProofModel) -> Proof:
    return Proof(
        id=row.id,
        escrow_transaction_id=EscrowId(row.escrow_transaction_id),
        submitted_by=UserId(row.submitted_by),
        proof_type=row.proof_type,
        description=row.description,
        file_reference=row.file_reference,
        file_cid=row.file_cid,
        created_at=row.created_at,
    )


def _to_dispute(row: EscrowDisputeModel) -> Dispute:
    assessment = None
    if row.assessment_verdict is not None:
        assessment = Assessment(
            verdict=Verdict(row.assessment_verdict),
            details=row.assessment_details or "",
            recommended_outcome=_enum_or_none(
                DisputeOutcome, row.assessment_outcome,
            ),
            confidence=row.assessment_confidence,
        )
    return Dispute(
        id=DisputeId(row.id),
        escrow_transaction_id=EscrowId(row.escrow_transaction_id),
        initiator_id=UserId(row.initiator_id),
        reason=row.reason,
        description=row.description,
        status=DisputeStatus(row.status),
        previous_status=EscrowStatus(row.previous_status),
        created_at=row.created_at,
        assessment=assessment,
        assessed_at=row.assessed_at,
        outcome=_enum_or_none(DisputeOutcome, row.outcome),
        resolved_by=row.resolved_by,
        resolved_at=row.resolved_at,
    )


def _to_rating(row: EscrowRatingModel) -> Rating:
    return Rating(
        id=row.id,
        escrow_transaction_id=EscrowId(row.escrow_transaction_id),
        rater_id=UserId(row.rater_id),
        rated_user_id=UserId(row.rated_user_id),
        score=row.score,
        comment=row.comment,
        created_at=row.created_at,
    )


def _to_event(row: EscrowEventModel) -> EscrowEvent:
    return EscrowEvent(
        id=row.id,
        escrow_transaction_id=EscrowId(row.escrow_transaction_id),
        event_type=EventType(row.event_type),
        actor_id=row.actor_id,
        old_status=_enum_or_none(EscrowStatus, row.old_status),
        new_status=_enum_or_none(EscrowStatus, row.new_status),
        payload=dict(row.payload or {}),
        created_at=row.created_at,
    )


def _flatten_dispute_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Assessment record -> assessment_* columns; enums -> values."""
    values = {k: _column_value(v) for k, v in changes.items() if k != "assessment"}
    assessment: Assessment | None = changes.get("assessment")
    if assessment is not None:
        values["assessment_verdict"] = assessment.verdict.value
        values["assessment_details"] = assessment.details
        values["assessment_outcome"] = _column_value(assessment.recommended_outcome)
        values["assessment_confidence"] = assessment.confidence
    return values


class SqlEscrowStore:
    """EscrowStore backed by an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Escrow transactions ────────────────────────────────────

    async def create(self, fields: dict[str, Any]) -> EscrowTransaction:
        values = {k: _column_value(v) for k, v in fields.items()}
        values["metadata_"] = values.pop("metadata", None) or {}
        row = EscrowTransactionModel(**values)
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        return _to_escrow(row)

    async def get_by_id(self, escrow_id: EscrowId) -> EscrowTransaction | None:
        result = await self.db.execute(
            select(EscrowTransactionModel)
            .where(EscrowTransactionModel.id == escrow_id)
            .execution_options(populate_existing=True),
        )
        row = result.scalar_one_or_none()
        return _to_escrow(row) if row else None

    async def update_with_expected_status(
        self,
        escrow_id: EscrowId,
        expected: EscrowStatus,
        changes: dict[str, Any],
    ) -> EscrowTransaction | None:
        values = {k: _column_value(v) for k, v in changes.items()}
        values.setdefault("updated_at", datetime.now(timezone.utc))
        result = await self.db.execute(
            update(EscrowTransactionModel)
            .where(EscrowTransactionModel.id == escrow_id)
            .where(EscrowTransactionModel.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False),
        )
        if result.rowcount != 1:
            await self.db.rollback()
            logger.info(
                "Status compare-and-swap lost",
                extra={"escrow_id": str(escrow_id), "old_status": expected.value},
            )
            return None
        await self.db.commit()
        return await self.get_by_id(escrow_id)

    async def list_by_party(self, user_id: UserId) -> list[EscrowTransaction]:
        result = await self.db.execute(
            select(EscrowTransactionModel)
            .where(or_(
                EscrowTransactionModel.buyer_id == user_id,
                EscrowTransactionModel.seller_id == user_id,
            ))
            .order_by(EscrowTransactionModel.created_at.desc())
            .execution_options(populate_existing=True),
        )
        return [_to_escrow(row) for row in result.scalars().all()]

    # ─── Proofs ─────────────────────────────────────────────────

    async def append_proof_with_expected_status(
        self,
        escrow_id: EscrowId,
        expected: EscrowStatus,
        fields: dict[str, Any],
    ) -> tuple[EscrowTransaction, Proof] | None:
        """Guarded status UPDATE and proof INSERT, committed together."""
        result = await self.db.execute(
            update(EscrowTransactionModel)
            .where(EscrowTransactionModel.id == escrow_id)
            .where(EscrowTransactionModel.status == expected.value)
            .values(
                status=EscrowStatus.EVIDENCE_SUBMITTED.value,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False),
        )
        if result.rowcount != 1:
            await self.db.rollback()
            logger.info(
                "Proof append lost status race",
                extra={"escrow_id": str(escrow_id), "old_status": expected.value},
            )
            return None
        row = EscrowProofModel(
            escrow_transaction_id=escrow_id,
            **{k: _column_value(v) for k, v in fields.items()},
        )
        self.db.add(row)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.refresh(row)
        return await self.get_by_id(escrow_id), _to_proof(row)

    async def list_proofs_by_transaction(self, escrow_id: EscrowId) -> list[Proof]:
        result = await self.db.execute(
            select(EscrowProofModel)
            .where(EscrowProofModel.escrow_transaction_id == escrow_id)
            .order_by(EscrowProofModel.created_at.asc()),
        )
        return [_to_proof(row) for row in result.scalars().all()]

    # ─── Disputes ───────────────────────────────────────────────

    async def create_dispute(self, fields: dict[str, Any]) -> Dispute:
        row = EscrowDisputeModel(**{k: _column_value(v) for k, v in fields.items()})
        self.db.add(row)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if _is_unique_violation(e, "uq_escrow_disputes_one_open"):
                raise DisputeAlreadyOpenError()
            raise
        await self.db.refresh(row)
        return _to_dispute(row)

    async def get_dispute(self, dispute_id: DisputeId) -> Dispute | None:
        result = await self.db.execute(
            select(EscrowDisputeModel)
            .where(EscrowDisputeModel.id == dispute_id)
            .execution_options(populate_existing=True),
        )
        row = result.scalar_one_or_none()
        return _to_dispute(row) if row else None

    async def get_open_dispute_by_transaction(
        self, escrow_id: EscrowId,
    ) -> Dispute | None:
        result = await self.db.execute(
            select(EscrowDisputeModel)
            .where(EscrowDisputeModel.escrow_transaction_id == escrow_id)
            .where(EscrowDisputeModel.status == DisputeStatus.OPEN.value)
            .execution_options(populate_existing=True),
        )
        row = result.scalar_one_or_none()
        return _to_dispute(row) if row else None

    async def update_dispute(
        self, dispute_id: DisputeId, changes: dict[str, Any],
    ) -> Dispute:
        result = await self.db.execute(
            update(EscrowDisputeModel)
            .where(EscrowDisputeModel.id == dispute_id)
            .values(**_flatten_dispute_changes(changes))
            .execution_options(synchronize_session=False),
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise NotFoundError("Dispute", str(dispute_id))
        await self.db.commit()
        return await self.get_dispute(dispute_id)

    # ─── Ratings ────────────────────────────────────────────────

    async def create_rating(self, fields: dict[str, Any]) -> Rating:
        row = EscrowRatingModel(**{k: _column_value(v) for k, v in fields.items()})
        self.db.add(row)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if _is_unique_violation(e, "uq_escrow_ratings_rater"):
                raise DuplicateRatingError()
            raise
        await self.db.refresh(row)
        return _to_rating(row)

    async def get_rating(
        self, rater_id: UserId, escrow_id: EscrowId,
    ) -> Rating | None:
        result = await self.db.execute(
            select(EscrowRatingModel)
            .where(EscrowRatingModel.rater_id == rater_id)
            .where(EscrowRatingModel.escrow_transaction_id == escrow_id),
        )
        row = result.scalar_one_or_none()
        return _to_rating(row) if row else None

    async def list_ratings_for_user(self, user_id: UserId) -> list[Rating]:
        result = await self.db.execute(
            select(EscrowRatingModel)
            .where(EscrowRatingModel.rated_user_id == user_id)
            .order_by(EscrowRatingModel.created_at.asc()),
        )
        return [_to_rating(row) for row in result.scalars().all()]

    # ─── Events ─────────────────────────────────────────────────

    async def append_event(
        self,
        escrow_id: EscrowId,
        event_type: EventType,
        actor_id: UserId | None = None,
        old_status: EscrowStatus | None = None,
        new_status: EscrowStatus | None = None,
        payload: dict[str, Any] | None = None,
    ) -> EscrowEvent:
        row = EscrowEventModel(
            escrow_transaction_id=escrow_id,
            event_type=event_type.value,
            actor_id=actor_id,
            old_status=_column_value(old_status),
            new_status=_column_value(new_status),
            payload=payload or {},
        )
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        return _to_event(row)

    async def list_events(self, escrow_id: EscrowId) -> list[EscrowEvent]:
        result = await self.db.execute(
            select(EscrowEventModel)
            .where(EscrowEventModel.escrow_transaction_id == escrow_id)
            .order_by(EscrowEventModel.sequence.asc()),
        )
        return [_to_event(row) for row in result.scalars().all()]
