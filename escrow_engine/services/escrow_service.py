"""Escrow Service — imperative shell that applies the pure escrow rules.

Invariants:
    - Check order for every command: input -> visibility -> integrity -> actor
      -> state -> oracle -> compare-and-swap persist
    - The only place that raises EscrowError; core checks only return them
    - Every status change is a compare-and-swap (update_with_expected_status,
      or append_proof_with_expected_status for proofs); a lost race surfaces
      as InvalidStateError with the status the winner left behind
    - Oracle calls run under asyncio.wait_for(settings.oracle_timeout_seconds);
      no status is written before the oracle answers
    - Every successful transition appends one EscrowEvent

Design Decisions:
    - Dispute assessment is a separate call (assess_dispute): the HTTP shell
      schedules it after open_dispute returns, adjudicators can retry it
    - Reversal attempts are audited before the oracle runs (WARNING log +
      escrow.reversal_requested event), so a timed-out attempt still leaves a trace
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Awaitable, TypeVar

from escrow_engine.config import Settings
from escrow_engine.core.domain_types import (
    Command, DisputeId, DisputeOutcome, DisputeStatus, EscrowId, EscrowStatus,
    EventType, Settlement, UserId,
)
from escrow_engine.core.dispute_workflow import (
    DISPUTE_READER_ROLES, AssessmentAction, check_adjudicator, check_gate_verdict,
    check_no_open_dispute, decide_after_assessment, validate_dispute_input,
    validate_resolution,
)
from escrow_engine.core.enforce_input import (
    validate_create_input, validate_funding_reference, validate_reversal_reason,
)
from escrow_engine.core.enforce_transitions import (
    TRANSACTION_READER_ROLES, check_actor, check_integrity, check_state,
    check_visible, is_allowed_edge, resolution_status, target_status,
    validate_party_command,
)
from escrow_engine.core.errors import (
    FundingVerificationFailedError, InternalError, InvalidStateError,
    NotFoundError, OracleTimeoutError,
)
from escrow_engine.core.proof_ledger import (
    PROOF_READER_ROLES, order_ledger, validate_proof_input,
)
from escrow_engine.core.rating_workflow import (
    check_not_already_rated, validate_rating, validate_rating_input,
)
from escrow_engine.core.records import (
    Assessment, Dispute, EscrowEvent, EscrowTransaction, Principal, Proof,
    Rating, Reputation,
)
from escrow_engine.core.repository_protocols import (
    ArbitrationOracle, EscrowStore, FundVerifier,
)
from escrow_engine.core.reputation import compute_reputation
from escrow_engine.services.escrow_service_helpers import (
    assessment_payload, creation_context, dispute_context, escrow_context,
    raise_if, settlement_payload, utcnow,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EscrowService:
    """Escrow lifecycle commands and reads. One instance per request."""

    def __init__(
        self,
        store: EscrowStore,
        fund_verifier: FundVerifier,
        oracle: ArbitrationOracle,
        settings: Settings,
    ):
        self.store = store
        self.fund_verifier = fund_verifier
        self.oracle = oracle
        self.settings = settings

    # ─── Plumbing ───────────────────────────────────────────────

    async def _with_deadline(self, call: Awaitable[T], oracle_name: str) -> T:
        timeout = self.settings.oracle_timeout_seconds
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"{oracle_name} did not answer within {timeout}s",
                extra={"error_code": "ORACLE_TIMEOUT"},
            )
            raise OracleTimeoutError(oracle_name, timeout)

    async def _assess(self, context) -> Assessment:
        return await self._with_deadline(self.oracle.assess(context), "arbitration")

    async def _load(self, escrow_id: EscrowId) -> EscrowTransaction | None:
        return await self.store.get_by_id(escrow_id)

    async def _transition(
        self,
        escrow: EscrowTransaction,
        command: Command,
        new_status: EscrowStatus,
        changes: dict[str, Any],
        actor_id: UserId | None,
        event_type: EventType,
        payload: dict | None = None,
    ) -> EscrowTransaction:
        """CAS escrow.status -> new_status, then append the event."""
        old_status = escrow.status
        if old_status != new_status and not is_allowed_edge(old_status, new_status):
            raise InternalError(
                f"Transition {old_status.value} -> {new_status.value} is not in the table",
            )
        updated = await self.store.update_with_expected_status(
            escrow.id, old_status, {"status": new_status, **changes},
        )
        if updated is None:
            current = await self._load(escrow.id)
            status = current.status.value if current else "unknown"
            raise InvalidStateError(command.value, status)

        await self.store.append_event(
            escrow.id, event_type,
            actor_id=actor_id,
            old_status=old_status,
            new_status=new_status,
            payload=payload,
        )
        logger.info(
            "Escrow transition",
            extra={
                "escrow_id": str(escrow.id),
                "actor_id": actor_id,
                "event_type": event_type.value,
                "old_status": old_status.value,
                "new_status": new_status.value,
            },
        )
        return updated

    async def _party_command(
        self, escrow_id: EscrowId, principal: Principal, command: Command,
    ) -> EscrowTransaction:
        escrow = await self._load(escrow_id)
        raise_if(validate_party_command(escrow, escrow_id, principal, command))
        return escrow

    # ─── Lifecycle commands ─────────────────────────────────────

    async def create_escrow(
        self,
        principal: Principal,
        seller_id: UserId,
        amount: str,
        token_symbol: str,
        description: str,
        chain: str,
        expires_in_days: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> EscrowTransaction:
        raise_if(validate_create_input(
            principal.user_id, seller_id, amount, token_symbol, description,
            chain, expires_in_days, self.settings.escrow_max_hold_days,
        ))

        assessment = await self._assess(creation_context(
            principal.user_id, seller_id, amount.strip(), token_symbol.strip(),
            description.strip(),
        ))
        gate_error = check_gate_verdict(assessment, Command.CREATE, require_approval=False)
        if gate_error:
            logger.warning(
                "Escrow creation blocked",
                extra={"actor_id": principal.user_id, "verdict": assessment.verdict.value},
            )
            raise gate_error

        now = utcnow()
        hold_days = expires_in_days or self.settings.escrow_default_hold_days
        escrow = await self.store.create({
            "buyer_id": principal.user_id,
            "seller_id": seller_id,
            "amount": amount.strip(),
            "token_symbol": token_symbol.strip(),
            "chain": chain.strip(),
            "description": description.strip(),
            "status": EscrowStatus.INITIATED,
            "expires_at": now + timedelta(days=hold_days),
            "creation_verdict": assessment.verdict,
            "metadata": metadata or {},
        })
        await self.store.append_event(
            escrow.id, EventType.ESCROW_CREATED,
            actor_id=principal.user_id,
            new_status=EscrowStatus.INITIATED,
            payload={"verdict": assessment.verdict.value},
        )
        logger.info(
            "Escrow created",
            extra={"escrow_id": str(escrow.id), "actor_id": principal.user_id},
        )
        return escrow

    async def fund(
        self, escrow_id: EscrowId, principal: Principal, funding_reference: str,
    ) -> EscrowTransaction:
        raise_if(validate_funding_reference(funding_reference))
        escrow = await self._party_command(escrow_id, principal, Command.FUND)

        reference = funding_reference.strip()
        verified = await self._with_deadline(
            self.fund_verifier.verify(reference), "fund_verifier",
        )
        if not verified:
            logger.info(
                "Funding reference not verified",
                extra={"escrow_id": str(escrow_id), "actor_id": principal.user_id},
            )
            raise FundingVerificationFailedError()

        return await self._transition(
            escrow, Command.FUND, target_status(Command.FUND),
            {"funding_reference": reference, "funded_at": utcnow()},
            principal.user_id, EventType.ESCROW_FUNDED,
            {"funding_reference": reference},
        )

    async def start(self, escrow_id: EscrowId, principal: Principal) -> EscrowTransaction:
        escrow = await self._party_command(escrow_id, principal, Command.START)
        return await self._transition(
            escrow, Command.START, target_status(Command.START),
            {"started_at": utcnow()},
            principal.user_id, EventType.ESCROW_STARTED,
        )

    async def submit_proof(
        self,
        escrow_id: EscrowId,
        principal: Principal,
        proof_type: str,
        description: str,
        file_reference: str,
        file_cid: str | None = None,
    ) -> Proof:
        raise_if(validate_proof_input(proof_type, description, file_reference, file_cid))
        escrow = await self._party_command(escrow_id, principal, Command.SUBMIT_PROOF)

        fields = {
            "submitted_by": principal.user_id,
            "proof_type": proof_type,
            "description": description.strip(),
            "file_reference": file_reference.strip(),
            "file_cid": file_cid,
        }
        # Guarded status change and proof insert commit as one unit
        appended = await self.store.append_proof_with_expected_status(
            escrow.id, escrow.status, fields,
        )
        if appended is None:
            current = await self._load(escrow.id)
            raise_if(check_state(current, Command.SUBMIT_PROOF))
            appended = await self.store.append_proof_with_expected_status(
                current.id, current.status, fields,
            )
            if appended is None:
                raise InvalidStateError(Command.SUBMIT_PROOF.value, current.status.value)
            escrow = current
        _, proof = appended

        moved = escrow.status != EscrowStatus.EVIDENCE_SUBMITTED
        await self.store.append_event(
            escrow.id, EventType.PROOF_SUBMITTED,
            actor_id=principal.user_id,
            old_status=escrow.status if moved else None,
            new_status=EscrowStatus.EVIDENCE_SUBMITTED if moved else None,
            payload={"proof_id": str(proof.id), "proof_type": proof_type},
        )
        logger.info(
            "Proof submitted",
            extra={"escrow_id": str(escrow.id), "actor_id": principal.user_id},
        )
        return proof

    async def complete(self, escrow_id: EscrowId, principal: Principal) -> EscrowTransaction:
        escrow = await self._party_command(escrow_id, principal, Command.COMPLETE)
        return await self._transition(
            escrow, Command.COMPLETE, target_status(Command.COMPLETE),
            {"closed_at": utcnow()},
            principal.user_id, EventType.ESCROW_COMPLETED,
            settlement_payload(Settlement.RELEASE),
        )

    async def cancel(self, escrow_id: EscrowId, principal: Principal) -> EscrowTransaction:
        escrow = await self._party_command(escrow_id, principal, Command.CANCEL)
        return await self._transition(
            escrow, Command.CANCEL, target_status(Command.CANCEL),
            {"closed_at": utcnow()},
            principal.user_id, EventType.ESCROW_CANCELLED,
        )

    async def reverse(
        self, escrow_id: EscrowId, principal: Principal, reason: str,
    ) -> EscrowTransaction:
        raise_if(validate_reversal_reason(reason))
        escrow = await self._party_command(escrow_id, principal, Command.REVERSE)
        reason = reason.strip()

        logger.warning(
            "Reversal requested",
            extra={
                "escrow_id": str(escrow.id),
                "actor_id": principal.user_id,
                "reason": reason,
            },
        )
        await self.store.append_event(
            escrow.id, EventType.REVERSAL_REQUESTED,
            actor_id=principal.user_id,
            payload={"reason": reason},
        )

        assessment = await self._assess(
            escrow_context(Command.REVERSE, principal.user_id, escrow, reason=reason),
        )
        gate_error = check_gate_verdict(assessment, Command.REVERSE, require_approval=True)
        if gate_error:
            await self.store.append_event(
                escrow.id, EventType.REVERSAL_BLOCKED,
                actor_id=principal.user_id,
                payload={"reason": reason, **assessment_payload(assessment)},
            )
            logger.warning(
                "Reversal blocked",
                extra={
                    "escrow_id": str(escrow.id),
                    "actor_id": principal.user_id,
                    "verdict": assessment.verdict.value,
                },
            )
            raise gate_error

        now = utcnow()
        reversed_escrow = await self._transition(
            escrow, Command.REVERSE, target_status(Command.REVERSE),
            {"closed_at": now},
            principal.user_id, EventType.ESCROW_REVERSED,
            settlement_payload(Settlement.REVERSE, reason=reason),
        )
        if escrow.status == EscrowStatus.DISPUTED:
            open_dispute = await self.store.get_open_dispute_by_transaction(escrow.id)
            if open_dispute is not None:
                await self.store.update_dispute(open_dispute.id, {
                    "status": DisputeStatus.RESOLVED,
                    "outcome": DisputeOutcome.REVERSED,
                    "resolved_by": principal.user_id,
                    "resolved_at": now,
                })
        return reversed_escrow

    # ─── Disputes ───────────────────────────────────────────────

    async def open_dispute(
        self, escrow_id: EscrowId, principal: Principal, reason: str, description: str,
    ) -> Dispute:
        raise_if(validate_dispute_input(reason, description))
        escrow = await self._load(escrow_id)
        raise_if(
            check_visible(escrow, escrow_id, principal)
            or check_integrity(escrow)
            or check_actor(escrow, principal, Command.OPEN_DISPUTE)
        )
        if escrow.status == EscrowStatus.DISPUTED:
            raise_if(check_no_open_dispute(
                await self.store.get_open_dispute_by_transaction(escrow.id),
            ))
        raise_if(check_state(escrow, Command.OPEN_DISPUTE))

        previous_status = escrow.status
        updated = await self.store.update_with_expected_status(
            escrow.id, previous_status,
            {"status": EscrowStatus.DISPUTED, "disputed_at": utcnow()},
        )
        if updated is None:
            current = await self._load(escrow.id)
            raise InvalidStateError(Command.OPEN_DISPUTE.value, current.status.value)

        try:
            dispute = await self.store.create_dispute({
                "escrow_transaction_id": escrow.id,
                "initiator_id": principal.user_id,
                "reason": reason.strip(),
                "description": description.strip(),
                "status": DisputeStatus.OPEN,
                "previous_status": previous_status,
            })
        except Exception:
            await self.store.update_with_expected_status(
                escrow.id, EscrowStatus.DISPUTED,
                {"status": previous_status, "disputed_at": None},
            )
            raise

        await self.store.append_event(
            escrow.id, EventType.DISPUTE_OPENED,
            actor_id=principal.user_id,
            old_status=previous_status,
            new_status=EscrowStatus.DISPUTED,
            payload={"dispute_id": str(dispute.id), "reason": dispute.reason},
        )
        logger.info(
            "Dispute opened",
            extra={
                "escrow_id": str(escrow.id),
                "dispute_id": str(dispute.id),
                "actor_id": principal.user_id,
            },
        )
        return dispute

    async def _load_dispute(self, dispute_id: DisputeId) -> Dispute:
        dispute = await self.store.get_dispute(dispute_id)
        if dispute is None:
            raise NotFoundError("Dispute", str(dispute_id))
        return dispute

    async def _load_integral(self, escrow_id: EscrowId) -> EscrowTransaction:
        escrow = await self._load(escrow_id)
        if escrow is None:
            raise InternalError(f"Dispute references missing escrow {escrow_id}")
        raise_if(check_integrity(escrow))
        return escrow

    async def assess_dispute(self, dispute_id: DisputeId) -> Dispute:
        """Ask the arbitration oracle about an open dispute and apply the verdict."""
        dispute = await self._load_dispute(dispute_id)
        if not dispute.is_open:
            raise InvalidStateError("assess_dispute", dispute.status.value)
        escrow = await self._load_integral(dispute.escrow_transaction_id)
        proofs = await self.store.list_proofs_by_transaction(escrow.id)

        assessment = await self._assess(dispute_context(escrow, dispute, len(proofs)))
        dispute = await self.store.update_dispute(dispute.id, {
            "assessment": assessment,
            "assessed_at": utcnow(),
        })
        await self.store.append_event(
            escrow.id, EventType.DISPUTE_ASSESSED,
            payload={"dispute_id": str(dispute.id), **assessment_payload(assessment)},
        )
        logger.info(
            "Dispute assessed",
            extra={
                "escrow_id": str(escrow.id),
                "dispute_id": str(dispute.id),
                "verdict": assessment.verdict.value,
            },
        )

        action, outcome = decide_after_assessment(
            assessment, self.settings.auto_resolve_on_approve,
        )
        if action == AssessmentAction.REJECT:
            return await self._reject_dispute(escrow, dispute)
        if action == AssessmentAction.AUTO_RESOLVE:
            await self.resolve_dispute(dispute.id, outcome)
            return await self._load_dispute(dispute.id)
        return dispute

    async def _reject_dispute(self, escrow: EscrowTransaction, dispute: Dispute) -> Dispute:
        """Blocked dispute: restore the escrow to the status the dispute interrupted."""
        await self._transition(
            escrow, Command.OPEN_DISPUTE, dispute.previous_status,
            {"disputed_at": None},
            None, EventType.DISPUTE_REJECTED,
            {"dispute_id": str(dispute.id)},
        )
        return await self.store.update_dispute(dispute.id, {
            "status": DisputeStatus.REJECTED,
            "resolved_at": utcnow(),
        })

    async def reassess_dispute(self, dispute_id: DisputeId, principal: Principal) -> Dispute:
        """Adjudicator-triggered retry of assess_dispute."""
        raise_if(check_adjudicator(principal))
        return await self.assess_dispute(dispute_id)

    async def resolve_dispute(
        self,
        dispute_id: DisputeId,
        outcome: DisputeOutcome | str,
        principal: Principal | None = None,
    ) -> EscrowTransaction:
        if principal is not None:
            raise_if(check_adjudicator(principal))
        dispute = await self._load_dispute(dispute_id)
        raise_if(validate_resolution(principal, dispute, outcome))
        outcome = DisputeOutcome(outcome)
        escrow = await self._load_integral(dispute.escrow_transaction_id)
        raise_if(check_state(escrow, Command.RESOLVE_DISPUTE))

        resolver_id = principal.user_id if principal else None
        now = utcnow()
        settlement = Settlement.RELEASE if outcome == DisputeOutcome.RELEASE else Settlement.REFUND
        resolved = await self._transition(
            escrow, Command.RESOLVE_DISPUTE, resolution_status(outcome),
            {"closed_at": now},
            resolver_id, EventType.DISPUTE_RESOLVED,
            settlement_payload(
                settlement,
                dispute_id=str(dispute.id),
                outcome=outcome.value,
                automated=principal is None,
            ),
        )
        await self.store.update_dispute(dispute.id, {
            "status": DisputeStatus.RESOLVED,
            "outcome": outcome,
            "resolved_by": resolver_id,
            "resolved_at": now,
        })
        return resolved

    async def get_dispute(self, dispute_id: DisputeId, principal: Principal) -> Dispute:
        dispute = await self._load_dispute(dispute_id)
        escrow = await self._load(dispute.escrow_transaction_id)
        if check_visible(escrow, dispute.escrow_transaction_id, principal, DISPUTE_READER_ROLES):
            raise NotFoundError("Dispute", str(dispute_id))
        return dispute

    # ─── Ratings ────────────────────────────────────────────────

    async def rate(
        self,
        escrow_id: EscrowId,
        principal: Principal,
        rated_user_id: UserId,
        score: int,
        comment: str | None = None,
    ) -> Rating:
        raise_if(validate_rating_input(score, comment))
        escrow = await self._load(escrow_id)
        raise_if(check_visible(escrow, escrow_id, principal) or check_integrity(escrow))
        raise_if(validate_rating(escrow, principal.user_id, rated_user_id))
        raise_if(check_not_already_rated(
            await self.store.get_rating(principal.user_id, escrow.id),
        ))

        rating = await self.store.create_rating({
            "escrow_transaction_id": escrow.id,
            "rater_id": principal.user_id,
            "rated_user_id": rated_user_id,
            "score": score,
            "comment": comment,
        })
        await self.store.append_event(
            escrow.id, EventType.ESCROW_RATED,
            actor_id=principal.user_id,
            payload={"rated_user_id": rated_user_id, "score": score},
        )
        return rating

    async def get_reputation(self, user_id: UserId) -> Reputation:
        ratings = await self.store.list_ratings_for_user(user_id)
        return compute_reputation(user_id, ratings)

    # ─── Reads ──────────────────────────────────────────────────

    async def get_transaction(
        self, escrow_id: EscrowId, principal: Principal,
    ) -> EscrowTransaction:
        escrow = await self._load(escrow_id)
        raise_if(check_visible(escrow, escrow_id, principal, TRANSACTION_READER_ROLES))
        return escrow

    async def list_transactions(self, principal: Principal) -> list[EscrowTransaction]:
        return await self.store.list_by_party(principal.user_id)

    async def list_proofs(self, escrow_id: EscrowId, principal: Principal) -> list[Proof]:
        escrow = await self._load(escrow_id)
        raise_if(check_visible(escrow, escrow_id, principal, PROOF_READER_ROLES))
        return order_ledger(await self.store.list_proofs_by_transaction(escrow.id))

    async def list_events(
        self, escrow_id: EscrowId, principal: Principal,
    ) -> list[EscrowEvent]:
        escrow = await self._load(escrow_id)
        raise_if(check_visible(escrow, escrow_id, principal, TRANSACTION_READER_ROLES))
        return await self.store.list_events(escrow.id)
