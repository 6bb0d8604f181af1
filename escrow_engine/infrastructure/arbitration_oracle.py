"""Arbitration Oracles — implementations of the ArbitrationOracle protocol.

Invariants:
    - assess() returns an Assessment or raises ExternalServiceError; it never
      mutates escrow state (the service applies every consequence)
    - Deadlines are the caller's job: the service wraps assess() in
      asyncio.wait_for(settings.oracle_timeout_seconds)
    - Dispute assessments only recommend RELEASE or REFUND

Design Decisions:
    - Two backends selected by settings.arbitration_backend:
      "reputation" is deterministic and offline (default, used in tests),
      "anthropic" asks a model for a JSON verdict
    - Reputation heuristic for disputes: no evidence -> flag; a clear trust gap
      (1.5x) after initiator bias -> approve for the more credible side; otherwise flag
    - Creation and reversal block when either party is below block_threshold.
      Reversal is approved only when the requester out-trusts the counterparty
      by the same 1.5x gap, and is flagged otherwise
"""

import json
import logging

from escrow_engine.config import Settings
from escrow_engine.core.domain_types import Command, DisputeOutcome, UserId, Verdict
from escrow_engine.core.errors import ErrorContext, ExternalServiceError
from escrow_engine.core.records import ArbitrationContext, Assessment
from escrow_engine.core.repository_protocols import ArbitrationOracle, EscrowStore
from escrow_engine.core.reputation import compute_reputation
from escrow_engine.infrastructure.anthropic_client import ResilientAnthropicClient

logger = logging.getLogger(__name__)

INITIATOR_BIAS: float = 0.8
RESPONDENT_BIAS: float = 1.2
CREDIBILITY_GAP: float = 1.5


def _counterparty(context: ArbitrationContext) -> UserId | None:
    if context.actor_id == context.buyer_id:
        return context.seller_id
    if context.actor_id == context.seller_id:
        return context.buyer_id
    return None


# ─── Reputation heuristic ───────────────────────────────────────

class ReputationArbitrationOracle:
    """Decides from the parties' reputation and the evidence count."""

    def __init__(self, store: EscrowStore, block_threshold: float = 0.2):
        self.store = store
        self.block_threshold = block_threshold

    async def _score(self, user_id: UserId) -> float:
        ratings = await self.store.list_ratings_for_user(user_id)
        return compute_reputation(user_id, ratings).score

    async def assess(self, context: ArbitrationContext) -> Assessment:
        if context.action == Command.OPEN_DISPUTE:
            return await self._assess_dispute(context)

        actor_score = await self._score(context.actor_id)
        counterparty_id = _counterparty(context)
        counterparty_score = (
            await self._score(counterparty_id) if counterparty_id is not None else None
        )
        for label, score in (("Actor", actor_score), ("Counterparty", counterparty_score)):
            if score is not None and score < self.block_threshold:
                return Assessment(
                    verdict=Verdict.BLOCK,
                    details=f"{label} reputation {score:.2f} is below {self.block_threshold:.2f}",
                    confidence=1.0 - score,
                )

        if context.action == Command.REVERSE:
            return self._assess_reversal(actor_score, counterparty_score)
        return Assessment(
            verdict=Verdict.APPROVE,
            details=f"Actor reputation {actor_score:.2f}",
            confidence=actor_score,
        )

    def _assess_reversal(
        self, actor_score: float, counterparty_score: float | None,
    ) -> Assessment:
        """Reversal needs the requester to clearly out-trust the other party."""
        if counterparty_score is not None and actor_score > counterparty_score * CREDIBILITY_GAP:
            return Assessment(
                verdict=Verdict.APPROVE,
                details=(
                    f"Requester reputation {actor_score:.2f} clearly exceeds "
                    f"counterparty {counterparty_score:.2f}"
                ),
                confidence=min(0.9, 0.5 + actor_score - counterparty_score),
            )
        return Assessment(
            verdict=Verdict.FLAG,
            details="Reversal needs an adjudicator: no clear trust advantage",
            confidence=0.5,
        )

    async def _assess_dispute(self, context: ArbitrationContext) -> Assessment:
        if context.proof_count == 0:
            return Assessment(
                verdict=Verdict.FLAG,
                details="Insufficient evidence: no proofs submitted",
                confidence=0.3,
            )

        buyer_score = await self._score(context.buyer_id)
        seller_score = await self._score(context.seller_id)
        buyer_initiated = context.initiator_id == context.buyer_id
        buyer_trust = buyer_score * (INITIATOR_BIAS if buyer_initiated else RESPONDENT_BIAS)
        seller_trust = seller_score * (RESPONDENT_BIAS if buyer_initiated else INITIATOR_BIAS)

        if buyer_trust > seller_trust * CREDIBILITY_GAP:
            return Assessment(
                verdict=Verdict.APPROVE,
                details="The buyer's claim appears more credible",
                recommended_outcome=DisputeOutcome.REFUND,
                confidence=0.7 + min(0.2, (buyer_trust - seller_trust) / 10),
            )
        if seller_trust > buyer_trust * CREDIBILITY_GAP:
            return Assessment(
                verdict=Verdict.APPROVE,
                details="The seller's claim appears more credible",
                recommended_outcome=DisputeOutcome.RELEASE,
                confidence=0.7 + min(0.2, (seller_trust - buyer_trust) / 10),
            )
        return Assessment(
            verdict=Verdict.FLAG,
            details="No clear fault; needs an adjudicator",
            confidence=0.6,
        )


# ─── Model-backed ───────────────────────────────────────────────

ARBITRATION_SYSTEM_PROMPT = """\
You are the arbitration oracle of an escrow service. You receive one gated
action as JSON and answer with ONLY a JSON object:
{"verdict": "approve" | "block" | "flag",
 "recommended_outcome": "release" | "refund" | null,
 "confidence": number between 0 and 1,
 "details": short explanation}
- block: the action looks abusive or fraudulent
- flag: a human adjudicator must look at it
- approve: the action may proceed
For action "open_dispute", recommended_outcome says who should receive the
funds: "release" pays the seller, "refund" returns them to the buyer.
"""


def _context_payload(context: ArbitrationContext) -> dict:
    return {
        "action": context.action.value,
        "actor_id": context.actor_id,
        "escrow_id": str(context.escrow_id) if context.escrow_id else None,
        "buyer_id": context.buyer_id,
        "seller_id": context.seller_id,
        "amount": context.amount,
        "token_symbol": context.token_symbol,
        "status": context.status.value if context.status else None,
        "reason": context.reason,
        "description": context.description,
        "initiator_id": context.initiator_id,
        "proof_count": context.proof_count,
    }


def parse_assessment(text: str) -> Assessment:
    """Parse the model's JSON answer. Raises ExternalServiceError on anything malformed."""
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        raise ExternalServiceError("response contained no JSON object", "arbitration")
    try:
        data = json.loads(text[start:end + 1])
        verdict = Verdict(data["verdict"])
        outcome = data.get("recommended_outcome")
        recommended = DisputeOutcome(outcome) if outcome else None
        confidence = data.get("confidence")
    except (ValueError, KeyError, TypeError) as e:
        raise ExternalServiceError(f"malformed verdict: {e}", "arbitration")
    if recommended not in (None, DisputeOutcome.RELEASE, DisputeOutcome.REFUND):
        recommended = None
    return Assessment(
        verdict=verdict,
        details=str(data.get("details", "")),
        recommended_outcome=recommended,
        confidence=float(confidence) if confidence is not None else None,
    )


class AnthropicArbitrationOracle:
    """Asks a Claude model for a verdict on each gated action."""

    def __init__(self, client: ResilientAnthropicClient, model: str, max_tokens: int = 512):
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    async def assess(self, context: ArbitrationContext) -> Assessment:
        response = await self.client.create_message(
            model=self.model,
            max_tokens=self.max_tokens,
            system=ARBITRATION_SYSTEM_PROMPT,
            messages=[{
                "role": "user",
                "content": json.dumps(_context_payload(context)),
            }],
            context=ErrorContext(
                escrow_id=str(context.escrow_id) if context.escrow_id else None,
                actor_id=context.actor_id,
            ),
        )
        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )
        assessment = parse_assessment(text)
        logger.info(
            "Arbitration verdict",
            extra={
                "escrow_id": str(context.escrow_id) if context.escrow_id else None,
                "verdict": assessment.verdict.value,
            },
        )
        return assessment


def build_arbitration_oracle(settings: Settings, store: EscrowStore) -> ArbitrationOracle:
    if settings.arbitration_backend == "anthropic":
        client = ResilientAnthropicClient(
            api_key=settings.anthropic_api_key,
            max_retries=settings.anthropic_max_retries,
            base_delay_ms=settings.anthropic_base_delay_ms,
            max_delay_ms=settings.anthropic_max_delay_ms,
            timeout_seconds=settings.anthropic_timeout_seconds,
        )
        return AnthropicArbitrationOracle(client, settings.anthropic_model)
    return ReputationArbitrationOracle(store, settings.reputation_block_threshold)
