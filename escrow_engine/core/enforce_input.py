"""Command Input Enforcement — shape checks run before any store access.

Invariants:
    - All functions are PURE and return InvalidInputError / SelfDealingError or None
    - amount is validated as a positive finite decimal string but NEVER used in
      arithmetic — it stays the caller's opaque string
    - Limits live here as module constants (single source of truth); the
      pydantic schemas at the HTTP boundary mirror them

Design Decisions:
    - Validated again in the core even though the HTTP layer uses pydantic:
      the service is callable without HTTP (tests, workers)
"""

import re
from decimal import Decimal, InvalidOperation

from escrow_engine.core.errors import EscrowError, InvalidInputError, SelfDealingError


MAX_AMOUNT_LENGTH: int = 78
MAX_SYMBOL_LENGTH: int = 20
MAX_CHAIN_LENGTH: int = 50
MIN_DESCRIPTION_LENGTH: int = 1
MAX_DESCRIPTION_LENGTH: int = 2000
MAX_REFERENCE_LENGTH: int = 256
MIN_REVERSAL_REASON_LENGTH: int = 5
MAX_REASON_LENGTH: int = 500

# Funding references travel in the fund verifier URL path
FUNDING_REFERENCE_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9:_.\-]*")


def check_required_text(
    value: str | None, field: str, max_length: int, min_length: int = 1,
) -> EscrowError | None:
    """Text must be present, non-blank after stripping, and within bounds."""
    if value is None or not value.strip():
        return InvalidInputError(f"{field} is required", field)
    stripped = value.strip()
    if len(stripped) < min_length:
        return InvalidInputError(
            f"{field} must be at least {min_length} characters", field,
        )
    if len(stripped) > max_length:
        return InvalidInputError(
            f"{field} must be at most {max_length} characters", field,
        )
    return None


def check_amount(amount: str | None) -> EscrowError | None:
    """Amount must parse as a positive, finite decimal."""
    error = check_required_text(amount, "amount", MAX_AMOUNT_LENGTH)
    if error:
        return error
    try:
        value = Decimal(amount.strip())
    except InvalidOperation:
        return InvalidInputError("amount must be a decimal number", "amount")
    if not value.is_finite() or value <= 0:
        return InvalidInputError("amount must be a positive number", "amount")
    return None


def check_self_dealing(buyer_id: int, seller_id: int) -> EscrowError | None:
    if buyer_id == seller_id:
        return SelfDealingError()
    return None


def check_hold_days(
    expires_in_days: int | None, max_hold_days: int,
) -> EscrowError | None:
    if expires_in_days is None:
        return None
    if not 1 <= expires_in_days <= max_hold_days:
        return InvalidInputError(
            f"expires_in_days must be between 1 and {max_hold_days}",
            "expires_in_days",
        )
    return None


def validate_create_input(
    buyer_id: int,
    seller_id: int,
    amount: str,
    token_symbol: str,
    description: str,
    chain: str,
    expires_in_days: int | None,
    max_hold_days: int,
) -> EscrowError | None:
    """Chain all creation checks. Returns first error or None."""
    return (
        check_amount(amount)
        or check_required_text(token_symbol, "token_symbol", MAX_SYMBOL_LENGTH)
        or check_required_text(
            description, "description", MAX_DESCRIPTION_LENGTH,
            MIN_DESCRIPTION_LENGTH,
        )
        or check_required_text(chain, "chain", MAX_CHAIN_LENGTH)
        or check_hold_days(expires_in_days, max_hold_days)
        or check_self_dealing(buyer_id, seller_id)
    )


def validate_funding_reference(reference: str | None) -> EscrowError | None:
    """Opaque payment id: letters, digits and : _ . -, starting alphanumeric."""
    error = check_required_text(reference, "funding_reference", MAX_REFERENCE_LENGTH)
    if error:
        return error
    if not FUNDING_REFERENCE_PATTERN.fullmatch(reference.strip()):
        return InvalidInputError(
            "funding_reference may only contain letters, digits and : _ . -",
            "funding_reference",
        )
    return None


def validate_reversal_reason(reason: str | None) -> EscrowError | None:
    return check_required_text(
        reason, "reason", MAX_REASON_LENGTH, MIN_REVERSAL_REASON_LENGTH,
    )
