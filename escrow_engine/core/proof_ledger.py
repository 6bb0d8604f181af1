"""Proof Ledger Rules — append-only evidence attached to an escrow.

Invariants:
    - submitted_by is always the buyer or seller of the owning escrow
    - Proofs are append-only: no update or delete operation exists anywhere
    - Reading is limited to the two parties and the auditor role
    - Ledger order is submission time ascending; ties keep insertion order

Design Decisions:
    - proof_type constrained to ProofType values: evidence categories stay
      queryable instead of free text
"""

from escrow_engine.core.domain_types import ProofType, Role
from escrow_engine.core.enforce_input import check_required_text
from escrow_engine.core.errors import EscrowError, InvalidInputError
from escrow_engine.core.records import EscrowTransaction, Proof


PROOF_READER_ROLES: frozenset[Role] = frozenset({Role.AUDITOR})
MAX_PROOF_DESCRIPTION_LENGTH: int = 2000
MAX_FILE_REFERENCE_LENGTH: int = 2000
MAX_FILE_CID_LENGTH: int = 200


def check_proof_type(proof_type: str | None) -> EscrowError | None:
    valid = {t.value for t in ProofType}
    if proof_type not in valid:
        return InvalidInputError(
            f"proof_type must be one of: {', '.join(sorted(valid))}",
            "proof_type",
        )
    return None


def check_file_cid(file_cid: str | None) -> EscrowError | None:
    if file_cid is not None and len(file_cid) > MAX_FILE_CID_LENGTH:
        return InvalidInputError(
            f"file_cid must be at most {MAX_FILE_CID_LENGTH} characters",
            "file_cid",
        )
    return None


def validate_proof_input(
    proof_type: str,
    description: str,
    file_reference: str,
    file_cid: str | None = None,
) -> EscrowError | None:
    """Chain all proof shape checks. Returns first error or None."""
    return (
        check_proof_type(proof_type)
        or check_required_text(
            description, "description", MAX_PROOF_DESCRIPTION_LENGTH,
        )
        or check_required_text(
            file_reference, "file_reference", MAX_FILE_REFERENCE_LENGTH,
        )
        or check_file_cid(file_cid)
    )


def is_valid_submitter(escrow: EscrowTransaction, user_id: int) -> bool:
    return escrow.is_party(user_id)


def order_ledger(proofs: list[Proof]) -> list[Proof]:
    """Submission order. sorted() is stable, so equal timestamps keep store order."""
    return sorted(proofs, key=lambda p: p.created_at)
