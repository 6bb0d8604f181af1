"""Reputation — per-user trust score derived from ratings received.

Invariants:
    - PURE: computed from a list of ratings, never stored
    - score is bounded 0.0–1.0; a user with no ratings is neutral (0.5)
    - positive = score >= 4, negative = score <= 2, 3 is neutral

Design Decisions:
    - Confidence weighting: the base ratio only fully counts after
      FULL_WEIGHT_AT ratings, so one bad rating cannot sink a newcomer
"""

from escrow_engine.core.domain_types import UserId
from escrow_engine.core.records import Rating, Reputation


NEUTRAL_SCORE: float = 0.5
POSITIVE_AT_LEAST: int = 4
NEGATIVE_AT_MOST: int = 2
FULL_WEIGHT_AT: int = 10


def compute_reputation(user_id: UserId, ratings: list[Rating]) -> Reputation:
    received = [r for r in ratings if r.rated_user_id == user_id]
    positive = sum(1 for r in received if r.score >= POSITIVE_AT_LEAST)
    negative = sum(1 for r in received if r.score <= NEGATIVE_AT_MOST)
    total = len(received)

    if total == 0:
        score = NEUTRAL_SCORE
    else:
        polar = positive + negative
        base = positive / polar if polar else NEUTRAL_SCORE
        weight = min(1.0, total / FULL_WEIGHT_AT)
        score = NEUTRAL_SCORE * (1 - weight) + base * weight

    return Reputation(
        user_id=user_id,
        score=round(max(0.0, min(1.0, score)), 4),
        rating_count=total,
        positive_count=positive,
        negative_count=negative,
    )
