"""Escrow Engine — escrow transaction lifecycle service.

Invariants:
    - Package root holds only metadata (no import side effects)

Design Decisions:
    - Explicit imports only, no star exports
"""

__version__ = "1.0.0"
