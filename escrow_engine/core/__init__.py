"""Core Layer — pure escrow domain logic, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, models/ or db/
    - All rule functions are pure and deterministic

Design Decisions:
    - Functional core separated from imperative shell: the transition table and
      every guard are testable without a database or an HTTP client
"""
