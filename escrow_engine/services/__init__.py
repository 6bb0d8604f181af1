"""Services Layer — EscrowService applies the pure core rules around store and oracle IO.

Invariants:
    - Services raise EscrowError; they never build HTTP responses
"""
