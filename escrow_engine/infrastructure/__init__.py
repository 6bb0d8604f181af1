"""Infrastructure Layer — database, store, oracle adapters and logging.

Invariants:
    - Adapters satisfy the core protocols (core/repository_protocols.py)
    - Adapter failures surface as EscrowError subclasses (DatabaseError, ExternalServiceError)
"""
