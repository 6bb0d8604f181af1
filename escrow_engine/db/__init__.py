"""Database Infrastructure — SQLAlchemy Base for the escrow tables.

Invariants:
    - Single async engine per process (infrastructure/database.init_db)
    - All sessions are async (AsyncSession)

Design Decisions:
    - asyncpg driver for PostgreSQL, aiosqlite for tests
"""
