"""
Schema bootstrap for the intake database.

Applies schema.sql (idempotent DDL) through the shared pool.
"""

from pathlib import Path

from intake.db.pool import db_pool
from intake.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"


def load_schema_sql() -> str:
    return SCHEMA_PATH.read_text(encoding="utf-8")


async def apply_schema() -> None:
    """Create enums, tables and indexes if they do not exist."""
    ddl = load_schema_sql()

    async with db_pool.transaction() as conn:
        await conn.execute(ddl)

    logger.info("Database schema applied", path=str(SCHEMA_PATH))
