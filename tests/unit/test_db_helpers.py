from unittest.mock import AsyncMock

import psycopg
import pytest

from intake.db.helpers import DatabaseError, with_db_retry


@pytest.mark.asyncio
async def test_retry_recovers_from_wrapped_operational_error():
    transient = DatabaseError("Query failed", operation="fetch_one")
    transient.__cause__ = psycopg.OperationalError("connection reset")
    call = AsyncMock(side_effect=[transient, "ok"])

    @with_db_retry(max_retries=2, base_delay=0)
    async def read():
        return await call()

    assert await read() == "ok"
    assert call.await_count == 2


@pytest.mark.asyncio
async def test_non_transient_database_error_is_not_retried():
    call = AsyncMock(side_effect=DatabaseError("syntax error", operation="fetch_one"))

    @with_db_retry(max_retries=3, base_delay=0)
    async def read():
        return await call()

    with pytest.raises(DatabaseError):
        await read()
    assert call.await_count == 1


@pytest.mark.asyncio
async def test_retries_exhausted_marks_unrecoverable():
    call = AsyncMock(side_effect=psycopg.OperationalError("down"))

    @with_db_retry(max_retries=1, base_delay=0)
    async def read():
        return await call()

    with pytest.raises(DatabaseError) as exc_info:
        await read()
    assert exc_info.value.recoverable is False
    assert call.await_count == 2
