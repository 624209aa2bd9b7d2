"""Executes parameterized analytics SQL and returns JSON-safe rows.

Values are normalized so a row read from the database and the same row
read back from the cache compare equal: Decimal -> float, date/datetime
-> ISO string, interval -> seconds, bytea -> hex, UUID -> str. Arrays and
json columns are normalized element by element.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.application.dtos.analytics import Row

logger = logging.getLogger(__name__)


def normalize_value(value: Any) -> Any:
    """Convert driver types to their JSON-safe equivalents."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [normalize_value(item) for item in value]
    if isinstance(value, dict):
        return {key: normalize_value(item) for key, item in value.items()}
    return value


class SqlAnalyticsExecutor:
    """Implements IAnalyticsExecutor over SQLAlchemy text() queries."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def execute(self, sql: str, args: dict[str, Any]) -> list[Row]:
        async with self.session_factory() as db:
            result = await db.execute(text(sql), args)
            rows = [
                {column: normalize_value(value) for column, value in mapping.items()}
                for mapping in result.mappings().all()
            ]
        logger.debug("Analytics query returned %d rows", len(rows))
        return rows
