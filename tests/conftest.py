"""Pytest configuration and fixtures for the analytics cache.

Uses app.main:app for HTTP tests and an in-memory ICacheService fake for
everything that touches the store. No Redis or Postgres is needed.
"""

import json
import re
import uuid
from typing import Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from app.application.dtos.analytics import (
    AccessGrant,
    ColumnInfo,
    DataSourceConfig,
    UserContext,
)
from app.core.config import get_settings
from app.core.constants import (
    PERMISSION_ANALYTICS_READ_ALL,
    PERMISSION_ANALYTICS_READ_ORGANIZATION,
)
from app.core.limiter import limiter
from app.domain.enums import DataSourceType, PermissionScope
from app.main import app

TEST_ADMIN_TOKEN = "test-cache-admin-token"


def _glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a Redis MATCH glob (with backslash escapes) to a regex."""
    out: list[str] = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if ch == "*":
            out.append(".*")
        elif ch == "?":
            out.append(".")
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("^" + "".join(out) + "$", re.DOTALL)


class FakeCacheService:
    """In-memory ICacheService: JSON round-trips values like Redis would."""

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.get_calls: list[str] = []

    def is_available(self) -> bool:
        return self.available

    async def get(self, key: str) -> Any:
        self.get_calls.append(key)
        if not self.available or key not in self.store:
            return None
        return json.loads(self.store[key])

    async def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        if not self.available:
            return False
        self.store[key] = json.dumps(value)
        self.ttls[key] = ttl
        return True

    async def delete(self, key: str) -> bool:
        if not self.available:
            return False
        self.store.pop(key, None)
        self.ttls.pop(key, None)
        return True

    async def scan(self, pattern: str) -> list[str]:
        if not self.available:
            return []
        regex = _glob_to_regex(pattern)
        return [key for key in self.store if regex.match(key)]

    async def delete_pattern(self, pattern: str) -> int:
        keys = await self.scan(pattern)
        for key in keys:
            await self.delete(key)
        return len(keys)

    async def memory_usage(self, key: str) -> int | None:
        if not self.available or key not in self.store:
            return None
        return len(self.store[key].encode("utf-8"))

    async def acquire_lock(self, key: str, ttl: int) -> str | None:
        if not self.available or key in self.store:
            return None
        token = uuid.uuid4().hex
        self.store[key] = json.dumps(token)
        self.ttls[key] = ttl
        return token

    async def release_lock(self, key: str, token: str) -> bool:
        if self.store.get(key) != json.dumps(token):
            return False
        del self.store[key]
        return True


class StaticAccessResolver:
    """IAccessResolver returning a fixed grant per user id."""

    def __init__(self, grants: dict[str, AccessGrant]) -> None:
        self.grants = grants
        self.calls: list[str] = []

    async def resolve(self, user_id: str) -> AccessGrant:
        self.calls.append(user_id)
        return self.grants.get(user_id, AccessGrant(scope=PermissionScope.OWN))


def make_rows() -> list[dict[str, Any]]:
    """Rows for practices 114-116, two measures, monthly and weekly, one null provider."""
    return [
        {"practice_id": 114, "provider_id": 1, "measure": "Charges", "frequency": "Monthly",
         "date_index": "2024-01-01", "value": 100.0},
        {"practice_id": 114, "provider_id": 2, "measure": "Charges", "frequency": "Monthly",
         "date_index": "2024-02-01", "value": 110.0},
        {"practice_id": 115, "provider_id": 3, "measure": "Charges", "frequency": "Monthly",
         "date_index": "2024-01-01", "value": 200.0},
        {"practice_id": 116, "provider_id": None, "measure": "Charges", "frequency": "Monthly",
         "date_index": "2024-03-01", "value": 300.0},
        {"practice_id": 114, "provider_id": 1, "measure": "Payments", "frequency": "Monthly",
         "date_index": "2024-01-01", "value": 90.0},
        {"practice_id": 115, "provider_id": 3, "measure": "Charges", "time_period": "Weekly",
         "date_index": "2024-01-08", "value": 50.0},
    ]


@pytest.fixture
def rows() -> list[dict[str, Any]]:
    return make_rows()


@pytest.fixture
def fake_cache() -> FakeCacheService:
    return FakeCacheService()


@pytest.fixture
def measure_source() -> DataSourceConfig:
    return DataSourceConfig(
        id=1,
        name="Practice measures",
        schema_name="analytics",
        table_name="agg_practice_measures",
        data_source_type=DataSourceType.MEASURE_BASED,
    )


@pytest.fixture
def table_source() -> DataSourceConfig:
    return DataSourceConfig(
        id=2,
        name="Provider table",
        schema_name="analytics",
        table_name="provider_summary",
        data_source_type=DataSourceType.TABLE_BASED,
        date_field="service_date",
    )


@pytest.fixture
def catalog(measure_source: DataSourceConfig, table_source: DataSourceConfig) -> AsyncMock:
    sources = {measure_source.id: measure_source, table_source.id: table_source}
    mock = AsyncMock()
    mock.get.side_effect = lambda data_source_id: sources.get(data_source_id)
    mock.list_active.return_value = [measure_source, table_source]
    return mock


@pytest.fixture
def column_registry() -> AsyncMock:
    mock = AsyncMock()
    mock.columns_for.return_value = [
        ColumnInfo(name="value", filterable=True),
        ColumnInfo(name="payer_name", filterable=True),
        ColumnInfo(name="internal_note", filterable=False),
        ColumnInfo(name="date_index", filterable=True, is_date_field=True),
    ]
    return mock


@pytest.fixture
def executor(rows: list[dict[str, Any]]) -> AsyncMock:
    mock = AsyncMock()
    mock.execute.return_value = rows
    return mock


@pytest.fixture
def admin_user() -> UserContext:
    return UserContext(
        user_id="admin-1",
        permissions=frozenset({PERMISSION_ANALYTICS_READ_ALL}),
    )


@pytest.fixture
def org_user() -> UserContext:
    return UserContext(
        user_id="org-1",
        permissions=frozenset({PERMISSION_ANALYTICS_READ_ORGANIZATION}),
    )


@pytest.fixture
def access_resolver() -> StaticAccessResolver:
    return StaticAccessResolver(
        {
            "admin-1": AccessGrant(scope=PermissionScope.ALL),
            "org-1": AccessGrant(
                scope=PermissionScope.ORGANIZATION, accessible_practices=(114,)
            ),
        }
    )


@pytest.fixture
def admin_token(monkeypatch: pytest.MonkeyPatch) -> str:
    """Configure CACHE_ADMIN_TOKEN for management endpoint tests."""
    monkeypatch.setenv("CACHE_ADMIN_TOKEN", TEST_ADMIN_TOKEN)
    get_settings.cache_clear()
    yield TEST_ADMIN_TOKEN
    get_settings.cache_clear()


@pytest.fixture
async def client(fake_cache: FakeCacheService) -> AsyncClient:
    """Async HTTP client against the FastAPI app (ASGI) with the fake cache installed."""
    limiter.reset()
    app.state.cache = fake_cache
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.state.cache = None
    app.dependency_overrides.clear()
