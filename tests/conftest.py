"""
Shared test fixtures.

The Supabase mock keeps rows in memory and enforces the unique
constraints, cascades and the one embedded join the services rely on, so
services run against it unchanged.
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are loaded at import time
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-key")
os.environ["ANTHROPIC_API_KEY"] = ""

import re
import pytest
from copy import deepcopy
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generator, Optional
from unittest.mock import patch
from uuid import uuid4

# ===================
# MOCK SUPABASE CLIENT
# ===================

UNIQUE_CONSTRAINTS: dict[str, list[tuple[str, ...]]] = {
    "products": [("org_id", "sku")],
    "inventory_lots": [("org_id", "lot_number")],
    "inventory_lot_items": [("lot_id", "product_id")],
}

# parent table -> [(child table, foreign key, on delete)]
FOREIGN_KEYS: dict[str, list[tuple[str, str, str]]] = {
    "inventory_lots": [
        ("inventory_lot_items", "lot_id", "cascade"),
        ("bulk_uploads", "lot_id", "set null"),
    ],
}

# (table, embedded table) -> foreign key on table
EMBEDS: dict[tuple[str, str], str] = {
    ("bulk_uploads", "inventory_lots"): "lot_id",
}

_EMBED = re.compile(r"(\w+)\(([^)]*)\)")


class MockAPIError(Exception):
    """Mimics postgrest.APIError: a message plus a Postgres error code."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Chainable query builder over the client's in-memory tables."""

    def __init__(self, client: "MockSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._op = "select"
        self._columns = "*"
        self._payload: list[dict] = []
        self._filters: list[Callable[[dict], bool]] = []
        self._order: Optional[tuple[str, bool]] = None
        self._limit: Optional[int] = None

    def select(self, columns: str = "*", count: Optional[str] = None):
        self._op = "select"
        self._columns = columns
        return self

    def insert(self, data):
        self._op = "insert"
        self._payload = [dict(row) for row in (data if isinstance(data, list) else [data])]
        return self

    def delete(self):
        self._op = "delete"
        return self

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        allowed = set(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def like(self, column, pattern):
        regex = re.compile("^" + re.escape(pattern).replace("%", ".*") + "$")
        self._filters.append(lambda row: bool(regex.match(str(row.get(column, "")))))
        return self

    def order(self, column, desc: bool = False):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def execute(self) -> MockSupabaseResponse:
        self._client.calls.append((self._table, self._op, len(self._payload)))
        self._client.check_failures(self._table, self._op, self._payload)

        if self._op == "insert":
            inserted = self._client.insert_rows(self._table, self._payload)
            if (self._table, "insert") in self._client.hidden_results:
                return MockSupabaseResponse([])
            return MockSupabaseResponse(inserted)
        if self._op == "delete":
            return MockSupabaseResponse(self._client.delete_rows(self._table, self._matches()))
        return MockSupabaseResponse(self._select())

    def _matches(self) -> list[dict]:
        return [
            row for row in self._client.tables.setdefault(self._table, [])
            if all(f(row) for f in self._filters)
        ]

    def _select(self) -> list[dict]:
        rows = self._matches()
        if self._order:
            column, desc = self._order
            rows = sorted(rows, key=lambda r: str(r.get(column) or ""), reverse=desc)
        # PostgREST caps every response at max-rows
        cap = self._client.max_rows
        if self._limit is not None:
            cap = min(cap, self._limit)
        rows = rows[:cap]
        return [self._project(row) for row in rows]

    def _project(self, row: dict) -> dict:
        embeds = _EMBED.findall(self._columns)
        plain = [c.strip() for c in _EMBED.sub("", self._columns).split(",") if c.strip()]
        result = deepcopy(row) if "*" in plain else {c: deepcopy(row.get(c)) for c in plain}
        for embedded, fields in embeds:
            fk = EMBEDS[(self._table, embedded)]
            parent = next(
                (p for p in self._client.tables.get(embedded, []) if p["id"] == row.get(fk)),
                None
            )
            wanted = [f.strip() for f in fields.split(",")]
            result[embedded] = {f: parent.get(f) for f in wanted} if parent else None
        return result


class MockSupabaseClient:
    """
    In-memory Supabase client.

    Usage:
        client = MockSupabaseClient()
        client.set_table_data("products", [{...}])
        client.fail("products", "insert", when=lambda rows: len(rows) > 1)
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[tuple[str, str, int]] = []
        self._failures: list[dict[str, Any]] = []
        self._clock = datetime(2025, 3, 1, tzinfo=timezone.utc)
        self.max_rows = 1000
        self.hidden_results: set[tuple[str, str]] = set()

    def table(self, name: str) -> MockSupabaseQuery:
        return MockSupabaseQuery(self, name)

    def set_table_data(self, table_name: str, data: list):
        """Seed a table (rows are stored as given)."""
        self.tables[table_name] = [dict(row) for row in data]

    def rows(self, table_name: str) -> list[dict]:
        return self.tables.get(table_name, [])

    def fail(
        self,
        table: str,
        op: str,
        error: Optional[Exception] = None,
        when: Optional[Callable[[list[dict]], bool]] = None,
        times: Optional[int] = None,
    ):
        """Make matching statements raise (every time, or `times` times)."""
        self._failures.append({
            "table": table,
            "op": op,
            "error": error or MockAPIError("simulated failure"),
            "when": when,
            "times": times,
        })

    def hide_results(self, table: str, op: str):
        """Run matching statements but return no rows, as RLS on RETURNING does."""
        self.hidden_results.add((table, op))

    def calls_for(self, table: str, op: str) -> list[int]:
        """Payload sizes of the statements run against a table."""
        return [size for t, o, size in self.calls if t == table and o == op]

    def check_failures(self, table: str, op: str, payload: list[dict]):
        for rule in self._failures:
            if rule["table"] != table or rule["op"] != op:
                continue
            if rule["when"] is not None and not rule["when"](payload):
                continue
            if rule["times"] is not None:
                if rule["times"] <= 0:
                    continue
                rule["times"] -= 1
            raise rule["error"]

    def insert_rows(self, table: str, payload: list[dict]) -> list[dict]:
        """All-or-nothing insert honoring unique constraints."""
        existing = self.tables.setdefault(table, [])
        new_rows = []
        for row in payload:
            row = deepcopy(row)
            row.setdefault("id", str(uuid4()))
            self._clock += timedelta(seconds=1)
            row.setdefault("created_at", self._clock.isoformat())
            for columns in UNIQUE_CONSTRAINTS.get(table, []):
                key = tuple(row.get(c) for c in columns)
                if any(tuple(r.get(c) for c in columns) == key for r in existing + new_rows):
                    raise MockAPIError(
                        f'duplicate key value violates unique constraint "{table}_{"_".join(columns)}_key"',
                        code="23505"
                    )
            new_rows.append(row)
        existing.extend(new_rows)
        return deepcopy(new_rows)

    def delete_rows(self, table: str, matched: list[dict]) -> list[dict]:
        ids = {row["id"] for row in matched}
        self.tables[table] = [r for r in self.tables.get(table, []) if r["id"] not in ids]
        for child, fk, action in FOREIGN_KEYS.get(table, []):
            if action == "cascade":
                self.tables[child] = [r for r in self.tables.get(child, []) if r.get(fk) not in ids]
            else:
                for r in self.tables.get(child, []):
                    if r.get(fk) in ids:
                        r[fk] = None
        return deepcopy(matched)


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("products", [
                {"id": "1", "org_id": "org-1", "sku": "TOY-001", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client used by the routes with the mock.

    Services in unit tests receive the mock through their constructor.
    """
    with patch("routes.inventory_upload.get_supabase_client", return_value=mock_supabase):
        with patch("routes.lots.get_supabase_client", return_value=mock_supabase):
            yield mock_supabase


@pytest.fixture
def sample_csv() -> bytes:
    """Small supplier file with Spanish headers."""
    return (
        "sku,nombre,marca,precio,costo,stock\n"
        "TOY-001,Pastillas de freno Toyota,Toyota,25.50,15.00,100\n"
        "TOY-002,Filtro de aceite,Toyota,8.99,4.50,200\n"
        "\n"
        "NIS-001,Bujia iridium,NGK,12.00,,50\n"
    ).encode("utf-8")


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    Create FastAPI test client with mocked database.

    Usage:
        def test_endpoint(test_client_with_mock_db, mock_supabase):
            mock_supabase.set_table_data("inventory_lots", [...])
            response = test_client_with_mock_db.get("/api/lots/?org_id=org-1")
    """
    from fastapi.testclient import TestClient
    from main import app

    # No lifespan: startup would try to reach the real database
    yield TestClient(app)
