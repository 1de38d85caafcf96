"""Pytest configuration and fixtures."""

import copy
import itertools
import os
import re
import secrets
import sys
import uuid
from datetime import datetime, timedelta, timezone

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

# For unit tests, set mock values ONLY if not running integration tests
if not os.environ.get("RUN_INTEGRATION"):
    os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
    os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
    os.environ.setdefault("SUPABASE_PUBLISHABLE_KEY", "test-publishable-key")
    os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
    os.environ.pop("AI_API_KEY", None)
else:
    from pathlib import Path

    from dotenv import load_dotenv

    if not os.environ.get("CONFIRM_INTEGRATION_CREDENTIALS"):
        print("\nIntegration tests use REAL credentials from .env.", file=sys.stderr)
        print("Set CONFIRM_INTEGRATION_CREDENTIALS=yes to proceed.\n", file=sys.stderr)
        pytest.exit(
            "Integration tests require CONFIRM_INTEGRATION_CREDENTIALS=yes",
            returncode=1,
        )
    load_dotenv(Path(__file__).parent.parent / ".env", override=True)

from earnhub.auth import create_access_token  # noqa: E402
from earnhub.config import get_settings  # noqa: E402
from earnhub.database import (  # noqa: E402
    DEPOSIT_REQUESTS_TABLE,
    GAME_HISTORY_TABLE,
    GAME_SESSIONS_TABLE,
    LOTTERY_TICKETS_TABLE,
    MARKETPLACE_SUBMISSIONS_TABLE,
    PROFILES_TABLE,
    USER_TASKS_TABLE,
    WALLETS_TABLE,
    get_db,
)
from earnhub.main import app  # noqa: E402
from earnhub.rate_limit import limiter  # noqa: E402
from earnhub.system import invalidate_system_config  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from postgrest.exceptions import APIError  # noqa: E402

# =============================================================================
# In-memory Supabase
# =============================================================================


class FakeResult:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


def _like(pattern: str, case_insensitive: bool) -> re.Pattern:
    regex = "^" + ".*".join(re.escape(part) for part in pattern.split("%")) + "$"
    return re.compile(regex, re.IGNORECASE if case_insensitive else 0)


def _cmp(value):
    """Numbers compare numerically, everything else as strings."""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, (int, float)):
        return float(value)
    return value


class FakeQuery:
    """Chainable subset of the postgrest query builder."""

    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._op = "select"
        self._payload = None
        self._filters = []
        self._order = []
        self._limit = None
        self._range = None
        self._count = None
        self._on_conflict = None
        self._ignore_duplicates = False

    # -- operations ---------------------------------------------------------

    def select(self, *columns, count=None):
        self._op = "select"
        self._count = count
        return self

    def insert(self, payload):
        self._op, self._payload = "insert", payload
        return self

    def update(self, payload):
        self._op, self._payload = "update", payload
        return self

    def upsert(self, payload, on_conflict=None, ignore_duplicates=False):
        self._op, self._payload = "upsert", payload
        self._on_conflict = on_conflict
        self._ignore_duplicates = ignore_duplicates
        return self

    def delete(self):
        self._op = "delete"
        return self

    # -- filters ------------------------------------------------------------

    def _add(self, predicate):
        self._filters.append(predicate)
        return self

    def eq(self, column, value):
        return self._add(lambda row: _cmp(row.get(column)) == _cmp(value))

    def neq(self, column, value):
        return self._add(lambda row: _cmp(row.get(column)) != _cmp(value))

    def gt(self, column, value):
        return self._add(lambda row: row.get(column) is not None and _cmp(row[column]) > _cmp(value))

    def gte(self, column, value):
        return self._add(lambda row: row.get(column) is not None and _cmp(row[column]) >= _cmp(value))

    def lt(self, column, value):
        return self._add(lambda row: row.get(column) is not None and _cmp(row[column]) < _cmp(value))

    def lte(self, column, value):
        return self._add(lambda row: row.get(column) is not None and _cmp(row[column]) <= _cmp(value))

    def in_(self, column, values):
        values = [_cmp(v) for v in values]
        return self._add(lambda row: _cmp(row.get(column)) in values)

    def is_(self, column, value):
        expected = None if value in ("null", None) else value
        return self._add(lambda row: row.get(column) is expected)

    def ilike(self, column, pattern):
        regex = _like(pattern, True)
        return self._add(lambda row: row.get(column) is not None and bool(regex.match(str(row[column]))))

    def like(self, column, pattern):
        regex = _like(pattern, False)
        return self._add(lambda row: row.get(column) is not None and bool(regex.match(str(row[column]))))

    def order(self, column, desc=False):
        self._order.append((column, desc))
        return self

    def limit(self, n):
        self._limit = n
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    # -- execution ----------------------------------------------------------

    def _matching(self):
        rows = self._db.tables.setdefault(self._table, [])
        return [row for row in rows if all(f(row) for f in self._filters)]

    def execute(self):
        self._db.calls.append((self._table, self._op))
        failure = self._db.failures.get((self._table, self._op))
        if failure:
            raise failure
        return getattr(self, f"_execute_{self._op}")()

    def _execute_select(self):
        rows = self._matching()
        for column, desc in reversed(self._order):
            rows.sort(key=lambda r: (r.get(column) is None, _cmp(r.get(column)) or 0), reverse=desc)
        count = len(rows) if self._count else None
        if self._range:
            rows = rows[self._range[0] : self._range[1] + 1]
        if self._limit is not None:
            rows = rows[: self._limit]
        return FakeResult(copy.deepcopy(rows), count)

    def _execute_insert(self):
        payload = self._payload if isinstance(self._payload, list) else [self._payload]
        inserted = [self._db.add_row(self._table, row) for row in payload]
        return FakeResult(copy.deepcopy(inserted))

    def _execute_update(self):
        rows = self._matching()
        for row in rows:
            row.update(copy.deepcopy(self._payload))
        return FakeResult(copy.deepcopy(rows))

    def _execute_upsert(self):
        payload = self._payload if isinstance(self._payload, list) else [self._payload]
        keys = (self._on_conflict or "id").split(",")
        result = []
        for row in payload:
            existing = [
                r for r in self._db.tables.setdefault(self._table, [])
                if all(r.get(k) == row.get(k) for k in keys)
            ]
            if existing:
                if not self._ignore_duplicates:
                    existing[0].update(copy.deepcopy(row))
                    result.append(copy.deepcopy(existing[0]))
            else:
                result.append(copy.deepcopy(self._db.add_row(self._table, row)))
        return FakeResult(result)

    def _execute_delete(self):
        rows = self._matching()
        table = self._db.tables[self._table]
        self._db.tables[self._table] = [r for r in table if r not in rows]
        return FakeResult(copy.deepcopy(rows))


class FakeSupabase:
    """Just enough of `supabase.Client` for the service layer.

    `unique` maps a table to unique indexes; a duplicate insert raises
    postgrest's APIError like a real unique violation. An index is a tuple
    of columns, or `(columns, where)` for a partial index covering only
    rows matching `where`. NULLs never collide.
    `failures` maps (table, operation) to an exception raised on execute.
    """

    def __init__(self, unique: dict | None = None):
        self.tables: dict[str, list[dict]] = {}
        self.unique = unique or {}
        self.failures: dict[tuple[str, str], Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self._clock = itertools.count()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def add_row(self, table: str, row: dict) -> dict:
        row = copy.deepcopy(row)
        row.setdefault("id", str(uuid.uuid4()))
        stamp = datetime.now(timezone.utc) + timedelta(microseconds=next(self._clock))
        row.setdefault("created_at", stamp.isoformat())
        rows = self.tables.setdefault(table, [])
        for index in self.unique.get(table, ()):
            if self._collides(rows, row, index):
                raise APIError(
                    {"message": "duplicate key value violates unique constraint", "code": "23505", "hint": None, "details": None}
                )
        rows.append(row)
        return row

    @staticmethod
    def _collides(rows: list[dict], row: dict, index) -> bool:
        columns, where = index if isinstance(index[0], tuple) else (index, {})
        if any(row.get(k) != v for k, v in where.items()):
            return False
        if any(row.get(c) is None for c in columns):
            return False
        return any(
            all(r.get(k) == v for k, v in where.items())
            and all(r.get(c) == row.get(c) for c in columns)
            for r in rows
        )

    def rows(self, table: str, **match) -> list[dict]:
        return [r for r in self.tables.get(table, []) if all(r.get(k) == v for k, v in match.items())]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def db():
    return FakeSupabase(
        unique={
            GAME_HISTORY_TABLE: [("user_id", "round_id")],
            GAME_SESSIONS_TABLE: [(("user_id", "game_id"), {"status": "open"})],
            USER_TASKS_TABLE: [("user_id", "claim_key")],
            MARKETPLACE_SUBMISSIONS_TABLE: [("task_id", "worker_id")],
            DEPOSIT_REQUESTS_TABLE: [("transaction_id",)],
            LOTTERY_TICKETS_TABLE: [("lottery_id", "ticket_number")],
        }
    )


@pytest.fixture(autouse=True)
def clean_state():
    """Reset process-wide caches between tests."""
    invalidate_system_config()
    limiter.enabled = False
    yield
    invalidate_system_config()
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Seed a profile and wallet; returns the user id."""

    def _make(balances: dict | None = None, **profile) -> str:
        user_id = profile.pop("id", None) or str(uuid.uuid4())
        db.add_row(
            PROFILES_TABLE,
            {
                "id": user_id,
                "email_1": f"{user_id[:8]}@example.com",
                "name_1": "Test User",
                "ref_code_1": f"EH{user_id[:6].upper()}",
                "is_kyc_1": False,
                "admin_user": False,
                **profile,
            },
        )
        wallet = {
            "user_id": user_id,
            "currency": "USD",
            "version": 0,
            "main_balance": 0,
            "deposit_balance": 0,
            "game_balance": 0,
            "earning_balance": 0,
            "investment_balance": 0,
            "referral_balance": 0,
            "commission_balance": 0,
            "bonus_balance": 0,
            "total_earning": 0,
            "today_earning": 0,
            "pending_withdraw": 0,
            "referral_earnings": 0,
        }
        wallet.update(balances or {})
        db.add_row(WALLETS_TABLE, wallet)
        return user_id

    return _make


@pytest.fixture
def client(db):
    """Create a test client backed by the in-memory database."""
    app.dependency_overrides[get_db] = lambda: db
    return TestClient(app)


def bearer(user_id: str) -> dict:
    token = create_access_token(get_settings(), user_id=user_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    """Build auth headers for any user id."""
    return bearer


@pytest.fixture
def user_id(make_user):
    return make_user({"game_balance": 100, "deposit_balance": 500, "main_balance": 50})


@pytest.fixture
def auth_headers(user_id):
    """Create auth headers for a seeded user."""
    return bearer(user_id)


@pytest.fixture
def admin_headers(make_user):
    return bearer(make_user(admin_user=True))
