"""Shared test infrastructure for the brokermatch test suite.

Provides:
- fake_db: in-memory stand-in for the Supabase/PostgREST query builder
- supabase: SupabaseClient wrapping fake_db
- settings: Settings built without touching the environment
- make_buyer_row / make_property_row: row factories
- StaticRanker: deterministic ranker implementing BaseRanker
"""

import copy
import os
import uuid
from typing import Optional

import pytest

os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

from brokermatch.analysis import BaseRanker  # noqa: E402
from brokermatch.config import Settings, get_settings  # noqa: E402
from brokermatch.database import (  # noqa: E402
    BuyerPropertyRepository,
    BuyerRepository,
    MatchRepository,
    NotificationRepository,
    PropertyRepository,
    SupabaseClient,
)
from brokermatch.models import RankedMatch  # noqa: E402


# ---------------------------------------------------------------------------
# In-memory Supabase fake
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Subset of the postgrest-py request builder used by the repositories."""

    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._op = "select"
        self._payload = None
        self._on_conflict: Optional[str] = None
        self._filters = []
        self._negate_next = False
        self._limit: Optional[int] = None
        self._order = None

    # Operations

    def select(self, columns="*"):
        self._op = "select"
        return self

    def insert(self, rows):
        self._op = "insert"
        self._payload = rows if isinstance(rows, list) else [rows]
        return self

    def upsert(self, rows, on_conflict=None, **kwargs):
        self._op = "upsert"
        self._payload = rows if isinstance(rows, list) else [rows]
        self._on_conflict = on_conflict
        return self

    def delete(self):
        self._op = "delete"
        return self

    # Filters

    @property
    def not_(self):
        self._negate_next = True
        return self

    def _add(self, column, predicate):
        negate = self._negate_next
        self._negate_next = False
        self._filters.append((column, predicate, negate))
        return self

    def eq(self, column, value):
        return self._add(column, lambda v: v == value)

    def neq(self, column, value):
        return self._add(column, lambda v: v != value)

    def in_(self, column, values):
        values = list(values)
        return self._add(column, lambda v: v in values)

    def gte(self, column, value):
        return self._add(column, lambda v: v is not None and v >= value)

    def lte(self, column, value):
        return self._add(column, lambda v: v is not None and v <= value)

    def limit(self, n):
        self._limit = n
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    # Execution

    def _matches(self, row):
        for column, predicate, negate in self._filters:
            if predicate(row.get(column)) == negate:
                return False
        return True

    def execute(self):
        self._db.calls.append((self._table, self._op))
        if (self._table, self._op) in self._db.fail_on:
            raise RuntimeError(f"simulated failure on {self._table}.{self._op}")

        rows = self._db.tables.setdefault(self._table, [])

        if self._op == "select":
            result = [copy.deepcopy(r) for r in rows if self._matches(r)]
            if self._order:
                column, desc = self._order
                result.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
            if self._limit is not None:
                result = result[: self._limit]
            return FakeResponse(result)

        if self._op == "insert":
            inserted = []
            for row in self._payload:
                row = {"id": str(uuid.uuid4()), **copy.deepcopy(row)}
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return FakeResponse(inserted)

        if self._op == "upsert":
            keys = [k.strip() for k in (self._on_conflict or "id").split(",")]
            written = []
            for row in self._payload:
                existing = next(
                    (r for r in rows if all(r.get(k) == row.get(k) for k in keys)),
                    None,
                )
                if existing is not None:
                    existing.update(copy.deepcopy(row))
                    written.append(copy.deepcopy(existing))
                else:
                    new_row = copy.deepcopy(row)
                    rows.append(new_row)
                    written.append(copy.deepcopy(new_row))
            return FakeResponse(written)

        if self._op == "delete":
            deleted = [r for r in rows if self._matches(r)]
            self._db.tables[self._table] = [r for r in rows if not self._matches(r)]
            return FakeResponse([copy.deepcopy(r) for r in deleted])

        raise AssertionError(f"unsupported op {self._op}")


class FakeSupabase:
    """Minimal supabase.Client replacement keeping tables as lists of dicts."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[tuple[str, str]] = set()

    def table(self, name):
        return FakeQuery(self, name)

    def rows(self, name):
        return self.tables.get(name, [])


# ---------------------------------------------------------------------------
# Deterministic ranker
# ---------------------------------------------------------------------------

class StaticRanker(BaseRanker):
    """Returns preset scores per property id, ignoring taste text."""

    def __init__(self, scores: Optional[dict] = None, error: Optional[Exception] = None):
        self.scores = scores or {}
        self.error = error
        self.calls = []

    async def rank(self, buyer, candidates, feedback=()):
        self.calls.append((buyer, list(candidates), list(feedback)))
        if self.error is not None:
            raise self.error
        ranked = [
            RankedMatch(
                property_id=p.id,
                match_score=self.scores[p.id],
                match_reason=f"fits {buyer.full_name}",
            )
            for p in candidates
            if p.id in self.scores
        ]
        return sorted(ranked, key=lambda m: m.match_score, reverse=True)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

def make_buyer_row(buyer_id="buyer-1", **overrides) -> dict:
    row = {
        "id": buyer_id,
        "full_name": "Dana Levi",
        "global_liked_profile": "quiet streets, lots of light",
        "global_disliked_profile": None,
        "client_match_summary": None,
        "budget_min": None,
        "budget_max": None,
        "min_rooms": None,
        "target_cities": [],
        "target_neighborhoods": [],
        "required_features": [],
        "floor_min": None,
        "floor_max": None,
    }
    row.update(overrides)
    return row


def make_property_row(property_id="prop-1", **overrides) -> dict:
    row = {
        "id": property_id,
        "address": "Dizengoff 100",
        "city": "Tel Aviv",
        "neighborhood": "Old North",
        "price": 1_400_000,
        "rooms": 3,
        "size_sqm": 80,
        "floor": 2,
        "has_safe_room": False,
        "has_sun_balcony": False,
        "has_elevator": False,
        "parking_spots": 0,
        "description": "Bright apartment",
        "status": "available",
    }
    row.update(overrides)
    return row


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        supabase_url="http://localhost:54321",
        supabase_key="test-anon-key",
        groq_api_key="test-groq-key",
        ranking_timeout_seconds=1.0,
    )


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def supabase(fake_db):
    return SupabaseClient(fake_db)


@pytest.fixture
def repos(supabase):
    return {
        "buyers": BuyerRepository(supabase),
        "properties": PropertyRepository(supabase),
        "assignments": BuyerPropertyRepository(supabase),
        "matches": MatchRepository(supabase),
        "notifications": NotificationRepository(supabase),
    }
