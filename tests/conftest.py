# tests/conftest.py
"""
Shared fixtures: an in-memory stand-in for the Supabase client and a
TestClient with the auth / database dependencies overridden.
"""
import asyncio
import copy
import uuid
from datetime import date, datetime, timedelta
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from taskflow import customers
from taskflow.deps import get_supabase, get_user
from taskflow.main import app


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value
    return value


def _on_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class FakeQuery:
    """Just enough of postgrest's request builder for the routers."""

    def __init__(self, store: "FakeSupabase", table: str):
        self.store = store
        self.table = table
        self.op = "select"
        self.payload: Any = None
        self.on_conflict = "id"
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self._order: Optional[tuple] = None
        self._limit: Optional[int] = None
        self._negate = False

    # operations
    def select(self, *_columns):
        self.op = "select"
        return self

    def insert(self, rows):
        self.op, self.payload = "insert", rows
        return self

    def upsert(self, rows, on_conflict: str = "id"):
        self.op, self.payload, self.on_conflict = "upsert", rows, on_conflict
        return self

    def update(self, changes):
        self.op, self.payload = "update", changes
        return self

    def delete(self):
        self.op = "delete"
        return self

    # filters
    @property
    def not_(self):
        self._negate = True
        return self

    def _where(self, predicate):
        if self._negate:
            self._negate = False
            self.filters.append(lambda r: not predicate(r))
        else:
            self.filters.append(predicate)
        return self

    def eq(self, column, value):
        return self._where(lambda r: r.get(column) == value)

    def in_(self, column, values):
        values = list(values)
        return self._where(lambda r: r.get(column) in values)

    def is_(self, column, value):
        assert value == "null"
        return self._where(lambda r: r.get(column) is None)

    def lte(self, column, value):
        return self._where(
            lambda r: r.get(column) is not None and _comparable(r[column]) <= _comparable(value)
        )

    def order(self, column, desc: bool = False):
        self._order = (column, desc)
        return self

    def limit(self, n):
        self._limit = n
        return self

    def execute(self):
        self.store.calls.append((self.table, self.op))
        if _on_event_loop():
            self.store.loop_calls.append((self.table, self.op))
        if self.table in self.store.failing:
            raise RuntimeError(f"{self.table} is unavailable")
        rows = self.store.tables.setdefault(self.table, [])
        return SimpleNamespace(data=copy.deepcopy(getattr(self, f"_{self.op}")(rows)))

    def _matching(self, rows):
        return [r for r in rows if all(f(r) for f in self.filters)]

    def _select(self, rows):
        found = self._matching(rows)
        if self._order:
            column, desc = self._order
            present = [r for r in found if r.get(column) is not None]
            present.sort(key=lambda r: _comparable(r[column]), reverse=desc)
            found = present + [r for r in found if r.get(column) is None]
        if self._limit is not None:
            found = found[: self._limit]
        return found

    def _insert(self, rows):
        new = self.payload if isinstance(self.payload, list) else [self.payload]
        new = [copy.deepcopy(r) for r in new]
        for r in new:
            r.setdefault("id", str(uuid.uuid4()))
        rows.extend(new)
        return new

    def _upsert(self, rows):
        keys = [k.strip() for k in self.on_conflict.split(",")]
        out = []
        for r in self.payload if isinstance(self.payload, list) else [self.payload]:
            existing = next((x for x in rows if all(x.get(k) == r.get(k) for k in keys)), None)
            if existing is not None:
                existing.update(copy.deepcopy(r))
                out.append(existing)
            else:
                rows.append(copy.deepcopy(r))
                out.append(rows[-1])
        return out

    def _update(self, rows):
        found = self._matching(rows)
        for r in found:
            r.update(copy.deepcopy(self.payload))
        return found

    def _delete(self, rows):
        found = self._matching(rows)
        self.store.tables[self.table] = [r for r in rows if r not in found]
        return found


class FakeAuth:
    def __init__(self):
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.signed_out: List[str] = []
        self.error: Optional[Exception] = None
        self.admin = SimpleNamespace(sign_out=self._sign_out)

    def _response(self, uid):
        return SimpleNamespace(
            user=SimpleNamespace(id=uid),
            session=SimpleNamespace(access_token=f"access-{uid}", refresh_token=f"refresh-{uid}"),
        )

    def sign_up(self, credentials):
        if self.error:
            raise self.error
        if credentials["email"] in self.accounts:
            raise Exception("User already registered")
        uid = f"user-{len(self.accounts) + 1}"
        self.accounts[credentials["email"]] = {"id": uid, "password": credentials["password"]}
        return self._response(uid)

    def sign_in_with_password(self, credentials):
        if self.error:
            raise self.error
        account = self.accounts.get(credentials["email"])
        if not account or account["password"] != credentials["password"]:
            raise Exception("Invalid login credentials")
        return self._response(account["id"])

    def _sign_out(self, token):
        self.signed_out.append(token)


class FakeBucket:
    def __init__(self, store, name):
        self.store, self.name = store, name

    def upload(self, path, data, options=None):
        if _on_event_loop():
            self.store.loop_calls.append(("storage", "upload"))
        self.store.uploads[f"{self.name}/{path}"] = data
        return SimpleNamespace(path=path)

    def get_public_url(self, path):
        return f"https://storage.test/{self.name}/{path}"


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.failing: set = set()
        self.calls: List[tuple] = []
        # calls made while an event loop was running in the calling thread
        self.loop_calls: List[tuple] = []
        self.uploads: Dict[str, bytes] = {}
        self.auth = FakeAuth()
        self.storage = SimpleNamespace(from_=lambda name: FakeBucket(self, name))

    def table(self, name):
        return FakeQuery(self, name)

    def rows(self, name):
        return self.tables.get(name, [])


CLIENT = {
    "id": "client-1",
    "full_name": "Nimali Perera",
    "email": "nimali@example.com",
    "auth_email": "nimali@example.com",
    "role": "client",
    "total_jobs": 0,
}

TASKER = {
    "id": "tasker-1",
    "full_name": "Kasun Silva",
    "email": "kasun@example.com",
    "auth_email": "kasun@example.com",
    "role": "tasker",
    "profession": "Cleaner",
    "total_jobs": 3,
}


@pytest.fixture
def sb():
    store = FakeSupabase()
    store.tables["users"] = [
        {k: v for k, v in CLIENT.items() if not k.startswith("auth_")},
        {k: v for k, v in TASKER.items() if not k.startswith("auth_")},
    ]
    return store


@pytest.fixture
def current():
    """Mutable holder for the user the overridden get_user returns."""
    return {"user": dict(CLIENT)}


@pytest.fixture
def act_as(current):
    def _act_as(user):
        current["user"] = dict(user)
    return _act_as


@pytest.fixture(autouse=True)
def no_geocoding(monkeypatch):
    async def _none(address, client=None):
        return None
    monkeypatch.setattr(customers, "geocode_address", _none)


@pytest.fixture
def client(sb, current):
    app.dependency_overrides[get_supabase] = lambda: sb
    app.dependency_overrides[get_user] = lambda: current["user"]
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def service(sb):
    row = {
        "id": "svc-1",
        "name": "Deep Cleaning",
        "description": "Whole house deep clean",
        "price": 4500.0,
        "price_string": "4500",
        "estimated_time": "3 hours",
        "user_id": TASKER["id"],
        "image_url": "",
        "is_active": True,
        "created_at": "2026-01-10T08:00:00+00:00",
        "updated_at": "2026-01-10T08:00:00+00:00",
    }
    sb.tables.setdefault("services", []).append(row)
    return row


@pytest.fixture
def booking_payload():
    return {
        "service_id": "svc-1",
        "customer_name": "Nimali Perera",
        "customer_phone": "0771234567",
        "customer_address": "42 Galle Road, Colombo 03",
        "scheduled_date": (date.today() + timedelta(days=3)).isoformat(),
        "scheduled_time": "10:00:00",
        "notes": "Please bring ladders",
    }
