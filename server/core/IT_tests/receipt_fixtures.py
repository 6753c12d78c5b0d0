"""Builders for fake Apple replies and a fake Supabase table used across the receipt tests."""
import json
import threading
import time
from types import SimpleNamespace
from typing import Callable, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError

BUNDLE_ID = "com.example.motion"
SHARED_SECRET = "shared-secret"


def purchase(transaction_id: str, expires_date: Optional[str] = "2030-01-01 00:00:00 Etc/GMT", **fields) -> dict:
    record = {
        "quantity": "1",
        "product_id": "com.example.motion.monthly",
        "transaction_id": transaction_id,
        "original_transaction_id": transaction_id,
        "purchase_date": "2024-01-01 00:00:00 Etc/GMT",
    }
    if expires_date is not None:
        record["expires_date"] = expires_date
    record.update(fields)
    return record


def apple_reply(status: int = 0, bundle_id: str = BUNDLE_ID, in_app: Optional[List[dict]] = None, **extra) -> dict:
    reply = {
        "status": status,
        "environment": "Sandbox",
        "receipt": {
            "receipt_type": "ProductionSandbox",
            "bundle_id": bundle_id,
            "in_app": in_app if in_app is not None else [purchase("1000000001")],
        },
    }
    reply.update(extra)
    return reply


class AppleStub:
    """Serves queued replies through an httpx.MockTransport and records every request."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=reply)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    @property
    def urls(self) -> List[str]:
        return [str(r.url) for r in self.requests]

    def bodies(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests]


class FakeTable:
    """In-memory stand-in for a Postgres table with a primary key on ``uid``."""

    def __init__(self):
        self.rows: Dict[str, dict] = {}
        self.lock = threading.Lock()


class FakeQuery:
    def __init__(self, table: FakeTable, delay: float = 0.0):
        self.table = table
        self.delay = delay
        self.op = None
        self.payload = None
        self.filters: List[Callable[[dict], bool]] = []

    def select(self, columns: str):
        self.op = "select"
        return self

    def update(self, payload: dict):
        self.op = "update"
        self.payload = payload
        return self

    def insert(self, payload: dict):
        self.op = "insert"
        self.payload = payload
        return self

    def eq(self, column: str, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def or_(self, filters: str):
        """Understands the `col.is.null` and `col.neq."value"` terms the ledger sends."""
        conditions = []
        for term in filters.split(","):
            column, operator, value = term.split(".", 2)
            if operator == "is" and value == "null":
                conditions.append(lambda row, c=column: row.get(c) is None)
            elif operator == "neq":
                value = value.strip("\"")
                conditions.append(lambda row, c=column, v=value: row.get(c) is not None and row.get(c) != v)
            else:
                raise AssertionError(f"unsupported filter {term}")
        self.filters.append(lambda row: any(condition(row) for condition in conditions))
        return self

    def limit(self, count: int):
        return self

    def execute(self):
        if self.delay:
            time.sleep(self.delay)
        with self.table.lock:
            matching = [row for row in self.table.rows.values() if all(f(row) for f in self.filters)]
            if self.op == "select":
                return SimpleNamespace(data=[dict(row) for row in matching])
            if self.op == "update":
                for row in matching:
                    row.update(self.payload)
                return SimpleNamespace(data=[dict(row) for row in matching])
            if self.op == "insert":
                uid = self.payload["uid"]
                if uid in self.table.rows:
                    raise APIError({"code": "23505", "message": "duplicate key value violates unique constraint"})
                self.table.rows[uid] = dict(self.payload)
                return SimpleNamespace(data=[dict(self.payload)])
        raise AssertionError(f"unexpected operation {self.op}")


class FakeSupabase:
    def __init__(self, delay: float = 0.0):
        self.tables: Dict[str, FakeTable] = {}
        self.delay = delay

    def from_(self, name: str) -> FakeQuery:
        return FakeQuery(self.tables.setdefault(name, FakeTable()), delay=self.delay)
