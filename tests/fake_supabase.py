"""
In-memory stand-in for the supabase-py query builder used by the services.

Supports the subset the app calls: select/insert/upsert/update/delete with
eq/neq/in_/contains/ilike/lte/lt/order/limit filters, a unique constraint on
profile_group_members(group_id, user_id), and injected failures per table/op.
"""

import copy
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional


class FakeStoreError(Exception):
    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class FakeResult:
    def __init__(self, data: List[dict]):
        self.data = data


def _like(pattern: str) -> "re.Pattern":
    regex = "".join(
        ".*" if ch == "%" else "." if ch == "_" else re.escape(ch)
        for ch in pattern
    )
    return re.compile(f"^{regex}$", re.IGNORECASE | re.DOTALL)


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.op = "select"
        self.columns = "*"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.ignore_duplicates = False
        self.filters: List[Callable[[dict], bool]] = []
        self.order_by: Optional[tuple] = None
        self.limit_to: Optional[int] = None

    # Operations

    def select(self, columns: str = "*"):
        self.op = "select"
        self.columns = columns
        return self

    def insert(self, payload):
        self.op = "insert"
        self.payload = payload
        return self

    def upsert(self, payload, on_conflict: Optional[str] = None, ignore_duplicates: bool = False):
        self.op = "upsert"
        self.payload = payload
        self.on_conflict = on_conflict
        self.ignore_duplicates = ignore_duplicates
        return self

    def update(self, payload: dict):
        self.op = "update"
        self.payload = payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    # Filters

    def eq(self, column: str, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column: str, value):
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column: str, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def contains(self, column: str, values):
        if isinstance(values, dict):
            expected = dict(values)
            self.filters.append(lambda row: isinstance(row.get(column), dict) and all(
                row[column].get(k) == v for k, v in expected.items()
            ))
            return self
        values = list(values)
        self.filters.append(lambda row: all(v in (row.get(column) or []) for v in values))
        return self

    def ilike(self, column: str, pattern: str):
        regex = _like(pattern)
        self.filters.append(lambda row: row.get(column) is not None and bool(regex.match(str(row.get(column)))))
        return self

    def lte(self, column: str, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) <= value)
        return self

    def lt(self, column: str, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) < value)
        return self

    def order(self, column: str, desc: bool = False):
        self.order_by = (column, desc)
        return self

    def limit(self, count: int):
        self.limit_to = count
        return self

    # Execution

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self.filters)

    def _project(self, row: dict) -> dict:
        if self.columns.strip() == "*":
            return copy.deepcopy(row)
        names = [c.strip() for c in self.columns.split(",") if c.strip()]
        return {name: copy.deepcopy(row[name]) for name in names if name in row}

    def execute(self) -> FakeResult:
        self.db.calls.append((self.table, self.op))
        self.db.check_failure(self.table, self.op, self.payload)
        rows = self.db.tables.setdefault(self.table, [])

        if self.op == "select":
            selected = [r for r in rows if self._matches(r)]
            if self.order_by:
                column, desc = self.order_by
                selected.sort(key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
            if self.limit_to is not None:
                selected = selected[:self.limit_to]
            return FakeResult([self._project(r) for r in selected])

        if self.op == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for item in payload:
                row = self.db.with_defaults(self.table, item)
                self.db.check_unique(self.table, row)
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return FakeResult(inserted)

        if self.op == "upsert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            keys = [k.strip() for k in (self.on_conflict or "id").split(",")]
            written = []
            for item in payload:
                existing = next(
                    (r for r in rows if all(r.get(k) == item.get(k) for k in keys)), None
                )
                if existing is not None:
                    if not self.ignore_duplicates:
                        existing.update(copy.deepcopy(item))
                        written.append(copy.deepcopy(existing))
                    continue
                row = self.db.with_defaults(self.table, item)
                rows.append(row)
                written.append(copy.deepcopy(row))
            return FakeResult(written)

        if self.op == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self.payload))
                    updated.append(copy.deepcopy(row))
            return FakeResult(updated)

        if self.op == "delete":
            removed = [r for r in rows if self._matches(r)]
            self.db.tables[self.table] = [r for r in rows if not self._matches(r)]
            return FakeResult(removed)

        raise ValueError(f"Unsupported operation {self.op}")


class FakeSupabase:
    UNIQUE = {
        "profile_group_members": ("group_id", "user_id"),
    }

    def __init__(self):
        self.tables: Dict[str, List[dict]] = {}
        self.calls: List[tuple] = []
        self._failures: List[dict] = []
        self._counter = 0

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    # Test helpers

    def seed(self, table: str, *rows: dict) -> List[dict]:
        seeded = [self.with_defaults(table, row) for row in rows]
        self.tables.setdefault(table, []).extend(seeded)
        return seeded

    def rows(self, table: str, **filters) -> List[dict]:
        return [
            r for r in self.tables.get(table, [])
            if all(r.get(k) == v for k, v in filters.items())
        ]

    def fail(self, table: str, op: str, times: Optional[int] = None, when: Optional[Callable[[Any], bool]] = None, message: str = "store unavailable"):
        """Make (table, op) raise FakeStoreError; times=None fails forever"""
        self._failures.append({"table": table, "op": op, "times": times, "when": when, "message": message})

    def clear_failures(self):
        self._failures = []

    def check_failure(self, table: str, op: str, payload: Any) -> None:
        for failure in self._failures:
            if failure["table"] != table or failure["op"] != op:
                continue
            if failure["when"] is not None and not failure["when"](payload):
                continue
            if failure["times"] is not None:
                if failure["times"] <= 0:
                    continue
                failure["times"] -= 1
            raise FakeStoreError(failure["message"])

    def check_unique(self, table: str, row: dict) -> None:
        keys = self.UNIQUE.get(table)
        if not keys:
            return
        for existing in self.tables.get(table, []):
            if all(existing.get(k) == row.get(k) for k in keys):
                raise FakeStoreError(
                    f'duplicate key value violates unique constraint "{table}_unique"', code="23505"
                )

    def with_defaults(self, table: str, item: dict) -> dict:
        self._counter += 1
        row = copy.deepcopy(item)
        row.setdefault("id", str(uuid.uuid4()))
        # Monotonic timestamps keep "newest first" deterministic within a test
        row.setdefault(
            "created_at",
            datetime(2026, 1, 1, tzinfo=timezone.utc).replace(microsecond=self._counter % 1000000).isoformat(),
        )
        return row
