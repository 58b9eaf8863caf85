"""
In-memory stand-in for the Supabase client: enough of the PostgREST query
builder for the routers (filters, ordering, embeds, writes).
"""
from __future__ import annotations

import copy
import re
from datetime import datetime
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError

EMBED_RE = re.compile(r"(\w+):(\w+)\(")


def _coerce(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.action = "select"
        self.payload: Any = None
        self.embeds: List[tuple] = []
        self.filters: List = []
        self.order_by: List[tuple] = []
        self.limit_n: Optional[int] = None
        self.on_conflict: Optional[str] = None

    # building
    def select(self, columns: str = "*", **kwargs):
        self.embeds = EMBED_RE.findall(columns)
        return self

    def insert(self, rows, **kwargs):
        self.action, self.payload = "insert", rows
        return self

    def upsert(self, rows, on_conflict: str = "id", **kwargs):
        self.action, self.payload, self.on_conflict = "upsert", rows, on_conflict
        return self

    def update(self, values, **kwargs):
        self.action, self.payload = "update", values
        return self

    def delete(self, **kwargs):
        self.action = "delete"
        return self

    def _filter(self, fn):
        self.filters.append(fn)
        return self

    def eq(self, col, value):
        return self._filter(lambda r: r.get(col) == value)

    def neq(self, col, value):
        return self._filter(lambda r: r.get(col) != value)

    def gte(self, col, value):
        return self._filter(lambda r: r.get(col) is not None and _coerce(r[col]) >= _coerce(value))

    def gt(self, col, value):
        return self._filter(lambda r: r.get(col) is not None and _coerce(r[col]) > _coerce(value))

    def lte(self, col, value):
        return self._filter(lambda r: r.get(col) is not None and _coerce(r[col]) <= _coerce(value))

    def lt(self, col, value):
        return self._filter(lambda r: r.get(col) is not None and _coerce(r[col]) < _coerce(value))

    def or_(self, expression: str):
        clauses = []
        for part in expression.split(","):
            col, op, pattern = part.split(".", 2)
            assert op == "ilike"
            clauses.append((col, pattern.strip("%").lower()))
        return self._filter(lambda r: any(term in str(r.get(col) or "").lower() for col, term in clauses))

    def order(self, col, desc: bool = False, **kwargs):
        self.order_by.append((col, desc))
        return self

    def limit(self, n: int):
        self.limit_n = n
        return self

    # running
    def _matches(self, row) -> bool:
        return all(f(row) for f in self.filters)

    def _embed(self, row):
        out = copy.deepcopy(row)
        for alias, table in self.embeds:
            fk = out.get(f"{alias}_id")
            out[alias] = next((copy.deepcopy(r) for r in self.db.tables.get(table, []) if r["id"] == fk), None)
        return out

    def execute(self):
        self.db.calls.append((self.table_name, self.action))
        error = self.db.errors.pop((self.table_name, self.action), None)
        if error:
            raise APIError(error)
        rows = self.db.tables.setdefault(self.table_name, [])

        if self.action in ("insert", "upsert"):
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            out = []
            for item in items:
                item = copy.deepcopy(item)
                if self.action == "upsert":
                    key = self.on_conflict
                    existing = next((r for r in rows if r.get(key) == item.get(key)), None)
                    if existing is not None:
                        existing.update(item)
                        out.append(copy.deepcopy(existing))
                        continue
                if "id" not in item and self.table_name != "google_tokens":
                    item["id"] = self.db.next_id(self.table_name)
                rows.append(item)
                out.append(copy.deepcopy(item))
            return SimpleNamespace(data=out)

        matched = [r for r in rows if self._matches(r)]
        if self.action == "update":
            for r in matched:
                r.update(copy.deepcopy(self.payload))
            return SimpleNamespace(data=[copy.deepcopy(r) for r in matched])
        if self.action == "delete":
            self.db.tables[self.table_name] = [r for r in rows if not self._matches(r)]
            return SimpleNamespace(data=[copy.deepcopy(r) for r in matched])

        for col, desc in reversed(self.order_by):
            matched.sort(key=lambda r: (r.get(col) is None, _coerce(r.get(col)) if r.get(col) is not None else 0), reverse=desc)
        if self.limit_n is not None:
            matched = matched[: self.limit_n]
        return SimpleNamespace(data=[self._embed(r) for r in matched])


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.errors: Dict[tuple, Dict[str, str]] = {}
        self.calls: List[tuple] = []
        self._ids: Dict[str, int] = {}

    def next_id(self, table: str) -> int:
        current = max([r.get("id", 0) for r in self.tables.get(table, [])] + [self._ids.get(table, 0)])
        self._ids[table] = current + 1
        return current + 1

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def seed(self, table: str, *rows: Dict[str, Any]) -> None:
        self.tables.setdefault(table, []).extend(copy.deepcopy(list(rows)))

    def fail_next(self, table: str, action: str, code: str, message: str = "boom") -> None:
        self.errors[(table, action)] = {"message": message, "code": code, "hint": None, "details": None}
