# core/store.py

"""
Persistence port for the access-control engine.

Two things are required of a backend:
  (a) atomic conditional updates keyed by id + expected field values
      (update_where returns None when the precondition no longer holds)
  (b) unique-constraint enforcement (invitation token, principal email)

SupabaseStore is the production adapter; MemoryStore backs local runs and
the test suite.
"""

import copy
from datetime import datetime
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.errors import extract_supabase_error, handle_supabase_error, is_unique_violation
from core.logging_config import logger
from core.utils import ensure_aware


# Table names
PRINCIPALS = "principals"
PERMISSION_REQUESTS = "permission_requests"
INVITATIONS = "invitations"
AUDIT_LOGS = "audit_logs"

# (table, field) pairs that must be unique
UNIQUE_FIELDS = {
    PRINCIPALS: ("email",),
    INVITATIONS: ("token",),
}

OrderBy = Iterable[Tuple[str, bool]]  # (field, descending)


class UniqueViolation(Exception):
    def __init__(self, table: str, field: str):
        super().__init__(f"Duplicate value for {table}.{field}")
        self.table = table
        self.field = field


class DocumentStore:
    """Interface. Rows are plain JSON-compatible dicts with an "id" key."""

    def get(self, table: str, record_id: str) -> Optional[dict]:
        raise NotImplementedError

    def find_one(self, table: str, filters: Dict[str, Any]) -> Optional[dict]:
        rows = self.find(table, filters, limit=1)
        return rows[0] if rows else None

    def find(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: OrderBy = (),
        limit: Optional[int] = None,
    ) -> List[dict]:
        raise NotImplementedError

    def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        return len(self.find(table, filters))

    def insert(self, table: str, data: dict) -> dict:
        raise NotImplementedError

    def update_where(
        self,
        table: str,
        record_id: str,
        expected: Dict[str, Any],
        changes: Dict[str, Any],
    ) -> Optional[dict]:
        """
        Single write applied only if every `expected` field still matches.
        Returns the updated row, or None if the row is missing or the
        precondition failed.
        """
        raise NotImplementedError

    def ping(self) -> dict:
        return {"status": "ok"}


# ============================================================
# In-memory adapter
# ============================================================
class MemoryStore(DocumentStore):
    """
    Thread-safe in-memory store. Conditional updates are a compare-and-set
    under a single lock.
    """

    def __init__(self):
        self._tables: Dict[str, Dict[str, dict]] = {}
        self._lock = Lock()

    def _table(self, table: str) -> Dict[str, dict]:
        return self._tables.setdefault(table, {})

    @staticmethod
    def _matches(row: dict, filters: Optional[Dict[str, Any]]) -> bool:
        if not filters:
            return True
        return all(row.get(k) == v for k, v in filters.items())

    @staticmethod
    def _sort_value(value):
        # Timestamps compare as instants; whole seconds serialize without a fraction
        if isinstance(value, str):
            try:
                return ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
            except ValueError:
                return value
        return value

    def get(self, table, record_id):
        with self._lock:
            row = self._table(table).get(record_id)
            return copy.deepcopy(row) if row is not None else None

    def find(self, table, filters=None, order_by=(), limit=None):
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._table(table).values() if self._matches(r, filters)]

        # Stable sorts applied from the least significant key
        for field, descending in reversed(list(order_by)):
            rows.sort(key=lambda r: (r.get(field) is None, self._sort_value(r.get(field))), reverse=descending)

        return rows[:limit] if limit is not None else rows

    def insert(self, table, data):
        with self._lock:
            rows = self._table(table)
            for field in UNIQUE_FIELDS.get(table, ()):
                value = data.get(field)
                if value is not None and any(r.get(field) == value for r in rows.values()):
                    raise UniqueViolation(table, field)
            if data["id"] in rows:
                raise UniqueViolation(table, "id")
            rows[data["id"]] = copy.deepcopy(data)
            return copy.deepcopy(data)

    def update_where(self, table, record_id, expected, changes):
        with self._lock:
            rows = self._table(table)
            row = rows.get(record_id)
            if row is None or not self._matches(row, expected):
                return None
            row.update(copy.deepcopy(changes))
            return copy.deepcopy(row)

    def clear(self):
        with self._lock:
            self._tables.clear()

    def ping(self):
        with self._lock:
            return {
                "status": "ok",
                "backend": "memory",
                "tables": {name: len(rows) for name, rows in self._tables.items()},
            }


# ============================================================
# Supabase adapter
# ============================================================
class SupabaseStore(DocumentStore):
    """
    PostgREST-backed store. update_where becomes
        UPDATE ... WHERE id = :id AND <expected fields>
    which Postgres applies atomically.
    Unique constraints are expected on principals.email and invitations.token.
    """

    def __init__(self, client):
        self.client = client

    def get(self, table, record_id):
        try:
            result = (
                self.client.table(table)
                .select("*")
                .eq("id", record_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise handle_supabase_error(e, f"Failed to fetch from {table}")
        return result.data[0] if result.data else None

    def find(self, table, filters=None, order_by=(), limit=None):
        try:
            query = self.client.table(table).select("*")
            for key, val in (filters or {}).items():
                query = query.eq(key, val)
            for field, descending in order_by:
                query = query.order(field, desc=descending)
            if limit is not None:
                query = query.limit(limit)
            result = query.execute()
        except Exception as e:
            raise handle_supabase_error(e, f"Failed to fetch from {table}")
        return result.data or []

    def count(self, table, filters=None):
        try:
            query = self.client.table(table).select("id", count="exact")
            for key, val in (filters or {}).items():
                query = query.eq(key, val)
            result = query.execute()
        except Exception as e:
            raise handle_supabase_error(e, f"Failed to count {table}")
        return result.count or 0

    def insert(self, table, data):
        try:
            result = (
                self.client.table(table)
                .insert(data, returning="representation")
                .execute()
            )
        except Exception as e:
            if is_unique_violation(e):
                detail = extract_supabase_error(e)
                field = next(
                    (f for f in UNIQUE_FIELDS.get(table, ()) if f in detail),
                    "id",
                )
                raise UniqueViolation(table, field)
            raise handle_supabase_error(e, f"Failed to insert into {table}")
        return result.data[0] if result.data else data

    def update_where(self, table, record_id, expected, changes):
        try:
            query = (
                self.client.table(table)
                .update(changes, returning="representation")
                .eq("id", record_id)
            )
            for key, val in expected.items():
                query = query.eq(key, val)
            result = query.execute()
        except Exception as e:
            raise handle_supabase_error(e, f"Failed to update {table}")
        return result.data[0] if result.data else None

    def ping(self):
        results = {}
        for t in (PRINCIPALS, PERMISSION_REQUESTS, INVITATIONS):
            try:
                res = self.client.table(t).select("id").limit(1).execute()
                results[t] = {"status": "ok", "rows_found": len(res.data or [])}
            except Exception as err:
                logger.warning(f"Supabase ping failed for {t}: {err}")
                results[t] = {"status": "error", "detail": str(err)}
        return {"status": "ok", "backend": "supabase", "tables": results}
