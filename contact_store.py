"""SQLite-backed contact store.

Every read hides soft-deleted rows. All SQLite errors surface as
``PersistenceFailure`` so callers only deal with the reconciliation taxonomy.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from typing import Iterable, List, Optional

import structlog

from db_models import Contact, LinkPrecedence
from errors import PersistenceFailure

logger = structlog.get_logger()


def _store_operation(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"{func.__name__} failed: {exc}") from exc

    return wrapper


def _timestamp(value: datetime) -> str:
    # naive UTC in fixed-width text keeps SQL ordering equal to time ordering
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="microseconds")


def _placeholders(values) -> str:
    return ", ".join("?" for _ in values)


class ContactStore:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    @contextmanager
    def transaction(self):
        """Run the enclosed operations as one unit of work.

        BEGIN IMMEDIATE takes the database write lock up front, so concurrent
        reconciliations serialize instead of racing between read and insert.
        """
        try:
            self.conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Could not start transaction: {exc}") from exc

        try:
            yield self
        except BaseException:
            self._rollback()
            raise

        try:
            self.conn.execute("COMMIT")
        except sqlite3.Error as exc:
            self._rollback()
            raise PersistenceFailure(f"Could not commit transaction: {exc}") from exc

    def _rollback(self):
        try:
            self.conn.execute("ROLLBACK")
        except sqlite3.Error as exc:
            logger.warning("Rollback failed", error=str(exc))

    def _select(self, where: str, params) -> List[Contact]:
        cursor = self.conn.execute(
            f"""
            SELECT * FROM Contact
            WHERE deletedAt IS NULL AND ({where})
            ORDER BY createdAt ASC, id ASC
            """,
            tuple(params),
        )
        return [Contact(**dict(row)) for row in cursor.fetchall()]

    @_store_operation
    def find_by_email_or_phone(self, email: Optional[str] = None, phone: Optional[str] = None) -> List[Contact]:
        conditions = []
        params = []
        if email is not None:
            conditions.append("email = ?")
            params.append(email)
        if phone is not None:
            conditions.append("phoneNumber = ?")
            params.append(phone)
        if not conditions:
            return []
        return self._select(" OR ".join(conditions), params)

    @_store_operation
    def find_by_ids_or_linked_id(self, primary_ids: Iterable[int]) -> List[Contact]:
        """Fetch each given primary together with everything linked to it."""
        primary_ids = sorted(set(primary_ids))
        if not primary_ids:
            return []
        marks = _placeholders(primary_ids)
        return self._select(f"id IN ({marks}) OR linkedId IN ({marks})", primary_ids + primary_ids)

    @_store_operation
    def find_by_ids(self, ids: Iterable[int]) -> List[Contact]:
        ids = sorted(set(ids))
        if not ids:
            return []
        return self._select(f"id IN ({_placeholders(ids)})", ids)

    @_store_operation
    def get(self, contact_id: int) -> Optional[Contact]:
        found = self._select("id = ?", (contact_id,))
        return found[0] if found else None

    @_store_operation
    def id_taken(self, contact_id: int) -> bool:
        """True if any row, soft-deleted or not, already uses this id."""
        row = self.conn.execute("SELECT 1 FROM Contact WHERE id = ?", (contact_id,)).fetchone()
        return row is not None

    @_store_operation
    def insert(
        self,
        email: Optional[str],
        phone: Optional[str],
        link_precedence: LinkPrecedence,
        linked_id: Optional[int] = None,
        *,
        contact_id: Optional[int] = None,
        created_at: Optional[datetime] = None,
    ) -> Contact:
        now = _timestamp(datetime.now(timezone.utc))
        created = _timestamp(created_at) if created_at else now

        cursor = self.conn.execute(
            """
            INSERT INTO Contact (id, phoneNumber, email, linkedId, linkPrecedence, createdAt, updatedAt)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (contact_id, phone, email, linked_id, LinkPrecedence(link_precedence).value, created, now),
        )
        return self.get(cursor.lastrowid)

    @_store_operation
    def update(self, contact_id: int, link_precedence: LinkPrecedence, linked_id: Optional[int]) -> None:
        self.conn.execute(
            """
            UPDATE Contact
            SET linkedId = ?, linkPrecedence = ?, updatedAt = ?
            WHERE id = ? AND deletedAt IS NULL
            """,
            (linked_id, LinkPrecedence(link_precedence).value, _timestamp(datetime.now(timezone.utc)), contact_id),
        )
