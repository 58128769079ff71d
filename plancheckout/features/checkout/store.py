"""
User store protocol and SQL implementation.

The user record is owned outside this service; checkout only reads a row
by filter and patches a handful of columns on it. Each store instance is
one client (standard or privileged) so callers can order them as write
targets.
"""
from typing import Protocol, Dict, Any, Optional, Sequence
from sqlalchemy import select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from plancheckout.core.database import users


class StoreError(Exception):
    """A user-store read or write failed."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UserStore(Protocol):
    """One client onto the users table."""

    name: str

    def find_one(self, filters: Dict[str, str], columns: Sequence[str]) -> Optional[Dict[str, Any]]:
        """Return the single row matching every filter, or None if none match.

        Raises:
            StoreError: If the read itself fails
        """
        ...

    def update(self, filters: Dict[str, str], patch: Dict[str, Any]) -> None:
        """Apply patch to rows matching every filter.

        Raises:
            StoreError: If the write fails
        """
        ...

    def repair_plan_type(self, user_id: str, plan_type: str) -> None:
        """Force plan_type on a row whose plan_type did not stick.

        Raises:
            StoreError: If the repair fails
        """
        ...


class SqlUserStore:
    """UserStore over SQLAlchemy Core.

    A privileged instance is simply one bound to an engine whose role is
    exempt from row-level security.
    """

    def __init__(self, engine: Engine, name: str = "standard"):
        self.engine = engine
        self.name = name

    def _where(self, stmt, filters: Dict[str, str]):
        for column, value in filters.items():
            stmt = stmt.where(users.c[column] == value)
        return stmt

    def find_one(self, filters: Dict[str, str], columns: Sequence[str]) -> Optional[Dict[str, Any]]:
        stmt = self._where(select(*[users.c[c] for c in columns]), filters).limit(2)
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).fetchall()
        except SQLAlchemyError as e:
            raise StoreError(f"users read failed: {e}")
        if len(rows) != 1:
            return None
        return dict(rows[0]._mapping)

    def update(self, filters: Dict[str, str], patch: Dict[str, Any]) -> None:
        if not filters:
            raise StoreError("refusing unfiltered update on users")
        stmt = self._where(update(users), filters).values(**patch)
        try:
            with self.engine.begin() as conn:
                conn.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError(f"users update failed: {e}")

    def repair_plan_type(self, user_id: str, plan_type: str) -> None:
        self.update({"id": user_id}, {"plan_type": plan_type})
