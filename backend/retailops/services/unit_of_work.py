# Overview: Explicit transaction scopes over an injected SQLAlchemy session.

"""
Unit of Work

WHY: Every mutating core operation must commit all of its row changes
(inventory update, stock movement, order/PO status) together or not at all.
Instead of a module-level client and callback-shaped transactions, callers
begin a TransactionScope from an injected UnitOfWork and pass that scope to
every ledger call made inside it.

CONTRACT:
- begin() returns a fresh scope; the scope is committed or rolled back
  exactly once.
- Used as a context manager, the scope commits on normal exit and rolls back
  when an exception escapes; the exception is re-raised.
- Calling commit()/rollback() on a finished scope raises.
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy.orm import Session, scoped_session


SCOPE_ACTIVE = "ACTIVE"
SCOPE_COMMITTED = "COMMITTED"
SCOPE_ROLLED_BACK = "ROLLED_BACK"


class TransactionScopeError(RuntimeError):
    """Raised when a scope is used after it has been finished."""


class TransactionScope:
    def __init__(self, session: Session):
        self.session = session
        self.state = SCOPE_ACTIVE

    @property
    def is_active(self) -> bool:
        return self.state == SCOPE_ACTIVE

    def _ensure_active(self) -> None:
        if not self.is_active:
            raise TransactionScopeError(f"Transaction scope already {self.state.lower()}")

    def flush(self) -> None:
        self._ensure_active()
        self.session.flush()

    def commit(self) -> None:
        self._ensure_active()
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            self.state = SCOPE_ROLLED_BACK
            raise
        self.state = SCOPE_COMMITTED

    def rollback(self) -> None:
        self._ensure_active()
        self.session.rollback()
        self.state = SCOPE_ROLLED_BACK

    def __enter__(self) -> "TransactionScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if not self.is_active:
            return False
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        return False


class UnitOfWork:
    """
    Factory for transaction scopes.

    session_factory returns the Session to use; under Flask this is the
    request-scoped db.session, in scripts it can be a sessionmaker.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _resolve(self) -> Session:
        session = self._session_factory()
        # Flask-SQLAlchemy hands out a scoped_session registry, not the Session itself
        if isinstance(session, scoped_session):
            session = session()
        return session

    @property
    def session(self) -> Session:
        """Session for read-only queries outside any scope."""
        return self._resolve()

    def begin(self) -> TransactionScope:
        session = self._resolve()
        if session.in_transaction():
            if session.new or session.dirty or session.deleted:
                raise TransactionScopeError("Cannot begin a unit of work over uncommitted changes")
            # Drop the read-only transaction autobegun by earlier queries
            session.rollback()
        return TransactionScope(session)
