"""Account store: the persistence seam the ledger talks through.

Two mutation primitives are offered, matching the two kinds of state an
account carries:

* ``apply_point_delta`` changes ``point_balance`` with one conditional
  UPDATE, so concurrent redemptions can never both spend the same points.
* ``mutate`` loads the account, lets the caller change compound fields
  (score, status, history) and writes back under the ``version_id``
  optimistic lock, retrying a bounded number of times on conflict.

Everything runs inside ``transaction()`` which commits once at the end or
rolls back on any error.
"""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional, Type

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from swm import config
from swm.db import Base

from .errors import (
    AccountNotFound, ConcurrentUpdateError, LedgerTimeout, StoreUnavailable,
    ValidationError,
)
from .models import Account, AccountKind

log = logging.getLogger(__name__)


class AccountStore:
    """SQLAlchemy-backed account and event store."""

    def __init__(self, session_factory: sessionmaker, max_retries: Optional[int] = None):
        self.session_factory = session_factory
        self.max_retries = config.LEDGER_MUTATE_RETRIES if max_retries is None else max_retries

    # --- transactions ---
    @contextmanager
    def transaction(
        self,
        operation: str = "ledger operation",
        timeout: Optional[float] = None,
        deadline: Optional[float] = None,
    ) -> Iterator[Session]:
        """Yield a session; commit on success, roll back on any error.

        ``deadline`` is a ``time.monotonic()`` value. When it has passed by
        the time the body finishes, nothing is committed.
        """
        if deadline is None and timeout is None:
            timeout = config.LEDGER_REQUEST_TIMEOUT
        if deadline is None and timeout is not None:
            deadline = time.monotonic() + timeout
        session = self.session_factory()
        try:
            yield session
            if deadline is not None and time.monotonic() > deadline:
                raise LedgerTimeout(operation, timeout if timeout is not None else 0)
            session.commit()
        except OperationalError as e:
            session.rollback()
            log.error("%s: store error: %s", operation, e)
            raise StoreUnavailable(f"{operation}: store unavailable") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # --- accounts ---
    def create(
        self,
        kind: AccountKind,
        display_name: Optional[str] = None,
        area_id: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> Account:
        account = Account(
            kind=AccountKind(kind),
            display_name=display_name,
            area_id=area_id,
            point_balance=0,
            compliance_score=0,
        )
        if session is not None:
            session.add(account)
            session.flush()
            return account
        with self.transaction("create account") as sess:
            sess.add(account)
        return account

    def get(self, account_id: str, session: Optional[Session] = None) -> Account:
        if session is not None:
            return self._load(session, account_id)
        with self.transaction("get account") as sess:
            return self._load(sess, account_id)

    def _load(self, session: Session, account_id: str) -> Account:
        account = session.get(Account, account_id)
        if account is None:
            raise AccountNotFound(account_id)
        return account

    def mutate(
        self,
        account_id: str,
        update_fn: Callable[[Session, Account], Any],
        operation: str = "mutate account",
        timeout: Optional[float] = None,
    ) -> Any:
        """Apply ``update_fn`` to the freshly loaded account and persist it.

        ``update_fn(session, account)`` may change the account and add
        records to the session; its return value is passed through. A
        concurrent writer makes the version check fail, in which case the
        whole body is re-run against the new state.
        """
        if timeout is None:
            timeout = config.LEDGER_REQUEST_TIMEOUT
        deadline = time.monotonic() + timeout if timeout is not None else None
        attempt = 0
        while True:
            attempt += 1
            try:
                with self.transaction(operation, timeout, deadline) as session:
                    account = self._load(session, account_id)
                    return update_fn(session, account)
            except StaleDataError:
                if attempt >= self.max_retries:
                    log.error("%s: account=%s conflict, giving up after %s attempts",
                              operation, account_id, attempt)
                    raise ConcurrentUpdateError(account_id, attempt)
                log.warning("%s: account=%s conflict, retry %s", operation, account_id, attempt)

    def apply_point_delta(self, session: Session, account_id: str, delta: int) -> Optional[int]:
        """Atomically add ``delta`` to the balance unless it would go negative.

        Returns the new balance, or ``None`` when no row was changed (account
        missing or balance too low). The caller tells the two apart.
        """
        query = session.query(Account).filter(Account.id == account_id)
        if delta < 0:
            query = query.filter(Account.point_balance >= -delta)
        updated = query.update(
            {Account.point_balance: Account.point_balance + delta},
            synchronize_session=False,
        )
        if not updated:
            return None
        return (
            session.query(Account.point_balance)
            .filter(Account.id == account_id)
            .scalar()
        )

    def current_balance(self, session: Session, account_id: str) -> Optional[int]:
        return (
            session.query(Account.point_balance)
            .filter(Account.id == account_id)
            .scalar()
        )

    # --- events ---
    def append_event(self, account_id: str, event: Base, session: Optional[Session] = None) -> Base:
        """Attach ``event`` to ``account_id``. Events are never updated here."""
        if hasattr(event, "violator_account_id"):
            event.violator_account_id = account_id
        else:
            event.account_id = account_id
        if session is not None:
            session.add(event)
            session.flush()
            return event
        with self.transaction("append event") as sess:
            sess.add(event)
        return event

    def query_by_field(self, model: Type[Base], field: str, value: Any) -> List[Any]:
        column = getattr(model, field, None)
        if column is None or not hasattr(column, "property"):
            raise ValidationError(f"{model.__name__} has no field {field!r}", field=field)
        with self.transaction(f"query {model.__tablename__}") as sess:
            return sess.query(model).filter(column == value).all()

    def all(self, model: Type[Base]) -> List[Any]:
        with self.transaction(f"list {model.__tablename__}") as sess:
            return sess.query(model).all()
