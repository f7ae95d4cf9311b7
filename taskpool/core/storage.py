"""
Storage capability: one SQLAlchemy session, the collection views built on
top of it and the transaction boundary every mutation goes through.
"""
import datetime
import logging
from contextlib import contextmanager
from typing import Callable, List, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, object_session

import taskpool.core.db.session as _database
from taskpool.core.errors import InvalidState, Transient
from taskpool.core.events import Event, EventBus
from taskpool.core.helpers import utcnow
from taskpool.core.retry import retry_transient

logger = logging.getLogger("uvicorn.error")

T = TypeVar("T")

bus = EventBus()


class Storage:

    def __init__(self, db: Session, events: Optional[EventBus] = None):
        self.db = db
        self.events = events if events is not None else bus
        self._depth = 0
        self._pending: List[Event] = []
        db.info["storage"] = self

    @staticmethod
    def of(entity) -> "Storage":
        """Storage an entity was loaded through."""
        session = object_session(entity)
        if session is None or "storage" not in session.info:
            raise InvalidState(f"{entity!r} is not attached to a storage.")
        return session.info["storage"]

    # --- Collections ---

    def users(self):
        from taskpool.user.collections import Users
        return Users(self)

    def contributors(self):
        from taskpool.user.collections import Contributors
        return Contributors(self)

    def projects(self):
        from taskpool.project.collections import Projects
        return Projects(self)

    def wallets(self):
        from taskpool.project.collections import Wallets
        return Wallets(self)

    def contracts(self):
        from taskpool.contract.collections import Contracts
        return Contracts(self)

    def tasks(self):
        from taskpool.task.collections import Tasks
        return Tasks(self)

    def invoices(self):
        from taskpool.invoice.collections import Invoices
        return Invoices(self)

    def invoiced_tasks(self):
        from taskpool.invoice.collections import InvoicedTasks
        return InvoicedTasks(self)

    def platform_invoices(self):
        from taskpool.invoice.collections import PlatformInvoices
        return PlatformInvoices(self)

    # --- Transactions ---

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def emit(self, event: Event) -> None:
        """Queue an event; it is published once the enclosing transaction commits."""
        if self._depth:
            self._pending.append(event)
        else:
            self.events.publish(event)

    def with_transaction(
        self,
        fn: Callable[["Storage"], T],
        deadline: Optional[datetime.datetime] = None,
        max_retries: Optional[int] = None,
    ) -> T:
        """
        Run fn atomically: commit on normal return, roll back on error.
        Transient failures re-run fn from scratch with backoff. A nested call
        joins the enclosing transaction; its own deadline still applies and
        overrunning it aborts the whole enclosing unit.
        """
        if self._depth:
            self._check_deadline(deadline, "Deadline exceeded before the nested unit started.")
            result = fn(self)
            self._check_deadline(deadline, "Deadline exceeded inside the nested unit.")
            return result
        return retry_transient(lambda: self._run_once(fn, deadline), max_retries=max_retries, deadline=deadline)

    @staticmethod
    def _check_deadline(deadline, message):
        if deadline is not None and utcnow() >= deadline:
            raise Transient(message)

    def _run_once(self, fn, deadline):
        self._check_deadline(deadline, "Deadline exceeded before the transaction started.")
        self._depth += 1
        try:
            result = fn(self)
            self._check_deadline(deadline, "Deadline exceeded before commit.")
            self.db.commit()
        except (IntegrityError, OperationalError) as e:
            self._abort()
            raise Transient(f"Storage conflict: {e.orig}") from e
        except Exception:
            self._abort()
            raise
        finally:
            self._depth -= 1
        events, self._pending = self._pending, []
        for event in events:
            self.events.publish(event)
        return result

    def _abort(self):
        self.db.rollback()
        self._pending = []

    def close(self):
        self.db.close()


@contextmanager
def open_storage(events: Optional[EventBus] = None):
    db = _database.SessionLocal()
    try:
        yield Storage(db, events)
    finally:
        db.close()


def get_storage():
    with open_storage() as storage:
        yield storage


# Mapped classes must all be registered before the first query. Imported last:
# the domain packages import Storage back while they load.
import taskpool.user.models  # noqa: E402,F401
import taskpool.project.models  # noqa: E402,F401
import taskpool.contract.models  # noqa: E402,F401
import taskpool.task.models  # noqa: E402,F401
import taskpool.invoice.models  # noqa: E402,F401
