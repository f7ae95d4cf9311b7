import datetime

import pytest
import sqlalchemy as _sql
import sqlalchemy.orm as _orm
from sqlalchemy.pool import StaticPool

import taskpool.core.db.session as _database
from taskpool.core.events import EventBus
from taskpool.core.retry import configure_retry
from taskpool.core.storage import Storage
from taskpool.project.service import register_project, register_wallet

configure_retry(backoff_base=0, max_backoff=0)


@pytest.fixture
def engine():
    engine = _sql.create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _database.Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return _orm.sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def events():
    bus = EventBus()
    bus.received = []
    bus.subscribe(bus.received.append)
    return bus


@pytest.fixture
def storage(session_factory, events):
    db = session_factory()
    try:
        yield Storage(db, events)
    finally:
        db.close()


@pytest.fixture
def now():
    return datetime.datetime(2021, 1, 1, 12, 0, 0)


@pytest.fixture
def owner(storage):
    return storage.with_transaction(lambda s: s.users().register("john", "github", "john@example.com"))


@pytest.fixture
def project(storage, owner):
    return register_project(
        storage, owner, "john/test", billing_info="John Ltd.", webhook_token="s3cret", min_estimation=30, max_estimation=480
    )


@pytest.fixture
def wallet(storage, project):
    return register_wallet(storage, project, "FAKE", commission_bp=1000)


def add_contributor(storage, project, username, roles=("DEV",), hourly_rate=0):
    """Contributor with one contract per role on the project."""
    def _run(s):
        contributor = s.contributors().register(username, project.provider)
        for role in roles:
            s.contracts().add(project.repo_fullname, username, project.provider, hourly_rate, role)
        return contributor
    return storage.with_transaction(_run)


def add_task(storage, project, issue_id, role="DEV", estimation=60):
    return storage.with_transaction(
        lambda s: s.tasks().register(project.repo_fullname, project.provider, issue_id, role, estimation)
    )


@pytest.fixture
def expiring_deadline(monkeypatch):
    """
    A deadline that is still ahead when a unit of work starts and behind by
    the time it tries to commit. Retries see it as already passed.
    """
    deadline = datetime.datetime(2030, 1, 1)
    before, after = deadline - datetime.timedelta(minutes=1), deadline + datetime.timedelta(minutes=1)
    readings = iter([before])
    monkeypatch.setattr("taskpool.core.storage.utcnow", lambda: next(readings, after))
    monkeypatch.setattr("taskpool.core.retry.utcnow", lambda: after)
    return deadline
