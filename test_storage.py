import datetime

import pytest
from sqlalchemy import insert

from taskpool.core.errors import InvalidArgument, InvalidState, Transient
from taskpool.core.events import InvoicePaid
from taskpool.core.storage import Storage
from taskpool.user.models import User


def test_commit_on_return(storage, session_factory):
    storage.with_transaction(lambda s: s.users().register("mihai", "github"))
    other = session_factory()
    try:
        assert other.get(User, ("mihai", "github")) is not None
    finally:
        other.close()


def test_rollback_on_error(storage):
    def _fail(s):
        s.users().register("mihai", "github")
        raise InvalidArgument("nope")
    with pytest.raises(InvalidArgument):
        storage.with_transaction(_fail)
    assert storage.users().get_by_id("mihai", "github") is None


def test_nested_transactions_join(storage):
    def _outer(s):
        s.with_transaction(lambda inner: inner.users().register("mihai", "github"))
        raise InvalidState("abort everything")
    with pytest.raises(InvalidState):
        storage.with_transaction(_outer)
    assert storage.users().get_by_id("mihai", "github") is None
    assert not storage.in_transaction


def test_transient_failures_rerun_the_transaction(storage):
    attempts = []

    def _flaky(s):
        attempts.append(1)
        s.users().register(f"user{len(attempts)}", "github")
        if len(attempts) < 3:
            raise Transient("conflict")
        return len(attempts)
    assert storage.with_transaction(_flaky) == 3
    # only the successful attempt is committed
    assert [u.username for u in storage.users()] == ["user3"]


def test_integrity_errors_are_transient(storage):
    storage.with_transaction(lambda s: s.users().register("mihai", "github"))

    def _duplicate(s):
        s.db.execute(insert(User).values(username="mihai", provider="github"))
    with pytest.raises(Transient):
        storage.with_transaction(_duplicate, max_retries=1)


def test_deadline_in_the_past(storage):
    calls = []
    past = datetime.datetime(2000, 1, 1)
    with pytest.raises(Transient):
        storage.with_transaction(lambda s: calls.append(1), deadline=past)
    assert calls == []


def test_nested_deadline_aborts_enclosing_unit(storage):
    past = datetime.datetime(2000, 1, 1)

    def _outer(s):
        s.users().register("john", "github")
        s.with_transaction(lambda inner: inner.users().register("mihai", "github"), deadline=past)
    with pytest.raises(Transient):
        storage.with_transaction(_outer, max_retries=0)
    assert storage.users().get_by_id("john", "github") is None
    assert storage.users().get_by_id("mihai", "github") is None
    assert not storage.in_transaction


def test_nested_deadline_passing_mid_unit(storage, events, expiring_deadline):
    def _outer(s):
        s.emit(InvoicePaid(invoice_id=3, transaction_id="ch_3"))
        s.with_transaction(lambda inner: inner.users().register("mihai", "github"), deadline=expiring_deadline)
    with pytest.raises(Transient):
        storage.with_transaction(_outer, max_retries=0)
    assert storage.users().get_by_id("mihai", "github") is None
    assert events.received == []


def test_deadline_passing_before_commit(storage, expiring_deadline):
    with pytest.raises(Transient):
        storage.with_transaction(lambda s: s.users().register("mihai", "github"), deadline=expiring_deadline)
    assert storage.users().get_by_id("mihai", "github") is None


def test_events_published_after_commit_only(storage, events):
    event = InvoicePaid(invoice_id=1, transaction_id="ch_1")

    def _emit_then_fail(s):
        s.emit(event)
        raise InvalidState("rolled back")
    with pytest.raises(InvalidState):
        storage.with_transaction(_emit_then_fail)
    assert events.received == []

    def _emit(s):
        s.emit(event)
        assert events.received == []
    storage.with_transaction(_emit)
    assert events.received == [event]


def test_failing_subscriber_does_not_break_publishing(storage, events):
    def _broken(event):
        raise RuntimeError("boom")
    events._handlers.insert(0, _broken)
    event = InvoicePaid(invoice_id=2, transaction_id="ch_2")
    storage.with_transaction(lambda s: s.emit(event))
    assert events.received == [event]


def test_entities_know_their_storage(storage):
    user = storage.with_transaction(lambda s: s.users().register("mihai", "github"))
    assert Storage.of(user) is storage
    with pytest.raises(InvalidState):
        Storage.of(User(username="ghost", provider="github"))
