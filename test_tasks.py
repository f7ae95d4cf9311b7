import datetime

import pytest

from conftest import add_contributor, add_task
from taskpool.core.errors import InvalidState, NoSuchContract, Permanent, Transient
from taskpool.core.events import TaskAssigned, TaskUnassigned
from taskpool.provider.client import IssueSnapshot, ProviderClient
from taskpool.provider.labels import estimation_from_labels, role_from_labels
from taskpool.task.models import ResignationReason, TaskState
from taskpool.task.service import (
    assign,
    assign_unassigned,
    on_closed,
    overdue,
    reassign_overdue,
    register_and_assign,
    register_issue,
    resign,
    unassign,
    update_estimation,
)


class RecordingClient(ProviderClient):
    name = "github"

    def __init__(self):
        super().__init__("token")
        self.calls = []

    def issue(self, repo, issue_id):
        return IssueSnapshot(id=issue_id)

    def assign(self, repo, issue_id, username):
        self.calls.append(("assign", issue_id, username))

    def unassign(self, repo, issue_id, username):
        self.calls.append(("unassign", issue_id, username))

    def comment(self, repo, issue_id, body):
        self.calls.append(("comment", issue_id, body))

    def close(self, repo, issue_id):
        self.calls.append(("close", issue_id))

    def reopen(self, repo, issue_id):
        self.calls.append(("reopen", issue_id))


class RefusingClient(RecordingClient):
    """Tracker that rejects every change to one issue."""

    def __init__(self, refused):
        super().__init__()
        self.refused = refused

    def assign(self, repo, issue_id, username):
        if issue_id == self.refused:
            raise Permanent(f"Issue #{issue_id} is locked.")
        super().assign(repo, issue_id, username)

    def unassign(self, repo, issue_id, username):
        if issue_id == self.refused:
            raise Permanent(f"Issue #{issue_id} is locked.")
        super().unassign(repo, issue_id, username)


def test_role_and_estimation_labels():
    assert role_from_labels(["bug", "QA"]) == "QA"
    assert role_from_labels(["bug", "qa"]) == "DEV"
    assert role_from_labels([]) == "DEV"
    assert estimation_from_labels(["30m"]) == 30
    assert estimation_from_labels(["feature", "90 min"]) == 90
    assert estimation_from_labels(["2h"]) == 120
    assert estimation_from_labels(["v2"]) is None


def test_register_issue(storage, project):
    task = register_issue(storage, project, IssueSnapshot(id="12", title="Fix", labels=["REV", "2h"]))
    assert task.role == "REV"
    assert task.estimation_minutes == 120
    assert task.assignee is None
    assert task.state == TaskState.open

    again = register_issue(storage, project, IssueSnapshot(id="12", labels=["DEV"]))
    assert again == task
    assert again.role == "REV"


def test_register_issue_defaults_and_clamps(storage, project):
    plain = register_issue(storage, project, IssueSnapshot(id="1"))
    assert plain.role == "DEV"
    assert plain.estimation_minutes == project.min_estimation

    huge = register_issue(storage, project, IssueSnapshot(id="2", labels=["40h"]))
    assert huge.estimation_minutes == project.max_estimation

    tiny = register_issue(storage, project, IssueSnapshot(id="3", labels=["5m"]))
    assert tiny.estimation_minutes == project.min_estimation


def test_assign_stamps_deadline(storage, project, events, now):
    mihai = add_contributor(storage, project, "mihai")
    task = add_task(storage, project, "1")
    assign(storage, task, mihai, deadline_days=3, now=now)

    assert task.assignee == "mihai"
    assert task.assignment_date == now
    assert task.deadline == now + datetime.timedelta(days=3)
    assert task.state == TaskState.assigned
    assert task.contract().username == "mihai"
    assert TaskAssigned(issue_id="1", repo_fullname="john/test", provider="github", contributor="mihai") in events.received


def test_assign_uses_project_deadline(storage, project, now):
    mihai = add_contributor(storage, project, "mihai")
    task = add_task(storage, project, "1")
    assign(storage, task, mihai, now=now)
    assert task.deadline == now + datetime.timedelta(days=project.deadline_days)


def test_assign_requires_matching_contract(storage, project, events, now):
    mary = add_contributor(storage, project, "mary", roles=("QA",))
    task = add_task(storage, project, "1", role="DEV")
    with pytest.raises(NoSuchContract):
        assign(storage, task, mary, now=now)
    assert task.assignee is None
    assert events.received == []


def test_unassign(storage, project, events, now):
    mihai = add_contributor(storage, project, "mihai")
    task = add_task(storage, project, "1")
    assign(storage, task, mihai, now=now)
    unassign(storage, task)

    assert task.assignee is None
    assert task.assignment_date is None
    assert task.deadline is None
    assert events.received[-1] == TaskUnassigned(
        issue_id="1", repo_fullname="john/test", provider="github", previous_assignee="mihai"
    )
    # idempotent
    unassign(storage, task)
    assert len(events.received) == 2


def test_resign_records_reason(storage, project, now):
    mihai = add_contributor(storage, project, "mihai")
    task = add_task(storage, project, "1")
    assign(storage, task, mihai, now=now)
    resign(storage, task, now=now)

    assert task.assignee is None
    assert [(r.username, r.reason) for r in task.resignations] == [("mihai", ResignationReason.manual.value)]
    with pytest.raises(InvalidState):
        resign(storage, task, now=now)


def test_update_estimation(storage, project, now):
    mihai = add_contributor(storage, project, "mihai")
    task = add_task(storage, project, "1")
    assert update_estimation(storage, task, 90, now=now).estimation_minutes == 90
    assert update_estimation(storage, task, 10000, now=now).estimation_minutes == project.max_estimation

    assign(storage, task, mihai, deadline_days=1, now=now)
    assert update_estimation(storage, task, 120, now=now + datetime.timedelta(hours=2)).estimation_minutes == 120
    with pytest.raises(InvalidState):
        update_estimation(storage, task, 60, now=now + datetime.timedelta(days=2))
    assert task.estimation_minutes == 120


def test_closing_unassigned_task_bills_nothing(storage, project, now):
    task = add_task(storage, project, "1")
    assert on_closed(storage, task, now=now) is None
    assert task.state == TaskState.closed
    assert len(storage.invoices()) == 0


def test_closing_is_idempotent(storage, project, wallet, now):
    mihai = add_contributor(storage, project, "mihai", hourly_rate=6000)
    task = add_task(storage, project, "1", estimation=30)
    assign(storage, task, mihai, now=now)
    assert on_closed(storage, task, now=now) is not None
    assert on_closed(storage, task, now=now) is None
    invoice = storage.invoices().of_contract(task.contract_id).active()
    assert len(invoice.tasks) == 1


def test_closed_task_is_terminal(storage, project, now):
    mihai = add_contributor(storage, project, "mihai")
    task = add_task(storage, project, "1")
    on_closed(storage, task, now=now)
    with pytest.raises(InvalidState):
        assign(storage, task, mihai, now=now)
    with pytest.raises(InvalidState):
        update_estimation(storage, task, 90, now=now)
    assert register_issue(storage, project, IssueSnapshot(id="1")).state == TaskState.closed
    assert list(project.tasks()) == []


def test_overdue(storage, project, now):
    mihai = add_contributor(storage, project, "mihai")
    late = add_task(storage, project, "1")
    fine = add_task(storage, project, "2")
    add_task(storage, project, "3")
    assign(storage, late, mihai, deadline_days=1, now=now)
    assign(storage, fine, mihai, deadline_days=5, now=now)

    later = now + datetime.timedelta(days=2)
    assert list(overdue(storage, later)) == [late]
    assert list(overdue(storage, now)) == []


def test_reassign_overdue(storage, project, events, now):
    mihai = add_contributor(storage, project, "mihai")
    add_contributor(storage, project, "vlad")
    task = add_task(storage, project, "1")
    assign(storage, task, mihai, deadline_days=1, now=now)
    client = RecordingClient()

    later = now + datetime.timedelta(days=2)
    moved = reassign_overdue(storage, later, client=client)

    assert moved == [(task, "vlad")]
    assert task.assignee == "vlad"
    assert task.deadline == later + datetime.timedelta(days=project.deadline_days)
    assert [(r.username, r.reason) for r in task.resignations] == [("mihai", ResignationReason.deadline.value)]
    assert client.calls == [("unassign", "1", "mihai"), ("assign", "1", "vlad")]
    assert list(overdue(storage, later)) == []


def test_reassign_overdue_without_replacement(storage, project, now):
    mihai = add_contributor(storage, project, "mihai")
    task = add_task(storage, project, "1")
    assign(storage, task, mihai, deadline_days=1, now=now)

    moved = reassign_overdue(storage, now + datetime.timedelta(days=2))
    assert moved == [(task, None)]
    assert task.state == TaskState.open


def test_assign_unassigned(storage, project, now):
    add_contributor(storage, project, "mihai")
    add_contributor(storage, project, "vlad")
    add_contributor(storage, project, "mary", roles=("QA",))
    for issue in ("1", "2", "3"):
        add_task(storage, project, issue)
    orphan = add_task(storage, project, "4", role="PO")

    assigned = assign_unassigned(storage, project, now=now)
    assert [t.assignee for t in assigned] == ["mihai", "vlad", "mihai"]
    assert orphan.assignee is None
    assert list(project.tasks().unassigned()) == [orphan]


def test_register_and_assign(storage, project, now):
    add_contributor(storage, project, "mihai")
    task = register_and_assign(storage, project, IssueSnapshot(id="9", labels=["DEV"]), now=now)
    assert task.assignee == "mihai"
    assert task.deadline == now + datetime.timedelta(days=project.deadline_days)


def test_reassign_overdue_survives_tracker_refusal(storage, project, now):
    mihai = add_contributor(storage, project, "mihai")
    add_contributor(storage, project, "vlad")
    first = add_task(storage, project, "1")
    second = add_task(storage, project, "2")
    assign(storage, first, mihai, deadline_days=1, now=now)
    assign(storage, second, mihai, deadline_days=1, now=now)
    client = RefusingClient("1")

    moved = reassign_overdue(storage, now + datetime.timedelta(days=2), client=client)

    assert [(t.issue_id, assignee) for t, assignee in moved] == [("1", "vlad"), ("2", "vlad")]
    assert first.assignee == "vlad"
    assert second.assignee == "vlad"
    assert client.calls == [("unassign", "2", "mihai"), ("assign", "2", "vlad")]


def test_assign_unassigned_survives_tracker_refusal(storage, project, now):
    add_contributor(storage, project, "mihai")
    for issue in ("1", "2"):
        add_task(storage, project, issue)
    client = RefusingClient("1")

    assigned = assign_unassigned(storage, project, now=now, client=client)

    assert [t.issue_id for t in assigned] == ["1", "2"]
    assert client.calls == [("assign", "2", "mihai")]


def test_expired_deadline_leaves_task_unassigned(storage, project, events, now, expiring_deadline):
    mihai = add_contributor(storage, project, "mihai")
    task = add_task(storage, project, "1")
    with pytest.raises(Transient):
        assign(storage, task, mihai, now=now, deadline=expiring_deadline)
    assert task.assignee is None
    assert task.deadline is None
    assert events.received == []


def test_expired_deadline_leaves_task_open_and_unbilled(storage, project, wallet, now, expiring_deadline):
    mihai = add_contributor(storage, project, "mihai", hourly_rate=6000)
    task = add_task(storage, project, "1")
    assign(storage, task, mihai, now=now)
    with pytest.raises(Transient):
        on_closed(storage, task, now=now, deadline=expiring_deadline)
    assert task.state != TaskState.closed
    assert task.closed_at is None
    assert len(storage.invoices().of_contract(task.contract_id)) == 0
