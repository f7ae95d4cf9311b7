# taskpool/task/service.py
import datetime
import logging
from typing import List, Optional, Tuple

from taskpool.core import config
from taskpool.core.errors import InvalidArgument, InvalidState, NoSuchContract, NotFound, TaskpoolError
from taskpool.core.events import TaskAssigned, TaskUnassigned
from taskpool.core.helpers import utcnow
from taskpool.core.retry import retry_transient
from taskpool.core.storage import Storage
from taskpool.contract.models import ContractId
from taskpool.election.service import elect
from taskpool.invoice.commission import CommissionPolicy
from taskpool.invoice.service import invoice_task
from taskpool.project.models import Project
from taskpool.provider.client import IssueSnapshot, ProviderClient
from taskpool.provider.labels import estimation_from_labels, role_from_labels
from taskpool.task.models import Resignation, ResignationReason, Task, TaskState
from taskpool.user.models import Contributor

logger = logging.getLogger("uvicorn.error")


def get_task_or_404(storage: Storage, issue_id: str, repo_fullname: str, provider: str, for_update: bool = False) -> Task:
    task = storage.tasks().get_by_id(issue_id, repo_fullname, provider, for_update=for_update)
    if task is None:
        raise NotFound(f"Task #{issue_id} of {repo_fullname} not found.")
    return task


def _locked(s: Storage, task: Task) -> Task:
    return get_task_or_404(s, task.issue_id, task.repo_fullname, task.provider, for_update=True)


def _clamp(project: Project, minutes: int) -> int:
    low = project.min_estimation if project.min_estimation is not None else config.MIN_ESTIMATION
    high = project.max_estimation if project.max_estimation is not None else config.MAX_ESTIMATION
    return max(low, min(high, minutes))


# --- Registration ---

def _register_issue(s: Storage, project: Project, issue: IssueSnapshot) -> Task:
    existing = s.tasks().get_by_id(issue.id, project.repo_fullname, project.provider)
    if existing is not None:
        return existing
    role = role_from_labels(issue.labels)
    labelled = estimation_from_labels(issue.labels)
    estimation = _clamp(project, labelled if labelled is not None else project.min_estimation)
    task = s.tasks().register(project.repo_fullname, project.provider, issue.id, role, estimation)
    logger.info("Task #%s registered in %s as %s, %s min", issue.id, project.repo_fullname, role, estimation)
    return task


def register_issue(
    storage: Storage, project: Project, issue: IssueSnapshot, deadline: Optional[datetime.datetime] = None
) -> Task:
    """
    Lift a provider issue into a task. The role comes from the issue's role
    label (DEV when there is none), the estimation from an estimation label
    or the project minimum. Registering a known issue returns its task.
    """
    return storage.with_transaction(lambda s: _register_issue(s, project, issue), deadline=deadline)


# --- Assignment ---

def _assign(
    s: Storage, task: Task, contributor: Contributor, deadline_days: Optional[int], now: datetime.datetime
) -> Task:
    task = _locked(s, task)
    if task.state == TaskState.closed:
        raise InvalidState(f"Task #{task.issue_id} is closed.")
    if contributor.provider != task.provider:
        raise NoSuchContract(f"{contributor.username} ({contributor.provider}) has no contract in {task.repo_fullname}.")
    contract_id = ContractId(task.repo_fullname, contributor.username, task.provider, task.role)
    # locking the contract orders this assignment against its removal
    if s.contracts().get_by_id(contract_id, for_update=True) is None:
        raise NoSuchContract(f"{contributor.username} has no {task.role} contract in {task.repo_fullname}.")
    if task.assignee == contributor.username:
        return task

    if deadline_days is None:
        project = task.project
        deadline_days = project.deadline_days if project is not None else config.DEADLINE_DAYS
    task.assignee = contributor.username
    task.assignment_date = now
    task.deadline = now + datetime.timedelta(days=deadline_days)
    s.db.flush()
    s.emit(TaskAssigned(
        issue_id=task.issue_id, repo_fullname=task.repo_fullname, provider=task.provider, contributor=contributor.username
    ))
    logger.info("Task #%s of %s assigned to %s until %s", task.issue_id, task.repo_fullname, contributor.username, task.deadline)
    return task


def assign(
    storage: Storage,
    task: Task,
    contributor: Contributor,
    deadline_days: Optional[int] = None,
    now: Optional[datetime.datetime] = None,
    deadline: Optional[datetime.datetime] = None,
) -> Task:
    """Give the task to the contributor, who must hold a contract for its role."""
    return storage.with_transaction(
        lambda s: _assign(s, task, contributor, deadline_days, now or utcnow()), deadline=deadline
    )


def _unassign(s: Storage, task: Task) -> Task:
    task = _locked(s, task)
    if task.assignee is None or task.state == TaskState.closed:
        return task
    previous = task.assignee
    task.assignee = None
    task.assignment_date = None
    task.deadline = None
    s.db.flush()
    s.emit(TaskUnassigned(
        issue_id=task.issue_id, repo_fullname=task.repo_fullname, provider=task.provider, previous_assignee=previous
    ))
    logger.info("Task #%s of %s unassigned from %s", task.issue_id, task.repo_fullname, previous)
    return task


def unassign(storage: Storage, task: Task, deadline: Optional[datetime.datetime] = None) -> Task:
    return storage.with_transaction(lambda s: _unassign(s, task), deadline=deadline)


def _resign(s: Storage, task: Task, reason: ResignationReason, now: datetime.datetime) -> Task:
    task = _locked(s, task)
    if task.assignee is None:
        raise InvalidState(f"Task #{task.issue_id} has nobody to resign.")
    if task.state == TaskState.closed:
        raise InvalidState(f"Task #{task.issue_id} is closed.")
    task.resignations.append(Resignation(username=task.assignee, reason=ResignationReason(reason).value, timestamp=now))
    return _unassign(s, task)


def resign(
    storage: Storage,
    task: Task,
    reason: ResignationReason = ResignationReason.manual,
    now: Optional[datetime.datetime] = None,
    deadline: Optional[datetime.datetime] = None,
) -> Task:
    """The assignee gives the task up; the resignation is kept on record."""
    return storage.with_transaction(lambda s: _resign(s, task, reason, now or utcnow()), deadline=deadline)


def assign_elected(
    storage: Storage,
    task: Task,
    now: Optional[datetime.datetime] = None,
    deadline: Optional[datetime.datetime] = None,
) -> Optional[Contributor]:
    """Elect and assign in one transaction. Returns the new assignee or None."""
    def _run(s: Storage) -> Optional[Contributor]:
        locked = _locked(s, task)
        if locked.state != TaskState.open:
            return None
        winner = elect(s, locked)
        if winner is not None:
            _assign(s, locked, winner, None, now or utcnow())
        return winner
    return storage.with_transaction(_run, deadline=deadline)


def register_and_assign(
    storage: Storage,
    project: Project,
    issue: IssueSnapshot,
    now: Optional[datetime.datetime] = None,
    deadline: Optional[datetime.datetime] = None,
) -> Task:
    """Register an opened issue and hand it to an elected contributor, atomically."""
    def _run(s: Storage) -> Task:
        task = _register_issue(s, project, issue)
        if task.state == TaskState.open:
            winner = elect(s, task)
            if winner is not None:
                _assign(s, task, winner, None, now or utcnow())
        return task
    return storage.with_transaction(_run, deadline=deadline)


# --- Estimation ---

def update_estimation(
    storage: Storage,
    task: Task,
    minutes: int,
    now: Optional[datetime.datetime] = None,
    deadline: Optional[datetime.datetime] = None,
) -> Task:
    """
    Re-estimate a task. Allowed while it is unassigned or before the
    assignment deadline; the value is clamped to the project range.
    """
    if minutes is None or minutes < 0:
        raise InvalidArgument("Estimation cannot be negative.")

    def _update(s: Storage) -> Task:
        locked = _locked(s, task)
        at = now or utcnow()
        if locked.state == TaskState.closed:
            raise InvalidState(f"Task #{locked.issue_id} is closed.")
        if locked.assignee is not None and locked.deadline is not None and locked.deadline < at:
            raise InvalidState(f"Task #{locked.issue_id} is past its deadline, can't re-estimate it.")
        locked.estimation_minutes = _clamp(locked.project, minutes)
        s.db.flush()
        return locked
    return storage.with_transaction(_update, deadline=deadline)


# --- Closing ---

def on_closed(
    storage: Storage,
    task: Task,
    policy: Optional[CommissionPolicy] = None,
    now: Optional[datetime.datetime] = None,
    deadline: Optional[datetime.datetime] = None,
):
    """
    The provider closed the issue. Assigned tasks are billed to their
    contract's active invoice; returns the InvoicedTask, or None when there
    was nothing to bill. Closing twice changes nothing.
    """
    def _close(s: Storage):
        locked = _locked(s, task)
        if locked.state == TaskState.closed:
            return None
        at = now or utcnow()
        locked.closed_at = at
        s.db.flush()
        logger.info("Task #%s of %s closed", locked.issue_id, locked.repo_fullname)
        if locked.assignee is None:
            return None
        return invoice_task(s, locked, policy, at)
    return storage.with_transaction(_close, deadline=deadline)


# --- Scheduled work ---

def overdue(storage: Storage, now: Optional[datetime.datetime] = None):
    """Assigned open tasks whose deadline is behind now, lazily."""
    return storage.tasks().overdue(now or utcnow())


def reassign_overdue(
    storage: Storage, now: Optional[datetime.datetime] = None, client: Optional[ProviderClient] = None
) -> List[Tuple[Task, Optional[str]]]:
    """
    Take every overdue task from its assignee (recorded as a DEADLINE
    resignation) and hand it to a freshly elected contributor, or leave it
    open when nobody qualifies. Each task is its own transaction; a task that
    fails is logged and skipped.
    """
    at = now or utcnow()
    done = []
    for task in list(overdue(storage, at)):
        def _run(s: Storage, task=task):
            locked = _locked(s, task)
            if locked.assignee is None or locked.deadline is None or locked.deadline >= at:
                return None
            previous = locked.assignee
            winner = elect(s, locked)
            _resign(s, locked, ResignationReason.deadline, at)
            if winner is not None:
                _assign(s, locked, winner, None, at)
            return previous, winner
        try:
            outcome = storage.with_transaction(_run)
        except TaskpoolError as e:
            logger.warning("Could not reassign overdue task #%s of %s: %s", task.issue_id, task.repo_fullname, e.detail)
            continue
        if outcome is None:
            continue
        previous, winner = outcome
        new_assignee = winner.username if winner is not None else None
        logger.info("Overdue task #%s of %s moved from %s to %s", task.issue_id, task.repo_fullname, previous, new_assignee)
        if client is not None:
            _sync_or_warn(client, task, previous, new_assignee)
        done.append((task, new_assignee))
    return done


def assign_unassigned(
    storage: Storage, project: Project, now: Optional[datetime.datetime] = None, client: Optional[ProviderClient] = None
) -> List[Task]:
    """Elect and assign every open, unassigned task of the project. Per-task atomic."""
    assigned = []
    for task in list(storage.tasks().of_project(project.repo_fullname, project.provider).unassigned()):
        try:
            winner = assign_elected(storage, task, now)
        except TaskpoolError as e:
            logger.warning("Could not assign task #%s of %s: %s", task.issue_id, task.repo_fullname, e.detail)
            continue
        if winner is None:
            continue
        if client is not None:
            _sync_or_warn(client, task, None, winner.username)
        assigned.append(task)
    return assigned


def sync_assignment(client: ProviderClient, task: Task, previous: Optional[str], current: Optional[str]) -> None:
    """Mirror a committed assignment change on the issue tracker."""
    if previous is not None and previous != current:
        retry_transient(lambda: client.unassign(task.repo_fullname, task.issue_id, previous))
    if current is not None and previous != current:
        retry_transient(lambda: client.assign(task.repo_fullname, task.issue_id, current))


def _sync_or_warn(client: ProviderClient, task: Task, previous: Optional[str], current: Optional[str]) -> None:
    # the assignment is already committed; the tracker catches up on a later run
    try:
        sync_assignment(client, task, previous, current)
    except TaskpoolError as e:
        logger.warning("Could not sync task #%s of %s with the provider: %s", task.issue_id, task.repo_fullname, e.detail)
