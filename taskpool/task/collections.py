# taskpool/task/collections.py
import datetime
from typing import Optional

from taskpool.core.collections import Collection
from taskpool.core.errors import AlreadyExists, InvalidArgument, ReferencedEntityMissing
from taskpool.contract.models import ContractId, ROLES
from taskpool.task.models import Task


def _open(query):
    return query.filter(Task.closed_at.is_(None))


class Tasks(Collection[Task]):

    def __init__(self, storage):
        super().__init__(
            storage,
            lambda: _open(storage.db.query(Task)).order_by(Task.provider, Task.repo_fullname, Task.created_at, Task.issue_id),
        )

    def get_by_id(self, issue_id: str, repo_fullname: str, provider: str, for_update: bool = False) -> Optional[Task]:
        query = self.storage.db.query(Task).filter(
            Task.issue_id == issue_id, Task.repo_fullname == repo_fullname, Task.provider == provider
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def register(self, repo_fullname: str, provider: str, issue_id: str, role: str, estimation_minutes: int) -> Task:
        if role not in ROLES:
            raise InvalidArgument(f"Unknown role {role}.")
        if estimation_minutes < 0:
            raise InvalidArgument("Estimation cannot be negative.")
        if self.storage.projects().get_by_id(repo_fullname, provider) is None:
            raise ReferencedEntityMissing(f"Project {repo_fullname} ({provider}) is not registered.")
        if self.get_by_id(issue_id, repo_fullname, provider) is not None:
            raise AlreadyExists(f"Task #{issue_id} of {repo_fullname} is already registered.")
        task = Task(
            issue_id=issue_id,
            repo_fullname=repo_fullname,
            provider=provider,
            role=role,
            estimation_minutes=estimation_minutes,
        )
        self.storage.db.add(task)
        self.storage.db.flush()
        return task

    def unassigned(self):
        return Collection(
            self.storage,
            lambda: _open(self.storage.db.query(Task)).filter(Task.assignee.is_(None)).order_by(Task.created_at, Task.issue_id),
        )

    def overdue(self, now: datetime.datetime):
        """Assigned, open tasks whose deadline is behind now."""
        return Collection(
            self.storage,
            lambda: _open(self.storage.db.query(Task))
            .filter(Task.assignee.isnot(None), Task.deadline.isnot(None), Task.deadline < now)
            .order_by(Task.deadline, Task.issue_id),
        )

    def of_project(self, repo_fullname: str, provider: str) -> "ProjectTasks":
        return ProjectTasks(self.storage, repo_fullname, provider)

    def of_contributor(self, username: str, provider: str) -> "ContributorTasks":
        return ContributorTasks(self.storage, username, provider)

    def of_contract(self, contract_id: ContractId) -> "ContractTasks":
        return ContractTasks(self.storage, contract_id)


class ProjectTasks(Collection[Task]):

    def __init__(self, storage, repo_fullname: str, provider: str):
        super().__init__(
            storage,
            lambda: _open(storage.db.query(Task))
            .filter(Task.repo_fullname == repo_fullname, Task.provider == provider)
            .order_by(Task.created_at, Task.issue_id),
        )
        self.repo_fullname = repo_fullname
        self.provider = provider

    def of_project(self, repo_fullname: str, provider: str) -> "ProjectTasks":
        return self._check_scope((self.repo_fullname, self.provider), (repo_fullname, provider), "tasks")

    def get_by_id(self, issue_id: str) -> Optional[Task]:
        return self.storage.tasks().get_by_id(issue_id, self.repo_fullname, self.provider)

    def unassigned(self):
        return [t for t in self if t.assignee is None]


class ContributorTasks(Collection[Task]):
    """Open tasks currently assigned to a contributor, across projects."""

    def __init__(self, storage, username: str, provider: str):
        super().__init__(
            storage,
            lambda: _open(storage.db.query(Task))
            .filter(Task.assignee == username, Task.provider == provider)
            .order_by(Task.deadline, Task.issue_id),
        )
        self.username = username
        self.provider = provider

    def of_contributor(self, username: str, provider: str) -> "ContributorTasks":
        return self._check_scope((self.username, self.provider), (username, provider), "tasks")


class ContractTasks(Collection[Task]):
    """Open tasks assigned under one contract."""

    def __init__(self, storage, contract_id: ContractId):
        super().__init__(
            storage,
            lambda: _open(storage.db.query(Task))
            .filter(
                Task.repo_fullname == contract_id.repo_fullname,
                Task.assignee == contract_id.username,
                Task.provider == contract_id.provider,
                Task.role == contract_id.role,
            )
            .order_by(Task.deadline, Task.issue_id),
        )
        self.contract_id = ContractId(*contract_id)

    def of_contract(self, contract_id: ContractId) -> "ContractTasks":
        return self._check_scope(self.contract_id, contract_id, "tasks")
