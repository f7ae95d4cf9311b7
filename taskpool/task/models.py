# taskpool/task/models.py
from enum import Enum as _PyEnum
import sqlalchemy as _sql
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

import taskpool.core.db.session as _database


class TaskState(str, _PyEnum):
    open = "Open"
    assigned = "Assigned"
    closed = "Closed"


class ResignationReason(str, _PyEnum):
    manual = "MANUAL"
    deadline = "DEADLINE"


class Task(_database.Base):
    __tablename__ = "tasks"
    __table_args__ = (
        _sql.ForeignKeyConstraint(["repo_fullname", "provider"], ["projects.repo_fullname", "projects.provider"]),
        _sql.Index("ix_tasks_assignee", "repo_fullname", "provider", "assignee"),
    )

    issue_id = _sql.Column(_sql.String(50), primary_key=True)
    repo_fullname = _sql.Column(_sql.String(255), primary_key=True)
    provider = _sql.Column(_sql.String(20), primary_key=True)

    role = _sql.Column(_sql.String(10), nullable=False)
    estimation_minutes = _sql.Column(_sql.Integer, nullable=False)
    assignee = _sql.Column(_sql.String(100), nullable=True)
    assignment_date = _sql.Column(_sql.DateTime, nullable=True)
    deadline = _sql.Column(_sql.DateTime, nullable=True)
    closed_at = _sql.Column(_sql.DateTime, nullable=True)

    created_at = _sql.Column(_sql.DateTime, server_default=func.now(), nullable=False)

    project = relationship("Project", foreign_keys=[repo_fullname, provider], viewonly=True)
    resignations = relationship("Resignation", back_populates="task", cascade="all, delete-orphan")

    @property
    def state(self) -> TaskState:
        if self.closed_at is not None:
            return TaskState.closed
        if self.assignee is not None:
            return TaskState.assigned
        return TaskState.open

    @property
    def contract_id(self):
        """ContractId this task bills to, None while unassigned."""
        from taskpool.contract.models import ContractId
        if self.assignee is None:
            return None
        return ContractId(self.repo_fullname, self.assignee, self.provider, self.role)

    def contract(self):
        if self.assignee is None:
            return None
        from taskpool.core.storage import Storage
        return Storage.of(self).contracts().get_by_id(self.contract_id)

    def __eq__(self, other):
        return isinstance(other, Task) and (self.issue_id, self.repo_fullname, self.provider) == (other.issue_id, other.repo_fullname, other.provider)

    def __hash__(self):
        return hash((self.issue_id, self.repo_fullname, self.provider))

    def __repr__(self):
        return f"Task(#{self.issue_id} {self.repo_fullname}@{self.provider})"


class Resignation(_database.Base):
    __tablename__ = "resignations"
    __table_args__ = (
        _sql.ForeignKeyConstraint(
            ["issue_id", "repo_fullname", "provider"],
            ["tasks.issue_id", "tasks.repo_fullname", "tasks.provider"],
        ),
    )

    id = _sql.Column(_sql.Integer, primary_key=True, autoincrement=True)
    issue_id = _sql.Column(_sql.String(50), nullable=False)
    repo_fullname = _sql.Column(_sql.String(255), nullable=False)
    provider = _sql.Column(_sql.String(20), nullable=False)
    username = _sql.Column(_sql.String(100), nullable=False)
    reason = _sql.Column(_sql.String(20), default=ResignationReason.manual.value, nullable=False)
    timestamp = _sql.Column(_sql.DateTime, nullable=False)

    task = relationship("Task", back_populates="resignations")
