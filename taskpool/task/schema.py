from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from taskpool.provider.client import IssueSnapshot
from taskpool.task.models import TaskState


class IssueEvent(BaseModel):
    """Issue webhook payload, normalised by the provider adapter."""
    action: str
    issue: IssueSnapshot


class EstimationUpdate(BaseModel):
    minutes: int = Field(..., ge=0)


class TaskOut(BaseModel):
    issue_id: str
    repo_fullname: str
    provider: str
    role: str
    estimation_minutes: int
    assignee: Optional[str] = None
    assignment_date: Optional[datetime] = None
    deadline: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    state: TaskState

    class Config:
        from_attributes = True


class WebhookResp(BaseModel):
    status: str
    task: Optional[TaskOut] = None
