# taskpool/task/task.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from taskpool.core.errors import NotFound
from taskpool.core.helpers import tokens_match
from taskpool.core.storage import Storage, get_storage
import taskpool.task.schema as _schemas
import taskpool.task.service as _services

logger = logging.getLogger("uvicorn.error")

router = APIRouter()


def _project_or_404(storage: Storage, owner: str, name: str, provider: str):
    repo_fullname = f"{owner}/{name}"
    project = storage.projects().get_by_id(repo_fullname, provider)
    if project is None:
        raise NotFound(f"Project {repo_fullname} ({provider}) not found.")
    return project


@router.post("/{owner}/{name}/{provider}/webhook", response_model=_schemas.WebhookResp, tags=["TASK API"])
def issue_webhook(
    owner: str,
    name: str,
    provider: str,
    event: _schemas.IssueEvent,
    x_webhook_token: Optional[str] = Header(None),
    storage: Storage = Depends(get_storage),
):
    """
    Issue events from the provider.
    - opened / reopened: register the task and assign an elected contributor.
    - closed: close the task and bill it to the assignee's contract.
    """
    project = _project_or_404(storage, owner, name, provider)
    if not tokens_match(project.webhook_token, x_webhook_token):
        logger.warning("Rejected webhook for %s: bad token", project.repo_fullname)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook token")

    action = event.action.lower()
    if action in ("opened", "reopened"):
        task = _services.register_and_assign(storage, project, event.issue)
        return {"status": "registered", "task": _schemas.TaskOut.model_validate(task)}
    if action == "closed":
        task = storage.tasks().get_by_id(event.issue.id, project.repo_fullname, project.provider)
        if task is None:
            return {"status": "ignored"}
        _services.on_closed(storage, task)
        return {"status": "closed", "task": _schemas.TaskOut.model_validate(task)}
    return {"status": "ignored"}


@router.get("/{owner}/{name}/{provider}/tasks", response_model=List[_schemas.TaskOut], tags=["TASK API"])
def list_open_tasks(owner: str, name: str, provider: str, storage: Storage = Depends(get_storage)):
    project = _project_or_404(storage, owner, name, provider)
    return list(project.tasks())


@router.put("/{owner}/{name}/{provider}/tasks/{issue_id}/estimation", response_model=_schemas.TaskOut, tags=["TASK API"])
def update_estimation(
    owner: str,
    name: str,
    provider: str,
    issue_id: str,
    body: _schemas.EstimationUpdate,
    storage: Storage = Depends(get_storage),
):
    project = _project_or_404(storage, owner, name, provider)
    task = _services.get_task_or_404(storage, issue_id, project.repo_fullname, project.provider)
    return _services.update_estimation(storage, task, body.minutes)
