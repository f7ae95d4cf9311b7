"""
Contributor election: picks who works on a task next.

Hard filters, in order: the candidate holds a contract on the task's project
for the task's role, is not the current assignee, and the contract is not
marked for removal. Among the survivors the pick is deterministic:

  1. candidates under the project's open-task limit (K) before those at or
     over it,
  2. fewest open tasks assigned under the contract,
  3. smallest lifetime revenue on the contract,
  4. username, lexicographically.
"""
import logging
from typing import List, NamedTuple, Optional

from taskpool.core.storage import Storage
from taskpool.contract.models import Contract
from taskpool.task.models import Task
from taskpool.user.models import Contributor

logger = logging.getLogger("uvicorn.error")


class Candidate(NamedTuple):
    over_capacity: bool
    open_tasks: int
    revenue: int
    username: str
    contract: Contract


def candidates(storage: Storage, task: Task, max_open_tasks: Optional[int] = None) -> List[Candidate]:
    """Eligible contracts for the task, best first."""
    if max_open_tasks is None:
        project = storage.projects().get_by_id(task.repo_fullname, task.provider)
        max_open_tasks = project.max_open_tasks if project is not None else None

    found = []
    for contract in storage.contracts().of_project(task.repo_fullname, task.provider).with_role(task.role):
        if task.assignee is not None and contract.username == task.assignee:
            continue
        if contract.marked_for_removal is not None:
            continue
        open_tasks = len(storage.tasks().of_contract(contract.contract_id))
        over = max_open_tasks is not None and open_tasks >= max_open_tasks
        found.append(Candidate(over, open_tasks, contract.revenue, contract.username, contract))
    return sorted(found, key=lambda c: c[:4])


def elect(storage: Storage, task: Task, max_open_tasks: Optional[int] = None) -> Optional[Contributor]:
    """Contributor to assign the task to, or None when nobody qualifies."""
    ranked = candidates(storage, task, max_open_tasks)
    if not ranked:
        logger.info("No contributor eligible for task #%s (%s) in %s", task.issue_id, task.role, task.repo_fullname)
        return None
    return ranked[0].contract.contributor
