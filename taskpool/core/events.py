# taskpool/core/events.py
import logging
from typing import Callable, List, Optional, Tuple, Union

from pydantic import BaseModel

logger = logging.getLogger("uvicorn.error")


class TaskAssigned(BaseModel):
    issue_id: str
    repo_fullname: str
    provider: str
    contributor: str


class TaskUnassigned(BaseModel):
    issue_id: str
    repo_fullname: str
    provider: str
    previous_assignee: Optional[str] = None


class InvoicePaid(BaseModel):
    invoice_id: int
    transaction_id: str


class ContractRemoved(BaseModel):
    contract_id: Tuple[str, str, str, str]


Event = Union[TaskAssigned, TaskUnassigned, InvoicePaid, ContractRemoved]


class EventBus:
    """
    Fan-out of domain events to the host application.
    Handlers run synchronously after the emitting transaction committed.
    """

    def __init__(self):
        self._handlers: List[Callable[[Event], None]] = []

    def subscribe(self, handler: Callable[[Event], None]) -> None:
        self._handlers.append(handler)

    def publish(self, event: Event) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                # a broken subscriber must not undo committed work
                logger.exception("Event handler failed for %s", type(event).__name__)
