"""
Issue tracker capability. Concrete clients (GitHub, GitLab) live outside this
package; the engine only talks to this interface.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel, Field


class IssueSnapshot(BaseModel):
    id: str
    title: str = ""
    body: Optional[str] = None
    labels: List[str] = Field(default_factory=list)
    assignee: Optional[str] = None
    state: str = "open"

    @property
    def is_closed(self) -> bool:
        return self.state.lower() == "closed"


class ProviderClient(ABC):
    """
    One client per provider, authenticated by the token given at construction.
    Implementations raise Transient for timeouts / 5xx and Permanent for
    authoritative refusals (401, 404).
    """

    name: str = ""

    def __init__(self, token: str):
        self.token = token

    @abstractmethod
    def issue(self, repo: str, issue_id: str) -> IssueSnapshot:
        ...

    @abstractmethod
    def assign(self, repo: str, issue_id: str, username: str) -> None:
        ...

    @abstractmethod
    def unassign(self, repo: str, issue_id: str, username: str) -> None:
        ...

    @abstractmethod
    def comment(self, repo: str, issue_id: str, body: str) -> None:
        ...

    @abstractmethod
    def close(self, repo: str, issue_id: str) -> None:
        ...

    @abstractmethod
    def reopen(self, repo: str, issue_id: str) -> None:
        ...
