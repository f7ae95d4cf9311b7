# taskpool/user/collections.py
from typing import Optional

from sqlalchemy import and_

from taskpool.core.collections import Collection
from taskpool.core.errors import InvalidArgument, ScopeMismatch
from taskpool.user.models import User, Contributor


class Users(Collection[User]):

    def __init__(self, storage):
        super().__init__(storage, lambda: storage.db.query(User).order_by(User.provider, User.username))

    def get_by_id(self, username: str, provider: str) -> Optional[User]:
        return self.storage.db.get(User, (username, provider))

    def register(self, username: str, provider: str, email: Optional[str] = None) -> User:
        """Existing user, or a new one. Users never change once created."""
        user = self.get_by_id(username, provider)
        if user is None:
            user = User(username=username, provider=provider, email=email)
            self.storage.db.add(user)
            self.storage.db.flush()
        return user


class Contributors(Collection[Contributor]):

    def __init__(self, storage):
        super().__init__(storage, lambda: storage.db.query(Contributor).order_by(Contributor.provider, Contributor.username))

    def get_by_id(self, username: str, provider: str) -> Optional[Contributor]:
        return self.storage.db.get(Contributor, (username, provider))

    def register(self, username: str, provider: str, billing_info: Optional[str] = None) -> Contributor:
        contributor = self.get_by_id(username, provider)
        if contributor is None:
            contributor = Contributor(username=username, provider=provider, billing_info=billing_info)
            self.storage.db.add(contributor)
            self.storage.db.flush()
        return contributor

    def of_project(self, repo_fullname: str, provider: str) -> "ProjectContributors":
        return ProjectContributors(self.storage, repo_fullname, provider)


class ProjectContributors(Collection[Contributor]):
    """Contributors holding at least one contract in a project."""

    def __init__(self, storage, repo_fullname: str, provider: str):
        from taskpool.contract.models import Contract

        def source():
            return (
                storage.db.query(Contributor)
                .join(Contract, and_(
                    Contract.username == Contributor.username,
                    Contract.provider == Contributor.provider,
                ))
                .filter(Contract.repo_fullname == repo_fullname, Contract.provider == provider)
                .distinct()
                .order_by(Contributor.username)
            )
        super().__init__(storage, source)
        self.repo_fullname = repo_fullname
        self.provider = provider

    def of_project(self, repo_fullname: str, provider: str) -> "ProjectContributors":
        return self._check_scope((self.repo_fullname, self.provider), (repo_fullname, provider), "contributors")

    def get_by_id(self, username: str, provider: str) -> Optional[Contributor]:
        for contributor in self:
            if contributor.username == username and contributor.provider == provider:
                return contributor
        return None

    def register(self, username: str, provider: str) -> Contributor:
        """
        Add a contributor to the project. Newcomers get a DEV contract with
        hourly rate 0; an existing member is returned as is.
        """
        if provider != self.provider:
            raise InvalidArgument(
                f"Contributor must be from {self.provider} to join {self.repo_fullname}, not from {provider}."
            )
        found = self.get_by_id(username, provider)
        if found is not None:
            return found
        from taskpool.contract.models import Role
        contributor = self.storage.contributors().register(username, provider)
        self.storage.contracts().add(self.repo_fullname, username, provider, 0, Role.DEV.value)
        return contributor

    def elect(self, task):
        """Pick a contributor for the task from this project's pool, or None."""
        if (task.repo_fullname, task.provider) != (self.repo_fullname, self.provider):
            raise ScopeMismatch(f"Task #{task.issue_id} is not part of {self.repo_fullname}.")
        from taskpool.election.service import elect
        return elect(self.storage, task)
