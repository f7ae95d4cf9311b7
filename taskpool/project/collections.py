# taskpool/project/collections.py
from typing import Optional

from taskpool.core import config
from taskpool.core.collections import Collection
from taskpool.core.errors import AlreadyExists, InvalidArgument, NotFound, ReferencedEntityMissing
from taskpool.core.helpers import generate_webhook_token
from taskpool.project.models import Project, Wallet
from taskpool.user.models import User


class Projects(Collection[Project]):

    def __init__(self, storage):
        super().__init__(storage, lambda: storage.db.query(Project).order_by(Project.provider, Project.repo_fullname))

    def get_by_id(self, repo_fullname: str, provider: str) -> Optional[Project]:
        return self.storage.db.get(Project, (repo_fullname, provider))

    def register(
        self,
        owner: User,
        repo_fullname: str,
        billing_info: Optional[str] = None,
        webhook_token: Optional[str] = None,
        min_estimation: Optional[int] = None,
        max_estimation: Optional[int] = None,
        deadline_days: Optional[int] = None,
        max_open_tasks: Optional[int] = None,
    ) -> Project:
        if self.storage.users().get_by_id(owner.username, owner.provider) is None:
            raise ReferencedEntityMissing(f"User {owner.username} ({owner.provider}) is not registered.")
        if self.get_by_id(repo_fullname, owner.provider) is not None:
            raise AlreadyExists(f"Project {repo_fullname} ({owner.provider}) is already registered.")
        min_est = config.MIN_ESTIMATION if min_estimation is None else min_estimation
        max_est = config.MAX_ESTIMATION if max_estimation is None else max_estimation
        if min_est < 0 or max_est < min_est:
            raise InvalidArgument(f"Invalid estimation range [{min_est}, {max_est}].")
        if max_open_tasks is not None and max_open_tasks < 1:
            raise InvalidArgument("max_open_tasks must be positive.")
        project = Project(
            repo_fullname=repo_fullname,
            provider=owner.provider,
            owner_username=owner.username,
            webhook_token=webhook_token or generate_webhook_token(),
            billing_info=billing_info,
            min_estimation=min_est,
            max_estimation=max_est,
            deadline_days=config.DEADLINE_DAYS if deadline_days is None else deadline_days,
            max_open_tasks=max_open_tasks,
        )
        self.storage.db.add(project)
        self.storage.db.flush()
        return project

    def owned_by(self, username: str, provider: str) -> "OwnerProjects":
        return OwnerProjects(self.storage, username, provider)


class OwnerProjects(Collection[Project]):

    def __init__(self, storage, username: str, provider: str):
        super().__init__(
            storage,
            lambda: storage.db.query(Project)
            .filter(Project.owner_username == username, Project.provider == provider)
            .order_by(Project.repo_fullname),
        )
        self.username = username
        self.provider = provider

    def of_owner(self, username: str, provider: str) -> "OwnerProjects":
        return self._check_scope((self.username, self.provider), (username, provider), "projects")

    def get_by_id(self, repo_fullname: str, provider: str) -> Optional[Project]:
        project = self.storage.projects().get_by_id(repo_fullname, provider)
        if project is None or project.owner_username != self.username:
            return None
        return project


class Wallets:
    """Entry point only: wallets are listed per project, never all at once."""

    def __init__(self, storage):
        self.storage = storage

    def of_project(self, repo_fullname: str, provider: str) -> "ProjectWallets":
        return ProjectWallets(self.storage, repo_fullname, provider)


class ProjectWallets(Collection[Wallet]):

    def __init__(self, storage, repo_fullname: str, provider: str):
        super().__init__(
            storage,
            lambda: storage.db.query(Wallet)
            .filter(Wallet.repo_fullname == repo_fullname, Wallet.provider == provider)
            .order_by(Wallet.type),
        )
        self.repo_fullname = repo_fullname
        self.provider = provider

    def of_project(self, repo_fullname: str, provider: str) -> "ProjectWallets":
        return self._check_scope((self.repo_fullname, self.provider), (repo_fullname, provider), "wallets")

    def get_by_type(self, wallet_type: str) -> Optional[Wallet]:
        return self.storage.db.get(Wallet, (self.repo_fullname, self.provider, wallet_type))

    def active(self) -> Optional[Wallet]:
        return (
            self.storage.db.query(Wallet)
            .filter(Wallet.repo_fullname == self.repo_fullname, Wallet.provider == self.provider, Wallet.active.is_(True))
            .first()
        )

    def register(
        self,
        wallet_type: str,
        cash: int = 0,
        currency: Optional[str] = None,
        commission_bp: Optional[int] = None,
        identifier: Optional[str] = None,
    ) -> Wallet:
        if self.storage.projects().get_by_id(self.repo_fullname, self.provider) is None:
            raise ReferencedEntityMissing(f"Project {self.repo_fullname} ({self.provider}) is not registered.")
        if self.get_by_type(wallet_type) is not None:
            raise AlreadyExists(f"Project {self.repo_fullname} already has a {wallet_type} wallet.")
        if cash < 0:
            raise InvalidArgument("Wallet cash limit cannot be negative.")
        bp = config.DEFAULT_COMMISSION_BP if commission_bp is None else commission_bp
        if bp < 0:
            raise InvalidArgument("Commission cannot be negative.")
        wallet = Wallet(
            repo_fullname=self.repo_fullname,
            provider=self.provider,
            type=wallet_type,
            cash=cash,
            active=self.active() is None,
            currency=currency or config.DEFAULT_CURRENCY,
            commission_bp=bp,
            identifier=identifier,
        )
        self.storage.db.add(wallet)
        self.storage.db.flush()
        return wallet

    def activate(self, wallet_type: str) -> Wallet:
        wallet = self.get_by_type(wallet_type)
        if wallet is None:
            raise NotFound(f"Project {self.repo_fullname} has no {wallet_type} wallet.")
        current = self.active()
        if current is not None and current != wallet:
            current.active = False
            # release the unique active slot before taking it
            self.storage.db.flush()
        wallet.active = True
        self.storage.db.flush()
        return wallet
