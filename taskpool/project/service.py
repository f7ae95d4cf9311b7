# taskpool/project/service.py
import logging
from typing import Optional

from taskpool.core.storage import Storage
from taskpool.project.models import Project, Wallet
from taskpool.user.models import User

logger = logging.getLogger("uvicorn.error")


def register_project(storage: Storage, owner: User, repo_fullname: str, **settings) -> Project:
    """Register a repository; settings are the per-project knobs of Projects.register."""
    project = storage.with_transaction(lambda s: s.projects().register(owner, repo_fullname, **settings))
    logger.info("Project %s registered for %s", repo_fullname, owner.username)
    return project


def register_wallet(
    storage: Storage,
    project: Project,
    wallet_type: str,
    cash: int = 0,
    currency: Optional[str] = None,
    commission_bp: Optional[int] = None,
    identifier: Optional[str] = None,
) -> Wallet:
    """The project's first wallet becomes its active one."""
    return storage.with_transaction(
        lambda s: s.wallets().of_project(project.repo_fullname, project.provider).register(
            wallet_type, cash, currency, commission_bp, identifier
        )
    )


def activate_wallet(storage: Storage, project: Project, wallet_type: str) -> Wallet:
    wallet = storage.with_transaction(
        lambda s: s.wallets().of_project(project.repo_fullname, project.provider).activate(wallet_type)
    )
    logger.info("Wallet %s is now active for %s", wallet_type, project.repo_fullname)
    return wallet
