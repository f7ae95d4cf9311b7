# taskpool/project/models.py
import sqlalchemy as _sql
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, expression

import taskpool.core.db.session as _database
from taskpool.core import config


class Project(_database.Base):
    __tablename__ = "projects"
    __table_args__ = (
        _sql.ForeignKeyConstraint(["owner_username", "provider"], ["users.username", "users.provider"]),
    )

    repo_fullname = _sql.Column(_sql.String(255), primary_key=True)
    provider = _sql.Column(_sql.String(20), primary_key=True)
    owner_username = _sql.Column(_sql.String(100), nullable=False, index=True)

    webhook_token = _sql.Column(_sql.String(255), nullable=False)
    billing_info = _sql.Column(_sql.Text, nullable=True)

    # Per-project knobs; falls back to the environment defaults
    min_estimation = _sql.Column(_sql.Integer, default=config.MIN_ESTIMATION, nullable=False)
    max_estimation = _sql.Column(_sql.Integer, default=config.MAX_ESTIMATION, nullable=False)
    deadline_days = _sql.Column(_sql.Integer, default=config.DEADLINE_DAYS, nullable=False)
    max_open_tasks = _sql.Column(_sql.Integer, nullable=True)  # K, null = unbounded

    created_at = _sql.Column(_sql.DateTime, server_default=func.now(), nullable=False)

    owner = relationship("User", foreign_keys=[owner_username, provider], viewonly=True)

    def contributors(self):
        from taskpool.core.storage import Storage
        return Storage.of(self).contributors().of_project(self.repo_fullname, self.provider)

    def contracts(self):
        from taskpool.core.storage import Storage
        return Storage.of(self).contracts().of_project(self.repo_fullname, self.provider)

    def tasks(self):
        from taskpool.core.storage import Storage
        return Storage.of(self).tasks().of_project(self.repo_fullname, self.provider)

    def wallets(self):
        from taskpool.core.storage import Storage
        return Storage.of(self).wallets().of_project(self.repo_fullname, self.provider)

    def __eq__(self, other):
        return isinstance(other, Project) and (self.repo_fullname, self.provider) == (other.repo_fullname, other.provider)

    def __hash__(self):
        return hash((self.repo_fullname, self.provider))

    def __repr__(self):
        return f"Project({self.repo_fullname}@{self.provider})"


class Wallet(_database.Base):
    __tablename__ = "wallets"
    __table_args__ = (
        _sql.ForeignKeyConstraint(["repo_fullname", "provider"], ["projects.repo_fullname", "projects.provider"]),
        # at most one active wallet per project
        _sql.Index(
            "uq_wallets_active", "repo_fullname", "provider", unique=True,
            sqlite_where=_sql.text("active = 1"),
            postgresql_where=_sql.text("active"),
        ),
    )

    repo_fullname = _sql.Column(_sql.String(255), primary_key=True)
    provider = _sql.Column(_sql.String(20), primary_key=True)
    type = _sql.Column(_sql.String(20), primary_key=True)  # FAKE, STRIPE

    cash = _sql.Column(_sql.BigInteger, default=0, nullable=False)
    active = _sql.Column(_sql.Boolean, default=False, server_default=expression.false(), nullable=False)
    currency = _sql.Column(_sql.String(3), default=config.DEFAULT_CURRENCY, nullable=False)
    commission_bp = _sql.Column(_sql.Integer, default=config.DEFAULT_COMMISSION_BP, nullable=False)
    identifier = _sql.Column(_sql.String(255), nullable=True)  # customer id at the payment processor

    def __eq__(self, other):
        return isinstance(other, Wallet) and (self.repo_fullname, self.provider, self.type) == (other.repo_fullname, other.provider, other.type)

    def __hash__(self):
        return hash((self.repo_fullname, self.provider, self.type))
