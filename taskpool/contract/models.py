# taskpool/contract/models.py
from enum import Enum as _PyEnum
from typing import NamedTuple
import sqlalchemy as _sql
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

import taskpool.core.db.session as _database


class Role(str, _PyEnum):
    DEV = "DEV"
    REV = "REV"
    QA = "QA"
    ARCH = "ARCH"
    PO = "PO"


ROLES = tuple(r.value for r in Role)


class ContractId(NamedTuple):
    repo_fullname: str
    username: str
    provider: str
    role: str


class Contract(_database.Base):
    __tablename__ = "contracts"
    __table_args__ = (
        _sql.ForeignKeyConstraint(["repo_fullname", "provider"], ["projects.repo_fullname", "projects.provider"]),
        _sql.ForeignKeyConstraint(["username", "provider"], ["contributors.username", "contributors.provider"]),
    )

    repo_fullname = _sql.Column(_sql.String(255), primary_key=True)
    username = _sql.Column(_sql.String(100), primary_key=True)
    provider = _sql.Column(_sql.String(20), primary_key=True)
    role = _sql.Column(_sql.String(10), primary_key=True)

    hourly_rate = _sql.Column(_sql.BigInteger, default=0, nullable=False)
    marked_for_removal = _sql.Column(_sql.DateTime, nullable=True)
    created_at = _sql.Column(_sql.DateTime, server_default=func.now(), nullable=False)

    project = relationship("Project", foreign_keys=[repo_fullname, provider], viewonly=True)
    contributor = relationship("Contributor", foreign_keys=[username, provider], viewonly=True)

    # Invoices only carry the contract columns (no FK) so paid history
    # survives the removal of the contract.
    def invoices(self):
        from taskpool.core.storage import Storage
        return Storage.of(self).invoices().of_contract(self.contract_id)

    @property
    def contract_id(self) -> ContractId:
        return ContractId(self.repo_fullname, self.username, self.provider, self.role)

    @property
    def revenue(self) -> int:
        """Lifetime sum of task values, paid or not."""
        return sum(inv.amount for inv in self.invoices())

    @property
    def value(self) -> int:
        """Task values waiting on the unpaid invoice."""
        return sum(inv.amount for inv in self.invoices() if not inv.is_paid)

    @property
    def invoiced(self) -> int:
        return sum(inv.total_amount for inv in self.invoices())

    def __eq__(self, other):
        return isinstance(other, Contract) and self.contract_id == other.contract_id

    def __hash__(self):
        return hash(self.contract_id)

    def __repr__(self):
        return f"Contract{tuple(self.contract_id)}"
