# taskpool/invoice/models.py
import sqlalchemy as _sql
from sqlalchemy.orm import relationship

import taskpool.core.db.session as _database
from taskpool.core import config

FAKE_PAYMENT_PREFIX = "fake_payment_"


class Invoice(_database.Base):
    """
    All the completed tasks of a contract until payment is done.
    A contract has at most one unpaid (active) invoice.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        _sql.Index(
            "uq_invoices_active", "repo_fullname", "username", "provider", "role", unique=True,
            sqlite_where=_sql.text("payment_time IS NULL"),
            postgresql_where=_sql.text("payment_time IS NULL"),
        ),
    )

    id = _sql.Column(_sql.Integer, primary_key=True, autoincrement=True)
    repo_fullname = _sql.Column(_sql.String(255), nullable=False)
    username = _sql.Column(_sql.String(100), nullable=False)
    provider = _sql.Column(_sql.String(20), nullable=False)
    role = _sql.Column(_sql.String(10), nullable=False)

    created_at = _sql.Column(_sql.DateTime, nullable=False)
    payment_time = _sql.Column(_sql.DateTime, nullable=True)
    transaction_id = _sql.Column(_sql.String(255), nullable=True, unique=True)
    billed_by = _sql.Column(_sql.Text, nullable=True)
    billed_to = _sql.Column(_sql.Text, nullable=True)
    currency = _sql.Column(_sql.String(3), default=config.DEFAULT_CURRENCY, nullable=False)

    tasks = relationship("InvoicedTask", back_populates="invoice", order_by="[InvoicedTask.invoiced_at, InvoicedTask.issue_id]")

    @property
    def contract_id(self):
        from taskpool.contract.models import ContractId
        return ContractId(self.repo_fullname, self.username, self.provider, self.role)

    def contract(self):
        from taskpool.core.storage import Storage
        return Storage.of(self).contracts().get_by_id(self.contract_id)

    @property
    def is_paid(self) -> bool:
        return self.payment_time is not None and self.transaction_id is not None

    @property
    def is_fake_payment(self) -> bool:
        return self.is_paid and self.transaction_id.startswith(FAKE_PAYMENT_PREFIX)

    @property
    def amount(self) -> int:
        return sum(t.value for t in self.tasks)

    @property
    def commission(self) -> int:
        return sum(t.commission for t in self.tasks)

    @property
    def total_amount(self) -> int:
        return sum(t.total_amount for t in self.tasks)

    def billed_by_info(self) -> str:
        if self.billed_by:
            return self.billed_by
        contract = self.contract()
        contributor = contract.contributor if contract is not None else None
        return (contributor.billing_info if contributor is not None else None) or self.username

    def billed_to_info(self) -> str:
        if self.billed_to:
            return self.billed_to
        contract = self.contract()
        project = contract.project if contract is not None else None
        return (project.billing_info if project is not None else None) or self.repo_fullname

    def platform_invoice(self):
        """Counter-invoice issued at payment; None while unpaid or for fake payments."""
        if not self.is_paid or self.is_fake_payment:
            return None
        from taskpool.core.storage import Storage
        return Storage.of(self).platform_invoices().get_by_payment(self.transaction_id, self.payment_time)

    def __eq__(self, other):
        return isinstance(other, Invoice) and self.id is not None and self.id == other.id

    def __hash__(self):
        return hash(("invoice", self.id))

    def __repr__(self):
        return f"Invoice({self.id})"


class InvoicedTask(_database.Base):
    """Immutable snapshot of a task at the moment it joined an invoice."""
    __tablename__ = "invoiced_tasks"

    invoice_id = _sql.Column(_sql.Integer, _sql.ForeignKey("invoices.id"), primary_key=True)
    issue_id = _sql.Column(_sql.String(50), primary_key=True)
    repo_fullname = _sql.Column(_sql.String(255), primary_key=True)
    provider = _sql.Column(_sql.String(20), primary_key=True)

    username = _sql.Column(_sql.String(100), nullable=False)
    role = _sql.Column(_sql.String(10), nullable=False)
    estimation_minutes = _sql.Column(_sql.Integer, nullable=False)
    value = _sql.Column(_sql.BigInteger, nullable=False)
    commission = _sql.Column(_sql.BigInteger, nullable=False)
    invoiced_at = _sql.Column(_sql.DateTime, nullable=False)

    invoice = relationship("Invoice", back_populates="tasks")

    @property
    def total_amount(self) -> int:
        return self.value + self.commission

    @property
    def contract_id(self):
        from taskpool.contract.models import ContractId
        return ContractId(self.repo_fullname, self.username, self.provider, self.role)

    def __eq__(self, other):
        return isinstance(other, InvoicedTask) and (
            (self.invoice_id, self.issue_id, self.repo_fullname, self.provider)
            == (other.invoice_id, other.issue_id, other.repo_fullname, other.provider)
        )

    def __hash__(self):
        return hash((self.invoice_id, self.issue_id, self.repo_fullname, self.provider))


class PlatformInvoice(_database.Base):
    """Counter-invoice the platform issues for its commission. Never updated."""
    __tablename__ = "platform_invoices"

    id = _sql.Column(_sql.Integer, primary_key=True, autoincrement=True)
    transaction_id = _sql.Column(_sql.String(255), unique=True, nullable=False)
    payment_time = _sql.Column(_sql.DateTime, nullable=False)
    created_at = _sql.Column(_sql.DateTime, nullable=False)
    billed_to = _sql.Column(_sql.Text, nullable=False)
    commission = _sql.Column(_sql.BigInteger, nullable=False)
    total_amount = _sql.Column(_sql.BigInteger, nullable=False)
    currency = _sql.Column(_sql.String(3), default=config.DEFAULT_CURRENCY, nullable=False)
    invoice_id = _sql.Column(_sql.Integer, _sql.ForeignKey("invoices.id"), nullable=True)

    def __eq__(self, other):
        return isinstance(other, PlatformInvoice) and self.id is not None and self.id == other.id

    def __hash__(self):
        return hash(("platform_invoice", self.id))
