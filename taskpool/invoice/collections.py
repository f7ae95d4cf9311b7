# taskpool/invoice/collections.py
import datetime
from typing import Optional

from taskpool.core import config
from taskpool.core.collections import Collection
from taskpool.core.errors import AlreadyExists, AlreadyPaid, InvalidArgument, WrongContract
from taskpool.contract.models import ContractId
from taskpool.invoice.models import Invoice, InvoicedTask, PlatformInvoice


class Invoices(Collection[Invoice]):

    def __init__(self, storage):
        super().__init__(storage, lambda: storage.db.query(Invoice).order_by(Invoice.id))

    def get_by_id(self, invoice_id: int) -> Optional[Invoice]:
        return self.storage.db.get(Invoice, invoice_id)

    def get_by_transaction(self, transaction_id: str) -> Optional[Invoice]:
        return self.storage.db.query(Invoice).filter(Invoice.transaction_id == transaction_id).first()

    def of_contract(self, contract_id: ContractId) -> "ContractInvoices":
        return ContractInvoices(self.storage, contract_id)


class ContractInvoices(Collection[Invoice]):

    def __init__(self, storage, contract_id: ContractId):
        super().__init__(
            storage,
            lambda: storage.db.query(Invoice)
            .filter(
                Invoice.repo_fullname == contract_id.repo_fullname,
                Invoice.username == contract_id.username,
                Invoice.provider == contract_id.provider,
                Invoice.role == contract_id.role,
            )
            .order_by(Invoice.id),
        )
        self.contract_id = ContractId(*contract_id)

    def of_contract(self, contract_id: ContractId) -> "ContractInvoices":
        return self._check_scope(self.contract_id, contract_id, "invoices")

    def get_by_id(self, invoice_id: int) -> Optional[Invoice]:
        invoice = self.storage.invoices().get_by_id(invoice_id)
        if invoice is None or invoice.contract_id != self.contract_id:
            return None
        return invoice

    def active(self) -> Optional[Invoice]:
        for invoice in self:
            if not invoice.is_paid:
                return invoice
        return None

    def create_new(self, created_at: datetime.datetime, currency: Optional[str] = None) -> Invoice:
        if self.active() is not None:
            raise AlreadyExists(f"Contract {tuple(self.contract_id)} already has an active invoice.")
        invoice = Invoice(
            repo_fullname=self.contract_id.repo_fullname,
            username=self.contract_id.username,
            provider=self.contract_id.provider,
            role=self.contract_id.role,
            created_at=created_at,
            currency=currency or config.DEFAULT_CURRENCY,
        )
        self.storage.db.add(invoice)
        self.storage.db.flush()
        return invoice


class InvoicedTasks:

    def __init__(self, storage):
        self.storage = storage

    def of_invoice(self, invoice_id: int) -> "InvoiceTasks":
        return InvoiceTasks(self.storage, invoice_id)

    def register(self, invoice: Invoice, task, value: int, commission: int, invoiced_at: datetime.datetime) -> InvoicedTask:
        """Append a snapshot of the task to the invoice. Values are stored verbatim."""
        if task.contract_id != invoice.contract_id:
            raise WrongContract(f"Task #{task.issue_id} does not belong to invoice {invoice.id}.")
        if invoice.is_paid:
            raise AlreadyPaid(f"Invoice {invoice.id} is already paid, can't add a new task to it.")
        if value < 0 or commission < 0:
            raise InvalidArgument("Invoiced value and commission cannot be negative.")
        existing = self.storage.db.get(InvoicedTask, (invoice.id, task.issue_id, task.repo_fullname, task.provider))
        if existing is not None:
            raise AlreadyExists(f"Task #{task.issue_id} is already on invoice {invoice.id}.")
        invoiced = InvoicedTask(
            invoice=invoice,
            issue_id=task.issue_id,
            repo_fullname=task.repo_fullname,
            provider=task.provider,
            username=task.assignee,
            role=task.role,
            estimation_minutes=task.estimation_minutes,
            value=value,
            commission=commission,
            invoiced_at=invoiced_at,
        )
        self.storage.db.add(invoiced)
        self.storage.db.flush()
        return invoiced


class InvoiceTasks(Collection[InvoicedTask]):

    def __init__(self, storage, invoice_id: int):
        super().__init__(
            storage,
            lambda: storage.db.query(InvoicedTask)
            .filter(InvoicedTask.invoice_id == invoice_id)
            .order_by(InvoicedTask.invoiced_at, InvoicedTask.issue_id),
        )
        self.invoice_id = invoice_id

    def of_invoice(self, invoice_id: int) -> "InvoiceTasks":
        return self._check_scope((self.invoice_id,), (invoice_id,), "invoiced tasks")


class PlatformInvoices(Collection[PlatformInvoice]):

    def __init__(self, storage):
        super().__init__(storage, lambda: storage.db.query(PlatformInvoice).order_by(PlatformInvoice.id))

    def get_by_id(self, platform_invoice_id: int) -> Optional[PlatformInvoice]:
        return self.storage.db.get(PlatformInvoice, platform_invoice_id)

    def get_by_payment(self, transaction_id: str, payment_time: datetime.datetime) -> Optional[PlatformInvoice]:
        return (
            self.storage.db.query(PlatformInvoice)
            .filter(PlatformInvoice.transaction_id == transaction_id, PlatformInvoice.payment_time == payment_time)
            .first()
        )

    def register(
        self,
        transaction_id: str,
        payment_time: datetime.datetime,
        created_at: datetime.datetime,
        billed_to: str,
        commission: int,
        total_amount: int,
        currency: str,
        invoice_id: Optional[int] = None,
    ) -> PlatformInvoice:
        if self.storage.db.query(PlatformInvoice).filter(PlatformInvoice.transaction_id == transaction_id).first():
            raise AlreadyExists(f"A platform invoice for transaction {transaction_id} already exists.")
        platform_invoice = PlatformInvoice(
            transaction_id=transaction_id,
            payment_time=payment_time,
            created_at=created_at,
            billed_to=billed_to,
            commission=commission,
            total_amount=total_amount,
            currency=currency,
            invoice_id=invoice_id,
        )
        self.storage.db.add(platform_invoice)
        self.storage.db.flush()
        return platform_invoice
