# taskpool/invoice/service.py
import datetime
import logging
from typing import Optional

from taskpool.core.errors import AlreadyExists, AlreadyPaid, InvalidArgument, InvalidState, NoSuchContract, NotFound, WrongContract
from taskpool.core.events import InvoicePaid
from taskpool.core.helpers import task_value, utcnow
from taskpool.core.retry import retry_transient
from taskpool.core.storage import Storage
from taskpool.contract.models import Contract
from taskpool.invoice.commission import CommissionPolicy, default_policy
from taskpool.invoice.models import Invoice, InvoicedTask, FAKE_PAYMENT_PREFIX
from taskpool.payment.gateway import PaymentGateway
from taskpool.payment.webhook import PaymentNotice
from taskpool.task.models import Task

logger = logging.getLogger("uvicorn.error")


def get_invoice_or_404(storage: Storage, invoice_id: int) -> Invoice:
    invoice = storage.invoices().get_by_id(invoice_id)
    if invoice is None:
        raise NotFound(f"Invoice {invoice_id} not found.")
    return invoice


def _lock_contract(s: Storage, contract_id) -> Contract:
    # serialises invoice work per contract
    contract = s.contracts().get_by_id(contract_id, for_update=True)
    if contract is None:
        raise NoSuchContract(f"Contract {tuple(contract_id)} not found.")
    return contract


def _active_of(s: Storage, contract: Contract, now: datetime.datetime) -> Invoice:
    invoices = s.invoices().of_contract(contract.contract_id)
    active = invoices.active()
    if active is None:
        wallet = s.wallets().of_project(contract.repo_fullname, contract.provider).active()
        active = invoices.create_new(now, currency=wallet.currency if wallet is not None else None)
        logger.info("Invoice %s opened for contract %s", active.id, tuple(contract.contract_id))
    return active


def active_of(
    storage: Storage,
    contract: Contract,
    now: Optional[datetime.datetime] = None,
    deadline: Optional[datetime.datetime] = None,
) -> Invoice:
    """The contract's unpaid invoice, created on demand."""
    def _run(s: Storage) -> Invoice:
        locked = _lock_contract(s, contract.contract_id)
        return _active_of(s, locked, now or utcnow())
    return storage.with_transaction(_run, deadline=deadline)


def _register(s: Storage, invoice: Invoice, task: Task, commission: int, now: datetime.datetime) -> InvoicedTask:
    if task.contract_id is None or task.contract_id != invoice.contract_id:
        raise WrongContract(f"Task #{task.issue_id} does not belong to invoice {invoice.id}.")
    contract = _lock_contract(s, invoice.contract_id)
    s.db.refresh(invoice)
    if invoice.is_paid:
        raise AlreadyPaid(f"Invoice {invoice.id} is already paid, can't add a new task to it.")
    value = task_value(contract.hourly_rate, task.estimation_minutes)
    return s.invoiced_tasks().register(invoice, task, value, commission, now)


def register_task(
    storage: Storage,
    invoice: Invoice,
    task: Task,
    commission: int,
    now: Optional[datetime.datetime] = None,
    deadline: Optional[datetime.datetime] = None,
) -> InvoicedTask:
    """
    Append a snapshot of the task to the invoice. The value comes from the
    contract's current hourly rate; the commission is stored as given.
    """
    return storage.with_transaction(
        lambda s: _register(s, invoice, task, commission, now or utcnow()), deadline=deadline
    )


def invoice_task(
    storage: Storage,
    task: Task,
    policy: Optional[CommissionPolicy] = None,
    now: Optional[datetime.datetime] = None,
    deadline: Optional[datetime.datetime] = None,
) -> InvoicedTask:
    """Bill a finished task to its contract's active invoice."""
    policy = policy or default_policy

    def _run(s: Storage) -> InvoicedTask:
        if task.contract_id is None:
            raise InvalidState(f"Task #{task.issue_id} is not assigned, nothing to invoice.")
        contract = _lock_contract(s, task.contract_id)
        at = now or utcnow()
        invoice = _active_of(s, contract, at)
        wallet = s.wallets().of_project(task.repo_fullname, task.provider).active()
        commission = policy(task, wallet)
        invoiced = _register(s, invoice, task, commission, at)
        logger.info(
            "Task #%s invoiced on %s: value %s, commission %s", task.issue_id, invoice.id, invoiced.value, invoiced.commission
        )
        return invoiced
    return storage.with_transaction(_run, deadline=deadline)


def _pay(s: Storage, invoice: Invoice, transaction_id: str, paid_at: datetime.datetime) -> Invoice:
    _lock_contract_or_history(s, invoice)
    s.db.refresh(invoice)
    if invoice.is_paid:
        raise AlreadyPaid(f"Invoice {invoice.id} is already paid.")
    other = s.invoices().get_by_transaction(transaction_id)
    if other is not None:
        raise AlreadyExists(f"Transaction {transaction_id} already paid invoice {other.id}.")
    invoice.payment_time = paid_at
    invoice.transaction_id = transaction_id
    s.db.flush()
    if not transaction_id.startswith(FAKE_PAYMENT_PREFIX):
        s.platform_invoices().register(
            transaction_id=transaction_id,
            payment_time=paid_at,
            created_at=utcnow(),
            billed_to=invoice.billed_by_info(),
            commission=invoice.commission,
            total_amount=invoice.commission,
            currency=invoice.currency,
            invoice_id=invoice.id,
        )
    s.emit(InvoicePaid(invoice_id=invoice.id, transaction_id=transaction_id))
    logger.info("Invoice %s paid with transaction %s", invoice.id, transaction_id)
    return invoice


def _lock_contract_or_history(s: Storage, invoice: Invoice):
    # the contract may be gone while its invoices remain
    return s.contracts().get_by_id(invoice.contract_id, for_update=True)


def pay(
    storage: Storage,
    invoice: Invoice,
    transaction_id: str,
    paid_at: datetime.datetime,
    deadline: Optional[datetime.datetime] = None,
) -> Invoice:
    """
    Seal the invoice. Non-fake payments also issue the platform's
    counter-invoice for the commission.
    """
    if not transaction_id:
        raise InvalidArgument("A payment needs a transaction id.")
    return storage.with_transaction(lambda s: _pay(s, invoice, transaction_id, paid_at), deadline=deadline)


def apply_payment_notice(
    storage: Storage, notice: PaymentNotice, deadline: Optional[datetime.datetime] = None
) -> Invoice:
    """Webhook entry point; replaying an applied transaction is a no-op."""
    def _run(s: Storage) -> Invoice:
        invoice = get_invoice_or_404(s, notice.invoice_id)
        s.db.refresh(invoice)
        if invoice.is_paid and invoice.transaction_id == notice.transaction_id:
            logger.info("Payment %s already applied to invoice %s", notice.transaction_id, invoice.id)
            return invoice
        return _pay(s, invoice, notice.transaction_id, notice.paid_at)
    return storage.with_transaction(_run, deadline=deadline)


def charge(
    storage: Storage, invoice: Invoice, gateway: PaymentGateway, deadline: Optional[datetime.datetime] = None
) -> Invoice:
    """Charge the invoice total to the project's active wallet, then pay it."""
    if invoice.is_paid:
        raise AlreadyPaid(f"Invoice {invoice.id} is already paid.")
    total = invoice.total_amount
    if total <= 0:
        raise InvalidState(f"Invoice {invoice.id} has nothing to charge.")
    wallet = storage.wallets().of_project(invoice.repo_fullname, invoice.provider).active()
    if wallet is None:
        raise InvalidState(f"Project {invoice.repo_fullname} has no active wallet.")
    memo = f"Invoice {invoice.id} of {invoice.repo_fullname} ({invoice.role}, {invoice.username})"
    result = retry_transient(lambda: gateway.charge(wallet, total, memo), deadline=deadline)
    return pay(storage, invoice, result.transaction_id, result.paid_at, deadline=deadline)
