from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel

from taskpool.core.helpers import format_amount


class InvoicedTaskView(BaseModel):
    issue_id: str
    estimation_minutes: int
    value: str
    commission: str
    total_amount: str
    invoiced_at: datetime


class InvoiceView(BaseModel):
    """Read-only rendering input; amounts are formatted for display."""
    id: int
    repo_fullname: str
    username: str
    provider: str
    role: str
    created_at: datetime
    payment_time: Optional[datetime] = None
    transaction_id: Optional[str] = None
    billed_by: str
    billed_to: str
    currency: str
    is_paid: bool
    amount: str
    commission: str
    total_amount: str
    tasks: List[InvoicedTaskView]

    @classmethod
    def of(cls, invoice) -> "InvoiceView":
        currency = invoice.currency
        return cls(
            id=invoice.id,
            repo_fullname=invoice.repo_fullname,
            username=invoice.username,
            provider=invoice.provider,
            role=invoice.role,
            created_at=invoice.created_at,
            payment_time=invoice.payment_time,
            transaction_id=invoice.transaction_id,
            billed_by=invoice.billed_by_info(),
            billed_to=invoice.billed_to_info(),
            currency=currency,
            is_paid=invoice.is_paid,
            amount=format_amount(invoice.amount, currency),
            commission=format_amount(invoice.commission, currency),
            total_amount=format_amount(invoice.total_amount, currency),
            tasks=[
                InvoicedTaskView(
                    issue_id=t.issue_id,
                    estimation_minutes=t.estimation_minutes,
                    value=format_amount(t.value, currency),
                    commission=format_amount(t.commission, currency),
                    total_amount=format_amount(t.total_amount, currency),
                    invoiced_at=t.invoiced_at,
                )
                for t in invoice.tasks
            ],
        )


class PaymentWebhookReq(BaseModel):
    token: str
