# taskpool/invoice/invoice.py
import logging

from fastapi import APIRouter, Depends

from taskpool.core.errors import TaskpoolError
from taskpool.core.storage import Storage, get_storage
from taskpool.payment.webhook import WebhookVerifier
import taskpool.invoice.schema as _schemas
import taskpool.invoice.service as _services

logger = logging.getLogger("uvicorn.error")

router = APIRouter()


def get_verifier() -> WebhookVerifier:
    return WebhookVerifier()


@router.post("/payments/webhook", response_model=_schemas.InvoiceView, tags=["INVOICE API"])
def payment_webhook(
    body: _schemas.PaymentWebhookReq,
    storage: Storage = Depends(get_storage),
    verifier: WebhookVerifier = Depends(get_verifier),
):
    """Payment processor callback. Replays of an applied transaction are accepted and change nothing."""
    try:
        notice = verifier.verify(body.token)
    except TaskpoolError as e:
        logger.warning("Rejected payment webhook: %s", e.detail)
        raise
    invoice = _services.apply_payment_notice(storage, notice)
    return _schemas.InvoiceView.of(invoice)


@router.get("/{invoice_id}", response_model=_schemas.InvoiceView, tags=["INVOICE API"])
def get_invoice(invoice_id: int, storage: Storage = Depends(get_storage)):
    return _schemas.InvoiceView.of(_services.get_invoice_or_404(storage, invoice_id))
