# taskpool/payment/webhook.py
import datetime
import jwt
from pydantic import BaseModel

from taskpool.core import config
from taskpool.core.errors import InvalidArgument, Permanent


class PaymentNotice(BaseModel):
    invoice_id: int
    transaction_id: str
    paid_at: datetime.datetime


class WebhookVerifier:
    """
    Turns a signed payment notification (HS256 JWT) into a PaymentNotice.
    """

    def __init__(self, secret: str = None, algorithm: str = "HS256"):
        self.secret = secret if secret is not None else config.PAYMENT_WEBHOOK_SECRET
        self.algorithm = algorithm

    def verify(self, token: str) -> PaymentNotice:
        if not self.secret:
            raise Permanent("Payment webhook secret is not configured.")
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.InvalidTokenError as e:
            raise InvalidArgument(f"Invalid payment notification: {e}") from e
        try:
            notice = PaymentNotice(**payload)
        except (TypeError, ValueError) as e:
            raise InvalidArgument(f"Malformed payment notification: {e}") from e
        # stored timestamps are naive UTC
        if notice.paid_at.tzinfo is not None:
            notice.paid_at = notice.paid_at.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        return notice

    def sign(self, invoice_id: int, transaction_id: str, paid_at: datetime.datetime) -> str:
        """Counterpart of verify, used by sandbox flows and tests."""
        payload = {
            "invoice_id": invoice_id,
            "transaction_id": transaction_id,
            "paid_at": paid_at.isoformat(),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)
