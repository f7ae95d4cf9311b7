"""
Payment processor capability plus the in-process fake used by sandbox
wallets and tests.
"""
import datetime
import itertools
import threading
from abc import ABC, abstractmethod

from pydantic import BaseModel

from taskpool.core.errors import InvalidArgument
from taskpool.core.helpers import utcnow
from taskpool.invoice.models import FAKE_PAYMENT_PREFIX


class Charge(BaseModel):
    transaction_id: str
    paid_at: datetime.datetime


class PaymentGateway(ABC):

    @abstractmethod
    def charge(self, wallet, amount: int, memo: str) -> Charge:
        """
        Charge amount (minor units) to the wallet. Raises Transient when the
        processor can be retried, Permanent when it declined.
        """


class FakePaymentGateway(PaymentGateway):
    """Always succeeds; transaction ids carry the fake payment prefix."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def charge(self, wallet, amount: int, memo: str) -> Charge:
        if amount < 0:
            raise InvalidArgument("Cannot charge a negative amount.")
        if wallet is not None and wallet.cash and amount > wallet.cash:
            raise InvalidArgument(f"Amount {amount} exceeds the wallet's cash limit {wallet.cash}.")
        with self._lock:
            number = next(self._counter)
        return Charge(transaction_id=f"{FAKE_PAYMENT_PREFIX}{number}", paid_at=utcnow())
