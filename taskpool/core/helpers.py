import datetime
import hmac
import secrets
from decimal import Decimal, ROUND_HALF_EVEN


def utcnow() -> datetime.datetime:
    # naive UTC, the storage layer keeps timestamps without tzinfo
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def generate_webhook_token(length: int = 32) -> str:
    return secrets.token_hex(length)


def tokens_match(expected: str, given: str) -> bool:
    return hmac.compare_digest(expected or "", given or "")


def round_half_even(numerator: int, denominator: int) -> int:
    """Integer division with banker's rounding."""
    return int((Decimal(numerator) / Decimal(denominator)).quantize(Decimal(1), rounding=ROUND_HALF_EVEN))


def task_value(hourly_rate: int, estimation_minutes: int) -> int:
    """Value in minor units of a task: hourly rate x minutes / 60."""
    return round_half_even(hourly_rate * estimation_minutes, 60)


def percent_of(amount: int, basis_points: int) -> int:
    return round_half_even(amount * basis_points, 10000)


def format_amount(minor_units: int, currency: str) -> str:
    """Display form of a minor-unit amount, e.g. 3300 -> '33.00 EUR'."""
    major = (Decimal(minor_units) / Decimal(100)).quantize(Decimal("0.01"), rounding=ROUND_HALF_EVEN)
    return f"{major} {currency}"
