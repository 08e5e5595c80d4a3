import secrets
import string
import time
from decimal import Decimal, ROUND_HALF_UP

from django.utils import timezone

BASE36 = string.digits + string.ascii_uppercase
TWO_PLACES = Decimal("0.01")


def now():
    return timezone.now()


def generate_order_number(prefix="ORD"):
    """
    ORD_<epoch millis>_<11 random base36 chars>, upper-cased.
    Collisions are still possible in theory, the unique index on
    Order.order_number is what actually guarantees uniqueness.
    """
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(BASE36) for _ in range(11))
    return f"{prefix}_{millis}_{suffix}".upper()


def money(value):
    """
    Quantize to 2 places. Floats are routed through str() so 10.1 stays 10.10.
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

