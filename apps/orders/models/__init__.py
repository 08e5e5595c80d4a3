from .order import (  # noqa: F401
    ALLOWED_TRANSITIONS,
    INITIAL_PAYMENT_STATUS,
    TERMINAL_STATUSES,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from .item import OrderItem  # noqa: F401
from .payment import Payment  # noqa: F401
from .timeline import OrderTimeline  # noqa: F401
