import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from django.conf import settings

from apps.catalog.models import Product
from apps.catalog.services import CatalogService, canonical_id
from apps.utils.exceptions import InsufficientStock, ProductNotFound, ValidationFailed
from apps.utils.utils import money
from apps.utils.validators import email_error, phone_error
from .models import Order, PaymentMethod

logger = logging.getLogger(__name__)

# Order.total is max_digits=12, decimal_places=2
MAX_AMOUNT = Decimal("1e10")
# PositiveIntegerField upper bound
MAX_QUANTITY = 2147483647

PAYMENT_METHOD_ALIASES = {
    "cod": PaymentMethod.COD,
    "cash-on-delivery": PaymentMethod.COD,
    "cash_on_delivery": PaymentMethod.COD,
    "card": PaymentMethod.CARD,
}

REQUIRED_TEXT_FIELDS = (
    ("customerName", "Customer name is required"),
    ("shippingAddress", "Shipping address is required"),
    ("shippingCity", "Shipping city is required"),
    ("shippingState", "Shipping state is required"),
)

# payload key -> (Order column, label)
LENGTH_LIMITED_FIELDS = (
    ("customerName", "customer_name", "Customer name"),
    ("customerEmail", "customer_email", "Customer email"),
    ("customerPhone", "customer_phone", "Phone number"),
    ("shippingCity", "shipping_city", "Shipping city"),
    ("shippingState", "shipping_state", "Shipping state"),
    ("shippingZipCode", "shipping_zip_code", "Zip code"),
    ("shippingCountry", "shipping_country", "Shipping country"),
)


def max_length_of(field_name):
    return Order._meta.get_field(field_name).max_length


@dataclass
class DraftLine:
    product: Product
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return money(self.unit_price * self.quantity)


@dataclass
class OrderDraft:
    """
    A checked, normalized order ready for OrderWriter. Prices are the
    catalog's, captured at validation time.
    """
    customer_name: str
    customer_email: str
    customer_phone: str
    shipping_address: str
    shipping_city: str
    shipping_state: str
    shipping_zip_code: Optional[str]
    shipping_country: str
    payment_method: str
    lines: List[DraftLine]
    subtotal: Decimal
    shipping_fee: Decimal
    total: Decimal
    notes: str = ""
    client_reference: Optional[str] = None
    user: object = None


def _text(value):
    if value is None:
        return ""
    return str(value).strip()


def _decimal(value):
    """
    Decimal for numbers and numeric strings, None for anything else,
    including amounts too large to store.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite() or abs(result) >= MAX_AMOUNT:
        return None
    return result


def _positive_int(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer() or not 0 < value <= MAX_QUANTITY:
            return None
        value = int(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text.isdigit() or len(text) > len(str(MAX_QUANTITY)):
            return None
        value = int(text)
    if isinstance(value, int) and 0 < value <= MAX_QUANTITY:
        return value
    return None


def shipping_fee_for(method):
    if method == PaymentMethod.COD:
        return money(settings.COD_SHIPPING_FEE)
    return money(0)


def normalize_payment_method(value):
    if value in (None, ""):
        return PaymentMethod.COD
    return PAYMENT_METHOD_ALIASES.get(str(value).strip().lower())


class OrderValidator:
    """
    Authoritative gate for a proposed order. Collects every problem before
    failing so the customer can fix the whole form in one go.

    Field problems raise ValidationFailed. When the form itself is fine and
    only the catalog disagrees, the more specific ProductNotFound or
    InsufficientStock is raised instead.
    """

    @classmethod
    def validate(cls, payload, user=None, client_reference=None) -> OrderDraft:
        if not isinstance(payload, dict):
            raise ValidationFailed("Request body must be a JSON object")

        errors = []

        for key, message in REQUIRED_TEXT_FIELDS:
            if not _text(payload.get(key)):
                errors.append(message)

        email = _text(payload.get("customerEmail"))
        problem = email_error(email)
        if problem:
            errors.append(problem)

        phone = _text(payload.get("customerPhone"))
        problem = phone_error(phone)
        if problem:
            errors.append(problem)

        method = normalize_payment_method(payload.get("paymentMethod"))
        if method is None:
            errors.append(f"Unsupported payment method: {payload.get('paymentMethod')}")

        for key, column, label in LENGTH_LIMITED_FIELDS:
            limit = max_length_of(column)
            if len(_text(payload.get(key))) > limit:
                errors.append(f"{label} must be at most {limit} characters")

        reference_limit = max_length_of("client_reference")
        if len(_text(client_reference)) > reference_limit:
            errors.append(f"Order reference must be at most {reference_limit} characters")

        lines, missing, shortages = cls._check_items(payload.get("items"), errors)

        shipping_fee = shipping_fee_for(method) if method else money(0)
        subtotal = money(sum((line.line_total for line in lines), Decimal("0")))
        total = money(subtotal + shipping_fee)

        asserted_total = _decimal(payload.get("total"))
        if asserted_total is None:
            errors.append("Order total is required and must be a number")
        elif lines and not errors and not missing and not shortages:
            # Only meaningful once every line priced cleanly
            if abs(asserted_total - total) > Decimal(str(settings.ORDER_TOTAL_TOLERANCE)):
                errors.append(f"Order total mismatch: expected {total}, received {money(asserted_total)}")

        if errors:
            logger.info(f"Order validation failed with {len(errors)} problem(s)")
            raise ValidationFailed(errors)
        if missing:
            raise ProductNotFound(missing[0])
        if shortages:
            product, requested = shortages[0]
            raise InsufficientStock(product, requested=requested, available=product.stock)

        return OrderDraft(
            customer_name=_text(payload.get("customerName")),
            customer_email=email.lower(),
            customer_phone=phone,
            shipping_address=_text(payload.get("shippingAddress")),
            shipping_city=_text(payload.get("shippingCity")),
            shipping_state=_text(payload.get("shippingState")),
            shipping_zip_code=_text(payload.get("shippingZipCode")) or None,
            shipping_country=_text(payload.get("shippingCountry")) or settings.SHIPPING_DEFAULT_COUNTRY,
            payment_method=method,
            lines=lines,
            subtotal=subtotal,
            shipping_fee=shipping_fee,
            total=total,
            notes=_text(payload.get("notes")),
            client_reference=_text(client_reference) or None,
            user=user,
        )

    @staticmethod
    def _check_items(items, errors):
        """
        Returns (lines, missing_ids, shortages). Field problems are appended
        to `errors`; repeated products are summed before the stock check.
        """
        if not isinstance(items, list) or not items:
            errors.append("Order must contain at least one item")
            return [], [], []

        parsed = []
        for index, item in enumerate(items, start=1):
            if not isinstance(item, dict):
                errors.append(f"Item {index}: Invalid item")
                continue

            product_id = _text(item.get("productId") or item.get("product_id"))
            if not product_id:
                errors.append(f"Item {index}: Product ID is required")

            quantity = _positive_int(item.get("quantity"))
            if quantity is None:
                errors.append(f"Item {index}: Quantity must be a positive whole number")

            raw_price = item.get("price", item.get("unitPrice"))
            price = _decimal(raw_price)
            if price is None or price <= 0:
                errors.append(f"Item {index}: Price must be a positive number")
                price = None

            if product_id and quantity is not None:
                parsed.append((index, product_id, quantity, price, _decimal(item.get("total"))))

        catalog = CatalogService.in_bulk([product_id for _, product_id, _, _, _ in parsed])

        lines = []
        missing = []
        requested = {}
        for index, product_id, quantity, price, line_total in parsed:
            product = catalog.get(canonical_id(product_id))
            if product is None:
                if product_id not in missing:
                    missing.append(product_id)
                continue
            if not product.is_active:
                errors.append(f'Item {index}: Product "{product.name}" is no longer available')
                continue

            if price is not None and money(price) != product.price:
                errors.append(
                    f'Item {index}: Price for "{product.name}" has changed '
                    f"(now {product.price}, cart has {money(price)})"
                )
            line = DraftLine(product=product, quantity=quantity, unit_price=product.price)
            if line_total is not None and price is not None and money(line_total) != money(price * quantity):
                errors.append(f"Item {index}: Line total does not match price x quantity")

            lines.append(line)
            requested[product.pk] = requested.get(product.pk, 0) + quantity

        shortages = []
        for line in lines:
            wanted = requested.pop(line.product.pk, None)
            if wanted is not None and wanted > line.product.stock:
                shortages.append((line.product, wanted))

        return lines, missing, shortages
