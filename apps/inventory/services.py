import logging
from collections import OrderedDict
from typing import Dict, Iterable, List

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from apps.catalog.models import Product
from apps.utils.exceptions import (
    BusinessLogicException, InsufficientStock, ProductNotFound,
)
from .models import StockMovementLog

logger = logging.getLogger(__name__)


def _merge_lines(items: Iterable[Dict]) -> "OrderedDict[str, int]":
    """
    Collapses repeated products into one quantity and sorts by product id
    so concurrent orders always touch rows in the same order (no deadlocks).
    """
    merged: Dict[str, int] = {}
    for item in items:
        pid = str(item["product_id"])
        merged[pid] = merged.get(pid, 0) + int(item["quantity"])
    return OrderedDict(sorted(merged.items()))


class InventoryService:
    """
    Core Logic for Product stock.
    ALL stock changes must pass through here so the ledger stays complete.
    """

    @staticmethod
    def commit_order_stock(items: List[Dict], reference: str, user=None):
        """
        Decrements stock for a purchase. Each product is one conditional
        UPDATE (`stock >= qty`), so the check and the decrement cannot be
        separated by another request. Must run inside the order's atomic
        block: raising here rolls back every decrement already applied.
        """
        if not transaction.get_connection().in_atomic_block:
            raise RuntimeError("commit_order_stock must run inside transaction.atomic()")

        logs = []
        now = timezone.now()

        for pid, qty in _merge_lines(items).items():
            updated = (
                Product.objects
                .filter(pk=pid, is_active=True, stock__gte=qty)
                .update(stock=F("stock") - qty, updated_at=now)
            )

            if updated == 0:
                product = Product.objects.filter(pk=pid).first()
                if product is None or not product.is_active:
                    logger.warning(f"Stock commit failed: product {pid} missing or inactive ({reference})")
                    raise ProductNotFound(pid)
                logger.warning(
                    f"Stock commit failed: {product.sku} needs {qty}, has {product.stock} ({reference})",
                    extra={"product_id": pid},
                )
                raise InsufficientStock(product, requested=qty, available=product.stock)

            balance = Product.objects.values_list("stock", flat=True).get(pk=pid)
            logs.append(StockMovementLog(
                product_id=pid,
                quantity_change=-qty,
                movement_type=StockMovementLog.MovementType.OUTBOUND_ORDER,
                reference=reference,
                balance_after=balance,
                created_by=user,
            ))

        StockMovementLog.objects.bulk_create(logs)
        return logs

    @staticmethod
    @transaction.atomic
    def restock_order(items: List[Dict], reference: str, user=None):
        """
        Reverses a purchase (cancellation with restock policy enabled).
        Products deleted since are skipped.
        """
        logs = []
        now = timezone.now()

        for pid, qty in _merge_lines(items).items():
            updated = Product.objects.filter(pk=pid).update(stock=F("stock") + qty, updated_at=now)
            if not updated:
                logger.warning(f"Restock skipped: product {pid} no longer exists ({reference})")
                continue

            balance = Product.objects.values_list("stock", flat=True).get(pk=pid)
            logs.append(StockMovementLog(
                product_id=pid,
                quantity_change=qty,
                movement_type=StockMovementLog.MovementType.RESTOCK,
                reference=reference,
                balance_after=balance,
                created_by=user,
            ))

        StockMovementLog.objects.bulk_create(logs)
        return logs

    @staticmethod
    @transaction.atomic
    def manual_adjustment(product_id, delta_qty: int, user, reason: str):
        """
        For cycle counts, goods received and audits.
        """
        qs = Product.objects.filter(pk=product_id)
        if not qs.exists():
            raise ProductNotFound(product_id)

        if delta_qty < 0:
            qs = qs.filter(stock__gte=-delta_qty)

        if not qs.update(stock=F("stock") + delta_qty, updated_at=timezone.now()):
            raise BusinessLogicException(
                "Adjustment would make stock negative.", code="NEGATIVE_STOCK"
            )

        product = Product.objects.get(pk=product_id)
        StockMovementLog.objects.create(
            product=product,
            quantity_change=delta_qty,
            movement_type=StockMovementLog.MovementType.ADJUSTMENT,
            reference=f"MANUAL: {reason}"[:100],
            balance_after=product.stock,
            created_by=user,
        )
        logger.info(f"Stock adjusted for {product.sku}: {delta_qty:+d} -> {product.stock}")
        return product
