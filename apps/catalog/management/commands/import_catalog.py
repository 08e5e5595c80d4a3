import csv
import os
from decimal import Decimal, InvalidOperation

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from apps.catalog.models import Category, Product
from apps.inventory.services import InventoryService


class Command(BaseCommand):
    help = 'Import Catalog from CSV (columns: sku, name, category, brand, price, stock)'

    def add_arguments(self, parser):
        parser.add_argument('file_path', type=str, help='Path to CSV file')

    def handle(self, *args, **kwargs):
        file_path = kwargs['file_path']
        if not os.path.exists(file_path):
            raise CommandError(f'File not found: {file_path}')

        count = 0
        with open(file_path, 'r', encoding='utf-8') as f:
            reader = csv.DictReader(f)
            with transaction.atomic():
                for line_no, row in enumerate(reader, start=2):
                    sku = (row.get('sku') or '').strip()
                    name = (row.get('name') or '').strip()
                    if not sku or not name:
                        self.stdout.write(self.style.WARNING(f'Line {line_no}: sku and name are required, skipped'))
                        continue

                    try:
                        price = Decimal((row.get('price') or '0').strip())
                        target_stock = int((row.get('stock') or '0').strip())
                    except (InvalidOperation, ValueError):
                        raise CommandError(f'Line {line_no}: invalid price or stock')

                    cat_name = (row.get('category') or '').strip()
                    category = Category.objects.get_or_create(name=cat_name)[0] if cat_name else None

                    product, _ = Product.objects.update_or_create(
                        sku=sku,
                        defaults={
                            'name': name,
                            'category': category,
                            'brand': (row.get('brand') or '').strip(),
                            'price': price,
                            'is_active': True,
                        }
                    )

                    # Stock goes through the ledger like every other movement
                    delta = target_stock - product.stock
                    if delta:
                        InventoryService.manual_adjustment(
                            product_id=product.id,
                            delta_qty=delta,
                            user=None,
                            reason=f'catalog import {os.path.basename(file_path)}',
                        )
                    count += 1

        self.stdout.write(self.style.SUCCESS(f'Successfully imported {count} items.'))
