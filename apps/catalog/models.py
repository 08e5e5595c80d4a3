# apps/catalog/models.py
import uuid
from django.db import models
from django.utils.text import slugify

from apps.utils.models import TimestampedModel


class Category(models.Model):
    """
    Flat product category (e.g. Cricket, Football, Fitness)
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, unique=True)
    slug = models.SlugField(unique=True, blank=True, db_index=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        verbose_name_plural = "Categories"
        ordering = ["name"]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            base_slug = slugify(self.name)
            slug_candidate = base_slug
            counter = 1

            while Category.objects.filter(slug=slug_candidate).exclude(pk=self.pk).exists():
                slug_candidate = f"{base_slug}-{counter}"
                counter += 1

            self.slug = slug_candidate
        super().save(*args, **kwargs)


class Product(TimestampedModel):
    """
    Sellable item.

    NOTE:
    - `price` is the live catalog price. Orders snapshot it at creation and
      never read it again afterwards.
    - `stock` is only reduced by the order writer (see InventoryService).
    """
    name = models.CharField(max_length=255)
    sku = models.CharField(
        max_length=100,
        unique=True,
        db_index=True,
        help_text="Human-readable code (e.g. BAT-EW-SH)",
    )
    brand = models.CharField(max_length=100, blank=True)
    description = models.TextField(blank=True)
    image_url = models.URLField(blank=True, null=True)

    category = models.ForeignKey(
        Category,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name='products',
    )

    price = models.DecimalField(max_digits=10, decimal_places=2)
    stock = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_active", "category"], name="product_active_category_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(stock__gte=0),
                name='product_stock_non_negative'
            ),
            models.CheckConstraint(
                condition=models.Q(price__gte=0),
                name='product_price_non_negative'
            ),
        ]

    def __str__(self):
        return f"{self.sku} - {self.name}"

    @property
    def in_stock(self):
        return self.is_active and self.stock > 0
