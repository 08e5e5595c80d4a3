# apps/catalog/admin.py
from django.contrib import admin
from .models import Category, Product


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = (
        "sku",
        "name",
        "category",
        "brand",
        "price",
        "stock",
        "is_active",
    )
    search_fields = ("sku", "name", "brand")
    list_filter = ("category", "brand", "is_active")
    list_editable = ("price", "is_active")
    # Stock moves through InventoryService so the ledger stays complete
    readonly_fields = ("stock", "created_at", "updated_at")
