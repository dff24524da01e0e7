"""
Django admin configuration for catalog models.
"""

from django.contrib import admin

from catalog.models import Business, Product


@admin.register(Business)
class BusinessAdmin(admin.ModelAdmin):
    list_display = ("name", "owner", "created_at")
    search_fields = ("name", "owner__email")
    raw_id_fields = ("owner",)


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("title", "owner", "business", "price", "price_kobo", "city")
    list_filter = ("city",)
    search_fields = ("title", "owner__email", "business__name")
    raw_id_fields = ("owner", "business")
