"""
Catalog models.

- Business: A seller storefront owned by a user
- Product: A listed item, owned directly by a user or through a Business

Prices are kept the way listings are entered: `price` in naira (decimal)
and an optional exact `price_kobo`. catalog.services decides which wins.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class Business(UUIDPrimaryKeyMixin, BaseModel):
    """Seller storefront. Products listed under it are sold by its owner."""

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="businesses",
    )
    name = models.CharField(max_length=200)

    class Meta(BaseModel.Meta):
        verbose_name = "business"
        verbose_name_plural = "businesses"

    def __str__(self) -> str:
        return self.name


class Product(UUIDPrimaryKeyMixin, BaseModel):
    """
    A listed item.

    Fields:
        owner: Direct seller (optional when listed under a business)
        business: Storefront the product is listed under (optional)
        title: Listing title
        price: Price in naira as entered by the seller
        price_kobo: Exact price in kobo; takes precedence over price
        city, area: Listing location
    """

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="products",
    )
    business = models.ForeignKey(
        Business,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="products",
    )
    title = models.CharField(max_length=200)
    price = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Price in naira",
    )
    price_kobo = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Exact price in kobo (overrides price)",
    )
    city = models.CharField(max_length=100, blank=True, default="")
    area = models.CharField(max_length=100, blank=True, default="")

    class Meta(BaseModel.Meta):
        verbose_name = "product"
        verbose_name_plural = "products"

    def __str__(self) -> str:
        return self.title
