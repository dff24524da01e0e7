"""
Listing lookup consumed by escrow order creation.

Usage:
    from catalog.services import ListingService

    listing = ListingService.resolve_listing(product_id)
    listing.seller        # User selling the item
    listing.price_kobo    # Principal for the escrow order
    listing.snapshot      # Frozen copy stored on the order
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError

from core.exceptions import NotFoundError, ValidationError
from core.services import BaseService

from catalog.models import Product

if TYPE_CHECKING:
    from typing import Any

    from accounts.models import User


@dataclass(frozen=True)
class Listing:
    """Seller and price of a product at the moment of lookup."""

    product: Product
    seller: User
    price_kobo: int
    snapshot: dict[str, Any] = field(default_factory=dict)


class ListingService(BaseService):
    """Resolves seller identity and price snapshot from a product id."""

    @classmethod
    def resolve_listing(cls, product_id: Any) -> Listing:
        """
        Load a product and resolve who sells it and for how much.

        The seller is the product owner, falling back to the owner of the
        business the product is listed under.

        Raises:
            NotFoundError: Product does not exist
            ValidationError: Product has no usable price or no seller
        """
        product = cls._get_product(product_id)

        seller = product.owner
        if seller is None and product.business_id:
            seller = product.business.owner
        if seller is None:
            raise ValidationError(
                "Seller not found for product.",
                error_code="SELLER_NOT_FOUND",
                details={"product_id": str(product.pk)},
            )

        price_kobo = cls.price_in_kobo(product)
        if price_kobo is None:
            raise ValidationError(
                "Invalid product price.",
                error_code="INVALID_PRODUCT_PRICE",
                details={"product_id": str(product.pk)},
            )

        return Listing(
            product=product,
            seller=seller,
            price_kobo=price_kobo,
            snapshot=cls.build_snapshot(product, price_kobo),
        )

    @staticmethod
    def price_in_kobo(product: Product) -> int | None:
        """Exact kobo price if set, else naira price x 100, else None."""
        if product.price_kobo:
            return int(product.price_kobo)
        if product.price is not None and product.price > 0:
            kobo = (Decimal(product.price) * 100).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
            return int(kobo) or None
        return None

    @staticmethod
    def build_snapshot(product: Product, price_kobo: int) -> dict[str, Any]:
        return {
            "title": product.title,
            "price_kobo": price_kobo,
            "city": product.city or None,
            "area": product.area or None,
        }

    @classmethod
    def _get_product(cls, product_id: Any) -> Product:
        queryset = Product.objects.select_related("owner", "business__owner")
        try:
            return queryset.get(pk=product_id)
        except (Product.DoesNotExist, DjangoValidationError, ValueError):
            # Malformed UUIDs are reported the same way as missing products
            raise NotFoundError(
                "Product not found.",
                error_code="PRODUCT_NOT_FOUND",
                details={"product_id": str(product_id)},
            )
