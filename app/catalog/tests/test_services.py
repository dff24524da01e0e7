"""
Tests for ListingService.
"""

import uuid
from decimal import Decimal

import pytest

from core.exceptions import NotFoundError, ValidationError

from catalog.services import ListingService
from catalog.tests.factories import BusinessFactory, ProductFactory


@pytest.mark.django_db
class TestResolveListing:
    def test_direct_owner_is_seller(self):
        product = ProductFactory()

        listing = ListingService.resolve_listing(product.pk)

        assert listing.seller == product.owner
        assert listing.price_kobo == 5_000_000
        assert listing.snapshot == {
            "title": product.title,
            "price_kobo": 5_000_000,
            "city": "Lagos",
            "area": "Yaba",
        }

    def test_business_owner_is_seller_when_no_direct_owner(self):
        business = BusinessFactory()
        product = ProductFactory(owner=None, business=business)

        listing = ListingService.resolve_listing(product.pk)

        assert listing.seller == business.owner

    def test_no_seller(self):
        product = ProductFactory(owner=None)

        with pytest.raises(ValidationError) as exc_info:
            ListingService.resolve_listing(product.pk)

        assert exc_info.value.error_code == "SELLER_NOT_FOUND"

    def test_unknown_product(self):
        with pytest.raises(NotFoundError) as exc_info:
            ListingService.resolve_listing(uuid.uuid4())

        assert exc_info.value.error_code == "PRODUCT_NOT_FOUND"

    def test_malformed_product_id(self):
        with pytest.raises(NotFoundError):
            ListingService.resolve_listing("not-a-uuid")

    def test_no_price(self):
        product = ProductFactory(price_kobo=None, price=None)

        with pytest.raises(ValidationError) as exc_info:
            ListingService.resolve_listing(product.pk)

        assert exc_info.value.error_code == "INVALID_PRODUCT_PRICE"

    def test_empty_location_is_null_in_snapshot(self):
        product = ProductFactory(city="", area="")

        listing = ListingService.resolve_listing(product.pk)

        assert listing.snapshot["city"] is None
        assert listing.snapshot["area"] is None


class TestPriceInKobo:
    def test_exact_kobo_wins(self):
        product = ProductFactory.build(price_kobo=1234, price=Decimal("99.00"))

        assert ListingService.price_in_kobo(product) == 1234

    def test_naira_price_converted(self):
        product = ProductFactory.build(price_kobo=None, price=Decimal("75000.50"))

        assert ListingService.price_in_kobo(product) == 7_500_050

    def test_naira_price_rounds_half_up(self):
        product = ProductFactory.build(price_kobo=None, price=Decimal("0.005"))

        assert ListingService.price_in_kobo(product) == 1

    def test_zero_price_is_invalid(self):
        product = ProductFactory.build(price_kobo=0, price=Decimal("0"))

        assert ListingService.price_in_kobo(product) is None
