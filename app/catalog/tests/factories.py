"""
Factory Boy factories for catalog models.

Usage:
    from catalog.tests.factories import ProductFactory

    product = ProductFactory()                       # ₦50,000, owned by a new user
    product = ProductFactory(owner=seller, price_kobo=None, price="75000.00")
"""

import factory

from accounts.tests.factories import UserFactory
from catalog.models import Business, Product


class BusinessFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Business

    owner = factory.SubFactory(UserFactory)
    name = factory.Sequence(lambda n: f"Storefront {n}")


class ProductFactory(factory.django.DjangoModelFactory):
    """
    Factory for Product model.

    Default is a directly owned product priced at ₦50,000 (5,000,000 kobo).
    """

    class Meta:
        model = Product

    owner = factory.SubFactory(UserFactory)
    business = None
    title = factory.Sequence(lambda n: f"Used iPhone 12 #{n}")
    price = None
    price_kobo = 5_000_000
    city = "Lagos"
    area = "Yaba"
