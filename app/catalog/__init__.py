"""
Catalog application.

Minimal product/business records standing in for the marketplace catalog.
The escrow flow only needs one thing from it: given a product id, who is
the seller and what does the item cost (see catalog.services).
"""
