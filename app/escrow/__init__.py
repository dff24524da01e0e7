"""
Escrow app for Paystack-backed marketplace settlement.

This app handles:
- Escrow order creation and fee computation
- Paystack checkout initialization and payment verification
- Buyer delivery confirmation and disputes
- Admin dispute resolution and fund release
- Expiry of unpaid orders

Related apps:
    - accounts: Users, profiles and role resolution
    - catalog: Product and seller lookup

Usage:
    from escrow.services import SettlementService

    order = SettlementService.create_order(buyer=user, product_id=product.id)
    SettlementService.confirm_delivery(actor=user, order_id=order.id)
"""
