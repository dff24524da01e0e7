"""
Celery tasks for escrow maintenance.

This module provides periodic tasks for:
- Expiring unpaid orders past the cutoff
- Reconciling unpaid orders against Paystack (missed webhooks)

Both are scheduled with django-celery-beat (see migration
0002_add_escrow_schedules) and are safe to run concurrently or twice:
the sweep only matches INITIALIZED rows and payment confirmation is
idempotent.

Usage:
    from escrow.tasks import expire_stale_orders

    expire_stale_orders.delay()
    expire_stale_orders.delay(cutoff_minutes=60)
"""

from __future__ import annotations

import logging

from celery import shared_task

from escrow.services import SettlementService

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def expire_stale_orders(self, cutoff_minutes: int | None = None) -> dict:
    """
    Expire INITIALIZED orders older than the cutoff.

    Args:
        cutoff_minutes: Age threshold (default ESCROW_EXPIRY_CUTOFF_MINUTES)

    Returns:
        Dict with:
        - expired_count: Number of orders expired
    """
    logger.info("Starting escrow expiry sweep", extra={"cutoff_minutes": cutoff_minutes})

    expired_count = SettlementService.expire_stale(cutoff_minutes=cutoff_minutes)

    return {"expired_count": expired_count}


@shared_task(bind=True)
def reconcile_initialized_orders(self) -> dict:
    """
    Verify unpaid orders with Paystack and confirm the ones that were paid.

    Gateway errors and amount mismatches are counted per order, never
    raised, so one bad order does not stop the batch.

    Returns:
        Dict with checked, confirmed, mismatched and errors counts
    """
    logger.info("Starting escrow reconciliation")

    summary = SettlementService.reconcile_initialized()

    return summary.to_dict()
