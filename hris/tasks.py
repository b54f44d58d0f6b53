"""
Celery tasks for payroll payments and reconciliation.
"""

import logging
from typing import Dict, List

from celery import shared_task
from django.core.cache import cache
from django.utils import timezone

from .services.payroll_payments import (
    PaymentInstruction,
    PayrollPaymentService,
    summarize_results,
)
from .utils import first_of_month, parse_month

logger = logging.getLogger(__name__)

RECONCILIATION_LOCK_TIMEOUT = 3600


def reconciliation_lock_key(month) -> str:
    return f"payroll_reconciliation_{first_of_month(month):%Y-%m}"


@shared_task
def process_bulk_payroll_task(employees: List[Dict], month: str, description: str) -> Dict:
    """
    Pay a batch of employees outside the request cycle.

    Args:
        employees: payment instructions as plain dicts (amounts as strings)
        month: YYYY-MM or ISO date of the month being paid
        description: narration prefix sent to the providers

    Returns:
        Dict with per-employee results and a summary
    """
    month = parse_month(month)
    instructions = [PaymentInstruction.from_dict(item) for item in employees]

    service = PayrollPaymentService()
    try:
        results = service.process_bulk(instructions, month, description)
    finally:
        service.close()
    summary = summarize_results(results)

    logger.info(f"Bulk payroll task for {month:%Y-%m} finished: {summary}")
    return {'results': results, 'summary': summary}


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def verify_payout_task(self, payout_ref: str) -> Dict:
    """
    Verify one payout, retrying while the provider has not settled it.
    """
    service = PayrollPaymentService()
    try:
        result = service.verify_payment(payout_ref)
    finally:
        service.close()

    if result.get('success') and result.get('status') == 'PENDING':
        if self.request.retries < self.max_retries:
            logger.info(f"Payout {payout_ref} still pending, retrying (attempt {self.request.retries + 1})")
            raise self.retry(countdown=self.default_retry_delay)
        logger.warning(f"Payout {payout_ref} still pending after {self.max_retries} retries")

    return result


@shared_task(bind=True, max_retries=2, default_retry_delay=300)
def reconcile_payroll_month(self, month: str) -> Dict:
    """
    Reconcile all outstanding salary payouts of a month.
    """
    month = parse_month(month)
    logger.info(f"Reconciling payroll for {month:%Y-%m}")

    service = PayrollPaymentService()
    try:
        return service.reconcile(month)
    except Exception as e:
        logger.error(f"Unexpected error reconciling {month:%Y-%m}: {e}")
        # Retry on unexpected errors
        if self.request.retries < self.max_retries:
            raise self.retry(exc=e, countdown=self.default_retry_delay)
        raise
    finally:
        service.close()


@shared_task
def auto_reconcile_payroll() -> Dict:
    """
    Periodic reconciliation of the current month.

    A cache lock keyed by month keeps overlapping runs from verifying the
    same payouts twice.
    """
    month = first_of_month(timezone.localdate())
    cache_key = reconciliation_lock_key(month)

    if cache.get(cache_key):
        logger.warning(f"Reconciliation for {month:%Y-%m} is already running, skipping")
        return {
            'month': f"{month:%Y-%m}",
            'status': 'skipped',
            'message': 'Reconciliation already in progress',
        }

    cache.set(cache_key, True, timeout=RECONCILIATION_LOCK_TIMEOUT)
    service = PayrollPaymentService()
    try:
        result = service.reconcile(month)
        logger.info(f"Automatic reconciliation completed: {result['message']}")
        return {'status': 'completed', **result}
    finally:
        service.close()
        # Always release the lock
        cache.delete(cache_key)
