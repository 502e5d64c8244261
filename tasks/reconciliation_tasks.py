import logging

from core.celery import celery_app
from core.db import db_session
from services.reconciliation import expire_stale_orders, reconcile_completed_payments

logger = logging.getLogger(__name__)


@celery_app.task
def expire_stale_orders_task():
    with db_session() as db:
        expired = expire_stale_orders(db)
    return {"expired": expired}


@celery_app.task
def reconcile_completed_payments_task():
    with db_session() as db:
        repaired = reconcile_completed_payments(db)
    if repaired:
        logger.info("Reconciled %d order(s) with completed payments", len(repaired))
    return {"repaired": repaired}
