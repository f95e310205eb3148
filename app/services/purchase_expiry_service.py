import logging
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlmodel import Session

from app.models.purchase import Purchase, PurchaseStatus

logger = logging.getLogger(__name__)


def expire_pending_purchases(session: Session, older_than: timedelta) -> int:
    """Fail Razorpay purchases that were never verified.

    Only rows still ``pending`` at UPDATE time are touched, so a verify that
    lands concurrently wins.
    """
    now = datetime.utcnow()
    cutoff = now - older_than

    result = session.execute(
        update(Purchase)
        .where(Purchase.status == PurchaseStatus.pending.value)
        .where(Purchase.created_at < cutoff)
        .values(status=PurchaseStatus.failed.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    session.commit()

    expired = result.rowcount
    logger.info(f"Expired {expired} pending purchases created before {cutoff.isoformat()}")
    return expired
