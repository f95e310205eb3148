import logging
from datetime import timedelta

from sqlmodel import Session

from app.config import settings
from app.database import engine
from app.services.purchase_expiry_service import expire_pending_purchases


def run():
    with Session(engine) as session:
        return expire_pending_purchases(
            session,
            older_than=timedelta(hours=settings.PENDING_PURCHASE_EXPIRY_HOURS),
        )


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    run()
