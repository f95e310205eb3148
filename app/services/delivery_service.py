import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from app.models.book import Book
from app.models.purchase import Purchase
from app.models.user import User
from app.utils.template import render_template

logger = logging.getLogger(__name__)

PDF_TEMPLATE = "user_emails/purchase_pdf.html"


@dataclass
class DeliveryOutcome:
    delivered: bool
    attempted_at: datetime
    to_email: str
    subject: str
    attachment_name: Optional[str] = None
    error: Optional[str] = None


def attachment_filename(title: str) -> str:
    return f"{re.sub(r'[^a-zA-Z0-9]', '_', title)}.pdf"


class DeliveryService:
    """Emails the purchased PDF to the buyer.

    Stateless with respect to the database: the caller records the
    returned outcome.
    """

    def __init__(self, send: Callable[..., bool], upload_root: str, store_name: str = "BookNest"):
        self.send = send
        self.upload_root = Path(upload_root)
        self.store_name = store_name

    def _load_pdf(self, book: Book) -> Optional[bytes]:
        if not book.pdf_file:
            return None

        path = self.upload_root / book.pdf_file
        try:
            return path.read_bytes()
        except OSError as e:
            logger.warning(f"PDF for book {book.id} not readable at {path}: {e}")
            return None

    def deliver(self, purchase: Purchase, buyer: User, book: Book) -> DeliveryOutcome:
        subject = f"Your Book Purchase: {book.title}"
        pdf_bytes = self._load_pdf(book)

        attachments = []
        attachment_name = None
        if pdf_bytes is not None:
            attachment_name = attachment_filename(book.title)
            attachments.append((attachment_name, pdf_bytes, "application/pdf"))
        else:
            logger.warning(f"Purchase {purchase.id}: sending without PDF for book {book.id}")

        html = render_template(
            PDF_TEMPLATE,
            purchase=purchase,
            buyer=buyer,
            book=book,
            has_attachment=bool(attachments),
            store_name=self.store_name,
        )

        attempted_at = datetime.utcnow()
        error = None
        try:
            delivered = self.send(
                to=buyer.email,
                subject=subject,
                html=html,
                attachments=attachments or None,
            )
        except Exception as e:
            logger.exception(f"Purchase {purchase.id}: PDF email raised")
            delivered = False
            error = str(e)

        if not delivered and error is None:
            error = "Email provider did not accept the message"

        if delivered:
            logger.info(f"Purchase {purchase.id}: PDF email sent to {buyer.email}")

        return DeliveryOutcome(
            delivered=delivered,
            attempted_at=attempted_at,
            to_email=buyer.email,
            subject=subject,
            attachment_name=attachment_name,
            error=error,
        )
