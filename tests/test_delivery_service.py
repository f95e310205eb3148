from datetime import datetime

import pytest

from app.models.book import Book
from app.models.purchase import Purchase
from app.models.user import User
from app.services.delivery_service import DeliveryService, attachment_filename


@pytest.fixture
def records():
    buyer = User(id=1, name="Asha", email="asha@example.com", wallet_balance=0)
    book = Book(id=7, title="Deep Work", author="Cal Newport", price=499.5, seller_id=2, pdf_file="pdfs/deep.pdf")
    purchase = Purchase(
        id=11, buyer_id=1, book_id=7, seller_id=2, amount=499.5,
        payment_method="razorpay", status="completed", created_at=datetime(2026, 3, 4),
    )
    return purchase, buyer, book


def test_attachment_filename_replaces_unsafe_characters():
    assert attachment_filename("C++ & You: 2nd ed.") == "C_____You__2nd_ed_.pdf"


def test_summary_email_with_attachment(tmp_path, records):
    purchase, buyer, book = records
    (tmp_path / "pdfs").mkdir()
    (tmp_path / "pdfs" / "deep.pdf").write_bytes(b"pdf-bytes")
    sent = []

    def send(**kwargs):
        sent.append(kwargs)
        return True

    outcome = DeliveryService(send=send, upload_root=str(tmp_path)).deliver(purchase, buyer, book)

    assert outcome.delivered is True
    assert outcome.error is None
    assert outcome.attachment_name == "Deep_Work.pdf"
    assert outcome.subject == "Your Book Purchase: Deep Work"
    assert sent[0]["to"] == "asha@example.com"
    assert sent[0]["attachments"] == [("Deep_Work.pdf", b"pdf-bytes", "application/pdf")]
    html = sent[0]["html"]
    assert "Deep Work" in html
    assert "Cal Newport" in html
    assert "499.50" in html
    assert "04 Mar 2026" in html
    assert "attached to this email" in html


def test_unreadable_pdf_path_sends_notice(tmp_path, records):
    purchase, buyer, book = records
    sent = []

    def send(**kwargs):
        sent.append(kwargs)
        return True

    outcome = DeliveryService(send=send, upload_root=str(tmp_path)).deliver(purchase, buyer, book)

    assert outcome.delivered is True
    assert outcome.attachment_name is None
    assert sent[0]["attachments"] is None
    assert "has not uploaded a PDF" in sent[0]["html"]


def test_transport_exception_becomes_failed_outcome(tmp_path, records):
    purchase, buyer, book = records

    def send(**kwargs):
        raise ConnectionError("smtp down")

    outcome = DeliveryService(send=send, upload_root=str(tmp_path)).deliver(purchase, buyer, book)

    assert outcome.delivered is False
    assert outcome.error == "smtp down"
    assert outcome.to_email == "asha@example.com"
