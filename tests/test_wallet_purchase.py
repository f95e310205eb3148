import pytest
from sqlmodel import select

from app.models.book import Book
from app.models.email import EmailLog
from app.models.ownership import BookRelation, UserBookLink
from app.models.purchase import Purchase, PurchaseStatus
from app.models.user import User
from app.utils.errors import (
    AlreadyOwnedError,
    BusinessRuleError,
    DeliveryFailedError,
    InsufficientBalanceError,
    NotFoundError,
)


def links(session, relation):
    return session.exec(
        select(UserBookLink).where(UserBookLink.relation == relation.value)
    ).all()


def test_wallet_purchase_moves_money_and_delivers(session, service, mailer, make_user, make_book):
    seller = make_user("Seller", balance=0)
    buyer = make_user("Buyer", balance=1000)
    book = make_book(seller, price=500)

    purchase = service.buy_with_wallet(session, buyer.id, book.id)

    assert purchase.status == PurchaseStatus.completed.value
    assert purchase.payment_method == "wallet"
    assert purchase.amount == 500
    assert purchase.seller_id == seller.id
    assert purchase.pdf_delivered is True
    assert purchase.pdf_delivery_attempts == 1
    assert purchase.last_delivery_attempt is not None

    assert session.get(User, buyer.id).wallet_balance == 500
    assert session.get(User, seller.id).wallet_balance == 500
    assert session.get(Book, book.id).sales_count == 1

    owned = links(session, BookRelation.owned)
    sold = links(session, BookRelation.sold)
    assert [(l.user_id, l.book_id) for l in owned] == [(buyer.id, book.id)]
    assert [(l.user_id, l.book_id) for l in sold] == [(seller.id, book.id)]

    assert len(mailer.sent) == 1
    assert mailer.sent[0]["to"] == buyer.email
    log = session.exec(select(EmailLog)).one()
    assert log.status == "sent"
    assert log.purchase_id == purchase.id


def test_insufficient_balance_mutates_nothing(session, service, mailer, make_user, make_book):
    seller = make_user("Seller", balance=40)
    buyer = make_user("Buyer", balance=100)
    book = make_book(seller, price=300)

    with pytest.raises(InsufficientBalanceError) as exc:
        service.buy_with_wallet(session, buyer.id, book.id)

    assert exc.value.message == "Insufficient wallet balance"
    assert exc.value.status_code == 400
    assert session.get(User, buyer.id).wallet_balance == 100
    assert session.get(User, seller.id).wallet_balance == 40
    assert session.exec(select(Purchase)).all() == []
    assert session.exec(select(UserBookLink)).all() == []
    assert session.get(Book, book.id).sales_count == 0
    assert mailer.sent == []


def test_exact_balance_is_enough(session, service, make_user, make_book):
    seller = make_user("Seller")
    buyer = make_user("Buyer", balance=300)
    book = make_book(seller, price=300)

    service.buy_with_wallet(session, buyer.id, book.id)

    assert session.get(User, buyer.id).wallet_balance == 0


def test_cannot_buy_own_book(session, service, make_user, make_book):
    seller = make_user("Seller", balance=1000)
    book = make_book(seller, price=100)

    with pytest.raises(BusinessRuleError) as exc:
        service.buy_with_wallet(session, seller.id, book.id)

    assert exc.value.message == "You cannot buy your own book"
    assert session.get(User, seller.id).wallet_balance == 1000


def test_second_purchase_of_same_book_is_rejected(session, service, make_user, make_book):
    seller = make_user("Seller")
    buyer = make_user("Buyer", balance=1000)
    book = make_book(seller, price=200)

    service.buy_with_wallet(session, buyer.id, book.id)

    with pytest.raises(AlreadyOwnedError) as exc:
        service.buy_with_wallet(session, buyer.id, book.id)

    assert exc.value.message == "You already own this book"
    assert session.get(User, buyer.id).wallet_balance == 800
    assert session.get(User, seller.id).wallet_balance == 200
    assert len(session.exec(select(Purchase)).all()) == 1


def test_unknown_or_unavailable_book_is_not_found(session, service, make_user, make_book):
    seller = make_user("Seller")
    buyer = make_user("Buyer", balance=1000)
    hidden = make_book(seller, price=10, is_available=False)

    with pytest.raises(NotFoundError):
        service.buy_with_wallet(session, buyer.id, 9999)

    with pytest.raises(NotFoundError):
        service.buy_with_wallet(session, buyer.id, hidden.id)


def test_amount_does_not_follow_later_price_edits(session, service, make_user, make_book):
    seller = make_user("Seller")
    buyer = make_user("Buyer", balance=1000)
    book = make_book(seller, price=250)

    purchase = service.buy_with_wallet(session, buyer.id, book.id)

    book = session.get(Book, book.id)
    book.price = 999
    session.add(book)
    session.commit()

    assert session.get(Purchase, purchase.id).amount == 250


def test_delivery_failure_after_settlement_is_reported(session, service, mailer, make_user, make_book):
    mailer.accept = False
    seller = make_user("Seller")
    buyer = make_user("Buyer", balance=1000)
    book = make_book(seller, price=500)

    with pytest.raises(DeliveryFailedError):
        service.buy_with_wallet(session, buyer.id, book.id)

    purchase = session.exec(select(Purchase)).one()
    assert purchase.status == PurchaseStatus.completed.value
    assert purchase.pdf_delivered is False
    assert purchase.pdf_delivery_attempts == 1
    assert session.get(User, buyer.id).wallet_balance == 500
    assert session.get(User, seller.id).wallet_balance == 500

    log = session.exec(select(EmailLog)).one()
    assert log.status == "failed"
    assert log.error


def test_pdf_is_attached_when_file_exists(session, service, mailer, upload_root, make_user, make_book):
    (upload_root / "books").mkdir()
    (upload_root / "books" / "guide.pdf").write_bytes(b"%PDF-1.4 test")
    seller = make_user("Seller")
    buyer = make_user("Buyer", balance=1000)
    book = make_book(seller, price=100, title="Guide: Part 1", pdf_file="books/guide.pdf")

    service.buy_with_wallet(session, buyer.id, book.id)

    attachments = mailer.sent[0]["attachments"]
    assert attachments == [("Guide__Part_1.pdf", b"%PDF-1.4 test", "application/pdf")]


def test_missing_pdf_still_sends_with_notice(session, service, mailer, make_user, make_book):
    seller = make_user("Seller")
    buyer = make_user("Buyer", balance=1000)
    book = make_book(seller, price=100, pdf_file=None)

    purchase = service.buy_with_wallet(session, buyer.id, book.id)

    assert purchase.pdf_delivered is True
    assert mailer.sent[0]["attachments"] == []
    assert "has not uploaded a PDF" in mailer.sent[0]["html"]
