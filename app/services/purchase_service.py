import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.constants.purchase_status import can_transition
from app.models.book import Book
from app.models.email import EmailLog
from app.models.ownership import BookRelation, UserBookLink
from app.models.purchase import PaymentMethod, Purchase, PurchaseStatus
from app.models.user import User
from app.services.delivery_service import DeliveryOutcome, DeliveryService
from app.services.payment_gateway import RazorpayGateway, make_receipt_id, to_minor_units
from app.utils.errors import (
    AlreadyOwnedError,
    BusinessRuleError,
    DeliveryFailedError,
    InsufficientBalanceError,
    InvalidSignatureError,
    NotAuthorizedError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

DELIVERY_FAILED_AFTER_SETTLEMENT = "Purchase completed but PDF delivery failed; use resend to try again"
PAYMENT_ALREADY_USED = "Payment already used for another purchase"


# ---------- ledger helpers (run inside the caller's transaction) ----------

def debit_wallet(session: Session, user_id: int, amount: float) -> bool:
    """Conditional debit; False when the balance would go negative."""
    result = session.execute(
        update(User)
        .where(User.id == user_id, User.wallet_balance >= amount)
        .values(wallet_balance=User.wallet_balance - amount, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def credit_wallet(session: Session, user_id: int, amount: float):
    session.execute(
        update(User)
        .where(User.id == user_id)
        .values(wallet_balance=User.wallet_balance + amount, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )


def add_book_link(session: Session, user_id: int, book_id: int, relation: BookRelation) -> bool:
    existing = session.exec(
        select(UserBookLink)
        .where(UserBookLink.user_id == user_id)
        .where(UserBookLink.book_id == book_id)
        .where(UserBookLink.relation == relation.value)
    ).first()

    if existing:
        return False

    session.add(UserBookLink(user_id=user_id, book_id=book_id, relation=relation.value))
    return True


def increment_sales_count(session: Session, book_id: int):
    session.execute(
        update(Book)
        .where(Book.id == book_id)
        .values(sales_count=Book.sales_count + 1)
        .execution_options(synchronize_session=False)
    )


def transition_status(session: Session, purchase_id: int, current: str, target: str, **values) -> bool:
    """Compare-and-set on status. False when another writer moved it first."""
    if not can_transition(current, target):
        raise BusinessRuleError(f"Cannot move purchase from {current} to {target}")

    result = session.execute(
        update(Purchase)
        .where(Purchase.id == purchase_id, Purchase.status == current)
        .values(status=target, updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def payment_used_elsewhere(session: Session, purchase_id: int, payment_id: str) -> bool:
    other = session.exec(
        select(Purchase)
        .where(Purchase.razorpay_payment_id == payment_id)
        .where(Purchase.id != purchase_id)
    ).first()
    return other is not None


def record_unsettled_payment(session: Session, purchase_id: int, payment_id: str, signature: str) -> bool:
    """Store a captured payment on a purchase without touching its status."""
    try:
        result = session.execute(
            update(Purchase)
            .where(Purchase.id == purchase_id, Purchase.razorpay_payment_id.is_(None))
            .values(razorpay_payment_id=payment_id, razorpay_signature=signature, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        session.commit()
    except IntegrityError:
        session.rollback()
        return False
    return result.rowcount == 1


def record_delivery_attempt(session: Session, purchase_id: int, outcome: DeliveryOutcome):
    """Sole writer of the delivery-tracking fields on Purchase."""
    values = {
        "pdf_delivery_attempts": Purchase.pdf_delivery_attempts + 1,
        "last_delivery_attempt": outcome.attempted_at,
    }
    if outcome.delivered:
        values["pdf_delivered"] = True

    session.execute(
        update(Purchase)
        .where(Purchase.id == purchase_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    session.add(EmailLog(
        purchase_id=purchase_id,
        to_email=outcome.to_email,
        subject=outcome.subject,
        status="sent" if outcome.delivered else "failed",
        error=outcome.error,
    ))
    session.commit()


class PurchaseService:
    """Order creation, settlement and PDF delivery for book purchases."""

    def __init__(self, gateway: RazorpayGateway, delivery: DeliveryService, currency: str = "INR"):
        self.gateway = gateway
        self.delivery = delivery
        self.currency = currency

    # ---------- lookups ----------

    def _get_book_for_sale(self, session: Session, book_id: int) -> Book:
        book = session.get(Book, book_id)
        if not book or not book.is_available:
            raise NotFoundError("Book not found")
        return book

    def _get_purchase(self, session: Session, purchase_id: int) -> Purchase:
        purchase = session.get(Purchase, purchase_id)
        if not purchase:
            raise NotFoundError("Purchase not found")
        return purchase

    def has_completed_purchase(self, session: Session, buyer_id: int, book_id: int) -> bool:
        existing = session.exec(
            select(Purchase)
            .where(Purchase.buyer_id == buyer_id)
            .where(Purchase.book_id == book_id)
            .where(Purchase.status == PurchaseStatus.completed.value)
        ).first()
        return existing is not None

    def _check_eligibility(self, session: Session, buyer_id: int, book: Book):
        if book.seller_id == buyer_id:
            raise BusinessRuleError("You cannot buy your own book")

        if self.has_completed_purchase(session, buyer_id, book.id):
            raise AlreadyOwnedError()

    # ---------- delivery ----------

    def _deliver(self, session: Session, purchase: Purchase) -> DeliveryOutcome:
        buyer = session.get(User, purchase.buyer_id)
        book = session.get(Book, purchase.book_id)

        outcome = self.delivery.deliver(purchase, buyer, book)
        record_delivery_attempt(session, purchase.id, outcome)
        session.refresh(purchase)

        if not outcome.delivered:
            logger.warning(f"Purchase {purchase.id}: PDF delivery failed ({outcome.error})")
        return outcome

    # ---------- operations ----------

    def create_external_order(self, session: Session, buyer_id: int, book_id: int) -> Tuple[Purchase, Book]:
        book = self._get_book_for_sale(session, book_id)
        self._check_eligibility(session, buyer_id, book)

        amount = book.price
        order_id = self.gateway.create_order(
            amount_minor=to_minor_units(amount),
            currency=self.currency,
            receipt=make_receipt_id(),
            notes={
                "bookId": str(book.id),
                "buyerId": str(buyer_id),
                "sellerId": str(book.seller_id),
            },
        )

        purchase = Purchase(
            buyer_id=buyer_id,
            book_id=book.id,
            seller_id=book.seller_id,
            amount=amount,
            payment_method=PaymentMethod.razorpay.value,
            razorpay_order_id=order_id,
            status=PurchaseStatus.pending.value,
        )
        session.add(purchase)
        session.commit()
        session.refresh(purchase)

        logger.info(f"Purchase {purchase.id} pending on Razorpay order {order_id} (book {book.id}, buyer {buyer_id})")
        return purchase, book

    def verify_external_payment(
        self,
        session: Session,
        order_id: str,
        payment_id: str,
        signature: str,
        requester_id: Optional[int] = None,
    ) -> Tuple[Purchase, bool]:
        """Settle a Razorpay purchase.

        Returns ``(purchase, replayed)``. A repeat call for an already
        settled payment id returns the purchase untouched with
        ``replayed=True``; the seller is credited once.
        """
        if not self.gateway.verify_signature(order_id, payment_id, signature):
            logger.warning(f"Invalid Razorpay signature for order {order_id}")
            raise InvalidSignatureError()

        purchase = session.exec(
            select(Purchase).where(Purchase.razorpay_order_id == order_id)
        ).first()

        if not purchase:
            raise NotFoundError("Purchase not found")

        if requester_id is not None and purchase.buyer_id != requester_id:
            raise NotAuthorizedError("Not authorized")

        if self._is_replay(purchase, payment_id):
            return purchase, True

        if purchase.status != PurchaseStatus.pending.value:
            self._reject_unsettled_payment(session, purchase, payment_id, signature)

        if payment_used_elsewhere(session, purchase.id, payment_id):
            logger.warning(f"Purchase {purchase.id}: payment {payment_id} is already recorded on another purchase")
            raise BusinessRuleError(PAYMENT_ALREADY_USED)

        try:
            settled = transition_status(
                session,
                purchase.id,
                PurchaseStatus.pending.value,
                PurchaseStatus.completed.value,
                razorpay_payment_id=payment_id,
                razorpay_signature=signature,
                pdf_delivered=False,
            )
            if not settled:
                # a concurrent verifier got there first
                session.rollback()
                session.refresh(purchase)
                if self._is_replay(purchase, payment_id):
                    return purchase, True
                self._reject_unsettled_payment(session, purchase, payment_id, signature)

            add_book_link(session, purchase.buyer_id, purchase.book_id, BookRelation.owned)
            add_book_link(session, purchase.seller_id, purchase.book_id, BookRelation.sold)
            credit_wallet(session, purchase.seller_id, purchase.amount)
            increment_sales_count(session, purchase.book_id)
            session.commit()
        except IntegrityError:
            session.rollback()
            # either the payment id or the completed (buyer, book) index
            if payment_used_elsewhere(session, purchase.id, payment_id):
                logger.warning(f"Purchase {purchase.id}: payment {payment_id} is already recorded on another purchase")
                raise BusinessRuleError(PAYMENT_ALREADY_USED)
            logger.error(
                f"Purchase {purchase.id}: payment {payment_id} captured but buyer already owns "
                f"book {purchase.book_id}, needs manual refund"
            )
            raise AlreadyOwnedError()
        except Exception:
            session.rollback()
            raise

        session.refresh(purchase)
        logger.info(f"Purchase {purchase.id} settled via Razorpay payment {payment_id}, seller {purchase.seller_id} credited {purchase.amount}")

        outcome = self._deliver(session, purchase)
        if not outcome.delivered:
            raise DeliveryFailedError(DELIVERY_FAILED_AFTER_SETTLEMENT)

        return purchase, False

    def _reject_unsettled_payment(self, session: Session, purchase: Purchase, payment_id: str, signature: str):
        """A valid payment arrived for a purchase that can no longer settle.

        Razorpay has already captured the money, so the payment id is kept on
        the row for the refund and the status is left as it is.
        """
        if purchase.status in (PurchaseStatus.cancelled.value, PurchaseStatus.failed.value):
            stored = record_unsettled_payment(session, purchase.id, payment_id, signature)
            session.refresh(purchase)
            logger.error(
                f"Purchase {purchase.id}: payment {payment_id} captured on {purchase.status} order "
                f"{purchase.razorpay_order_id}, needs manual refund"
                + ("" if stored else " (payment id not stored)")
            )
        raise BusinessRuleError("Purchase is not pending")

    @staticmethod
    def _is_replay(purchase: Purchase, payment_id: str) -> bool:
        return (
            purchase.status == PurchaseStatus.completed.value
            and purchase.razorpay_payment_id == payment_id
        )

    def buy_with_wallet(self, session: Session, buyer_id: int, book_id: int) -> Purchase:
        book = self._get_book_for_sale(session, book_id)
        self._check_eligibility(session, buyer_id, book)

        amount = book.price
        seller_id = book.seller_id

        try:
            if not debit_wallet(session, buyer_id, amount):
                raise InsufficientBalanceError()

            credit_wallet(session, seller_id, amount)
            add_book_link(session, buyer_id, book_id, BookRelation.owned)
            add_book_link(session, seller_id, book_id, BookRelation.sold)
            increment_sales_count(session, book_id)

            purchase = Purchase(
                buyer_id=buyer_id,
                book_id=book_id,
                seller_id=seller_id,
                amount=amount,
                payment_method=PaymentMethod.wallet.value,
                status=PurchaseStatus.completed.value,
                pdf_delivered=False,
            )
            session.add(purchase)
            session.commit()
        except IntegrityError:
            session.rollback()
            raise AlreadyOwnedError()
        except Exception:
            session.rollback()
            raise

        session.refresh(purchase)
        logger.info(f"Purchase {purchase.id}: buyer {buyer_id} paid {amount} from wallet to seller {seller_id}")

        outcome = self._deliver(session, purchase)
        if not outcome.delivered:
            raise DeliveryFailedError(DELIVERY_FAILED_AFTER_SETTLEMENT)

        return purchase

    def resend_delivery(self, session: Session, purchase_id: int, requester_id: int) -> DeliveryOutcome:
        purchase = self._get_purchase(session, purchase_id)

        if purchase.buyer_id != requester_id:
            raise NotAuthorizedError("Not authorized")

        if purchase.status != PurchaseStatus.completed.value:
            raise BusinessRuleError("Purchase not completed")

        outcome = self._deliver(session, purchase)
        if not outcome.delivered:
            raise DeliveryFailedError("Failed to send PDF")
        return outcome

    def get_purchase(self, session: Session, purchase_id: int, requester_id: int) -> Purchase:
        purchase = self._get_purchase(session, purchase_id)

        if requester_id not in (purchase.buyer_id, purchase.seller_id):
            raise NotAuthorizedError("Not authorized")

        return purchase

    def get_purchase_detail(
        self, session: Session, purchase_id: int, requester_id: int
    ) -> Tuple[Purchase, Optional[Book], Optional[User]]:
        purchase = self.get_purchase(session, purchase_id, requester_id)
        return purchase, session.get(Book, purchase.book_id), session.get(User, purchase.seller_id)

    def cancel_pending_order(self, session: Session, purchase_id: int, requester_id: int) -> Purchase:
        purchase = self._get_purchase(session, purchase_id)

        if purchase.buyer_id != requester_id:
            raise NotAuthorizedError("Not authorized")

        if purchase.status != PurchaseStatus.pending.value:
            raise BusinessRuleError("Only pending purchases can be cancelled")

        if not transition_status(session, purchase.id, PurchaseStatus.pending.value, PurchaseStatus.cancelled.value):
            session.rollback()
            raise BusinessRuleError("Only pending purchases can be cancelled")

        session.commit()
        session.refresh(purchase)
        logger.info(f"Purchase {purchase.id} cancelled by buyer {requester_id}")
        return purchase
