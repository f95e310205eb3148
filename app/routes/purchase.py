from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from app.database import get_session
from app.dependencies.purchase import get_purchase_service
from app.models.user import User
from app.schemas.purchase_schemas import (
    BookPurchaseRequest,
    CreateOrderResponse,
    MessageResponse,
    PurchaseBookSummary,
    PurchaseDetail,
    PurchaseMessageResponse,
    PurchaseRead,
    PurchaseSellerSummary,
    RazorpayPaymentVerifySchema,
)
from app.services.purchase_service import PurchaseService
from app.utils.token import get_current_user

router = APIRouter()


@router.post("/create-order", response_model=CreateOrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: BookPurchaseRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    service: PurchaseService = Depends(get_purchase_service),
):
    purchase, book = service.create_external_order(session, current_user.id, payload.book_id)

    return {
        "order_id": purchase.razorpay_order_id,
        "amount": purchase.amount,
        "currency": service.currency,
        "purchase_id": purchase.id,
        "razorpay_key": service.gateway.key_id,
        "book": {"id": book.id, "title": book.title, "author": book.author},
    }


@router.post("/verify-payment", response_model=PurchaseMessageResponse)
def verify_payment(
    payload: RazorpayPaymentVerifySchema,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    service: PurchaseService = Depends(get_purchase_service),
):
    purchase, replayed = service.verify_external_payment(
        session,
        order_id=payload.razorpay_order_id,
        payment_id=payload.razorpay_payment_id,
        signature=payload.razorpay_signature,
        requester_id=current_user.id,
    )

    return {
        "message": "Payment already verified" if replayed else "Payment verified successfully",
        "purchase": PurchaseRead.model_validate(purchase),
    }


@router.post("/buy-with-wallet", response_model=PurchaseMessageResponse, status_code=status.HTTP_201_CREATED)
def buy_with_wallet(
    payload: BookPurchaseRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    service: PurchaseService = Depends(get_purchase_service),
):
    purchase = service.buy_with_wallet(session, current_user.id, payload.book_id)

    return {
        "message": "Book purchased successfully",
        "purchase": PurchaseRead.model_validate(purchase),
    }


@router.post("/resend-pdf/{purchase_id}", response_model=MessageResponse)
def resend_pdf(
    purchase_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    service: PurchaseService = Depends(get_purchase_service),
):
    service.resend_delivery(session, purchase_id, current_user.id)
    return {"message": "PDF resent successfully"}


@router.post("/{purchase_id}/cancel", response_model=PurchaseMessageResponse)
def cancel_purchase(
    purchase_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    service: PurchaseService = Depends(get_purchase_service),
):
    purchase = service.cancel_pending_order(session, purchase_id, current_user.id)

    return {
        "message": "Purchase cancelled",
        "purchase": PurchaseRead.model_validate(purchase),
    }


@router.get("/{purchase_id}", response_model=PurchaseDetail)
def get_purchase(
    purchase_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    service: PurchaseService = Depends(get_purchase_service),
):
    purchase, book, seller = service.get_purchase_detail(session, purchase_id, current_user.id)

    detail = PurchaseDetail.model_validate(purchase)
    if book:
        detail.book = PurchaseBookSummary.model_validate(book)
    if seller:
        detail.seller = PurchaseSellerSummary.model_validate(seller)
    return detail
