from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class BookPurchaseRequest(CamelModel):
    book_id: int


class RazorpayPaymentVerifySchema(CamelModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class PurchaseBookSummary(CamelModel):
    id: int
    title: str
    author: str


class CreateOrderResponse(CamelModel):
    order_id: str
    amount: float  # major units, never paise
    currency: str
    purchase_id: int
    razorpay_key: str
    book: PurchaseBookSummary


class PurchaseRead(CamelModel):
    id: int
    buyer_id: int
    book_id: int
    seller_id: int
    amount: float
    payment_method: str
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    status: str
    pdf_delivered: bool
    pdf_delivery_attempts: int
    last_delivery_attempt: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class PurchaseSellerSummary(CamelModel):
    id: int
    name: str
    email: str


class PurchaseDetail(PurchaseRead):
    book: Optional[PurchaseBookSummary] = None
    seller: Optional[PurchaseSellerSummary] = None


class PurchaseMessageResponse(CamelModel):
    message: str
    purchase: PurchaseRead


class MessageResponse(BaseModel):
    message: str
