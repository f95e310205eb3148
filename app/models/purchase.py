from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Index, text
from sqlmodel import SQLModel, Field


# ---------- ENUMS (SAFE FOR SQLMODEL) ----------

class PurchaseStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class PaymentMethod(str, Enum):
    razorpay = "razorpay"
    wallet = "wallet"


# ---------- MODEL ----------

class Purchase(SQLModel, table=True):
    __table_args__ = (
        # one completed purchase per (buyer, book)
        Index(
            "uq_purchase_completed_buyer_book",
            "buyer_id",
            "book_id",
            unique=True,
            postgresql_where=text("status = 'completed'"),
            sqlite_where=text("status = 'completed'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    buyer_id: int = Field(foreign_key="user.id", index=True)
    book_id: int = Field(foreign_key="book.id", index=True)
    seller_id: int = Field(foreign_key="user.id", index=True)

    amount: float = Field(nullable=False)
    payment_method: str  # PaymentMethod value

    razorpay_order_id: Optional[str] = Field(default=None, index=True)
    razorpay_payment_id: Optional[str] = Field(default=None, unique=True)
    razorpay_signature: Optional[str] = None

    status: str = Field(default=PurchaseStatus.pending.value)

    pdf_delivered: bool = False
    pdf_delivery_attempts: int = 0
    last_delivery_attempt: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
