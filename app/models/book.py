from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class Book(SQLModel, table=True):
    #main info
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    author: str
    description: str = ""

    #Shop Details
    price: float = Field(ge=0)
    is_available: bool = True
    verification_status: str = Field(default="pending")  # pending | verified | rejected
    sales_count: int = 0

    #Files
    pdf_file: Optional[str] = None  # relative to settings.UPLOAD_ROOT
    cover_image: Optional[str] = None

    #Seller
    seller_id: int = Field(foreign_key="user.id", index=True)

    #timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
