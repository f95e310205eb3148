from datetime import datetime
from typing import Optional
from sqlmodel import Field, SQLModel


class EmailLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    purchase_id: Optional[int] = Field(default=None, foreign_key="purchase.id", index=True)
    to_email: str
    subject: str
    status: str  # sent / failed
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
