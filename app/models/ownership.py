from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class BookRelation(str, Enum):
    owned = "owned"
    sold = "sold"


class UserBookLink(SQLModel, table=True):
    """A book in a user's owned set or sold set.

    The unique constraint makes a repeated grant a no-op at the database
    level; ``purchase_service.add_book_link`` checks membership first.
    """

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", "relation", name="uq_user_book_relation"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    book_id: int = Field(foreign_key="book.id", index=True)
    relation: str  # BookRelation value

    created_at: datetime = Field(default_factory=datetime.utcnow)
