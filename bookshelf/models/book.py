"""Book ORM model, one row per book a user has read."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from bookshelf.database import Base

GENRE_MAX_LENGTH = 100


class Book(Base):
    __tablename__ = "books"
    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_books_rating_range"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    genre: Mapped[Optional[str]] = mapped_column(String(GENRE_MAX_LENGTH), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Book id={self.id} user={self.user_id} title={self.title!r}>"
