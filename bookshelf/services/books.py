"""Book library service: the add-book orchestrator plus owner-checked edit, remove and list."""

from __future__ import annotations

from typing import Callable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookshelf.auth.dependencies import require_identity
from bookshelf.errors import NotFoundOrForbidden
from bookshelf.models.book import Book
from bookshelf.schemas.book import BookCreate, BookUpdate
from bookshelf.services.genre import detect_genre
from bookshelf.services.llm_client import TextGenerationClient

logger = structlog.get_logger()

# Queues recommendation generation for a user id; returns a task id or None.
Dispatcher = Callable[[int], Optional[str]]


class BookService:
    """Every operation takes the caller's identity explicitly and checks it first."""

    def __init__(
        self,
        session: AsyncSession,
        llm: TextGenerationClient,
        dispatch: Dispatcher,
    ) -> None:
        self._session = session
        self._llm = llm
        self._dispatch = dispatch

    async def list_books(self, user_id: Optional[int]) -> list[Book]:
        owner_id = require_identity(user_id)
        result = await self._session.execute(
            select(Book).where(Book.user_id == owner_id).order_by(Book.id)
        )
        return list(result.scalars().all())

    async def add_book(self, user_id: Optional[int], data: BookCreate) -> Book:
        """
        Add a book to the caller's library.

        A missing genre is filled in by the model before the insert, so a
        generation failure leaves nothing behind. Recommendation generation is
        queued only after the insert is committed, which guarantees the job
        sees the new book.
        """
        owner_id = require_identity(user_id)

        genre = (data.genre or "").strip()
        if not genre:
            genre = await detect_genre(self._llm, data.title, data.author)

        book = Book(
            user_id=owner_id,
            title=data.title,
            author=data.author,
            rating=data.rating,
            genre=genre,
        )
        self._session.add(book)
        await self._session.commit()
        await self._session.refresh(book)

        logger.info("book_added", user_id=owner_id, book_id=book.id, genre=genre)

        self._dispatch(owner_id)
        return book

    async def edit_book(
        self, user_id: Optional[int], book_id: int, data: BookUpdate
    ) -> Book:
        owner_id = require_identity(user_id)
        book = await self._get_owned(owner_id, book_id)

        update_data = data.model_dump(exclude_unset=True, exclude_none=True)
        for field, value in update_data.items():
            setattr(book, field, value)

        await self._session.commit()
        logger.info("book_updated", user_id=owner_id, book_id=book_id, fields=sorted(update_data))
        return book

    async def remove_book(self, user_id: Optional[int], book_id: int) -> None:
        owner_id = require_identity(user_id)
        book = await self._get_owned(owner_id, book_id)
        await self._session.delete(book)
        await self._session.commit()
        logger.info("book_removed", user_id=owner_id, book_id=book_id)

    def request_recommendations(self, user_id: Optional[int]) -> Optional[str]:
        """Manually queue a regeneration for the caller."""
        owner_id = require_identity(user_id)
        return self._dispatch(owner_id)

    async def _get_owned(self, owner_id: int, book_id: int) -> Book:
        book = await self._session.get(Book, book_id)
        if book is None or book.user_id != owner_id:
            raise NotFoundOrForbidden()
        return book
