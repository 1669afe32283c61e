"""Service wiring for route handlers; tests swap these out via dependency_overrides."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bookshelf.database import get_db
from bookshelf.services.books import BookService, Dispatcher
from bookshelf.services.llm_client import TextGenerationClient, get_llm_client
from bookshelf.tasks.recommendations import dispatch_recommendations


def get_dispatcher() -> Dispatcher:
    return dispatch_recommendations


def get_book_service(
    db: AsyncSession = Depends(get_db),
    llm: TextGenerationClient = Depends(get_llm_client),
    dispatch: Dispatcher = Depends(get_dispatcher),
) -> BookService:
    return BookService(db, llm, dispatch)
