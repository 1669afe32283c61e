"""Book routes: the caller's own library plus title/author search."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from bookshelf.auth.dependencies import get_current_identity, require_identity
from bookshelf.routers.deps import get_book_service
from bookshelf.schemas.book import (
    BookCreate,
    BookResponse,
    BookSuggestion,
    BookSuggestionResponse,
    BookUpdate,
)
from bookshelf.services.books import BookService
from bookshelf.services.llm_client import TextGenerationClient, get_llm_client
from bookshelf.services.search import suggest_books

router = APIRouter(prefix="/books", tags=["Books"])


@router.get("", response_model=list[BookResponse])
async def list_books(
    service: BookService = Depends(get_book_service),
    user_id: Optional[int] = Depends(get_current_identity),
):
    """List every book in the caller's library."""
    books = await service.list_books(user_id)
    return [BookResponse.model_validate(b) for b in books]


@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def add_book(
    data: BookCreate,
    service: BookService = Depends(get_book_service),
    user_id: Optional[int] = Depends(get_current_identity),
):
    """
    Add a book. Without a genre one is detected first; recommendation
    generation is queued once the book is stored.
    """
    book = await service.add_book(user_id, data)
    return BookResponse.model_validate(book)


@router.get("/search", response_model=BookSuggestionResponse)
async def search_books(
    q: str = Query("", max_length=200),
    llm: TextGenerationClient = Depends(get_llm_client),
    user_id: Optional[int] = Depends(get_current_identity),
):
    """Suggest up to three title/author pairs matching a partial query."""
    require_identity(user_id)
    suggestions = await suggest_books(llm, q)
    return BookSuggestionResponse(
        query=q,
        suggestions=[BookSuggestion(**s) for s in suggestions],
    )


@router.patch("/{book_id}", response_model=BookResponse)
async def edit_book(
    book_id: int,
    data: BookUpdate,
    service: BookService = Depends(get_book_service),
    user_id: Optional[int] = Depends(get_current_identity),
):
    """Edit title, author or rating of one of the caller's books."""
    book = await service.edit_book(user_id, book_id, data)
    return BookResponse.model_validate(book)


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_book(
    book_id: int,
    service: BookService = Depends(get_book_service),
    user_id: Optional[int] = Depends(get_current_identity),
):
    await service.remove_book(user_id, book_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
