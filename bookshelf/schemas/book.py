"""Book schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class BookCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=255)
    rating: int = Field(..., ge=1, le=5)
    genre: Optional[str] = Field(None, max_length=100)


class BookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    author: Optional[str] = Field(None, min_length=1, max_length=255)
    rating: Optional[int] = Field(None, ge=1, le=5)


class BookResponse(BaseModel):
    id: int
    user_id: int
    title: str
    author: str
    rating: int
    genre: Optional[str]
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BookSuggestion(BaseModel):
    title: str
    author: str


class BookSuggestionResponse(BaseModel):
    query: str
    suggestions: list[BookSuggestion]
