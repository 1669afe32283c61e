"""Recommendation response schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class RecommendationResponse(BaseModel):
    id: int
    book_title: str
    reason: str
    timestamp: int

    model_config = {"from_attributes": True}


class RecommendationListResponse(BaseModel):
    recommendations: list[RecommendationResponse]


class GenerateResponse(BaseModel):
    task_id: Optional[str]
    status: str
    message: str
