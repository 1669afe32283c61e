"""Recommendation endpoints — recent suggestions and manual regeneration."""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from bookshelf.auth.dependencies import get_current_identity, require_identity
from bookshelf.database import get_db
from bookshelf.routers.deps import get_book_service
from bookshelf.schemas.recommendation import (
    GenerateResponse,
    RecommendationListResponse,
    RecommendationResponse,
)
from bookshelf.services.books import BookService
from bookshelf.services.recommender import RECENT_LIMIT, list_recent_recommendations

logger = structlog.get_logger()
router = APIRouter(prefix="/recommendations", tags=["Recommendations"])


@router.get("", response_model=RecommendationListResponse)
async def recent_recommendations(
    db: AsyncSession = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_identity),
):
    """The caller's three most recent recommendations, newest first."""
    owner_id = require_identity(user_id)
    records = await list_recent_recommendations(db, owner_id, limit=RECENT_LIMIT)
    return RecommendationListResponse(
        recommendations=[RecommendationResponse.model_validate(r) for r in records]
    )


@router.post("/generate", response_model=GenerateResponse, status_code=status.HTTP_202_ACCEPTED)
async def generate(
    service: BookService = Depends(get_book_service),
    user_id: Optional[int] = Depends(get_current_identity),
):
    """
    Queue a fresh recommendation run and return immediately.
    The new suggestions show up in ``GET /recommendations`` once the worker finishes.
    """
    task_id = service.request_recommendations(user_id)
    if task_id is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Recommendation generation could not be queued",
        )
    logger.info("recommendations_requested", user_id=user_id, task_id=task_id)
    return GenerateResponse(
        task_id=task_id,
        status="queued",
        message="Recommendation generation has been queued",
    )
