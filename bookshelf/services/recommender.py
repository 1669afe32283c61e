"""
Recommendation generation: turns a user's library into new reading suggestions.

Steps:
1. Load every book the user owns
2. Render the library into a single prompt
3. Ask the model for a JSON list of suggestions
4. Decode the answer (malformed output fails the run before any write)
5. Append one row per suggestion, all sharing one timestamp
"""

from __future__ import annotations

import time

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookshelf.config import get_settings
from bookshelf.metrics import RECOMMENDATIONS_CREATED
from bookshelf.models.book import Book
from bookshelf.models.recommendation import Recommendation
from bookshelf.services.generation import decode_suggestions, unwrap
from bookshelf.services.llm_client import TextGenerationClient
from bookshelf.services.prompts import RECOMMEND_BOOKS, render_library

logger = structlog.get_logger()


RECENT_LIMIT = 3


def now_millis() -> int:
    return int(time.time() * 1000)


async def load_library(session: AsyncSession, user_id: int) -> list[Book]:
    result = await session.execute(
        select(Book).where(Book.user_id == user_id).order_by(Book.id)
    )
    return list(result.scalars().all())


async def generate_recommendations(
    session: AsyncSession,
    llm: TextGenerationClient,
    user_id: int,
) -> list[Recommendation]:
    """Generate and persist a new recommendation set for ``user_id``.

    Returns the rows written; an empty library writes nothing and skips the
    model call. Runs are append-only and not deduplicated against earlier ones.
    """
    settings = get_settings()
    books = await load_library(session, user_id)
    if not books:
        logger.info("recommendations_skipped_empty_library", user_id=user_id)
        return []

    raw = await llm.complete(
        RECOMMEND_BOOKS.render(
            library=render_library(books),
            limit=str(settings.max_recommendations),
        ),
        tier=RECOMMEND_BOOKS.tier,
        json_output=RECOMMEND_BOOKS.json_output,
        call_site=RECOMMEND_BOOKS.name,
    )
    suggestions = unwrap(decode_suggestions(raw, fields=("title", "reason")))["suggestions"]

    timestamp = now_millis()
    records = [
        Recommendation(
            user_id=user_id,
            book_title=suggestion["title"],
            reason=suggestion["reason"],
            timestamp=timestamp,
        )
        for suggestion in suggestions[: settings.max_recommendations]
    ]
    session.add_all(records)
    await session.commit()

    RECOMMENDATIONS_CREATED.inc(len(records))
    logger.info(
        "recommendations_generated",
        user_id=user_id,
        library_size=len(books),
        count=len(records),
        timestamp=timestamp,
    )
    return records


async def list_recent_recommendations(
    session: AsyncSession,
    user_id: int,
    limit: int = RECENT_LIMIT,
) -> list[Recommendation]:
    """Newest first, capped at ``limit``."""
    result = await session.execute(
        select(Recommendation)
        .where(Recommendation.user_id == user_id)
        .order_by(Recommendation.timestamp.desc(), Recommendation.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
