"""Genre enrichment for books added without an explicit genre."""

from __future__ import annotations

import structlog

from bookshelf.config import get_settings
from bookshelf.models.book import GENRE_MAX_LENGTH
from bookshelf.services.llm_client import TextGenerationClient
from bookshelf.services.prompts import DETECT_GENRE

logger = structlog.get_logger()


async def detect_genre(llm: TextGenerationClient, title: str, author: str) -> str:
    """Ask the model for a one-word genre; an empty answer becomes the default genre.

    Transport failures propagate as ``UpstreamGenerationFailure``.
    """
    raw = await llm.complete(
        DETECT_GENRE.render(title=title, author=author),
        tier=DETECT_GENRE.tier,
        json_output=DETECT_GENRE.json_output,
        call_site=DETECT_GENRE.name,
    )
    genre = (raw or "").strip()[:GENRE_MAX_LENGTH].strip()
    if not genre:
        genre = get_settings().default_genre
        logger.info("genre_fallback_used", title=title, genre=genre)
    else:
        logger.info("genre_detected", title=title, genre=genre)
    return genre
