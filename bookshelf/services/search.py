"""Interactive title/author suggestions while the user types."""

from __future__ import annotations

import structlog

from bookshelf.config import get_settings
from bookshelf.services.cache import get_cached, set_cached
from bookshelf.services.generation import Malformed, decode_suggestions
from bookshelf.services.llm_client import TextGenerationClient
from bookshelf.services.prompts import SUGGEST_BOOKS

logger = structlog.get_logger()


def _cache_key(query: str) -> str:
    return f"search:suggestions:{query.lower()}"


async def suggest_books(llm: TextGenerationClient, query: str) -> list[dict[str, str]]:
    """
    Return up to ``max_search_suggestions`` ``{"title", "author"}`` pairs for ``query``.

    Best effort: short queries return ``[]`` without calling the model and an
    unreadable model answer is logged and treated as no suggestions.
    """
    settings = get_settings()
    query = query.strip()
    if len(query) < settings.min_search_query_length:
        return []

    cache_key = _cache_key(query)
    cached = await get_cached(cache_key)
    if cached is not None:
        logger.info("search_cache_hit", query=query)
        return cached

    raw = await llm.complete(
        SUGGEST_BOOKS.render(query=query, limit=str(settings.max_search_suggestions)),
        tier=SUGGEST_BOOKS.tier,
        json_output=SUGGEST_BOOKS.json_output,
        call_site=SUGGEST_BOOKS.name,
    )

    result = decode_suggestions(raw, fields=("title", "author"), strict=False)
    if isinstance(result, Malformed):
        logger.warning("search_suggestions_malformed", query=query, reason=result.reason)
        return []

    suggestions = result.data["suggestions"][: settings.max_search_suggestions]
    logger.info("search_suggestions_served", query=query, count=len(suggestions))
    await set_cached(cache_key, suggestions, ttl_seconds=settings.search_cache_ttl_seconds)
    return suggestions
