"""
Background recommendation generation.

The API dispatches one job per book insert (and per manual request); the
worker runs it detached from the request, so failures are only visible in
logs and task state.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog
from kombu.exceptions import OperationalError

from bookshelf.celery_app import celery
from bookshelf.database import isolated_session
from bookshelf.services.llm_client import build_llm_client
from bookshelf.services.recommender import generate_recommendations

logger = structlog.get_logger()


async def _run(user_id: int) -> int:
    # A fresh HTTP client per run: asyncio.run gives every invocation a new loop.
    llm = build_llm_client()
    try:
        async with isolated_session() as session:
            records = await generate_recommendations(session, llm, user_id)
    finally:
        await llm.close()
    return len(records)


@celery.task(
    name="bookshelf.tasks.recommendations.generate_recommendations",
    bind=True,
    max_retries=0,
)
def generate_recommendations_task(self, user_id: int) -> dict:
    """Generate a recommendation set for ``user_id``. Never retried."""
    task_id = self.request.id
    logger.info("recommendation_task_started", task_id=task_id, user_id=user_id)

    try:
        created = asyncio.run(_run(user_id))
    except Exception as exc:
        logger.error(
            "recommendation_task_failed",
            task_id=task_id,
            user_id=user_id,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise

    logger.info(
        "recommendation_task_completed",
        task_id=task_id,
        user_id=user_id,
        created=created,
    )
    return {"status": "completed", "user_id": user_id, "created": created}


def dispatch_recommendations(user_id: int) -> Optional[str]:
    """Queue a generation job; returns the task id, or None if the broker is unreachable."""
    try:
        result = generate_recommendations_task.delay(user_id)
    except OperationalError as exc:
        logger.warning("recommendation_dispatch_failed", user_id=user_id, error=str(exc))
        return None

    logger.info("recommendation_dispatched", user_id=user_id, task_id=result.id)
    return result.id
