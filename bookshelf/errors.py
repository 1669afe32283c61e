"""Domain error taxonomy and its HTTP rendering."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = structlog.get_logger()


class BookshelfError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: str = "Internal error"

    def __init__(self, detail: str | None = None) -> None:
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class Unauthenticated(BookshelfError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Not authenticated"


class NotFoundOrForbidden(BookshelfError):
    """Target entity is absent or belongs to another user.

    Both cases share one error so callers cannot probe other users' ids.
    """

    status_code = status.HTTP_404_NOT_FOUND
    detail = "Book not found or you do not have permission to modify it"


class UpstreamGenerationFailure(BookshelfError):
    status_code = status.HTTP_502_BAD_GATEWAY
    detail = "Text generation service unavailable"


class MalformedGenerationOutput(BookshelfError):
    status_code = status.HTTP_502_BAD_GATEWAY
    detail = "Text generation service returned an unreadable response"


async def bookshelf_error_handler(request: Request, exc: BookshelfError) -> JSONResponse:
    logger.warning(
        "request_failed",
        error=type(exc).__name__,
        detail=exc.detail,
        path=request.url.path,
    )
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookshelfError, bookshelf_error_handler)
