"""Fallible decoding of model output.

Model responses are free text even when JSON mode is requested, so decoding
returns a tagged result instead of raising. Call sites pick the policy:
``unwrap`` propagates ``MalformedGenerationOutput``, others fall back.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

from bookshelf.errors import MalformedGenerationOutput


@dataclass(frozen=True)
class Decoded:
    data: dict[str, Any]


@dataclass(frozen=True)
class Malformed:
    reason: str
    raw: str


DecodeResult = Union[Decoded, Malformed]


def decode_json_object(raw: str | None) -> DecodeResult:
    """Parse ``raw`` as a JSON object."""
    if raw is None or not raw.strip():
        return Malformed(reason="empty response", raw=raw or "")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        return Malformed(reason=f"invalid JSON: {exc.msg}", raw=raw)
    if not isinstance(data, dict):
        return Malformed(reason=f"expected object, got {type(data).__name__}", raw=raw)
    return Decoded(data=data)


def decode_suggestions(
    raw: str | None,
    fields: tuple[str, ...],
    strict: bool = True,
) -> DecodeResult:
    """Decode ``{"suggestions": [...]}`` where every entry has string ``fields``.

    On success ``data["suggestions"]`` holds the entries reduced to ``fields``.
    With ``strict=False`` incomplete entries are dropped instead of failing
    the whole response.
    """
    result = decode_json_object(raw)
    if isinstance(result, Malformed):
        return result

    suggestions = result.data.get("suggestions")
    if not isinstance(suggestions, list):
        return Malformed(reason="missing 'suggestions' array", raw=raw or "")

    cleaned = []
    for index, entry in enumerate(suggestions):
        if not isinstance(entry, dict):
            if not strict:
                continue
            return Malformed(reason=f"suggestion {index} is not an object", raw=raw or "")
        missing = [f for f in fields if not isinstance(entry.get(f), str) or not entry[f].strip()]
        if missing:
            if not strict:
                continue
            return Malformed(
                reason=f"suggestion {index} lacks {', '.join(missing)}",
                raw=raw or "",
            )
        cleaned.append({f: entry[f].strip() for f in fields})

    return Decoded(data={"suggestions": cleaned})


def unwrap(result: DecodeResult) -> dict[str, Any]:
    if isinstance(result, Malformed):
        raise MalformedGenerationOutput(f"Malformed model output: {result.reason}")
    return result.data
