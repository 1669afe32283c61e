"""
Versioned prompt templates for the enrichment call sites.

Each template knows which model tier it targets and whether the model must
answer with a JSON object, so call sites only supply variables.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from bookshelf.services.llm_client import ModelTier


@dataclass(frozen=True)
class PromptTemplate:
    """
    Immutable prompt template.

    Attributes:
        name:        Identifier used as the metrics/log call site.
        version:     Bumped whenever the wording changes.
        template:    User message with ``{variable}`` placeholders.
        tier:        Model tier the prompt is tuned for.
        json_output: Whether the JSON-object response format is requested.
    """

    name: str
    version: str
    template: str
    tier: ModelTier = ModelTier.FAST
    json_output: bool = False

    def render(self, **kwargs: str) -> str:
        return self.template.format(**kwargs)


DETECT_GENRE = PromptTemplate(
    name="detect_genre",
    version="1.0.0",
    template=(
        'What is the primary genre of the book "{title}" by {author}? '
        'Respond with just a single word genre like "Fantasy", "Mystery", '
        '"Romance", etc.'
    ),
    tier=ModelTier.FAST,
)

# Literal braces are doubled for str.format.
SUGGEST_BOOKS = PromptTemplate(
    name="search_books",
    version="1.0.0",
    template=(
        'Suggest up to {limit} book titles and authors that match "{query}". '
        "Format as JSON like this:\n"
        "{{\n"
        '  "suggestions": [\n'
        '    {{"title": "Book Title", "author": "Author Name"}},\n'
        '    {{"title": "Another Book", "author": "Another Author"}}\n'
        "  ]\n"
        "}}\n"
        "Only include real, well-known books."
    ),
    tier=ModelTier.FAST,
    json_output=True,
)

RECOMMEND_BOOKS = PromptTemplate(
    name="generate_recommendations",
    version="1.0.0",
    template=(
        "Based on these books and ratings:\n"
        "{library}\n\n"
        "Suggest {limit} other books the reader might enjoy. Format as JSON like this:\n"
        "{{\n"
        '  "suggestions": [\n'
        '    {{"title": "Book Title", "reason": "Brief reason"}},\n'
        '    {{"title": "Another Book", "reason": "Another reason"}}\n'
        "  ]\n"
        "}}"
    ),
    tier=ModelTier.STANDARD,
    json_output=True,
)


def format_library_line(title: str, author: str, genre: Optional[str], rating: int) -> str:
    return f'- "{title}" by {author} ({genre or "Unknown"}) - rated {rating}/5'


def render_library(books: Iterable) -> str:
    """One line per book, in the order given."""
    return "\n".join(
        format_library_line(b.title, b.author, b.genre, b.rating) for b in books
    )
