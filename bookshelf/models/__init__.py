from bookshelf.models.book import Book
from bookshelf.models.recommendation import Recommendation
from bookshelf.models.user import User

__all__ = ["Book", "Recommendation", "User"]
