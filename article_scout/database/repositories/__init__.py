from .base import BaseRepository
from .source_repo import SourceRepository
from .article_repo import ArticleRepository

__all__ = ["BaseRepository", "SourceRepository", "ArticleRepository"]
