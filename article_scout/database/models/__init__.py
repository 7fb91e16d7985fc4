from .base import Base, BaseModel
from .source import Source
from .article import Article

__all__ = ["Base", "BaseModel", "Source", "Article"]
