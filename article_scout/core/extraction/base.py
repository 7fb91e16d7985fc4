"""Common interface for article extraction strategies."""

from abc import ABC, abstractmethod
from typing import List

from article_scout.core.extraction.models import ArticleCandidate, SourceInfo


class ExtractionStrategy(ABC):
    """A method of discovering recent articles on a source site.

    Implementations return raw candidates; validation, deduplication and
    ordering happen in the orchestrator. Returning an empty list means
    "nothing found". Raising ``ExtractionFailedError`` means the strategy's
    upstream dependency confirmed it cannot proceed.
    """

    #: Short identifier used in configuration, logs and health records
    name: str = ""

    #: True when candidate URLs may be redirect hops that need canonical resolution
    unstable_urls: bool = False

    @abstractmethod
    async def extract(self, source: SourceInfo) -> List[ArticleCandidate]:
        raise NotImplementedError

    async def close(self) -> None:
        """Release any resources held across runs."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
