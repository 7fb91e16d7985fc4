"""Data model for article discovery.

Candidates are transient values produced by extractors. They become
``ValidatedArticle`` instances only after passing the URL/domain validator,
and every orchestrator run leaves a ``ScrapeHealthRecord`` behind for the
source-management screens.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import urlparse


@dataclass(frozen=True)
class SourceInfo:
    """The subset of a stored source the pipeline needs."""

    url: str
    name: str = "Unknown Source"
    category: str = "General"
    id: Optional[Any] = None
    is_paused: bool = False

    @property
    def hostname(self) -> str:
        return normalize_hostname(urlparse(self.url).hostname or "")

    @classmethod
    def from_record(cls, record: Any) -> "SourceInfo":
        """Build from a storage row or any object exposing the same attributes."""
        return cls(
            url=record.url,
            name=getattr(record, "name", None) or "Unknown Source",
            category=getattr(record, "category", None) or "General",
            id=getattr(record, "id", None),
            is_paused=bool(getattr(record, "is_paused", False)),
        )


@dataclass
class ArticleCandidate:
    title: str
    url: str
    description: str = ""
    published_at: Optional[datetime] = None


@dataclass
class ValidatedArticle:
    title: str
    url: str
    description: str
    published_at: Optional[datetime]
    source_id: Optional[Any]
    source_name: str
    category: str

    @classmethod
    def from_candidate(cls, candidate: ArticleCandidate, source: SourceInfo) -> "ValidatedArticle":
        return cls(
            title=candidate.title.strip(),
            url=candidate.url,
            description=candidate.description or "",
            published_at=candidate.published_at,
            source_id=source.id,
            source_name=source.name,
            category=source.category,
        )


class RejectReason(str, Enum):
    MISSING_URL = "missing_url"
    REDIRECT_URL = "redirect_url"
    INVALID_URL = "invalid_url"
    WRONG_DOMAIN = "wrong_domain"
    GENERIC_HOMEPAGE = "generic_homepage"
    NON_ARTICLE_PAGE = "non_article_page"
    PATH_TOO_SHORT = "path_too_short"
    GENERIC_TITLE = "generic_title"


@dataclass(frozen=True)
class ValidationResult:
    accepted: bool
    reason: Optional[RejectReason] = None

    def __bool__(self) -> bool:
        return self.accepted


ACCEPT = ValidationResult(accepted=True)


def reject(reason: RejectReason) -> ValidationResult:
    return ValidationResult(accepted=False, reason=reason)


@dataclass
class ScrapeHealthRecord:
    articles_found: int
    articles_after_filter: int
    success: bool
    method: str
    domain: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None

    @property
    def articles_filtered(self) -> int:
        return max(self.articles_found - self.articles_after_filter, 0)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.isoformat()
        payload["articles_filtered"] = self.articles_filtered
        return payload


def normalize_hostname(hostname: str) -> str:
    """Lower-case a hostname and strip one leading ``www.``."""
    hostname = (hostname or "").lower()
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname


def newest_first_key(published_at: Optional[datetime]):
    """Sort key placing dated items newest-first and undated items last."""
    if published_at is None:
        return (1, 0.0)
    if published_at.tzinfo is None:
        published_at = published_at.replace(tzinfo=timezone.utc)
    return (0, -published_at.timestamp())
