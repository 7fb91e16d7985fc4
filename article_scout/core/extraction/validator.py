"""URL and domain validation for article candidates.

Every candidate, whichever strategy produced it, goes through ``validate``
before it can become a ``ValidatedArticle``. Rules run in a fixed order and
stop at the first failure so the rejection reason is always the earliest
rule that applies.
"""

import re
from typing import Optional
from urllib.parse import urljoin, urlparse

from article_scout.core.extraction.models import (
    ACCEPT,
    ArticleCandidate,
    RejectReason,
    ValidationResult,
    normalize_hostname,
    reject,
)
from article_scout.shared.exceptions import InvalidInputError

# Substrings that identify the search service's grounding redirects
REDIRECT_MARKERS = (
    "vertexaisearch.cloud.google.com",
    "grounding-api-redirect",
    "google.com/grounding",
)

NON_ARTICLE_SLUGS = frozenset({
    "about", "contact", "privacy", "privacy-policy", "terms",
    "terms-of-service", "legal", "careers", "jobs", "team", "faq",
    "help", "support", "docs", "documentation", "login", "signup",
    "dashboard", "app",
})

NON_ARTICLE_PREFIXES = ("/about/", "/contact/", "/privacy", "/terms")

GENERIC_TITLES = frozenset({"Blog", "Home"})

MIN_PATH_LENGTH = 11

_GENERIC_TITLE_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^follow us on",
        r"^posts? related to",
        r"^latest by topic",
        r"^read more",
        r"^view all",
        r"^see more",
        r"^click here",
        r"^subscribe",
        r"^newsletter",
        r"^blog$",
        r"^home$",
        r"^search$",
        r"^category",
        r"^tag:",
        r"^author:",
        r"^article$",
        r"^untitled",
        r"^404",
        r"^500",
        r"internal server error",
        r"^just a moment",
        r"^cloudflare",
        r"access denied",
        r"forbidden",
        r"not found",
    )
]


def _source_parts(source_url: str):
    try:
        parsed = urlparse(source_url)
    except ValueError as e:
        raise InvalidInputError(f"Invalid source URL: {source_url}", {"error": str(e)})
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidInputError(f"Source URL must be absolute http(s): {source_url}")
    base_path = parsed.path.rstrip("/")
    return normalize_hostname(parsed.hostname), base_path


def join_url(base_url: str, href: str) -> Optional[str]:
    """Resolve ``href`` against ``base_url``, or ``None`` if either is malformed."""
    try:
        return urljoin(base_url, href)
    except ValueError:
        return None


def validate_source_url(source_url: str) -> str:
    """Return the normalized source hostname or raise ``InvalidInputError``."""
    hostname, _ = _source_parts(source_url)
    return hostname


def is_redirect_url(url: str) -> bool:
    return any(marker in url for marker in REDIRECT_MARKERS)


def is_non_article_path(path: str) -> bool:
    lowered = path.lower()
    normalized = lowered.rstrip("/")
    if normalized.count("/") == 1 and normalized[1:] in NON_ARTICLE_SLUGS:
        return True
    return lowered.startswith(NON_ARTICLE_PREFIXES)


def validate(candidate: ArticleCandidate, source_url: str) -> ValidationResult:
    """Accept or reject a candidate for the given source URL.

    Raises:
        InvalidInputError: If ``source_url`` itself is not a usable absolute URL
    """
    source_host, base_path = _source_parts(source_url)

    url = (candidate.url or "").strip()
    if not url or url == "null":
        return reject(RejectReason.MISSING_URL)

    if is_redirect_url(url):
        return reject(RejectReason.REDIRECT_URL)

    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError:
        return reject(RejectReason.INVALID_URL)
    if parsed.scheme not in ("http", "https") or not hostname:
        return reject(RejectReason.INVALID_URL)

    if normalize_hostname(hostname) != source_host:
        return reject(RejectReason.WRONG_DOMAIN)

    path = parsed.path or "/"
    if path == "/" or path == base_path or path == base_path + "/":
        return reject(RejectReason.GENERIC_HOMEPAGE)

    if is_non_article_path(path):
        return reject(RejectReason.NON_ARTICLE_PAGE)

    if len(path) < MIN_PATH_LENGTH:
        return reject(RejectReason.PATH_TOO_SHORT)

    title = candidate.title.strip() if candidate.title else ""
    if not title or title in GENERIC_TITLES:
        return reject(RejectReason.GENERIC_TITLE)

    return ACCEPT


def is_generic_title(title: Optional[str]) -> bool:
    """Heuristic filter for navigation/error titles scraped from listing pages."""
    if not title or len(title.strip()) < 10:
        return True
    lowered = title.strip().lower()
    return any(pattern.search(lowered) for pattern in _GENERIC_TITLE_PATTERNS)


def clean_title(title: Optional[str]) -> str:
    """Strip listing-page decorations (pin markers, read-time suffixes, trailing dates)."""
    if not title:
        return ""
    cleaned = title.strip()
    cleaned = re.sub(r"^articlePINNED\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"^(article\s*pinned|pinned\s*article)\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"^(PINNED|article)\s+", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s*\d{4}-\d{2}-\d{1,2}\s*\d+\s*min\s*read.*$", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s*\d+\s*min\s*read.*$", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s*\d{4}-\d{2}-\d{2}.*$", "", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    cleaned = re.sub(r"\.{3,}", "...", cleaned)
    return cleaned
