"""Heuristic publication-date and description parsing for article pages.

All functions are pure with respect to their input and return ``None``
rather than raising when nothing usable is found. Every parsed date is
range-checked against a window around the current year so copyright
notices and stray numbers are not mistaken for publication dates.
"""

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, List, Optional, Union

import structlog
from bs4 import BeautifulSoup
from dateutil import parser as date_parser

logger = structlog.get_logger(__name__)

MIN_YEAR_OFFSET = -10
MAX_YEAR_OFFSET = 5

STATIC_TEXT_SCAN_LIMIT = 3000
RENDERED_TEXT_SCAN_LIMIT = 15000
PUBLISHED_CONTEXT_WINDOW = 100

DATE_META_SELECTORS = [
    'meta[property="article:published_time"]',
    'meta[name="article:published_time"]',
    'meta[property="og:article:published_time"]',
    'meta[property="article:published"]',
    'meta[name="publishdate"]',
    'meta[name="pubdate"]',
    'meta[name="date"]',
    'meta[name="DC.date"]',
    'meta[name="published_time"]',
    'meta[itemprop="datePublished"]',
]

DATE_ATTRIBUTE_SELECTORS = [
    ("time[datetime]", "datetime"),
    ("time[pubdate]", "pubdate"),
    ("[datetime]", "datetime"),
    ("[data-date]", "data-date"),
    ("[data-published]", "data-published"),
]

DATE_HINT_SELECTORS = [
    '[class*="date"]',
    '[class*="published"]',
    '[class*="publish"]',
    '[class*="pub-date"]',
    '[class*="post-date"]',
    '[id*="date"]',
]

ARTICLE_HEADER_SELECTORS = [
    "article header",
    ".post-meta",
    ".entry-meta",
    ".article-meta",
    ".byline",
    ".meta",
]

JSON_LD_DATE_FIELDS = ("datePublished", "dateCreated", "dateModified")

DESCRIPTION_META_SELECTORS = [
    'meta[name="description"]',
    'meta[property="og:description"]',
    'meta[name="twitter:description"]',
    'meta[property="article:description"]',
]

ARTICLE_CONTAINER_SELECTORS = [
    "article",
    '[role="article"]',
    "main",
    '[class*="article-content"]',
    '[class*="post-content"]',
    '[class*="entry-content"]',
]

BOILERPLATE_PHRASES = ("cookie", "privacy policy", "consent", "sign up", "subscribe")

_MONTH = (
    r"(Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|"
    r"Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)
_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

RELATIVE_PATTERN = re.compile(r"(\d+)\s*(day|days|hour|hours|week|weeks)\s*ago", re.IGNORECASE)
ISO_DATETIME_PATTERN = re.compile(
    r"\b\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?"
)
MONTH_DAY_YEAR_PATTERN = re.compile(
    _MONTH + r"\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})\b", re.IGNORECASE
)
DAY_MONTH_YEAR_PATTERN = re.compile(
    r"\b(\d{1,2})(?:st|nd|rd|th)?\s+" + _MONTH + r"\.?,?\s+(\d{4})\b", re.IGNORECASE
)
YEAR_MONTH_DAY_PATTERN = re.compile(r"\b(\d{4})[-/](\d{1,2})[-/](\d{1,2})\b")
US_DATE_PATTERN = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")
DAY_MON_YY_PATTERN = re.compile(
    r"\b(\d{1,2})-(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)-(\d{2})\b", re.IGNORECASE
)

Page = Union[str, BeautifulSoup]


def as_soup(page: Page) -> BeautifulSoup:
    if isinstance(page, BeautifulSoup):
        return page
    return BeautifulSoup(page or "", "lxml")


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_sane_date(value: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True when the year lies within [-10, +5] years of the current year."""
    if value is None:
        return False
    now = now or datetime.now(timezone.utc)
    offset = value.year - now.year
    return MIN_YEAR_OFFSET <= offset <= MAX_YEAR_OFFSET


def _month_number(name: str) -> int:
    return _MONTHS[name[:3].lower()]


def _from_match(pattern: re.Pattern, match: re.Match) -> datetime:
    """Build a datetime from a pattern match; raises ValueError on impossible dates."""
    if pattern is ISO_DATETIME_PATTERN:
        return date_parser.isoparse(match.group(0))
    if pattern is MONTH_DAY_YEAR_PATTERN:
        month, day, year = match.groups()
        return datetime(int(year), _month_number(month), int(day))
    if pattern is DAY_MONTH_YEAR_PATTERN:
        day, month, year = match.groups()
        return datetime(int(year), _month_number(month), int(day))
    if pattern is YEAR_MONTH_DAY_PATTERN:
        year, month, day = match.groups()
        return datetime(int(year), int(month), int(day))
    if pattern is US_DATE_PATTERN:
        month, day, year = match.groups()
        return datetime(int(year), int(month), int(day))
    if pattern is DAY_MON_YY_PATTERN:
        day, month, year = match.groups()
        return datetime(2000 + int(year), _month_number(month), int(day))
    raise ValueError(f"Unhandled pattern {pattern.pattern}")


ABSOLUTE_PATTERNS = (
    ISO_DATETIME_PATTERN,
    MONTH_DAY_YEAR_PATTERN,
    DAY_MONTH_YEAR_PATTERN,
    YEAR_MONTH_DAY_PATTERN,
    US_DATE_PATTERN,
    DAY_MON_YY_PATTERN,
)


def parse_relative_date(text: str, now: Optional[datetime] = None) -> Optional[datetime]:
    match = RELATIVE_PATTERN.search(text or "")
    if not match:
        return None
    amount = int(match.group(1))
    unit = match.group(2).lower().rstrip("s")
    now = now or datetime.now(timezone.utc)
    if unit == "hour":
        return now - timedelta(hours=amount)
    if unit == "week":
        return now - timedelta(weeks=amount)
    return now - timedelta(days=amount)


def parse_date(text: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """Find the first plausible date in free text.

    Relative phrases ("3 days ago") are resolved against ``now``. Absolute
    formats are tried most-specific first, and every match that is not a
    real calendar date or falls outside the year window is skipped.
    """
    if not text or not text.strip():
        return None

    now = now or datetime.now(timezone.utc)
    relative = parse_relative_date(text, now)
    if relative is not None:
        return relative

    for pattern in ABSOLUTE_PATTERNS:
        for match in pattern.finditer(text):
            try:
                candidate = _utc(_from_match(pattern, match))
            except (ValueError, OverflowError):
                continue
            if is_sane_date(candidate, now):
                return candidate
    return None


def parse_date_value(value: Any, now: Optional[datetime] = None) -> Optional[datetime]:
    """Parse a structured metadata value (meta content, JSON-LD field, datetime attribute)."""
    if isinstance(value, list):
        for item in value:
            parsed = parse_date_value(item, now)
            if parsed is not None:
                return parsed
        return None
    if not isinstance(value, str) or not value.strip():
        return None

    parsed = parse_date(value, now)
    if parsed is not None:
        return parsed

    try:
        candidate = _utc(date_parser.parse(value.strip()))
    except (ValueError, OverflowError):
        return None
    return candidate if is_sane_date(candidate, now) else None


def load_json_ld(soup: BeautifulSoup) -> List[Any]:
    """Decode every JSON-LD block on the page, skipping malformed ones."""
    blocks = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text() or ""
        if not raw.strip():
            continue
        try:
            blocks.append(json.loads(raw, strict=False))
        except ValueError as e:
            logger.debug("Skipping malformed JSON-LD block", error=str(e))
    return blocks


def iter_json_ld_objects(data: Any) -> Iterator[dict]:
    """Yield every dict in a JSON-LD document, descending into lists and @graph."""
    if isinstance(data, list):
        for item in data:
            yield from iter_json_ld_objects(item)
    elif isinstance(data, dict):
        yield data
        if "@graph" in data:
            yield from iter_json_ld_objects(data["@graph"])


def _attribute_text(element, attribute: str) -> str:
    value = element.get(attribute)
    if attribute == "pubdate" and not value:
        return element.get_text(" ", strip=True)
    return value if isinstance(value, str) else ""


def _body_text(soup: BeautifulSoup) -> str:
    body = soup.body or soup
    return body.get_text(" ", strip=True)


def parse_page_date(
    page: Page,
    now: Optional[datetime] = None,
    text_limit: int = STATIC_TEXT_SCAN_LIMIT,
) -> Optional[datetime]:
    """Locate a publication date on an article page.

    Sources are consulted from most to least reliable: date meta tags,
    JSON-LD, ``time`` elements and date attributes, class-hinted elements,
    article header blocks, the first ``text_limit`` characters of body text,
    and finally the text following the word "Published".
    """
    soup = as_soup(page)
    now = now or datetime.now(timezone.utc)

    for selector in DATE_META_SELECTORS:
        for meta in soup.select(selector):
            parsed = parse_date_value(meta.get("content"), now)
            if parsed:
                return parsed

    for block in load_json_ld(soup):
        for obj in iter_json_ld_objects(block):
            for field in JSON_LD_DATE_FIELDS:
                parsed = parse_date_value(obj.get(field), now)
                if parsed:
                    return parsed

    for selector, attribute in DATE_ATTRIBUTE_SELECTORS:
        for element in soup.select(selector):
            parsed = parse_date_value(_attribute_text(element, attribute), now)
            if parsed:
                return parsed

    for element in soup.select("time"):
        parsed = parse_date(element.get_text(" ", strip=True), now)
        if parsed:
            return parsed

    for selector in DATE_HINT_SELECTORS + ARTICLE_HEADER_SELECTORS:
        for element in soup.select(selector):
            parsed = parse_date(element.get_text(" ", strip=True)[:200], now)
            if parsed:
                return parsed

    text = _body_text(soup)
    parsed = parse_date(text[:text_limit], now)
    if parsed:
        return parsed

    for match in re.finditer(r"published", text, re.IGNORECASE):
        window = text[match.end():match.end() + PUBLISHED_CONTEXT_WINDOW]
        parsed = parse_date(window, now)
        if parsed:
            return parsed

    return None


def _is_boilerplate(text: str) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in BOILERPLATE_PHRASES)


def parse_description(
    page: Page,
    min_length: int = 50,
    max_length: int = 500,
) -> Optional[str]:
    """Pick the most reliable description on an article page.

    Meta description tags win over JSON-LD ``description``/``articleBody``,
    which win over the first substantial paragraph inside an article-like
    container that is not cookie or newsletter boilerplate.
    """
    soup = as_soup(page)

    for selector in DESCRIPTION_META_SELECTORS:
        for meta in soup.select(selector):
            content = (meta.get("content") or "").strip()
            if len(content) > min_length:
                return content[:max_length]

    for block in load_json_ld(soup):
        for obj in iter_json_ld_objects(block):
            for field in ("description", "articleBody"):
                value = obj.get(field)
                if isinstance(value, str) and len(value.strip()) > min_length:
                    return value.strip()[:max_length]

    for selector in ARTICLE_CONTAINER_SELECTORS:
        for container in soup.select(selector):
            for paragraph in container.find_all("p"):
                text = paragraph.get_text(" ", strip=True)
                if len(text) > min_length and not _is_boilerplate(text):
                    return text[:max_length]

    return None
