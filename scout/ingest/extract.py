import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from bs4 import BeautifulSoup, FeatureNotFound, Tag
from dateutil import parser as date_parser

from newsdesk.errors import ExtractError
from scout.ingest.models import ArticleRef

UNTITLED = "Untitled Article"
MIN_PARAGRAPH_CHARS = 10

DENY_URL_SUBSTRINGS = [
    "/tag/",
    "/tags/",
    "/category/",
    "/author/",
    "/feed/",
    "/page/",  # pagination
    "/newsletter",
    "/wp-json",
    "/wp-admin",
    "/search",
    "/donate",
    "/subscribe",
]

DENY_TITLE_SUBSTRINGS = [
    "donate",
    "subscribe",
    "newsletter",
    "podcast",
    "support our work",
]

CAPTION_CLASS_MARKERS = ("caption", "credit")

PUBLISHED_META_KEYS = [
    ("property", "article:published_time"),
    ("property", "og:published_time"),
    ("name", "pubdate"),
    ("name", "publishdate"),
    ("name", "publish_date"),
    ("name", "date"),
    ("name", "dc.date"),
    ("name", "dc.date.issued"),
]

_TZ_ABBR_RE = re.compile(r"\b(EDT|EST|CDT|CST|MDT|MST|PDT|PST|ET|CT|PT)\b")
_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class Rule:
    """One extraction rule: a CSS selector plus a per-element extractor."""

    selector: str
    extract: Callable[[Tag], Optional[object]]


def element_text(el: Tag) -> Optional[str]:
    text = clean_text(el.get_text(" ", strip=True))
    return text or None


def clean_text(text: str | None) -> str:
    return _WS_RE.sub(" ", text or "").strip()


def parse_html(html: str) -> BeautifulSoup:
    if not html or not html.strip():
        raise ExtractError("empty document", ExtractError.INVALID_DOCUMENT)
    try:
        return BeautifulSoup(html, "html.parser")
    except FeatureNotFound as e:
        raise ExtractError(f"parser unavailable: {e}", ExtractError.INVALID_DOCUMENT) from e


def first_match(soup, rules: Iterable[Rule]) -> tuple[Optional[Rule], list]:
    """Return the first rule that yields at least one non-empty value, with its values."""
    for rule in rules:
        values = []
        for el in soup.select(rule.selector):
            value = rule.extract(el)
            if value:
                values.append(value)
        if values:
            return rule, values
    return None, []


def text_rules(selectors: Iterable[str]) -> list[Rule]:
    return [Rule(sel, element_text) for sel in selectors]


def extract_title(soup, selectors: Iterable[str]) -> str:
    _, values = first_match(soup, text_rules(selectors))
    if values:
        return values[0]
    og = soup.find("meta", attrs={"property": "og:title"})
    if og and clean_text(og.get("content")):
        return clean_text(og.get("content"))
    return UNTITLED


def is_caption(el: Tag) -> bool:
    classes = " ".join(el.get("class") or []).lower()
    if any(marker in classes for marker in CAPTION_CLASS_MARKERS):
        return True
    return el.find_parent("figcaption") is not None


def paragraph_rules(selectors: Iterable[str], min_chars: int = MIN_PARAGRAPH_CHARS) -> list[Rule]:
    def _paragraph(el: Tag) -> Optional[str]:
        if is_caption(el):
            return None
        text = element_text(el)
        if not text or len(text) < min_chars:
            return None
        return text

    return [Rule(sel, _paragraph) for sel in selectors]


def extract_paragraphs(soup, selectors: Iterable[str], min_chars: int = MIN_PARAGRAPH_CHARS) -> list[str]:
    _, paragraphs = first_match(soup, paragraph_rules(selectors, min_chars))
    return paragraphs


def parse_date(raw: str | None) -> Optional[datetime]:
    raw = clean_text(raw)
    if not raw:
        return None
    try:
        dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        cleaned = _TZ_ABBR_RE.sub("", raw)
        cleaned = cleaned.replace("a.m.", "AM").replace("p.m.", "PM").strip(" ,")
        try:
            dt = date_parser.parse(cleaned)
        except (ValueError, OverflowError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def extract_published_at(soup) -> Optional[datetime]:
    for time_tag in soup.find_all("time"):
        dt = parse_date(time_tag.get("datetime"))
        if dt:
            return dt

    for attr, value in PUBLISHED_META_KEYS:
        tag = soup.find("meta", attrs={attr: value})
        if tag and tag.get("content"):
            dt = parse_date(tag["content"])
            if dt:
                return dt

    for el in soup.select("time, .pubdate, .timestamp, .entry-date"):
        dt = parse_date(el.get_text(" ", strip=True))
        if dt:
            return dt
    return None


def is_denied_url(url: str) -> bool:
    u = url.lower()
    return any(d in u for d in DENY_URL_SUBSTRINGS)


def is_denied_title(title: str) -> bool:
    t = (title or "").lower()
    return any(d in t for d in DENY_TITLE_SUBSTRINGS)


def filter_listing(refs: Iterable[ArticleRef], is_startup_phase: bool = False) -> list[ArticleRef]:
    out = []
    for ref in refs:
        if is_denied_url(ref.url):
            continue
        if not is_startup_phase and is_denied_title(ref.title):
            continue
        out.append(ref)
    return out


def unique_refs(refs: Iterable[ArticleRef]) -> list[ArticleRef]:
    seen = set()
    out = []
    for ref in refs:
        if ref.url in seen:
            continue
        seen.add(ref.url)
        out.append(ref)
    return out
