import re
from datetime import timedelta
from urllib.parse import urljoin

from newsdesk.log import log_event
from scout.ingest.extract import clean_text, filter_listing, parse_date, parse_html, unique_refs
from scout.ingest.models import ArticleRef, canonical_url
from scout.sources.base import ORDER_SORTED, NewsSource

ARTICLE_URL_RE = re.compile(r"^https://truthout\.org/articles/[a-z0-9-]+/?$")
# fallback for markup where links and times are not nested the usual way
RAW_LISTING_RE = re.compile(
    r'href="(https://truthout\.org/articles/[a-z0-9-]+/?)"[^>]*>([^<]+)</a>.*?<time[^>]*>([^<]+)',
    re.S,
)
EXTRA_DENY_URL_SUBSTRINGS = ("center-for-grassroots-journalism", "prize", "submission-guidelines")


class Truthout(NewsSource):
    name = "truthout"
    base_url = "https://truthout.org"
    listing_urls = ["https://truthout.org/latest/"]
    emit_order = ORDER_SORTED

    title_selectors = ["h1.entry-title", ".article-header h1", "article h1", "h1"]
    body_selectors = [".article-body p", ".entry-content p"]
    image_selectors = [
        ".featured-image img",
        ".article-header img",
        "article img.wp-post-image",
        ".entry-content img:not(.avatar)",
        "article .content img",
    ]

    def __init__(self, *args, max_age_hours: int = 24, **kwargs):
        super().__init__(*args, **kwargs)
        self.max_age = timedelta(hours=max_age_hours)

    def _anchor_candidates(self, soup) -> list[tuple[str, str, str]]:
        out = []
        for a in soup.find_all("a", href=True):
            href = urljoin(self.base_url + "/", a["href"].strip()).split("#", 1)[0]
            if not ARTICLE_URL_RE.match(href):
                continue
            time_tag = a.find_next("time")
            raw_date = ""
            if time_tag is not None:
                raw_date = time_tag.get("datetime") or time_tag.get_text(" ", strip=True)
            out.append((href, clean_text(a.get_text(" ", strip=True)), raw_date))
        return out

    def _regex_candidates(self, html: str) -> list[tuple[str, str, str]]:
        return [(m.group(1), clean_text(m.group(2)), m.group(3)) for m in RAW_LISTING_RE.finditer(html)]

    def extract_listing(self, html: str, is_startup_phase: bool = False) -> list[ArticleRef]:
        soup = parse_html(html)
        candidates = self._anchor_candidates(soup) or self._regex_candidates(html)

        now = self.now()
        by_url: dict[str, ArticleRef] = {}
        for href, title, raw_date in candidates:
            if any(d in href for d in EXTRA_DENY_URL_SUBSTRINGS):
                continue
            url = canonical_url(href)
            if url in by_url and by_url[url].title:
                continue
            published = parse_date(raw_date)
            if published is None:
                if not is_startup_phase:
                    log_event("DATE_UNPARSEABLE", source=self.name, url=url, raw=raw_date)
                    continue
                published = now
            if not is_startup_phase and published < now - self.max_age:
                continue
            by_url[url] = ArticleRef(url=url, title=title, publish_date=published)

        refs = sorted(by_url.values(), key=lambda r: r.url)
        return filter_listing(unique_refs(refs), is_startup_phase=is_startup_phase)
