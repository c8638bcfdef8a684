import re
from urllib.parse import urljoin

from scout.ingest.extract import clean_text, filter_listing, parse_html, unique_refs
from scout.ingest.images import get_full_resolution_image
from scout.ingest.models import ArticleRef, canonical_url
from scout.sources.base import ORDER_SORTED, NewsSource

ARTICLE_URL_RE = re.compile(r"^https://consortiumnews\.com/(\d{4})/\d{2}/(?:\d{2}/)?[\w-]+/?$")
THUMBNAIL_MARKERS = ("-150x150", "-100x100")


class ConsortiumNews(NewsSource):
    name = "consortiumnews"
    base_url = "https://consortiumnews.com"
    listing_urls = [
        "https://consortiumnews.com/",
        "https://consortiumnews.com/recent-stories/",
    ]
    emit_order = ORDER_SORTED

    title_selectors = ["h1.entry-title", "article h1", "h1"]
    body_selectors = [".entry-content > p", "article .post-content > p"]
    image_selectors = [
        ".entry-content .wp-caption img",
        '.entry-content img[src*="wp-content/uploads"]',
        ".featured-image img",
        ".post-thumbnail img",
        ".entry-content img",
        "article .post-content img",
    ]

    def accepted_years(self) -> set[int]:
        year = self.now().year
        return {year, year - 1}

    def extract_listing(self, html: str, is_startup_phase: bool = False) -> list[ArticleRef]:
        soup = parse_html(html)
        years = self.accepted_years()
        by_url: dict[str, ArticleRef] = {}
        for a in soup.find_all("a", href=True):
            href = urljoin(self.base_url + "/", a["href"].strip()).split("#", 1)[0]
            m = ARTICLE_URL_RE.match(href)
            if not m or int(m.group(1)) not in years:
                continue
            url = canonical_url(href)
            title = clean_text(a.get_text(" ", strip=True))
            if url not in by_url or (title and not by_url[url].title):
                by_url[url] = ArticleRef(url=url, title=title)
        refs = sorted(by_url.values(), key=lambda r: r.url)
        return filter_listing(unique_refs(refs), is_startup_phase=is_startup_phase)

    def rewrite_image_url(self, url: str) -> str:
        if any(marker in url for marker in THUMBNAIL_MARKERS):
            return url
        return get_full_resolution_image(url)

    def accept_image_url(self, url: str) -> bool:
        return not any(marker in url for marker in THUMBNAIL_MARKERS)
