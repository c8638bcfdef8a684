from urllib.parse import urljoin

from bs4 import BeautifulSoup

from newsdesk.log import log_event
from scout.ingest.extract import clean_text, filter_listing, parse_date, parse_html, unique_refs
from scout.ingest.images import widest_srcset_entry
from scout.ingest.models import ArticleRef, canonical_url
from scout.sources.base import ORDER_NEWEST_FIRST, NewsSource

MAIN_IMAGE_HOST = "img.assets-d.propublica.org"


def _dimension(value) -> int:
    try:
        return int(str(value or "0").strip())
    except ValueError:
        return 0


class ProPublica(NewsSource):
    name = "propublica"
    base_url = "https://www.propublica.org"
    listing_urls = ["https://www.propublica.org/archive/"]
    emit_order = ORDER_NEWEST_FIRST

    title_selectors = [
        "h1.hed",
        "article h1",
        ".story-header h1",
        ".article-header h1",
        'h1[data-qa="article-title"]',
    ]
    body_selectors = [
        ".body-content p",
        ".story-body p",
        "article .article-body p",
        ".story-text p",
    ]
    image_selectors = [
        ".lead-art img[width][height]",
        "figure.lead-art img[src]",
        ".hero-image img[src]",
        "article figure img[width]",
        ".article-header img",
        ".story-header img",
        "article img[width]",
    ]

    def extract_listing(self, html: str, is_startup_phase: bool = False) -> list[ArticleRef]:
        soup = parse_html(html)
        refs = []
        for item in soup.select(".story-river-item"):
            link = item.select_one("h4.story-river-item__hed a")
            if link is None or not link.get("href"):
                continue
            title = clean_text(link.get_text(" ", strip=True))
            if not title:
                continue
            url = canonical_url(urljoin(self.base_url + "/", link["href"].strip()))

            preview = None
            img = item.select_one(".lead-art img")
            if img is not None:
                widest = widest_srcset_entry(img.get("srcset"))
                if widest:
                    preview = urljoin(self.base_url + "/", widest)

            stamp = item.select_one("time.timestamp")
            date_text = clean_text(stamp.get_text(" ", strip=True)) if stamp else ""
            published = parse_date(date_text)
            if published is None:
                if date_text:
                    log_event("DATE_UNPARSEABLE", source=self.name, url=url, raw=date_text)
                published = self.now()

            refs.append(ArticleRef(url=url, title=title, publish_date=published, preview_image_url=preview))
        return filter_listing(unique_refs(refs), is_startup_phase=is_startup_phase)

    def main_domain_image(self, soup: BeautifulSoup) -> str | None:
        """Largest image served from the ProPublica asset host, by declared width x height."""
        best_url, best_size = None, -1
        for img in soup.find_all("img"):
            src = img.get("src") or img.get("data-src") or ""
            if MAIN_IMAGE_HOST not in src:
                continue
            size = _dimension(img.get("width")) * _dimension(img.get("height"))
            if size > best_size:
                best_url, best_size = src, size
        return self.images.normalize(best_url) if best_url else None

    def image_groups(self, soup: BeautifulSoup) -> list[list[str]]:
        groups = super().image_groups(soup)
        main = self.main_domain_image(soup)
        if main:
            groups.insert(0, [main])
        return groups
