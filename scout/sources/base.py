from datetime import datetime, timezone
from typing import Optional

from bs4 import BeautifulSoup

from newsdesk.errors import ExtractError, FetchError
from newsdesk.log import log_event
from scout.ingest.extract import (
    MIN_PARAGRAPH_CHARS,
    UNTITLED,
    extract_paragraphs,
    extract_published_at,
    extract_title,
    parse_html,
)
from scout.ingest.fetch import Fetcher
from scout.ingest.images import ImageResolver
from scout.ingest.models import ArticleDetail, ArticleRef
from scout.process.retry import RetryPolicy

ORDER_SORTED = "sorted"
ORDER_NEWEST_FIRST = "newest_first"

META_IMAGE_KEYS = [
    ("property", "og:image"),
    ("name", "twitter:image"),
    ("property", "twitter:image"),
]


class NewsSource:
    """One scrape target: listing URLs, selector tables and URL rules.

    Subclasses fill in the tables and ``extract_listing``; fetching, the
    article cascade and image resolution are shared.
    """

    name = ""
    base_url = ""
    listing_urls: list[str] = []
    emit_order = ORDER_SORTED

    title_selectors: list[str] = ["article h1", "h1"]
    body_selectors: list[str] = ["article p"]
    image_selectors: list[str] = ["article img"]

    def __init__(
        self,
        fetcher: Fetcher | None = None,
        article_policy: RetryPolicy | None = None,
        min_paragraph_chars: int = MIN_PARAGRAPH_CHARS,
        now=None,
    ):
        self.fetcher = fetcher or Fetcher(source=self.name, referer=self.base_url)
        self.article_policy = article_policy or RetryPolicy.bounded(3)
        self.min_paragraph_chars = min_paragraph_chars
        self._now = now or (lambda: datetime.now(timezone.utc))
        self.images = ImageResolver(
            self.base_url,
            fetcher=self.fetcher,
            rewrite=self.rewrite_image_url,
            accept_url=self.accept_image_url,
            source=self.name,
        )

    def now(self) -> datetime:
        return self._now()

    def rewrite_image_url(self, url: str) -> str:
        return url

    def accept_image_url(self, url: str) -> bool:
        return True

    def extract_listing(self, html: str, is_startup_phase: bool = False) -> list[ArticleRef]:
        raise NotImplementedError

    async def fetch_listing(self, is_startup_phase: bool = False, on_backoff=None) -> list[ArticleRef]:
        """Fetch listing pages in order; the first page that yields articles wins.

        Every page but the last is fetched with the bounded article policy so a
        dead front page falls through to the next one; the last page gets the
        fetcher's own (unbounded) policy.
        """
        last_error: Optional[Exception] = None
        for i, url in enumerate(self.listing_urls):
            policy = self.article_policy if i < len(self.listing_urls) - 1 else None
            try:
                html = await self.fetcher.fetch_page(url, policy=policy, on_backoff=on_backoff)
                refs = self.extract_listing(html, is_startup_phase=is_startup_phase)
            except (FetchError, ExtractError) as e:
                last_error = e
                log_event("LISTING_FAILED", source=self.name, url=url, kind=e.kind, err=str(e))
                continue
            if refs:
                return refs
            log_event("LISTING_EMPTY", source=self.name, url=url)
        if last_error is not None:
            raise last_error
        return []

    def image_groups(self, soup: BeautifulSoup) -> list[list[str]]:
        groups = []
        for selector in self.image_selectors:
            urls = self.images.candidate_urls(soup.select(selector))
            if urls:
                groups.append(urls)
        return groups

    def meta_image(self, soup: BeautifulSoup) -> Optional[str]:
        for attr, value in META_IMAGE_KEYS:
            tag = soup.find("meta", attrs={attr: value})
            if tag and (tag.get("content") or "").strip():
                url = self.images.normalize(tag["content"])
                if url:
                    return url
        return None

    def extract_article(self, url: str, html: str) -> ArticleDetail:
        soup = parse_html(html)
        title = extract_title(soup, self.title_selectors)
        body = extract_paragraphs(soup, self.body_selectors, self.min_paragraph_chars)
        if not body:
            raise ExtractError(f"no body paragraphs found for {url}", ExtractError.NO_CONTENT)
        groups = self.image_groups(soup)
        meta = self.meta_image(soup)
        if meta:
            groups.append([meta])
        heroes: list[str] = []
        for group in groups:
            heroes.extend(u for u in group if u not in heroes)
        return ArticleDetail(
            url=url,
            title=title,
            body_paragraphs=body,
            hero_images=heroes,
            publish_date=extract_published_at(soup),
            image_groups=groups,
        )

    async def parse_article(self, url: str) -> ArticleDetail:
        html = await self.fetcher.fetch_page(url, policy=self.article_policy)
        detail = self.extract_article(url, html)
        log_event(
            "ARTICLE_PARSED",
            source=self.name,
            url=url,
            has_title=detail.title != UNTITLED,
            paragraphs=len(detail.body_paragraphs),
            image_candidates=len(detail.hero_images),
        )
        return detail

    async def resolve_images(self, detail: ArticleDetail) -> list[str]:
        """Validate candidates group by group; the first group with a valid image wins."""
        for group in detail.image_groups or [detail.hero_images]:
            valid = await self.images.validate(group)
            if valid:
                return valid
        return []

    async def aclose(self) -> None:
        await self.fetcher.aclose()
