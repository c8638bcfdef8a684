import re
from typing import Callable, Iterable, Optional
from urllib.parse import urljoin

from bs4 import Tag

from newsdesk.errors import FetchError, ImageValidationError
from newsdesk.log import log_event

MAX_HERO_IMAGES = 3

SKIP_CLASSES = ("avatar", "social-icon", "donate-button", "logo", "icon", "banner", "rssfeedimage")
SKIP_PARENT_CLASSES = ("sidebar", "footer", "nav", "widget", "menu", "banner")
# article-level headers hold the hero; site headers and mastheads do not
ARTICLE_HEADER_CLASSES = ("article-header", "entry-header", "post-header", "story-header")
AD_CLASSES = ("ad", "ads", "advert", "advertisement")
SKIP_SRC_PARTS = ("logo", "button", "avatar", "icon", "banner", "/ads/", "placeholder", "data:image")
SKIP_PARENT_TAGS = ("nav", "footer", "aside")

LAZY_SRC_ATTRS = ("data-src", "data-full-src", "data-lazy-src")

_SIZE_SUFFIX_RE = re.compile(r"-\d+x\d+(?=\.[A-Za-z0-9]+(?:$|\?))")


def get_full_resolution_image(url: str) -> str:
    """Turn a WordPress-style thumbnail URL (``img-500x345.jpg``) into the original upload."""
    if not url:
        return url
    return _SIZE_SUFFIX_RE.sub("", url, count=1)


def widest_srcset_entry(srcset: str | None) -> Optional[str]:
    best_url = None
    best_width = -1.0
    for chunk in (srcset or "").split(","):
        parts = chunk.strip().split()
        if not parts:
            continue
        width = 0.0
        if len(parts) > 1:
            descriptor = parts[1].strip().lower()
            try:
                width = float(descriptor.rstrip("wx"))
            except ValueError:
                width = 0.0
        if width > best_width:
            best_url, best_width = parts[0], width
    return best_url


def make_absolute(url: str | None, base_url: str) -> str:
    url = (url or "").strip()
    if not url:
        return ""
    if url.startswith("data:"):
        return url
    if url.startswith("//"):
        return "https:" + url
    return urljoin(base_url.rstrip("/") + "/", url)


def dedupe_by_base_path(urls: Iterable[str]) -> list[str]:
    normalized: dict[str, str] = {}
    for url in urls:
        base = url.split("?", 1)[0]
        if base not in normalized or len(url) < len(normalized[base]):
            normalized[base] = url
    return list(normalized.values())


def is_chrome_class(classes: Iterable[str]) -> bool:
    """True when a class token marks an ad slot or a site header."""
    for token in classes:
        token = token.lower()
        if token in AD_CLASSES or token.startswith("ad-") or token.endswith("-ad"):
            return True
        if ("header" in token or "masthead" in token) and token not in ARTICLE_HEADER_CLASSES:
            return True
    return False


class ImageResolver:
    """Picks hero image URLs out of candidate ``<img>`` elements."""

    def __init__(
        self,
        base_url: str,
        fetcher=None,
        rewrite: Optional[Callable[[str], str]] = None,
        accept_url: Optional[Callable[[str], bool]] = None,
        source: str = "",
    ):
        self.base_url = base_url
        self.fetcher = fetcher
        self.rewrite = rewrite
        self.accept_url = accept_url
        self.source = source

    def is_article_image(self, img: Tag) -> bool:
        img_class = " ".join(img.get("class") or []).lower()
        img_src = (img.get("src") or "").lower()
        if any(c in img_class for c in SKIP_CLASSES) or is_chrome_class(img.get("class") or []):
            return False
        if any(p in img_src for p in SKIP_SRC_PARTS):
            return False
        for parent in img.parents:
            if parent.name in SKIP_PARENT_TAGS:
                return False
            classes = (parent.get("class") or []) if parent.name else []
            parent_class = " ".join(classes).lower()
            if any(p in parent_class for p in SKIP_PARENT_CLASSES) or is_chrome_class(classes):
                return False
        return True

    def _is_usable_url(self, url: str) -> bool:
        if not url or url.startswith("data:"):
            return False
        lower = url.lower()
        if any(p in lower for p in SKIP_SRC_PARTS):
            return False
        if self.accept_url is not None and not self.accept_url(url):
            return False
        return True

    def normalize(self, value: str | None) -> Optional[str]:
        url = make_absolute(value, self.base_url)
        if self.rewrite is not None and url:
            url = self.rewrite(url)
        return url if self._is_usable_url(url) else None

    def image_sources(self, img: Tag) -> list[str]:
        raw = []
        if img.get("src"):
            raw.append(img.get("src"))
        for attr in LAZY_SRC_ATTRS:
            if img.get(attr):
                raw.append(img.get(attr))
                break
        widest = widest_srcset_entry(img.get("srcset") or img.get("data-srcset"))
        if widest:
            raw.append(widest)

        urls = [url for url in (self.normalize(value) for value in raw) if url]
        return dedupe_by_base_path(urls)

    def candidate_urls(self, elements: Iterable[Tag]) -> list[str]:
        out: list[str] = []
        for img in elements:
            if not self.is_article_image(img):
                continue
            for url in self.image_sources(img):
                if url not in out:
                    out.append(url)
        return dedupe_by_base_path(out)

    async def check_image(self, url: str) -> str:
        if self.fetcher is None:
            raise ImageValidationError(f"no fetcher to validate {url}")
        try:
            response = await self.fetcher.head(url)
        except FetchError as e:
            raise ImageValidationError(f"{e.kind}: {e}") from e
        if not 200 <= response.status_code < 300:
            raise ImageValidationError(f"status={response.status_code}")
        content_type = (response.headers.get("content-type") or "").lower()
        if not content_type.startswith("image/") or "svg" in content_type:
            raise ImageValidationError(f"content_type={content_type or '-'}")
        return url

    async def validate(self, urls: Iterable[str], limit: int = MAX_HERO_IMAGES) -> list[str]:
        valid: list[str] = []
        for url in urls:
            try:
                valid.append(await self.check_image(url))
            except ImageValidationError as e:
                log_event("IMAGE_REJECTED", source=self.source, url=url, reason=str(e))
                continue
            if len(valid) >= limit:
                break
        return valid

    async def resolve(self, elements: Iterable[Tag], limit: int = MAX_HERO_IMAGES) -> list[str]:
        return await self.validate(self.candidate_urls(elements), limit=limit)
