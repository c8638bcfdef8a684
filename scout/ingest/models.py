from dataclasses import dataclass, field
from datetime import datetime
from urllib.parse import urldefrag, urlparse

_DROP_QUERY_KEYS = {
    "fbclid",
    "gclid",
    "yclid",
    "igshid",
    "mc_cid",
    "mc_eid",
    "ref",
    "ref_src",
}


def canonical_url(u: str) -> str:
    clean = urldefrag((u or "").strip()).url
    p = urlparse(clean)
    scheme = (p.scheme or "https").lower()
    host = (p.netloc or "").lower()
    path = p.path or "/"
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/")
    keep_params = []
    for part in p.query.split("&"):
        if not part:
            continue
        key = part.split("=", 1)[0].lower()
        if key.startswith("utm_") or key in _DROP_QUERY_KEYS:
            continue
        keep_params.append(part)
    query = "&".join(keep_params)
    return f"{scheme}://{host}{path}{'?' + query if query else ''}"


@dataclass(frozen=True)
class ArticleRef:
    url: str
    title: str = ""
    publish_date: datetime | None = None
    preview_image_url: str | None = None


@dataclass
class ArticleDetail:
    url: str
    title: str
    body_paragraphs: list[str]
    hero_images: list[str] = field(default_factory=list)
    publish_date: datetime | None = None
    # candidates grouped by the selector that produced them, in cascade order
    image_groups: list[list[str]] = field(default_factory=list, repr=False)
