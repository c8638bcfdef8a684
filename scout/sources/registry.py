from newsdesk.config import Settings
from scout.ingest.fetch import Fetcher
from scout.process.retry import RetryPolicy
from scout.sources.base import NewsSource
from scout.sources.consortiumnews import ConsortiumNews
from scout.sources.propublica import ProPublica
from scout.sources.truthout import Truthout

SOURCES: dict[str, type[NewsSource]] = {
    ProPublica.name: ProPublica,
    ConsortiumNews.name: ConsortiumNews,
    Truthout.name: Truthout,
}


def listing_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy.background(
        base_delay=settings.fetch_backoff_base,
        fast_attempts=settings.fetch_max_retries,
        long_delay=settings.fetch_long_retry,
        jitter=settings.fetch_jitter,
    )


def article_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy.bounded(
        max_attempts=settings.fetch_max_retries,
        base_delay=settings.fetch_backoff_base,
        jitter=settings.fetch_jitter,
    )


def build_source(name: str, settings: Settings, fetcher: Fetcher | None = None, now=None) -> NewsSource:
    try:
        cls = SOURCES[name.strip().lower()]
    except KeyError:
        raise ValueError(f"unknown source {name!r}; known: {', '.join(sorted(SOURCES))}") from None

    if fetcher is None:
        fetcher = Fetcher(
            source=cls.name,
            referer=cls.base_url,
            timeout=settings.fetch_timeout,
            policy=listing_policy(settings),
        )
    kwargs = {
        "fetcher": fetcher,
        "article_policy": article_policy(settings),
        "min_paragraph_chars": settings.min_paragraph_chars,
        "now": now,
    }
    if cls is Truthout:
        kwargs["max_age_hours"] = settings.truthout_max_age_hours
    return cls(**kwargs)
