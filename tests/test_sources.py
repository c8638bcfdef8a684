"""Tests for the per-site listing and article rules."""

import asyncio
from datetime import datetime, timezone

import httpx

from newsdesk.config import Settings
from scout.ingest.fetch import Fetcher
from scout.sources.consortiumnews import ConsortiumNews
from scout.sources.propublica import ProPublica
from scout.sources.registry import SOURCES, build_source
from scout.sources.truthout import Truthout

NOW = datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc)


def fixed_now():
    return NOW


def mock_fetcher(pages: dict, heads: dict | None = None) -> Fetcher:
    heads = heads or {}

    def handler(request):
        url = str(request.url)
        if request.method == "HEAD":
            status, content_type = heads.get(url, (404, "text/html"))
            return httpx.Response(status, headers={"content-type": content_type})
        if url in pages:
            return httpx.Response(200, text=pages[url])
        return httpx.Response(404, text="not found")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    async def no_sleep(_):
        return None

    return Fetcher(source="test", client=client, sleep=no_sleep, report=lambda **_: None)


PROPUBLICA_ARCHIVE = """
<div class="story-river-item">
  <div class="lead-art"><img srcset="/img/a-small.jpg 320w, /img/a-large.jpg 1200w"></div>
  <h4 class="story-river-item__hed"><a href="/article/first-story">First Story</a></h4>
  <time class="timestamp">June 9, 2025, 6 a.m. EDT</time>
</div>
<div class="story-river-item">
  <h4 class="story-river-item__hed"><a href="https://www.propublica.org/article/second-story/">Second Story</a></h4>
  <time class="timestamp">not a date</time>
</div>
<div class="story-river-item">
  <h4 class="story-river-item__hed"><a href="/newsletters/the-big-story">Subscribe to our newsletter</a></h4>
</div>
"""

PROPUBLICA_ARTICLE = """
<html><head><meta property="og:image" content="https://www.propublica.org/og.jpg"></head>
<body>
  <h1 class="hed">Inside the Story</h1>
  <img src="https://img.assets-d.propublica.org/small.jpg" width="100" height="100">
  <img src="https://img.assets-d.propublica.org/big.jpg" width="1200" height="800">
  <figure class="lead-art"><img src="/lead.jpg" width="800" height="600"></figure>
  <div class="body-content">
    <p>ProPublica found that the agency ignored warnings.</p>
    <p class="caption">Caption text that should not appear.</p>
    <p>Officials declined to comment on the findings.</p>
  </div>
</body></html>
"""


class TestProPublica:
    def test_listing_parses_items(self):
        source = ProPublica(fetcher=mock_fetcher({}), now=fixed_now)
        refs = source.extract_listing(PROPUBLICA_ARCHIVE)

        assert [r.url for r in refs] == [
            "https://www.propublica.org/article/first-story",
            "https://www.propublica.org/article/second-story",
        ]
        first, second = refs
        assert first.title == "First Story"
        assert first.preview_image_url == "https://www.propublica.org/img/a-large.jpg"
        assert (first.publish_date.month, first.publish_date.day) == (6, 9)
        assert second.publish_date == NOW

    def test_article_prefers_largest_main_domain_image(self):
        source = ProPublica(fetcher=mock_fetcher({}), now=fixed_now)
        detail = source.extract_article("https://www.propublica.org/article/first-story", PROPUBLICA_ARTICLE)

        assert detail.title == "Inside the Story"
        assert detail.body_paragraphs == [
            "ProPublica found that the agency ignored warnings.",
            "Officials declined to comment on the findings.",
        ]
        assert detail.hero_images[0] == "https://img.assets-d.propublica.org/big.jpg"
        assert detail.image_groups[-1] == ["https://www.propublica.org/og.jpg"]

    def test_resolve_images_falls_through_groups(self):
        heads = {"https://www.propublica.org/lead.jpg": (200, "image/jpeg")}
        source = ProPublica(fetcher=mock_fetcher({}, heads), now=fixed_now)
        detail = source.extract_article("https://www.propublica.org/article/x", PROPUBLICA_ARTICLE)

        assert asyncio.run(source.resolve_images(detail)) == ["https://www.propublica.org/lead.jpg"]

    def test_fetch_listing_and_parse_article(self):
        pages = {
            "https://www.propublica.org/archive/": PROPUBLICA_ARCHIVE,
            "https://www.propublica.org/article/first-story": PROPUBLICA_ARTICLE,
        }
        source = ProPublica(fetcher=mock_fetcher(pages), now=fixed_now)

        async def scenario():
            refs = await source.fetch_listing()
            detail = await source.parse_article(refs[0].url)
            await source.aclose()
            return refs, detail

        refs, detail = asyncio.run(scenario())
        assert len(refs) == 2
        assert detail.title == "Inside the Story"


CONSORTIUM_FRONT = """
<a href="https://consortiumnews.com/2025/06/09/war-powers-debate/">War Powers Debate</a>
<a href="https://consortiumnews.com/2025/06/09/war-powers-debate/#comments">12 comments</a>
<a href="/2025/06/08/sanctions-and-the-south/">Sanctions and the South</a>
<a href="https://consortiumnews.com/2024/12/30/year-in-review/">Year in review</a>
<a href="https://consortiumnews.com/2019/03/01/old-piece/">Old piece</a>
<a href="https://consortiumnews.com/category/commentary/">Commentary</a>
<a href="https://example.com/2025/06/09/elsewhere/">Elsewhere</a>
"""


class TestConsortiumNews:
    def test_listing_keeps_recent_article_shapes_sorted(self):
        source = ConsortiumNews(fetcher=mock_fetcher({}), now=fixed_now)
        refs = source.extract_listing(CONSORTIUM_FRONT)
        assert [r.url for r in refs] == [
            "https://consortiumnews.com/2024/12/30/year-in-review",
            "https://consortiumnews.com/2025/06/08/sanctions-and-the-south",
            "https://consortiumnews.com/2025/06/09/war-powers-debate",
        ]
        assert refs[-1].title == "War Powers Debate"

    def test_falls_back_to_second_listing_page(self):
        pages = {"https://consortiumnews.com/recent-stories/": CONSORTIUM_FRONT}
        source = ConsortiumNews(fetcher=mock_fetcher(pages), now=fixed_now)
        refs = asyncio.run(source.fetch_listing())
        assert len(refs) == 3

    def test_thumbnail_rules(self):
        source = ConsortiumNews(fetcher=mock_fetcher({}), now=fixed_now)
        html = """
        <h1 class="entry-title">Headline</h1>
        <div class="entry-content">
          <div class="wp-caption"><img src="https://consortiumnews.com/wp-content/uploads/2025/06/photo-500x345.jpg">
          <p class="wp-caption-text">A caption under the photo.</p></div>
          <img src="https://consortiumnews.com/wp-content/uploads/2025/06/thumb-150x150.jpg">
          <p>Paragraph one of the commentary piece.</p>
          <p>Paragraph two of the commentary piece.</p>
        </div>
        """
        detail = source.extract_article("https://consortiumnews.com/2025/06/09/x", html)
        assert detail.image_groups[0] == ["https://consortiumnews.com/wp-content/uploads/2025/06/photo.jpg"]
        assert all("150x150" not in u for u in detail.hero_images)
        assert detail.body_paragraphs == [
            "Paragraph one of the commentary piece.",
            "Paragraph two of the commentary piece.",
        ]


TRUTHOUT_LATEST = """
<article><h3><a href="https://truthout.org/articles/fresh-report/">Fresh report</a></h3>
  <time datetime="2025-06-10T08:00:00Z">June 10, 2025</time></article>
<article><h3><a href="https://truthout.org/articles/listen-now/">Podcast: Listen now</a></h3>
  <time datetime="2025-06-10T09:00:00Z">June 10, 2025</time></article>
<article><h3><a href="https://truthout.org/articles/truthout-prize-winners/">Prize winners</a></h3>
  <time datetime="2025-06-10T09:30:00Z">June 10, 2025</time></article>
<article><h3><a href="https://truthout.org/articles/last-week/">Last week</a></h3>
  <time datetime="2025-06-01T08:00:00Z">June 1, 2025</time></article>
<article><h3><a href="https://truthout.org/articles/no-date/">No date</a></h3></article>
"""


class TestTruthout:
    def test_steady_state_applies_recency_and_denylists(self):
        source = Truthout(fetcher=mock_fetcher({}), now=fixed_now)
        refs = source.extract_listing(TRUTHOUT_LATEST)
        assert [r.url for r in refs] == ["https://truthout.org/articles/fresh-report"]

    def test_startup_relaxes_dates(self):
        source = Truthout(fetcher=mock_fetcher({}), now=fixed_now)
        refs = source.extract_listing(TRUTHOUT_LATEST, is_startup_phase=True)
        urls = [r.url for r in refs]
        assert "https://truthout.org/articles/last-week" in urls
        assert "https://truthout.org/articles/no-date" in urls
        assert "https://truthout.org/articles/truthout-prize-winners" not in urls
        undated = next(r for r in refs if r.url.endswith("no-date"))
        assert undated.publish_date == NOW

    def test_regex_fallback(self):
        source = Truthout(fetcher=mock_fetcher({}), now=fixed_now)
        raw = (
            '<div data-x="1">href="https://truthout.org/articles/raw-link/" class="t">Raw link</a>'
            "<span><time>June 10, 2025 7:00 AM</time></span></div>"
        )
        refs = source._regex_candidates(raw)
        assert refs == [("https://truthout.org/articles/raw-link/", "Raw link", "June 10, 2025 7:00 AM")]

    def test_max_age_is_configurable(self):
        source = Truthout(fetcher=mock_fetcher({}), now=fixed_now, max_age_hours=24 * 14)
        urls = [r.url for r in source.extract_listing(TRUTHOUT_LATEST)]
        assert "https://truthout.org/articles/last-week" in urls


class TestRegistry:
    def test_builds_every_source(self):
        settings = Settings(truthout_max_age_hours=48)
        for name in SOURCES:
            source = build_source(name, settings)
            assert source.name == name
            asyncio.run(source.aclose())
        truthout = build_source("Truthout", settings)
        assert truthout.max_age.total_seconds() == 48 * 3600
        asyncio.run(truthout.aclose())

    def test_unknown_source(self):
        try:
            build_source("nowhere", Settings())
        except ValueError as e:
            assert "nowhere" in str(e)
        else:
            raise AssertionError("expected ValueError")
