import argparse
import asyncio
import json

from newsdesk import log as newsdesk_log
from newsdesk.config import load_settings
from newsdesk.errors import NewsdeskError
from scout.process.retry import RetryPolicy
from scout.sources.registry import SOURCES, build_source


def _format_ref(ref) -> str:
    published = ref.publish_date.isoformat(timespec="minutes") if ref.publish_date else "-"
    return f"{published:>22}  {ref.url}  {ref.title[:80]}"


async def _check(args) -> int:
    settings = load_settings(require_credentials=False)
    source = build_source(args.source, settings)
    # bounded retries for dry runs
    source.fetcher.policy = RetryPolicy.bounded(settings.fetch_max_retries, settings.fetch_backoff_base)
    try:
        if args.article:
            detail = await source.parse_article(args.article)
            images = [] if args.no_images else await source.resolve_images(detail)
            payload = {
                "url": detail.url,
                "title": detail.title,
                "publish_date": detail.publish_date.isoformat() if detail.publish_date else None,
                "paragraphs": len(detail.body_paragraphs),
                "first_paragraph": detail.body_paragraphs[0][:300],
                "image_candidates": detail.hero_images,
                "valid_images": images,
            }
            print(json.dumps(payload, ensure_ascii=False, indent=2))
            return 0

        refs = await source.fetch_listing(is_startup_phase=args.startup)
        if args.json:
            print(json.dumps([{"url": r.url, "title": r.title} for r in refs], ensure_ascii=False))
            return 0
        print(f"{source.name}: {len(refs)} articles")
        for ref in refs[: args.limit]:
            print(_format_ref(ref))
        return 0
    except NewsdeskError as e:
        print(f"CHECK_FAILED source={source.name} kind={e.kind} err={e}")
        return 1
    finally:
        await source.aclose()


def main() -> int:
    parser = argparse.ArgumentParser(description="Dry-run a source: list articles or parse one, without publishing.")
    parser.add_argument("--source", required=True, choices=sorted(SOURCES))
    parser.add_argument("--article", help="parse a single article URL instead of the listing")
    parser.add_argument("--startup", action="store_true", help="list with startup-phase date rules")
    parser.add_argument("--no-images", action="store_true", help="skip HEAD validation of images")
    parser.add_argument("--limit", type=int, default=50)
    parser.add_argument("--json", action="store_true")
    args = parser.parse_args()

    newsdesk_log.configure(file_logging=False)
    return asyncio.run(_check(args))


if __name__ == "__main__":
    raise SystemExit(main())
