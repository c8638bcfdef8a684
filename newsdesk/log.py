import os
import threading
import time
from datetime import datetime, timezone
from pathlib import Path

LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))
FILE_LOGGING = True

ACTIVITY_LOG = "activity.log"
ERROR_LOG = "errors.log"
ARTICLES_LOG = "new_articles.log"
FETCH_LOG = "monitor/fetch.log"

_ERROR_EVENT_MARKERS = ("ERROR", "FAILED", "FATAL")
_write_lock = threading.Lock()


def configure(log_dir: Path | str | None = None, file_logging: bool = True) -> None:
    global LOG_DIR, FILE_LOGGING
    if log_dir is not None:
        LOG_DIR = Path(log_dir)
    FILE_LOGGING = file_logging


def _fmt_value(value) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float):
        return f"{value:.2f}"
    text = str(value).replace("\n", " ")
    if not text:
        return '""'
    if " " in text:
        return '"' + text.replace('"', "'")[:300] + '"'
    return text


def format_event(event: str, **fields) -> str:
    parts = [event]
    parts.extend(f"{k}={_fmt_value(v)}" for k, v in fields.items())
    return " ".join(parts)


def _append(name: str, line: str) -> None:
    if not FILE_LOGGING:
        return
    path = LOG_DIR / name
    stamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
    try:
        with _write_lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                f.write(f"[{stamp}] {line}\n")
    except OSError as e:
        print(f"LOG_WRITE_FAILED path={path} err={type(e).__name__}")


def log_event(event: str, **fields) -> str:
    line = format_event(event, **fields)
    print(line, flush=True)
    _append(ACTIVITY_LOG, line)
    if any(marker in event for marker in _ERROR_EVENT_MARKERS):
        _append(ERROR_LOG, line)
    return line


def log_fetch_attempt(**fields) -> None:
    line = log_event("FETCH_ATTEMPT", **fields)
    _append(FETCH_LOG, line)


def log_new_article(source: str, url: str) -> None:
    _append(ARTICLES_LOG, f"[{source}] {url}")


def log_path(name: str) -> Path:
    return LOG_DIR / name


class Stats:
    """Process-wide counters. Only ever incremented."""

    def __init__(self):
        self.started_at = time.time()
        self._lock = threading.Lock()
        self.fetches: dict[str, int] = {}
        self.new_articles: dict[str, int] = {}
        self.summaries = 0
        self.published = 0
        self.publish_failed = 0

    def _bump(self, bucket: dict[str, int], source: str, n: int = 1) -> None:
        with self._lock:
            bucket[source] = bucket.get(source, 0) + n

    def incr_fetch(self, source: str) -> None:
        self._bump(self.fetches, source)

    def add_new_articles(self, source: str, n: int) -> None:
        self._bump(self.new_articles, source, n)

    def incr_summaries(self) -> None:
        with self._lock:
            self.summaries += 1

    def incr_published(self, ok: bool = True) -> None:
        with self._lock:
            if ok:
                self.published += 1
            else:
                self.publish_failed += 1

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "uptime_sec": int(time.time() - self.started_at),
                "fetches": dict(self.fetches),
                "new_articles": dict(self.new_articles),
                "summaries": self.summaries,
                "published": self.published,
                "publish_failed": self.publish_failed,
            }


stats = Stats()
