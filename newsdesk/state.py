import json
import os
from pathlib import Path
from typing import Iterable, Optional

import psycopg2
import psycopg2.extras

from newsdesk.config import Settings
from newsdesk.log import log_event

MEMORY_CAP = 5000


class SeenSet:
    """Insertion-ordered set of article URLs for one source.

    Re-adding a URL keeps its original position. When ``cap`` is exceeded the
    oldest entries are evicted first.
    """

    def __init__(self, urls: Iterable[str] = (), cap: int = MEMORY_CAP):
        self.cap = cap
        self._urls: dict[str, None] = {}
        self.add_all(urls)

    def __contains__(self, url: str) -> bool:
        return url in self._urls

    def __len__(self) -> int:
        return len(self._urls)

    def __iter__(self):
        return iter(list(self._urls))

    def add(self, url: str) -> bool:
        if url in self._urls:
            return False
        self._urls[url] = None
        while len(self._urls) > self.cap:
            del self._urls[next(iter(self._urls))]
        return True

    def add_all(self, urls: Iterable[str]) -> int:
        return sum(1 for u in urls if self.add(u))

    def discard(self, url: str) -> None:
        self._urls.pop(url, None)

    def snapshot(self, limit: int = 100, exclude: Iterable[str] = ()) -> list[str]:
        """Newest ``limit`` URLs, oldest first, leaving out ``exclude``."""
        skip = set(exclude)
        kept = [u for u in self._urls if u not in skip]
        return kept[-limit:] if limit > 0 else []


class JsonSeenStore:
    """One ``{source}_seen_urls.json`` list per source, replaced atomically."""

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def path_for(self, source: str) -> Path:
        return self.directory / f"{source}_seen_urls.json"

    def load(self, source: str) -> Optional[list[str]]:
        path = self.path_for(source)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8") or "[]")
        except (OSError, ValueError) as e:
            log_event("SEEN_STORE_LOAD_FAILED", source=source, path=path, err=str(e))
            return None
        if not isinstance(data, list):
            log_event("SEEN_STORE_LOAD_FAILED", source=source, path=path, err="not a list")
            return None
        return [str(u) for u in data if u]

    def save(self, source: str, urls: list[str]) -> None:
        path = self.path_for(source)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(urls, indent=2), encoding="utf-8")
        os.replace(tmp_path, path)


class PostgresSeenStore:
    """Seen URLs in a ``seen_urls`` table; each save replaces the source's rows."""

    def __init__(self, dsn: str):
        if not dsn:
            raise RuntimeError("missing env DATABASE_URL")
        self.dsn = dsn
        self._schema_ready = False

    def connect(self):
        return psycopg2.connect(self.dsn, cursor_factory=psycopg2.extras.RealDictCursor)

    def _ensure_schema(self, cur) -> None:
        if self._schema_ready:
            return
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS seen_urls (
                source TEXT NOT NULL,
                url TEXT NOT NULL,
                position INTEGER NOT NULL,
                saved_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                PRIMARY KEY (source, url)
            )
            """
        )
        self._schema_ready = True

    def load(self, source: str) -> Optional[list[str]]:
        with self.connect() as conn:
            with conn.cursor() as cur:
                self._ensure_schema(cur)
                cur.execute(
                    "SELECT url FROM seen_urls WHERE source=%s ORDER BY position ASC",
                    (source,),
                )
                rows = cur.fetchall()
        if not rows:
            return None
        return [r["url"] for r in rows]

    def save(self, source: str, urls: list[str]) -> None:
        with self.connect() as conn:
            with conn.cursor() as cur:
                self._ensure_schema(cur)
                cur.execute("DELETE FROM seen_urls WHERE source=%s", (source,))
                if urls:
                    psycopg2.extras.execute_values(
                        cur,
                        "INSERT INTO seen_urls (source, url, position) VALUES %s",
                        [(source, url, i) for i, url in enumerate(urls)],
                    )


def build_store(settings: Settings):
    backend = (settings.seen_store_backend or "file").lower()
    if backend in ("file", "json"):
        return JsonSeenStore(settings.seen_store_dir)
    if backend in ("postgres", "postgresql", "db"):
        return PostgresSeenStore(settings.database_url)
    raise ValueError(f"unknown SEEN_STORE_BACKEND {settings.seen_store_backend!r}")
