import asyncio
import time
from typing import Callable, Iterable, Optional

from newsdesk.config import Settings
from newsdesk.errors import ExtractError, FetchError, PublishError, SummarizeError
from newsdesk.log import log_event, log_new_article, stats
from newsdesk.state import SeenSet
from scout.ingest.models import ArticleRef
from scout.process.poller import CYCLE_OK, PHASE_BACKOFF, Poller, PollState
from scout.process.retry import RetryPolicy


class SourceRunner:
    """Poll loop for one source: cycle, drain new articles, persist, sleep."""

    def __init__(
        self,
        source,
        store,
        summarizer,
        publisher,
        settings: Settings,
        sleep: Callable = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.source = source
        self.store = store
        self.summarizer = summarizer
        self.publisher = publisher
        self.settings = settings
        self.sleep = sleep
        self.clock = clock

        self.seen = SeenSet()
        self.state = PollState(source=source.name, current_interval=settings.poll_initial_interval)
        self.poller = Poller(
            source,
            self.seen,
            self.state,
            min_interval=settings.poll_min_interval,
            max_interval=settings.poll_max_interval,
            clock=clock,
        )
        self.summary_policy = RetryPolicy.fixed(settings.summary_retry_delay)
        self.pending: dict[str, None] = {}
        self.attempts: dict[str, int] = {}
        self.started = False

    @property
    def name(self) -> str:
        return self.source.name

    async def start(self) -> None:
        """Load persisted state, or seed from the live listing when there is none."""
        persisted = await asyncio.to_thread(self.store.load, self.name)
        if persisted is not None:
            self.seen.add_all(persisted)
            log_event("SEEN_LOADED", source=self.name, urls=len(persisted))
        elif self.settings.seed_on_startup:
            await self.poller.seed()
            self.flush()
        else:
            log_event("SEED_DISABLED", source=self.name)
        self.started = True

    def flush(self) -> None:
        snapshot = self.seen.snapshot(self.settings.seen_store_limit, exclude=self.pending)
        try:
            self.store.save(self.name, snapshot)
        except Exception as e:
            log_event("SEEN_STORE_SAVE_FAILED", source=self.name, err=f"{type(e).__name__}: {e}")

    async def run_forever(self) -> None:
        log_event("SOURCE_START", source=self.name, interval_s=int(self.state.current_interval))
        try:
            while True:
                if not self.started:
                    try:
                        await self.start()
                    except Exception as e:
                        self.state.last_error = f"{type(e).__name__}: {e}"
                        log_event("SOURCE_START_FAILED", source=self.name, err=self.state.last_error)
                        await self.sleep(self.state.current_interval)
                        continue

                result = await self.poller.run_cycle()
                if result.status == CYCLE_OK:
                    self.prune_attempts(result.urls)
                if result.added:
                    await self.drain(result.added)
                await asyncio.to_thread(self.flush)
                await self.sleep(self.state.current_interval)
        finally:
            self.flush()
            log_event("SOURCE_STOP", source=self.name, seen=len(self.seen))

    async def drain(self, refs: list[ArticleRef]) -> None:
        for ref in refs:
            self.pending[ref.url] = None
        try:
            for ref in refs:
                try:
                    await self.process_article(ref)
                except Exception as e:
                    log_event("ARTICLE_FAILED", source=self.name, url=ref.url, err=f"{type(e).__name__}: {e}")
                    self._failed(ref.url)
                await asyncio.to_thread(self.flush)
        finally:
            # anything still pending was interrupted; keep it out of the persisted set
            for ref in refs:
                if ref.url in self.pending:
                    self.pending.pop(ref.url, None)
                    self.poller.release(ref.url)
            self.poller.finish_drain()

    async def process_article(self, ref: ArticleRef) -> bool:
        url = ref.url
        log_event("ARTICLE_NEW", source=self.name, url=url, title=ref.title or None)
        try:
            detail = await self.source.parse_article(url)
        except (FetchError, ExtractError) as e:
            log_event("ARTICLE_PARSE_FAILED", source=self.name, url=url, kind=e.kind, err=str(e))
            self._failed(url)
            return False

        images = await self.source.resolve_images(detail)
        if not images and ref.preview_image_url:
            images = await self.source.images.validate([ref.preview_image_url], limit=1)
        image = images[0] if images else None

        summary = await self.summarize(detail.body_paragraphs)

        try:
            await asyncio.to_thread(self.publisher.publish, summary, image, url)
        except PublishError as e:
            stats.incr_published(ok=False)
            log_event("ARTICLE_PUBLISH_FAILED", source=self.name, url=url, err=str(e))
            self._failed(url)
            return False

        stats.incr_published(ok=True)
        log_new_article(self.name, url)
        log_event("ARTICLE_PUBLISHED", source=self.name, url=url, image=image is not None)
        self._done(url)
        return True

    async def summarize(self, paragraphs: list[str]) -> str:
        attempt = 1
        while True:
            try:
                text = await asyncio.to_thread(self.summarizer.summarize, paragraphs)
                if text and text.strip():
                    stats.incr_summaries()
                    return text.strip()
                err = "empty summary"
            except SummarizeError as e:
                err = str(e)
            except Exception as e:
                err = f"{type(e).__name__}: {e}"
            if not self.summary_policy.should_retry(attempt):
                raise SummarizeError(f"gave up after {attempt} attempts: {err}")
            wait = self.summary_policy.delay_for(attempt)
            log_event("SUMMARY_FAILED", source=self.name, attempt=attempt, err=err, retry_in_s=wait)
            await self.sleep(wait)
            attempt += 1

    def _done(self, url: str) -> None:
        self.pending.pop(url, None)
        self.attempts.pop(url, None)

    def _failed(self, url: str) -> None:
        self.pending.pop(url, None)
        if not self.settings.retry_failed_articles:
            self.attempts.pop(url, None)
            return
        count = self.attempts.get(url, 0) + 1
        if count >= self.settings.max_article_attempts:
            self.attempts.pop(url, None)
            log_event("ARTICLE_GIVEUP", source=self.name, url=url, attempts=count)
            return
        self.attempts[url] = count
        self.poller.release(url)
        log_event("ARTICLE_RETRY_SCHEDULED", source=self.name, url=url, attempt=count)

    def prune_attempts(self, listed: Iterable[str]) -> None:
        """Drop retry counts for URLs that are no longer on the listing."""
        keep = set(listed)
        for url in [u for u in self.attempts if u not in keep]:
            del self.attempts[url]
            log_event("ARTICLE_RETRY_DROPPED", source=self.name, url=url)

    def status(self) -> dict:
        st = self.state
        phase = st.phase
        retry_in = None
        if phase == PHASE_BACKOFF and st.backoff_until is not None:
            retry_in = max(0, int(st.backoff_until - self.clock()))
        return {
            "source": self.name,
            "phase": phase,
            "interval_s": int(st.current_interval),
            "consecutive_failures": st.consecutive_failures,
            "last_fetch_age_s": int(self.clock() - st.last_fetch_time) if st.last_fetch_time else None,
            "last_activity": st.last_activity.isoformat(timespec="seconds") if st.last_activity else None,
            "last_error": st.last_error,
            "cycles": st.cycles,
            "articles_found": st.articles_found,
            "seen": len(self.seen),
            "retry_in_s": retry_in,
        }


class Orchestrator:
    """Runs one ``SourceRunner`` task per source and exposes control hooks."""

    def __init__(self, runner_factory: Callable[[str], SourceRunner], sources: list[str]):
        self.runner_factory = runner_factory
        self.source_names = list(sources)
        self.runners: dict[str, SourceRunner] = {}
        self.tasks: dict[str, asyncio.Task] = {}
        self.extra_tasks: list[asyncio.Task] = []
        self._stop: Optional[asyncio.Event] = None

    def _stop_event(self) -> asyncio.Event:
        if self._stop is None:
            self._stop = asyncio.Event()
        return self._stop

    def start_source(self, name: str) -> None:
        runner = self.runner_factory(name)
        self.runners[name] = runner
        task = asyncio.create_task(runner.run_forever(), name=f"source:{name}")
        task.add_done_callback(lambda t, n=name: self._on_task_done(n, t))
        self.tasks[name] = task

    def _on_task_done(self, name: str, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_event("SOURCE_TASK_FAILED", source=name, err=f"{type(exc).__name__}: {exc}")

    def add_task(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self.extra_tasks.append(task)
        return task

    async def run(self) -> None:
        stop = self._stop_event()
        for name in self.source_names:
            self.start_source(name)
        log_event("ORCHESTRATOR_START", sources=",".join(self.source_names))
        try:
            await stop.wait()
        finally:
            await self.shutdown()

    def request_stop(self) -> None:
        log_event("ORCHESTRATOR_STOP_REQUESTED")
        self._stop_event().set()

    async def _stop_source(self, name: str) -> None:
        task = self.tasks.pop(name, None)
        runner = self.runners.pop(name, None)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if runner is not None:
            await runner.source.aclose()

    async def restart(self, name: str | None = None) -> list[str]:
        names = [name] if name else list(self.source_names)
        restarted = []
        for n in names:
            if n not in self.source_names:
                raise ValueError(f"unknown source {n!r}")
            await self._stop_source(n)
            self.start_source(n)
            restarted.append(n)
            log_event("SOURCE_RESTARTED", source=n)
        return restarted

    async def shutdown(self) -> None:
        for task in self.extra_tasks:
            task.cancel()
        await asyncio.gather(*self.extra_tasks, return_exceptions=True)
        self.extra_tasks.clear()
        for name in list(self.tasks):
            await self._stop_source(name)
        log_event("ORCHESTRATOR_STOPPED")

    def status(self) -> dict:
        return {
            "sources": [self.runners[n].status() for n in self.source_names if n in self.runners],
            "stats": stats.snapshot(),
        }


def format_status(report: dict) -> str:
    lines = ["Newsdesk status"]
    s = report.get("stats") or {}
    lines.append(
        f"uptime={s.get('uptime_sec', 0)}s summaries={s.get('summaries', 0)} "
        f"published={s.get('published', 0)} publish_failed={s.get('publish_failed', 0)}"
    )
    for src in report.get("sources") or []:
        line = (
            f"- {src['source']}: phase={src['phase']} interval={src['interval_s']}s "
            f"failures={src['consecutive_failures']} found={src['articles_found']} seen={src['seen']}"
        )
        if src.get("retry_in_s") is not None:
            line += f" retry_in={src['retry_in_s']}s"
        if src.get("last_activity"):
            line += f" last={src['last_activity']}"
        if src.get("last_error"):
            line += f" err={src['last_error'][:120]}"
        lines.append(line)
    return "\n".join(lines)
