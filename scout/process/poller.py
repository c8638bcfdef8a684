import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from newsdesk.log import log_event, stats
from newsdesk.state import SeenSet
from scout.ingest.models import ArticleRef
from scout.sources.base import ORDER_NEWEST_FIRST

PHASE_IDLE = "idle"
PHASE_FETCHING = "fetching"
PHASE_BACKOFF = "backoff"
PHASE_DIFFING = "diffing"
PHASE_DRAINING = "draining"

CYCLE_OK = "ok"
CYCLE_SKIPPED = "skipped"
CYCLE_FAILED = "failed"

MIN_INTERVAL = 180.0
MAX_INTERVAL = 900.0
INTERVAL_STEP = 60.0
WIDE_INTERVAL_STEP = 120.0
WIDEN_AFTER_FAILURES = 3


@dataclass
class PollState:
    source: str
    current_interval: float = MAX_INTERVAL
    last_fetch_time: Optional[float] = None
    consecutive_failures: int = 0
    phase: str = PHASE_IDLE
    last_activity: Optional[datetime] = None
    last_error: Optional[str] = None
    backoff_until: Optional[float] = None
    cycles: int = 0
    articles_found: int = 0


@dataclass
class CycleResult:
    status: str
    added: list[ArticleRef] = field(default_factory=list)
    listed: int = 0
    error: Optional[str] = None
    urls: list[str] = field(default_factory=list)


def order_refs(refs: list[ArticleRef], emit_order: str) -> list[ArticleRef]:
    if emit_order == ORDER_NEWEST_FIRST:
        dated = [r for r in refs if r.publish_date is not None]
        undated = [r for r in refs if r.publish_date is None]
        dated.sort(key=lambda r: r.publish_date, reverse=True)
        return dated + undated
    return sorted(refs, key=lambda r: r.url)


class Poller:
    """Change detector for one source.

    Owns nothing but references: the ``SeenSet`` and ``PollState`` are
    handed in by the runner so tests can inspect and fake them.
    """

    def __init__(
        self,
        source,
        seen: SeenSet,
        state: PollState,
        min_interval: float = MIN_INTERVAL,
        max_interval: float = MAX_INTERVAL,
        clock: Callable[[], float] = time.time,
    ):
        self.source = source
        self.seen = seen
        self.state = state
        self.min_interval = min_interval
        self.max_interval = max(max_interval, min_interval)
        self.clock = clock
        self._lock = asyncio.Lock()
        self.state.current_interval = self.clamp(self.state.current_interval)

    def clamp(self, interval: float) -> float:
        return min(self.max_interval, max(self.min_interval, interval))

    def adapt_interval(self, hit: bool) -> float:
        st = self.state
        if hit:
            st.consecutive_failures = 0
            st.current_interval = self.clamp(st.current_interval - INTERVAL_STEP)
        else:
            st.consecutive_failures += 1
            step = WIDE_INTERVAL_STEP if st.consecutive_failures >= WIDEN_AFTER_FAILURES else INTERVAL_STEP
            st.current_interval = self.clamp(st.current_interval + step)
        return st.current_interval

    def should_skip(self, is_startup_phase: bool = False) -> bool:
        if is_startup_phase or self.state.last_fetch_time is None:
            return False
        return self.clock() - self.state.last_fetch_time < self.state.current_interval

    def _on_backoff(self, wait: float) -> None:
        self.state.phase = PHASE_BACKOFF
        self.state.backoff_until = self.clock() + (wait or 0)

    def _touch(self) -> None:
        self.state.last_activity = datetime.now(timezone.utc)

    async def _list_current(self, is_startup_phase: bool) -> list[ArticleRef]:
        self.state.phase = PHASE_FETCHING
        self.state.last_fetch_time = self.clock()
        stats.incr_fetch(self.source.name)
        refs = await self.source.fetch_listing(is_startup_phase=is_startup_phase, on_backoff=self._on_backoff)
        self.state.backoff_until = None
        out: list[ArticleRef] = []
        listed = set()
        for ref in refs:
            if ref.url in listed:
                continue
            listed.add(ref.url)
            out.append(ref)
        return out

    async def run_cycle(self, is_startup_phase: bool = False) -> CycleResult:
        if self._lock.locked():
            log_event("POLL_SKIPPED", source=self.source.name, reason="in_flight")
            return CycleResult(CYCLE_SKIPPED)
        if self.should_skip(is_startup_phase):
            log_event(
                "POLL_SKIPPED",
                source=self.source.name,
                reason="interval",
                interval_s=int(self.state.current_interval),
            )
            return CycleResult(CYCLE_SKIPPED)

        async with self._lock:
            st = self.state
            st.cycles += 1
            try:
                current = await self._list_current(is_startup_phase)
                st.phase = PHASE_DIFFING
                added = [r for r in current if r.url not in self.seen]
                self.seen.add_all(r.url for r in current)
            except Exception as e:
                st.phase = PHASE_IDLE
                st.backoff_until = None
                st.last_error = f"{type(e).__name__}: {e}"
                self.adapt_interval(hit=False)
                self._touch()
                log_event(
                    "POLL_CYCLE_FAILED",
                    source=self.source.name,
                    err=st.last_error,
                    failures=st.consecutive_failures,
                    next_interval_s=int(st.current_interval),
                )
                return CycleResult(CYCLE_FAILED, error=st.last_error)

            added = order_refs(added, self.source.emit_order)
            self.adapt_interval(hit=bool(added))
            st.articles_found += len(added)
            st.phase = PHASE_DRAINING if added else PHASE_IDLE
            self._touch()
            if added:
                stats.add_new_articles(self.source.name, len(added))
            log_event(
                "POLL_CYCLE",
                source=self.source.name,
                listed=len(current),
                added=len(added),
                seen=len(self.seen),
                failures=st.consecutive_failures,
                next_interval_s=int(st.current_interval),
            )
            return CycleResult(CYCLE_OK, added=added, listed=len(current), urls=[r.url for r in current])

    async def seed(self) -> int:
        """Mark everything currently listed as seen without emitting it."""
        async with self._lock:
            try:
                current = await self._list_current(is_startup_phase=True)
            finally:
                self.state.phase = PHASE_IDLE
            added = self.seen.add_all(r.url for r in current)
            self._touch()
            log_event("POLL_SEEDED", source=self.source.name, listed=len(current), added=added)
            return added

    def release(self, url: str) -> None:
        """Forget ``url`` so the next cycle reports it again."""
        self.seen.discard(url)

    def finish_drain(self) -> None:
        if self.state.phase == PHASE_DRAINING:
            self.state.phase = PHASE_IDLE
