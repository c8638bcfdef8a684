import asyncio
import time
from typing import Callable, Optional

import httpx

from newsdesk.errors import FetchError
from newsdesk.log import log_fetch_attempt
from scout.process.retry import RetryPolicy

HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/122.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Connection": "keep-alive",
}

DEFAULT_TIMEOUT = 45.0
HEAD_TIMEOUT = 15.0


def build_client(referer: str | None = None, timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    headers = dict(HEADERS)
    if referer:
        headers["Referer"] = referer
    return httpx.AsyncClient(
        headers=headers,
        follow_redirects=True,
        timeout=httpx.Timeout(timeout, connect=10.0),
        limits=httpx.Limits(max_keepalive_connections=5, keepalive_expiry=60.0),
    )


class Fetcher:
    """Fetches raw HTML for one source over a shared keep-alive client.

    Every attempt, successful or not, is handed to ``report``. Failed attempts
    are retried according to the policy; with the default background policy
    this never gives up.
    """

    def __init__(
        self,
        source: str = "",
        referer: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        policy: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable = asyncio.sleep,
        report: Callable | None = None,
    ):
        self.source = source
        self.timeout = timeout
        self.policy = policy or RetryPolicy.background()
        self.client = client or build_client(referer, timeout)
        self.sleep = sleep
        self.report = report or log_fetch_attempt

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _attempt(self, url: str) -> tuple[str, int]:
        try:
            response = await asyncio.wait_for(self.client.get(url), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise FetchError(f"request timed out after {self.timeout}s", FetchError.TIMEOUT, url) from e
        except httpx.TimeoutException as e:
            raise FetchError(f"request timed out: {type(e).__name__}", FetchError.TIMEOUT, url) from e
        except httpx.HTTPError as e:
            raise FetchError(f"request_error:{type(e).__name__}", FetchError.NETWORK, url) from e

        status = response.status_code
        if not 200 <= status < 300:
            raise FetchError(f"HTTP {status} for {url}", FetchError.HTTP_STATUS, url, status)
        text = response.text
        if not text or not text.strip():
            raise FetchError(f"empty response from {url}", FetchError.HTTP_STATUS, url, status)
        return text, status

    async def fetch_page(
        self,
        url: str,
        policy: RetryPolicy | None = None,
        on_backoff: Optional[Callable[[float], None]] = None,
    ) -> str:
        policy = policy or self.policy
        attempt = 1
        while True:
            start_ts = time.monotonic()
            try:
                text, status = await self._attempt(url)
            except FetchError as e:
                duration_ms = int((time.monotonic() - start_ts) * 1000)
                retry = policy.should_retry(attempt)
                wait = policy.delay_for(attempt) if retry else None
                self.report(
                    source=self.source,
                    url=url,
                    attempt=attempt,
                    duration_ms=duration_ms,
                    outcome=e.kind,
                    status=e.status,
                    error=str(e),
                    next_retry_s=wait,
                )
                if not retry:
                    raise
                if on_backoff is not None:
                    on_backoff(wait)
                await self.sleep(wait)
                attempt += 1
                continue

            self.report(
                source=self.source,
                url=url,
                attempt=attempt,
                duration_ms=int((time.monotonic() - start_ts) * 1000),
                outcome="ok",
                status=status,
                bytes=len(text),
            )
            return text

    async def head(self, url: str, timeout: float = HEAD_TIMEOUT) -> httpx.Response:
        try:
            return await asyncio.wait_for(self.client.head(url), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise FetchError(f"HEAD timed out after {timeout}s", FetchError.TIMEOUT, url) from e
        except httpx.TimeoutException as e:
            raise FetchError(f"HEAD timed out: {type(e).__name__}", FetchError.TIMEOUT, url) from e
        except httpx.HTTPError as e:
            raise FetchError(f"request_error:{type(e).__name__}", FetchError.NETWORK, url) from e
