import asyncio
import fcntl
import signal
import traceback

from newsdesk import log as newsdesk_log
from newsdesk.config import Settings, load_settings
from newsdesk.control_bot import ControlBot
from newsdesk.log import log_event
from newsdesk.state import build_store
from newsdesk.summarize import GeminiSummarizer
from newsdesk.telegram import TelegramClient, TelegramPublisher
from scout.process.pipeline import Orchestrator, SourceRunner, format_status
from scout.sources.registry import SOURCES, build_source

CONTROL_POLL_TIMEOUT = 10


def build_orchestrator(settings: Settings) -> tuple[Orchestrator, TelegramClient]:
    unknown = [s for s in settings.sources if s not in SOURCES]
    if unknown:
        raise RuntimeError(f"unknown SOURCES entries: {','.join(unknown)}")

    store = build_store(settings)
    client = TelegramClient(settings.telegram_bot_token)
    publisher = TelegramPublisher(client, settings.telegram_chat_id)
    summarizer = GeminiSummarizer(
        settings.google_api_key,
        model=settings.gemini_model,
        max_chars=settings.summary_max_chars,
    )

    def runner_factory(name: str) -> SourceRunner:
        return SourceRunner(build_source(name, settings), store, summarizer, publisher, settings)

    return Orchestrator(runner_factory, settings.sources), client


async def run(settings: Settings) -> None:
    orchestrator, client = build_orchestrator(settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, orchestrator.request_stop)

    if settings.control_bot_enabled and settings.admin_chat_id:
        bot = ControlBot(
            client,
            settings.admin_chat_id,
            status=lambda: format_status(orchestrator.status()),
            restart=orchestrator.restart,
            stop=orchestrator.request_stop,
            poll_timeout=CONTROL_POLL_TIMEOUT,
        )
        orchestrator.add_task(bot.run(), name="control_bot")

    await orchestrator.run()


def main() -> int:
    try:
        settings = load_settings()
    except RuntimeError as e:
        print(f"CONFIG_ERROR err={e}")
        return 1

    newsdesk_log.configure(settings.log_dir)
    try:
        lock_fd = open(settings.lock_file, "w")
        fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        print("JOB_LOCKED exit=1")
        return 1

    log_event("JOB_START", sources=",".join(settings.sources), store=settings.seen_store_backend)
    try:
        asyncio.run(run(settings))
    except Exception as e:
        log_event("JOB_FATAL", err=f"{type(e).__name__}: {e}")
        traceback.print_exc()
        return 1
    finally:
        lock_fd.close()
    log_event("JOB_DONE")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
