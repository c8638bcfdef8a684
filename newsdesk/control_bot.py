import asyncio
from pathlib import Path
from typing import Awaitable, Callable

from newsdesk import log as newsdesk_log
from newsdesk.log import log_event
from newsdesk.telegram import TelegramClient

MAX_DOCUMENT_BYTES = 50 * 1024 * 1024
TAIL_LINES = 1000
TAIL_CHARS = 4000

LOG_TYPES = {
    "activity": (newsdesk_log.ACTIVITY_LOG, "activity_log.txt", "Full activity log"),
    "errors": (newsdesk_log.ERROR_LOG, "error_log.txt", "Error log"),
    "articles": (newsdesk_log.ARTICLES_LOG, "published_articles.txt", "Published articles log"),
    "fetch": (newsdesk_log.FETCH_LOG, "fetch_monitor.txt", "Listing and article fetch attempts"),
}

HELP_TEXT = (
    "Newsdesk control commands\n\n"
    "/status - show per-source poll state\n"
    "/rerun [source] - restart one source, or all of them\n"
    "/stop - shut the process down\n"
    "/log <type> - download a log file (/log help lists types)\n"
    "/help - show this message"
)


def parse_command(text: str) -> tuple[str, list[str]]:
    parts = (text or "").strip().split()
    if not parts or not parts[0].startswith("/"):
        return "", []
    command = parts[0][1:].split("@", 1)[0].lower()
    return command, parts[1:]


def tail_text(path: Path, lines: int = TAIL_LINES, max_chars: int = TAIL_CHARS) -> str:
    with path.open("r", encoding="utf-8", errors="replace") as f:
        content = "".join(f.readlines()[-lines:])
    if len(content) > max_chars:
        content = "...(truncated)\n" + content[-max_chars:]
    return content


class ControlBot:
    """Admin-only Telegram long-poll loop driving the orchestrator hooks."""

    def __init__(
        self,
        client: TelegramClient,
        admin_chat_id: str,
        status: Callable[[], str],
        restart: Callable[[str | None], Awaitable[list[str]]],
        stop: Callable[[], None],
        poll_timeout: int = 30,
        sleep: Callable = asyncio.sleep,
    ):
        self.client = client
        self.admin_chat_id = str(admin_chat_id)
        self.status = status
        self.restart = restart
        self.stop = stop
        self.poll_timeout = poll_timeout
        self.sleep = sleep
        self.offset: int | None = None

    async def reply(self, chat_id: str, text: str) -> None:
        ok, err = await asyncio.to_thread(self.client.send_message, chat_id, text, None)
        if not ok:
            log_event("CONTROL_REPLY_FAILED", chat_id=chat_id, err=err)

    async def run(self) -> None:
        log_event("CONTROL_BOT_START", admin_chat_id=self.admin_chat_id)
        while True:
            updates = await asyncio.to_thread(self.client.get_updates, self.offset, self.poll_timeout)
            if not updates:
                await self.sleep(1)
                continue
            for update in updates:
                self.offset = int(update.get("update_id", 0)) + 1
                try:
                    await self.handle_update(update)
                except Exception as e:
                    log_event("CONTROL_COMMAND_FAILED", err=f"{type(e).__name__}: {e}")

    async def handle_update(self, update: dict) -> None:
        message = update.get("message") or {}
        chat_id = str((message.get("chat") or {}).get("id", ""))
        command, args = parse_command(message.get("text") or "")
        if not command or not chat_id:
            return
        if chat_id != self.admin_chat_id:
            log_event("CONTROL_UNAUTHORIZED", chat_id=chat_id, command=command)
            await self.reply(chat_id, "Unauthorized access")
            return

        log_event("CONTROL_COMMAND", command=command, args=" ".join(args) or None)
        if command == "status":
            await self.reply(chat_id, self.status())
        elif command == "rerun":
            await self.handle_rerun(chat_id, args[0].lower() if args else None)
        elif command == "stop":
            await self.reply(chat_id, "Shutting down all sources...")
            self.stop()
        elif command == "log":
            await self.handle_log(chat_id, args[0].lower() if args else "help")
        elif command in ("help", "start"):
            await self.reply(chat_id, HELP_TEXT)
        else:
            await self.reply(chat_id, f"Unknown command /{command}\n\n{HELP_TEXT}")

    async def handle_rerun(self, chat_id: str, source: str | None) -> None:
        try:
            restarted = await self.restart(source)
        except ValueError as e:
            await self.reply(chat_id, str(e))
            return
        await self.reply(chat_id, f"Restarted: {', '.join(restarted)}")

    async def handle_log(self, chat_id: str, log_type: str) -> None:
        if log_type in ("help", "list"):
            lines = [f"/log {key} - {desc}" for key, (_, _, desc) in LOG_TYPES.items()]
            await self.reply(chat_id, "Available log types:\n\n" + "\n".join(lines))
            return
        if log_type not in LOG_TYPES:
            await self.reply(chat_id, f"Unknown log type: {log_type}\nAvailable types: {', '.join(LOG_TYPES)}")
            return

        name, filename, description = LOG_TYPES[log_type]
        path = newsdesk_log.log_path(name)
        if not path.exists():
            await self.reply(chat_id, f"Log file not found: {description}")
            return

        size = path.stat().st_size
        size_mb = size / 1024 / 1024
        if size > MAX_DOCUMENT_BYTES:
            tail = await asyncio.to_thread(tail_text, path)
            await self.reply(chat_id, f"{description} is {size_mb:.2f}MB, last {TAIL_LINES} lines:\n\n{tail}")
            return

        ok, err = await asyncio.to_thread(
            self.client.send_document,
            chat_id,
            path,
            filename,
            f"{description}\nFile size: {size_mb:.2f}MB",
        )
        if not ok:
            log_event("CONTROL_SEND_LOG_FAILED", log_type=log_type, err=err)
            await self.reply(chat_id, f"Error sending log: {err}")
