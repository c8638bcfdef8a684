import html
from pathlib import Path
from typing import Optional, Tuple

import requests
from requests.exceptions import RequestException

from newsdesk.errors import PublishError
from newsdesk.log import log_event

TELEGRAM_API = "https://api.telegram.org"
CAPTION_LIMIT = 1024
MESSAGE_LIMIT = 4096
LINK_LABEL = "\U0001F310 View Full Article"


def format_post(text: str, article_url: str | None = None) -> str:
    body = html.escape((text or "").strip(), quote=False)
    if article_url:
        body += f'\n\n<a href="{html.escape(article_url)}">{LINK_LABEL}</a>'
    return body


class TelegramClient:
    """Thin Bot API wrapper. Calls return ``(ok, err)`` and never raise for HTTP failures."""

    def __init__(self, token: str, timeout: float = 20.0, session: requests.Session | None = None):
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, method: str) -> str:
        return f"{TELEGRAM_API}/bot{self.token}/{method}"

    def call(self, method: str, data: dict | None = None, files=None, timeout: float | None = None) -> Tuple[bool, str, dict]:
        try:
            resp = self.session.post(self._url(method), data=data or {}, files=files, timeout=timeout or self.timeout)
        except RequestException as e:
            return False, f"telegram_request_error:{type(e).__name__}", {}
        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if 200 <= resp.status_code < 300 and payload.get("ok", True):
            return True, "", payload
        description = payload.get("description") or resp.text[:200]
        return False, f"telegram_status={resp.status_code} body={description}", payload

    def send_message(self, chat_id: str, text: str, parse_mode: str | None = "HTML") -> Tuple[bool, str]:
        data = {"chat_id": chat_id, "text": text[:MESSAGE_LIMIT], "disable_web_page_preview": True}
        if parse_mode:
            data["parse_mode"] = parse_mode
        ok, err, _ = self.call("sendMessage", data)
        return ok, err

    def send_photo(self, chat_id: str, photo_url: str, caption: str) -> Tuple[bool, str]:
        data = {"chat_id": chat_id, "photo": photo_url, "caption": caption, "parse_mode": "HTML"}
        ok, err, _ = self.call("sendPhoto", data)
        return ok, err

    def send_document(self, chat_id: str, path: Path, filename: str | None = None, caption: str = "") -> Tuple[bool, str]:
        with Path(path).open("rb") as f:
            ok, err, _ = self.call(
                "sendDocument",
                {"chat_id": chat_id, "caption": caption},
                files={"document": (filename or Path(path).name, f)},
                timeout=120,
            )
        return ok, err

    def get_updates(self, offset: int | None = None, timeout: int = 30) -> list[dict]:
        data = {"timeout": timeout, "allowed_updates": '["message"]'}
        if offset is not None:
            data["offset"] = offset
        ok, err, payload = self.call("getUpdates", data, timeout=timeout + 10)
        if not ok:
            log_event("TELEGRAM_POLL_FAILED", err=err)
            return []
        return payload.get("result") or []


class TelegramPublisher:
    """Posts article summaries to the channel, photo first, plain text as fallback."""

    def __init__(self, client: TelegramClient, chat_id: str):
        self.client = client
        self.chat_id = chat_id

    def publish(self, text: str, image_url: Optional[str], article_url: str) -> None:
        message = format_post(text, article_url)

        if image_url:
            if len(message) <= CAPTION_LIMIT:
                ok, err = self.client.send_photo(self.chat_id, image_url, message)
                if ok:
                    log_event("TELEGRAM_SENT", kind="photo", url=article_url)
                    return
                log_event("TELEGRAM_PHOTO_FAILED", url=article_url, image=image_url, err=err)
            else:
                log_event("TELEGRAM_CAPTION_TOO_LONG", url=article_url, chars=len(message))
            message += f'\n\n<a href="{html.escape(image_url)}">\U0001F5BC Image</a>'

        ok, err = self.client.send_message(self.chat_id, message)
        if not ok:
            raise PublishError(f"sendMessage failed: {err}")
        log_event("TELEGRAM_SENT", kind="text", url=article_url)
