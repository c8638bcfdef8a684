import requests
from requests.adapters import HTTPAdapter
from requests.exceptions import ConnectionError, HTTPError, RequestException, Timeout
from urllib3.util.retry import Retry

from newsdesk.errors import SummarizeError
from newsdesk.log import log_event

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.0-flash"
MAX_INPUT_CHARS = 12000
MAX_OUTPUT_TOKENS = 256
SUMMARY_TEMPERATURE = 0.3

EDITOR_PROMPT = """You are a Telegram news channel editor bot. You receive the full article body as a list of paragraphs. Your task is to produce a single, concise description (no more than 3-4 sentences) that highlights only the most essential facts and conveys them clearly to a Telegram audience.

Guidelines:
- Keep it short and to the point (aim for 50-70 words).
- Lead with the who, what, where, and why: the subject of the piece, what happened, where it took place, and the reason it matters.
- Omit background detail and commentary; focus on hard facts.
- Write in a neutral, news-style tone.
- Do not add links, hashtags or an introduction.

Here is the body:
"""


def build_prompt(paragraphs: list[str], max_chars: int = MAX_INPUT_CHARS) -> str:
    body = "\n\n".join(p.strip() for p in paragraphs if p and p.strip())
    if len(body) > max_chars:
        body = body[:max_chars]
    return EDITOR_PROMPT + "\n" + body


def _build_session() -> requests.Session:
    session = requests.Session()
    retries = Retry(
        total=2,
        backoff_factor=1,
        status_forcelist=[502, 503, 504],
        allowed_methods=["POST"],
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class GeminiSummarizer:
    """Summarizes article paragraphs with the Generative Language REST API."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        max_chars: int = MAX_INPUT_CHARS,
        timeout: float = 60.0,
        session: requests.Session | None = None,
        base_url: str = GEMINI_BASE_URL,
    ):
        self.api_key = api_key
        self.model = model or DEFAULT_MODEL
        self.max_chars = max_chars
        self.timeout = timeout
        self.session = session or _build_session()
        self.base_url = base_url.rstrip("/")

    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def summarize(self, paragraphs: list[str]) -> str:
        if not paragraphs:
            raise SummarizeError("nothing to summarize")
        prompt = build_prompt(paragraphs, self.max_chars)
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": SUMMARY_TEMPERATURE,
                "maxOutputTokens": MAX_OUTPUT_TOKENS,
            },
        }
        try:
            resp = self.session.post(
                self.endpoint(),
                params={"key": self.api_key},
                json=payload,
                timeout=(10, self.timeout),
            )
            resp.raise_for_status()
            data = resp.json() or {}
        except Timeout as e:
            raise SummarizeError(f"gemini_timeout: {e}") from e
        except ConnectionError as e:
            raise SummarizeError(f"gemini_connection_error: {e}") from e
        except HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise SummarizeError(f"gemini_http_error: status={status}") from e
        except ValueError as e:
            raise SummarizeError(f"gemini_bad_json: {e}") from e
        except RequestException as e:
            raise SummarizeError(f"gemini_request_error: {type(e).__name__}: {e}") from e

        text = _response_text(data)
        if not text:
            reason = ((data.get("candidates") or [{}])[0] or {}).get("finishReason")
            raise SummarizeError(f"gemini_empty_response: finish_reason={reason or '-'}")
        log_event("SUMMARY_OK", model=self.model, prompt_chars=len(prompt), words=len(text.split()))
        return text


def _response_text(data: dict) -> str:
    parts = []
    for candidate in data.get("candidates") or []:
        content = (candidate or {}).get("content") or {}
        for part in content.get("parts") or []:
            if part.get("text"):
                parts.append(part["text"])
        if parts:
            break
    return "".join(parts).strip()
