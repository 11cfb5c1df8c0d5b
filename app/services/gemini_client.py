"""
Gemini Client - resilient wrapper around the generative-text REST endpoint.

Offers three call shapes (single-shot, single-shot with an image, multi-turn
chat) that share one retry policy:
- Up to ``max_retries`` retries for transient failures (408/429/5xx, timeouts,
  rate-limit and overload messages)
- Exponential backoff doubling from ``base_delay``
- Non-transient failures propagate immediately

Also hosts the defensive JSON extraction used on every model response.
"""

import asyncio
import base64
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from app.config import Settings
from app.logging_config import get_logger
from app.metrics.llm_metrics import llm_metrics
from app.schemas.chat import ConversationMessage, MessageRole

logger = get_logger(__name__)

CONTINUE_MESSAGE = "Please continue the conversation."

TRANSIENT_STATUS_CODES = frozenset({408, 429})

# Last-resort classification when no status code is available. Service
# wording changes between versions; keep the classes, not exact phrasing.
TRANSIENT_MESSAGE_PATTERN = re.compile(
    r"\b429\b|timeout|timed out|rate.?limit|overloaded|unavailable|resource.?exhausted|try again later",
    re.IGNORECASE,
)

_ROLE_TO_SERVICE = {
    MessageRole.USER: "user",
    MessageRole.ASSISTANT: "model",
}


class GeminiError(Exception):
    """Raised when a generative-text call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GeminiConfigurationError(GeminiError):
    """Raised when the client is used without an API key."""


def is_transient_error(error: BaseException) -> bool:
    """Decide whether a failed call is worth retrying.

    Structured signals win: an HTTP status code, then the httpx exception
    type. Message inspection is only a fallback for errors that carry neither.
    """
    if isinstance(error, GeminiConfigurationError):
        return False

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        return status_code in TRANSIENT_STATUS_CODES or status_code >= 500

    cause = error.__cause__ or error
    if isinstance(cause, (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError)):
        return True

    return bool(TRANSIENT_MESSAGE_PATTERN.search(str(error)))


def split_history(
    history: Sequence[ConversationMessage],
) -> Tuple[List[ConversationMessage], str]:
    """Split a transcript into prior context and the message to send now.

    The most recent user turn becomes the current message; everything before
    it is context. The service requires context to open with a user turn, so
    any leading assistant turns are dropped. Without a user turn the whole
    history is context and a neutral continuation message is sent.

    Returns:
        Tuple of (context, current_message). ``history`` is not modified.
    """
    latest_user_index = None
    for index in range(len(history) - 1, -1, -1):
        if history[index].role == MessageRole.USER:
            latest_user_index = index
            break

    if latest_user_index is None:
        context = list(history)
        current = CONTINUE_MESSAGE
    else:
        context = list(history[:latest_user_index])
        current = history[latest_user_index].content

    start = 0
    while start < len(context) and context[start].role == MessageRole.ASSISTANT:
        start += 1

    return context[start:], current


def extract_first_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` block in ``text``, or None.

    Models wrap JSON in code fences or surround it with prose. Braces are
    matched by depth counting; braces inside JSON strings are ignored.
    An object that never closes yields None rather than a truncated string.
    """
    normalized = text.strip()
    normalized = re.sub(r"^```(?:json)?\s*", "", normalized, flags=re.IGNORECASE)
    normalized = re.sub(r"\s*```$", "", normalized).strip()

    start = normalized.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(normalized)):
        char = normalized[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return normalized[start:index + 1]

    return None


class GeminiClient:
    """
    Async client for the Gemini ``generateContent`` endpoint.

    Constructed explicitly and injected into callers, so tests can pass a
    fake or an ``httpx.MockTransport``-backed client.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.5-flash-lite",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 30.0,
        max_retries: int = 2,
        base_delay: float = 0.4,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the client.

        Args:
            api_key: Gemini API key; calls fail non-transiently without one
            model: Default model name
            base_url: API root, without trailing slash
            timeout: Per-attempt HTTP timeout in seconds
            max_retries: Retries after the first attempt for transient failures
            base_delay: First backoff delay in seconds, doubled per retry
            http_client: Optional shared httpx client (not closed by ``aclose``)
            sleep: Awaitable sleep used between retries
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiClient":
        """Build a client from application settings."""
        return cls(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            timeout=settings.gemini_timeout,
            max_retries=settings.gemini_max_retries,
            base_delay=settings.gemini_retry_base_delay,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_http_client:
            await self._http.aclose()

    async def __aenter__(self) -> "GeminiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def complete(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        model: Optional[str] = None,
    ) -> str:
        """Single-shot text generation."""
        contents = [{"role": "user", "parts": [{"text": prompt}]}]
        return await self._generate("complete", contents, system_instruction, model)

    async def complete_with_image(
        self,
        prompt: str,
        image_bytes: bytes,
        mime_type: str,
        system_instruction: Optional[str] = None,
    ) -> str:
        """Single-shot generation over a prompt plus one inline image."""
        contents = [
            {
                "role": "user",
                "parts": [
                    {"text": prompt},
                    {
                        "inlineData": {
                            "mimeType": mime_type,
                            "data": base64.b64encode(image_bytes).decode("ascii"),
                        }
                    },
                ],
            }
        ]
        return await self._generate("complete_with_image", contents, system_instruction, None)

    async def chat(
        self,
        system_instruction: str,
        history: Sequence[ConversationMessage],
    ) -> str:
        """Multi-turn chat: prior turns as context, latest user turn as the message."""
        context, current_message = split_history(history)
        contents = [
            {"role": _ROLE_TO_SERVICE[message.role], "parts": [{"text": message.content}]}
            for message in context
        ]
        contents.append({"role": "user", "parts": [{"text": current_message}]})
        return await self._generate("chat", contents, system_instruction, None)

    async def _generate(
        self,
        operation: str,
        contents: List[Dict[str, Any]],
        system_instruction: Optional[str],
        model: Optional[str],
    ) -> str:
        """Run one logical call through the retry policy."""
        payload: Dict[str, Any] = {"contents": contents}
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        model_name = model or self.model
        text = ""

        with llm_metrics.track_request(operation):
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries + 1),
                wait=wait_exponential(multiplier=self.base_delay, min=0),
                retry=retry_if_exception(is_transient_error),
                before_sleep=self._before_sleep(operation),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    text = await self._post(model_name, payload)

        return text

    def _before_sleep(self, operation: str) -> Callable[[RetryCallState], None]:
        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.warning(
                f"Gemini {operation} failed, retrying in {delay}s",
                attempt=retry_state.attempt_number,
                max_retries=self.max_retries,
                error=str(error),
            )
            llm_metrics.record_retry(operation)

        return log_retry

    async def _post(self, model: str, payload: Dict[str, Any]) -> str:
        """Issue one HTTP attempt and return the candidate text."""
        if not self.api_key:
            raise GeminiConfigurationError("GEMINI_API_KEY is not configured")

        url = f"{self.base_url}/models/{model}:generateContent"
        try:
            response = await self._http.post(
                url,
                json=payload,
                headers={"x-goog-api-key": self.api_key},
            )
        except httpx.TimeoutException as e:
            raise GeminiError(f"Gemini request timed out: {e}") from e
        except httpx.TransportError as e:
            raise GeminiError(f"Gemini transport error: {e}") from e

        if response.status_code >= 400:
            raise GeminiError(
                f"Gemini returned HTTP {response.status_code}: {_error_message(response)}",
                status_code=response.status_code,
            )

        return _candidate_text(response.json())


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return str(body["error"].get("message", ""))
    return str(body)[:200]


def _candidate_text(data: Dict[str, Any]) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        reason = (data.get("promptFeedback") or {}).get("blockReason", "no candidates")
        raise GeminiError(f"Gemini returned no candidates ({reason})")

    parts = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
    if not text:
        raise GeminiError("Gemini returned an empty candidate")
    return text
