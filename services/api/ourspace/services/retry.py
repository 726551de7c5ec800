"""
Bounded retry with backoff for third-party AI media endpoints.

Those endpoints are inconsistent: some fail with 5xx/429, some answer HTTP 200 with an
error object in the body, and some return a tiny "image" that is really a JSON error or an
HTML page. Every response is decoded at the boundary into one of three variants
(Success, StructuredError, UnknownShape) and then classified as retryable or terminal.

Delay policy: when the server says how long to wait (retry-after header, or a delay embedded
in the error payload) that delay plus a safety margin is used. Otherwise, after a server
error the first retry waits the initial delay and later retries double it; a rate limit
without a hint doubles from the first retry.
There is no overall deadline; the attempt ceiling is the only bound.
"""
import asyncio
import base64
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 6
DEFAULT_INITIAL_DELAY_MS = 2000
RETRY_AFTER_MARGIN_MS = 1000
EMBEDDED_DELAY_MARGIN_MS = 2000
MIN_IMAGE_BYTES = 5000
MAX_ERROR_CHARS = 300

RATE_LIMIT_MARKERS = ("429", "too many requests", "limit")
MARKUP_MARKERS = ("<html", "<!doctype", "error")
# Checked in order; first non-empty string wins
RESULT_FIELDS = ("url", "data", "image", "result", "link", "output", "result_url", "task_url")


class ExternalCallError(Exception):
    retryable = False

    def __init__(self, message: str, status_code: int | None = None, retry_delay_ms: int | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.retry_delay_ms = retry_delay_ms


class RetryableError(ExternalCallError):
    retryable = True


class TerminalError(ExternalCallError):
    pass


def truncate_message(message: str, limit: int = MAX_ERROR_CHARS) -> str:
    message = message or ""
    return message if len(message) <= limit else message[: limit - 3] + "..."


@dataclass
class Success:
    url: str | None = None
    content: bytes | None = None
    content_type: str = "image/png"

    def as_url(self) -> str:
        """Result URL, or the image bytes as a data: URI."""
        if self.url:
            return self.url
        encoded = base64.b64encode(self.content or b"").decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


@dataclass
class StructuredError:
    message: str
    retry_delay_seconds: int | None = None


@dataclass
class UnknownShape:
    raw: Any


@dataclass
class RetryableCall:
    target_url: str
    max_attempts: int
    current_delay_ms: int
    name: str = ""
    attempt_count: int = 0


def _leading_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        m = re.match(r"\s*(\d+)", value)
        return int(m.group(1)) if m else None
    return None


class NamedFieldRule:
    """Find a delay (seconds) under a known key anywhere in the payload, e.g. {"retryDelay": "58s"}."""

    def __init__(self, names=("retryDelay", "retry_delay", "retryAfter", "retry_after")):
        self.names = tuple(names)

    def __call__(self, payload, message: str) -> int | None:
        stack = [payload]
        while stack:
            node = stack.pop()
            if isinstance(node, dict):
                for key, value in node.items():
                    if key in self.names:
                        seconds = _leading_int(value)
                        if seconds:
                            return seconds
                    stack.append(value)
            elif isinstance(node, list):
                stack.extend(node)
        return None


class MessagePatternRule:
    """Regex over the human-readable message, e.g. "Please retry in 58.6s"."""

    def __init__(self, pattern: str = r"retry in (\d+)"):
        self.pattern = re.compile(pattern, re.IGNORECASE)

    def __call__(self, payload, message: str) -> int | None:
        m = self.pattern.search(message or "")
        return int(m.group(1)) if m else None


class DelayExtractor:
    """Ordered list of rules; the first positive delay wins."""

    def __init__(self, rules: list[Callable[[Any, str], int | None]] | None = None):
        self.rules = list(rules) if rules is not None else [NamedFieldRule(), MessagePatternRule()]

    def add_rule(self, rule: Callable[[Any, str], int | None]) -> None:
        self.rules.append(rule)

    def extract(self, payload, message: str) -> int | None:
        for rule in self.rules:
            seconds = rule(payload, message)
            if seconds and seconds > 0:
                return seconds
        return None


def _result_url(data: dict) -> str | None:
    for field in RESULT_FIELDS:
        value = data.get(field)
        if isinstance(value, str) and value:
            return value
        if field == "data" and isinstance(value, dict) and isinstance(value.get("url"), str) and value["url"]:
            return value["url"]
    return None


def decode_payload(data, extractor: DelayExtractor | None = None):
    """Decode an untyped JSON body into Success | StructuredError | UnknownShape."""
    extractor = extractor or DelayExtractor()
    if not isinstance(data, dict):
        return UnknownShape(data)
    url = _result_url(data)
    if url:
        return Success(url=url)
    if data.get("error") or data.get("message"):
        err = data.get("error")
        if isinstance(err, str) and err:
            message = err
        elif isinstance(err, dict) and err.get("message"):
            message = str(err["message"])
        else:
            message = str(data.get("message") or json.dumps(data))
        return StructuredError(message=message, retry_delay_seconds=extractor.extract(data, message))
    if data.get("status") is False or data.get("success") is False:
        return StructuredError(message=str(data.get("message") or "API returned failed status"))
    return UnknownShape(data)


def is_rate_limited(message: str) -> bool:
    lowered = (message or "").lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def classify_structured_error(err: StructuredError) -> ExternalCallError:
    if err.retry_delay_seconds:
        return RetryableError(
            f"HTTP 429: Quota exceeded, retry in {err.retry_delay_seconds}s",
            status_code=429,
            retry_delay_ms=err.retry_delay_seconds * 1000 + EMBEDDED_DELAY_MARGIN_MS,
        )
    if is_rate_limited(err.message):
        return RetryableError(f"HTTP 429: {err.message}", status_code=429)
    return TerminalError(err.message)


def parse_retry_after(value: str | None) -> int | None:
    """Seconds from a numeric retry-after header; None when absent or not numeric."""
    if not value:
        return None
    try:
        seconds = int(float(value.strip()))
    except ValueError:
        return None
    return max(seconds, 0)


class RetryExecutor:
    def __init__(
        self,
        client: httpx.AsyncClient,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_delay_ms: int = DEFAULT_INITIAL_DELAY_MS,
        delay_extractor: DelayExtractor | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        min_image_bytes: int = MIN_IMAGE_BYTES,
    ):
        self._client = client
        self.max_attempts = max(1, max_attempts)
        self.initial_delay_ms = initial_delay_ms
        self.delay_extractor = delay_extractor or DelayExtractor()
        self._sleep = sleep
        self.min_image_bytes = min_image_bytes

    async def call(self, url: str, name: str = "", method: str = "GET", **request_kwargs) -> Success:
        """Call url until it yields a result. Raises TerminalError at once, or the last RetryableError."""
        call = RetryableCall(
            target_url=url,
            max_attempts=self.max_attempts,
            current_delay_ms=self.initial_delay_ms,
            name=name or url,
        )
        last_error: ExternalCallError | None = None
        while call.attempt_count < call.max_attempts:
            if call.attempt_count > 0:
                logger.info(
                    "Retrying %s (attempt %d/%d) in %d ms",
                    call.name, call.attempt_count + 1, call.max_attempts, call.current_delay_ms,
                )
                await self._sleep(call.current_delay_ms / 1000)
            call.attempt_count += 1
            try:
                return await self._attempt(method, url, **request_kwargs)
            except RetryableError as e:
                logger.warning("%s failed (attempt %d/%d): %s", call.name, call.attempt_count, call.max_attempts, e)
                last_error = e
                call.current_delay_ms = self._next_delay(call, e)
            except TerminalError as e:
                logger.warning("%s failed permanently: %s", call.name, e)
                raise
        raise last_error or TerminalError(f"{call.name} failed after {call.max_attempts} attempts")

    def _next_delay(self, call: RetryableCall, error: ExternalCallError) -> int:
        if error.retry_delay_ms is not None:
            return max(0, error.retry_delay_ms)
        # Rate limited without a server hint: back off harder straight away
        if error.status_code == 429 or call.attempt_count > 1:
            return call.current_delay_ms * 2
        return call.current_delay_ms

    async def _attempt(self, method: str, url: str, **request_kwargs) -> Success:
        try:
            response = await self._client.request(method, url, **request_kwargs)
        except httpx.TransportError as e:
            raise RetryableError(f"Network error: {e}") from e
        return self.classify_response(response)

    def classify_response(self, response: httpx.Response) -> Success:
        status = response.status_code
        if status == 429:
            retry_after = parse_retry_after(response.headers.get("retry-after"))
            delay = retry_after * 1000 + RETRY_AFTER_MARGIN_MS if retry_after is not None else None
            raise RetryableError(f"HTTP 429 {response.reason_phrase}", status_code=429, retry_delay_ms=delay)
        if status >= 500:
            raise RetryableError(f"HTTP {status} {response.reason_phrase}", status_code=status)
        if not response.is_success:
            message = f"API Error: {status} {response.reason_phrase}"
            if response.text:
                message += f" - {response.text[:100]}"
            raise TerminalError(message, status_code=status)

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                data = response.json()
            except ValueError as e:
                raise TerminalError("API returned malformed JSON") from e
            return self._resolve(decode_payload(data, self.delay_extractor))
        return self._from_image(response.content, content_type)

    def _resolve(self, variant) -> Success:
        if isinstance(variant, Success):
            return variant
        if isinstance(variant, StructuredError):
            raise classify_structured_error(variant)
        keys = ", ".join(variant.raw) if isinstance(variant.raw, dict) else type(variant.raw).__name__
        raise TerminalError(f"Unknown JSON format. Keys: {keys}")

    def _from_image(self, content: bytes, content_type: str) -> Success:
        if not content:
            raise TerminalError("API returned empty image blob")
        if len(content) < self.min_image_bytes:
            text = content.decode("utf-8", errors="replace")
            try:
                data = json.loads(text)
            except ValueError:
                data = None
            if data is not None:
                variant = decode_payload(data, self.delay_extractor)
                if isinstance(variant, Success):
                    return variant
                if isinstance(variant, StructuredError):
                    raise classify_structured_error(variant)
            elif any(marker in text.lower() for marker in MARKUP_MARKERS):
                raise TerminalError(f"Invalid Image Data: {text[:50]}...")
            logger.warning("Small image blob received (%d bytes)", len(content))
        return Success(content=content, content_type=content_type.split(";")[0].strip() or "image/png")
