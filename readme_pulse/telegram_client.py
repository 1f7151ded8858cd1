"""Thin client for posting update summaries to a Telegram chat."""

import time
from typing import Optional

import requests

from readme_pulse.errors import ApiError, ParseError, RateLimitExceeded, RequestTimeoutError, UpstreamError
from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__, tag="telegram_client")

TELEGRAM_API_BASE = "https://api.telegram.org/bot"
MAX_MESSAGE_LENGTH = 4096
PARSE_MODES = {"HTML", "Markdown", "MarkdownV2"}


class TelegramClient:
    """Minimal client for the Bot API `sendMessage` call."""
    def __init__(
        self,
        token: str,
        *,
        default_chat_id: Optional[str] = None,
        parse_mode: Optional[str] = "HTML",
        retry_attempts: int = 3,
        retry_delay_sec: float = 1.0,
        timeout: float = 10,
    ):
        if not token or not token.strip():
            raise ValueError("Telegram bot token must not be empty")
        self.url = f"{TELEGRAM_API_BASE}{token.strip()}/sendMessage"
        self.default_chat_id = default_chat_id
        self.parse_mode = parse_mode
        self.retry_attempts = retry_attempts
        self.retry_delay_sec = retry_delay_sec
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "TelegramClient":
        return cls(
            settings.telegram_bot_token,
            default_chat_id=settings.telegram_chat_id,
            parse_mode=settings.telegram_parse_mode,
            retry_attempts=settings.telegram_retry_attempts,
            retry_delay_sec=settings.telegram_retry_delay_seconds,
            timeout=settings.telegram_timeout_seconds,
        )

    def _build_payload(self, text: str, chat_id: Optional[str], parse_mode: Optional[str]) -> dict:
        chat_id = chat_id or self.default_chat_id
        if not chat_id:
            raise ApiError("Chat ID is required")
        if not text:
            raise ApiError("Message text is required")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ApiError(f"Message too long: {len(text)} characters (max {MAX_MESSAGE_LENGTH})")
        mode = parse_mode or self.parse_mode
        if mode and mode not in PARSE_MODES:
            raise ApiError(f"Unsupported parse mode '{mode}'")

        payload = {"chat_id": chat_id, "text": text, "disable_web_page_preview": True}
        if mode:
            payload["parse_mode"] = mode
        return payload

    def _try_send(self, payload: dict) -> None:
        try:
            r = requests.post(self.url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            raise RequestTimeoutError(f"Telegram request timed out after {self.timeout}s") from exc
        except requests.exceptions.RequestException as exc:
            raise ApiError(f"Telegram request failed: {exc}") from exc

        if r.status_code == 429:
            raise RateLimitExceeded("telegram")

        try:
            data = r.json()
        except ValueError as exc:
            raise ParseError(f"Telegram returned non-JSON response: {(r.text or '')[:200]}") from exc

        if not data.get("ok"):
            raise ApiError(f"{r.status_code}: {data.get('description', '')}", status_code=r.status_code)

    def send_message(self, text: str, *, chat_id: Optional[str] = None, parse_mode: Optional[str] = None) -> None:
        """Send `text`, retrying failed deliveries with a fixed delay, then raising the last error."""
        payload = self._build_payload(text, chat_id, parse_mode)

        for attempt in range(self.retry_attempts + 1):
            try:
                self._try_send(payload)
            except UpstreamError as exc:
                if attempt >= self.retry_attempts:
                    logger.error("All Telegram delivery attempts failed: %s", exc)
                    raise
                logger.warning(
                    "Telegram delivery failed on attempt %d/%d: %s. Retrying...",
                    attempt + 1,
                    self.retry_attempts + 1,
                    exc,
                )
                time.sleep(self.retry_delay_sec)
                continue
            logger.debug("Message sent to %s", mask_url(self.url))
            return
