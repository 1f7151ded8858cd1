import unittest

import requests

from readme_pulse.errors import ApiError, ParseError, RateLimitExceeded, RequestTimeoutError
from readme_pulse.telegram_client import MAX_MESSAGE_LENGTH, TelegramClient


class DummyResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload if payload is not None else {"ok": True, "result": {}}
        self.text = text

    def json(self):
        if self._payload == "not-json":
            raise ValueError("Expecting value")
        return self._payload


class ScriptedPost:
    """Return (or raise) the scripted items in order, recording every call."""

    def __init__(self, *items):
        self.items = list(items)
        self.calls = []

    def __call__(self, url, json=None, timeout=None):
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        item = self.items.pop(0) if len(self.items) > 1 else self.items[0]
        if isinstance(item, Exception):
            raise item
        return item


class TestTelegramClient(unittest.TestCase):
    def setUp(self):
        from readme_pulse import telegram_client as tc
        self.tc = tc
        self._orig_post = tc.requests.post

    def tearDown(self):
        self.tc.requests.post = self._orig_post

    def _client(self, **kwargs):
        kwargs.setdefault("default_chat_id", "42")
        kwargs.setdefault("retry_delay_sec", 0)
        return TelegramClient("123:ABC", **kwargs)

    def test_send_message_success(self):
        post = ScriptedPost(DummyResponse())
        self.tc.requests.post = post

        self._client(timeout=7).send_message("<b>hi</b>")

        self.assertEqual(len(post.calls), 1)
        call = post.calls[0]
        self.assertEqual(call["url"], "https://api.telegram.org/bot123:ABC/sendMessage")
        self.assertEqual(call["timeout"], 7)
        self.assertEqual(
            call["json"],
            {"chat_id": "42", "text": "<b>hi</b>", "disable_web_page_preview": True, "parse_mode": "HTML"},
        )

    def test_explicit_chat_and_mode(self):
        post = ScriptedPost(DummyResponse())
        self.tc.requests.post = post

        self._client().send_message("hi", chat_id="-100", parse_mode="MarkdownV2")

        self.assertEqual(post.calls[0]["json"]["chat_id"], "-100")
        self.assertEqual(post.calls[0]["json"]["parse_mode"], "MarkdownV2")

    def test_retries_then_succeeds(self):
        post = ScriptedPost(requests.exceptions.ConnectionError("down"), DummyResponse(500, {"ok": False}), DummyResponse())
        self.tc.requests.post = post

        self._client(retry_attempts=3).send_message("hi")

        self.assertEqual(len(post.calls), 3)

    def test_gives_up_after_retry_attempts(self):
        post = ScriptedPost(requests.exceptions.Timeout("slow"))
        self.tc.requests.post = post

        with self.assertRaises(RequestTimeoutError):
            self._client(retry_attempts=2).send_message("hi")

        self.assertEqual(len(post.calls), 3)

    def test_rate_limit_is_retried(self):
        post = ScriptedPost(DummyResponse(429, {"ok": False}))
        self.tc.requests.post = post

        with self.assertRaises(RateLimitExceeded):
            self._client(retry_attempts=1).send_message("hi")
        self.assertEqual(len(post.calls), 2)

    def test_not_ok_response(self):
        self.tc.requests.post = ScriptedPost(DummyResponse(400, {"ok": False, "description": "chat not found"}))
        with self.assertRaises(ApiError) as ctx:
            self._client(retry_attempts=0).send_message("hi")
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertIn("chat not found", str(ctx.exception))

    def test_non_json_response(self):
        self.tc.requests.post = ScriptedPost(DummyResponse(502, "not-json", text="<html>Bad gateway</html>"))
        with self.assertRaises(ParseError):
            self._client(retry_attempts=0).send_message("hi")

    def test_message_too_long_is_not_sent(self):
        post = ScriptedPost(DummyResponse())
        self.tc.requests.post = post

        self._client().send_message("x" * MAX_MESSAGE_LENGTH)
        with self.assertRaises(ApiError):
            self._client().send_message("x" * (MAX_MESSAGE_LENGTH + 1))
        self.assertEqual(len(post.calls), 1)

    def test_validation_errors(self):
        post = ScriptedPost(DummyResponse())
        self.tc.requests.post = post

        with self.assertRaises(ApiError):
            TelegramClient("123:ABC").send_message("no chat configured")
        with self.assertRaises(ApiError):
            self._client().send_message("")
        with self.assertRaises(ApiError):
            self._client().send_message("hi", parse_mode="BBCode")
        self.assertEqual(post.calls, [])

    def test_empty_token(self):
        with self.assertRaises(ValueError):
            TelegramClient("  ")


if __name__ == "__main__":
    unittest.main()
