"""Tests for response matching and arm-then-trigger correlation."""

import logging
import unittest
from collections import defaultdict

from blockprobe.browser.responses import (
    BLOCK_DIRECTORY_SEARCH_PATH,
    ResponseCorrelator,
    ResponseMatcher,
    url_matches,
)
from blockprobe.errors import ResponseTimeoutError

logger = logging.getLogger(__name__)

PLAIN_URL = "http://localhost:8889/wp-json/wp/v2/block-directory/search?term=foo-block"
ENCODED_URL = "http://localhost:8889/index.php?rest_route=%2Fwp%2Fv2%2Fblock-directory%2Fsearch&term=foo-block"


class _EmitterPage:
    def __init__(self) -> None:
        self.handlers: dict[str, list] = defaultdict(list)

    def on(self, event: str, handler) -> None:
        self.handlers[event].append(handler)

    def remove_listener(self, event: str, handler) -> None:
        self.handlers[event].remove(handler)

    def emit(self, event: str, payload: object) -> None:
        for handler in list(self.handlers[event]):
            handler(payload)


class _Request:
    def __init__(self, method: str) -> None:
        self.method = method


class _Response:
    def __init__(self, url: str, body: object, status: int = 200, method: str = "GET") -> None:
        self.url = url
        self.status = status
        self.request = _Request(method)
        self._body = body

    async def json(self) -> object:
        if isinstance(self._body, bytes):
            raise ValueError("Expecting value")
        return self._body

    async def body(self) -> bytes:
        return self._body if isinstance(self._body, bytes) else b""


class ResponseMatcherTests(unittest.TestCase):
    """URL is matched literally or percent-encoded; pre-flights never match."""

    def setUp(self) -> None:
        self.matcher = ResponseMatcher(BLOCK_DIRECTORY_SEARCH_PATH)

    def test_literal_and_encoded_urls_match(self) -> None:
        self.assertTrue(url_matches(PLAIN_URL, BLOCK_DIRECTORY_SEARCH_PATH))
        self.assertTrue(url_matches(ENCODED_URL, BLOCK_DIRECTORY_SEARCH_PATH))
        self.assertTrue(self.matcher(_Response(PLAIN_URL, [])))
        self.assertTrue(self.matcher(_Response(ENCODED_URL, [])))

    def test_options_request_is_rejected(self) -> None:
        self.assertFalse(self.matcher(_Response(PLAIN_URL, None, method="OPTIONS")))
        self.assertFalse(ResponseMatcher(BLOCK_DIRECTORY_SEARCH_PATH, method=None)(_Response(PLAIN_URL, None, method="OPTIONS")))

    def test_status_and_method_must_match(self) -> None:
        self.assertFalse(self.matcher(_Response(PLAIN_URL, [], status=500)))
        self.assertFalse(self.matcher(_Response(PLAIN_URL, [], method="POST")))

    def test_other_urls_do_not_match(self) -> None:
        self.assertFalse(self.matcher(_Response("http://localhost:8889/wp-json/wp/v2/types", [])))


class ResponseCorrelatorTests(unittest.IsolatedAsyncioTestCase):
    """Waiters armed before the trigger receive the first matching response."""

    async def asyncSetUp(self) -> None:
        self.page = _EmitterPage()
        self.correlator = ResponseCorrelator(self.page, default_timeout_ms=200)
        self.matcher = ResponseMatcher(BLOCK_DIRECTORY_SEARCH_PATH)

    async def test_arm_then_trigger_resolves_with_decoded_body(self) -> None:
        logger.info("Testing arm-then-trigger response correlation.")

        async def _trigger() -> None:
            self.page.emit("response", _Response(ENCODED_URL, None, method="OPTIONS"))
            self.page.emit("response", _Response(ENCODED_URL, ["foo-block"]))

        response = await self.correlator.await_response(self.matcher, _trigger)
        self.assertEqual(response.body, ["foo-block"])
        self.assertEqual(response.method, "GET")
        self.assertEqual(response.status, 200)
        self.assertEqual(self.page.handlers["response"], [])

    async def test_response_before_arming_is_missed(self) -> None:
        self.page.emit("response", _Response(PLAIN_URL, ["too-early"]))
        pending = self.correlator.arm(self.matcher, timeout_ms=50)
        with self.assertRaises(ResponseTimeoutError) as ctx:
            await pending.wait()
        self.assertIsInstance(ctx.exception, TimeoutError)
        self.assertEqual(self.correlator.armed_count, 0)

    async def test_each_response_goes_to_one_waiter(self) -> None:
        first = self.correlator.arm(self.matcher)
        second = self.correlator.arm(self.matcher)
        self.page.emit("response", _Response(PLAIN_URL, ["one"]))
        self.assertTrue(first.done)
        self.assertFalse(second.done)
        self.assertEqual(self.correlator.armed_count, 1)

        self.page.emit("response", _Response(PLAIN_URL, ["two"]))
        self.assertEqual((await first.wait()).body, ["one"])
        self.assertEqual((await second.wait()).body, ["two"])

    async def test_non_json_body_falls_back_to_bytes(self) -> None:
        async def _trigger() -> None:
            self.page.emit("response", _Response(PLAIN_URL, b"<html>"))

        response = await self.correlator.await_response(self.matcher, _trigger)
        self.assertEqual(response.body, b"<html>")

    async def test_failed_trigger_disarms_waiter(self) -> None:
        async def _trigger() -> None:
            raise RuntimeError("inserter missing")

        with self.assertRaises(RuntimeError):
            await self.correlator.await_response(self.matcher, _trigger)
        self.assertEqual(self.correlator.armed_count, 0)
        self.assertEqual(self.page.handlers["response"], [])


if __name__ == "__main__":
    unittest.main()
