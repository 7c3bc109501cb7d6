"""Arm-then-trigger correlation of network responses to user actions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from blockprobe.errors import ResponseTimeoutError

logger = logging.getLogger("blockprobe.browser.responses")

BLOCK_DIRECTORY_SEARCH_PATH = "/wp/v2/block-directory/search"
DEFAULT_RESPONSE_TIMEOUT_MS = 60_000

# Characters encodeURIComponent leaves untouched besides alphanumerics.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_uri_component(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def url_matches(url: str, fragment: str) -> bool:
    """Match the literal fragment or its percent-encoded form.

    Depending on the environment the REST route may arrive encoded
    (``?rest_route=%2Fwp%2Fv2%2F...``) or not, so both are checked.
    """
    return fragment in url or encode_uri_component(fragment) in url


@dataclass(frozen=True)
class ResponseMatcher:
    """Predicate over a Playwright response's URL, status and method."""

    url_fragment: str
    method: str | None = "GET"
    status: int | None = 200

    def __call__(self, response: Any) -> bool:
        request_method = str(response.request.method).upper()
        if request_method == "OPTIONS":
            return False
        if self.method is not None and request_method != self.method.upper():
            return False
        if self.status is not None and response.status != self.status:
            return False
        return url_matches(response.url, self.url_fragment)


@dataclass(frozen=True)
class NetworkResponse:
    url: str
    status: int
    method: str
    body: Any


async def decode_response(response: Any) -> NetworkResponse:
    """Read a response once, preferring JSON and falling back to raw bytes."""
    try:
        body = await response.json()
    except ValueError:
        body = await response.body()
    return NetworkResponse(
        url=response.url,
        status=response.status,
        method=str(response.request.method).upper(),
        body=body,
    )


class PendingResponse:
    """A waiter armed on a correlator, resolved by the first matching response."""

    def __init__(
        self,
        correlator: ResponseCorrelator,
        predicate: Callable[[Any], bool],
        timeout_ms: int,
    ) -> None:
        self._correlator = correlator
        self.predicate = predicate
        self.timeout_ms = timeout_ms
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def done(self) -> bool:
        return self._future.done()

    def _offer(self, response: Any) -> bool:
        if self._future.done():
            return False
        if not self.predicate(response):
            return False
        self._future.set_result(response)
        return True

    def cancel(self) -> None:
        self._correlator._release(self)
        if not self._future.done():
            self._future.cancel()

    async def wait(self) -> NetworkResponse:
        try:
            response = await asyncio.wait_for(self._future, timeout=self.timeout_ms / 1000)
        except asyncio.TimeoutError as exc:
            raise ResponseTimeoutError(
                f"No response matched {self.predicate!r} within {self.timeout_ms}ms"
            ) from exc
        finally:
            self._correlator._release(self)
        logger.info("Matched response %s %s (%s)", response.request.method, response.url, response.status)
        return await decode_response(response)


class ResponseCorrelator:
    """
    Hand each page response to at most one armed waiter.

    Waiters are offered responses in the order they were armed; the first
    whose predicate matches takes it.
    """

    def __init__(self, page: Any, default_timeout_ms: int = DEFAULT_RESPONSE_TIMEOUT_MS) -> None:
        self._page = page
        self.default_timeout_ms = default_timeout_ms
        self._waiters: list[PendingResponse] = []
        self._listening = False

    @property
    def armed_count(self) -> int:
        return len(self._waiters)

    def arm(self, predicate: Callable[[Any], bool], timeout_ms: int | None = None) -> PendingResponse:
        """Register a waiter. Must happen before the action that produces the response."""
        pending = PendingResponse(self, predicate, timeout_ms or self.default_timeout_ms)
        self._waiters.append(pending)
        if not self._listening:
            self._page.on("response", self._on_response)
            self._listening = True
        return pending

    async def await_response(
        self,
        predicate: Callable[[Any], bool],
        trigger: Callable[[], Awaitable[Any]],
        timeout_ms: int | None = None,
    ) -> NetworkResponse:
        """Arm ``predicate``, run ``trigger``, then wait for the match."""
        pending = self.arm(predicate, timeout_ms)
        try:
            await trigger()
        except BaseException:
            pending.cancel()
            raise
        return await pending.wait()

    def _on_response(self, response: Any) -> None:
        for pending in list(self._waiters):
            if pending._offer(response):
                self._release(pending)
                return

    def _release(self, pending: PendingResponse) -> None:
        if pending in self._waiters:
            self._waiters.remove(pending)
        if not self._waiters and self._listening:
            self._page.remove_listener("response", self._on_response)
            self._listening = False

    def close(self) -> None:
        for pending in list(self._waiters):
            pending.cancel()
