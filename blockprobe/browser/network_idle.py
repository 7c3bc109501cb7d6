"""In-flight request tracking and network idle detection for a single page."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from blockprobe.errors import NetworkIdleTimeoutError

logger = logging.getLogger("blockprobe.browser.network_idle")

NETWORK_IDLE_0 = "network-idle-0"
NETWORK_IDLE_2 = "network-idle-2"
IDLE_THRESHOLDS = {
    NETWORK_IDLE_0: 0,
    NETWORK_IDLE_2: 2,
}
DEFAULT_QUIESCENCE_MS = 500
DEFAULT_IDLE_TIMEOUT_MS = 60_000


def _mode_key(mode: str) -> str:
    return str(mode).strip().lower().replace("-", "").replace("_", "")


_MODES_BY_KEY = {_mode_key(mode): mode for mode in IDLE_THRESHOLDS}


def normalize_idle_mode(mode: str) -> str:
    """Map ``network-idle-0``, ``network_idle0`` or ``networkidle0`` to one canonical mode name."""
    canonical = _MODES_BY_KEY.get(_mode_key(mode))
    if canonical is None:
        raise ValueError(f"unsupported network idle mode: {mode}")
    return canonical


def resolve_idle_threshold(mode: str) -> int:
    """Return the tolerated in-flight request count for an idle mode."""
    return IDLE_THRESHOLDS[normalize_idle_mode(mode)]


class NetworkActivityMonitor:
    """
    Count in-flight requests on a page and wait for the count to settle.

    Attach before the page starts the work being measured. Failed or aborted
    requests count as finished.
    """

    def __init__(self, page: Any, quiescence_ms: int = DEFAULT_QUIESCENCE_MS) -> None:
        self._page = page
        self.quiescence_ms = quiescence_ms
        self._inflight: set[Any] = set()
        self._changed = asyncio.Event()
        self._attached = False

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    def attach(self) -> None:
        if self._attached:
            return
        self._page.on("request", self._on_request)
        self._page.on("requestfinished", self._on_request_done)
        self._page.on("requestfailed", self._on_request_done)
        self._attached = True

    def detach(self) -> None:
        if not self._attached:
            return
        self._page.remove_listener("request", self._on_request)
        self._page.remove_listener("requestfinished", self._on_request_done)
        self._page.remove_listener("requestfailed", self._on_request_done)
        self._attached = False
        self._inflight.clear()

    def _on_request(self, request: Any) -> None:
        self._inflight.add(request)
        logger.debug("Request started (%d in flight): %s", len(self._inflight), getattr(request, "url", ""))
        self._changed.set()

    def _on_request_done(self, request: Any) -> None:
        # Requests started before attach() are not tracked.
        self._inflight.discard(request)
        logger.debug("Request settled (%d in flight): %s", len(self._inflight), getattr(request, "url", ""))
        self._changed.set()

    async def _wait_for_change(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._changed.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def wait_for_idle(
        self,
        mode: str = NETWORK_IDLE_0,
        timeout_ms: int = DEFAULT_IDLE_TIMEOUT_MS,
    ) -> None:
        """Resolve once in-flight requests stay within the mode threshold for the quiescence window."""
        threshold = resolve_idle_threshold(mode)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        quiet_window = self.quiescence_ms / 1000
        logger.info("Waiting for %s (timeout %dms)", mode, timeout_ms)

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise NetworkIdleTimeoutError(
                    f"Network did not reach {mode} within {timeout_ms}ms "
                    f"({len(self._inflight)} requests in flight)"
                )
            self._changed.clear()
            if len(self._inflight) > threshold:
                await self._wait_for_change(remaining)
                continue
            window = min(quiet_window, remaining)
            if await self._wait_for_change(window):
                continue
            if window >= quiet_window:
                logger.info("Network reached %s", mode)
                return
