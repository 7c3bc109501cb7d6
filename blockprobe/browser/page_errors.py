"""Uncaught page error capture for one scenario run."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger("blockprobe.browser.page_errors")


def format_page_error(error: Any) -> str:
    """Render a page error the way the browser prints it (``TypeError: x is undefined``)."""
    message = getattr(error, "message", None) or str(error)
    name = getattr(error, "name", None)
    if name and not message.startswith(f"{name}:"):
        return f"{name}: {message}"
    return message


class PageErrorRecord:
    """Single-slot holder for the latest uncaught page error."""

    def __init__(self) -> None:
        self._value: str | None = None

    @property
    def value(self) -> str | None:
        return self._value

    def record(self, message: str) -> None:
        self._value = message

    def clear(self) -> None:
        self._value = None

    def __bool__(self) -> bool:
        return self._value is not None


class PageErrorObserver:
    """Writes ``pageerror`` events from a page into a PageErrorRecord."""

    def __init__(self, page: Any, record: PageErrorRecord) -> None:
        self._page = page
        self.record = record
        self._attached = False

    def attach(self) -> None:
        if self._attached:
            return
        self._page.on("pageerror", self._on_page_error)
        self._attached = True

    def detach(self) -> None:
        if not self._attached:
            return
        self._page.remove_listener("pageerror", self._on_page_error)
        self._attached = False

    def _on_page_error(self, error: Any) -> None:
        message = format_page_error(error)
        logger.error("Uncaught page error: %s", message)
        self.record.record(message)
