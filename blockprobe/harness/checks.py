"""Soft-failing check aggregation for scenario steps."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger("blockprobe.harness.checks")


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one check. ``message`` is set only when the check failed."""

    passed: bool
    message: str = ""
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"passed": self.passed, "message": self.message}


def require(condition: object, detail: str) -> None:
    """Raise AssertionError with ``detail`` unless ``condition`` holds."""
    if not condition:
        raise AssertionError(detail)


class CheckAggregator:
    """
    Run checks, record failures, never re-raise assertion errors.

    The caller-supplied failure message is what gets surfaced; the raw
    assertion text is logged and kept as ``detail``.
    """

    def __init__(self) -> None:
        self.results: list[CheckResult] = []

    def reset(self) -> None:
        self.results = []

    def _record_failure(self, failure_message: str | None, exc: AssertionError) -> CheckResult:
        detail = str(exc) or exc.__class__.__name__
        message = failure_message or detail
        logger.warning("Check failed: %s (%s)", message, detail)
        result = CheckResult(passed=False, message=message, detail=detail)
        self.results.append(result)
        return result

    def run_check(self, check: Callable[[], Any], failure_message: str) -> CheckResult:
        """Run a synchronous check and record its outcome."""
        try:
            check()
        except AssertionError as exc:
            return self._record_failure(failure_message, exc)
        result = CheckResult(passed=True)
        self.results.append(result)
        return result

    async def run_async_check(
        self,
        check: Callable[[], Awaitable[Any]],
        failure_message: str | None = None,
    ) -> CheckResult:
        """Await a coroutine check and record its outcome.

        Without ``failure_message`` the assertion text itself is surfaced.
        """
        try:
            await check()
        except AssertionError as exc:
            return self._record_failure(failure_message, exc)
        result = CheckResult(passed=True)
        self.results.append(result)
        return result

    @property
    def failures(self) -> list[CheckResult]:
        return [result for result in self.results if not result.passed]

    @property
    def passed(self) -> bool:
        return not self.failures

    @property
    def first_failure(self) -> CheckResult | None:
        failures = self.failures
        return failures[0] if failures else None
