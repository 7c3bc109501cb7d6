"""Harness exception hierarchy with stable taxonomy class/code fields."""


class HarnessError(Exception):
    """Base error type for all scenario failures."""

    error_class = "unexpected"
    error_code = "UNEXPECTED"


class AssertionFailure(HarnessError, AssertionError):
    """A soft check escalated because later steps depend on it."""

    error_class = "assertion"
    error_code = "CHECK_FAILED"


class HarnessTimeoutError(HarnessError, TimeoutError):
    """A suspension point exceeded its bound."""

    error_class = "timeout"
    error_code = "TIMEOUT_OPERATION"


class NetworkIdleTimeoutError(HarnessTimeoutError):
    """Network activity never settled within the allowed time."""

    error_code = "TIMEOUT_NETWORK_IDLE"


class ResponseTimeoutError(HarnessTimeoutError):
    """No response matched the armed predicate within the allowed time."""

    error_code = "TIMEOUT_RESPONSE"


class PageRuntimeError(HarnessError):
    """An uncaught JavaScript error surfaced inside the observed page."""

    error_class = "page_runtime"
    error_code = "PAGE_UNCAUGHT_ERROR"
