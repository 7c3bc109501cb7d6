"""Deterministic failure taxonomy and fingerprint utilities."""

from __future__ import annotations

import hashlib

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from blockprobe.contracts import ERROR_SCHEMA_V1
from blockprobe.errors import HarnessError


def build_failure(
    *,
    error_class: str,
    error_code: str,
    state: str,
    message: str,
    search_term: str = "",
) -> dict[str, str]:
    """Build a stable failure payload for CI outputs and run reports."""
    fingerprint_input = "|".join(
        [
            error_class,
            error_code,
            state or "",
            search_term or "",
        ]
    )
    fingerprint = hashlib.sha256(fingerprint_input.encode("utf-8")).hexdigest()
    return {
        "error_schema_version": ERROR_SCHEMA_V1,
        "error_class": error_class,
        "error_code": error_code,
        "state": state,
        "search_term": search_term or "",
        "message": message,
        "fingerprint": fingerprint,
    }


def classify_failure(
    *,
    error: BaseException,
    state: str,
    search_term: str = "",
    message: str | None = None,
) -> dict[str, str]:
    """Classify a scenario exception into the versioned error taxonomy."""
    text = message if message is not None else str(error)

    if isinstance(error, HarnessError):
        return build_failure(
            error_class=error.error_class,
            error_code=error.error_code,
            state=state,
            search_term=search_term,
            message=text,
        )

    lower = str(error).lower()
    if isinstance(error, PlaywrightTimeoutError) and "waiting for" in lower and "selector" in lower:
        return build_failure(
            error_class="selector_not_found",
            error_code="SEL_NOT_FOUND",
            state=state,
            search_term=search_term,
            message=text,
        )
    if isinstance(error, (PlaywrightTimeoutError, TimeoutError)) or "timeout" in lower:
        return build_failure(
            error_class="timeout",
            error_code="TIMEOUT_OPERATION",
            state=state,
            search_term=search_term,
            message=text,
        )

    return build_failure(
        error_class="unexpected",
        error_code="UNEXPECTED",
        state=state,
        search_term=search_term,
        message=text,
    )
