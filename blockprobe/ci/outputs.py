"""CI output channels for publishing scenario results."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Protocol, TextIO
from uuid import uuid4

logger = logging.getLogger("blockprobe.ci.outputs")


class OutputChannel(Protocol):
    """Sink for final run outputs."""

    def set_output(self, key: str, value: Any) -> None:
        """Publish one named output."""

    def set_failed(self, message: str) -> None:
        """Mark the run as failed with a message."""

    def info(self, message: str) -> None:
        """Emit an informational line."""


def to_output_value(value: Any) -> str:
    """Strings pass through; everything else is JSON encoded."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _escape_command_data(message: str) -> str:
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


class GithubActionsOutput:
    """Write outputs to the ``$GITHUB_OUTPUT`` file and workflow commands to a stream."""

    def __init__(self, output_path: Path, stream: TextIO | None = None) -> None:
        self.output_path = output_path
        self.stream = stream or sys.stdout

    def set_output(self, key: str, value: Any) -> None:
        delimiter = f"ghadelimiter_{uuid4()}"
        text = to_output_value(value)
        with self.output_path.open("a", encoding="utf-8") as handle:
            handle.write(f"{key}<<{delimiter}\n{text}\n{delimiter}\n")
        logger.debug("Published output %s (%d chars)", key, len(text))

    def set_failed(self, message: str) -> None:
        self.stream.write(f"::error::{_escape_command_data(message)}\n")
        self.stream.flush()

    def info(self, message: str) -> None:
        self.stream.write(f"{message}\n")
        self.stream.flush()


class ConsoleOutput:
    """Collect outputs in memory for local runs and dump them as JSON."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout
        self.outputs: dict[str, Any] = {}
        self.failures: list[str] = []

    def set_output(self, key: str, value: Any) -> None:
        self.outputs[key] = value

    def set_failed(self, message: str) -> None:
        self.failures.append(message)
        self.stream.write(f"FAILED: {message}\n")

    def info(self, message: str) -> None:
        self.stream.write(f"{message}\n")

    def dump(self) -> str:
        return json.dumps(
            {"outputs": self.outputs, "failures": self.failures},
            indent=2,
            default=str,
        )
