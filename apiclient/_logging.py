"""Logger capability used by the client for request events.

The client reports request, response, retry and error events through a
``RequestLogger``. Any object with a matching ``log`` method works; the
client functions the same with the no-op logger.

This is an internal module and should not be imported directly by users.
"""

import logging
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

DEFAULT_LOGGER_NAME = "apiclient"


@runtime_checkable
class RequestLogger(Protocol):
    """Capability receiving request lifecycle events."""

    def log(self, level: int, message: str, context: Mapping[str, Any]) -> None:
        ...


class StdlibRequestLogger:
    """Forwards request events to a standard library logger.

    The context mapping is rendered after the message and is also attached
    to the record as ``record.context`` for structured handlers.
    """

    def __init__(self, logger: logging.Logger | str = DEFAULT_LOGGER_NAME) -> None:
        if isinstance(logger, str):
            logger = logging.getLogger(logger)
        self.logger = logger

    def log(self, level: int, message: str, context: Mapping[str, Any]) -> None:
        if not self.logger.isEnabledFor(level):
            return
        rendered = " ".join(f"{key}={value}" for key, value in context.items())
        self.logger.log(
            level,
            f"{message} {rendered}" if rendered else message,
            extra={"context": dict(context)},
        )


class NullRequestLogger:
    """Discards every event."""

    def log(self, level: int, message: str, context: Mapping[str, Any]) -> None:
        return None
