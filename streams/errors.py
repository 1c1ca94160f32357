from __future__ import annotations

from typing import Optional


class StreamError(Exception):
    """Base class for broker-facing failures."""


class StreamConnectionError(StreamError, ConnectionError):
    """The broker could not be reached for subscribe, consume or produce."""


class PublishError(StreamError):
    """The broker rejected or failed to acknowledge a publish."""

    def __init__(self, topic: str, key: Optional[str], reason: str) -> None:
        super().__init__(f"Failed to publish to {topic!r} (key={key!r}): {reason}")
        self.topic = topic
        self.key = key
        self.reason = reason
