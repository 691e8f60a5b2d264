from __future__ import annotations


class SentimentTallyError(Exception):
    """Base class for every error this service raises on purpose."""

    kind = "InternalError"


class InvalidCommand(SentimentTallyError):
    kind = "InvalidCommand"

    def __init__(self, command: object):
        super().__init__(f"Invalid command: {command!r}")
        self.command = command


class MalformedRequest(SentimentTallyError):
    """Request body could not be parsed or lacks required fields."""

    kind = "MalformedRequest"


class ClassificationError(SentimentTallyError):
    kind = "ClassificationError"


class StoreError(SentimentTallyError):
    """Blob storage retrieval/write failure (auth, network, permission, ...)."""

    kind = "StoreError"


class VersionConflict(StoreError):
    """Conditional save lost the race: stored version no longer matches."""

    def __init__(self, key: str, expected_version: str | None):
        super().__init__(f"Version conflict on key={key} expected={expected_version}")
        self.key = key
        self.expected_version = expected_version


class EncodingError(SentimentTallyError):
    """Counter document bytes are malformed."""

    kind = "EncodingError"
