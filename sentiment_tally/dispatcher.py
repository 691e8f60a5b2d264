from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sentiment_tally.aggregator import CounterUpdater
from sentiment_tally.classifier import Classifier
from sentiment_tally.errors import (
    ClassificationError,
    EncodingError,
    InvalidCommand,
    MalformedRequest,
    SentimentTallyError,
    StoreError,
)
from sentiment_tally.sentiment_types import (
    SENTIMENT_COMMAND,
    ClassificationRequest,
    ClassificationResult,
    CounterDocument,
)

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


class DispatchState(str, enum.Enum):
    RECEIVED = "Received"
    VALIDATED = "Validated"
    CLASSIFIED = "Classified"
    LOADED = "Loaded"
    UPDATED = "Updated"
    PERSISTED = "Persisted"
    RESPONDED = "Responded"
    REJECTED = "Rejected"
    FAILED = "Failed"


@dataclass
class DispatchOutcome:
    """
    Terminal result of one request.

    state is RESPONDED (result set), REJECTED or FAILED (error set).
    trail lists every state visited, in order.
    """

    state: DispatchState = DispatchState.RECEIVED
    trail: list[DispatchState] = field(default_factory=lambda: [DispatchState.RECEIVED])
    result: Optional[ClassificationResult] = None
    document: Optional[CounterDocument] = None
    error: Optional[SentimentTallyError] = None

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error is not None else None

    @property
    def ok(self) -> bool:
        return self.state is DispatchState.RESPONDED

    def advance(self, state: DispatchState) -> None:
        self.state = state
        self.trail.append(state)

    def status_code(self) -> int:
        if self.state is DispatchState.RESPONDED:
            return 200
        if self.state is DispatchState.REJECTED:
            return 400
        return 500

    def to_body(self) -> dict[str, Any]:
        if self.state is DispatchState.RESPONDED:
            assert self.result is not None
            return {
                "result": f"Sentiment: {self.result.label.value}",
                "confidence": round(self.result.confidence, 6),
            }
        if self.state is DispatchState.REJECTED:
            if isinstance(self.error, InvalidCommand):
                return {"error": "Invalid command"}
            return {"error": str(self.error)}
        return {"error": INTERNAL_ERROR_MESSAGE}


def parse_request(payload: Any) -> ClassificationRequest:
    """
    Validate a request envelope: {"command": "sentiment", "text": "..."}.

    payload may be a mapping or raw JSON (str/bytes). The command is checked
    before the text is looked at.

    Raises:
        MalformedRequest: unparsable body, missing/blank text, wrong types
        InvalidCommand: command other than "sentiment"
    """
    if isinstance(payload, (bytes, bytearray, str)):
        try:
            payload = json.loads(payload)
        except (UnicodeDecodeError, ValueError) as e:
            raise MalformedRequest("Request body is not valid JSON") from e

    if not isinstance(payload, dict):
        raise MalformedRequest("Request body must be a JSON object")

    command = payload.get("command")
    if not isinstance(command, str):
        raise MalformedRequest("Missing command")
    if command != SENTIMENT_COMMAND:
        raise InvalidCommand(command)

    text = payload.get("text")
    if not isinstance(text, str) or not text.strip():
        raise MalformedRequest("Missing text parameter")

    return ClassificationRequest(command=command, text=text)


class Dispatcher:
    """
    Runs one request through validate -> classify -> load/update/save.

    Persistence policy: a request whose count could not be recorded fails
    as a whole, even though classification succeeded.
    """

    def __init__(self, classifier: Classifier, updater: CounterUpdater):
        self._classifier = classifier
        self._updater = updater

    async def dispatch(self, payload: Any) -> DispatchOutcome:
        outcome = DispatchOutcome()

        try:
            request = parse_request(payload)
        except (InvalidCommand, MalformedRequest) as e:
            logger.info("Rejected request: kind=%s err=%s", e.kind, e)
            outcome.error = e
            outcome.advance(DispatchState.REJECTED)
            return outcome
        outcome.advance(DispatchState.VALIDATED)

        try:
            result = await self._classifier.classify(request.text)
        except ClassificationError as e:
            logger.error("Classification failed: err=%s", e)
            outcome.error = e
            outcome.advance(DispatchState.FAILED)
            return outcome
        outcome.result = result
        outcome.advance(DispatchState.CLASSIFIED)

        try:
            outcome.document = await self._record(result, outcome)
        except (StoreError, EncodingError) as e:
            logger.exception("Counter update failed: kind=%s label=%s", e.kind, result.label.value)
            outcome.error = e
            outcome.advance(DispatchState.FAILED)
            return outcome

        outcome.advance(DispatchState.RESPONDED)
        logger.info(
            "Classified: label=%s confidence=%.4f counts=%s",
            result.label.value,
            result.confidence,
            {r.label.value: r.count for r in outcome.document.records()},
        )
        return outcome

    async def _record(self, result: ClassificationResult, outcome: DispatchOutcome) -> CounterDocument:
        def on_step(step: str) -> None:
            outcome.advance(_STEP_STATES[step])

        return await self._updater.record(result.label, on_step=on_step)


_STEP_STATES = {
    "loaded": DispatchState.LOADED,
    "updated": DispatchState.UPDATED,
    "persisted": DispatchState.PERSISTED,
}
