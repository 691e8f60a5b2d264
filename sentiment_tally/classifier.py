from __future__ import annotations

import asyncio
import logging
import threading
from typing import Optional, Protocol, Sequence

from sentiment_tally.errors import ClassificationError
from sentiment_tally.sentiment_types import ClassificationResult

logger = logging.getLogger(__name__)


class SupportsPredict(Protocol):
    def predict(self, texts: Sequence[str]) -> Sequence[Optional[ClassificationResult]]: ...


class Classifier:
    """
    Async front for a shared, process-wide sentiment model.

    Inference runs in a worker thread while holding a lock, so at most one
    call touches the model at a time in this process.
    """

    def __init__(self, model: SupportsPredict):
        self._model = model
        self._lock = threading.Lock()

    async def classify(self, text: str) -> ClassificationResult:
        """
        Raises:
            ClassificationError: blank text, model failure, or no output
        """
        if text is None or not str(text).strip():
            raise ClassificationError("Cannot classify empty text")
        return await asyncio.to_thread(self._classify_locked, str(text))

    def _classify_locked(self, text: str) -> ClassificationResult:
        with self._lock:
            try:
                results = self._model.predict([text])
            except Exception as e:
                logger.error("Sentiment model failed: err=%s", e)
                raise ClassificationError(f"Sentiment model failed: {e}") from e

        result = next(iter(results), None)
        if result is None:
            raise ClassificationError("Sentiment model produced no output")
        return result
