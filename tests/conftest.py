from __future__ import annotations

from typing import Optional, Sequence

import pytest

from sentiment_tally.aggregator import CounterUpdater, UpdaterConfig
from sentiment_tally.blob_storage import InMemoryBlobStorage
from sentiment_tally.classifier import Classifier
from sentiment_tally.counter_store import CounterStore
from sentiment_tally.dispatcher import Dispatcher
from sentiment_tally.sentiment_types import ClassificationResult, Label
from sentiment_tally.service import ServiceContext

COUNTER_KEY = "sentiment.csv"


class KeywordModel:
    """Deterministic stand-in for the transformers model."""

    POSITIVE_WORDS = ("love", "great", "good")
    NEGATIVE_WORDS = ("hate", "terrible", "bad")

    def __init__(self, output_none: bool = False, fail: bool = False):
        self.calls = 0
        self._output_none = output_none
        self._fail = fail

    def predict(self, texts: Sequence[str]) -> list[Optional[ClassificationResult]]:
        self.calls += 1
        if self._fail:
            raise RuntimeError("CUDA out of memory")
        if self._output_none:
            return [None for _ in texts]

        out: list[Optional[ClassificationResult]] = []
        for t in texts:
            low = t.lower()
            if any(w in low for w in self.NEGATIVE_WORDS):
                out.append(ClassificationResult(label=Label.NEGATIVE, confidence=0.93))
            elif any(w in low for w in self.POSITIVE_WORDS):
                out.append(ClassificationResult(label=Label.POSITIVE, confidence=0.97))
            else:
                out.append(ClassificationResult(label=Label.POSITIVE, confidence=0.55))
        return out


def make_context(
        model: Optional[KeywordModel] = None,
        blobs: Optional[InMemoryBlobStorage] = None,
        mode: str = "optimistic",
) -> ServiceContext:
    model = model or KeywordModel()
    blobs = blobs if blobs is not None else InMemoryBlobStorage()
    classifier = Classifier(model)
    store = CounterStore(blobs)
    updater = CounterUpdater(
        store,
        UpdaterConfig(key=COUNTER_KEY, mode=mode, max_attempts=16, backoff_base_sec=0.0, backoff_max_sec=0.0),
    )
    return ServiceContext(
        classifier=classifier,
        store=store,
        updater=updater,
        dispatcher=Dispatcher(classifier, updater),
    )


@pytest.fixture
def model() -> KeywordModel:
    return KeywordModel()


@pytest.fixture
def blobs() -> InMemoryBlobStorage:
    return InMemoryBlobStorage()


@pytest.fixture
def build_ctx():
    return make_context
