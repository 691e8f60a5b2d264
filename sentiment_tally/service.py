from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sentiment_tally.aggregator import CounterUpdater, UpdaterConfig
from sentiment_tally.blob_storage import BlobStorage, S3BlobStorage, S3Config
from sentiment_tally.classifier import Classifier, SupportsPredict
from sentiment_tally.counter_store import CounterStore
from sentiment_tally.dispatcher import DispatchOutcome, Dispatcher
from sentiment_tally.settings import ServiceSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceContext:
    """
    Owns the process's single Classifier and the counter pipeline.

    Built once at startup and handed to whichever transport serves requests.
    """

    classifier: Classifier
    store: CounterStore
    updater: CounterUpdater
    dispatcher: Dispatcher

    async def handle(self, payload: Any) -> DispatchOutcome:
        return await self.dispatcher.dispatch(payload)


def build_context(
        settings: ServiceSettings,
        model: Optional[SupportsPredict] = None,
        blobs: Optional[BlobStorage] = None,
) -> ServiceContext:
    """
    Wire the service from settings.

    model and blobs default to the transformers model and S3; tests pass
    their own.
    """
    if model is None:
        # Deferred so that tests and tooling never import torch.
        from sentiment_tally.sentiment_model import SentimentModel, SentimentModelConfig

        model = SentimentModel(
            SentimentModelConfig(
                model_path=settings.sentiment_model_path,
                model_version=settings.sentiment_model_version,
                max_length=settings.sentiment_max_length,
                device=settings.sentiment_device,
            )
        )

    if blobs is None:
        blobs = S3BlobStorage(
            S3Config(
                bucket=settings.bucket,
                region=settings.aws_region,
                endpoint_url=settings.s3_endpoint_url,
            )
        )

    if settings.consistency_mode == "approximate":
        logger.warning(
            "Counter consistency mode is 'approximate': concurrent updates to %s may be lost",
            settings.counter_key,
        )

    classifier = Classifier(model)
    store = CounterStore(blobs)
    updater = CounterUpdater(
        store,
        UpdaterConfig(
            key=settings.counter_key,
            mode=settings.consistency_mode,
            max_attempts=settings.max_update_attempts,
            backoff_base_sec=settings.backoff_base_sec,
            backoff_max_sec=settings.backoff_max_sec,
        ),
    )
    return ServiceContext(
        classifier=classifier,
        store=store,
        updater=updater,
        dispatcher=Dispatcher(classifier, updater),
    )
