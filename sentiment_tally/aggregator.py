from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Callable, Literal, Optional

from sentiment_tally.counter_store import CounterStore
from sentiment_tally.errors import StoreError, VersionConflict
from sentiment_tally.sentiment_types import CounterDocument, Label

logger = logging.getLogger(__name__)

# optimistic: load -> increment -> conditional save, retried on conflict.
# approximate: single unguarded load -> increment -> save; concurrent
#   updates can be lost. Only for tests and local runs.
ConsistencyMode = Literal["optimistic", "approximate"]
StepCallback = Callable[[str], None]


def _ignore_step(step: str) -> None:
    pass


def increment(doc: CounterDocument, label: Label) -> CounterDocument:
    """Return a copy of doc with label's count raised by one."""
    return doc.with_count(label, doc.get(label) + 1)


@dataclass(frozen=True)
class UpdaterConfig:
    key: str
    mode: ConsistencyMode = "optimistic"
    max_attempts: int = 8
    backoff_base_sec: float = 0.05
    backoff_max_sec: float = 1.0


class CounterUpdater:
    """Applies one classification outcome to the shared counter document."""

    def __init__(self, store: CounterStore, cfg: UpdaterConfig):
        if cfg.mode not in ("optimistic", "approximate"):
            raise ValueError(f"Unknown consistency mode: {cfg.mode}")
        if cfg.max_attempts <= 0:
            raise ValueError("max_attempts must be > 0")
        self._store = store
        self._cfg = cfg

    @property
    def mode(self) -> ConsistencyMode:
        return self._cfg.mode

    async def record(self, label: Label, on_step: Optional[StepCallback] = None) -> CounterDocument:
        """
        Count one occurrence of label and return the persisted document.

        on_step, if given, is called with "loaded", "updated" and "persisted"
        as the cycle progresses; retried attempts report load/update again.

        Raises:
            StoreError: load/save failure, or conflicts on every attempt
            EncodingError: stored document is malformed
        """
        step = on_step or _ignore_step
        if self._cfg.mode == "approximate":
            return await self._record_unguarded(label, step)
        return await self._record_optimistic(label, step)

    async def _record_unguarded(self, label: Label, step: StepCallback) -> CounterDocument:
        doc = await self._store.load(self._cfg.key)
        step("loaded")
        updated = increment(doc, label)
        step("updated")
        await self._store.save(self._cfg.key, updated)
        step("persisted")
        return updated

    async def _record_optimistic(self, label: Label, step: StepCallback) -> CounterDocument:
        key = self._cfg.key
        for attempt in range(self._cfg.max_attempts):
            current = await self._store.load_versioned(key)
            step("loaded")
            updated = increment(current.document, label)
            step("updated")
            try:
                await self._store.save_if_version(key, updated, current.version)
                step("persisted")
                if attempt:
                    logger.info("Counter update succeeded after retries: key=%s attempts=%s", key, attempt + 1)
                return updated
            except VersionConflict:
                if attempt + 1 >= self._cfg.max_attempts:
                    break
                sleep_sec = self._compute_backoff(attempt)
                logger.warning(
                    "Counter update conflict (retrying): attempt=%s key=%s sleep=%.3fs",
                    attempt + 1,
                    key,
                    sleep_sec,
                )
                await asyncio.sleep(sleep_sec)

        logger.error("Counter update gave up: key=%s attempts=%s", key, self._cfg.max_attempts)
        raise StoreError(f"Counter update for {key} conflicted {self._cfg.max_attempts} times")

    def _compute_backoff(self, attempt: int) -> float:
        # Exponential backoff with cap + jitter
        base = self._cfg.backoff_base_sec * (2**attempt)
        capped = min(base, self._cfg.backoff_max_sec)
        return capped + random.uniform(0.0, self._cfg.backoff_base_sec)
