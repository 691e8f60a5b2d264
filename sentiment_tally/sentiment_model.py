from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional, Sequence

import numpy as np
import torch
from transformers import AutoModelForSequenceClassification, AutoTokenizer

from sentiment_tally.sentiment_types import ClassificationResult, Label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SentimentModelConfig:
    model_path: str
    model_version: str
    max_length: int
    device: str  # "auto" | "cpu" | "cuda"


def _select_device(device: str) -> torch.device:
    if device == "cpu":
        return torch.device("cpu")
    if device == "cuda":
        return torch.device("cuda")
    # auto
    return torch.device("cuda" if torch.cuda.is_available() else "cpu")


@lru_cache(maxsize=1)
def _load_model_and_tokenizer(model_path: str):
    """
    Load once per process. Cached by model_path.

    Raises:
        OSError: if model files are missing or path is invalid.
    """
    logger.info("Loading sentiment model: path=%s", model_path)
    tokenizer = AutoTokenizer.from_pretrained(model_path)
    model = AutoModelForSequenceClassification.from_pretrained(model_path)
    return model, tokenizer


def resolve_label_indices(id2label: Mapping[int, str]) -> dict[Label, int]:
    """
    Map our polarity labels onto the model's output columns.

    Accepts POSITIVE/NEGATIVE (any case) and the common POS/NEG short forms.

    Raises:
        ValueError: if the model does not expose both polarities
    """
    aliases = {
        "positive": Label.POSITIVE,
        "pos": Label.POSITIVE,
        "negative": Label.NEGATIVE,
        "neg": Label.NEGATIVE,
    }
    indices: dict[Label, int] = {}
    for idx, name in id2label.items():
        label = aliases.get(str(name).strip().lower())
        if label is not None:
            indices[label] = int(idx)

    missing = [label.value for label in Label if label not in indices]
    if missing:
        raise ValueError(f"Model labels {dict(id2label)} do not cover: {', '.join(missing)}")
    return indices


def pick_label(probs: Sequence[float], indices: Mapping[Label, int]) -> ClassificationResult:
    """Argmax over the two polarity columns; ties go to Positive."""
    pos = float(probs[indices[Label.POSITIVE]])
    neg = float(probs[indices[Label.NEGATIVE]])
    total = pos + neg
    if total <= 0.0:
        raise ValueError("Model produced zero probability mass for both polarities")
    # Renormalize in case the head carries extra classes (e.g. neutral).
    pos, neg = pos / total, neg / total
    if pos >= neg:
        return ClassificationResult(label=Label.POSITIVE, confidence=min(max(pos, 0.0), 1.0))
    return ClassificationResult(label=Label.NEGATIVE, confidence=min(max(neg, 0.0), 1.0))


class SentimentModel:
    """
    Production-friendly wrapper:
    - model/tokenizer load once (process cache)
    - batch inference, eval mode, no grad
    - label mapping from the model's own id2label config

    Not thread-safe; callers serialize access (see Classifier).
    """

    def __init__(self, cfg: SentimentModelConfig):
        if cfg.max_length <= 0:
            raise ValueError("max_length must be > 0")

        self._cfg = cfg
        self._device = _select_device(cfg.device)

        model, tokenizer = _load_model_and_tokenizer(cfg.model_path)
        self._model = model.to(self._device)
        self._model.eval()
        self._tokenizer = tokenizer
        self._indices = resolve_label_indices(self._model.config.id2label)

        logger.info(
            "Sentiment model ready: version=%s device=%s max_length=%s labels=%s",
            cfg.model_version,
            self._device.type,
            cfg.max_length,
            {k.value: v for k, v in self._indices.items()},
        )

    @property
    def model_version(self) -> str:
        return self._cfg.model_version

    def predict(self, texts: Sequence[str]) -> list[Optional[ClassificationResult]]:
        """
        Predict sentiment for a list of texts.

        Rules:
        - empty/blank -> None (nothing to classify)
        - returns results in same order as input
        """
        prepared = [str(t) if t is not None and str(t).strip() else "" for t in texts]
        non_empty = [i for i, t in enumerate(prepared) if t]
        out: list[Optional[ClassificationResult]] = [None] * len(prepared)
        if not non_empty:
            return out

        enc = self._tokenizer(
            [prepared[i] for i in non_empty],
            padding=True,
            truncation=True,
            max_length=self._cfg.max_length,
            return_tensors="pt",
        )
        enc = {k: v.to(self._device) for k, v in enc.items()}

        with torch.no_grad():
            logits = self._model(**enc).logits  # (B, num_labels)
            probs: np.ndarray = torch.softmax(logits, dim=-1).cpu().numpy()

        for row, i in zip(probs, non_empty):
            out[i] = pick_label(row.tolist(), self._indices)
        return out
