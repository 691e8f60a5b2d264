from __future__ import annotations

import asyncio

import pytest

from sentiment_tally import counter_codec
from sentiment_tally.blob_storage import BlobStorageError, InMemoryBlobStorage
from sentiment_tally.dispatcher import DispatchState, parse_request
from sentiment_tally.errors import InvalidCommand, MalformedRequest
from sentiment_tally.sentiment_types import CounterDocument, Label

from conftest import COUNTER_KEY, KeywordModel

S = DispatchState


def _stored(blobs: InMemoryBlobStorage) -> CounterDocument:
    return counter_codec.decode(blobs.peek(COUNTER_KEY) or b"")


class _UnreachableBlobs(InMemoryBlobStorage):
    async def get(self, key: str):
        raise BlobStorageError("connect timeout")


def test_parse_request_accepts_json_bytes():
    req = parse_request(b'{"command": "sentiment", "text": "ok"}')
    assert (req.command, req.text) == ("sentiment", "ok")


def test_parse_request_checks_command_before_text():
    with pytest.raises(InvalidCommand):
        parse_request({"command": "translate"})


@pytest.mark.parametrize(
    "payload",
    [b"{not json", "[]", {"text": "hi"}, {"command": "sentiment"}, {"command": "sentiment", "text": 3}],
)
def test_parse_request_rejects_malformed(payload):
    with pytest.raises(MalformedRequest):
        parse_request(payload)


def test_end_to_end_from_empty_document(build_ctx, blobs):
    ctx = build_ctx(blobs=blobs)
    outcome = asyncio.run(ctx.handle({"command": "sentiment", "text": "I love this!"}))

    assert outcome.ok
    assert "Positive" in outcome.to_body()["result"]
    assert outcome.trail == [S.RECEIVED, S.VALIDATED, S.CLASSIFIED, S.LOADED, S.UPDATED, S.PERSISTED, S.RESPONDED]
    assert _stored(blobs) == CounterDocument({Label.POSITIVE: 1})


def test_end_to_end_from_existing_counts(build_ctx):
    start = CounterDocument({Label.POSITIVE: 5, Label.NEGATIVE: 2})
    blobs = InMemoryBlobStorage({COUNTER_KEY: counter_codec.encode(start)})
    ctx = build_ctx(blobs=blobs)

    outcome = asyncio.run(ctx.handle({"command": "sentiment", "text": "I love this!"}))

    assert outcome.to_body()["result"] == "Sentiment: Positive"
    assert _stored(blobs) == CounterDocument({Label.POSITIVE: 6, Label.NEGATIVE: 2})


def test_negative_text_counts_negative(build_ctx, blobs):
    ctx = build_ctx(blobs=blobs)
    outcome = asyncio.run(ctx.handle({"command": "sentiment", "text": "I hate Mondays"}))
    assert outcome.to_body()["result"] == "Sentiment: Negative"
    assert _stored(blobs) == CounterDocument({Label.NEGATIVE: 1})


def test_unknown_command_touches_nothing(build_ctx, model, blobs):
    ctx = build_ctx(model=model, blobs=blobs)
    outcome = asyncio.run(ctx.handle({"command": "summarize", "text": "I love this!"}))

    assert outcome.state is S.REJECTED
    assert outcome.trail == [S.RECEIVED, S.REJECTED]
    assert outcome.error_kind == "InvalidCommand"
    assert outcome.status_code() == 400
    assert outcome.to_body() == {"error": "Invalid command"}
    assert model.calls == 0
    assert blobs.get_calls == 0 and blobs.put_calls == 0


@pytest.mark.parametrize("payload", [{"command": "sentiment"}, {"command": "sentiment", "text": "  "}, b"garbage"])
def test_missing_text_is_rejected_without_classifying(build_ctx, model, blobs, payload):
    ctx = build_ctx(model=model, blobs=blobs)
    outcome = asyncio.run(ctx.handle(payload))
    assert outcome.status_code() == 400
    assert outcome.error_kind == "MalformedRequest"
    assert model.calls == 0
    assert blobs.get_calls == 0


def test_classifier_failure_skips_store(build_ctx, blobs):
    ctx = build_ctx(model=KeywordModel(output_none=True), blobs=blobs)
    outcome = asyncio.run(ctx.handle({"command": "sentiment", "text": "anything"}))

    assert outcome.state is S.FAILED
    assert outcome.error_kind == "ClassificationError"
    assert outcome.trail == [S.RECEIVED, S.VALIDATED, S.FAILED]
    assert blobs.get_calls == 0


def test_store_failure_fails_whole_request(build_ctx):
    ctx = build_ctx(blobs=_UnreachableBlobs())
    outcome = asyncio.run(ctx.handle({"command": "sentiment", "text": "I love this!"}))

    assert outcome.state is S.FAILED
    assert outcome.error_kind == "StoreError"
    assert outcome.result is not None
    assert outcome.status_code() == 500
    assert outcome.to_body() == {"error": "Internal server error"}


def test_corrupt_document_is_encoding_failure(build_ctx):
    blobs = InMemoryBlobStorage({COUNTER_KEY: b"Sentiment,Count\nPositive,lots\n"})
    ctx = build_ctx(blobs=blobs)
    outcome = asyncio.run(ctx.handle({"command": "sentiment", "text": "I love this!"}))

    assert outcome.error_kind == "EncodingError"
    assert outcome.trail[-1] is S.FAILED
    assert blobs.put_calls == 0
