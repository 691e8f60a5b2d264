"""
Raw event entrypoint for serverless hosts.

The event is the request envelope itself: {"command": "sentiment", "text": "..."}.
The context is built on the first invocation and reused while the process
stays warm.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Optional

from sentiment_tally.dispatcher import DispatchState
from sentiment_tally.errors import SentimentTallyError
from sentiment_tally.service import ServiceContext, build_context
from sentiment_tally.settings import load_settings

logger = logging.getLogger(__name__)

_context: Optional[ServiceContext] = None
_context_lock = threading.Lock()


def get_context() -> ServiceContext:
    global _context
    with _context_lock:
        if _context is None:
            s = load_settings()
            logging.basicConfig(
                level=s.log_level.upper(),
                format="%(asctime)s %(levelname)s %(name)s - %(message)s",
            )
            _context = build_context(s)
        return _context


def handler(event: Any, context: Any = None, service: Optional[ServiceContext] = None) -> dict[str, Any]:
    """
    Handle one event.

    Returns the response body for accepted and rejected requests (rejections
    carry "error" and "statusCode": 400).

    Raises:
        SentimentTallyError: classification or counter failure; the host
            reports it as a failed invocation.
    """
    svc = service or get_context()
    outcome = asyncio.run(svc.handle(event))

    if outcome.state is DispatchState.RESPONDED:
        return outcome.to_body()
    if outcome.state is DispatchState.REJECTED:
        return {"statusCode": 400, **outcome.to_body()}

    assert outcome.error is not None
    logger.error("Invocation failed: kind=%s err=%s", outcome.error_kind, outcome.error)
    raise SentimentTallyError(f"Request failed: {outcome.error_kind}") from outcome.error
