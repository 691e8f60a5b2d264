"""
HTTP transport.

Routes:
- GET  /?text=...   command implied to be "sentiment"
- POST /            JSON envelope {"command": "sentiment", "text": "..."}

Any other method on / is answered with 405. Errors use {"error": "..."}.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sentiment_tally.dispatcher import DispatchOutcome
from sentiment_tally.service import ServiceContext, build_context
from sentiment_tally.settings import ServiceSettings, load_settings
from sentiment_tally.sentiment_types import SENTIMENT_COMMAND

logger = logging.getLogger(__name__)


def create_app(
        context: Optional[ServiceContext] = None,
        settings: Optional[ServiceSettings] = None,
) -> FastAPI:
    """
    Build the FastAPI app. Without a context, one is built from settings at
    startup (model load + S3 client).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "context", None) is None:
            app.state.context = build_context(settings or load_settings())
        yield

    app = FastAPI(title="sentiment-tally", lifespan=lifespan)
    app.state.context = context

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)

    @app.get("/")
    async def classify_get(request: Request, text: Optional[str] = None) -> JSONResponse:
        if text is None:
            logger.info("Rejected GET: missing text parameter")
            return JSONResponse({"error": "Missing text parameter"}, status_code=400)
        outcome = await _context(request).handle({"command": SENTIMENT_COMMAND, "text": text})
        return _render(outcome)

    @app.post("/")
    async def classify_post(request: Request) -> JSONResponse:
        body = await request.body()
        outcome = await _context(request).handle(body)
        return _render(outcome)

    return app


def _context(request: Request) -> ServiceContext:
    return request.app.state.context


def _render(outcome: DispatchOutcome) -> JSONResponse:
    return JSONResponse(outcome.to_body(), status_code=outcome.status_code())


def main() -> None:
    import uvicorn

    s = load_settings()
    logging.basicConfig(
        level=s.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    uvicorn.run(create_app(settings=s), host=s.http_host, port=s.http_port)


if __name__ == "__main__":
    main()
