"""FastAPI server with the streaming POST /agent endpoint and record routes."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncGenerator, Awaitable, Callable

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from skribe import config
from skribe.agent.dispatcher import ToolDispatcher
from skribe.agent.events import STREAM_FORMATS, OutputItem, encode_ndjson, error_event
from skribe.agent.loop import OrchestrationLoop, OrchestrationResult, OrchestrationRun
from skribe.agent.provider import create_provider
from skribe.api.conversation import AgentRequest, persist_exchange, prepare_session
from skribe.api.deps import RequestContext, current_user, open_store
from skribe.api.records import router as records_router
from skribe.errors import RequestError
from skribe.storage.documents import StoreDocumentSink

# Configure logging on import, before anything else logs
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)-5s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Skribe", description="Document agent service")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(records_router)


@app.exception_handler(RequestError)
async def request_error_handler(request: Request, exc: RequestError) -> JSONResponse:
    logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    missing = [err for err in exc.errors() if err.get("type") == "missing"]
    prefix = "Missing required fields" if missing else "Invalid request"
    message = f"{prefix}: {', '.join(fields)}" if fields else prefix
    return JSONResponse(status_code=400, content={"error": message})


async def stream_run(
    run: OrchestrationRun,
    encode: Callable[[OutputItem], str],
    stream_format: str,
    on_finish: Callable[[OrchestrationResult | None], Awaitable[None]],
) -> AsyncGenerator[str, None]:
    """Encode a run's items for the response body.

    ``on_finish`` gets the run's result on every exit path, including a
    client disconnect that closes this generator mid-stream.
    """
    t0 = time.perf_counter()
    try:
        async for item in run:
            yield encode(item)
    except Exception as e:
        logger.exception("Agent run failed after %.2fs", time.perf_counter() - t0)
        if stream_format == "ndjson":
            yield encode_ndjson(error_event(str(e) or type(e).__name__))
        raise
    finally:
        await run.aclose()
        await on_finish(run.result)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/agent")
async def agent(req: AgentRequest, request: Request, user_id: str = Depends(current_user)):
    logger.info(
        "POST /agent target=%s project=%s message=%r",
        req.agent_or_document_id, req.project_id, req.message[:120],
    )
    api_key = config.provider_api_key()
    if not api_key:
        raise RequestError(500, f"LLM provider {config.LLM_PROVIDER!r} is not configured")
    stream_format = req.format or config.STREAM_FORMAT
    if stream_format not in STREAM_FORMATS:
        raise RequestError(500, f"Unknown stream format {stream_format!r}")
    media_type, encode = STREAM_FORMATS[stream_format]

    store = open_store()
    ctx = RequestContext(user_id=user_id, project_id=req.project_id, store=store)
    try:
        session, agent_id = await asyncio.to_thread(prepare_session, ctx, req)
    except Exception:
        store.close()
        raise

    loop = OrchestrationLoop(create_provider(api_key=api_key), ToolDispatcher(StoreDocumentSink(store)))
    run = loop.start(session, should_stop=request.is_disconnected)

    async def finish(result: OrchestrationResult | None) -> None:
        try:
            await asyncio.to_thread(persist_exchange, store, agent_id, req.message, result)
        finally:
            store.close()

    return StreamingResponse(
        stream_run(run, encode, stream_format, finish),
        media_type=media_type,
        headers={"Cache-Control": "no-cache"},
    )
