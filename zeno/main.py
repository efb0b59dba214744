"""
ZENO MAIN API
=============

This module defines the FastAPI application and all HTTP endpoints. The server
is a thin relay: it holds provider credentials, injects the system preamble and
forwards requests to OpenRouter (chat), Hugging Face (images) and Tavily (web
search). It keeps no conversation state; conversations live in the client
(see zeno.client).

ENDPOINTS:
  GET  /                   - Returns API name and list of endpoints.
  GET  /health             - Returns status of all services (for monitoring).
  GET  /api/status         - Which features have credentials configured.
  GET  /api/models         - The model catalog shown by the model picker.
  POST /api/chat           - Streaming chat relay (Server-Sent Events).
  POST /api/generate-image - Image generation, returned as a data URI.
  POST /api/web-search     - Tavily search results + answer.

ERRORS:
  Every failure is answered as {"error": "<message>"}: 400 for invalid bodies
  and unknown image models, 500 for missing credentials, and the provider's
  status for upstream chat failures.

STARTUP:
  The lifespan function creates one shared httpx.AsyncClient and the services
  that use it; on shutdown the client is closed.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool

import config
from zeno.exceptions import ZenoError
from zeno.models import (
    ChatRequest,
    ImageGenerationRequest,
    ImageGenerationResponse,
    StatusResponse,
    WebSearchRequest,
)
from zeno.services.image_service import ImageService
from zeno.services.openrouter_service import OpenRouterService
from zeno.services.relay_service import ChatRelay
from zeno.services.search_service import SearchService


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("Zeno")


# Event-stream response headers: no caching, no proxy buffering.
SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# Message returned with HTTP 400 when a request body fails validation.
VALIDATION_MESSAGES = {
    "/api/chat": "Invalid request body",
    "/api/generate-image": "Missing prompt or modelId in request body",
    "/api/web-search": "Query is required",
}


# Lets clients tell "do not retry" failures (configuration, validation) from provider ones.
ERROR_TYPE_HEADER = "X-Error-Type"


def error_response(status_code: int, message: str, error_type: str = "internal") -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers={ERROR_TYPE_HEADER: error_type})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("Rejected %s: %s", request.url.path, exc.errors())
    return error_response(400, VALIDATION_MESSAGES.get(request.url.path, "Invalid request body"), "validation")


# -------------------------------------------------------------------------
# LIFESPAN (STARTUP / SHUTDOWN)
# -------------------------------------------------------------------------

def _lifespan_for(http_client: Optional[httpx.AsyncClient]):
    """
    Build the lifespan for create_app. Services are stored on app.state so
    route handlers reach them through request.app.state. When the caller
    passes its own http_client (tests), it is used and left open.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_client = http_client is None
        client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.UPSTREAM_TIMEOUT_SECONDS, connect=10.0)
        )

        logger.info("=" * 60)
        logger.info("Zeno - Starting Up...")
        search_service = SearchService()
        app.state.http_client = client
        app.state.search_service = search_service
        app.state.relay = ChatRelay(OpenRouterService(client), search_service)
        app.state.image_service = ImageService(client)

        logger.info("Service Status:")
        logger.info("    - Chat relay (OpenRouter): %s", "Ready" if config.OPENROUTER_API_KEY else "Missing key")
        logger.info("    - Image generation (Hugging Face): %s", "Ready" if config.HUGGINGFACE_API_KEY else "Missing key")
        logger.info("    - Web search (Tavily): %s", "Ready" if search_service.enabled else "Disabled")
        logger.info("=" * 60)

        try:
            yield
        finally:
            if owns_client:
                await client.aclose()
            logger.info("Zeno shut down.")

    return lifespan


# =========================================================================
# API ENDPOINTS
# =========================================================================
router = APIRouter()


@router.get("/")
async def root():
    """Return the API name and a short description of each endpoint (for discovery)."""
    return {
        "message": "Zeno API",
        "endpoints": {
            "/api/chat": "Streaming chat relay (Server-Sent Events)",
            "/api/generate-image": "Image generation (data URI)",
            "/api/web-search": "Web search (Tavily)",
            "/api/status": "Which providers are configured",
            "/api/models": "Model catalog",
            "/health": "System health check",
        },
    }


@router.get("/health")
async def health(request: Request):
    state = request.app.state
    return {
        "status": "healthy",
        "relay": getattr(state, "relay", None) is not None,
        "image_service": getattr(state, "image_service", None) is not None,
        "search_service": getattr(state, "search_service", None) is not None,
    }


@router.get("/api/status")
async def status():
    """Readiness flags for the client's connectivity indicator."""
    chat_enabled = bool(config.OPENROUTER_API_KEY)
    return StatusResponse(
        configured=chat_enabled,
        chat_enabled=chat_enabled,
        image_enabled=bool(config.HUGGINGFACE_API_KEY),
        web_search_enabled=bool(config.TAVILY_API_KEY),
    ).model_dump(by_alias=True)


@router.get("/api/models")
async def models():
    return config.AI_MODELS


@router.post("/api/chat")
async def chat(body: ChatRequest, request: Request):
    """
    Streaming chat relay.

    Errors found before streaming starts (missing key, upstream refusal) are
    plain JSON. Once the 200 event stream has started, the body is a sequence
    of `data: {"content": "<delta>"}` frames and always ends with
    `data: [DONE]`.
    """
    relay: ChatRelay = request.app.state.relay
    try:
        upstream = await relay.open(body)
    except ZenoError as e:
        return error_response(e.status_code, e.message, e.error_type)
    except Exception as e:
        logger.error("Chat API error: %s", e, exc_info=True)
        return error_response(500, "Failed to process request")

    return StreamingResponse(relay.stream(upstream), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/api/generate-image")
async def generate_image(body: ImageGenerationRequest, request: Request):
    image_service: ImageService = request.app.state.image_service
    try:
        image_url = await image_service.generate(body.prompt, body.model_id)
    except ZenoError as e:
        return error_response(e.status_code, e.message, e.error_type)
    except Exception as e:
        logger.error("Image generation error: %s", e, exc_info=True)
        return error_response(500, "Failed to generate image")
    return ImageGenerationResponse(image_url=image_url).model_dump(by_alias=True)


@router.post("/api/web-search")
async def web_search(body: WebSearchRequest, request: Request):
    search_service: SearchService = request.app.state.search_service
    try:
        return await run_in_threadpool(search_service.search, body.query)
    except ZenoError as e:
        return error_response(e.status_code, e.message, e.error_type)


# -------------------------------------------------------------------------
# FASTAPI APP AND CORS
# -------------------------------------------------------------------------

def create_app(http_client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    app = FastAPI(
        title="Zeno API",
        description="Streaming chat relay for OpenRouter, Hugging Face and Tavily",
        lifespan=_lifespan_for(http_client),
    )

    # Allow any origin so the browser client can be served from another host or port.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(router)
    return app


app = create_app()


# -------------------------------------------------------------------------
# STANDALONE RUN (python -m zeno.main)
# -------------------------------------------------------------------------
def run():
    """Start the uvicorn server (same as run.py); used if someone does python -m zeno.main"""
    uvicorn.run(
        "zeno.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )

if __name__ == "__main__":
    run()
