from __future__ import annotations

"""
FastAPI application for the personalised swap feed.

- /items (any method but OPTIONS): ranked active listings for the bearer-token caller
- 200 on success, including the recency fallback when scoring is skipped or fails
- 401 when the token is missing or rejected, 500 when the catalog read fails
- CORS headers on every response, errors included; OPTIONS answers preflight
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional

import httpx
from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from loguru import logger

from .catalog import CatalogClient, bearer_token, default_timeout
from .config import (
    CORS_HEADERS,
    AuthUser,
    CandidateItem,
    ErrorResponse,
    HealthResponse,
    Settings,
    get_settings,
)
from .errors import AuthError, CatalogError, format_database_error
from .rerank import rank
from .scorer import LLMScorer

FEED_ERROR_MESSAGE = "Failed to load items"


# -----------------------
# Pipeline
# -----------------------

async def load_feed_inputs(catalog: CatalogClient, user: AuthUser, settings: Settings):
    """
    Catalog and history reads are independent, so both go out together.
    A failed catalog read propagates; a failed history read only costs us
    personalisation and is treated as no history.
    """
    candidates, history = await asyncio.gather(
        catalog.fetch_candidates(user.id, settings.candidate_limit),
        catalog.fetch_history(user.id, settings.history_limit),
        return_exceptions=True,
    )
    if isinstance(candidates, BaseException):
        raise candidates
    if isinstance(history, BaseException):
        logger.warning("Error fetching interests for user {}: {}", user.id, history)
        history = []
    return candidates, history


async def build_feed(
    catalog: CatalogClient,
    user: AuthUser,
    settings: Settings,
    scorer,
) -> List[CandidateItem]:
    candidates, history = await load_feed_inputs(catalog, user, settings)
    logger.info(
        "Loaded {} candidates and {} interest rows for user {}",
        len(candidates), len(history), user.id,
    )
    return await rank(
        user.id,
        candidates,
        history,
        scorer,
        limit=settings.result_max,
        timeout=settings.scorer_timeout,
    )


# -----------------------
# FastAPI app + startup
# -----------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if not settings.supabase_url or not settings.supabase_anon_key:
        logger.warning("SUPABASE_URL / SUPABASE_ANON_KEY not set; every feed request will fail auth")
    if not settings.scorer_api_key:
        logger.warning("Scorer API key not set; ranking will fall back to recency order")
    logger.info(
        "swapfeed ready: scorer={} model={} candidates={} history={} results={}",
        settings.scorer_url, settings.scorer_model,
        settings.candidate_limit, settings.history_limit, settings.result_max,
    )
    yield


app = FastAPI(title="swapfeed", version="1.0.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=default_timeout()) as client:
        yield client


def get_scorer(
    settings: Settings = Depends(get_settings),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> LLMScorer:
    return LLMScorer(settings, http)


def _json(body: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=body, status_code=status_code, headers=dict(CORS_HEADERS))


def _error(message: str, status_code: int) -> JSONResponse:
    return _json(ErrorResponse(error=message).model_dump(), status_code)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on {} {}: {}", request.method, request.url.path, exc)
    return _error(format_database_error(exc, FEED_ERROR_MESSAGE), 500)


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="healthy")


@app.options("/items")
def items_preflight() -> Response:
    return Response(status_code=200, headers=dict(CORS_HEADERS))


@app.api_route("/items", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def items_feed(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
    http: httpx.AsyncClient = Depends(get_http_client),
    scorer: LLMScorer = Depends(get_scorer),
) -> JSONResponse:
    token = bearer_token(authorization)
    if token is None:
        return _error("Unauthorized", 401)

    catalog = CatalogClient(settings, token, http)
    try:
        user = await catalog.get_user()
    except AuthError:
        return _error("Unauthorized", 401)

    try:
        ranked = await build_feed(catalog, user, settings, scorer)
    except CatalogError as e:
        logger.error("Catalog read failed for user {}: {} (code={})", user.id, e, e.code)
        return _error(format_database_error(e, FEED_ERROR_MESSAGE), 500)
    except Exception as e:
        logger.exception("Feed failed for user {}: {}", user.id, e)
        return _error(format_database_error(e, FEED_ERROR_MESSAGE), 500)

    return _json([item.model_dump(mode="json") for item in ranked])
