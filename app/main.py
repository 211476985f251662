"""FastAPI service — entrypoint for the embedded vector search engine.

Lifespan startup:
  1. Initialize the SQLite store (WAL, integrity check, tables, model metadata)
  2. Warm-load embedding model
  3. Resolve the native distance function (or fallback)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.embeddings.provider import warm_load as warm_embeddings
from app.errors import ModelMismatchError, VectorStoreError
from app.models.schema import (
    DistanceRange,
    HealthResponse,
    InsertBatchRequest,
    InsertBatchResponse,
    InsertItem,
    InsertResponse,
    SearchRequest,
    SearchResponse,
    ServiceConfiguration,
    ServiceInfo,
    StatsResponse,
)
from app.store.connection import ping
from app.store.distance import get_distance_function
from app.store.schema_setup import initialize_store

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

VERSION = "2.0.0"

# ── State flags ────────────────────────────────────────────────────────────────
_state = {
    "store_ok": False,
    "embedding_ok": False,
    "vector_function": "fallback_mode",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("=== Starting Vector Search Service ===")

    # 1. SQLite store
    try:
        await run_in_threadpool(initialize_store)
        _state["store_ok"] = True
    except ModelMismatchError:
        raise
    except VectorStoreError as exc:
        logger.error("Store initialization failed: %s (%s)", exc.message, exc.details)
    except Exception as exc:
        logger.error("Store initialization failed: %s", exc)

    # 2. Embedding model
    try:
        await run_in_threadpool(warm_embeddings)
        _state["embedding_ok"] = True
    except Exception as exc:
        logger.error("Embedding model load failed: %s", exc)

    # 3. Distance function
    if _state["store_ok"]:
        resolution = await run_in_threadpool(get_distance_function)
        if resolution.query_method != "fallback":
            _state["vector_function"] = resolution.query_method

    logger.info("Startup state: %s", _state)
    logger.info("Model: %s (%dD)", settings.embedding_model, settings.embedding_dim)

    yield

    logger.info("=== System shutdown complete ===")


app = FastAPI(
    title="Vector Search Service",
    description=(
        "SQLite-backed embedding store with cosine nearest-neighbour search. "
        "Uses a native distance extension when available and a bounded "
        "in-process scan otherwise."
    ),
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ═══════════════════════════════════════════════════════════════════════════════
#  Error handlers
# ═══════════════════════════════════════════════════════════════════════════════


@app.exception_handler(VectorStoreError)
async def vector_store_error_handler(request: Request, exc: VectorStoreError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content={"error": "validation", "message": "Invalid request body", "details": details},
    )


# ═══════════════════════════════════════════════════════════════════════════════
#  Endpoints
# ═══════════════════════════════════════════════════════════════════════════════


@app.get("/", response_model=ServiceInfo)
async def service_info():
    """Describe the service, its endpoints and its embedding configuration."""
    return ServiceInfo(
        message="Vector Database API",
        version=VERSION,
        endpoints={
            "insert": "POST /insert",
            "insertBatch": "POST /insert-batch",
            "search": "POST /search",
            "stats": "GET /stats",
            "health": "GET /health",
        },
        configuration=ServiceConfiguration(
            model=settings.embedding_model,
            dimension=settings.embedding_dim,
            distance_range=DistanceRange(min=settings.distance_min, max=settings.distance_max),
        ),
    )


@app.post("/insert", response_model=InsertResponse)
async def insert(request: InsertItem):
    """Embed one text and upsert it under its id."""
    from app.store.writer import insert_one

    try:
        return await run_in_threadpool(insert_one, request.id, request.text)
    except VectorStoreError:
        raise
    except Exception as exc:
        logger.error("Insert failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail=str(exc))


@app.post("/insert-batch", response_model=InsertBatchResponse)
async def insert_batch(request: InsertBatchRequest):
    """Embed up to 100 texts and upsert them in one transaction."""
    from app.store.writer import insert_batch as write_batch

    try:
        return await run_in_threadpool(write_batch, request.items)
    except VectorStoreError:
        raise
    except Exception as exc:
        logger.error("Batch insert failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail=str(exc))


@app.post("/search", response_model=SearchResponse)
async def search(request: SearchRequest):
    """Rank stored texts by cosine distance to queryText or queryEmbedding."""
    from app.retrieval.search import search as run_search

    try:
        return await run_in_threadpool(
            run_search,
            query_text=request.query_text,
            query_embedding=request.query_embedding,
            top_k=request.top_k,
            threshold=request.threshold,
        )
    except VectorStoreError:
        raise
    except Exception as exc:
        logger.error("Search failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail=str(exc))


@app.get("/stats", response_model=StatsResponse)
async def stats():
    """Return row count, storage sizes and configured limits."""
    from app.store.reader import collect_stats

    try:
        return await run_in_threadpool(collect_stats)
    except VectorStoreError:
        raise
    except Exception as exc:
        logger.error("Stats query failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc))


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Live check of the database, the embedder and the distance function."""
    try:
        await run_in_threadpool(ping)
        await run_in_threadpool(warm_embeddings)
        resolution = await run_in_threadpool(get_distance_function)
    except Exception as exc:
        logger.error("Health check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "error": str(exc),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    return HealthResponse(
        status="healthy",
        database="connected",
        embedder="available",
        vector_function=(
            "fallback_mode" if resolution.query_method == "fallback" else resolution.query_method
        ),
        model=settings.embedding_model,
    )
