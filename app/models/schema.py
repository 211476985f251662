"""Pydantic models for the vector store: stored records and API contracts.

API models serialise with camelCase aliases (``topK``, ``queryEmbedding``…);
Python code constructs them with snake_case names.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ═══════════════════════════════════════════════════════════════════════════════
#  Stored Data
# ═══════════════════════════════════════════════════════════════════════════════

class EmbeddingRecord(BaseModel):
    """One row of the ``embeddings`` table, decoded."""
    id: str
    content: str
    embedding: list[float]


class ModelMetadata(BaseModel):
    """Which embedding model produced the stored vectors."""
    model: str


# ═══════════════════════════════════════════════════════════════════════════════
#  Insert
# ═══════════════════════════════════════════════════════════════════════════════

class InsertItem(CamelModel):
    """Body of POST /insert and one element of POST /insert-batch.

    Fields are optional here so that missing values reach the writer's own
    validation and fail with a descriptive message.
    """
    id: Optional[str] = None
    text: Optional[str] = None


class InsertBatchRequest(CamelModel):
    items: Optional[list[InsertItem]] = None


class InsertResponse(CamelModel):
    success: bool = True
    id: str
    embedding_dimension: int
    changes: int


class InsertBatchResponse(CamelModel):
    success: bool = True
    inserted: int
    changes: int


# ═══════════════════════════════════════════════════════════════════════════════
#  Search
# ═══════════════════════════════════════════════════════════════════════════════

class SearchRequest(CamelModel):
    """Body of POST /search. Exactly one of queryText / queryEmbedding."""
    query_text: Optional[str] = None
    query_embedding: Optional[list[float]] = None
    top_k: Optional[int] = None
    threshold: Optional[float] = None


class SearchHit(CamelModel):
    id: str
    content: str
    distance: float


class SearchMetadata(CamelModel):
    query_method: str
    result_count: int
    top_k: int
    threshold: float
    distance_range: str
    embedding_model: str
    embedding_dimension: int


class SearchResponse(CamelModel):
    results: list[SearchHit] = Field(default_factory=list)
    metadata: SearchMetadata


# ═══════════════════════════════════════════════════════════════════════════════
#  Stats / Health / Info
# ═══════════════════════════════════════════════════════════════════════════════

class DistanceRange(CamelModel):
    min: float
    max: float


class EmbeddingStats(CamelModel):
    count: int
    avg_size: int
    total_size: int
    dimension: int


class DatabaseStats(CamelModel):
    total_size: int
    model: str


class LimitStats(CamelModel):
    max_fallback_rows: int
    max_top_k: int
    max_batch_size: int
    distance_range: DistanceRange


class StatsResponse(CamelModel):
    embeddings: EmbeddingStats
    database: DatabaseStats
    limits: LimitStats


class HealthResponse(CamelModel):
    status: str
    database: str
    embedder: str
    vector_function: str
    model: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ServiceConfiguration(CamelModel):
    model: str
    dimension: int
    distance_metric: str = "cosine"
    distance_range: DistanceRange


class ServiceInfo(CamelModel):
    message: str
    version: str
    endpoints: dict[str, str]
    configuration: ServiceConfiguration
