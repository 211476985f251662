"""Centralised configuration loaded from .env via pydantic-settings."""

from __future__ import annotations

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── SQLite store ───────────────────────────────────────────
    database_path: str = "./local_vectors.db"
    busy_timeout_seconds: float = 5.0

    # ── Embedding model ────────────────────────────────────────
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dim: int = 384
    model_mismatch_fatal: bool = False

    # ── Native distance extension ──────────────────────────────
    vector_extension_enabled: bool = True
    vector_extension_path: Optional[str] = None

    # ── Search / write limits ──────────────────────────────────
    max_fallback_rows: int = 10000  # brute-force scans above this are refused
    max_top_k: int = 100
    max_batch_size: int = 100
    default_top_k: int = 5
    default_threshold: float = 1.0
    distance_min: float = 0.0
    distance_max: float = 2.0


settings = Settings()
