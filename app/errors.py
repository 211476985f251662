"""Error taxonomy shared by the store, the search engine and the HTTP layer.

Every error carries a stable ``category`` string that clients can branch on,
plus a human-readable ``details`` string.
"""

from __future__ import annotations


class VectorStoreError(Exception):
    """Base class for all errors raised by the vector search core."""

    category = "internal"
    status_code = 500

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details if details is not None else message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.category, "message": self.message, "details": self.details}


class ValidationError(VectorStoreError):
    """Malformed or out-of-range caller input. Raised before any side effect."""

    category = "validation"
    status_code = 400


class ProviderError(VectorStoreError):
    """Embedding computation failed or returned an unexpected shape."""

    category = "embedding"
    status_code = 500


class StorageError(VectorStoreError):
    """SQLite I/O, locking or integrity failure."""

    category = "storage"
    status_code = 500


class ModelMismatchError(StorageError):
    """Stored model metadata disagrees with the configured model (opt-in fatal)."""


class ResourceLimitError(VectorStoreError):
    """Fallback search attempted against a table too large to scan in-process."""

    category = "resource_limit"
    status_code = 400


class ExtensionUnavailable(VectorStoreError):
    """A native distance-function candidate is missing. Never surfaced to clients."""

    category = "extension_unavailable"
