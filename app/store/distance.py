"""Native cosine-distance detection.

Probes the SQLite engine once per process for a loadable cosine-distance
function. The outcome is either ``NativeDistance`` (a function name that is
safe to interpolate into ``queries.NATIVE_SEARCH``) or ``FallbackDistance``
(compute in-process). Both outcomes are cached for the process lifetime.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from typing import Union

import numpy as np

from app.config import settings
from app.errors import ExtensionUnavailable
from app.store.codec import to_blob
from app.store.connection import sqlite_connection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DistanceCandidate:
    extension: str
    version_query: str
    function: str


# Probed in order; the first candidate passing both checks wins.
CANDIDATES: tuple[DistanceCandidate, ...] = (
    DistanceCandidate("vec0", "SELECT vec_version()", "vec_distance_cosine"),
    DistanceCandidate("sqlite-vss", "SELECT vector_version()", "vector_distance_cosine"),
    DistanceCandidate("vss", "SELECT vss_version()", "vss_distance_cosine"),
)


@dataclass(frozen=True)
class NativeDistance:
    function: str
    extension: str

    @property
    def query_method(self) -> str:
        return self.function


@dataclass(frozen=True)
class FallbackDistance:
    @property
    def query_method(self) -> str:
        return "fallback"


DistanceResolution = Union[NativeDistance, FallbackDistance]

_resolution: DistanceResolution | None = None
_resolution_lock = threading.Lock()


def _probe(conn: sqlite3.Connection, candidate: DistanceCandidate) -> None:
    """Raise ExtensionUnavailable unless *candidate* is loaded and callable."""
    try:
        conn.execute(candidate.version_query).fetchone()
    except sqlite3.Error as exc:
        raise ExtensionUnavailable(f"{candidate.extension} not loaded", str(exc)) from exc

    logger.info("Vector extension detected: %s", candidate.extension)

    # Some builds report a version without exposing the distance function.
    zero = to_blob(np.zeros(settings.embedding_dim, dtype=np.float32))
    try:
        conn.execute(f"SELECT {candidate.function}(?, ?) AS test", (zero, zero)).fetchone()
    except sqlite3.Error as exc:
        logger.warning(
            "Extension %s found but function %s not available",
            candidate.extension,
            candidate.function,
        )
        raise ExtensionUnavailable(
            f"{candidate.function} not callable", str(exc)
        ) from exc


def _detect() -> DistanceResolution:
    with sqlite_connection() as conn:
        for candidate in CANDIDATES:
            try:
                _probe(conn, candidate)
            except ExtensionUnavailable as exc:
                logger.debug("Distance candidate rejected: %s (%s)", exc.message, exc.details)
                continue
            return NativeDistance(function=candidate.function, extension=candidate.extension)
    return FallbackDistance()


def get_distance_function() -> DistanceResolution:
    """Return the cached resolution, detecting it on first use."""
    global _resolution
    if _resolution is None:
        with _resolution_lock:
            if _resolution is None:
                _resolution = _detect()
                if isinstance(_resolution, NativeDistance):
                    logger.info("Using native distance function: %s", _resolution.function)
                else:
                    logger.info("No native distance function; using in-process fallback.")
    return _resolution
