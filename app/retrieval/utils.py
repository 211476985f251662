"""Shared vector math for the in-process search path."""

from __future__ import annotations

import numpy as np


def cosine_distances(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Row-wise cosine distance (1 - cosine similarity) to *query*.

    Rows where either magnitude is exactly zero get distance 0.0 rather than NaN.
    """
    m64 = np.asarray(matrix, dtype=np.float64)
    q64 = np.asarray(query, dtype=np.float64)
    if m64.ndim != 2 or m64.shape[1] != q64.shape[0]:
        raise ValueError("Vector dimensions must match for similarity calculation")
    magnitudes = np.linalg.norm(m64, axis=1) * np.linalg.norm(q64)
    dots = m64 @ q64
    distances = np.zeros(m64.shape[0], dtype=np.float64)
    nonzero = magnitudes != 0
    distances[nonzero] = 1.0 - dots[nonzero] / magnitudes[nonzero]
    return distances
