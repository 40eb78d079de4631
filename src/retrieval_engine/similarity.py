"""
Cosine similarity helpers.

Zero-norm vectors score exactly 0 against anything (never NaN), which is what
makes the zero-vector embedding fallback a safe "no match" sentinel.
"""

from __future__ import annotations

import numpy as np


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Calculate cosine similarity between two vectors."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Vectors must be of the same length: {a.shape} vs {b.shape}")

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    score = float(np.dot(a, b) / (norm_a * norm_b))
    # Rounding can push parallel vectors a hair outside [-1, 1]
    return max(-1.0, min(1.0, score))


def cosine_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """
    Score one query vector against every row of a matrix.

    Rows with zero norm, and every row when the query has zero norm, score 0.
    """
    query = np.asarray(query, dtype=np.float64)
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float64)

    query_norm = np.linalg.norm(query)
    row_norms = np.linalg.norm(matrix, axis=1)
    if query_norm == 0:
        return np.zeros(matrix.shape[0], dtype=np.float64)

    dots = matrix @ query
    denom = row_norms * query_norm
    scores = np.zeros(matrix.shape[0], dtype=np.float64)
    nonzero = denom > 0
    scores[nonzero] = dots[nonzero] / denom[nonzero]
    return np.clip(scores, -1.0, 1.0)


def is_zero_vector(vector: np.ndarray | None) -> bool:
    """True for the zero-vector sentinel returned by a failed embedding call."""
    if vector is None:
        return True
    return not np.any(np.asarray(vector))
