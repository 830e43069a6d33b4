from __future__ import annotations

from typing import List, Sequence

import numpy as np
from sklearn.preprocessing import normalize


def normalize_vector(vec: np.ndarray) -> np.ndarray:
    """L2-normalise ``vec``. A zero vector comes back as a zero copy.

    Non-finite components propagate (NaN/inf in, NaN out) instead of raising.
    """
    v = np.asarray(vec, dtype=np.float64)
    if v.size == 0:
        return v.copy()
    if np.all(np.isfinite(v)):
        return normalize(v.reshape(1, -1)).ravel()
    # sklearn's normalize rejects NaN/inf
    with np.errstate(invalid="ignore", divide="ignore"):
        return v / np.linalg.norm(v)


def dot_product(a: np.ndarray, b: np.ndarray) -> float:
    """Dot product over the shared prefix of ``a`` and ``b``.

    Vectors of different length are compared on their first
    ``min(len(a), len(b))`` components only.
    """
    n = min(a.shape[0], b.shape[0])
    if n == 0:
        return 0.0
    return float(np.dot(a[:n], b[:n]))


def fit_dim(vec: np.ndarray, dim: int) -> np.ndarray:
    """Truncate or zero-pad ``vec`` to ``dim`` components."""
    n = int(vec.shape[0])
    if n == dim:
        return vec
    if n > dim:
        return vec[:dim]
    out = np.zeros(dim, dtype=np.float64)
    out[:n] = vec
    return out


def compute_centroid(vectors: Sequence[np.ndarray]) -> np.ndarray:
    """Normalised mean of raw vectors, taken in the first vector's dimension."""
    if len(vectors) == 0:
        return np.zeros(0, dtype=np.float64)
    dim = int(vectors[0].shape[0])
    X = np.stack([fit_dim(np.asarray(v, dtype=np.float64), dim) for v in vectors], axis=0)
    centroid = normalize_vector(X.mean(axis=0))
    centroid.flags.writeable = False
    return centroid


def similarity_matrix(normalized: List[np.ndarray]) -> np.ndarray:
    """Pairwise dot products of pre-normalised vectors as an ``n x n`` matrix."""
    n = len(normalized)
    if n == 0:
        return np.zeros((0, 0), dtype=np.float64)
    dims = {int(v.shape[0]) for v in normalized}
    if len(dims) == 1:
        M = np.stack(normalized, axis=0)
        with np.errstate(invalid="ignore", over="ignore"):
            return M @ M.T
    # mixed dimensions: compare each pair on its shared prefix
    S = np.zeros((n, n), dtype=np.float64)
    for i in range(n):
        S[i, i] = dot_product(normalized[i], normalized[i])
        for j in range(i + 1, n):
            S[i, j] = S[j, i] = dot_product(normalized[i], normalized[j])
    return S
