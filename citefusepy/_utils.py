# pylint: disable=C0103, C0116, C0114, C0115, W0511
from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from ._errors import DegenerateInputError, InvalidParameterError

logger = logging.getLogger("citefusepy")


def _check_int(name: str, value, minimum: int = 1) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise InvalidParameterError(f"`{name}` must be an integer, got {value!r}.")
    if value < minimum:
        raise InvalidParameterError(f"`{name}` must be >= {minimum}, got {value}.")
    return int(value)


def _clip_k(k_neighbors: int, n_cells: int) -> int:
    k_neighbors = _check_int("k_neighbors", k_neighbors)
    if k_neighbors > n_cells - 1:
        logger.warning(
            "k_neighbors=%i is larger than the number of other cells, using %i",
            k_neighbors,
            n_cells - 1,
        )
        k_neighbors = n_cells - 1
    return k_neighbors


def _symmetrize(W: np.ndarray) -> np.ndarray:
    return (W + W.T) / 2


def _row_normalize(W: np.ndarray) -> np.ndarray:
    rowsum = W.sum(axis=1, keepdims=True)
    rowsum[rowsum == 0] = 1.0
    return W / rowsum


def _full_kernel(W: np.ndarray) -> np.ndarray:
    # off-diagonal mass of each row is scaled to 1/2, self-weight fixed at 1/2
    rowsum = W.sum(axis=1) - W.diagonal()
    rowsum[rowsum == 0] = 1.0
    P = W / (2 * rowsum[:, np.newaxis])
    np.fill_diagonal(P, 0.5)
    return P


def _top_k(W: np.ndarray, k: int) -> tuple[np.ndarray, np.ndarray]:
    """
    Indices and values of the ``k`` largest off-diagonal entries of every row,
    in decreasing order. Ties are resolved by the lower column index.
    """
    scores = np.array(W, dtype=np.float64, copy=True)
    np.fill_diagonal(scores, -np.inf)
    # [N, N] stable sort of negated scores keeps index order among ties
    order = np.argsort(-scores, axis=1, kind="stable")[:, :k]
    values = np.take_along_axis(scores, order, axis=1)
    return order, values


def _sparse_kernel(W: np.ndarray, indices: np.ndarray) -> np.ndarray:
    # [N, N] keep only each row's neighbourhood, rows sum to one
    S = np.zeros_like(W)
    rows = np.arange(W.shape[0])[:, np.newaxis]
    S[rows, indices] = W[rows, indices]
    return _row_normalize(S)


def _dense_labels(labels) -> np.ndarray:
    # relabel to 0..K-1 in order of first appearance
    codes, _ = pd.factorize(np.asarray(labels), sort=False)
    return codes.astype(np.int64)


def _check_cells(X: np.ndarray, modality: str = "X") -> None:
    if not np.isfinite(X).all():
        raise DegenerateInputError(f"{modality} expression contains non-finite values.")
    if X.shape[1] < 2:
        raise DegenerateInputError(
            f"{modality} expression has {X.shape[1]} feature(s), at least 2 are needed."
        )
    # [N] per-cell variance across features
    flat = np.flatnonzero(X.var(axis=1) == 0)
    if len(flat):
        raise DegenerateInputError(
            f"{len(flat)} cell(s) of {modality} have zero variance across features "
            f"(first at position {flat[0]}), their distances are undefined."
        )


def _clr(X: np.ndarray) -> np.ndarray:
    # centred log-ratio within each cell, defined for non-negative counts only
    if (X < 0).any():
        raise DegenerateInputError(
            "Centred log-ratio needs non-negative counts, "
            f"got a minimum of {X.min():g}. Use raw ADT counts, not scaled values."
        )
    logX = np.log1p(X)
    return logX - logX.mean(axis=1, keepdims=True)


def _propr_distance(X: np.ndarray) -> np.ndarray:
    # 1 - rho, rho = 2 cov(x, y) / (var(x) + var(y)) on CLR values of each pair of cells
    Z = _clr(X)
    Z = Z - Z.mean(axis=1, keepdims=True)
    # [N, N] = [N, F] x [F, N]
    cov = Z @ Z.T / (Z.shape[1] - 1)
    var = np.diag(cov)
    denom = var[:, np.newaxis] + var[np.newaxis, :]
    if (var <= 0).any():
        raise DegenerateInputError(
            "Proportionality is undefined for cells with constant log-ratios."
        )
    rho = 2 * cov / denom
    D = 1 - rho
    np.fill_diagonal(D, 0.0)
    return np.clip(D, 0.0, 2.0)
