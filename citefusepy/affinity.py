# pylint: disable=C0103, W0511, C0114
from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from sklearn.metrics import pairwise_distances

from ._errors import InvalidParameterError
from ._settings import DEFAULT_K_NEIGHBORS, DEFAULT_MU
from ._types import AffinityMatrix, ExpressionMatrix, NeighborSet
from ._utils import _check_cells, _clip_k, _propr_distance, _symmetrize, _top_k

logger = logging.getLogger("citefusepy")

SIGMA_MODES = ("local", "global")


def _as_expression(expr, modality: str | None) -> ExpressionMatrix:
    if isinstance(expr, ExpressionMatrix):
        return expr
    if isinstance(expr, pd.DataFrame):
        return ExpressionMatrix(
            expr.to_numpy(dtype=np.float64),
            cell_ids=expr.index,
            feature_names=expr.columns,
            modality=modality or "X",
        )
    return ExpressionMatrix(expr, modality=modality or "X")


def cell_distances(
    expr: ExpressionMatrix | np.ndarray,
    metric: str = "euclidean",
    n_jobs: int | None = None,
) -> np.ndarray:
    """
    Pairwise [N, N] distances between the cells (rows) of ``expr``.

    Besides every metric accepted by :func:`sklearn.metrics.pairwise_distances`,
    ``metric="propr"`` gives one minus the proportionality coefficient between
    the centred log-ratio profiles of two cells, which suits ADT counts.
    """
    expr = _as_expression(expr, None)
    X = expr.dense()
    _check_cells(X, expr.modality)

    if metric == "propr":
        D = _propr_distance(X)
    else:
        D = pairwise_distances(X, metric=metric, n_jobs=n_jobs)
        # correlation-type metrics may drift below zero by rounding
        D = np.clip(np.nan_to_num(D, nan=0.0), 0.0, None)

    D = _symmetrize(D)
    np.fill_diagonal(D, 0.0)
    return D


def build_affinity(
    expr: ExpressionMatrix | np.ndarray | pd.DataFrame,
    k_neighbors: int = DEFAULT_K_NEIGHBORS,
    sigma_mode: str = "local",
    metric: str = "euclidean",
    mu: float = DEFAULT_MU,
    n_jobs: int | None = None,
    modality: str | None = None,
) -> AffinityMatrix:
    """
    Convert a cells x features expression matrix into a symmetric
    cell-by-cell affinity matrix with a scaled Gaussian kernel.

    The bandwidth of a pair of cells is derived from the mean distance of each
    cell to its ``k_neighbors`` nearest neighbours. With ``sigma_mode="local"``
    it is ``(sigma_i + sigma_j + d_ij) / 3``, so dense and sparse regions of
    the data are scaled separately; with ``sigma_mode="global"`` one bandwidth
    (the mean of all ``sigma_i``) is used for every pair.

    :param expr: expression of one modality, cells as rows
    :type expr: ExpressionMatrix | np.ndarray | pd.DataFrame
    :param k_neighbors: neighbours used to estimate local scale, defaults to 20
    :type k_neighbors: int, optional
    :param sigma_mode: "local" or "global" kernel bandwidth, defaults to "local"
    :type sigma_mode: str, optional
    :param metric: distance between cells, e.g. "euclidean", "correlation" or "propr", defaults to "euclidean"
    :type metric: str, optional
    :param mu: kernel width multiplier, recommended between 0.3 and 0.8, defaults to 0.5
    :type mu: float, optional
    :param n_jobs: workers for the distance computation, defaults to None
    :type n_jobs: int | None, optional
    :param modality: name stored on the result, defaults to the expression's modality
    :type modality: str | None, optional
    :return: affinity matrix with zero diagonal and values in [0, 1]
    :rtype: AffinityMatrix
    """
    expr = _as_expression(expr, modality)
    N = expr.n_cells
    if N < 2:
        raise InvalidParameterError(f"At least 2 cells are needed, got {N}.")
    if sigma_mode not in SIGMA_MODES:
        raise InvalidParameterError(
            f"`sigma_mode` should be one of {SIGMA_MODES}, got {sigma_mode!r}."
        )
    if not mu > 0:
        raise InvalidParameterError(f"`mu` must be positive, got {mu}.")
    k_neighbors = _clip_k(k_neighbors, N)

    logger.info(
        "Building %s affinity for %i cells (metric=%s, k_neighbors=%i, sigma_mode=%s)",
        modality or expr.modality,
        N,
        metric,
        k_neighbors,
        sigma_mode,
    )

    D = cell_distances(expr, metric=metric, n_jobs=n_jobs)

    # [N, k] distances to nearest other cells
    D_self_excluded = D.copy()
    np.fill_diagonal(D_self_excluded, np.inf)
    knn_dist = np.sort(D_self_excluded, axis=1)[:, :k_neighbors]
    sigma = knn_dist.mean(axis=1)

    if sigma_mode == "local":
        # [N, N] = ([N, 1] + [1, N] + [N, N]) / 3
        bandwidth = (sigma[:, np.newaxis] + sigma[np.newaxis, :] + D) / 3
    else:
        bandwidth = np.full_like(D, sigma.mean())

    bandwidth = mu * bandwidth + np.finfo(float).eps
    W = np.exp(-(D**2) / (2 * bandwidth**2))

    W = _symmetrize(W)
    np.fill_diagonal(W, 0.0)

    return AffinityMatrix(W, cell_ids=expr.cell_ids, modality=modality or expr.modality)


def nearest_neighbors(
    affinity: AffinityMatrix, k_neighbors: int = DEFAULT_K_NEIGHBORS
) -> NeighborSet:
    """
    The ``k_neighbors`` most similar other cells of every cell,
    in decreasing order of similarity.
    """
    k_neighbors = _clip_k(k_neighbors, affinity.n_cells)
    indices, weights = _top_k(affinity.values, k_neighbors)
    return NeighborSet(indices, weights, cell_ids=affinity.cell_ids)
