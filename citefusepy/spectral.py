# pylint: disable=C0103, W0511, C0114
from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from scipy.linalg import eigh
from sklearn.cluster import KMeans

from ._errors import InvalidParameterError
from ._types import AffinityMatrix, ClusterAssignment, EigenSpectrum
from ._utils import _check_int, _dense_labels

logger = logging.getLogger("citefusepy")


def _as_affinity(affinity) -> AffinityMatrix:
    if isinstance(affinity, AffinityMatrix):
        return affinity
    return AffinityMatrix(affinity)


def normalized_laplacian(affinity: AffinityMatrix | np.ndarray) -> np.ndarray:
    """
    Symmetric normalized graph Laplacian ``I - D^-1/2 A D^-1/2``.
    Cells without any similarity get an all-zero row, so every isolated
    cell is a component of its own with eigenvalue 0.
    """
    A = _as_affinity(affinity).values
    degree = A.sum(axis=1)
    inv_sqrt = np.zeros_like(degree)
    nonzero = degree > 0
    inv_sqrt[nonzero] = 1.0 / np.sqrt(degree[nonzero])
    # [N, N] = [N, 1] * [N, N] * [1, N]
    L = np.diag(nonzero.astype(np.float64))
    L -= inv_sqrt[:, np.newaxis] * A * inv_sqrt[np.newaxis, :]
    return (L + L.T) / 2


def eigen_spectrum(affinity: AffinityMatrix | np.ndarray) -> EigenSpectrum:
    """
    Full eigendecomposition of the normalized Laplacian, eigenvalues ascending.
    A graph with ``c`` connected components has exactly ``c`` zero eigenvalues,
    isolated cells included.
    """
    eigenvalues, eigenvectors = eigh(normalized_laplacian(affinity))
    return EigenSpectrum(eigenvalues, eigenvectors)


def eigengap_ranking(
    spectrum: EigenSpectrum | AffinityMatrix | np.ndarray, max_clusters: int = 10
) -> pd.Series:
    """
    Candidate cluster counts ``2..max_clusters`` ranked by the eigengap
    ``lambda_{K+1} - lambda_K`` (eigenvalues counted from 1), largest gap first.
    """
    if not isinstance(spectrum, EigenSpectrum):
        spectrum = eigen_spectrum(spectrum)
    max_clusters = _check_int("max_clusters", max_clusters, minimum=2)
    max_clusters = min(max_clusters, len(spectrum) - 1)
    if max_clusters < 2:
        raise InvalidParameterError("At least 3 cells are needed to rank cluster counts.")

    gaps = spectrum.gaps()
    candidates = np.arange(2, max_clusters + 1)
    # gap after the K-th smallest eigenvalue: gaps[K - 1]
    ranking = pd.Series(gaps[candidates - 1], index=candidates, name="eigengap")
    ranking.index.name = "n_clusters"
    return ranking.sort_values(ascending=False, kind="stable")


def estimate_n_clusters(
    spectrum: EigenSpectrum | AffinityMatrix | np.ndarray, max_clusters: int = 10
) -> int:
    """Cluster count with the largest eigengap."""
    return int(eigengap_ranking(spectrum, max_clusters=max_clusters).index[0])


def spectral_cluster(
    affinity: AffinityMatrix | np.ndarray,
    n_clusters: int,
    seed: int | None = None,
    n_init: int = 10,
) -> ClusterAssignment:
    """
    Partition cells into ``n_clusters`` groups from the eigenvectors of the
    normalized graph Laplacian.

    The rows of the first ``n_clusters`` eigenvectors are scaled to unit length
    and grouped with k-means. k-means starts from random centroids: pass
    ``seed`` for reproducible labels, otherwise repeated calls may differ.
    A graph with fewer connected components than ``n_clusters`` may yield
    fewer distinct labels.

    :param affinity: cell-by-cell affinity, usually the fused one
    :type affinity: AffinityMatrix | np.ndarray
    :param n_clusters: number of clusters, between 2 and N - 1
    :type n_clusters: int
    :param seed: random state of k-means, defaults to None
    :type seed: int | None, optional
    :param n_init: k-means restarts, defaults to 10
    :type n_init: int, optional
    :return: labels ``0..K-1`` with the full eigen spectrum attached
    :rtype: ClusterAssignment
    """
    affinity = _as_affinity(affinity)
    N = affinity.n_cells
    n_clusters = _check_int("n_clusters", n_clusters, minimum=2)
    if n_clusters > N - 1:
        raise InvalidParameterError(
            f"`n_clusters` must be at most N - 1 = {N - 1}, got {n_clusters}."
        )

    logger.info("Spectral clustering of %i cells into %i clusters", N, n_clusters)

    spectrum = eigen_spectrum(affinity)
    n_components = spectrum.n_zero()
    if n_components > 1:
        logger.info(
            "Affinity graph has %i connected components", n_components
        )

    # [N, K]
    U = np.array(spectrum.eigenvectors[:, :n_clusters])
    norms = np.linalg.norm(U, ord=2, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    U /= norms

    model = KMeans(n_clusters=n_clusters, n_init=n_init, random_state=seed)
    labels = _dense_labels(model.fit_predict(U))

    if len(np.unique(labels)) < n_clusters:
        logger.warning(
            "Only %i distinct clusters found out of %i requested",
            len(np.unique(labels)),
            n_clusters,
        )

    return ClusterAssignment(
        labels,
        cell_ids=affinity.cell_ids,
        method="spectral",
        spectrum=spectrum,
        params={"n_clusters": n_clusters, "seed": seed, "n_init": n_init},
    )
