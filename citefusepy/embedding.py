# pylint: disable=C0103, W0511, C0114
from __future__ import annotations

import logging

import numpy as np

from ._errors import InvalidParameterError
from ._types import AffinityMatrix, Embedding
from ._utils import _check_int

logger = logging.getLogger("citefusepy")

EMBEDDING_METHODS = ("umap", "tsne")


def affinity_to_distance(affinity: AffinityMatrix) -> np.ndarray:
    """
    Dissimilarity ``1 - A / max(A)`` with a zero diagonal, the representation
    precomputed-metric embeddings expect.
    """
    A = np.array(affinity.values)
    np.fill_diagonal(A, 0.0)
    top = A.max()
    if top > 0:
        A /= top
    D = np.clip(1.0 - A, 0.0, 1.0)
    np.fill_diagonal(D, 0.0)
    return D


def _umap(D: np.ndarray, dims: int, seed: int | None, **kwargs) -> np.ndarray:
    from umap import UMAP

    kwargs.setdefault("n_neighbors", min(15, D.shape[0] - 1))
    model = UMAP(n_components=dims, metric="precomputed", random_state=seed, **kwargs)
    return model.fit_transform(D)


def _tsne(D: np.ndarray, dims: int, seed: int | None, **kwargs) -> np.ndarray:
    try:
        from openTSNE import TSNE
    except ImportError as exc:
        raise ImportError(
            "\nPlease install openTSNE:\n\n\tpip install openTSNE"
        ) from exc

    # PCA initialisation needs coordinates, not distances
    kwargs.setdefault("initialization", "random")
    if dims > 2:
        # the FFT gradient is only implemented up to two dimensions
        kwargs.setdefault("negative_gradient_method", "bh")
    kwargs.setdefault("perplexity", min(30.0, (D.shape[0] - 1) / 3))
    tsne_obj = TSNE(n_components=dims, metric="precomputed", random_state=seed, **kwargs)
    return np.array(tsne_obj.fit(D))


def embed(
    affinity: AffinityMatrix,
    method: str = "umap",
    dims: int = 2,
    name: str | None = None,
    seed: int | None = None,
    **kwargs,
) -> Embedding:
    """
    Embed cells in ``dims`` dimensions from an affinity matrix, which is
    handed to the embedding algorithm as a precomputed distance matrix.

    :param affinity: cell-by-cell affinity, usually the fused one
    :type affinity: AffinityMatrix
    :param method: "umap" (umap-learn) or "tsne" (openTSNE), defaults to "umap"
    :type method: str, optional
    :param dims: number of output dimensions, defaults to 2
    :type dims: int, optional
    :param name: key to cache the embedding under, defaults to ``X_<modality>_<method>``
    :type name: str | None, optional
    :param seed: random state of the embedding, defaults to None
    :type seed: int | None, optional
    :param kwargs: passed to ``umap.UMAP`` or ``openTSNE.TSNE``
    :rtype: Embedding
    """
    if not isinstance(affinity, AffinityMatrix):
        affinity = AffinityMatrix(affinity)
    if method not in EMBEDDING_METHODS:
        raise InvalidParameterError(
            f"`method` should be one of {EMBEDDING_METHODS}, got {method!r}."
        )
    dims = _check_int("dims", dims)
    if affinity.n_cells < 3:
        raise InvalidParameterError("At least 3 cells are needed for an embedding.")

    logger.info("Computing %iD %s embedding of %i cells", dims, method, affinity.n_cells)

    D = affinity_to_distance(affinity)
    if method == "umap":
        coords = _umap(D, dims, seed, **kwargs)
    else:
        coords = _tsne(D, dims, seed, **kwargs)

    return Embedding(
        coords,
        cell_ids=affinity.cell_ids,
        method=method,
        name=name or f"X_{affinity.modality}_{method}",
    )
