# pylint: disable=C0103, C0116, C0114, C0115, W0511
from __future__ import annotations

import logging

from typing import Sequence

import numpy as np

from anndata import AnnData
from scipy.sparse import issparse

from ._settings import (
    ADT_AFFINITY_KEY,
    DEFAULT_K_NEIGHBORS,
    DEFAULT_MAX_ITER,
    DEFAULT_MIX_FRACTION,
    DEFAULT_SEED,
    FUSED_AFFINITY_KEY,
    RNA_AFFINITY_KEY,
)
from ._types import AffinityMatrix
from .community import CommunityAlgorithm
from .community import community_cluster as _community_cluster
from .embedding import embed as _embed
from .fusion import fuse as _fuse
from .spectral import eigengap_ranking
from .spectral import spectral_cluster as _spectral_cluster


logger = logging.getLogger("citefusepy")


def _get_affinity(adata: AnnData, key: str) -> AffinityMatrix:
    if key not in adata.obsp:
        raise KeyError(
            f"'{key}' not found in adata.obsp. First, run citefusepy.pp.affinity "
            "or citefusepy.tl.fuse with this key."
        )
    W = adata.obsp[key]
    W = W.toarray() if issparse(W) else np.asarray(W)
    return AffinityMatrix(W, cell_ids=adata.obs_names, modality=key)


def fuse(
    adata: AnnData,
    affinity_keys: Sequence[str] = (RNA_AFFINITY_KEY, ADT_AFFINITY_KEY),
    k_neighbors: int = DEFAULT_K_NEIGHBORS,
    max_iter: int = DEFAULT_MAX_ITER,
    mix_fraction: float = DEFAULT_MIX_FRACTION,
    tol: float | None = None,
    key_added: str = FUSED_AFFINITY_KEY,
) -> None:
    """
    Fuse per-modality affinities from ``adata.obsp`` with similarity network fusion.
    Saves the fused matrix to ``adata.obsp[key_added]`` and the convergence
    record to ``adata.uns[key_added]``.

    :param adata: AnnData object with per-modality affinities (see ``citefusepy.pp.affinity``)
    :type adata: AnnData
    :param affinity_keys: keys of ``adata.obsp`` to fuse, defaults to ("rna_affinity", "adt_affinity")
    :type affinity_keys: Sequence[str], optional
    :param k_neighbors: neighbourhood size of the diffusion, defaults to 20
    :type k_neighbors: int, optional
    :param max_iter: fusion iterations, defaults to 20
    :type max_iter: int, optional
    :param mix_fraction: self-retention of each modality's status per iteration, defaults to 0.1
    :type mix_fraction: float, optional
    :param tol: early stopping tolerance, defaults to None
    :type tol: float | None, optional
    :param key_added: slot name in ``adata.obsp`` and ``adata.uns``, defaults to "fused_affinity"
    :type key_added: str, optional
    """
    if isinstance(affinity_keys, str):
        affinity_keys = [affinity_keys]
    affinities = [_get_affinity(adata, key) for key in affinity_keys]

    fused = _fuse(
        affinities,
        k_neighbors=k_neighbors,
        max_iter=max_iter,
        mix_fraction=mix_fraction,
        tol=tol,
    )

    adata.obsp[key_added] = np.array(fused.values)
    adata.uns[key_added] = {
        "n_iter": fused.n_iter,
        "converged": fused.converged,
        "residuals": np.array(fused.residuals),
        "params": fused.params,
    }


def estimate_n_clusters(
    adata: AnnData,
    affinity_key: str = FUSED_AFFINITY_KEY,
    max_clusters: int = 10,
) -> int:
    """
    Number of clusters suggested by the largest eigengap of the affinity's
    normalized Laplacian. The full ranking is saved to
    ``adata.uns[f"{affinity_key}_eigengap"]``.
    """
    ranking = eigengap_ranking(_get_affinity(adata, affinity_key), max_clusters)
    adata.uns[f"{affinity_key}_eigengap"] = {
        "n_clusters": ranking.index.to_numpy(),
        "eigengap": ranking.to_numpy(),
    }
    best = int(ranking.index[0])
    logger.info("Largest eigengap suggests %i clusters", best)
    return best


def spectral_cluster(
    adata: AnnData,
    n_clusters: int,
    affinity_key: str = FUSED_AFFINITY_KEY,
    seed: int | None = DEFAULT_SEED,
    key_added: str = "spectral",
) -> None:
    """
    Spectral clustering on ``adata.obsp[affinity_key]``.
    Labels are saved to ``adata.obs[key_added]``, Laplacian eigenvalues to
    ``adata.uns[key_added]["eigenvalues"]``.

    :param adata: AnnData object
    :type adata: AnnData
    :param n_clusters: number of clusters
    :type n_clusters: int
    :param affinity_key: affinity to cluster, defaults to "fused_affinity"
    :type affinity_key: str, optional
    :param seed: random seed of k-means, defaults to 1
    :type seed: int | None, optional
    :param key_added: slot name in ``adata.obs`` and ``adata.uns``, defaults to "spectral"
    :type key_added: str, optional
    """
    result = _spectral_cluster(
        _get_affinity(adata, affinity_key), n_clusters=n_clusters, seed=seed
    )
    adata.obs[key_added] = result.to_series(key_added)
    adata.uns[key_added] = {
        "affinity_key": affinity_key,
        "eigenvalues": np.array(result.spectrum.eigenvalues),
        "params": result.params,
    }


def community_cluster(
    adata: AnnData,
    method: str | CommunityAlgorithm = "louvain",
    affinity_key: str = FUSED_AFFINITY_KEY,
    k_neighbors: int | None = DEFAULT_K_NEIGHBORS,
    shared: bool = False,
    key_added: str | None = None,
    **algorithm_kwargs,
) -> None:
    """
    Graph community detection on a neighbour graph of ``adata.obsp[affinity_key]``.
    Labels are saved to ``adata.obs[key_added]``.

    :param adata: AnnData object
    :type adata: AnnData
    :param method: community detection method name or algorithm instance, defaults to "louvain"
    :type method: str | CommunityAlgorithm, optional
    :param affinity_key: affinity to build the graph from, defaults to "fused_affinity"
    :type affinity_key: str, optional
    :param k_neighbors: neighbours per cell, defaults to 20
    :type k_neighbors: int | None, optional
    :param shared: if to use a shared-nearest-neighbour graph, defaults to False
    :type shared: bool, optional
    :param key_added: slot name in ``adata.obs``, defaults to the method name
    :type key_added: str | None, optional
    """
    result = _community_cluster(
        _get_affinity(adata, affinity_key),
        method=method,
        k_neighbors=k_neighbors,
        shared=shared,
        **algorithm_kwargs,
    )
    key_added = key_added or result.method
    adata.obs[key_added] = result.to_series(key_added)
    adata.uns[key_added] = {"affinity_key": affinity_key, "params": result.params}


def embed(
    adata: AnnData,
    method: str = "umap",
    dims: int = 2,
    affinity_key: str = FUSED_AFFINITY_KEY,
    seed: int | None = DEFAULT_SEED,
    key_added: str | None = None,
    **kwargs,
):
    """
    UMAP or t-SNE of cells from ``adata.obsp[affinity_key]`` treated as a
    precomputed distance structure. Coordinates are saved to
    ``adata.obsm[key_added]``.

    :param adata: AnnData object
    :type adata: AnnData
    :param method: "umap" or "tsne", defaults to "umap"
    :type method: str, optional
    :param dims: output dimensions, defaults to 2
    :type dims: int, optional
    :param affinity_key: affinity to embed, defaults to "fused_affinity"
    :type affinity_key: str, optional
    :param seed: random seed, defaults to 1
    :type seed: int | None, optional
    :param key_added: slot in ``adata.obsm``, defaults to ``f"X_{affinity_key}_{method}"``
    :type key_added: str | None, optional
    """
    result = _embed(
        _get_affinity(adata, affinity_key),
        method=method,
        dims=dims,
        name=key_added,
        seed=seed,
        **kwargs,
    )
    adata.obsm[result.name] = np.array(result.coordinates)
