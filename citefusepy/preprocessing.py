# pylint: disable=C0103, W0511, C0114
from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from anndata import AnnData
from harmonypy import run_harmony

from ._errors import InvalidParameterError
from ._settings import ADT_OBSM_KEY, DEFAULT_K_NEIGHBORS, DEFAULT_MU, DEFAULT_SEED
from ._types import ExpressionMatrix
from ._utils import _clr
from .affinity import build_affinity


logger = logging.getLogger("citefusepy")

ADT_NORMALIZATIONS = ("clr", "log", "min_max")


def normalize_adt(
    adata: AnnData,
    obsm_key: str = ADT_OBSM_KEY,
    method: str = "clr",
    key_added: str | None = None,
) -> None:
    """
    Normalize antibody-derived tag counts stored in ``adata.obsm[obsm_key]``
    and save them to ``adata.obsm[key_added]``.

    :param adata: AnnData object with ADT counts in ``obsm``
    :type adata: AnnData
    :param obsm_key: slot with raw ADT counts, cells x proteins, defaults to "protein_expression"
    :type obsm_key: str, optional
    :param method: "clr" (centred log-ratio within each cell), "log" (log1p) or "min_max" (per-protein scaling to [0, 1]), defaults to "clr"
    :type method: str, optional
    :param key_added: slot for normalized values, defaults to ``f"{obsm_key}_{method}"``
    :type key_added: str | None, optional
    """
    if obsm_key not in adata.obsm:
        raise KeyError(f"'{obsm_key}' not found in adata.obsm")
    if method not in ADT_NORMALIZATIONS:
        raise InvalidParameterError(
            f"`method` should be one of {ADT_NORMALIZATIONS}, got {method!r}."
        )

    raw = adata.obsm[obsm_key]
    X = raw.to_numpy(dtype=np.float64) if isinstance(raw, pd.DataFrame) else np.asarray(raw, dtype=np.float64)

    if method == "clr":
        X_norm = _clr(X)
    elif method == "log":
        X_norm = np.log1p(X)
    else:
        lo = X.min(axis=0, keepdims=True)
        span = X.max(axis=0, keepdims=True) - lo
        span[span == 0] = 1.0
        X_norm = (X - lo) / span

    if isinstance(raw, pd.DataFrame):
        X_norm = pd.DataFrame(X_norm, index=raw.index, columns=raw.columns)

    adata.obsm[key_added or f"{obsm_key}_{method}"] = X_norm


def harmony_integrate(
    adata: AnnData,
    key: list[str] | str,
    basis: str = "X_pca",
    basis_adjusted: str = "X_pca_harmony",
    random_seed: int = DEFAULT_SEED,
    **harmony_kwargs,
) -> None:
    """
    Run Harmony batch correction on one modality's embedding, e.g. the RNA PCA
    of hashtag-multiplexed samples, before building its affinity.
    Corrected coordinates are saved to ``adata.obsm[basis_adjusted]``,
    convergence to ``adata.uns["harmony"]``.

    :param adata: adata object with batch
    :type adata: AnnData
    :param key: which columns from ``adata.obs`` to use as batch keys (``vars_use`` parameter of Harmony)
    :type key: list[str] | str
    :param basis: ``adata.obsm[basis]`` will be used as input embedding to Harmony, defaults to "X_pca"
    :type basis: str, optional
    :param basis_adjusted: slot where to put corrected coordinates, defaults to "X_pca_harmony"
    :type basis_adjusted: str, optional
    :param random_seed: random seed, defaults to 1
    :type random_seed: int, optional
    """
    if basis not in adata.obsm:
        raise KeyError(f"'{basis}' not found in adata.obsm")

    ho = run_harmony(
        adata.obsm[basis],
        meta_data=adata.obs,
        vars_use=key,
        random_state=random_seed,
        **harmony_kwargs,
    )

    Z_corr = np.asarray(ho.Z_corr)
    # older harmonypy releases return components x cells
    if Z_corr.shape[0] != adata.n_obs:
        Z_corr = Z_corr.T
    adata.obsm[basis_adjusted] = Z_corr
    converged = ho.check_convergence(1)

    adata.uns["harmony"] = {
        "basis": basis,
        "basis_adjusted": basis_adjusted,
        "vars_use": key,
        "converged": converged,
    }

    if not converged:
        logger.warning(
            "Harmony didn't converge. "
            "Consider increasing max_iter_harmony parameter value"
        )


def affinity(
    adata: AnnData,
    use_rep: str | None = None,
    layer: str | None = None,
    k_neighbors: int = DEFAULT_K_NEIGHBORS,
    sigma_mode: str = "local",
    metric: str = "euclidean",
    mu: float = DEFAULT_MU,
    n_jobs: int | None = None,
    key_added: str = "affinity",
) -> None:
    """
    Build the cell-by-cell affinity of one modality and save it to
    ``adata.obsp[key_added]``, with its parameters in ``adata.uns[key_added]``.

    :param adata: AnnData object
    :type adata: AnnData
    :param use_rep: ``adata.obsm[use_rep]`` (e.g. "X_pca" or ADT values) will be used as features, defaults to None
    :type use_rep: str | None, optional
    :param layer: ``adata.layers[layer]`` will be used if ``use_rep`` is None, ``adata.X`` if both are None, defaults to None
    :type layer: str | None, optional
    :param k_neighbors: neighbours for the local kernel scale, defaults to 20
    :type k_neighbors: int, optional
    :param sigma_mode: "local" or "global" kernel bandwidth, defaults to "local"
    :type sigma_mode: str, optional
    :param metric: distance between cells, defaults to "euclidean"
    :type metric: str, optional
    :param mu: kernel width multiplier, defaults to 0.5
    :type mu: float, optional
    :param n_jobs: workers for distance computation, defaults to None
    :type n_jobs: int | None, optional
    :param key_added: slot name in ``adata.obsp`` and ``adata.uns``, defaults to "affinity"
    :type key_added: str, optional
    """
    expr = ExpressionMatrix.from_anndata(
        adata, layer=layer, obsm=use_rep, modality=key_added
    )
    W = build_affinity(
        expr,
        k_neighbors=k_neighbors,
        sigma_mode=sigma_mode,
        metric=metric,
        mu=mu,
        n_jobs=n_jobs,
        modality=key_added,
    )
    adata.obsp[key_added] = np.array(W.values)
    adata.uns[key_added] = {
        "params": {
            "use_rep": use_rep,
            "layer": layer,
            "k_neighbors": k_neighbors,
            "sigma_mode": sigma_mode,
            "metric": metric,
            "mu": mu,
        }
    }
