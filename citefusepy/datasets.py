from __future__ import annotations

import numpy as np
import pandas as pd

from anndata import AnnData

from ._settings import ADT_OBSM_KEY
from ._types import ExpressionMatrix


def gaussian_modalities(
    n_cells: int = 50,
    n_clusters: int = 4,
    n_rna_features: int = 30,
    n_adt_features: int = 10,
    rna_std: float = 1.0,
    adt_std: float = 0.5,
    separation: float = 10.0,
    seed: int = 0,
) -> tuple[ExpressionMatrix, ExpressionMatrix, np.ndarray]:
    """
    Two modalities over the same cells sharing one cluster structure:
    well separated Gaussian blobs with modality-specific centres and noise.

    :return: RNA-like expression, ADT-like expression, ground-truth labels
    """
    rng = np.random.default_rng(seed)
    labels = np.arange(n_cells) % n_clusters
    cell_ids = [f"cell_{i}" for i in range(n_cells)]

    def _blobs(n_features, std, modality):
        centres = rng.normal(scale=separation, size=(n_clusters, n_features))
        X = centres[labels] + rng.normal(scale=std, size=(n_cells, n_features))
        return ExpressionMatrix(
            X,
            cell_ids=cell_ids,
            feature_names=[f"{modality}_{j}" for j in range(n_features)],
            modality=modality,
        )

    return _blobs(n_rna_features, rna_std, "RNA"), _blobs(n_adt_features, adt_std, "ADT"), labels


def synthetic_cite_seq(
    n_cells: int = 200,
    n_clusters: int = 4,
    n_genes: int = 200,
    n_proteins: int = 20,
    seed: int = 0,
) -> AnnData:
    """
    Simulated CITE-seq counts: RNA counts in ``adata.X``, ADT counts in
    ``adata.obsm["protein_expression"]``, cell types in ``adata.obs["truth"]``.
    Each cell type over-expresses its own block of genes and proteins.
    """
    rng = np.random.default_rng(seed)
    labels = np.arange(n_cells) % n_clusters

    def _counts(n_features, base, boost):
        means = rng.gamma(2.0, base, size=(n_clusters, n_features))
        block = np.array_split(np.arange(n_features), n_clusters)
        for k, idx in enumerate(block):
            means[k, idx] *= boost
        return rng.poisson(means[labels]).astype(np.float32)

    obs = pd.DataFrame(
        {"truth": pd.Categorical([f"type_{k}" for k in labels])},
        index=[f"cell_{i}" for i in range(n_cells)],
    )
    var = pd.DataFrame(index=[f"gene_{j}" for j in range(n_genes)])
    adata = AnnData(_counts(n_genes, 0.5, 8.0), obs=obs, var=var)
    adata.obsm[ADT_OBSM_KEY] = pd.DataFrame(
        _counts(n_proteins, 20.0, 10.0),
        index=adata.obs_names,
        columns=[f"ADT_{j}" for j in range(n_proteins)],
    )
    return adata
