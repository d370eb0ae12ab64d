# pylint: disable=E1123, W0621, C0116, W0511, E1121

from __future__ import annotations

import logging

import scanpy as sc
from anndata import AnnData

import citefusepy as cf


def run_citefuse(
    adata: AnnData,
    n_clusters: int | None,
    n_comps: int,
    n_top_genes: int,
    k_neighbors: int,
    max_iter: int,
    community_method: str,
    embedding_method: str,
    batch_key: str | None = None,
    seed: int = 1,
) -> None:
    """
    This function is supposed to be used mostly for debugging
    1. preprocessing
        - RNA: normalize, log1p, HVG, scale, PCA (-> Harmony if batch_key)
        - ADT: CLR
        - per-modality affinities -> adata.obsp
    2. fusion
        - SNF of RNA and ADT affinities -> adata.obsp["fused_affinity"]
    3. clustering and embedding of the fused affinity
        - eigengap K, spectral clustering
        - graph community clustering
        - UMAP / t-SNE
    """
    adata.layers["counts"] = adata.X.copy()

    # RNA
    sc.pp.normalize_total(adata, target_sum=1e4)
    sc.pp.log1p(adata)
    sc.pp.highly_variable_genes(
        adata, n_top_genes=min(n_top_genes, adata.n_vars), flavor="seurat"
    )
    adata_hvg = adata[:, adata.var.highly_variable].copy()
    sc.pp.scale(adata_hvg, max_value=10)
    sc.tl.pca(adata_hvg, n_comps=min(n_comps, adata_hvg.n_vars - 1))
    adata.obsm["X_pca"] = adata_hvg.obsm["X_pca"]

    rna_rep = "X_pca"
    if batch_key is not None:
        cf.pp.harmony_integrate(adata, key=batch_key, random_seed=seed)
        rna_rep = "X_pca_harmony"

    cf.pp.affinity(
        adata,
        use_rep=rna_rep,
        k_neighbors=k_neighbors,
        metric="correlation",
        key_added="rna_affinity",
    )

    # ADT
    cf.pp.normalize_adt(adata, method="clr")
    cf.pp.affinity(
        adata,
        use_rep="protein_expression_clr",
        k_neighbors=k_neighbors,
        key_added="adt_affinity",
    )

    cf.tl.fuse(adata, k_neighbors=k_neighbors, max_iter=max_iter)

    if n_clusters is None:
        n_clusters = cf.tl.estimate_n_clusters(adata)

    cf.tl.spectral_cluster(adata, n_clusters=n_clusters, seed=seed)
    seeded = community_method in ("louvain", "leiden")
    cf.tl.community_cluster(
        adata,
        method=community_method,
        k_neighbors=k_neighbors,
        **({"seed": seed} if seeded else {}),
    )
    cf.tl.embed(adata, method=embedding_method, seed=seed)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    adata = cf.datasets.synthetic_cite_seq(n_cells=400, n_clusters=5, seed=0)

    run_citefuse(
        adata,
        n_clusters=None,
        n_comps=20,
        n_top_genes=2000,
        k_neighbors=20,
        max_iter=20,
        community_method="louvain",
        embedding_method="umap",
    )

    print(adata)
    print(
        adata.obs.groupby(["truth", "spectral"], observed=True).size().unstack(fill_value=0)
    )
