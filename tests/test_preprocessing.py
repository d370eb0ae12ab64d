import numpy as np
import pandas as pd
import pytest

import citefusepy as cf


class TestPreprocessing:
    n_cells = 80

    def adata(self):
        return cf.datasets.synthetic_cite_seq(
            n_cells=self.n_cells, n_clusters=4, n_genes=60, n_proteins=12, seed=0
        )

    def test_synthetic_cite_seq(self):
        adata = self.adata()

        assert adata.shape == (self.n_cells, 60)
        assert adata.obsm["protein_expression"].shape == (self.n_cells, 12)
        assert adata.obs["truth"].nunique() == 4

    def test_normalize_adt_clr(self):
        adata = self.adata()
        cf.pp.normalize_adt(adata, method="clr")

        clr = adata.obsm["protein_expression_clr"]
        assert isinstance(clr, pd.DataFrame)
        assert np.allclose(clr.to_numpy().mean(axis=1), 0.0)

    def test_normalize_adt_min_max(self):
        adata = self.adata()
        cf.pp.normalize_adt(adata, method="min_max", key_added="adt_scaled")

        scaled = adata.obsm["adt_scaled"].to_numpy()
        assert scaled.min() >= 0 and scaled.max() <= 1

    def test_normalize_adt_errors(self):
        adata = self.adata()

        with pytest.raises(KeyError):
            cf.pp.normalize_adt(adata, obsm_key="adt")
        with pytest.raises(cf.InvalidParameterError):
            cf.pp.normalize_adt(adata, method="zscore")

    def test_normalize_adt_clr_rejects_scaled_values(self):
        adata = self.adata()
        adata.obsm["protein_scaled"] = adata.obsm["protein_expression"] - 50.0

        with pytest.raises(cf.DegenerateInputError):
            cf.pp.normalize_adt(adata, obsm_key="protein_scaled", method="clr")
        assert "protein_scaled_clr" not in adata.obsm

    def test_affinity(self):
        adata = self.adata()
        adata.layers["log"] = np.log1p(adata.X)
        cf.pp.affinity(adata, layer="log", metric="correlation", k_neighbors=10, key_added="rna_affinity")
        cf.pp.normalize_adt(adata)
        cf.pp.affinity(adata, use_rep="protein_expression_clr", k_neighbors=10, key_added="adt_affinity")

        for key in ("rna_affinity", "adt_affinity"):
            W = adata.obsp[key]
            assert W.shape == (self.n_cells, self.n_cells)
            assert np.allclose(W, W.T)
            assert adata.uns[key]["params"]["k_neighbors"] == 10

    def test_affinity_missing_rep(self):
        with pytest.raises(KeyError):
            cf.pp.affinity(self.adata(), use_rep="X_pca")

    def test_harmony_integrate(self):
        adata = self.adata()
        rng = np.random.default_rng(0)
        adata.obsm["X_pca"] = rng.normal(size=(self.n_cells, 10))
        adata.obs["sample"] = pd.Categorical(np.where(np.arange(self.n_cells) % 2, "HTO_1", "HTO_2"))
        cf.pp.harmony_integrate(adata, key="sample", max_iter_harmony=5)

        assert adata.obsm["X_pca_harmony"].shape == (self.n_cells, 10)
        assert "converged" in adata.uns["harmony"]
        assert adata.uns["harmony"]["vars_use"] == "sample"
