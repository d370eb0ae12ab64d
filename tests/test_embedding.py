import numpy as np
import pytest

import citefusepy as cf


class TestEmbedding:
    n_cells = 40

    def fused_affinity(self):
        rna, adt, _ = cf.datasets.gaussian_modalities(n_cells=self.n_cells, seed=0)
        return cf.fuse(
            [cf.build_affinity(rna, k_neighbors=6), cf.build_affinity(adt, k_neighbors=6)],
            k_neighbors=6,
        )

    def test_affinity_to_distance(self):
        W = self.fused_affinity()
        D = cf.affinity_to_distance(W)

        assert D.shape == W.shape
        assert np.allclose(D, D.T)
        assert (np.diag(D) == 0).all()
        assert D.min() >= 0 and D.max() <= 1
        # the most similar pair becomes the closest
        i, j = np.unravel_index(np.argmax(W.values), W.shape)
        assert D[i, j] == pytest.approx(0.0)

    def test_umap(self):
        W = self.fused_affinity()
        embedding = cf.embed(W, method="umap", dims=2, seed=0)

        assert embedding.coordinates.shape == (self.n_cells, 2)
        assert embedding.name == "X_fused_umap"
        assert embedding.cell_ids.equals(W.cell_ids)
        assert list(embedding.to_frame().columns) == ["umap1", "umap2"]
        assert np.isfinite(embedding.coordinates).all()

    def test_umap_3d_named(self):
        W = self.fused_affinity()
        embedding = cf.embed(W, method="umap", dims=3, name="X_snf_umap3d", seed=0)

        assert embedding.coordinates.shape == (self.n_cells, 3)
        assert embedding.name == "X_snf_umap3d"

    def test_tsne(self):
        pytest.importorskip("openTSNE")
        W = self.fused_affinity()
        embedding = cf.embed(W, method="tsne", dims=2, seed=0)

        assert embedding.coordinates.shape == (self.n_cells, 2)
        assert np.isfinite(embedding.coordinates).all()

    def test_invalid_parameters(self):
        W = self.fused_affinity()

        with pytest.raises(cf.InvalidParameterError):
            cf.embed(W, method="pca")
        with pytest.raises(cf.InvalidParameterError):
            cf.embed(W, dims=0)
