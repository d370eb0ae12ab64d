import warnings

import numpy as np
import pytest

from sklearn.metrics import adjusted_rand_score

import citefusepy as cf


def random_affinity(n, seed=0, cell_ids=None):
    rng = np.random.default_rng(seed)
    W = rng.random((n, n))
    W = (W + W.T) / 2
    np.fill_diagonal(W, 0.0)
    return cf.AffinityMatrix(W, cell_ids=cell_ids)


class TestFusion:
    n_cells = 50
    n_clusters = 4
    k_neighbors = 10

    @staticmethod
    def assert_equals(f, s, threshold=1e-10):
        assert (abs(f - s) < threshold).all()

    def affinities(self, seed=0):
        rna, adt, labels = cf.datasets.gaussian_modalities(
            n_cells=self.n_cells, n_clusters=self.n_clusters, seed=seed
        )
        W_rna = cf.build_affinity(rna, k_neighbors=self.k_neighbors)
        W_adt = cf.build_affinity(adt, k_neighbors=self.k_neighbors)
        return W_rna, W_adt, labels

    def test_fuse_shape_and_symmetry(self):
        W_rna, W_adt, _ = self.affinities()
        fused = cf.fuse([W_rna, W_adt], k_neighbors=self.k_neighbors)

        assert isinstance(fused, cf.FusedAffinity)
        assert fused.shape == (self.n_cells, self.n_cells)
        assert fused.cell_ids.equals(W_rna.cell_ids)
        self.assert_equals(fused.values, fused.values.T)
        assert (np.diag(fused.values) == 0).all()
        assert (fused.values >= 0).all()
        assert fused.params["modalities"] == ["RNA", "ADT"]

    def test_fuse_three_modalities(self):
        W_rna, W_adt, _ = self.affinities()
        W_third, _, _ = self.affinities(seed=3)
        # same cells, different structure
        W_third = cf.AffinityMatrix(W_third.values, cell_ids=W_rna.cell_ids)
        fused = cf.fuse([W_rna, W_adt, W_third], k_neighbors=self.k_neighbors)

        assert fused.shape == (self.n_cells, self.n_cells)
        self.assert_equals(fused.values, fused.values.T)

    def test_fuse_deterministic(self):
        W_rna, W_adt, _ = self.affinities()
        fused_1 = cf.fuse([W_rna, W_adt], k_neighbors=self.k_neighbors, max_iter=15)
        fused_2 = cf.fuse([W_rna, W_adt], k_neighbors=self.k_neighbors, max_iter=15)

        assert np.array_equal(fused_1.values, fused_2.values)

    def test_inputs_untouched(self):
        W_rna, W_adt, _ = self.affinities()
        before = W_rna.values.copy(), W_adt.values.copy()
        cf.fuse([W_rna, W_adt], k_neighbors=self.k_neighbors)

        assert np.array_equal(before[0], W_rna.values)
        assert np.array_equal(before[1], W_adt.values)

    def test_runs_max_iter_without_tol(self):
        W_rna, W_adt, _ = self.affinities()
        fused = cf.fuse([W_rna, W_adt], k_neighbors=self.k_neighbors, max_iter=7)

        assert fused.n_iter == 7
        assert len(fused.residuals) == 7
        assert fused.converged is None

    def test_converges(self):
        W_rna, W_adt, _ = self.affinities()
        moderate = cf.fuse([W_rna, W_adt], k_neighbors=self.k_neighbors, max_iter=20)
        long = cf.fuse([W_rna, W_adt], k_neighbors=self.k_neighbors, max_iter=200)

        change = np.linalg.norm(long.values - moderate.values) / np.linalg.norm(
            moderate.values
        )
        assert change < 1e-2
        assert long.residuals[-1] <= long.residuals[0]

    def test_early_stopping(self):
        W_rna, W_adt, _ = self.affinities()
        with warnings.catch_warnings():
            warnings.simplefilter("error", cf.NonConvergenceWarning)
            fused = cf.fuse(
                [W_rna, W_adt], k_neighbors=self.k_neighbors, max_iter=500, tol=1e-4
            )

        assert fused.converged is True
        assert fused.n_iter < 500
        assert fused.residuals[-1] < 1e-4

    def test_non_convergence_warning(self):
        W_rna, W_adt, _ = self.affinities()
        with pytest.warns(cf.NonConvergenceWarning):
            fused = cf.fuse(
                [W_rna, W_adt], k_neighbors=self.k_neighbors, max_iter=1, tol=1e-12
            )

        assert fused.converged is False
        assert fused.n_iter == 1
        assert fused.shape == (self.n_cells, self.n_cells)

    def test_fused_spectral_recovers_clusters(self):
        W_rna, W_adt, labels = self.affinities()
        fused = cf.fuse([W_rna, W_adt], k_neighbors=self.k_neighbors)
        clusters = cf.spectral_cluster(fused, n_clusters=self.n_clusters, seed=0)

        assert adjusted_rand_score(labels, clusters.labels) > 0.9

    def test_shape_mismatch(self):
        with pytest.raises(cf.ShapeMismatchError):
            cf.fuse([random_affinity(10), random_affinity(12)])

    def test_cell_order_mismatch(self):
        ids = [f"cell_{i}" for i in range(10)]
        W_1 = random_affinity(10, seed=0, cell_ids=ids)
        W_2 = random_affinity(10, seed=1, cell_ids=ids[::-1])

        with pytest.raises(cf.ShapeMismatchError):
            cf.fuse([W_1, W_2])

    def test_raw_arrays_accepted(self):
        W_1 = np.array(random_affinity(10, seed=0).values)
        W_2 = np.array(random_affinity(10, seed=1).values)
        fused = cf.fuse([W_1, W_2], k_neighbors=3)

        assert fused.shape == (10, 10)

    def test_stacked_array_accepted(self):
        stacked = np.stack(
            [random_affinity(10, seed=0).values, random_affinity(10, seed=1).values]
        )
        fused = cf.fuse(stacked, k_neighbors=3)
        from_list = cf.fuse(list(stacked), k_neighbors=3)

        assert np.allclose(fused.values, from_list.values)

    @pytest.mark.parametrize("n_modalities", [0, 1])
    def test_empty_input(self, n_modalities):
        with pytest.raises(cf.EmptyInputError):
            cf.fuse([random_affinity(10)] * n_modalities)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"mix_fraction": 0.0},
            {"mix_fraction": 1.0},
            {"mix_fraction": 1.5},
            {"k_neighbors": -1},
            {"max_iter": 0},
            {"tol": -1e-3},
        ],
    )
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(cf.InvalidParameterError):
            cf.fuse([random_affinity(10, seed=0), random_affinity(10, seed=1)], **kwargs)
