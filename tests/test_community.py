import random

import igraph as ig
import numpy as np
import pytest

from sklearn.metrics import adjusted_rand_score

import citefusepy as cf


def two_component_affinity(block=6):
    W = np.zeros((2 * block, 2 * block))
    W[:block, :block] = 1.0
    W[block:, block:] = 1.0
    np.fill_diagonal(W, 0.0)
    return cf.AffinityMatrix(W)


def bridged_affinity(block=6):
    W = np.array(two_component_affinity(block).values)
    W[0, block] = W[block, 0] = 0.01
    return cf.AffinityMatrix(W)


def isolated_cell_affinity(block=6):
    # a bridged pair of cliques plus one cell without any similarity
    W = np.zeros((2 * block + 1, 2 * block + 1))
    W[: 2 * block, : 2 * block] = bridged_affinity(block).values
    return cf.AffinityMatrix(W)


class EverythingTogether(cf.CommunityAlgorithm):
    name = "together"

    def partition(self, graph):
        return np.zeros(graph.vcount(), dtype=int)


class TestCommunity:
    n_cells = 48
    n_clusters = 4

    def fused_affinity(self):
        rna, adt, labels = cf.datasets.gaussian_modalities(
            n_cells=self.n_cells, n_clusters=self.n_clusters, seed=0
        )
        fused = cf.fuse(
            [cf.build_affinity(rna, k_neighbors=8), cf.build_affinity(adt, k_neighbors=8)],
            k_neighbors=8,
        )
        return fused, labels

    def test_build_graph(self):
        W, _ = self.fused_affinity()
        graph = cf.build_graph(W, k_neighbors=5)

        assert graph.vcount() == self.n_cells
        assert not graph.is_directed()
        assert graph.is_simple()
        assert 0 < graph.ecount() <= self.n_cells * 5
        assert min(graph.es["weight"]) > 0
        assert graph.vs["name"] == list(W.cell_ids)

    def test_build_shared_graph(self):
        W, _ = self.fused_affinity()
        graph = cf.build_graph(W, k_neighbors=5, shared=True)

        weights = np.array(graph.es["weight"])
        assert graph.vcount() == self.n_cells
        assert ((weights > 0) & (weights <= 1)).all()

    def test_build_full_graph(self):
        graph = cf.build_graph(two_component_affinity(), k_neighbors=None)

        # two cliques of 6
        assert graph.ecount() == 2 * 15

    @pytest.mark.parametrize("method", ["louvain", "leiden", "fastgreedy", "walktrap"])
    def test_two_cliques(self, method):
        clusters = cf.community_cluster(bridged_affinity(), method=method, k_neighbors=None)

        assert clusters.method == method
        assert clusters.n_clusters == 2
        assert len(set(clusters.labels[:6])) == 1
        assert len(set(clusters.labels[6:])) == 1

    @pytest.mark.parametrize("method", ["louvain", "leiden"])
    def test_disconnected_components(self, method):
        clusters = cf.community_cluster(two_component_affinity(), method=method, k_neighbors=5)

        assert clusters.method == method
        assert clusters.n_clusters == 2
        assert len(set(clusters.labels[:6])) == 1
        assert len(set(clusters.labels[6:])) == 1

    @pytest.mark.parametrize("k_neighbors", [None, 4])
    @pytest.mark.parametrize("method", ["louvain", "leiden"])
    def test_isolated_cell(self, method, k_neighbors):
        W = isolated_cell_affinity()
        graph = cf.build_graph(W, k_neighbors=k_neighbors)
        clusters = cf.community_cluster(W, method=method, k_neighbors=k_neighbors, seed=0)

        assert graph.vcount() == 13
        assert graph.degree(12) == 0
        assert clusters.n_clusters == 3
        assert clusters.labels[12] not in set(clusters.labels[:12])

    @pytest.mark.parametrize("method", ["louvain", "leiden"])
    def test_recovers_clusters(self, method):
        W, labels = self.fused_affinity()
        clusters = cf.community_cluster(W, method=method, k_neighbors=8, seed=0)

        assert set(clusters.labels) == set(range(clusters.n_clusters))
        assert adjusted_rand_score(labels, clusters.labels) > 0.9

    def test_louvain_seed_reproducible(self):
        W, _ = self.fused_affinity()
        first = cf.community_cluster(W, method="louvain", k_neighbors=5, seed=3)
        second = cf.community_cluster(W, method="louvain", k_neighbors=5, seed=3)

        assert np.array_equal(first.labels, second.labels)

    def test_louvain_seed_resets_igraph_generator(self, monkeypatch):
        installed = []
        set_generator = ig.set_random_number_generator

        def record(generator):
            installed.append(generator)
            set_generator(generator)

        monkeypatch.setattr(ig, "set_random_number_generator", record)
        W = bridged_affinity()
        cf.community_cluster(W, method="louvain", k_neighbors=None)
        assert installed == []

        cf.community_cluster(W, method="louvain", k_neighbors=None, seed=2)
        assert isinstance(installed[0], random.Random)
        assert installed[-1] is random

    def test_algorithm_instance(self):
        W, _ = self.fused_affinity()
        clusters = cf.community_cluster(W, method=EverythingTogether(), k_neighbors=5)

        assert clusters.n_clusters == 1
        assert clusters.method == "together"

        with pytest.raises(cf.InvalidParameterError):
            cf.community_cluster(W, method=EverythingTogether(), seed=1)

    def test_register_algorithm(self):
        cf.register_algorithm("together", EverythingTogether)
        try:
            assert "together" in cf.available_algorithms()
            assert isinstance(cf.get_algorithm("together"), EverythingTogether)
        finally:
            cf.community._ALGORITHMS.pop("together")

        with pytest.raises(TypeError):
            cf.register_algorithm("not_an_algorithm", dict)

    def test_unknown_method(self):
        with pytest.raises(cf.InvalidParameterError):
            cf.community_cluster(two_component_affinity(), method="infomap")

    def test_invalid_k_neighbors(self):
        with pytest.raises(cf.InvalidParameterError):
            cf.community_cluster(two_component_affinity(), k_neighbors=-3)
