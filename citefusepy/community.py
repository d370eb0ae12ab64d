# pylint: disable=C0103, W0511, C0114, C0115
from __future__ import annotations

import logging
import random

from abc import ABC, abstractmethod

import igraph as ig
import numpy as np

from scipy import sparse

from ._errors import InvalidParameterError
from ._settings import DEFAULT_K_NEIGHBORS
from ._types import AffinityMatrix, ClusterAssignment
from .affinity import nearest_neighbors
from ._utils import _dense_labels

logger = logging.getLogger("citefusepy")


class CommunityAlgorithm(ABC):
    """
    Strategy partitioning a weighted undirected graph into communities.
    Implementations only see the graph, never the affinity it came from.
    """

    name: str = ""

    @abstractmethod
    def partition(self, graph: ig.Graph) -> np.ndarray:
        """Community label of every vertex, in vertex order."""

    def __repr__(self):
        params = ", ".join(f"{k}={v!r}" for k, v in vars(self).items())
        return f"{type(self).__name__}({params})"


def _weights(graph: ig.Graph):
    return "weight" if "weight" in graph.es.attributes() else None


class Louvain(CommunityAlgorithm):
    """
    igraph's multilevel modularity optimisation.

    igraph has no per-call seed, so a seeded run installs a seeded generator
    for the call and then resets igraph to the ``random`` module. A generator
    set earlier with ``igraph.set_random_number_generator`` is not restored.
    """

    name = "louvain"

    def __init__(self, resolution: float = 1.0, seed: int | None = None):
        self.resolution = resolution
        self.seed = seed

    def partition(self, graph: ig.Graph) -> np.ndarray:
        # igraph draws vertex order from its module-wide generator
        if self.seed is not None:
            ig.set_random_number_generator(random.Random(self.seed))
        try:
            clustering = graph.community_multilevel(
                weights=_weights(graph), resolution=self.resolution
            )
        finally:
            if self.seed is not None:
                ig.set_random_number_generator(random)
        return np.asarray(clustering.membership)


class Leiden(CommunityAlgorithm):
    """leidenalg with the RB configuration (modularity with resolution) quality."""

    name = "leiden"

    def __init__(
        self, resolution: float = 1.0, seed: int | None = None, n_iterations: int = -1
    ):
        self.resolution = resolution
        self.seed = seed
        self.n_iterations = n_iterations

    def partition(self, graph: ig.Graph) -> np.ndarray:
        import leidenalg

        part = leidenalg.find_partition(
            graph,
            leidenalg.RBConfigurationVertexPartition,
            weights=_weights(graph),
            resolution_parameter=self.resolution,
            n_iterations=self.n_iterations,
            seed=self.seed,
        )
        return np.asarray(part.membership)


class FastGreedy(CommunityAlgorithm):
    """Greedy agglomerative modularity optimisation (Clauset-Newman-Moore)."""

    name = "fastgreedy"

    def partition(self, graph: ig.Graph) -> np.ndarray:
        dendrogram = graph.community_fastgreedy(weights=_weights(graph))
        return np.asarray(dendrogram.as_clustering().membership)


class Walktrap(CommunityAlgorithm):
    name = "walktrap"

    def __init__(self, steps: int = 4):
        self.steps = steps

    def partition(self, graph: ig.Graph) -> np.ndarray:
        dendrogram = graph.community_walktrap(weights=_weights(graph), steps=self.steps)
        return np.asarray(dendrogram.as_clustering().membership)


_ALGORITHMS: dict[str, type] = {
    cls.name: cls for cls in (Louvain, Leiden, FastGreedy, Walktrap)
}


def register_algorithm(name: str, algorithm: type) -> None:
    """Make a :class:`CommunityAlgorithm` subclass available under ``name``."""
    if not (isinstance(algorithm, type) and issubclass(algorithm, CommunityAlgorithm)):
        raise TypeError(f"{algorithm!r} is not a CommunityAlgorithm subclass")
    _ALGORITHMS[name] = algorithm


def available_algorithms() -> list[str]:
    return sorted(_ALGORITHMS)


def get_algorithm(name: str, **kwargs) -> CommunityAlgorithm:
    if name not in _ALGORITHMS:
        raise InvalidParameterError(
            f"Unknown community detection method {name!r}, "
            f"available: {available_algorithms()}."
        )
    return _ALGORITHMS[name](**kwargs)


def _shared_neighbors(knn: sparse.csr_matrix) -> sparse.csr_matrix:
    # Jaccard index of neighbourhoods, every cell counted in its own neighbourhood
    n = knn.shape[0]
    member = (knn > 0).astype(np.float64) + sparse.identity(n, format="csr")
    k = np.asarray(member.sum(axis=1)).ravel()
    # [N, N] = [N, N] x [N, N].T
    shared = (member @ member.T).tocoo()
    off = shared.row != shared.col
    rows, cols, inter = shared.row[off], shared.col[off], shared.data[off]
    jaccard = inter / (k[rows] + k[cols] - inter)
    return sparse.csr_matrix((jaccard, (rows, cols)), shape=(n, n))


def build_graph(
    affinity: AffinityMatrix,
    k_neighbors: int | None = DEFAULT_K_NEIGHBORS,
    shared: bool = False,
) -> ig.Graph:
    """
    Undirected weighted graph over cells.

    With ``k_neighbors`` set, every cell is linked to its ``k_neighbors`` most
    similar cells (the union over both directions, weight = similarity).
    ``shared=True`` reweights cells by the Jaccard overlap of their
    neighbourhoods instead, linking cells that share a neighbour.
    ``k_neighbors=None`` keeps every nonzero similarity as an edge.
    Isolated cells stay in the graph as vertices without edges.

    :param affinity: cell-by-cell affinity
    :type affinity: AffinityMatrix
    :param k_neighbors: neighbours per cell, defaults to 20
    :type k_neighbors: int | None, optional
    :param shared: if to build a shared-nearest-neighbour graph, defaults to False
    :type shared: bool, optional
    :rtype: igraph.Graph
    """
    N = affinity.n_cells
    if k_neighbors is None:
        if shared:
            raise InvalidParameterError("`shared=True` requires `k_neighbors`.")
        adjacency = sparse.csr_matrix(affinity.values)
    else:
        knn = nearest_neighbors(affinity, k_neighbors).to_sparse()
        knn.eliminate_zeros()
        if shared:
            adjacency = _shared_neighbors(knn)
        else:
            adjacency = knn.maximum(knn.T)

    # upper triangle holds each undirected edge once
    upper = sparse.triu(adjacency, k=1).tocoo()
    keep = upper.data > 0
    graph = ig.Graph(
        n=N,
        edges=list(zip(upper.row[keep].tolist(), upper.col[keep].tolist())),
        directed=False,
    )
    graph.es["weight"] = upper.data[keep].tolist()
    graph.vs["name"] = [str(c) for c in affinity.cell_ids]
    return graph


def community_cluster(
    affinity: AffinityMatrix,
    method: str | CommunityAlgorithm = "louvain",
    k_neighbors: int | None = DEFAULT_K_NEIGHBORS,
    shared: bool = False,
    **algorithm_kwargs,
) -> ClusterAssignment:
    """
    Cluster cells by community detection on a neighbour graph of ``affinity``.
    The number of clusters is decided by the algorithm.

    :param affinity: cell-by-cell affinity, usually the fused one
    :type affinity: AffinityMatrix
    :param method: registered method name ("louvain", "leiden", "fastgreedy", "walktrap") or an algorithm instance, defaults to "louvain"
    :type method: str | CommunityAlgorithm, optional
    :param k_neighbors: neighbours per cell in the graph, None for all nonzero similarities, defaults to 20
    :type k_neighbors: int | None, optional
    :param shared: if to use a shared-nearest-neighbour graph, defaults to False
    :type shared: bool, optional
    :param algorithm_kwargs: passed to the algorithm's constructor, e.g. ``resolution`` or ``seed``
    :return: dense labels ``0..K-1``
    :rtype: ClusterAssignment
    """
    if not isinstance(affinity, AffinityMatrix):
        affinity = AffinityMatrix(affinity)

    if isinstance(method, CommunityAlgorithm):
        if algorithm_kwargs:
            raise InvalidParameterError(
                "Algorithm keyword arguments can't be combined with an algorithm instance."
            )
        algorithm = method
    else:
        algorithm = get_algorithm(method, **algorithm_kwargs)

    graph = build_graph(affinity, k_neighbors=k_neighbors, shared=shared)
    logger.info(
        "Running %r on a graph of %i cells and %i edges",
        algorithm,
        graph.vcount(),
        graph.ecount(),
    )

    labels = _dense_labels(algorithm.partition(graph))
    logger.info("Found %i communities", len(np.unique(labels)))

    return ClusterAssignment(
        labels,
        cell_ids=affinity.cell_ids,
        method=algorithm.name or type(algorithm).__name__.lower(),
        params={"k_neighbors": k_neighbors, "shared": shared, **vars(algorithm)},
    )
