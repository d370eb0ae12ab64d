"""
CiteFuse algorithm:

1. Per-modality affinities:
    - RNA: log-normalized expression (optionally PCA / Harmony corrected),
        correlation or Euclidean distance between cells
    - ADT: CLR-normalized protein counts, Euclidean or proportionality distance
    - scaled exponential kernel, bandwidth from the mean distance
        of each cell to its k nearest neighbours
    savings:
        - adata.obsp["rna_affinity"], adata.obsp["adt_affinity"]

2. Similarity network fusion
    - every modality's status matrix is diffused through its own kNN graph
        using the average status of the other modalities
    - a mix_fraction of the previous status is retained each iteration
    - the fused affinity is the symmetric average of all statuses

3. Clustering of the fused affinity
    - spectral: eigenvectors of the normalized Laplacian + k-means,
        number of clusters from the largest eigengap
    - graph communities: Louvain / Leiden / greedy modularity / walktrap
        on the kNN or shared-nN graph

4. Joint embedding
    UMAP or t-SNE of the fused affinity as a precomputed distance
"""

from . import preprocessing as pp
from . import tools as tl
from . import datasets

from ._errors import (
    CiteFuseError,
    DegenerateInputError,
    EmptyInputError,
    InvalidParameterError,
    NonConvergenceWarning,
    ShapeMismatchError,
)
from ._types import (
    AffinityMatrix,
    ClusterAssignment,
    EigenSpectrum,
    Embedding,
    ExpressionMatrix,
    FusedAffinity,
    NeighborSet,
)
from .affinity import build_affinity, cell_distances, nearest_neighbors
from .community import (
    CommunityAlgorithm,
    FastGreedy,
    Leiden,
    Louvain,
    Walktrap,
    available_algorithms,
    build_graph,
    community_cluster,
    get_algorithm,
    register_algorithm,
)
from .embedding import affinity_to_distance, embed
from .fusion import fuse
from .spectral import (
    eigen_spectrum,
    eigengap_ranking,
    estimate_n_clusters,
    normalized_laplacian,
    spectral_cluster,
)
