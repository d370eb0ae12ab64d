# pylint: disable=C0103, C0114
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import numpy as np
import pandas as pd

from anndata import AnnData
from scipy import sparse

from ._errors import DegenerateInputError, ShapeMismatchError
from ._settings import SYMMETRY_ATOL


def _frozen(arr, dtype=None) -> np.ndarray:
    out = np.array(arr, dtype=dtype, copy=True)
    out.flags.writeable = False
    return out


def _as_index(cell_ids: Optional[Sequence], n: int) -> pd.Index:
    if cell_ids is None:
        return pd.Index([str(i) for i in range(n)])
    index = pd.Index(cell_ids)
    if len(index) != n:
        raise ShapeMismatchError(
            f"Got {len(index)} cell ids for a matrix with {n} cells."
        )
    return index


@dataclass(frozen=True, eq=False)
class ExpressionMatrix:
    """
    Expression of one modality, cells as rows and features as columns
    (the AnnData orientation).

    :param values: [N_cells, N_features] dense array or scipy sparse matrix
    :param cell_ids: ordered cell identifiers, defaults to ``0..N-1``
    :param feature_names: feature identifiers, defaults to ``0..F-1``
    :param modality: name of the assay, e.g. "RNA" or "ADT"
    """

    values: Any
    cell_ids: Optional[Sequence] = None
    feature_names: Optional[Sequence] = None
    modality: str = "X"

    def __post_init__(self):
        values = self.values
        if sparse.issparse(values):
            values = sparse.csr_matrix(values, dtype=np.float64, copy=True)
        else:
            values = _frozen(values, dtype=np.float64)
            if values.ndim != 2:
                raise DegenerateInputError(
                    f"Expression matrix must be 2-dimensional, got {values.ndim} dimensions."
                )
        n_cells, n_features = values.shape
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "cell_ids", _as_index(self.cell_ids, n_cells))
        object.__setattr__(
            self, "feature_names", _as_index(self.feature_names, n_features)
        )

    @property
    def n_cells(self) -> int:
        return self.values.shape[0]

    @property
    def n_features(self) -> int:
        return self.values.shape[1]

    def dense(self) -> np.ndarray:
        if sparse.issparse(self.values):
            return self.values.toarray()
        return np.asarray(self.values)

    @classmethod
    def from_dataframe(
        cls, df: pd.DataFrame, cells_as_columns: bool = True, modality: str = "X"
    ) -> "ExpressionMatrix":
        """Build from a labelled table; by default features are rows and cells are columns."""
        if cells_as_columns:
            df = df.T
        return cls(
            df.to_numpy(dtype=np.float64),
            cell_ids=df.index,
            feature_names=df.columns,
            modality=modality,
        )

    @classmethod
    def from_anndata(
        cls,
        adata: AnnData,
        layer: str | None = None,
        obsm: str | None = None,
        modality: str | None = None,
    ) -> "ExpressionMatrix":
        """
        Read one assay of ``adata``: ``adata.obsm[obsm]`` if given,
        otherwise ``adata.layers[layer]``, otherwise ``adata.X``.
        """
        if obsm is not None:
            if obsm not in adata.obsm:
                raise KeyError(f"'{obsm}' not found in adata.obsm")
            rep = adata.obsm[obsm]
            if isinstance(rep, pd.DataFrame):
                return cls(
                    rep.to_numpy(dtype=np.float64),
                    cell_ids=adata.obs_names,
                    feature_names=rep.columns,
                    modality=modality or obsm,
                )
            return cls(rep, cell_ids=adata.obs_names, modality=modality or obsm)

        if layer is not None:
            if layer not in adata.layers:
                raise KeyError(f"'{layer}' not found in adata.layers")
            X = adata.layers[layer]
        else:
            X = adata.X
        return cls(
            X,
            cell_ids=adata.obs_names,
            feature_names=adata.var_names,
            modality=modality or (layer or "X"),
        )


@dataclass(frozen=True, eq=False)
class AffinityMatrix:
    """
    Symmetric, non-negative [N, N] cell-by-cell similarity. Matrices built
    by citefusepy carry a zero diagonal (self-similarity is excluded).
    """

    values: np.ndarray
    cell_ids: Optional[Sequence] = None
    modality: str = "affinity"

    def __post_init__(self):
        values = np.array(self.values, dtype=np.float64, copy=True)
        if values.ndim != 2 or values.shape[0] != values.shape[1]:
            raise ShapeMismatchError(
                f"Affinity matrix must be square, got shape {values.shape}."
            )
        if not np.isfinite(values).all():
            raise DegenerateInputError("Affinity matrix contains non-finite values.")
        if (values < 0).any():
            raise DegenerateInputError("Affinity matrix contains negative values.")
        if not np.allclose(values, values.T, rtol=0, atol=SYMMETRY_ATOL):
            raise DegenerateInputError("Affinity matrix is not symmetric.")
        values.flags.writeable = False
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "cell_ids", _as_index(self.cell_ids, values.shape[0]))

    @property
    def n_cells(self) -> int:
        return self.values.shape[0]

    @property
    def shape(self) -> tuple:
        return self.values.shape

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.values, index=self.cell_ids, columns=self.cell_ids)


@dataclass(frozen=True, eq=False)
class FusedAffinity(AffinityMatrix):
    """
    Affinity produced by network fusion, with its convergence record.
    ``converged`` is None when no tolerance was requested.
    """

    n_iter: int = 0
    converged: Optional[bool] = None
    residuals: tuple = ()
    params: dict = field(default_factory=dict)


@dataclass(frozen=True, eq=False)
class NeighborSet:
    """
    For each cell, its ``k`` most similar other cells ordered by decreasing
    similarity. ``indices`` and ``weights`` are [N, k].
    """

    indices: np.ndarray
    weights: np.ndarray
    cell_ids: Optional[Sequence] = None

    def __post_init__(self):
        indices = _frozen(self.indices, dtype=np.int64)
        weights = _frozen(self.weights, dtype=np.float64)
        if indices.shape != weights.shape:
            raise ShapeMismatchError(
                f"indices {indices.shape} and weights {weights.shape} differ in shape."
            )
        object.__setattr__(self, "indices", indices)
        object.__setattr__(self, "weights", weights)
        object.__setattr__(self, "cell_ids", _as_index(self.cell_ids, indices.shape[0]))

    @property
    def k(self) -> int:
        return self.indices.shape[1]

    def to_sparse(self) -> sparse.csr_matrix:
        """Directed kNN adjacency, row i holds the weights of cell i's neighbours."""
        n, k = self.indices.shape
        rows = np.repeat(np.arange(n), k)
        return sparse.csr_matrix(
            (self.weights.ravel(), (rows, self.indices.ravel())), shape=(n, n)
        )


@dataclass(frozen=True, eq=False)
class EigenSpectrum:
    """Eigenvalues of a normalized graph Laplacian in ascending order, with eigenvectors as columns."""

    eigenvalues: np.ndarray
    eigenvectors: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "eigenvalues", _frozen(self.eigenvalues, np.float64))
        object.__setattr__(
            self, "eigenvectors", _frozen(self.eigenvectors, np.float64)
        )

    def __len__(self):
        return len(self.eigenvalues)

    def gaps(self) -> np.ndarray:
        # gaps()[i] = eigenvalues[i + 1] - eigenvalues[i]
        return np.diff(self.eigenvalues)

    def n_zero(self, tol: float = 1e-8) -> int:
        """Number of (numerically) zero eigenvalues, i.e. connected components."""
        return int(np.sum(np.abs(self.eigenvalues) < tol))


@dataclass(frozen=True, eq=False)
class ClusterAssignment:
    """Dense integer labels ``0..K-1`` per cell."""

    labels: np.ndarray
    cell_ids: Optional[Sequence] = None
    method: str = ""
    spectrum: Optional[EigenSpectrum] = None
    params: dict = field(default_factory=dict)

    def __post_init__(self):
        labels = _frozen(self.labels, dtype=np.int64)
        object.__setattr__(self, "labels", labels)
        object.__setattr__(self, "cell_ids", _as_index(self.cell_ids, len(labels)))

    @property
    def n_clusters(self) -> int:
        return len(np.unique(self.labels))

    def to_series(self, name: str | None = None) -> pd.Series:
        return pd.Series(
            pd.Categorical(
                self.labels.astype(str),
                categories=[str(i) for i in range(self.labels.max(initial=-1) + 1)],
            ),
            index=self.cell_ids,
            name=name or self.method,
        )


@dataclass(frozen=True, eq=False)
class Embedding:
    """Low-dimensional coordinates of cells, cached under ``name``."""

    coordinates: np.ndarray
    cell_ids: Optional[Sequence] = None
    method: str = ""
    name: str = ""

    def __post_init__(self):
        coords = _frozen(self.coordinates, dtype=np.float64)
        object.__setattr__(self, "coordinates", coords)
        object.__setattr__(self, "cell_ids", _as_index(self.cell_ids, coords.shape[0]))

    @property
    def dims(self) -> int:
        return self.coordinates.shape[1]

    def to_frame(self) -> pd.DataFrame:
        columns = [f"{self.method}{i + 1}" for i in range(self.dims)]
        return pd.DataFrame(self.coordinates, index=self.cell_ids, columns=columns)
