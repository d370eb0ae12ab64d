# pylint: disable=C0103, W0511, C0114
"""
Similarity network fusion.

Every modality keeps a status matrix ``P_m`` that starts as its own
normalized affinity. One iteration diffuses the average status of the other
modalities through the modality's local neighbourhood graph ``S_m``:

    P_m <- (1 - a) * norm(S_m @ mean(P_other) @ S_m.T) + a * P_m

where ``a`` is ``mix_fraction``. All status matrices are updated from the
previous iteration's values, so the result does not depend on modality order
beyond the final average.
"""
from __future__ import annotations

import logging
import warnings

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from ._errors import (
    EmptyInputError,
    InvalidParameterError,
    NonConvergenceWarning,
    ShapeMismatchError,
)
from ._settings import DEFAULT_K_NEIGHBORS, DEFAULT_MAX_ITER, DEFAULT_MIX_FRACTION
from ._types import AffinityMatrix, FusedAffinity
from ._utils import (
    _check_int,
    _clip_k,
    _full_kernel,
    _row_normalize,
    _sparse_kernel,
    _symmetrize,
    _top_k,
)

logger = logging.getLogger("citefusepy")


@dataclass
class _FusionState:
    # [M, N, N] status matrices, updated every iteration
    status: list
    # [M, N, N] local transition matrices, fixed
    kernels: list

    @classmethod
    def from_affinities(cls, affinities: Sequence[AffinityMatrix], k_neighbors: int):
        status, kernels = [], []
        for affinity in affinities:
            P = _symmetrize(_full_kernel(np.array(affinity.values)))
            indices, _ = _top_k(P, k_neighbors)
            status.append(P)
            kernels.append(_sparse_kernel(P, indices))
        return cls(status=status, kernels=kernels)

    def step(self, mix_fraction: float) -> float:
        """Advance every status matrix once, return the largest Frobenius change."""
        M = len(self.status)
        total = sum(self.status)
        updated = []
        for m in range(M):
            # [N, N] average of the other modalities
            others = (total - self.status[m]) / (M - 1)
            S = self.kernels[m]
            # [N, N] = [N, N] x [N, N] x [N, N].T
            diffused = _full_kernel(S @ others @ S.T)
            P = (1 - mix_fraction) * diffused + mix_fraction * self.status[m]
            updated.append(_symmetrize(P))

        residual = max(
            np.linalg.norm(new - old, ord="fro")
            for new, old in zip(updated, self.status)
        )
        self.status = updated
        return float(residual)

    def fused(self) -> np.ndarray:
        W = sum(self.status) / len(self.status)
        np.fill_diagonal(W, 0.0)
        return _symmetrize(_row_normalize(W))


def _check_affinities(affinities) -> list:
    affinities = list(affinities) if affinities is not None else []
    if len(affinities) < 2:
        raise EmptyInputError(
            f"Fusion needs at least two affinity matrices, got {len(affinities)}."
        )
    affinities = [
        a if isinstance(a, AffinityMatrix) else AffinityMatrix(a) for a in affinities
    ]
    first = affinities[0]
    for i, affinity in enumerate(affinities[1:], start=1):
        if affinity.shape != first.shape:
            raise ShapeMismatchError(
                f"Affinity {i} ({affinity.modality}) has shape {affinity.shape}, "
                f"expected {first.shape} as affinity 0 ({first.modality})."
            )
        if not affinity.cell_ids.equals(first.cell_ids):
            raise ShapeMismatchError(
                f"Affinity {i} ({affinity.modality}) is not indexed by the same "
                f"ordered cells as affinity 0 ({first.modality}). "
                "Align cells across modalities before fusion."
            )
    return affinities


def fuse(
    affinities: Sequence[AffinityMatrix],
    k_neighbors: int = DEFAULT_K_NEIGHBORS,
    max_iter: int = DEFAULT_MAX_ITER,
    mix_fraction: float = DEFAULT_MIX_FRACTION,
    tol: float | None = None,
) -> FusedAffinity:
    """
    Fuse two or more affinity matrices over the same cells into one by
    iterative cross-diffusion.

    Without ``tol`` exactly ``max_iter`` iterations are run. With ``tol``,
    iteration stops as soon as no status matrix moves by more than ``tol``
    (Frobenius norm); if that never happens a :class:`NonConvergenceWarning`
    is issued and the last state is returned with ``converged=False``.

    :param affinities: per-modality affinity matrices, identically indexed
    :type affinities: Sequence[AffinityMatrix]
    :param k_neighbors: size of the local neighbourhood diffusion is restricted to, defaults to 20
    :type k_neighbors: int, optional
    :param max_iter: number of diffusion iterations, defaults to 20
    :type max_iter: int, optional
    :param mix_fraction: share of its own previous status each modality retains per iteration, in (0, 1), defaults to 0.1
    :type mix_fraction: float, optional
    :param tol: early stopping tolerance, defaults to None
    :type tol: float | None, optional
    :return: fused affinity with ``n_iter``, ``converged`` and ``residuals``
    :rtype: FusedAffinity
    """
    affinities = _check_affinities(affinities)
    max_iter = _check_int("max_iter", max_iter)
    if not 0 < mix_fraction < 1:
        raise InvalidParameterError(
            f"`mix_fraction` must lie in the open interval (0, 1), got {mix_fraction}."
        )
    if tol is not None and not tol > 0:
        raise InvalidParameterError(f"`tol` must be positive, got {tol}.")
    N = affinities[0].n_cells
    k_neighbors = _clip_k(k_neighbors, N)

    logger.info(
        "Fusing %i networks of %i cells (k_neighbors=%i, max_iter=%i, mix_fraction=%g)",
        len(affinities),
        N,
        k_neighbors,
        max_iter,
        mix_fraction,
    )

    state = _FusionState.from_affinities(affinities, k_neighbors)
    residuals = []
    converged = None if tol is None else False
    for it in range(max_iter):
        residuals.append(state.step(mix_fraction))
        logger.debug("fusion iteration %i: residual %.3e", it + 1, residuals[-1])
        if tol is not None and residuals[-1] < tol:
            converged = True
            break

    if converged is False:
        logger.warning(
            "Fusion didn't converge within %i iterations (last change %.3e > tol %.3e). "
            "Consider increasing max_iter",
            max_iter,
            residuals[-1],
            tol,
        )
        warnings.warn(
            f"Fusion did not reach tol={tol} within max_iter={max_iter}.",
            NonConvergenceWarning,
        )

    return FusedAffinity(
        state.fused(),
        cell_ids=affinities[0].cell_ids,
        modality="fused",
        n_iter=len(residuals),
        converged=converged,
        residuals=tuple(residuals),
        params={
            "modalities": [a.modality for a in affinities],
            "k_neighbors": k_neighbors,
            "max_iter": max_iter,
            "mix_fraction": mix_fraction,
            "tol": tol,
        },
    )
