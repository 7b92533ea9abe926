"""Exhaustive Euclidean nearest-neighbour matcher over an identity snapshot."""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from signage.types import Identity, MatchResult

LOGGER = logging.getLogger("signage.recognition.matcher")

DEFAULT_THRESHOLD = 0.55


def _stack_descriptors(identities: Sequence[Identity]) -> Tuple[Optional[np.ndarray], List[Identity]]:
    """Flatten the identity x descriptor cross-product into a matrix plus owner list.

    Row order follows identity order, then descriptor order, so ``argmin`` picks
    the first-encountered candidate on ties.
    """
    rows: List[Sequence[float]] = []
    owners: List[Identity] = []
    for identity in identities:
        for sample in identity.descriptors:
            rows.append(sample)
            owners.append(identity)
    if not rows:
        return None, owners
    try:
        matrix = np.asarray(rows, dtype=np.float64)
    except ValueError as exc:
        raise ValueError("Reference descriptors have inconsistent lengths") from exc
    if matrix.ndim != 2:
        raise ValueError("Reference descriptors have inconsistent lengths")
    return matrix, owners


def _nearest(probe: Sequence[float], matrix: Optional[np.ndarray], owners: List[Identity]) -> MatchResult:
    if matrix is None:
        return MatchResult(distance=math.inf, identity=None)
    vec = np.asarray(probe, dtype=np.float64).reshape(-1)
    if vec.shape[0] != matrix.shape[1]:
        raise ValueError(
            f"Probe descriptor length {vec.shape[0]} does not match reference length {matrix.shape[1]}"
        )
    distances = np.linalg.norm(matrix - vec, axis=1)
    best = int(np.argmin(distances))
    return MatchResult(distance=float(distances[best]), identity=owners[best])


def find_best_match(probe: Sequence[float], identities: Sequence[Identity]) -> MatchResult:
    """Return the identity owning the descriptor closest to ``probe``.

    Identities without descriptors contribute no candidates. An empty snapshot
    yields ``MatchResult(distance=inf, identity=None)``.
    """
    matrix, owners = _stack_descriptors(identities)
    return _nearest(probe, matrix, owners)


class DescriptorMatcher:
    """Holds the current identity snapshot and answers nearest-neighbour queries.

    The snapshot is replaced wholesale (never mutated) by the registration
    coordinator; the stacked descriptor matrix is rebuilt on each replacement.
    """

    def __init__(self, identities: Sequence[Identity] = (), threshold: float = DEFAULT_THRESHOLD) -> None:
        self.threshold = threshold
        self._identities: Tuple[Identity, ...] = ()
        self._matrix: Optional[np.ndarray] = None
        self._owners: List[Identity] = []
        self.replace_snapshot(identities)

    @property
    def identities(self) -> Tuple[Identity, ...]:
        return self._identities

    def replace_snapshot(self, identities: Sequence[Identity]) -> None:
        snapshot = tuple(identities)
        matrix, owners = _stack_descriptors(snapshot)
        self._identities = snapshot
        self._matrix = matrix
        self._owners = owners
        LOGGER.info(
            "Identity snapshot replaced: %d identities, %d reference descriptors",
            len(snapshot),
            len(owners),
        )

    def match(self, probe: Sequence[float]) -> MatchResult:
        return _nearest(probe, self._matrix, self._owners)

    def is_recognized(self, result: MatchResult) -> bool:
        """Accept a match only when it is strictly closer than the threshold."""
        return result.identity is not None and result.distance < self.threshold
