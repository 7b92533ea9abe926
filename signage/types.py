"""Common dataclasses and type aliases used across the signage package."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

import numpy as np

# Bounding box order: x1, y1, x2, y2 (pixel coordinates)
BBox = Tuple[float, float, float, float]
# Fixed-length identity signature produced by the inference routine
Descriptor = Tuple[float, ...]

MALE = "male"
FEMALE = "female"


def as_descriptor(values: Iterable[float]) -> Descriptor:
    """Freeze a descriptor-like sequence into an immutable tuple of floats."""
    return tuple(float(v) for v in np.asarray(values, dtype=np.float64).reshape(-1))


@dataclass(frozen=True)
class Identity:
    """A known person and the reference descriptors registered for them."""

    id: str
    descriptors: Tuple[Descriptor, ...] = ()

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Identity":
        raw = payload.get("descriptors") or []
        return cls(id=str(payload["id"]), descriptors=tuple(as_descriptor(d) for d in raw))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "descriptors": [list(d) for d in self.descriptors]}

    def with_descriptor(self, descriptor: Sequence[float]) -> "Identity":
        """Return a copy with one more reference descriptor appended."""
        return Identity(id=self.id, descriptors=self.descriptors + (as_descriptor(descriptor),))


@dataclass(frozen=True)
class MatchResult:
    """Nearest identity for a probe descriptor (no threshold applied)."""

    distance: float = math.inf
    identity: Optional[Identity] = None


@dataclass(frozen=True)
class FaceDetection:
    """One face returned by the inference routine."""

    bbox: BBox
    descriptor: Descriptor
    age: float
    gender: str
    gender_probability: Optional[float] = None
    score: float = 1.0

    @property
    def width(self) -> float:
        return self.bbox[2] - self.bbox[0]

    @property
    def height(self) -> float:
        return self.bbox[3] - self.bbox[1]


@dataclass(frozen=True)
class AgeCategory:
    """A named age bracket, inclusive on both ends."""

    category: str
    age_group: str
    min_age: int
    max_age: int

    def contains(self, age: int) -> bool:
        return self.min_age <= age <= self.max_age


@dataclass(frozen=True)
class DetectionObservation:
    """Demographic estimate for one categorised face in one processed frame."""

    age: int
    category: str
    age_group: str
    gender: Optional[str]
    timestamp_ms: float


@dataclass(frozen=True)
class DominantCategoryResult:
    """Scene-level verdict; both fields are None when nothing dominates."""

    category: Optional[str] = None
    gender: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.category is None

    def to_payload(self, timestamp_ms: float) -> Dict[str, Any]:
        return {"category": self.category, "gender": self.gender, "timestamp": timestamp_ms}


NO_DOMINANT_CATEGORY = DominantCategoryResult()


@dataclass(frozen=True)
class CachedBox:
    """Render-ready description of one face from the latest completed batch."""

    bbox: BBox
    label: str
    score: float
    age: float
    gender: str
    gender_probability: Optional[float] = None
    category: Optional[AgeCategory] = field(default=None)


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean distance between two descriptors of equal length."""
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    if vec_a.shape != vec_b.shape:
        raise ValueError("Descriptor shapes do not match")
    return float(np.linalg.norm(vec_a - vec_b))
