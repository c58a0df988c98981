# spatial_index.py

"""
Spatial index contract shared by QuadTree, ZOrderIndex and RectTree.

An index is a snapshot structure: build() copies the entity positions into a
NumPy array and the result is never modified afterwards. Queries are AABB
tests against the square bounding the query circle, so callers that need a
true radius must re-filter candidates by Euclidean distance.

Data Contract:
- Entities: any object exposing a `position` Vector2.
- Candidate indices: int64 positions into the entity sequence given to build().
- Invariants: an index answers only for the snapshot it was built from.
"""

from abc import ABC, abstractmethod
from collections import namedtuple
from typing import Callable, List, Sequence, Tuple

import numpy as np

from vector2 import Vector2


class Rect(namedtuple('Rect', ['x0', 'y0', 'x1', 'y1'])):
    """Axis-aligned rectangle with x0 <= x1 and y0 <= y1."""
    __slots__ = ()

    @classmethod
    def around(cls, center, radius: float) -> "Rect":
        """The square of side 2*radius centered on `center`."""
        return cls(center.x - radius, center.y - radius, center.x + radius, center.y + radius)

    @property
    def width(self):
        return self.x1 - self.x0

    @property
    def height(self):
        return self.y1 - self.y0

    def intersects(self, other) -> bool:
        return not (self.x1 < other.x0 or self.x0 > other.x1 or
                    self.y1 < other.y0 or self.y0 > other.y1)

    def contains(self, x: float, y: float) -> bool:
        return self.x0 <= x <= self.x1 and self.y0 <= y <= self.y1


def positions_of(entities: Sequence) -> np.ndarray:
    """Copies entity positions into a contiguous (n, 2) float64 array."""
    positions = np.empty((len(entities), 2), dtype=np.float64)
    for i, entity in enumerate(entities):
        positions[i, 0] = entity.position.x
        positions[i, 1] = entity.position.y
    return positions


class SpatialIndex(ABC):
    """
    Base class for the three index strategies.

    Subclasses implement build() and query_candidates(); the visitor and
    batched forms are derived from those.
    """

    def __init__(self, entities: Sequence, positions: np.ndarray):
        self.entities = list(entities)
        self.positions = positions

    def __len__(self):
        return len(self.entities)

    @classmethod
    @abstractmethod
    def build(cls, entities: Sequence, scale_hint: float) -> "SpatialIndex":
        """Constructs the index from a full snapshot of entities."""

    @abstractmethod
    def query_candidates(self, center, radius: float) -> np.ndarray:
        """Indices of the entities passing the bounding-box test for the query square."""

    def query_distance(self, center, radius: float, visit: Callable) -> None:
        """Calls visit(entity) once for every candidate of the query square."""
        for i in self.query_candidates(center, radius):
            visit(self.entities[i])

    def query_many(self, centers: np.ndarray, radius: float) -> Tuple[np.ndarray, np.ndarray]:
        """
        Runs one query per row of `centers` and returns the results in CSR form:
        the candidates of query i are candidates[offsets[i]:offsets[i + 1]].
        """
        count = len(centers)
        offsets = np.zeros(count + 1, dtype=np.int64)
        chunks = []
        for i in range(count):
            found = self.query_candidates(Vector2(centers[i, 0], centers[i, 1]), radius)
            chunks.append(found)
            offsets[i + 1] = offsets[i] + len(found)
        if chunks:
            candidates = np.concatenate(chunks).astype(np.int64, copy=False)
        else:
            candidates = np.empty(0, dtype=np.int64)
        return offsets, candidates

    def bounding_rects(self) -> List[Rect]:
        """Debug geometry for the renderer. Empty unless the structure has node bounds."""
        return []


def effective_scale(scale_hint: float) -> float:
    """Scale hints that cannot size a region fall back to a unit square."""
    if not scale_hint > 0.0:
        return 1.0
    return float(scale_hint)
