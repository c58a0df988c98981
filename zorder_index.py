# zorder_index.py

"""
Morton (Z-order) sorted array index.

Each entity is quantized onto a 2^bits x 2^bits grid covering
[0, scale] x [0, scale] and keyed by interleaving the bits of its grid
coordinates. Build is a stable sort by key; a query is two binary searches.

Morton keys are monotone under the componentwise order: if a cell is
right of and below another it also has a larger key. Every entity whose
cell lies inside the query box therefore has a key between the keys of the
box's lower-left and upper-right corners, and the contiguous slice between
them is a superset of the box contents. It is not tight: the curve leaves and
re-enters the box, so the slice carries false positives that the caller
filters by distance.

The end of the slice is found with an upper-bound search (side='right'),
not the lower-bound search used for the start. A half-open
[lower_bound(lo), lower_bound(hi)) range would drop every entity whose key
equals the upper-right corner key, i.e. every entity sharing that corner's
grid cell, including one sitting exactly on the query center at radius 0.
"""

import logging
import math

import numba
import numpy as np

from constants import ZORDER_BITS
from spatial_index import SpatialIndex, effective_scale, positions_of

logger = logging.getLogger("particle_sim")


@numba.jit(nopython=True)
def z_order(x, y, bits):
    """Interleaves x into the even bits and y into the odd bits of the key."""
    z = 0
    for i in range(bits):
        z |= ((x >> i) & 1) << (2 * i)
        z |= ((y >> i) & 1) << (2 * i + 1)
    return z


@numba.jit(nopython=True)
def quantize(coord, scale, bits):
    """Grid cell of a coordinate, clamped to [0, 2^bits - 1]."""
    cells = 1 << bits
    value = coord / scale * cells
    # Also catches NaN
    if not value >= 0.0:
        return 0
    if value >= cells - 1:
        return cells - 1
    return int(math.floor(value))


@numba.jit(nopython=True)
def order_of(x, y, scale, bits):
    return z_order(quantize(x, scale, bits), quantize(y, scale, bits), bits)


@numba.jit(nopython=True)
def _codes_jit(positions, scale, bits, out):
    for i in range(positions.shape[0]):
        out[i] = order_of(positions[i, 0], positions[i, 1], scale, bits)


class ZOrderIndex(SpatialIndex):
    """
    Entities sorted by Morton key.

    Data Contract:
    - codes: int64 keys in non-decreasing order.
    - order: order[k] is the entity index holding the k-th smallest key.
    - bits: grid bits per axis (order parameter // 2).
    """

    def __init__(self, entities, positions, scale, order=ZORDER_BITS):
        super().__init__(entities, positions)
        if order < 2 or order > 62:
            raise ValueError(f"Z-order key width must be between 2 and 62 bits, got {order}")
        self.scale = scale
        self.bits = order // 2
        self.codes = np.empty(0, dtype=np.int64)
        self.order = np.empty(0, dtype=np.int64)

    @classmethod
    def build(cls, entities, scale_hint, order=ZORDER_BITS):
        index = cls(entities, positions_of(entities), effective_scale(scale_hint), order)
        codes = np.empty(len(index.positions), dtype=np.int64)
        if len(codes) > 0:
            _codes_jit(index.positions, index.scale, index.bits, codes)

        # Ties keep their original order
        index.order = np.argsort(codes, kind='stable').astype(np.int64)
        index.codes = codes[index.order]
        logger.debug(f"ZOrderIndex built: {len(codes)} values at {index.bits} bits per axis.")
        return index

    def key_of(self, x, y):
        return order_of(float(x), float(y), self.scale, self.bits)

    def key_range(self, center, radius):
        """Slice bounds [start, end) of the keys covering the query square."""
        low = self.key_of(center.x - radius, center.y - radius)
        high = self.key_of(center.x + radius, center.y + radius)
        start = int(np.searchsorted(self.codes, low, side='left'))
        # Upper bound: entries sharing the upper-right cell's key are included.
        end = int(np.searchsorted(self.codes, high, side='right'))
        return start, end

    def query_candidates(self, center, radius):
        start, end = self.key_range(center, radius)
        return self.order[start:end]

    def query_many(self, centers, radius):
        # Vectorized form of key_range() over all centers at once.
        count = len(centers)
        if count == 0 or len(self.codes) == 0:
            return np.zeros(count + 1, dtype=np.int64), np.empty(0, dtype=np.int64)
        low_corners = centers - radius
        high_corners = centers + radius
        lows = np.empty(count, dtype=np.int64)
        highs = np.empty(count, dtype=np.int64)
        _codes_jit(low_corners, self.scale, self.bits, lows)
        _codes_jit(high_corners, self.scale, self.bits, highs)
        starts = np.searchsorted(self.codes, lows, side='left')
        ends = np.searchsorted(self.codes, highs, side='right')
        lengths = np.maximum(ends - starts, 0)
        offsets = np.zeros(count + 1, dtype=np.int64)
        np.cumsum(lengths, out=offsets[1:])
        candidates = np.concatenate(
            [self.order[s:e] for s, e in zip(starts, ends)]
        ).astype(np.int64, copy=False)
        return offsets, candidates

    def values(self):
        """Entities in curve order, for drawing the Z curve."""
        return [self.entities[i] for i in self.order]
