# rect_tree.py

import logging
import math

import numba
import numpy as np

from constants import RECT_TREE_CAPACITY
from spatial_index import Rect, SpatialIndex, positions_of

logger = logging.getLogger("particle_sim")

@numba.jit(nopython=True)
def _query_jit(x0, y0, x1, y1, root, node_rects, node_child_start, node_child_count, node_is_leaf, sorted_positions, order, out):
    """
    Descends from the root, skipping any node whose MBR misses the query box.
    At the leaf level each entity is a point, so the test there is exact.
    Returns the number of entity indices written to `out`.
    """
    count = 0
    if root < 0:
        return count
    stack = np.empty(node_rects.shape[0], dtype=np.int64)
    stack[0] = root
    top = 1
    while top > 0:
        top -= 1
        node_idx = stack[top]
        if (node_rects[node_idx, 2] < x0 or node_rects[node_idx, 0] > x1 or
                node_rects[node_idx, 3] < y0 or node_rects[node_idx, 1] > y1):
            continue
        start = node_child_start[node_idx]
        end = start + node_child_count[node_idx]
        if node_is_leaf[node_idx]:
            for k in range(start, end):
                x = sorted_positions[k, 0]
                y = sorted_positions[k, 1]
                if x0 <= x <= x1 and y0 <= y <= y1:
                    out[count] = order[k]
                    count += 1
        else:
            for child in range(start, end):
                stack[top] = child
                top += 1
    return count

def _str_order(centers, capacity):
    """
    Sort-Tile-Recursive ordering: a permutation of `centers` such that every
    consecutive run of `capacity` entries forms a compact tile.
    """
    n = len(centers)
    tile_count = math.ceil(n / capacity)
    slice_count = math.ceil(math.sqrt(tile_count))
    slice_size = slice_count * capacity

    by_x = np.argsort(centers[:, 0], kind='stable')
    runs = []
    for start in range(0, n, slice_size):
        vertical_slice = by_x[start:start + slice_size]
        runs.append(vertical_slice[np.argsort(centers[vertical_slice, 1], kind='stable')])
    return np.concatenate(runs)

def _pack(rects, capacity):
    """Groups consecutive rects into parents; returns (parent_rects, starts, counts)."""
    n = len(rects)
    starts = np.arange(0, n, capacity, dtype=np.int64)
    counts = np.minimum(capacity, n - starts).astype(np.int64)
    parent_rects = np.empty((len(starts), 4), dtype=np.float64)
    parent_rects[:, 0] = np.minimum.reduceat(rects[:, 0], starts)
    parent_rects[:, 1] = np.minimum.reduceat(rects[:, 1], starts)
    parent_rects[:, 2] = np.maximum.reduceat(rects[:, 2], starts)
    parent_rects[:, 3] = np.maximum.reduceat(rects[:, 3], starts)
    return parent_rects, starts, counts

class RectTree(SpatialIndex):
    """
    Balanced minimum-bounding-rectangle tree, bulk-loaded with STR.

    Data Contract:
    - order / sorted_positions: entities in leaf order. order[k] is the entity
      index stored in slot k, sorted_positions[k] its position.
    - node_rects[i] = (x0, y0, x1, y1), the MBR of node i's children.
    - node_child_start / node_child_count: children of node i are a contiguous
      range, of entity slots when node_is_leaf[i] and of nodes otherwise.
    - Nodes are stored level by level from the bottom; the root is last.
    - The scale hint is not used: extents come from the data.
    """
    def __init__(self, entities, positions, capacity=RECT_TREE_CAPACITY):
        super().__init__(entities, positions)
        if capacity < 2:
            raise ValueError(f"RectTree node capacity must be at least 2, got {capacity}")
        self.capacity = capacity
        self.order = np.empty(0, dtype=np.int64)
        self.sorted_positions = np.empty((0, 2), dtype=np.float64)
        self.node_rects = np.empty((0, 4), dtype=np.float64)
        self.node_child_start = np.empty(0, dtype=np.int64)
        self.node_child_count = np.empty(0, dtype=np.int64)
        self.node_is_leaf = np.empty(0, dtype=np.bool_)
        self.root = -1
        self.height = 0

    @classmethod
    def build(cls, entities, scale_hint=None, capacity=RECT_TREE_CAPACITY):
        tree = cls(entities, positions_of(entities), capacity)
        if len(tree.positions) == 0:
            return tree

        # --- 1. Order the entities into leaf tiles ---
        tree.order = _str_order(tree.positions, capacity).astype(np.int64)
        tree.sorted_positions = np.ascontiguousarray(tree.positions[tree.order])
        point_rects = np.hstack([tree.sorted_positions, tree.sorted_positions])

        # --- 2. Pack levels bottom-up until a single root remains ---
        level_rects, level_starts, level_counts = _pack(point_rects, capacity)
        level_is_leaf = True
        all_rects, all_starts, all_counts, all_leaf = [], [], [], []
        stored = 0
        tree.height = 1
        while len(level_rects) > 1:
            # Reorder this level so that siblings are contiguous in the node arrays
            centers = np.column_stack([
                (level_rects[:, 0] + level_rects[:, 2]) / 2,
                (level_rects[:, 1] + level_rects[:, 3]) / 2,
            ])
            perm = _str_order(centers, capacity)
            level_rects = level_rects[perm]
            all_rects.append(level_rects)
            all_starts.append(level_starts[perm])
            all_counts.append(level_counts[perm])
            all_leaf.append(np.full(len(perm), level_is_leaf, dtype=np.bool_))

            parent_rects, parent_starts, parent_counts = _pack(level_rects, capacity)
            level_rects = parent_rects
            level_starts = parent_starts + stored
            level_counts = parent_counts
            level_is_leaf = False
            stored += len(perm)
            tree.height += 1

        all_rects.append(level_rects)
        all_starts.append(level_starts)
        all_counts.append(level_counts)
        all_leaf.append(np.full(1, level_is_leaf, dtype=np.bool_))

        tree.node_rects = np.ascontiguousarray(np.concatenate(all_rects))
        tree.node_child_start = np.concatenate(all_starts).astype(np.int64)
        tree.node_child_count = np.concatenate(all_counts).astype(np.int64)
        tree.node_is_leaf = np.concatenate(all_leaf)
        tree.root = len(tree.node_rects) - 1

        logger.debug(f"RectTree built: {len(entities)} values, {len(tree.node_rects)} nodes, height {tree.height}.")
        return tree

    @property
    def bounds(self):
        """MBR of every entity, or None for an empty tree."""
        if self.root < 0:
            return None
        return Rect(*self.node_rects[self.root].tolist())

    def query_candidates(self, center, radius):
        out = np.empty(len(self.entities), dtype=np.int64)
        count = _query_jit(
            center.x - radius, center.y - radius, center.x + radius, center.y + radius,
            self.root, self.node_rects, self.node_child_start, self.node_child_count,
            self.node_is_leaf, self.sorted_positions, self.order, out
        )
        return out[:count]

    def bounding_rects(self):
        """Rectangles of all internal nodes, root included, entity leaves excluded."""
        return [Rect(*row) for row in self.node_rects.tolist()]
