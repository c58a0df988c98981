# quadtree.py

import numpy as np
import logging
import numba

from constants import COINCIDENT_EPSILON, COINCIDENT_OFFSET
from spatial_index import Rect, SpatialIndex, effective_scale, positions_of

logger = logging.getLogger("particle_sim")

# Node states
EMPTY = 0
LEAF = 1
INTERNAL = 2

# Quadrant slots in node_children. y grows downward (screen space).
NW, NE, SW, SE = 0, 1, 2, 3

@numba.jit(nopython=True)
def _get_quadrant(x, y, center_x, center_y):
    """Determine which of the four quadrants a point belongs to. Ties go east/south."""
    if x < center_x:
        return NW if y < center_y else SW
    else:
        return NE if y < center_y else SE

@numba.jit(nopython=True)
def _subdivide_jit(node_idx, next_node_idx, node_boundaries, node_children):
    """JIT-friendly subdivision of a node into four empty children."""
    cx = node_boundaries[node_idx, 0]
    cy = node_boundaries[node_idx, 1]
    half_w = node_boundaries[node_idx, 2] / 2
    half_h = node_boundaries[node_idx, 3] / 2

    # Assign children indices from the pre-allocated pool
    nw_idx, ne_idx, sw_idx, se_idx = next_node_idx, next_node_idx + 1, next_node_idx + 2, next_node_idx + 3
    node_children[node_idx, NW] = nw_idx
    node_children[node_idx, NE] = ne_idx
    node_children[node_idx, SW] = sw_idx
    node_children[node_idx, SE] = se_idx

    # Boundaries are (center_x, center_y, half_width, half_height)
    node_boundaries[nw_idx, 0] = cx - half_w
    node_boundaries[nw_idx, 1] = cy - half_h
    node_boundaries[ne_idx, 0] = cx + half_w
    node_boundaries[ne_idx, 1] = cy - half_h
    node_boundaries[sw_idx, 0] = cx - half_w
    node_boundaries[sw_idx, 1] = cy + half_h
    node_boundaries[se_idx, 0] = cx + half_w
    node_boundaries[se_idx, 1] = cy + half_h
    for child in range(nw_idx, se_idx + 1):
        node_boundaries[child, 2] = half_w
        node_boundaries[child, 3] = half_h

    return next_node_idx + 4

@numba.jit(nopython=True)
def _insert_jit(p_idx, positions, next_node_idx, max_nodes, node_boundaries, node_children, node_state, node_value):
    """
    JIT-friendly insertion, written as a loop to avoid deep recursion.
    Returns (next_node_idx, inserted). When a split would exceed max_nodes the
    insert stops with inserted False; splits already made on the way down stay
    valid and are counted in next_node_idx, so the caller must keep that value,
    grow the arena and retry from the root.
    """
    node_idx = 0
    while True:
        state = node_state[node_idx]
        if state == EMPTY:
            node_state[node_idx] = LEAF
            node_value[node_idx] = p_idx
            return next_node_idx, True

        cx = node_boundaries[node_idx, 0]
        cy = node_boundaries[node_idx, 1]

        if state == LEAF:
            if next_node_idx + 4 > max_nodes:
                return next_node_idx, False

            existing_p_idx = node_value[node_idx]

            # Coincident points would land in the same quadrant forever.
            # Nudge the incoming point toward the node center.
            dx = positions[p_idx, 0] - positions[existing_p_idx, 0]
            dy = positions[p_idx, 1] - positions[existing_p_idx, 1]
            if dx * dx + dy * dy < COINCIDENT_EPSILON * COINCIDENT_EPSILON:
                if positions[p_idx, 0] < cx:
                    positions[p_idx, 0] += COINCIDENT_OFFSET
                else:
                    positions[p_idx, 0] -= COINCIDENT_OFFSET
                if positions[p_idx, 1] < cy:
                    positions[p_idx, 1] += COINCIDENT_OFFSET
                else:
                    positions[p_idx, 1] -= COINCIDENT_OFFSET

            next_node_idx = _subdivide_jit(node_idx, next_node_idx, node_boundaries, node_children)
            node_state[node_idx] = INTERNAL
            node_value[node_idx] = -1

            # The existing value moves into a fresh, empty child
            quadrant = _get_quadrant(positions[existing_p_idx, 0], positions[existing_p_idx, 1], cx, cy)
            child = node_children[node_idx, quadrant]
            node_state[child] = LEAF
            node_value[child] = existing_p_idx

        # Internal node: descend into the quadrant holding the new point
        quadrant = _get_quadrant(positions[p_idx, 0], positions[p_idx, 1], cx, cy)
        node_idx = node_children[node_idx, quadrant]

@numba.jit(nopython=True)
def _build_tree_jit(start, positions, next_node_idx, max_nodes, node_boundaries, node_children, node_state, node_value):
    """
    Inserts particles start..n-1. Returns (next_node_idx, stopped_at); stopped_at
    is n on success, or the index of the particle that needs more node capacity.
    """
    num_particles = positions.shape[0]
    for i in range(start, num_particles):
        next_node_idx, inserted = _insert_jit(
            i, positions, next_node_idx, max_nodes, node_boundaries, node_children, node_state, node_value
        )
        if not inserted:
            return next_node_idx, i
    return next_node_idx, num_particles

@numba.jit(nopython=True)
def _query_jit(x0, y0, x1, y1, num_nodes, node_boundaries, node_children, node_state, node_value, out):
    """
    Collects the values of every leaf whose rectangle intersects the query box.
    Internal nodes that intersect push all four children; each child is tested
    again when popped. Returns the number of values written to `out`.
    """
    count = 0
    if num_nodes == 0 or node_state[0] == EMPTY:
        return count
    stack = np.empty(num_nodes, dtype=np.int64)
    stack[0] = 0
    top = 1
    while top > 0:
        top -= 1
        node_idx = stack[top]
        state = node_state[node_idx]
        if state == EMPTY:
            continue
        cx = node_boundaries[node_idx, 0]
        cy = node_boundaries[node_idx, 1]
        hw = node_boundaries[node_idx, 2]
        hh = node_boundaries[node_idx, 3]
        if cx + hw < x0 or cx - hw > x1 or cy + hh < y0 or cy - hh > y1:
            continue
        if state == LEAF:
            out[count] = node_value[node_idx]
            count += 1
        else:
            # Pushed in reverse so NW is popped first
            for quadrant in range(3, -1, -1):
                stack[top] = node_children[node_idx, quadrant]
                top += 1
    return count

class QuadTree(SpatialIndex):
    """
    Region quadtree over a square root region [0, scale] x [0, scale].

    The tree lives in flat NumPy arrays (an arena of nodes addressed by index)
    so that insertion and queries run under Numba. Node i has
    node_boundaries[i] = (center_x, center_y, half_width, half_height),
    node_state[i] in {EMPTY, LEAF, INTERNAL}, node_children[i] = four child
    indices (NW, NE, SW, SE) and node_value[i] = entity index for leaves.
    Positions outside the root region are stored clamped onto its edge and
    query boxes are clamped the same way.
    """
    def __init__(self, entities, positions, scale):
        super().__init__(entities, positions)
        self.scale = scale
        self.boundary = Rect(0.0, 0.0, scale, scale)

        # Pre-allocate arrays for the tree. A capacity-1 tree without coincident
        # points needs at most 1 + 4 * (N - 1) nodes; _grow() covers the rest.
        self.max_nodes = 0
        self.node_boundaries = np.empty((0, 4), dtype=np.float64)
        self.node_children = np.empty((0, 4), dtype=np.int64)
        self.node_state = np.empty(0, dtype=np.int8)
        self.node_value = np.empty(0, dtype=np.int64)
        self.num_active_nodes = 0
        self._grow(len(entities) * 4 + 1)

    @classmethod
    def build(cls, entities, scale_hint):
        scale = effective_scale(scale_hint)
        # The tree keeps its own copy of positions: degenerate inserts nudge it.
        # Points outside the root region are clamped onto its edge, NaN to 0.
        positions = np.clip(np.nan_to_num(positions_of(entities), nan=0.0), 0.0, scale)
        tree = cls(entities, positions, scale)

        half = scale / 2
        tree.node_boundaries[0] = (half, half, half, half)
        tree.num_active_nodes = 1

        # --- Build Tree using JIT function, growing the arena as needed ---
        num_particles = len(tree.positions)
        start = 0
        while start < num_particles:
            tree.num_active_nodes, start = _build_tree_jit(
                start, tree.positions, tree.num_active_nodes, tree.max_nodes,
                tree.node_boundaries, tree.node_children, tree.node_state, tree.node_value
            )
            if start < num_particles:
                tree._grow(tree.max_nodes * 2)

        logger.debug(f"QuadTree built: {num_particles} values, {tree.num_active_nodes} nodes.")
        return tree

    def _grow(self, required_nodes):
        """Enlarges the node arrays, keeping the nodes already in use."""
        if required_nodes <= self.max_nodes:
            return
        used = self.num_active_nodes
        node_boundaries = np.zeros((required_nodes, 4), dtype=np.float64)
        node_children = np.full((required_nodes, 4), -1, dtype=np.int64)
        node_state = np.full(required_nodes, EMPTY, dtype=np.int8)
        node_value = np.full(required_nodes, -1, dtype=np.int64)
        node_boundaries[:used] = self.node_boundaries[:used]
        node_children[:used] = self.node_children[:used]
        node_state[:used] = self.node_state[:used]
        node_value[:used] = self.node_value[:used]
        self.node_boundaries = node_boundaries
        self.node_children = node_children
        self.node_state = node_state
        self.node_value = node_value
        self.max_nodes = required_nodes

    @property
    def node_count(self):
        return self.num_active_nodes

    def node_rect(self, node_idx) -> Rect:
        cx, cy, hw, hh = self.node_boundaries[node_idx]
        return Rect(cx - hw, cy - hh, cx + hw, cy + hh)

    def query_candidates(self, center, radius):
        out = np.empty(len(self.entities), dtype=np.int64)
        # Clamped like the stored positions, so an out-of-region point still
        # falls inside the clamped box of any query that contains it.
        x0, x1 = min(max(center.x - radius, 0.0), self.scale), min(max(center.x + radius, 0.0), self.scale)
        y0, y1 = min(max(center.y - radius, 0.0), self.scale), min(max(center.y + radius, 0.0), self.scale)
        count = _query_jit(
            x0, y0, x1, y1,
            self.num_active_nodes, self.node_boundaries, self.node_children,
            self.node_state, self.node_value, out
        )
        return out[:count]

    def leaves(self):
        """Depth-first (NW, NE, SW, SE) enumeration of occupied leaves as (Rect, entity)."""
        if not self.entities:
            return
        stack = [0]
        while stack:
            node_idx = stack.pop()
            state = self.node_state[node_idx]
            if state == LEAF:
                yield self.node_rect(node_idx), self.entities[self.node_value[node_idx]]
            elif state == INTERNAL:
                stack.extend(reversed(self.node_children[node_idx].tolist()))

    def depth(self):
        """Number of levels below the root that hold at least one node."""
        if self.num_active_nodes <= 1:
            return 0
        root_half = self.node_boundaries[0, 2]
        smallest = self.node_boundaries[:self.num_active_nodes, 2].min()
        return int(round(np.log2(root_half / smallest)))

    def bounding_rects(self):
        return [rect for rect, _ in self.leaves()]
