# world.py

import logging
from collections import namedtuple
from typing import Callable, Optional

import numba
import numpy as np

from particle import Particle
from quadtree import QuadTree
from rect_tree import RectTree
from spatial_index import positions_of
from vector2 import Vector2
from zorder_index import ZOrderIndex

logger = logging.getLogger("particle_sim")

# Selectable spatial index implementations, keyed by config name.
INDEX_TYPES = {
    'quadtree': QuadTree,
    'zorder': ZOrderIndex,
    'recttree': RectTree,
}

# Distances at or below this are treated as coincident (no defined direction).
MIN_DISTANCE = 1e-9

PointerState = namedtuple('PointerState', ['position', 'active'])

# --- JIT-Compiled Physics Functions ---
# Kept outside the World class and operating only on NumPy arrays and scalars,
# as required by Numba's nopython mode.

@numba.jit(nopython=True)
def smoothing_kernel(distance, radius):
    """
    Weight of a neighbor at `distance`: (1 - d/R)^2 inside the support radius.
    Maximal (1.0) at d = 0, falling to 0.0 at d = R and beyond.
    """
    if distance >= radius or radius <= 0.0:
        return 0.0
    v = 1.0 - distance / radius
    return v * v

def _accumulate_accelerations(positions, offsets, candidates, radius, strength,
                              gravity_x, gravity_y, pointer_active, pointer_x, pointer_y,
                              pointer_strength, pointer_radius, pointer_min_distance,
                              accelerations):
    """
    Per-particle force map. Reads only the frozen `positions` snapshot and the
    neighbor candidates; each iteration writes its own row of `accelerations`.
    Candidates are re-filtered by true distance since the index only guarantees
    a bounding-box test.
    """
    num_particles = positions.shape[0]
    for i in numba.prange(num_particles):
        xi = positions[i, 0]
        yi = positions[i, 1]
        ax = 0.0
        ay = 0.0

        # Short-range repulsion from neighbors
        for k in range(offsets[i], offsets[i + 1]):
            j = candidates[k]
            if j == i:
                continue
            dx = xi - positions[j, 0]
            dy = yi - positions[j, 1]
            distance = np.sqrt(dx * dx + dy * dy)
            if distance <= MIN_DISTANCE or distance > radius:
                continue
            magnitude = strength * smoothing_kernel(distance, radius)
            ax += magnitude * dx / distance
            ay += magnitude * dy / distance

        ax += gravity_x
        ay += gravity_y

        # Pointer attraction (strength > 0) or repulsion (strength < 0)
        if pointer_active:
            dx = pointer_x - xi
            dy = pointer_y - yi
            distance = np.sqrt(dx * dx + dy * dy)
            if distance > MIN_DISTANCE and distance < pointer_radius:
                magnitude = pointer_strength / max(distance, pointer_min_distance)
                ax += magnitude * dx / distance
                ay += magnitude * dy / distance

        accelerations[i, 0] = ax
        accelerations[i, 1] = ay

_accumulate_accelerations_serial = numba.jit(nopython=True)(_accumulate_accelerations)
_accumulate_accelerations_parallel = numba.jit(nopython=True, parallel=True)(_accumulate_accelerations)


class World:
    """
    Owns the particles, the domain box and the active spatial index, and
    advances the simulation.

    Data Contract:
    - Inputs:
        - dimensions (Vector2): Domain extents; the domain is [0, x] x [0, y].
        - gravity (Vector2): Constant acceleration applied to every particle.
        - config (dict): The 'simulation' section of the config file. Missing
          keys fall back to defaults.
    - Outputs: None. This class modifies its internal state.
    - Invariants: Particles are never removed. The index is rebuilt from the
      current particles at the start of every tick and is never queried
      against a different snapshot: the write-back marks it stale and the
      next read of `index` rebuilds it.
    """
    def __init__(self, dimensions: Vector2, gravity: Vector2, config: Optional[dict] = None):
        config = config or {}
        self.dimensions = Vector2(*dimensions)
        self.gravity = Vector2(*gravity)
        self.config = config
        self.step = config.get('step', 0.05)  # dt in seconds
        self.interaction_radius = config.get('interaction_radius', 5.0)
        self.interaction_strength = config.get('interaction_strength', 2000.0)
        self.pointer_strength = config.get('pointer_strength', 5000.0)
        self.pointer_radius = config.get('pointer_radius', 50.0)
        self.pointer_min_distance = config.get('pointer_min_distance', 1.0)
        self.initial_speed = config.get('initial_speed', 50.0)
        self.parallel_forces = config.get('parallel_forces', False)

        self._particles = []
        self.pointer = None
        self.index_name = None
        self.index_type = None
        self._index = None
        self._index_stale = False
        self.use_index(config.get('spatial_index', 'recttree'))

        logger.info(
            f"World created: dimensions={tuple(self.dimensions)}, gravity={tuple(self.gravity)}, "
            f"dt={self.step}, index={self.index_name}, parallel_forces={self.parallel_forces}."
        )

    @property
    def particles(self):
        """Read-only view for the renderer."""
        return tuple(self._particles)

    @property
    def scale_hint(self):
        return max(self.dimensions.x, self.dimensions.y)

    def use_index(self, name: str):
        """Selects the spatial index implementation and rebuilds it."""
        if name not in INDEX_TYPES:
            raise ValueError(
                f"Unknown spatial index '{name}'. Expected one of: {', '.join(sorted(INDEX_TYPES))}."
            )
        self.index_name = name
        self.index_type = INDEX_TYPES[name]
        self.rebuild_index()
        logger.debug(f"Spatial index set to {name}.")

    @property
    def index(self):
        """The active index, rebuilt first if particles moved since it was built."""
        if self._index_stale:
            self.rebuild_index()
        return self._index

    def rebuild_index(self):
        self._index = self.index_type.build(self._particles, self.scale_hint)
        self._index_stale = False

    def add_particle(self, particle: Particle):
        self._particles.append(particle)
        self.rebuild_index()

    def add_random_particles(self, n: int, rng: Callable[[], float]):
        """
        Adds n particles uniformly placed in the domain with velocities uniform
        in [-initial_speed, initial_speed) per axis. `rng` returns floats in [0, 1).
        """
        width, height = self.dimensions
        speed = self.initial_speed
        for _ in range(n):
            x = rng() * width
            y = rng() * height
            vx = rng() * 2 * speed - speed
            vy = rng() * 2 * speed - speed
            self._particles.append(Particle(Vector2(x, y), Vector2(vx, vy)))
        self.rebuild_index()
        logger.info(f"Added {n} random particles. Total: {len(self._particles)}.")

    def set_pointer(self, position: Optional[Vector2], active: bool):
        """Updates the interactive force. A None position disables it."""
        if position is None:
            self.pointer = None
        else:
            self.pointer = PointerState(Vector2(*position), bool(active))

    def query_neighbors(self, center: Vector2, radius: float):
        """Particles within true Euclidean distance `radius` of `center`."""
        found = []

        def visit(particle):
            if particle.position.distance_to(center) <= radius:
                found.append(particle)

        self.index.query_distance(center, radius, visit)
        return found

    def evolve(self, steps: int = 1):
        """Advances the simulation by `steps` ticks."""
        for _ in range(steps):
            self._tick()

    def _compute_accelerations(self, positions):
        """Force phase: batched neighbor queries, then the per-particle map."""
        offsets, candidates = self.index.query_many(positions, self.interaction_radius)

        pointer = self.pointer
        pointer_active = pointer is not None and pointer.active
        pointer_x, pointer_y = pointer.position if pointer is not None else (0.0, 0.0)

        accelerations = np.zeros_like(positions)
        accumulate = (_accumulate_accelerations_parallel if self.parallel_forces
                      else _accumulate_accelerations_serial)
        accumulate(
            positions, offsets, candidates,
            float(self.interaction_radius), float(self.interaction_strength),
            self.gravity.x, self.gravity.y,
            pointer_active, float(pointer_x), float(pointer_y),
            float(self.pointer_strength), float(self.pointer_radius), float(self.pointer_min_distance),
            accelerations
        )
        return accelerations

    def _tick(self):
        """
        One simulation step:
        1. Rebuild the index from the current particles (barrier).
        2. Compute every acceleration from the frozen snapshot into a fresh buffer.
        3. Integrate (semi-implicit Euler) and reflect at the walls (barrier).
        """
        if not self._particles:
            return

        # --- 1. Rebuild Spatial Index BEFORE Force Calculations ---
        self.rebuild_index()
        positions = positions_of(self._particles)

        # --- 2. Force map over the frozen snapshot ---
        accelerations = self._compute_accelerations(positions)

        # --- 3. Write back ---
        width, height = self.dimensions
        dt = self.step
        for particle, (ax, ay) in zip(self._particles, accelerations.tolist()):
            particle.update(Vector2(ax, ay), dt)
            particle.check_boundary_collision(width, height)
        self._index_stale = True

    def get_total_kinetic_energy(self):
        """KE = sum(0.5 * v^2) with unit masses."""
        return sum(0.5 * p.velocity.length_sq() for p in self._particles)

    def get_mean_speed(self):
        if not self._particles:
            return 0.0
        return sum(p.speed for p in self._particles) / len(self._particles)
