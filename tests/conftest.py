import numpy as np
import pytest

from particle import Particle
from vector2 import Vector2


def make_particles(count, seed=0, size=100.0):
    rng = np.random.default_rng(seed)
    points = rng.random((count, 2)) * size
    return [Particle(Vector2(x, y)) for x, y in points]


@pytest.fixture
def scattered():
    return make_particles(300, seed=1)
