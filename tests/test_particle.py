import pytest

from particle import Particle
from vector2 import Vector2


def test_update_is_semi_implicit_euler():
    p = Particle(Vector2(0, 0), Vector2(1, 0))
    p.update(Vector2(0, 10), 0.1)
    assert p.velocity == Vector2(1, 1)
    # Position uses the already updated velocity
    assert p.position.x == pytest.approx(0.1)
    assert p.position.y == pytest.approx(0.1)


def test_reflection_clamps_and_flips_each_axis():
    p = Particle(Vector2(-1, 110), Vector2(-2, 3))
    p.check_boundary_collision(100, 100)
    assert p.position == Vector2(0, 100)
    assert p.velocity == Vector2(2, -3)


def test_reflection_right_and_top_walls():
    p = Particle(Vector2(101, -0.5), Vector2(4, -1))
    p.check_boundary_collision(100, 50)
    assert p.position == Vector2(100, 0)
    assert p.velocity == Vector2(-4, 1)


def test_inside_domain_untouched():
    p = Particle(Vector2(10, 10), Vector2(-2, 3))
    p.check_boundary_collision(100, 100)
    assert p.position == Vector2(10, 10)
    assert p.velocity == Vector2(-2, 3)


def test_copy_is_independent():
    p = Particle(Vector2(1, 2), Vector2(3, 4))
    q = p.copy()
    q.update(Vector2(1, 1), 1.0)
    assert p.position == Vector2(1, 2)
    assert p.velocity == Vector2(3, 4)
