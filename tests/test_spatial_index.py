"""Properties every index strategy shares."""
import numpy as np
import pytest

from particle import Particle
from quadtree import QuadTree
from rect_tree import RectTree
from spatial_index import Rect
from vector2 import Vector2
from zorder_index import ZOrderIndex

from conftest import make_particles

INDEXES = [QuadTree, ZOrderIndex, RectTree]


def brute_force_within(particles, center, radius):
    return {i for i, p in enumerate(particles) if p.position.distance_to(center) <= radius}


@pytest.mark.parametrize("index_type", INDEXES)
def test_empty_index(index_type):
    index = index_type.build([], 100.0)
    assert len(index) == 0
    visited = []
    index.query_distance(Vector2(50, 50), 10.0, visited.append)
    assert visited == []
    offsets, candidates = index.query_many(np.array([[1.0, 1.0], [2.0, 2.0]]), 5.0)
    assert offsets.tolist() == [0, 0, 0]
    assert len(candidates) == 0


@pytest.mark.parametrize("index_type", INDEXES)
def test_query_is_superset_of_radius_set(index_type, scattered):
    index = index_type.build(scattered, 100.0)
    rng = np.random.default_rng(5)
    for _ in range(50):
        center = Vector2(*(rng.random(2) * 100.0))
        radius = rng.random() * 20.0
        found = set(index.query_candidates(center, radius).tolist())
        assert brute_force_within(scattered, center, radius) <= found


@pytest.mark.parametrize("index_type", INDEXES)
def test_visitor_sees_entities(index_type, scattered):
    index = index_type.build(scattered, 100.0)
    center = scattered[0].position
    visited = []
    index.query_distance(center, 8.0, visited.append)
    assert all(isinstance(p, Particle) for p in visited)
    assert scattered[0] in visited
    assert len(visited) == len({id(p) for p in visited})


@pytest.mark.parametrize("index_type", INDEXES)
def test_zero_radius_finds_coincident_point(index_type, scattered):
    index = index_type.build(scattered, 100.0)
    found = index.query_candidates(scattered[7].position, 0.0)
    assert 7 in found.tolist()


@pytest.mark.parametrize("index_type", INDEXES)
def test_query_many_matches_single_queries(index_type, scattered):
    index = index_type.build(scattered, 100.0)
    centers = np.array([[10.0, 10.0], [50.0, 50.0], [99.0, 1.0]])
    offsets, candidates = index.query_many(centers, 6.0)
    for i, (x, y) in enumerate(centers):
        single = index.query_candidates(Vector2(x, y), 6.0)
        assert sorted(candidates[offsets[i]:offsets[i + 1]].tolist()) == sorted(single.tolist())


@pytest.mark.parametrize("index_type", INDEXES)
def test_index_is_a_snapshot(index_type):
    particles = make_particles(20, seed=3)
    index = index_type.build(particles, 100.0)
    before = index.positions.copy()
    particles[0].position = Vector2(-500, -500)
    assert np.array_equal(index.positions, before)


def test_rect_helpers():
    r = Rect.around(Vector2(5, 5), 2)
    assert r == Rect(3, 3, 7, 7)
    assert r.width == 4 and r.height == 4
    assert r.contains(3, 7)
    assert not r.contains(2.9, 5)
    assert r.intersects(Rect(7, 7, 9, 9))
    assert not r.intersects(Rect(7.1, 0, 9, 9))
