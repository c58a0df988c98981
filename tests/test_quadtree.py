import numpy as np
import pytest

from particle import Particle
from quadtree import EMPTY, INTERNAL, LEAF, QuadTree
from spatial_index import Rect
from vector2 import Vector2

from conftest import make_particles


def test_whole_domain_query_visits_every_particle():
    particles = make_particles(500, seed=2)
    tree = QuadTree.build(particles, 100.0)
    for center in [Vector2(50, 50), Vector2(1, 99), Vector2(73.2, 12.5)]:
        visited = []
        tree.query_distance(center, 200.0, visited.append)
        assert len(visited) == len(particles)
        assert {id(p) for p in visited} == {id(p) for p in particles}


def test_small_example():
    points = [(0.5, 0.5), (0.25, 0.25), (0.75, 0.75), (0.125, 0.125)]
    tree = QuadTree.build([Particle(Vector2(x, y)) for x, y in points], 1.0)
    assert len(tree.query_candidates(Vector2(0.5, 0.5), 1.0)) == 4


def test_single_value_is_a_leaf_at_the_root():
    tree = QuadTree.build([Particle(Vector2(3, 4))], 10.0)
    assert tree.node_count == 1
    assert tree.node_state[0] == LEAF
    assert tree.depth() == 0


def test_second_value_splits_root_into_quadrants():
    tree = QuadTree.build([Particle(Vector2(2, 2)), Particle(Vector2(8, 8))], 10.0)
    assert tree.node_state[0] == INTERNAL
    assert tree.node_count == 5
    children = tree.node_children[0].tolist()
    # NW holds the first value, SE the second, NE and SW are empty
    assert tree.node_value[children[0]] == 0
    assert tree.node_value[children[3]] == 1
    assert tree.node_state[children[1]] == EMPTY
    assert tree.node_state[children[2]] == EMPTY
    assert tree.node_rect(children[0]) == Rect(0, 0, 5, 5)
    assert tree.node_rect(children[3]) == Rect(5, 5, 10, 10)


def test_ties_go_to_the_greater_quadrant():
    tree = QuadTree.build([Particle(Vector2(1, 1)), Particle(Vector2(5, 5))], 10.0)
    se = tree.node_children[0, 3]
    assert tree.node_value[se] == 1


def test_coincident_points_terminate():
    particles = [Particle(Vector2(10, 10)) for _ in range(5)]
    tree = QuadTree.build(particles, 100.0)
    visited = []
    tree.query_distance(Vector2(10, 10), 1.0, visited.append)
    assert len(visited) == 5
    # The caller's particles are never moved
    assert all(p.position == Vector2(10, 10) for p in particles)


def test_arena_grows_past_initial_capacity():
    # Nearly coincident pairs force long split chains
    particles = []
    for i in range(10):
        base = Vector2(5 + i * 9, 5 + i * 9)
        particles.append(Particle(base))
        particles.append(Particle(base + Vector2(1e-3, 0)))
    tree = QuadTree.build(particles, 100.0)
    assert tree.node_count > len(particles) * 4 + 1
    assert len(tree.query_candidates(Vector2(50, 50), 100.0)) == len(particles)


def test_growth_keeps_values_split_before_running_out():
    points = [(10, 10), (10.001, 10), (60, 60), (60.001, 60)]
    tree = QuadTree.build([Particle(Vector2(x, y)) for x, y in points], 100.0)
    assert sorted(tree.query_candidates(Vector2(50, 50), 200.0).tolist()) == [0, 1, 2, 3]
    assert len(list(tree.leaves())) == 4
    assert tree.node_count > 1


def test_clustered_data_is_complete_after_growth():
    rng = np.random.default_rng(11)
    clusters = [Vector2(20, 30), Vector2(70, 70), Vector2(21, 30)]
    particles = [
        Particle(c + Vector2(*(rng.random(2) * 1e-3)))
        for c in clusters for _ in range(8)
    ]
    tree = QuadTree.build(particles, 100.0)
    assert tree.node_count > len(particles) * 4 + 1
    assert sorted(tree.query_candidates(Vector2(50, 50), 100.0).tolist()) == list(range(len(particles)))
    for i, p in enumerate(particles):
        assert i in tree.query_candidates(p.position, 0.05).tolist()


def test_points_outside_the_root_region_are_clamped():
    particles = [Particle(Vector2(-1, 50)), Particle(Vector2(-2, 50)), Particle(Vector2(150, 20))]
    tree = QuadTree.build(particles, 100.0)
    assert tree.positions[:, 0].min() >= 0.0 and tree.positions[:, 0].max() <= 100.0
    assert sorted(tree.query_candidates(Vector2(50, 50), 200.0).tolist()) == [0, 1, 2]
    # Queries around the true, out-of-region positions still find them
    assert 0 in tree.query_candidates(Vector2(-1, 50), 0.5).tolist()
    assert 2 in tree.query_candidates(Vector2(150, 20), 1.0).tolist()


def test_query_prunes_far_regions():
    particles = make_particles(400, seed=4)
    tree = QuadTree.build(particles, 100.0)
    found = tree.query_candidates(Vector2(10, 10), 2.0)
    assert 0 < len(found) < len(particles)


def test_leaves_enumerate_every_value_once():
    particles = make_particles(100, seed=6)
    tree = QuadTree.build(particles, 100.0)
    leaves = list(tree.leaves())
    assert len(leaves) == len(particles)
    for rect, particle in leaves:
        assert rect.contains(*particle.position)
    assert tree.bounding_rects() == [rect for rect, _ in leaves]


def test_empty_tree():
    tree = QuadTree.build([], 100.0)
    assert list(tree.leaves()) == []
    assert tree.bounding_rects() == []
    assert len(tree.query_candidates(Vector2(0, 0), 1000.0)) == 0


@pytest.mark.parametrize("scale_hint", [0.0, -5.0])
def test_degenerate_scale_hint_falls_back_to_unit_square(scale_hint):
    tree = QuadTree.build([Particle(Vector2(0.2, 0.2)), Particle(Vector2(0.8, 0.8))], scale_hint)
    assert tree.boundary == Rect(0, 0, 1, 1)
    assert len(tree.query_candidates(Vector2(0.5, 0.5), 1.0)) == 2


def test_depth_grows_with_clustering():
    spread = QuadTree.build([Particle(Vector2(10, 10)), Particle(Vector2(90, 90))], 100.0)
    close = QuadTree.build([Particle(Vector2(10, 10)), Particle(Vector2(10.01, 10.01))], 100.0)
    assert spread.depth() == 1
    assert close.depth() > spread.depth()
    assert np.all(close.node_boundaries[:close.node_count, 2] > 0)
