"""Tests for the periodic Delaunay service."""

import numpy as np
import pytest

from triangulation import (
    CENTRAL_IMAGE, IMAGE_OFFSETS, N_IMAGES,
    TriangulationError, canonical_tetrahedra, periodic_delaunay, replicate_points,
)


def tet_volumes(cloud, tets):
    a, b, c, d = (cloud[tets[:, k]] for k in range(4))
    return np.abs(np.einsum("ij,ij->i", b - a, np.cross(c - a, d - a))) / 6.0


def test_image_table():
    assert N_IMAGES == 27
    np.testing.assert_array_equal(IMAGE_OFFSETS[CENTRAL_IMAGE], [0.0, 0.0, 0.0])


def test_replicate_points_keeps_primary_cell(rng):
    pts = rng.random((5, 3))
    cloud = replicate_points(pts)
    assert cloud.shape == (135, 3)
    np.testing.assert_array_equal(cloud[CENTRAL_IMAGE * 5:(CENTRAL_IMAGE + 1) * 5], pts)
    np.testing.assert_allclose(cloud[0], pts[0] - 1.0)


def test_indices_reference_replicas(rng):
    n = 40
    tets = periodic_delaunay(rng.random((n, 3)))
    assert tets.ndim == 2 and tets.shape[1] == 4 and len(tets) > 0
    assert tets.min() >= 0 and tets.max() < N_IMAGES * n
    # every particle is a vertex of at least one tetrahedron
    assert set(np.unique(tets % n)) == set(range(n))


def test_tetrahedra_tile_the_unit_cube_once(rng):
    pts = rng.random((60, 3))
    tets = periodic_delaunay(pts)
    volumes = tet_volumes(replicate_points(pts), tets)
    assert volumes.sum() == pytest.approx(1.0, abs=1e-6)


def test_canonical_selection_uses_lead_vertex():
    n = 2
    c = CENTRAL_IMAGE
    kept = [c * n + 0, c * n + 1, (c + 1) * n + 0, (c - 1) * n + 1]
    dropped = [(c + 1) * n + 0, (c + 1) * n + 1, (c + 2) * n + 0, c * n + 1]
    out = canonical_tetrahedra(np.array([kept, dropped]), n)
    np.testing.assert_array_equal(out, [kept])


def test_canonical_selection_empty():
    assert canonical_tetrahedra(np.zeros((0, 4), dtype=np.int64), 3).shape == (0, 4)


@pytest.mark.parametrize("points", [
    np.zeros((0, 3)),
    np.zeros((4, 2)),
    np.array([[0.1, 0.2, np.nan], [0.5, 0.5, 0.5], [0.3, 0.1, 0.9], [0.7, 0.7, 0.2]]),
])
def test_malformed_input_raises(points):
    with pytest.raises(TriangulationError):
        periodic_delaunay(points)
