"""Tests for the Voronoi face mesh."""

import numpy as np
import pytest

from faces import voronoi_faces
from particles import ParticleSystem
from triangulation import TriangulationError, periodic_delaunay

DT = 1.0 / 60.0


@pytest.fixture
def cloud(rng):
    pts = rng.random((100, 3))
    return pts, voronoi_faces(pts, periodic_delaunay(pts))


def triangles(mesh):
    tri = mesh.positions.reshape(-1, 3, 3)
    return tri, mesh.owners[::3], mesh.normals[::3]


def test_mesh_layout(cloud):
    pts, mesh = cloud
    assert len(mesh.positions) % 3 == 0 and len(mesh.positions) > 0
    assert mesh.positions.shape == mesh.normals.shape
    assert len(mesh.owners) == len(mesh.positions)
    np.testing.assert_allclose(np.linalg.norm(mesh.normals, axis=1), 1.0)
    # every cell has faces
    assert set(np.unique(mesh.owners)) == set(range(len(pts)))


def test_triangles_lie_in_their_face_plane(cloud):
    pts, mesh = cloud
    tri, owners, normals = triangles(mesh)
    heights = np.einsum("tkj,tj->tk", tri - pts[owners][:, None, :], normals)
    np.testing.assert_allclose(heights, heights[:, :1].repeat(3, axis=1), atol=1e-9)
    assert np.all(heights > 0.0)


def test_triangles_wind_around_outward_normal(cloud):
    _, mesh = cloud
    tri, _, normals = triangles(mesh)
    area_vec = 0.5 * np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])
    assert np.all(np.einsum("ij,ij->i", area_vec, normals) >= -1e-12)


def test_cells_fill_the_unit_cube(cloud):
    pts, mesh = cloud
    tri, owners, normals = triangles(mesh)
    areas = 0.5 * np.linalg.norm(np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0]), axis=1)
    heights = np.einsum("ij,ij->i", tri[:, 0] - pts[owners], normals)
    cell_volumes = np.bincount(owners, weights=areas * heights / 3.0, minlength=len(pts))
    assert np.all(cell_volumes > 0.0)
    assert cell_volumes.sum() == pytest.approx(1.0, abs=1e-6)


def test_no_tetrahedra_no_faces():
    mesh = voronoi_faces(np.random.default_rng(0).random((5, 3)), np.zeros((0, 4), dtype=np.int64))
    assert mesh.positions.shape == (0, 3)


def test_system_face_buffers():
    ps = ParticleSystem(steering_strength=1.0, steering_every=1)
    ps.initialize(40, 0.001, seed=4)
    assert ps.face_vertex_count() == 0
    assert ps.face_position_buffer() is None

    ps.advance(DT)
    count = ps.update_faces()
    assert count > 0 and count % 3 == 0
    assert count == ps.face_vertex_count()
    for buf in (ps.face_position_buffer(), ps.face_normal_buffer(), ps.face_axis_buffer()):
        assert buf.dtype == np.float32 and buf.shape == (3 * count,)
        assert not buf.flags.writeable

    # each corner carries the steering axis of some particle
    axes = ps.axis_buffer().reshape(40, 3)
    corner_axes = ps.face_axis_buffer().reshape(count, 3)
    matches = np.all(corner_axes[:, None, :] == axes[None, :, :], axis=2)
    assert np.all(matches.any(axis=1))

    ps.initialize(40, 0.001, seed=4)
    assert ps.face_vertex_count() == 0


def test_system_faces_empty_on_triangulation_failure():
    def failing(points, period):
        raise TriangulationError("degenerate")

    ps = ParticleSystem(triangulate=failing)
    ps.initialize(10, 0.01, seed=0)
    assert ps.update_faces() == 0
    assert ps.face_axis_buffer() is None
