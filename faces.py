"""
Voronoi face mesh export.

Every Delaunay edge (i, j) is dual to the Voronoi face shared by the cells of
i and j; the face's corners are the circumcenters of the tetrahedra around
that edge. Faces are emitted per owning cell, so each shared face appears
twice (once from each side), expressed in the owner's unwrapped frame:

1. Circumcenter samples per (tetrahedron, vertex) from incident_circumcenters
2. For every sample, one corner per other vertex of the same tetrahedron:
   face key (owner, neighbour)
3. Corners of a face sorted by angle around the face normal
   (minimum-image direction owner → neighbour)
4. Fan triangulation from the corner mean; winding is counter-clockwise
   about the outward normal

Faces with fewer than three corners are dropped. A pair of particles that
neighbour through two different periodic images (very sparse sets only)
is merged into one face, so the mesh is a best effort like the triangulation
it comes from.
"""

from typing import NamedTuple

import numpy as np

from periodic import minimum_image
from steering import incident_circumcenters

# Sample k of a tetrahedron pairs with each of the other three vertices
_OTHER_VERTICES = [(k, l) for k in range(4) for l in range(4) if k != l]


class FaceMesh(NamedTuple):
    positions: np.ndarray   # (3M, 3) triangle corners, owner frame
    normals: np.ndarray     # (3M, 3) unit face normal per corner
    owners: np.ndarray      # (3M,) owning particle per corner


def _empty_mesh():
    return FaceMesh(np.zeros((0, 3)), np.zeros((0, 3)), np.zeros(0, dtype=np.int64))


def _plane_basis(normals):
    """Two unit vectors spanning the plane orthogonal to each normal."""
    helper = np.zeros_like(normals)
    use_y = np.abs(normals[:, 0]) > 0.9
    helper[~use_y, 0] = 1.0
    helper[use_y, 1] = 1.0
    u = np.cross(normals, helper)
    u /= np.linalg.norm(u, axis=1)[:, None]
    v = np.cross(normals, u)
    return u, v


def voronoi_faces(positions, tetrahedra):
    """
    Triangulated Voronoi faces of every cell.

    Args:
        positions: (N, 3) positions in [0, 1)³
        tetrahedra: (T, 4) vertex references (reduced modulo N)

    Returns:
        FaceMesh with three corners per triangle; empty when there are no
        tetrahedra
    """
    positions = np.asarray(positions, dtype=np.float64)
    n = len(positions)
    tets = np.asarray(tetrahedra, dtype=np.int64).reshape(-1, 4)
    if n == 0 or len(tets) == 0:
        return _empty_mesh()
    tets = tets % n
    t = len(tets)

    _, samples = incident_circumcenters(positions, tets)    # block k holds vertex k's samples
    k_idx = np.array([k for k, _ in _OTHER_VERTICES])
    l_idx = np.array([l for _, l in _OTHER_VERTICES])
    owner = tets[:, k_idx].T.reshape(-1)                    # (12T,)
    neighbour = tets[:, l_idx].T.reshape(-1)
    corner = samples.reshape(4, t, 3)[k_idx].reshape(-1, 3)

    keep = owner != neighbour
    owner, neighbour, corner = owner[keep], neighbour[keep], corner[keep]
    if len(owner) == 0:
        return _empty_mesh()

    keys, group, counts = np.unique(owner * n + neighbour, return_inverse=True, return_counts=True)
    group = group.reshape(-1)
    face_owner = keys // n
    face_neighbour = keys % n

    centers = np.zeros((len(keys), 3))
    np.add.at(centers, group, corner)
    centers /= counts[:, None]

    normals = minimum_image(positions[face_neighbour] - positions[face_owner])
    lengths = np.linalg.norm(normals, axis=1)
    valid = (counts >= 3) & (lengths > 0.0)
    normals[valid] /= lengths[valid, None]
    normals[~valid] = (0.0, 0.0, 1.0)

    u, v = _plane_basis(normals)
    rel = corner - centers[group]
    angle = np.arctan2(np.einsum("ij,ij->i", rel, v[group]), np.einsum("ij,ij->i", rel, u[group]))

    order = np.lexsort((angle, group))
    group, corner = group[order], corner[order]
    starts = np.concatenate(([0], np.cumsum(counts)[:-1]))
    local = np.arange(len(group)) - starts[group]
    following = starts[group] + (local + 1) % counts[group]

    emit = valid[group]
    g = group[emit]
    tris = np.stack([centers[g], corner[emit], corner[following[emit]]], axis=1)   # (M, 3, 3)
    return FaceMesh(
        positions=tris.reshape(-1, 3),
        normals=np.repeat(normals[g], 3, axis=0),
        owners=np.repeat(face_owner[g], 3),
    )
