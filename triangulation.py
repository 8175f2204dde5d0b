"""
Periodic Delaunay tetrahedralization of points in a periodic cube.

scipy's Delaunay (Qhull) has no notion of periodicity, so the point set is
replicated into the 3×3×3 block of periodic images around the primary cell
and triangulated as one Euclidean cloud. Every periodic tetrahedron then
appears once per translate; exactly one translate is kept.

Replica numbering:
  replica index = image * N + base index,  image ∈ [0, 27)
  image 13 is the primary cell (offset (0, 0, 0))
Returned indices are replica indices. Reduce them modulo N to get particles.

Canonicalization:
  The "lead" vertex of a tetrahedron is the one with the smallest
  (base index, image) key. Translating a tetrahedron shifts every vertex's
  image by the same offset, so the lead is the same physical vertex in every
  translate; the tetrahedron is kept iff its lead sits in the primary cell.

Tetrahedra whose circumsphere reaches past the replicated block (only possible
for very sparse point sets) may be missing or spurious. Callers treat the
result as a best effort, not an exact periodic triangulation.
"""

import itertools
import logging

import numpy as np
from scipy.spatial import Delaunay, QhullError

from config import DOMAIN_PERIOD

log = logging.getLogger(__name__)

IMAGE_OFFSETS = np.array(list(itertools.product((-1, 0, 1), repeat=3)), dtype=np.float64)
N_IMAGES = len(IMAGE_OFFSETS)   # 27
CENTRAL_IMAGE = 13              # IMAGE_OFFSETS[13] == (0, 0, 0)


class TriangulationError(RuntimeError):
    """The point set could not be tetrahedralized (degenerate or malformed input)."""


def replicate_points(points, period=DOMAIN_PERIOD):
    """
    Tile (N, 3) points into the 27 periodic images around the primary cell.

    Returns:
        (27 * N, 3) array; row image * N + i is point i shifted by IMAGE_OFFSETS[image]
    """
    points = np.asarray(points, dtype=np.float64)
    shifted = points[None, :, :] + period * IMAGE_OFFSETS[:, None, :]
    return shifted.reshape(-1, 3)


def canonical_tetrahedra(simplices, n):
    """
    Keep one representative per periodic equivalence class.

    Args:
        simplices: (T, 4) replica indices
        n: Number of base points

    Returns:
        (T', 4) subset of simplices whose lead vertex is in the primary cell
    """
    simplices = np.asarray(simplices, dtype=np.int64)
    if len(simplices) == 0:
        return simplices.reshape(0, 4)
    image = simplices // n
    base = simplices % n
    key = base * N_IMAGES + image
    lead = np.argmin(key, axis=1)
    keep = image[np.arange(len(simplices)), lead] == CENTRAL_IMAGE
    return simplices[keep]


def periodic_delaunay(points, period=DOMAIN_PERIOD):
    """
    Tetrahedralize points in the periodic cube [0, period)³.

    Args:
        points: (N, 3) coordinates
        period: Side of the periodic cube

    Returns:
        (T, 4) int64 array of replica indices (see module docstring);
        reduce modulo N to get particle indices. May be empty.

    Raises:
        TriangulationError: malformed/non-finite input, or Qhull failure
    """
    points = np.asarray(points, dtype=np.float64)
    if points.ndim != 2 or points.shape[1] != 3:
        raise TriangulationError(f"Expected (N, 3) points, got shape {points.shape}")
    n = len(points)
    if n == 0:
        raise TriangulationError("Cannot triangulate an empty point set")
    if not np.all(np.isfinite(points)):
        raise TriangulationError("Point set contains non-finite coordinates")

    cloud = replicate_points(points, period)
    try:
        simplices = Delaunay(cloud).simplices
    except (QhullError, ValueError) as exc:
        raise TriangulationError(f"Qhull failed on {n} points: {exc}") from exc

    tets = canonical_tetrahedra(simplices, n)
    log.debug("[Delaunay] N=%d → %d replica simplices, %d periodic tetrahedra",
              n, len(simplices), len(tets))
    return tets
