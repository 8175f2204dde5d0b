"""
Periodic geometry utilities for the unit cube [0, 1)³.

Two flavours of the same math:
- ti.func versions (wrap01, pdelta) used inside Taichi kernels on float32 state
- numpy versions (wrap, minimum_image, circumcenter(s)) used by the host-side
  steering pipeline in float64

Nearest-integer rule: round half up, d - floor(d + 0.5). A displacement of
exactly half a period maps to -0.5, so minimum_image lands in [-0.5, 0.5).
"""

import logging

import numpy as np
import taichi as ti

from config import DEGENERATE_TOL

log = logging.getLogger(__name__)

# ==============================================================================
# Taichi helpers (kernel side)
# ==============================================================================

@ti.func
def wrap01(p: ti.math.vec3) -> ti.math.vec3:
    """
    Wrap a position into the primary cell [0, 1)³.

    p - floor(p) can round up to exactly 1.0 in float32 for tiny negative
    inputs; those components are folded back to 0.0.
    """
    r = p - ti.floor(p)
    for d in ti.static(range(3)):
        if r[d] >= 1.0:
            r[d] -= 1.0
    return r


@ti.func
def pdelta(a: ti.math.vec3, b: ti.math.vec3) -> ti.math.vec3:
    """
    Minimum-image displacement from a to b.

    This is the ONLY way kernels compute particle-particle vectors.
    """
    d = b - a
    return d - ti.floor(d + 0.5)


# ==============================================================================
# numpy helpers (host side)
# ==============================================================================

def wrap(v, dtype=np.float64):
    """
    Map any real (or array of reals) into [0, 1) as v - floor(v).

    The subtraction runs in `dtype`; results that round up to 1.0 in that
    precision are folded back to 0.0.
    """
    v = np.asarray(v, dtype=dtype)
    r = v - np.floor(v)
    r = np.where(r >= 1.0, 0.0, r).astype(dtype, copy=False)
    return r if r.ndim else float(r)


def minimum_image(d):
    """Reduce displacement component(s) to the representative in [-0.5, 0.5)."""
    d = np.asarray(d, dtype=np.float64)
    r = d - np.floor(d + 0.5)
    return r if r.ndim else float(r)


def circumcenters(a, b, c, d, tol=DEGENERATE_TOL):
    """
    Circumcenters of a batch of tetrahedra.

    Solves [b-a; c-a; d-a] x = 0.5 [|b-a|²; |c-a|²; |d-a|²] per tetrahedron and
    returns a + x. Tetrahedra whose matrix is (near-)singular, or whose solve
    is not finite, get the vertex centroid instead.

    Args:
        a, b, c, d: (T, 3) vertex arrays (float64 recommended)
        tol: Relative determinant threshold for the degeneracy test

    Returns:
        (T, 3) array of centers, always finite for finite input
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    c = np.asarray(c, dtype=np.float64)
    d = np.asarray(d, dtype=np.float64)

    m = np.stack([b - a, c - a, d - a], axis=-2)        # (T, 3, 3)
    rhs = 0.5 * np.einsum("tij,tij->ti", m, m)          # (T, 3)

    centers = 0.25 * (a + b + c + d)
    if len(m) == 0:
        return centers

    det = np.linalg.det(m)
    scale = np.prod(np.linalg.norm(m, axis=-1), axis=-1)
    solvable = np.abs(det) > tol * scale                # False for NaN and zero scale

    if np.any(solvable):
        x = np.linalg.solve(m[solvable], rhs[solvable][..., None])[..., 0]
        solved = a[solvable] + x
        finite = np.all(np.isfinite(solved), axis=-1)
        idx = np.flatnonzero(solvable)
        centers[idx[finite]] = solved[finite]

    n_fallback = len(m) - int(np.count_nonzero(solvable))
    if n_fallback:
        log.debug("[Circumcenter] %d/%d degenerate tetrahedra → centroid", n_fallback, len(m))
    return centers


def circumcenter(a, b, c, d, tol=DEGENERATE_TOL):
    """Circumcenter of a single tetrahedron (centroid if degenerate)."""
    pts = [np.asarray(p, dtype=np.float64).reshape(1, 3) for p in (a, b, c, d)]
    return circumcenters(*pts, tol=tol)[0]
