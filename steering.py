"""
Voronoi-cell PCA steering.

Each particle's Voronoi cell is spanned by the circumcenters of its incident
Delaunay tetrahedra (the cell's vertices). The dominant principal axis of
those vertices is the cell's long axis; particles are nudged along it.

Pipeline (host side, float64):
1. Periodic tetrahedralization of the current positions (triangulation.py)
2. For every tetrahedron and each of its four vertices v: unwrap the other
   three vertices around v with the minimum image, take the circumcenter,
   append it to v's samples
3. Per particle with >= PCA_MIN_SAMPLES samples: mean, covariance
   (divisor max(count - 1, 1)), eigendecomposition, largest-eigenvalue vector
4. Orient the axis along the current velocity (dot >= 0); zero velocity →
   largest-magnitude component positive
5. vel += strength * axis * dt

Samples live in a flat arena (owners[k] is the particle that sample k
belongs to) rebuilt on every call. Nothing is carried across frames.
A triangulation failure or an empty triangulation aborts the whole step with
velocities untouched.
"""

import logging
from typing import NamedTuple, Optional

import numpy as np

from config import DOMAIN_PERIOD, PCA_MIN_SAMPLES
from periodic import circumcenters, minimum_image
from triangulation import TriangulationError, periodic_delaunay

log = logging.getLogger(__name__)


class SteeringResult(NamedTuple):
    velocities: np.ndarray  # (N, 3) steered velocities (float64)
    axes: np.ndarray        # (N, 3) oriented dominant axes, zero where not steered
    steered: np.ndarray     # (N,) bool mask
    n_tetrahedra: int


def incident_circumcenters(positions, tetrahedra):
    """
    Circumcenter samples for every (tetrahedron, incident particle) pair.

    Args:
        positions: (N, 3) positions in [0, 1)³
        tetrahedra: (T, 4) vertex references; reduced modulo N here

    Returns:
        owners: (4T,) particle index of each sample
        samples: (4T, 3) circumcenters, each expressed in the unwrapped frame
                 around its owner's position
    """
    positions = np.asarray(positions, dtype=np.float64)
    n = len(positions)
    tets = np.asarray(tetrahedra, dtype=np.int64) % n
    corners = positions[tets]                               # (T, 4, 3)

    owners = []
    samples = []
    for k in range(4):
        ref = corners[:, k, None, :]                        # (T, 1, 3)
        local = ref + minimum_image(corners - ref)          # tetrahedron unwrapped around vertex k
        samples.append(circumcenters(local[:, 0], local[:, 1], local[:, 2], local[:, 3]))
        owners.append(tets[:, k])
    return np.concatenate(owners), np.concatenate(samples)


def sample_covariances(owners, samples, n):
    """
    Per-particle sample counts, means and covariance matrices.

    Covariance uses the two-pass form with divisor max(count - 1, 1).
    Particles without samples get zero mean and zero covariance.
    """
    counts = np.bincount(owners, minlength=n)
    sums = np.zeros((n, 3))
    np.add.at(sums, owners, samples)
    means = sums / np.maximum(counts, 1)[:, None]

    centered = samples - means[owners]
    cov = np.zeros((n, 3, 3))
    np.add.at(cov, owners, centered[:, :, None] * centered[:, None, :])
    cov /= np.maximum(counts - 1, 1)[:, None, None]
    return counts, means, cov


def principal_axes(owners, samples, n, min_samples=PCA_MIN_SAMPLES):
    """
    Dominant principal axis per particle.

    Returns:
        axes: (N, 3) unit eigenvector of the largest eigenvalue (unoriented),
              zero where no axis was found
        ok: (N,) bool, True where an axis was found

    Particles below min_samples, with non-finite covariance, or whose
    eigendecomposition fails are left out.
    """
    counts, _, cov = sample_covariances(owners, samples, n)
    axes = np.zeros((n, 3))
    ok = np.zeros(n, dtype=bool)

    eligible = (counts >= min_samples) & np.all(np.isfinite(cov), axis=(1, 2))
    idx = np.flatnonzero(eligible)
    if len(idx) == 0:
        return axes, ok

    try:
        _, vecs = np.linalg.eigh(cov[idx])
        axes[idx] = vecs[:, :, -1]      # eigh sorts eigenvalues ascending
        ok[idx] = True
    except np.linalg.LinAlgError:
        # One bad matrix fails the whole batch; retry one by one
        for i in idx:
            try:
                _, v = np.linalg.eigh(cov[i])
            except np.linalg.LinAlgError:
                log.debug("[Steer] Eigendecomposition failed for particle %d, skipped", i)
                continue
            axes[i] = v[:, -1]
            ok[i] = True
    return axes, ok


def orient_axes(axes, velocities):
    """
    Flip axes so that axis · velocity >= 0.

    Exactly-zero velocities give no direction; those axes are oriented so
    their largest-magnitude component is positive (first axis on ties).
    """
    axes = np.array(axes, dtype=np.float64)
    velocities = np.asarray(velocities, dtype=np.float64)

    dots = np.einsum("ij,ij->i", axes, velocities)
    axes[dots < 0.0] *= -1.0

    still = np.all(velocities == 0.0, axis=1)
    if np.any(still):
        pivot = np.argmax(np.abs(axes), axis=1)
        sign = np.sign(axes[np.arange(len(axes)), pivot])
        sign[sign == 0.0] = 1.0
        axes[still] *= sign[still, None]
    return axes


def steer(positions, velocities, strength, dt, triangulate=periodic_delaunay,
          period=DOMAIN_PERIOD, min_samples=PCA_MIN_SAMPLES) -> Optional[SteeringResult]:
    """
    Run one steering pass.

    Args:
        positions: (N, 3) positions in [0, 1)³
        velocities: (N, 3) current velocities
        strength: Steering acceleration (units/s²)
        dt: Frame time (s)
        triangulate: Triangulation service, periodic_delaunay(points, period) contract

    Returns:
        SteeringResult with the new velocities, or None if the step was
        aborted (triangulation failure or no tetrahedra). Inputs are never
        modified.
    """
    positions = np.asarray(positions, dtype=np.float64)
    velocities = np.asarray(velocities, dtype=np.float64)
    n = len(positions)

    try:
        tets = triangulate(positions, period)
    except TriangulationError as exc:
        log.debug("[Steer] Triangulation failed, skipping frame: %s", exc)
        return None

    tets = np.asarray(tets, dtype=np.int64)
    if tets.size == 0:
        log.debug("[Steer] No tetrahedra returned, skipping frame")
        return None
    tets = tets.reshape(-1, 4)

    owners, samples = incident_circumcenters(positions, tets)
    axes, ok = principal_axes(owners, samples, n, min_samples=min_samples)
    axes = orient_axes(axes, velocities)
    axes[~ok] = 0.0

    steered = velocities.copy()
    steered[ok] += strength * axes[ok] * dt

    log.debug("[Steer] %d tetrahedra, %d/%d particles steered", len(tets), int(ok.sum()), n)
    return SteeringResult(velocities=steered, axes=axes, steered=ok, n_tetrahedra=len(tets))
