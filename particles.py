"""
Particle store and frame orchestration for Cherry Core.

ParticleSystem owns the authoritative per-particle state (SoA Taichi fields:
position, velocity, radius, id) and the flat float32 export buffers a
renderer reads:

  positions      [x0, y0, z0, x1, y1, z1, ...]          3 floats / particle
  radii          [r0, r1, ...]                          1 float  / particle
  axes           [ax0, ay0, az0, ...]                   3 floats / particle
  axis segments  [sx0, sy0, sz0, ex0, ey0, ez0, ...]    6 floats / particle

plus the Voronoi face mesh (positions, normals, per-corner axes; 3 floats per
face vertex), rebuilt only when update_faces() is called.

Per advance(dt): steering (every `steering_every` frames) → repulsion,
damping, integration → export buffer refresh. Steering always completes
before integration starts.

Buffers are read-only numpy views. They are refreshed in place on every
advance() and replaced by new arrays on initialize(); `generation` tells
readers which population a buffer belongs to.

Single-threaded: one advance()/initialize() in flight at a time.
"""

import logging
from typing import NamedTuple, Optional

import numpy as np
import taichi as ti

from backend import init_taichi
from config import (
    AXIS_SEGMENT_SCALE, DAMPING, DOMAIN_PERIOD, MAX_SPEED, MIN_SPEED,
    PCA_MIN_SAMPLES, REPULSION_STRENGTH, STEERING_EVERY, STEERING_STRENGTH,
)
from dynamics import init_velocities, repulsion_integration_step
from faces import voronoi_faces
from periodic import wrap
from steering import steer
from triangulation import TriangulationError, periodic_delaunay

log = logging.getLogger(__name__)


class Particle(NamedTuple):
    """Snapshot of one particle (debugging / selection)."""
    id: int
    position: tuple
    velocity: tuple
    radius: float


def _read_only(arr):
    view = arr.view()
    view.flags.writeable = False
    return view


class ParticleFields:
    """
    Taichi fields for one population, placed in their own SNode tree.

    destroy() releases the tree; the fields are unusable afterwards.
    """

    def __init__(self, n):
        self.n = n
        fb = ti.FieldsBuilder()
        self.pos = ti.Vector.field(3, dtype=ti.f32)   # Positions in [0, 1)³
        self.vel = ti.Vector.field(3, dtype=ti.f32)   # Velocities (units/s)
        self.rad = ti.field(dtype=ti.f32)             # Soft-contact radii
        self.ids = ti.field(dtype=ti.i32)             # Creation-order ids
        fb.dense(ti.i, n).place(self.pos, self.vel, self.rad, self.ids)
        self._tree = fb.finalize()

    def destroy(self):
        if self._tree is not None:
            self._tree.destroy()
            self._tree = None


class ParticleSystem:
    """
    Periodic soft-sphere particle system with Voronoi-PCA steering.

    Simulation parameters are plain attributes; change them between frames.

    Args:
        repulsion_strength: Hookean stiffness of the soft contact
        damping: Velocity retention per 60 FPS frame
        steering_strength: Acceleration along the dominant cell axis (0 disables)
        steering_every: Steering cadence in frames (0 disables)
        min_speed, max_speed: Speed clamp after damping (0.0 disables a bound)
        triangulate: Periodic triangulation service
    """

    def __init__(self, repulsion_strength=REPULSION_STRENGTH, damping=DAMPING,
                 steering_strength=STEERING_STRENGTH, steering_every=STEERING_EVERY,
                 min_speed=MIN_SPEED, max_speed=MAX_SPEED,
                 triangulate=periodic_delaunay):
        init_taichi()

        self.repulsion_strength = repulsion_strength
        self.damping = damping
        self.steering_strength = steering_strength
        self.steering_every = steering_every
        self.min_speed = min_speed
        self.max_speed = max_speed
        self.pca_min_samples = PCA_MIN_SAMPLES
        self.axis_segment_scale = AXIS_SEGMENT_SCALE
        self.triangulate = triangulate

        self.frame_counter = 0
        self.generation = 0
        self.steering_runs = 0
        self.steering_aborts = 0

        self._fields = None
        self._positions = np.zeros(0, dtype=np.float32)
        self._radii = np.zeros(0, dtype=np.float32)
        self._axes = np.zeros(0, dtype=np.float32)
        self._segments = np.zeros(0, dtype=np.float32)
        self._clear_faces()

    # --------------------------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------------------------

    def initialize(self, count, default_radius, seed):
        """
        Replace the population with `count` particles.

        Positions are uniform in [0, 1)³ from a generator seeded with `seed`
        (same seed → identical population), velocities are zero, every radius
        is `default_radius`, ids are 0..count-1. The new state and buffers are
        fully built before the old population is released.

        Re-initializing with an unchanged count refills the existing fields
        in place, so compiled kernels stay valid. A new count allocates a new
        SNode tree, which recompiles every kernel on its first launch.
        """
        count = int(count)
        if count < 0:
            raise ValueError(f"Particle count must be >= 0, got {count}")
        if not default_radius > 0.0:
            raise ValueError(f"Default radius must be > 0, got {default_radius}")

        rng = np.random.default_rng(seed)
        pos_np = rng.random((count, 3), dtype=np.float32)
        rad_np = np.full(count, default_radius, dtype=np.float32)

        old = self._fields
        fields = None
        if count > 0:
            fields = old if old is not None and old.n == count else ParticleFields(count)
            fields.pos.from_numpy(pos_np)
            fields.rad.from_numpy(rad_np)
            fields.ids.from_numpy(np.arange(count, dtype=np.int32))
            init_velocities(fields.vel, count)

        positions = pos_np.reshape(-1).copy()
        radii = rad_np.copy()
        axes = np.zeros(count * 3, dtype=np.float32)
        segments = np.zeros(count * 6, dtype=np.float32)

        self._fields = fields
        self._positions, self._radii = positions, radii
        self._axes, self._segments = axes, segments
        self._clear_faces()
        if old is not None and old is not fields:
            old.destroy()

        self.frame_counter = 0
        self.generation += 1
        self._refresh_segments()
        log.info("[Init] Seeded %d particles (radius=%.4f, seed=%s, generation=%d)",
                 count, default_radius, seed, self.generation)

    def particle_count(self):
        return 0 if self._fields is None else self._fields.n

    def __len__(self):
        return self.particle_count()

    # --------------------------------------------------------------------------
    # Frame step
    # --------------------------------------------------------------------------

    def should_steer(self):
        """True if steering is enabled and this frame is on the cadence."""
        return (self.particle_count() >= 4
                and self.steering_strength > 0.0
                and self.steering_every > 0
                and self.frame_counter % self.steering_every == 0)

    def advance(self, dt):
        """
        Advance the simulation by dt seconds.

        Empty population or dt == 0: no-op. dt < 0 is not checked.
        """
        n = self.particle_count()
        if n == 0 or dt == 0.0:
            return

        if self.should_steer():
            self._steer(dt)
        self.frame_counter += 1

        f = self._fields
        repulsion_integration_step(
            f.pos, f.rad, f.vel, n, dt,
            self.repulsion_strength, self.damping, self.min_speed, self.max_speed,
        )
        self._refresh_buffers()

    def _steer(self, dt):
        f = self._fields
        result = steer(
            f.pos.to_numpy(), f.vel.to_numpy(), self.steering_strength, dt,
            triangulate=self.triangulate, period=DOMAIN_PERIOD,
            min_samples=self.pca_min_samples,
        )
        if result is None:
            self.steering_aborts += 1
            return
        self.steering_runs += 1
        f.vel.from_numpy(result.velocities.astype(np.float32))
        self._axes[:] = result.axes.astype(np.float32).reshape(-1)

    def _refresh_buffers(self):
        f = self._fields
        self._positions[:] = f.pos.to_numpy().reshape(-1)
        self._radii[:] = f.rad.to_numpy()
        self._refresh_segments()

    def _refresh_segments(self):
        n = len(self._radii)
        if n == 0:
            return
        pos = self._positions.reshape(n, 3)
        half = self._axes.reshape(n, 3) * (self._radii * self.axis_segment_scale)[:, None]
        seg = self._segments.reshape(n, 2, 3)
        seg[:, 0] = pos - half
        seg[:, 1] = pos + half

    # --------------------------------------------------------------------------
    # Voronoi face mesh (rebuilt on request, not per frame)
    # --------------------------------------------------------------------------

    def _clear_faces(self):
        self._face_positions = np.zeros(0, dtype=np.float32)
        self._face_normals = np.zeros(0, dtype=np.float32)
        self._face_axes = np.zeros(0, dtype=np.float32)

    def update_faces(self):
        """
        Rebuild the Voronoi face mesh from the current positions.

        Each corner carries its owning particle's last steering axis.
        A triangulation failure leaves an empty mesh.

        Returns:
            Number of face vertices (3 per triangle)
        """
        self._clear_faces()
        n = self.particle_count()
        if n < 4:
            return 0

        pos = self._fields.pos.to_numpy()
        try:
            tets = self.triangulate(pos, DOMAIN_PERIOD)
        except TriangulationError as exc:
            log.debug("[Faces] Triangulation failed, no faces: %s", exc)
            return 0

        mesh = voronoi_faces(pos, tets)
        self._face_positions = mesh.positions.astype(np.float32).reshape(-1)
        self._face_normals = mesh.normals.astype(np.float32).reshape(-1)
        self._face_axes = self._axes.reshape(n, 3)[mesh.owners].reshape(-1)
        return self.face_vertex_count()

    def face_vertex_count(self):
        return len(self._face_positions) // 3

    def face_position_buffer(self) -> Optional[np.ndarray]:
        return _read_only(self._face_positions) if len(self._face_positions) else None

    def face_normal_buffer(self) -> Optional[np.ndarray]:
        return _read_only(self._face_normals) if len(self._face_normals) else None

    def face_axis_buffer(self) -> Optional[np.ndarray]:
        return _read_only(self._face_axes) if len(self._face_axes) else None

    # --------------------------------------------------------------------------
    # Export buffers (read-only, None for an empty population)
    # --------------------------------------------------------------------------

    def position_buffer(self) -> Optional[np.ndarray]:
        return _read_only(self._positions) if len(self._positions) else None

    def radius_buffer(self) -> Optional[np.ndarray]:
        return _read_only(self._radii) if len(self._radii) else None

    def axis_buffer(self) -> Optional[np.ndarray]:
        return _read_only(self._axes) if len(self._axes) else None

    def axis_segment_buffer(self) -> Optional[np.ndarray]:
        return _read_only(self._segments) if len(self._segments) else None

    # --------------------------------------------------------------------------
    # Host-side state access (copies)
    # --------------------------------------------------------------------------

    @property
    def fields(self) -> Optional[ParticleFields]:
        """Live Taichi fields (for GGUI rendering). Invalid after initialize()."""
        return self._fields

    def positions(self):
        return self._fields.pos.to_numpy() if self._fields else np.zeros((0, 3), np.float32)

    def velocities(self):
        return self._fields.vel.to_numpy() if self._fields else np.zeros((0, 3), np.float32)

    def radii(self):
        return self._fields.rad.to_numpy() if self._fields else np.zeros(0, np.float32)

    def ids(self):
        return self._fields.ids.to_numpy() if self._fields else np.zeros(0, np.int32)

    def particle(self, i):
        f = self._fields
        if f is None or not 0 <= i < f.n:
            raise IndexError(f"Particle index {i} out of range for {self.particle_count()} particles")
        p, v = f.pos[i], f.vel[i]
        return Particle(id=int(f.ids[i]),
                        position=(float(p[0]), float(p[1]), float(p[2])),
                        velocity=(float(v[0]), float(v[1]), float(v[2])),
                        radius=float(f.rad[i]))

    def set_positions(self, positions):
        """Overwrite positions (wrapped into [0, 1)³) and refresh the buffers."""
        arr = self._checked(positions)
        if self._fields is None:
            return
        self._fields.pos.from_numpy(wrap(arr, dtype=np.float32))
        self._refresh_buffers()

    def set_velocities(self, velocities):
        arr = self._checked(velocities)
        if self._fields is not None:
            self._fields.vel.from_numpy(arr)

    def _checked(self, values):
        n = self.particle_count()
        arr = np.asarray(values, dtype=np.float32)
        if arr.shape != (n, 3):
            raise ValueError(f"Expected shape ({n}, 3), got {arr.shape}")
        return arr
