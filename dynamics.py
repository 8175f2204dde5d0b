"""
Dynamics kernels for Cherry Core - soft-sphere repulsion and integration.

This module provides:
1. Velocity reset
2. Soft-contact (Hookean) repulsion over all pairs, minimum-image aware
3. Frame-rate independent damping with optional speed clamp
4. Explicit position integration with periodic wrap

All kernels assume unit mass and the periodic unit cube [0, 1)³.
Fields are float32: pos/vel are ti.Vector.field(3), rad is ti.field.
"""

import taichi as ti

from config import DAMPING_REFERENCE_FPS
from periodic import pdelta, wrap01

# ==============================================================================
# Kernel 1: Velocity reset
# ==============================================================================

@ti.kernel
def init_velocities(vel: ti.template(), n: ti.i32):
    """Initialize all velocities to zero."""
    for i in range(n):
        vel[i] = ti.Vector([0.0, 0.0, 0.0])


# ==============================================================================
# Kernel 2: Soft-sphere repulsion (all pairs)
# ==============================================================================

@ti.kernel
def apply_soft_repulsion(pos: ti.template(), rad: ti.template(), vel: ti.template(),
                         n: ti.i32, strength: ti.f32, dt: ti.f32):
    """
    Resolve overlaps with equal-and-opposite velocity impulses.

    For every unordered pair i < j:
      1. delta = minimum-image vector from i to j
      2. Coincident pairs (|delta|² == 0) are skipped
      3. overlap = (r_i + r_j) - |delta|; nothing happens unless overlap > 0
      4. impulse = strength * overlap * dt along delta / |delta|
      5. vel[i] -= impulse, vel[j] += impulse

    The outer loop is serialized: every pair is visited exactly once in
    (i, j) lexicographic order, so the float accumulation is reproducible.
    O(N²) with no pruning.
    """
    ti.loop_config(serialize=True)
    for i in range(n):
        for j in range(i + 1, n):
            delta = pdelta(pos[i], pos[j])
            dist2 = delta.dot(delta)
            if dist2 <= 0.0:
                continue

            sum_r = rad[i] + rad[j]
            if dist2 < sum_r * sum_r:
                dist = ti.sqrt(dist2)
                overlap = sum_r - dist
                if overlap > 0.0:
                    direction = delta / dist
                    force = strength * overlap * direction
                    vel[i] -= force * dt
                    vel[j] += force * dt


# ==============================================================================
# Kernel 3: Damping (+ optional speed clamp)
# ==============================================================================

def damping_factor(damping, dt):
    """
    Convert a per-frame damping (calibrated at 60 FPS) into a multiplier for dt.

    damping ** (dt * 60): one 60 FPS frame gives exactly `damping`.
    """
    return damping ** (dt * DAMPING_REFERENCE_FPS)


@ti.kernel
def apply_damping(vel: ti.template(), n: ti.i32, factor: ti.f32,
                  min_speed: ti.f32, max_speed: ti.f32):
    """
    Scale velocities by `factor`, then clamp speed.

    Clamp bounds of 0.0 are disabled. Zero velocities stay zero.
    """
    for i in range(n):
        v = vel[i] * factor
        speed = v.norm()
        if speed > 0.0:
            if max_speed > 0.0 and speed > max_speed:
                v *= max_speed / speed
            elif speed < min_speed:
                v *= min_speed / speed
        vel[i] = v


# ==============================================================================
# Kernel 4: Integration + periodic wrap
# ==============================================================================

@ti.kernel
def integrate_positions(pos: ti.template(), vel: ti.template(), n: ti.i32, dt: ti.f32):
    """pos += vel * dt, wrapped back into [0, 1)³."""
    for i in range(n):
        pos[i] = wrap01(pos[i] + vel[i] * dt)


def repulsion_integration_step(pos, rad, vel, n, dt, repulsion_strength, damping,
                               min_speed=0.0, max_speed=0.0):
    """
    One full repulsion-integration step: repulsion → damping → integrate/wrap.

    dt == 0 is a no-op. dt < 0 and non-positive radii are the caller's problem.
    """
    if n == 0 or dt == 0.0:
        return
    apply_soft_repulsion(pos, rad, vel, n, repulsion_strength, dt)
    apply_damping(vel, n, damping_factor(damping, dt), min_speed, max_speed)
    integrate_positions(pos, vel, n, dt)
