"""
Configuration parameters for Cherry Core - periodic soft-sphere particles.

This module defines the defaults for every simulation parameter:
- Particle population (count, radius, seed)
- Soft-contact repulsion and damping
- Voronoi-PCA steering (strength, cadence, sample threshold)
- Optional speed clamp
- Export/visualization (axis segments, host dt clamp)
- Runtime (Taichi arch, logging)

All units are consistent. Domain is the periodic unit cube [0, 1)³.
The ParticleSystem copies these values into per-instance attributes at
construction; change them there at runtime, not here.
"""

# ==============================================================================
# Particle population
# ==============================================================================

N = 300                     # Default particle count (viewer / benchmark)
DEFAULT_RADIUS = 0.015      # Soft-contact radius (also the visual radius)
SEED = 42                   # Seed for the position sampler (same seed → same population)

DOMAIN_PERIOD = 1.0         # Side of the periodic cube. Fixed; everything assumes [0, 1)³

# ==============================================================================
# Repulsion-integration step
# ==============================================================================

REPULSION_STRENGTH = 1.0    # Hookean stiffness: |F| = REPULSION_STRENGTH * overlap
DAMPING = 0.98              # Velocity retention per frame at 60 FPS
                            # Applied as DAMPING ** (dt * DAMPING_REFERENCE_FPS)
DAMPING_REFERENCE_FPS = 60.0

# Speed clamp (applied right after damping). 0.0 disables the respective bound.
MIN_SPEED = 0.0             # Non-zero speeds below this are scaled up
MAX_SPEED = 0.0             # Speeds above this are scaled down (viewer uses 2.0)

# ==============================================================================
# Voronoi-PCA steering
# ==============================================================================

STEERING_STRENGTH = 0.20    # Acceleration along the dominant axis (units/s²)
STEERING_EVERY = 10         # Run steering every K frames (0 disables)
PCA_MIN_SAMPLES = 4         # Particles with fewer circumcenter samples are not steered

# Circumcenter solve: relative determinant below this → centroid fallback
# |det(M)| <= DEGENERATE_TOL * |b-a| |c-a| |d-a|
DEGENERATE_TOL = 1e-10

# ==============================================================================
# Export / visualization
# ==============================================================================

AXIS_SEGMENT_SCALE = 2.0    # Axis segment half-length in units of the particle radius
DT_MAX = 0.05               # Host loop clamps frame dt to this (s)
FACE_UPDATE_EVERY = 10      # Viewer rebuilds the Voronoi face mesh every K frames while shown
FPS_TARGET = 60

# ==============================================================================
# Runtime
# ==============================================================================

ARCH = "cpu"                # Taichi backend: "cpu", "gpu", "cuda", "vulkan", "metal"
LOG_LEVEL = "INFO"
