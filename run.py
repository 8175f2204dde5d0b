"""
Main entry point for Cherry Core - interactive GGUI viewer.

This script:
1. Initializes Taichi and seeds the particle system
2. Runs main loop: advance(dt) → color → render → control panel
3. Draws particles with their soft-contact radii, optionally with the
   dominant cell axis as a line segment through each particle

Controls:
  - Right-click drag: Rotate camera
  - Mouse wheel: Zoom
  - SPACE: Pause/Resume
  - R: Reseed the population (same seed → same start)
  - F: Toggle Voronoi faces
  - ESC: Exit
"""

import argparse
import logging
import time

import numpy as np
import taichi as ti

from backend import ARCHS, init_taichi
from config import (
    N, DEFAULT_RADIUS, SEED, ARCH, LOG_LEVEL, DT_MAX, FPS_TARGET,
    REPULSION_STRENGTH, DAMPING, STEERING_STRENGTH, STEERING_EVERY, FACE_UPDATE_EVERY,
)
from particles import ParticleSystem

COLOR_MODES = ("none", "axis", "speed")
BASE_COLOR = (0.85, 0.35, 0.45)
VIEWER_MAX_SPEED = 2.0


def parse_args():
    parser = argparse.ArgumentParser(description="Cherry Core particle viewer")
    parser.add_argument("--particles", type=int, default=N,
                        help=f"Number of particles (default: {N})")
    parser.add_argument("--radius", type=float, default=DEFAULT_RADIUS,
                        help=f"Particle radius (default: {DEFAULT_RADIUS})")
    parser.add_argument("--seed", type=int, default=SEED,
                        help=f"Random seed (default: {SEED})")
    parser.add_argument("--arch", choices=sorted(ARCHS), default=ARCH,
                        help=f"Taichi backend (default: {ARCH})")
    return parser.parse_args()


# ==============================================================================
# Colors
# ==============================================================================

def particle_colors(ps, mode):
    """Per-particle RGB in [0, 1] for the given color mode."""
    n = ps.particle_count()
    if mode == "axis":
        return 0.5 * (ps.axis_buffer().reshape(n, 3) + 1.0)
    if mode == "speed":
        mag = np.minimum(1.0, np.linalg.norm(ps.velocities(), axis=1))
        return np.stack([mag, 0.2 + 0.8 * (1.0 - mag), 1.0 - mag], axis=1)
    return np.tile(np.asarray(BASE_COLOR), (n, 1))


class RenderFields:
    """GGUI-side fields sized for one population generation."""

    def __init__(self, n):
        self.n = n
        self.color = ti.Vector.field(3, dtype=ti.f32, shape=max(n, 1))
        self.segments = ti.Vector.field(3, dtype=ti.f32, shape=max(2 * n, 2))
        self.face_capacity = 0
        self.face_count = 0
        self.face_pos = None
        self.face_nrm = None
        self.face_col = None

    def upload(self, ps, mode, show_axis):
        if self.n == 0:
            return
        self.color.from_numpy(particle_colors(ps, mode).astype(np.float32))
        if show_axis:
            self.segments.from_numpy(ps.axis_segment_buffer().reshape(2 * self.n, 3))

    def upload_faces(self, ps):
        """Copy the face mesh into GGUI fields (grown, never shrunk)."""
        self.face_count = ps.face_vertex_count()
        if self.face_count == 0:
            return
        if self.face_count > self.face_capacity:
            self.face_capacity = 2 * self.face_count
            self.face_pos = ti.Vector.field(3, dtype=ti.f32, shape=self.face_capacity)
            self.face_nrm = ti.Vector.field(3, dtype=ti.f32, shape=self.face_capacity)
            self.face_col = ti.Vector.field(3, dtype=ti.f32, shape=self.face_capacity)

        def padded(buf):
            out = np.zeros((self.face_capacity, 3), dtype=np.float32)
            out[:self.face_count] = buf.reshape(-1, 3)
            return out

        self.face_pos.from_numpy(padded(ps.face_position_buffer()))
        self.face_nrm.from_numpy(padded(ps.face_normal_buffer()))
        self.face_col.from_numpy(np.abs(padded(ps.face_axis_buffer())))


def main():
    args = parse_args()
    logging.basicConfig(level=LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")

    # ==========================================================================
    # Initialize Taichi and the particle system
    # ==========================================================================

    init_taichi(args.arch)

    ps = ParticleSystem(
        repulsion_strength=REPULSION_STRENGTH, damping=DAMPING,
        steering_strength=STEERING_STRENGTH, steering_every=STEERING_EVERY,
        max_speed=VIEWER_MAX_SPEED,
    )
    ps.initialize(args.particles, args.radius, args.seed)
    render = RenderFields(ps.particle_count())

    print(f"[Taichi] Initialized with backend: {ti.cfg.arch}")
    print(f"[Config] N={args.particles}, radius={args.radius}, seed={args.seed}")
    print(f"[Config] Steering: strength={ps.steering_strength}, every {ps.steering_every} frames")

    window = ti.ui.Window("Cherry Core", (1024, 768), vsync=True)
    canvas = window.get_canvas()
    scene = window.get_scene()
    camera = ti.ui.Camera()

    # Camera setup (pivot around center of domain)
    domain_center = 0.5
    camera.position(domain_center, domain_center, domain_center + 1.6)
    camera.lookat(domain_center, domain_center, domain_center)
    camera.up(0, 1, 0)

    print("\n" + "=" * 70)
    print("CHERRY CORE - PERIODIC SOFT SPHERES")
    print("=" * 70)
    print("Controls:")
    print("  - Right-click + drag: Rotate camera")
    print("  - Mouse wheel: Zoom in/out")
    print("  - SPACE: Pause/Resume")
    print("  - R: Reseed particles")
    print("  - F: Toggle Voronoi faces")
    print("  - ESC: Exit")
    print("=" * 70 + "\n")

    # GUI state
    paused = False
    restart_requested = False
    gui_n_particles = args.particles
    show_axis = False
    show_faces = False
    faces_stale = True
    color_mode = 0
    frame = 0
    t_steer_total = 0.0
    t_last = time.perf_counter()

    while window.running:
        # Handle keyboard input
        if window.get_event(ti.ui.PRESS):
            if window.event.key == ti.ui.SPACE:
                paused = not paused
                print(f"[Control] {'Paused' if paused else 'Resumed'}")
            elif window.event.key in ('r', 'R'):
                restart_requested = True
            elif window.event.key in ('f', 'F'):
                show_faces = not show_faces
                faces_stale = True
            elif window.event.key == ti.ui.ESCAPE:
                print("[Control] Exiting...")
                break

        if restart_requested:
            print(f"\n[Restart] Reinitializing with {gui_n_particles} particles...")
            ps.initialize(gui_n_particles, args.radius, args.seed)
            if render.n != ps.particle_count():
                render = RenderFields(ps.particle_count())
            restart_requested = False
            faces_stale = True
            frame = 0
            print(f"[Restart] Complete. Active particles: {ps.particle_count()}\n")

        # === 1. Step ===
        t_now = time.perf_counter()
        dt = min(t_now - t_last, DT_MAX)
        t_last = t_now

        t_start = time.perf_counter()
        if not paused:
            steered = ps.should_steer()
            ps.advance(dt)
            frame += 1
        else:
            steered = False
        t_step = time.perf_counter()
        if steered:
            t_steer_total += t_step - t_start

        # === 2. Render ===
        render.upload(ps, COLOR_MODES[color_mode], show_axis)
        if show_faces and (faces_stale or (not paused and frame % FACE_UPDATE_EVERY == 0)):
            ps.update_faces()
            render.upload_faces(ps)
            faces_stale = False

        camera.track_user_inputs(window, movement_speed=0.01, hold_key=ti.ui.RMB)
        camera.lookat(domain_center, domain_center, domain_center)
        scene.set_camera(camera)
        scene.ambient_light((0.8, 0.8, 0.8))
        scene.point_light(pos=(0.5, 1.5, 0.5), color=(1, 1, 1))

        fields = ps.fields
        if fields is not None:
            scene.particles(fields.pos, radius=args.radius,
                            per_vertex_radius=fields.rad, per_vertex_color=render.color)
            if show_axis:
                scene.lines(render.segments, width=1.0, color=(1.0, 1.0, 1.0))
            if show_faces and render.face_count > 0:
                scene.mesh(render.face_pos, normals=render.face_nrm, per_vertex_color=render.face_col,
                           two_sided=True, vertex_count=render.face_count)
        canvas.scene(scene)

        # === 3. GUI Control Panel ===
        window.GUI.begin("Control Panel", 0.01, 0.01, 0.32, 0.55)

        window.GUI.text("=== Particle Count ===")
        window.GUI.text(f"Active: {ps.particle_count()}  (generation {ps.generation})")
        gui_n_particles = window.GUI.slider_int("New N", gui_n_particles, 0, 5000)
        if window.GUI.button("RESTART"):
            restart_requested = True
        window.GUI.text("")

        window.GUI.text("=== Dynamics ===")
        ps.repulsion_strength = window.GUI.slider_float("Repulsion", ps.repulsion_strength, 0.0, 5.0)
        ps.damping = window.GUI.slider_float("Damping", ps.damping, 0.90, 1.00)
        ps.min_speed = window.GUI.slider_float("Min speed", ps.min_speed, 0.0, 1.0)
        ps.max_speed = window.GUI.slider_float("Max speed", ps.max_speed, 0.0, 5.0)
        window.GUI.text("")

        window.GUI.text("=== Steering ===")
        ps.steering_strength = window.GUI.slider_float("Strength", ps.steering_strength, 0.0, 2.0)
        ps.steering_every = window.GUI.slider_int("Throttle (frames)", ps.steering_every, 1, 60)
        window.GUI.text(f"Runs: {ps.steering_runs}  Aborts: {ps.steering_aborts}")
        window.GUI.text("")

        window.GUI.text("=== Visualization ===")
        color_mode = window.GUI.slider_int("Color Mode", color_mode, 0, len(COLOR_MODES) - 1)
        window.GUI.text(f"  Mode: {COLOR_MODES[color_mode]}")
        show_axis = window.GUI.checkbox("Show axis", show_axis)
        faces_on = window.GUI.checkbox("Show faces", show_faces)
        if faces_on and not show_faces:
            faces_stale = True
        show_faces = faces_on
        if show_faces:
            window.GUI.text(f"  Face vertices: {render.face_count}")
        window.GUI.end()

        window.show()
        t_render = time.perf_counter()

        # === PERFORMANCE PROFILING OUTPUT ===
        if not paused and frame % FPS_TARGET == 0:
            dt_total = t_render - t_start
            fps_estimate = 1.0 / dt_total if dt_total > 0 else 0.0
            print(f"[PERF] Frame {frame}: step={t_step - t_start:.3f}s  "
                  f"render={t_render - t_step:.3f}s  steering total={t_steer_total:.2f}s  "
                  f"| FPS≈{fps_estimate:.1f}")

    print("\n[Exit] Simulation ended.")
    print(f"       Total frames: {frame}")
    print(f"       Active particles: {ps.particle_count()}")
    print(f"       Steering runs: {ps.steering_runs}, aborts: {ps.steering_aborts}")


if __name__ == "__main__":
    main()
