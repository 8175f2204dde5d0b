#!/usr/bin/env python3
"""
Benchmark script for Cherry Core - Reproducible Performance Testing
====================================================================

Runs a fixed number of frames headless with a deterministic seed and a
fixed dt, and reports:
- FPS (frames per second)
- Time breakdown (steering frames vs. repulsion-only frames)
- Final state summary (mean speed, steering runs/aborts)

Usage:
    python scripts/bench.py [--frames N] [--particles N] [--seed S] [--arch ARCH]

Example:
    python scripts/bench.py --frames 300 --particles 1000
"""

import argparse
import logging
import os
import sys
import time

import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from backend import ARCHS, init_taichi
from config import ARCH, DEFAULT_RADIUS, FPS_TARGET, LOG_LEVEL, SEED
from particles import ParticleSystem


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Benchmark particle system performance')
    parser.add_argument('--frames', type=int, default=300,
                        help='Number of frames to run (default: 300)')
    parser.add_argument('--particles', type=int, default=1000,
                        help='Number of particles (default: 1000)')
    parser.add_argument('--radius', type=float, default=DEFAULT_RADIUS,
                        help=f'Particle radius (default: {DEFAULT_RADIUS})')
    parser.add_argument('--seed', type=int, default=SEED,
                        help=f'Random seed for reproducibility (default: {SEED})')
    parser.add_argument('--arch', choices=sorted(ARCHS), default=ARCH,
                        help=f'Taichi backend (default: {ARCH})')
    return parser.parse_args()


def run_benchmark(ps, n_frames, dt):
    """
    Advance `n_frames` frames and time each one.

    Returns:
        (steer_times, plain_times) lists of per-frame wall times in seconds
    """
    steer_times = []
    plain_times = []
    for _ in range(n_frames):
        steered = ps.should_steer()
        t0 = time.perf_counter()
        ps.advance(dt)
        elapsed = time.perf_counter() - t0
        (steer_times if steered else plain_times).append(elapsed)
    return steer_times, plain_times


def main():
    args = parse_args()
    logging.basicConfig(level=LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")
    init_taichi(args.arch)

    print("=" * 70)
    print("CHERRY CORE BENCHMARK")
    print("=" * 70)
    print(f"Frames: {args.frames}  Particles: {args.particles}  "
          f"Radius: {args.radius}  Seed: {args.seed}  Arch: {args.arch}")

    ps = ParticleSystem()
    ps.initialize(args.particles, args.radius, args.seed)
    dt = 1.0 / FPS_TARGET

    # Warmup: compile kernels outside the timed section, then reseed.
    # Same count → the fields are refilled in place and stay compiled.
    ps.advance(dt)
    fields = ps.fields
    ps.initialize(args.particles, args.radius, args.seed)
    assert ps.fields is fields
    ps.steering_runs = ps.steering_aborts = 0

    t_start = time.perf_counter()
    steer_times, plain_times = run_benchmark(ps, args.frames, dt)
    t_total = time.perf_counter() - t_start

    speeds = np.linalg.norm(ps.velocities(), axis=1) if ps.particle_count() else np.zeros(1)
    fps = args.frames / t_total if t_total > 0 else 0.0

    print("-" * 70)
    print(f"Total: {t_total:.3f}s  | FPS≈{fps:.1f}")
    if steer_times:
        print(f"Steering frames:  {len(steer_times):5d}  mean={1000 * np.mean(steer_times):.2f}ms")
    if plain_times:
        print(f"Repulsion frames: {len(plain_times):5d}  mean={1000 * np.mean(plain_times):.2f}ms")
    print(f"Steering runs: {ps.steering_runs}  aborts: {ps.steering_aborts}")
    print(f"Final speed: mean={speeds.mean():.4f}  max={speeds.max():.4f}")
    print("=" * 70)


if __name__ == '__main__':
    main()
