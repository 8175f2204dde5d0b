"""
Quick import test to verify all modules load correctly.
Doesn't run the simulation, just checks that all imports and entry points exist.
"""

import importlib

import pytest


@pytest.mark.parametrize("module", [
    "config", "backend", "periodic", "dynamics", "triangulation", "steering", "faces", "particles",
])
def test_module_imports(module):
    importlib.import_module(module)


def test_kernels_and_helpers_exported():
    from dynamics import (
        apply_damping, apply_soft_repulsion, init_velocities, integrate_positions,
        repulsion_integration_step,
    )
    from periodic import circumcenter, minimum_image, pdelta, wrap, wrap01
    from particles import ParticleSystem
    from steering import steer
    from triangulation import periodic_delaunay

    assert callable(repulsion_integration_step) and callable(steer)


def test_config_defaults_are_sane():
    import config

    assert 0.0 < config.DAMPING <= 1.0
    assert config.STEERING_EVERY >= 0
    assert config.PCA_MIN_SAMPLES >= 4
    assert config.DOMAIN_PERIOD == 1.0


def test_backend_init_is_idempotent():
    from backend import init_taichi, is_initialized

    assert is_initialized()
    assert init_taichi() is False
