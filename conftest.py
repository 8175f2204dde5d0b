"""Shared pytest fixtures: Taichi runs on the CPU backend for the whole session."""

import numpy as np
import pytest

from backend import init_taichi
from triangulation import periodic_delaunay


@pytest.fixture(scope="session", autouse=True)
def taichi_cpu():
    init_taichi("cpu")


class RecordingTriangulator:
    """Triangulation service wrapper that counts calls."""

    def __init__(self, inner=periodic_delaunay):
        self.inner = inner
        self.calls = 0

    def __call__(self, points, period):
        self.calls += 1
        return self.inner(points, period)


@pytest.fixture
def recording_triangulator():
    return RecordingTriangulator()


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
