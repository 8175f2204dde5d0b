"""Tests for the periodic geometry utilities (host-side numpy versions)."""

import numpy as np
import pytest

from periodic import circumcenter, circumcenters, minimum_image, wrap


@pytest.mark.parametrize("v", [-3.75, -1.0, -0.5, -1e-300, 0.0, 0.3, 0.999999, 1.0, 2.5, 1e6 + 0.25])
def test_wrap_lands_in_unit_interval(v):
    w = wrap(v)
    assert 0.0 <= w < 1.0


@pytest.mark.parametrize("v", [0.0, 0.125, 0.5, 0.875, -0.25])
@pytest.mark.parametrize("k", [-3, -1, 1, 7])
def test_wrap_is_periodic(v, k):
    assert wrap(v) == wrap(v + k)


def test_wrap_far_outside_one_period():
    assert wrap(5.25) == pytest.approx(0.25)
    assert wrap(-5.25) == pytest.approx(0.75)


def test_wrap_arrays():
    out = wrap(np.array([-0.25, 0.5, 1.75]))
    np.testing.assert_allclose(out, [0.75, 0.5, 0.75])


@pytest.mark.parametrize("d", [-2.3, -0.75, -0.5, -0.25, 0.0, 0.25, 0.4999, 0.5, 0.75, 3.1])
def test_minimum_image_range(d):
    m = minimum_image(d)
    assert -0.5 <= m < 0.5


@pytest.mark.parametrize("d", [0.0, 0.125, 0.375, -0.375, 0.5])
@pytest.mark.parametrize("k", [-2, -1, 1, 4])
def test_minimum_image_is_periodic(d, k):
    assert minimum_image(d) == minimum_image(d + k)


def test_minimum_image_half_period_rounds_up():
    assert minimum_image(0.5) == -0.5
    assert minimum_image(-0.5) == -0.5
    assert minimum_image(0.75) == -0.25
    assert minimum_image(-0.75) == 0.25


def test_minimum_image_shortest_path_across_boundary():
    # 0.98 → 0.01 is +0.03 through the wall, not -0.97
    assert minimum_image(0.01 - 0.98) == pytest.approx(0.03)


def test_circumcenter_regular_tetrahedron_is_equidistant():
    pts = np.array([[1, 1, 1], [1, -1, -1], [-1, 1, -1], [-1, -1, 1]], dtype=float)
    pts = 0.1 * pts + 0.5
    c = circumcenter(*pts)
    dists = np.linalg.norm(pts - c, axis=1)
    np.testing.assert_allclose(dists, dists[0], rtol=1e-12)
    np.testing.assert_allclose(c, [0.5, 0.5, 0.5], atol=1e-12)


def test_circumcenter_corner_tetrahedron():
    c = circumcenter([0, 0, 0], [1, 0, 0], [0, 1, 0], [0, 0, 1])
    np.testing.assert_allclose(c, [0.5, 0.5, 0.5], atol=1e-12)


def test_near_coplanar_falls_back_to_centroid():
    pts = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 1, 1e-14]], dtype=float)
    c = circumcenter(*pts)
    assert np.all(np.isfinite(c))
    np.testing.assert_allclose(c, pts.mean(axis=0))


def test_coincident_points_fall_back_to_centroid():
    p = [0.3, 0.3, 0.3]
    c = circumcenter(p, p, p, [0.7, 0.3, 0.3])
    np.testing.assert_allclose(c, [0.4, 0.3, 0.3])


def test_batched_circumcenters_mix_degenerate_and_regular():
    a = np.array([[0, 0, 0], [0, 0, 0]], dtype=float)
    b = np.array([[1, 0, 0], [1, 0, 0]], dtype=float)
    c = np.array([[0, 1, 0], [2, 0, 0]], dtype=float)     # second row collinear
    d = np.array([[0, 0, 1], [3, 0, 0]], dtype=float)
    out = circumcenters(a, b, c, d)
    np.testing.assert_allclose(out[0], [0.5, 0.5, 0.5], atol=1e-12)
    np.testing.assert_allclose(out[1], [1.5, 0.0, 0.0])


def test_circumcenters_empty_batch():
    empty = np.zeros((0, 3))
    assert circumcenters(empty, empty, empty, empty).shape == (0, 3)


def test_wrap_in_float32_never_reaches_one():
    v = np.array([-1e-9, -0.25, 1.0, 0.5], dtype=np.float32)
    out = wrap(v, dtype=np.float32)
    assert out.dtype == np.float32
    assert np.all(out >= 0.0) and np.all(out < 1.0)
    np.testing.assert_array_equal(out, np.array([0.0, 0.75, 0.0, 0.5], dtype=np.float32))
