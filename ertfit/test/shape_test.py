import numpy as np
from numpy.testing import assert_allclose
import pytest
from menpo.shape import PointCloud

from ertfit.shape import (estimate_similarity_transform, similarity_parameters,
                          find_closest_landmark_index,
                          shape_relative_pixel_coordinates,
                          bounding_box_points)


def rotation_matrix(theta):
    return np.array([[np.cos(theta), -np.sin(theta)],
                     [np.sin(theta), np.cos(theta)]])


def test_similarity_quarter_turn_and_double_scale():
    source = PointCloud(np.array([[0., 0.], [1., 0.]]))
    target = PointCloud(np.array([[0., 0.], [0., 2.]]))
    transform = estimate_similarity_transform(source, target)
    scale, theta, translation = similarity_parameters(transform)
    assert_allclose(scale, 2.)
    assert_allclose(theta, np.pi / 2)
    assert_allclose(translation, [0., 0.], atol=1e-12)
    assert_allclose(transform.apply(source).points, target.points,
                    atol=1e-12)


def test_similarity_recovers_known_transform():
    rng = np.random.RandomState(0)
    source = rng.rand(10, 2) * 50
    target = 1.7 * source.dot(rotation_matrix(0.3).T) + np.array([4., -2.])
    transform = estimate_similarity_transform(source, target)
    scale, theta, translation = similarity_parameters(transform)
    assert_allclose(scale, 1.7)
    assert_allclose(theta, 0.3)
    assert_allclose(translation, [4., -2.], atol=1e-10)


def test_similarity_identity():
    shape = PointCloud(np.random.RandomState(1).rand(6, 2))
    transform = estimate_similarity_transform(shape, shape)
    assert_allclose(transform.h_matrix, np.eye(3), atol=1e-10)


def best_proper_similarity_error(source, target, n_angles=3600):
    # for a fixed rotation the optimal scale and translation are closed form
    centred_source = source - source.mean(axis=0)
    centred_target = target - target.mean(axis=0)
    best = np.inf
    for theta in np.linspace(0, 2 * np.pi, n_angles, endpoint=False):
        rotated = centred_source.dot(rotation_matrix(theta).T)
        scale = (np.sum(rotated * centred_target) /
                 np.sum(centred_source ** 2))
        best = min(best, np.sum((scale * rotated - centred_target) ** 2))
    return best


def test_similarity_never_reflects():
    source = np.array([[0., 0.], [1., 0.], [0., 1.], [2., 3.]])
    mirrored = source * np.array([1., -1.])
    transform = estimate_similarity_transform(source, mirrored)
    assert np.linalg.det(transform.h_matrix[:2, :2]) > 0


def test_similarity_with_reflection_is_least_squares_optimal():
    source = np.array([[0., 0.], [4., 1.], [1., 3.], [5., 5.], [2., 7.]])
    # a similarity followed by a mirror, which no proper similarity matches
    target = 1.5 * source.dot(rotation_matrix(0.4).T) + np.array([3., -1.])
    target = target * np.array([-1., 1.])
    transform = estimate_similarity_transform(source, target)
    error = np.sum((transform.apply(source) - target) ** 2)
    best = best_proper_similarity_error(source, target)
    assert error > 1e-6
    assert error <= best + 1e-9


def test_similarity_degenerate_source_has_unit_scale():
    source = np.array([[1., 1.], [1., 1.], [1., 1.]])
    target = np.array([[2., 3.], [4., 5.], [0., 1.]])
    scale, _, _ = similarity_parameters(
        estimate_similarity_transform(source, target))
    assert_allclose(scale, 1.)


def test_similarity_landmark_mismatch():
    with pytest.raises(ValueError):
        estimate_similarity_transform(np.zeros((3, 2)), np.zeros((4, 2)))


def test_closest_landmark_ties_pick_lowest_index():
    shape = np.array([[0., 0.], [2., 0.]])
    assert find_closest_landmark_index(shape, [1., 0.]) == 0


def test_closest_landmark_coincident_landmarks():
    shape = PointCloud(np.array([[1., 1.], [1., 1.], [5., 5.]]))
    assert find_closest_landmark_index(shape, [1., 1.2]) == 0
    assert find_closest_landmark_index(shape, [4., 4.]) == 2


def test_shape_relative_pixel_coordinates():
    shape = np.array([[0., 0.], [10., 0.], [0., 10.]])
    coordinates = np.array([[1., 1.], [9., 2.], [-1., 8.]])
    offsets, closest = shape_relative_pixel_coordinates(shape, coordinates)
    assert closest.dtype == np.int32
    assert list(closest) == [0, 1, 2]
    assert_allclose(offsets + shape[closest], coordinates)


def test_bounding_box_points():
    shape = np.array([[1., 5.], [3., 2.], [2., 4.]])
    assert_allclose(bounding_box_points(shape).points,
                    [[1., 2.], [3., 2.], [3., 5.], [1., 5.]])
