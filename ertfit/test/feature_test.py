import numpy as np
from numpy.testing import assert_allclose, assert_array_equal
from menpo.image import Image
from menpo.shape import PointCloud
from menpo.transform import Similarity

from ertfit.feature import (read_pixel_intensities, sample_pixel_coordinates,
                            PixelCoordinates)


pixels = np.arange(20, dtype=np.float64).reshape(4, 5)
mean_shape = PointCloud(np.array([[10., 10.], [10., 30.], [30., 20.]]))


def test_read_pixel_intensities_nearest_pixel():
    points = np.array([[1.7, 2.2], [0., 0.], [3.99, 4.99]])
    assert_array_equal(read_pixel_intensities(pixels, points),
                       [pixels[1, 2], pixels[0, 0], pixels[3, 4]])


def test_read_pixel_intensities_out_of_bounds():
    points = np.array([[-0.5, 0.], [4., 0.], [0., 5.], [np.nan, 1.],
                       [1., 1.]])
    assert_array_equal(read_pixel_intensities(pixels, points,
                                              fill_value=-1.),
                       [-1., -1., -1., -1., pixels[1, 1]])


def test_read_pixel_intensities_from_image():
    image = Image(pixels[None])
    assert_array_equal(read_pixel_intensities(image, [[2., 3.]]),
                       [pixels[2, 3]])


def test_sample_pixel_coordinates_in_bounding_box():
    coordinates = sample_pixel_coordinates(mean_shape, 200,
                                           np.random.RandomState(0))
    assert coordinates.shape == (200, 2)
    assert np.all(coordinates >= mean_shape.points.min(axis=0))
    assert np.all(coordinates <= mean_shape.points.max(axis=0))


def test_pixel_coordinates_absolute():
    coordinates = sample_pixel_coordinates(mean_shape, 20,
                                           np.random.RandomState(1))
    pc = PixelCoordinates.from_absolute(mean_shape, coordinates)
    assert pc.n_pixels == 20
    assert_allclose(pc.absolute(mean_shape), coordinates)


def test_pixel_coordinates_follow_the_shape():
    coordinates = sample_pixel_coordinates(mean_shape, 20,
                                           np.random.RandomState(2))
    pc = PixelCoordinates.from_absolute(mean_shape, coordinates)
    h_matrix = np.eye(3)
    h_matrix[:2, :2] = 1.5 * np.array([[0., -1.], [1., 0.]])
    h_matrix[:2, 2] = [3., 7.]
    transform = Similarity(h_matrix)
    shape = transform.apply(mean_shape)
    assert_allclose(pc.project(transform, shape),
                    transform.apply(coordinates))
