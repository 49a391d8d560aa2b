import numpy as np
from numpy.testing import assert_allclose, assert_array_equal
import pytest
from menpo.image import Image
from menpo.shape import PointCloud

from ertfit.base import ERTBuilderWarning
from ertfit.fitter import (ERT, compute_reference_shape,
                           align_shape_with_bounding_box,
                           noisy_shape_from_bounding_box,
                           generate_perturbations, TrainingShapeInitialiser)
from ertfit.result import ERTResult
from ertfit.shape import bounding_box_points


template = np.array([[12., 12.], [12., 28.], [28., 20.], [20., 20.]])
rng = np.random.RandomState(0)
training_images = [Image(rng.rand(1, 40, 40)) for _ in range(4)]
training_shapes = [PointCloud(template + rng.uniform(-2, 2, size=(4, 2)))
                   for _ in range(4)]

ert_kwargs = dict(n_stages=3, n_trees=8, max_tree_depth=3, n_pixels=25,
                  n_split_tests=6, learning_rate=0.3)


def align_with_bounding_box(shape, bounding_box, random_state=None):
    return align_shape_with_bounding_box(shape, bounding_box)


def squared_error(shape, gt_shape):
    return np.sum((shape.points - gt_shape.points) ** 2)


def test_compute_reference_shape():
    reference_shape = compute_reference_shape(training_shapes)
    assert_allclose(reference_shape.points,
                    np.mean([s.points for s in training_shapes], axis=0))


def test_compute_reference_shape_diagonal():
    reference_shape = compute_reference_shape(training_shapes, diagonal=10.)
    assert_allclose(np.linalg.norm(reference_shape.range()), 10.)


def test_align_shape_with_bounding_box():
    shape = PointCloud(template)
    bounding_box = bounding_box_points(2 * template + np.array([5., -3.]))
    aligned = align_shape_with_bounding_box(shape, bounding_box)
    assert_allclose(aligned.points, 2 * template + np.array([5., -3.]))


def test_noisy_shape_without_noise_is_aligned_shape():
    shape = PointCloud(template)
    bounding_box = bounding_box_points(training_shapes[0])
    noisy = noisy_shape_from_bounding_box(shape, bounding_box,
                                          random_state=0,
                                          noise_percentage=0.)
    assert_allclose(noisy.points,
                    align_shape_with_bounding_box(shape, bounding_box).points)


def test_noisy_shape_is_perturbed():
    shape = PointCloud(template)
    bounding_box = bounding_box_points(training_shapes[0])
    noisy = noisy_shape_from_bounding_box(shape, bounding_box,
                                          random_state=0,
                                          noise_percentage=0.1)
    aligned = align_shape_with_bounding_box(shape, bounding_box)
    assert noisy.n_points == 4
    assert not np.allclose(noisy.points, aligned.points)


def test_generate_perturbations():
    perturbations = generate_perturbations(
        training_shapes, PointCloud(template), 5,
        noisy_shape_from_bounding_box, random_state=0)
    assert len(perturbations) == len(training_shapes)
    assert all(len(p) == 5 for p in perturbations)


def test_training_error_does_not_increase_across_stages():
    ert = ERT(training_images, training_shapes, n_perturbations=2,
              perturb_from_gt_bounding_box=align_with_bounding_box,
              random_state=0, **ert_kwargs)
    errors = np.zeros(ert.n_stages + 1)
    for image, gt_shape in zip(training_images, training_shapes):
        initial_shape = align_shape_with_bounding_box(
            ert.reference_shape, bounding_box_points(gt_shape))
        result = ert.fit_from_shape(image, initial_shape, gt_shape=gt_shape)
        errors += [squared_error(s, gt_shape) for s in result.shapes]
    assert np.all(np.diff(errors) <= 1e-10)


def test_fit_from_bb():
    ert = ERT(training_images, training_shapes, n_perturbations=3,
              random_state=0, **ert_kwargs)
    result = ert.fit_from_bb(training_images[0],
                             bounding_box_points(training_shapes[0]),
                             gt_shape=training_shapes[0])
    assert isinstance(result, ERTResult)
    assert result.n_iters == ert.n_stages == 3
    assert result.final_shape.n_points == 4
    assert len(result.errors()) == 4


def test_fixed_seed_reproduces_the_cascade():
    a = ERT(training_images, training_shapes, n_perturbations=2,
            random_state=3, **ert_kwargs)
    b = ERT(training_images, training_shapes, n_perturbations=2,
            random_state=3, **ert_kwargs)
    bounding_box = bounding_box_points(training_shapes[1])
    assert_array_equal(
        a.fit_from_bb(training_images[1], bounding_box).final_shape.points,
        b.fit_from_bb(training_images[1], bounding_box).final_shape.points)


def test_single_leaf_parameters_warn():
    with pytest.warns(ERTBuilderWarning):
        ERT(training_images, training_shapes, n_stages=1, n_perturbations=1,
            n_trees=1, n_split_tests=0, random_state=0)


def test_mismatched_training_data():
    with pytest.raises(ValueError):
        ERT(training_images, training_shapes[:2], n_perturbations=1,
            random_state=0, **ert_kwargs)


def test_invalid_number_of_perturbations():
    with pytest.raises(ValueError):
        ERT(training_images, training_shapes, n_perturbations=0,
            **ert_kwargs)


def test_training_shape_initialiser_single_shape():
    initialiser = TrainingShapeInitialiser([training_shapes[0]],
                                           use_linear_combinations=False)
    bounding_box = bounding_box_points(training_shapes[1])
    shape = initialiser(PointCloud(template), bounding_box, random_state=0)
    assert_allclose(shape.points,
                    align_shape_with_bounding_box(training_shapes[0],
                                                  bounding_box).points)


def test_training_shape_initialiser_combinations_are_convex():
    initialiser = TrainingShapeInitialiser(training_shapes[:2])
    low = np.minimum(training_shapes[0].points, training_shapes[1].points)
    high = np.maximum(training_shapes[0].points, training_shapes[1].points)
    random_state = np.random.RandomState(0)
    for _ in range(10):
        shape = initialiser.draw_shape(random_state=random_state)
        assert np.all(shape.points >= low - 1e-12)
        assert np.all(shape.points <= high + 1e-12)


def test_training_shape_initialiser_combines_before_aligning():
    # combinations of translated copies only differ by a translation
    shapes = [PointCloud(template), PointCloud(template + np.array([5., 3.]))]
    initialiser = TrainingShapeInitialiser(shapes)
    bounding_box = bounding_box_points(training_shapes[2])
    shape = initialiser(PointCloud(template), bounding_box, random_state=1)
    assert_allclose(shape.points,
                    align_shape_with_bounding_box(shapes[0],
                                                  bounding_box).points)


def test_training_shape_initialiser_with_noise():
    initialiser = TrainingShapeInitialiser([training_shapes[0]],
                                           use_linear_combinations=False,
                                           noise_percentage=0.1)
    bounding_box = bounding_box_points(training_shapes[1])
    shape = initialiser(PointCloud(template), bounding_box, random_state=0)
    aligned = align_shape_with_bounding_box(training_shapes[0], bounding_box)
    assert not np.allclose(shape.points, aligned.points)


def test_training_shape_initialiser_needs_shapes():
    with pytest.raises(ValueError):
        TrainingShapeInitialiser([])


def test_ert_from_training_shapes():
    ert = ERT(training_images, training_shapes, n_perturbations=3,
              perturb_from_gt_bounding_box=TrainingShapeInitialiser(
                  training_shapes),
              random_state=0, **ert_kwargs)
    result = ert.fit_from_bb(training_images[3],
                             bounding_box_points(training_shapes[3]),
                             gt_shape=training_shapes[3])
    assert result.n_iters == 3
    assert result.final_shape.n_points == 4
