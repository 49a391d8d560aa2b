from functools import partial
import warnings
import numpy as np
from sklearn.utils import check_random_state
from menpo.shape import PointCloud, mean_pointcloud
from menpo.transform import Scale
from menpo.visualize import print_dynamic

from . import checks
from .base import ERTBuilderWarning, MalformedModelError, as_points
from .error import euclidean_bb_normalised_error, compute_statistics
from .regressor import Regressor
from .result import ERTResult
from .shape import bounding_box_points, estimate_similarity_transform
from .visualize import print_progress


def compute_reference_shape(shapes, diagonal=None, verbose=False):
    r"""
    Computes the reference shape as the mean of the provided shapes.

    Parameters
    ----------
    shapes : `list` of `menpo.shape.PointCloud`
        The shapes.
    diagonal : `float` or ``None``, optional
        If provided, the mean shape is rescaled so that the diagonal of its
        bounding box equals ``diagonal``.
    verbose : `bool`, optional
        If ``True``, a progress message is printed.

    Returns
    -------
    reference_shape : `menpo.shape.PointCloud`
        The reference shape.
    """
    if verbose:
        print_dynamic('- Computing reference shape')
    shapes = [s if isinstance(s, PointCloud) else PointCloud(s)
              for s in shapes]
    for s in shapes[1:]:
        checks.check_landmark_correspondence(shapes[0], s)
    reference_shape = mean_pointcloud(shapes)

    if diagonal:
        x, y = reference_shape.range()
        scale = diagonal / np.sqrt(x ** 2 + y ** 2)
        reference_shape = Scale(scale, reference_shape.n_dims).apply(
            reference_shape)
    return reference_shape


def align_shape_with_bounding_box(shape, bounding_box):
    r"""
    Aligns a shape with a bounding box, by mapping the 4 corners of the
    shape's bounding box onto the 4 corners of ``bounding_box`` with a
    similarity transform.

    Parameters
    ----------
    shape : `menpo.shape.PointCloud`
        The shape to be aligned.
    bounding_box : `menpo.shape.PointCloud`
        The 4 corners of the target bounding box, in the order returned by
        :map:`bounding_box_points`.

    Returns
    -------
    aligned_shape : `menpo.shape.PointCloud`
        The aligned shape.
    """
    transform = estimate_similarity_transform(bounding_box_points(shape),
                                              bounding_box)
    return transform.apply(PointCloud(as_points(shape)))


def noisy_shape_from_bounding_box(shape, bounding_box, random_state=None,
                                  noise_percentage=0.05, rotation=True):
    r"""
    Aligns a shape with a randomly perturbed version of a bounding box.

    Parameters
    ----------
    shape : `menpo.shape.PointCloud`
        The shape to be aligned, typically the reference shape.
    bounding_box : `menpo.shape.PointCloud`
        The 4 corners of the bounding box to perturb.
    random_state : `int`, `numpy.random.RandomState` or ``None``
        The random number generator.
    noise_percentage : `float` or `list` of 3 `float`, optional
        The amount of uniform noise applied to the scale, rotation and
        translation of the bounding box. If `float`, the same amount is used
        for all of them. A value of ``p`` allows a scale change of up to
        ``p / 2``, a rotation of up to ``p * 180`` degrees and a translation
        of up to ``p`` times the bounding box range.
    rotation : `bool`, optional
        If ``False``, the bounding box is not rotated.

    Returns
    -------
    noisy_shape : `menpo.shape.PointCloud`
        The aligned shape.
    """
    random_state = check_random_state(random_state)
    noise_percentage = checks.check_noise_percentage(noise_percentage)
    corners = as_points(bounding_box)
    centre = corners.mean(axis=0)
    extent = corners.max(axis=0) - corners.min(axis=0)

    s = 1. + noise_percentage[0] * 0.5 * (2 * random_state.rand() - 1)
    theta = 0.
    if rotation:
        theta = noise_percentage[1] * np.pi * (2 * random_state.rand() - 1)
    t = noise_percentage[2] * extent * (2 * random_state.rand(2) - 1)

    r = np.array([[np.cos(theta), -np.sin(theta)],
                  [np.sin(theta), np.cos(theta)]])
    noisy_corners = s * (corners - centre).dot(r.T) + centre + t
    return align_shape_with_bounding_box(shape, noisy_corners)


class TrainingShapeInitialiser(object):
    r"""
    Generates initial shapes from the ground truth shapes of the training set
    instead of the reference shape. Every call draws a random training shape,
    or a random convex combination of two of them, and aligns it with the
    bounding box. It can be passed as ``perturb_from_gt_bounding_box`` to
    :map:`ERT`.

    Parameters
    ----------
    shapes : `list` of `menpo.shape.PointCloud`
        The shapes to draw from, typically the training ground truth shapes.
    use_linear_combinations : `bool`, optional
        If ``True``, every initial shape is a convex combination of two
        random shapes. Otherwise a single shape is drawn.
    noise_percentage : `float` or `list` of 3 `float`, optional
        If greater than ``0``, the bounding box is perturbed as in
        :map:`noisy_shape_from_bounding_box` before the alignment.
    """
    def __init__(self, shapes, use_linear_combinations=True,
                 noise_percentage=0.):
        shapes = [as_points(s) for s in shapes]
        if len(shapes) == 0:
            raise ValueError('At least one shape is required')
        for s in shapes[1:]:
            checks.check_landmark_correspondence(shapes[0], s)
        self.shapes = shapes
        self.use_linear_combinations = use_linear_combinations
        self.noise_percentage = checks.check_noise_percentage(
            noise_percentage)

    @property
    def n_shapes(self):
        return len(self.shapes)

    def draw_shape(self, random_state=None):
        r"""
        Draws an unaligned shape.

        Parameters
        ----------
        random_state : `int`, `numpy.random.RandomState` or ``None``
            The random number generator.

        Returns
        -------
        shape : `menpo.shape.PointCloud`
            A training shape or a convex combination of two of them.
        """
        random_state = check_random_state(random_state)
        shape = self.shapes[random_state.randint(self.n_shapes)]
        if self.use_linear_combinations:
            other = self.shapes[random_state.randint(self.n_shapes)]
            weight = random_state.uniform()
            shape = (1 - weight) * shape + weight * other
        return PointCloud(shape)

    def __call__(self, reference_shape, bounding_box, random_state=None):
        # the reference shape is replaced by a drawn training shape
        random_state = check_random_state(random_state)
        shape = self.draw_shape(random_state=random_state)
        if any(p > 0 for p in self.noise_percentage):
            return noisy_shape_from_bounding_box(
                shape, bounding_box, random_state=random_state,
                noise_percentage=self.noise_percentage)
        return align_shape_with_bounding_box(shape, bounding_box)


def generate_perturbations(gt_shapes, reference_shape, n_perturbations,
                           perturb_func, bounding_boxes=None,
                           random_state=None, verbose=False):
    r"""
    Generates ``n_perturbations`` initial shapes per image by aligning the
    reference shape with perturbed bounding boxes.

    Parameters
    ----------
    gt_shapes : `list` of `menpo.shape.PointCloud`
        The ground truth shape of every image.
    reference_shape : `menpo.shape.PointCloud`
        The shape that gets aligned.
    n_perturbations : `int`
        The number of initial shapes per image.
    perturb_func : `callable`
        ``perturb_func(reference_shape, bounding_box, random_state)`` returns
        an initial shape.
    bounding_boxes : `list` of `menpo.shape.PointCloud` or ``None``
        The bounding box of every image. If ``None``, the bounding boxes of
        the ground truth shapes are used.
    random_state : `int`, `numpy.random.RandomState` or ``None``
        The random number generator.
    verbose : `bool`, optional
        If ``True``, the progress is printed.

    Returns
    -------
    current_shapes : `list` of `list` of `menpo.shape.PointCloud`
        The initial shapes of every image.
    """
    random_state = check_random_state(random_state)
    if bounding_boxes is None:
        bounding_boxes = [bounding_box_points(s) for s in gt_shapes]
    wrap = partial(print_progress, prefix='- Generating initial shapes',
                   n_items=len(gt_shapes), end_with_newline=False,
                   verbose=verbose)
    current_shapes = []
    for bb in wrap(bounding_boxes):
        current_shapes.append([perturb_func(reference_shape, bb,
                                            random_state=random_state)
                               for _ in range(n_perturbations)])
    return current_shapes


def print_training_info(gt_shapes, current_shapes, stage_index, prefix=''):
    errors = [euclidean_bb_normalised_error(c_s, gt_s)
              for c_s, gt_s in zip(current_shapes, gt_shapes)]
    mean, std, median = compute_statistics(errors)
    print_dynamic('{}(Stage {}) - Training error -> mean: {:.4f}, '
                  'std: {:.4f}, median: {:.4f}.\n'.format(
                      prefix, stage_index, mean, std, median))


class ERT(object):
    r"""
    Class for training a cascade of Ensemble of Regression Trees regressors
    [1]. Every stage is a :map:`Regressor` trained on the shape estimates
    produced by the stages before it.

    Parameters
    ----------
    images : `list` of `menpo.image.Image`
        The training images.
    gt_shapes : `list` of `menpo.shape.PointCloud`
        The ground truth shape of every training image.
    bounding_boxes : `list` of `menpo.shape.PointCloud` or ``None``, optional
        The bounding box (4 corners) of every training image, e.g. the output
        of a face detector. If ``None``, the bounding boxes of the ground
        truth shapes are used.
    reference_shape : `menpo.shape.PointCloud` or ``None``, optional
        The reference (mean) shape. If ``None``, the mean of ``gt_shapes`` is
        used.
    diagonal : `float` or ``None``, optional
        If provided, the computed reference shape is rescaled so that its
        bounding box diagonal equals ``diagonal``.
    n_stages : `int`, optional
        The number of cascade stages (T in [1]).
    n_perturbations : `int`, optional
        The number of initial shapes generated per training image (R in
        [1]).
    perturb_from_gt_bounding_box : `callable`, optional
        The function that generates an initial shape from the reference
        shape and a bounding box.
    n_trees : `int`, optional
        The number of trees per stage (K in [1]).
    max_tree_depth : `int`, optional
        The maximum number of node levels of every tree.
    n_pixels : `int`, optional
        The number of pixel coordinates sampled per stage (P in [1]).
    n_split_tests : `int`, optional
        The number of random split tests per tree node (S in [1]).
    distance_prior_weighting : `float` or ``None``, optional
        Locality coefficient of the split test pixel pairs (lambda in [1]).
    learning_rate : `float`, optional
        The shrinkage factor of every tree (nu in [1]).
    random_state : `int`, `numpy.random.RandomState` or ``None``, optional
        The random number generator shared by the whole training.
    verbose : `bool`, optional
        If ``True``, the training progress is printed.

    References
    ----------
    .. [1] V. Kazemi, and J. Sullivan. "One millisecond face alignment with
        an ensemble of regression trees", Proceedings of the IEEE Conference
        on Computer Vision and Pattern Recognition (CVPR), 2014.
    """
    def __init__(self, images, gt_shapes, bounding_boxes=None,
                 reference_shape=None, diagonal=None, n_stages=10,
                 n_perturbations=20,
                 perturb_from_gt_bounding_box=noisy_shape_from_bounding_box,
                 n_trees=500, max_tree_depth=5, n_pixels=400,
                 n_split_tests=20, distance_prior_weighting=0.1,
                 learning_rate=0.08, random_state=None, verbose=False):
        n_stages = checks.check_positive_int(n_stages, 'n_stages')
        self.n_perturbations = checks.check_positive_int(n_perturbations,
                                                         'n_perturbations')
        if reference_shape is not None:
            reference_shape = PointCloud(as_points(reference_shape))
        self.reference_shape = reference_shape
        self.diagonal = diagonal
        self._perturb_from_gt_bounding_box = perturb_from_gt_bounding_box
        self.regressors = [
            Regressor(n_trees=n_trees, max_tree_depth=max_tree_depth,
                      n_pixels=n_pixels, n_split_tests=n_split_tests,
                      distance_prior_weighting=distance_prior_weighting,
                      learning_rate=learning_rate)
            for _ in range(n_stages)]
        if max_tree_depth > 1 and (n_pixels < 2 or n_split_tests == 0):
            warnings.warn('No split test can be drawn with n_pixels={} and '
                          'n_split_tests={} - every tree will be a single '
                          'leaf.'.format(n_pixels, n_split_tests),
                          ERTBuilderWarning)

        self._train(images, gt_shapes, bounding_boxes=bounding_boxes,
                    random_state=random_state, verbose=verbose)

    @property
    def n_stages(self):
        r"""
        The number of cascade stages.

        :type: `int`
        """
        return len(self.regressors)

    def _train(self, images, gt_shapes, bounding_boxes=None,
               random_state=None, verbose=False):
        images = list(images)
        gt_shapes = list(gt_shapes)
        if len(images) == 0:
            raise ValueError('At least one training image is required')
        if len(images) != len(gt_shapes):
            raise ValueError('images and gt_shapes must have the same length, '
                             'got {} and {}'.format(len(images),
                                                    len(gt_shapes)))
        if bounding_boxes is not None and len(bounding_boxes) != len(images):
            raise ValueError('bounding_boxes must provide one bounding box '
                             'per image')
        random_state = check_random_state(random_state)

        if self.reference_shape is None:
            self.reference_shape = compute_reference_shape(
                gt_shapes, self.diagonal, verbose=verbose)

        perturbations = generate_perturbations(
            gt_shapes, self.reference_shape, self.n_perturbations,
            self._perturb_from_gt_bounding_box,
            bounding_boxes=bounding_boxes, random_state=random_state,
            verbose=verbose)

        # one training sample per initial shape
        sample_images, sample_gt_shapes, current_shapes = [], [], []
        for image, gt_s, shapes in zip(images, gt_shapes, perturbations):
            for s in shapes:
                sample_images.append(image)
                sample_gt_shapes.append(gt_s)
                current_shapes.append(s)

        if verbose:
            print_training_info(sample_gt_shapes, current_shapes, 'initial',
                                prefix='  - ')

        for j, regressor in enumerate(self.regressors):
            prefix = '  - Stage {}: '.format(j) if verbose else ''
            predictions = regressor.train(
                sample_images, sample_gt_shapes, current_shapes,
                self.reference_shape, random_state=random_state,
                prefix=prefix, verbose=verbose)
            current_shapes = [PointCloud(as_points(s) + p)
                              for s, p in zip(current_shapes, predictions)]
            if verbose:
                print_training_info(sample_gt_shapes, current_shapes, j,
                                    prefix='  - ')

    def fit_from_shape(self, image, initial_shape, gt_shape=None):
        r"""
        Fits the cascade to an image starting from an initial shape.

        Parameters
        ----------
        image : `menpo.image.Image`
            The image to be fitted.
        initial_shape : `menpo.shape.PointCloud`
            The initial shape estimate.
        gt_shape : `menpo.shape.PointCloud` or ``None``, optional
            The ground truth shape of the image.

        Returns
        -------
        result : :map:`ERTResult`
            The shape after every stage of the cascade.
        """
        current_shape = PointCloud(as_points(initial_shape))
        shapes = [current_shape]
        for regressor in self.regressors:
            dx = regressor.predict(image, current_shape)
            current_shape = PointCloud(current_shape.points + dx)
            shapes.append(current_shape)
        return ERTResult(shapes, image=image, gt_shape=gt_shape)

    def fit_from_bb(self, image, bounding_box, gt_shape=None):
        r"""
        Fits the cascade to an image starting from the reference shape
        aligned with a bounding box.

        Parameters
        ----------
        image : `menpo.image.Image`
            The image to be fitted.
        bounding_box : `menpo.shape.PointCloud`
            The 4 corners of the bounding box of the object.
        gt_shape : `menpo.shape.PointCloud` or ``None``, optional
            The ground truth shape of the image.

        Returns
        -------
        result : :map:`ERTResult`
            The shape after every stage of the cascade.
        """
        initial_shape = align_shape_with_bounding_box(self.reference_shape,
                                                      bounding_box)
        return self.fit_from_shape(image, initial_shape, gt_shape=gt_shape)

    def as_record(self):
        r"""
        Exports the cascade as a `dict` holding the reference shape and the
        record of every stage, in order.
        """
        return {'reference_shape': np.array(self.reference_shape.points,
                                            dtype=np.float64),
                'n_stages': self.n_stages,
                'stages': [r.as_record() for r in self.regressors]}

    @classmethod
    def from_record(cls, record):
        r"""
        Builds a trained cascade from a record created by :meth:`as_record`.

        Raises
        ------
        MalformedModelError
            The record is missing fields or the declared number of stages
            differs from the stored stages.
        """
        if not isinstance(record, dict):
            raise MalformedModelError('An ERT record must be a dict, got '
                                      '{}'.format(type(record).__name__))
        missing = [k for k in ('reference_shape', 'n_stages', 'stages')
                   if k not in record]
        if missing:
            raise MalformedModelError('ERT record is missing the fields '
                                      '{}'.format(missing))
        if int(record['n_stages']) != len(record['stages']):
            raise MalformedModelError(
                'ERT record declares {} stages but stores {}'.format(
                    record['n_stages'], len(record['stages'])))
        reference_shape = np.array(record['reference_shape'],
                                   dtype=np.float64)
        regressors = [Regressor.from_record(r) for r in record['stages']]
        for j, r in enumerate(regressors):
            if r.mean_shape.points.shape != reference_shape.shape:
                raise MalformedModelError(
                    'Stage {} has {} landmarks but the reference shape has '
                    '{}'.format(j, r.n_landmarks, reference_shape.shape[0]))

        ert = cls.__new__(cls)
        ert.reference_shape = PointCloud(reference_shape)
        ert.diagonal = None
        ert.n_perturbations = None
        ert._perturb_from_gt_bounding_box = noisy_shape_from_bounding_box
        ert.regressors = regressors
        return ert

    def __str__(self):
        out = 'Ensemble of Regression Trees cascade\n - {} stages'.format(
            self.n_stages)
        if self.regressors:
            out += '\n - {} landmarks\n - {}'.format(
                self.reference_shape.n_points, self.regressors[0])
        return out
