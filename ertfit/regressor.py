from functools import partial
from copy import deepcopy
import numpy as np
from sklearn.utils import check_random_state
from menpo.shape import PointCloud
from menpo.visualize import print_dynamic

from .base import MalformedModelError, as_points
from .checks import (check_positive_int, check_learning_rate,
                     check_distance_prior_weighting, check_training_batch,
                     check_landmark_correspondence)
from .feature import PixelCoordinates, sample_pixel_coordinates
from .shape import estimate_similarity_transform
from .tree import RegressionTree
from .visualize import print_progress


_REGRESSOR_RECORD_KEYS = ('mean_shape', 'mean_residual', 'learning_rate',
                          'pixel_coordinates', 'closest_landmarks', 'n_trees',
                          'trees')


class Regressor(object):
    r"""
    A single stage of an Ensemble of Regression Trees cascade [1]. It predicts
    an additive correction (residual) of a shape estimate from pixel
    intensities read relative to that estimate.

    The prediction is the mean training residual plus the sum of the
    predictions of a sequence of regression trees, each one scaled by the
    learning rate. The trees are trained by gradient boosting: every tree
    fits what the trees before it still miss.

    Parameters
    ----------
    n_trees : `int`, optional
        The number of regression trees (K in [1]).
    max_tree_depth : `int`, optional
        The maximum number of node levels of every tree. A tree of depth
        ``d`` has at most ``2 ** (d - 1)`` leaves.
    n_pixels : `int`, optional
        The number of random pixel coordinates sampled in the mean shape's
        bounding box (P in [1]).
    n_split_tests : `int`, optional
        The number of random split tests drawn at every tree node (S in [1]).
    distance_prior_weighting : `float` or ``None``, optional
        Locality coefficient of the pixel pairs of the split tests (lambda in
        [1]). Lower values enforce closer pixel pairs. ``None`` or ``0``
        disables the prior.
    learning_rate : `float`, optional
        The shrinkage factor applied to every tree (nu in [1]).

    References
    ----------
    .. [1] V. Kazemi, and J. Sullivan. "One millisecond face alignment with
        an ensemble of regression trees", Proceedings of the IEEE Conference
        on Computer Vision and Pattern Recognition (CVPR), 2014.
    """
    def __init__(self, n_trees=500, max_tree_depth=5, n_pixels=400,
                 n_split_tests=20, distance_prior_weighting=0.1,
                 learning_rate=0.08):
        self.n_trees = check_positive_int(n_trees, 'n_trees', minimum=0)
        self.max_tree_depth = check_positive_int(max_tree_depth,
                                                 'max_tree_depth')
        self.n_pixels = check_positive_int(n_pixels, 'n_pixels')
        self.n_split_tests = check_positive_int(n_split_tests,
                                                'n_split_tests', minimum=0)
        self.distance_prior_weighting = check_distance_prior_weighting(
            distance_prior_weighting)
        self.learning_rate = check_learning_rate(learning_rate)

        self.mean_shape = None
        self.mean_residual = None
        self.pixel_coordinates = None
        self.trees = []

    @property
    def is_trained(self):
        return self.mean_residual is not None

    @property
    def n_landmarks(self):
        r"""
        The number of landmarks of the shapes handled by the regressor.

        :type: `int`
        """
        return self.mean_shape.n_points

    def _check_trained(self):
        if not self.is_trained:
            raise ValueError('The regressor must be trained before it can '
                             'predict or be exported.')

    def _compute_intensities(self, image, shape):
        transform = estimate_similarity_transform(self.mean_shape, shape)
        return self.pixel_coordinates.read_intensities(transform, shape,
                                                       image)

    def train(self, images, gt_shapes, current_shapes, mean_shape,
              random_state=None, prefix='', verbose=False):
        r"""
        Trains the regressor on a batch of samples. Sample ``i`` consists of
        ``images[i]``, its ground truth shape ``gt_shapes[i]`` and the
        current estimate ``current_shapes[i]``.

        Parameters
        ----------
        images : `list` of `menpo.image.Image`
            The image of every sample. The same image may appear several
            times.
        gt_shapes : `list` of `menpo.shape.PointCloud`
            The ground truth shape of every sample.
        current_shapes : `list` of `menpo.shape.PointCloud`
            The current estimate of every sample.
        mean_shape : `menpo.shape.PointCloud`
            The reference shape in whose frame the pixel coordinates are
            sampled.
        random_state : `int`, `numpy.random.RandomState` or ``None``
            The random number generator shared by the pixel sampling and the
            tree training.
        prefix : `str`, optional
            The prefix of the progress reports.
        verbose : `bool`, optional
            If ``True``, the training progress is printed.

        Returns
        -------
        predictions : ``(n_samples, n_landmarks, 2)`` `ndarray`
            The residual predicted for every training sample.
        """
        check_training_batch(images, gt_shapes, current_shapes, mean_shape)
        random_state = check_random_state(random_state)
        n_samples = len(current_shapes)

        self.mean_shape = PointCloud(as_points(mean_shape))
        coordinates = sample_pixel_coordinates(self.mean_shape,
                                               self.n_pixels, random_state)
        self.pixel_coordinates = PixelCoordinates.from_absolute(
            self.mean_shape, coordinates)

        residuals = np.empty((n_samples, self.n_landmarks, 2))
        intensities = np.empty((n_samples, self.n_pixels))
        wrap = partial(print_progress,
                       prefix='{}Extracting pixel intensities'.format(prefix),
                       n_items=n_samples, end_with_newline=not prefix,
                       verbose=verbose)
        samples = zip(images, gt_shapes, current_shapes)
        for i, (image, gt_s, c_s) in enumerate(wrap(samples)):
            residuals[i] = as_points(gt_s) - as_points(c_s)
            intensities[i] = self._compute_intensities(image, c_s)

        # the mean residual is the base learner of the ensemble
        self.mean_residual = residuals.mean(axis=0)
        predictions = np.repeat(self.mean_residual[None], n_samples, axis=0)

        self.trees = []
        tree_predictions = None
        for k in range(self.n_trees):
            if verbose:
                print_dynamic('{}Building tree {}/{}'.format(
                    prefix, k + 1, self.n_trees))
            if k == 0:
                residuals -= self.mean_residual
            else:
                residuals -= self.learning_rate * tree_predictions
            tree = RegressionTree(
                max_tree_depth=self.max_tree_depth,
                n_split_tests=self.n_split_tests,
                distance_prior_weighting=self.distance_prior_weighting)
            tree_predictions = tree.train(intensities, residuals,
                                          pixel_coordinates=coordinates,
                                          random_state=random_state)
            self.trees.append(tree)
            predictions += self.learning_rate * tree_predictions

        if verbose and self.n_trees > 0:
            print_dynamic('{}Built {} trees.\n'.format(prefix, self.n_trees))
        return predictions

    def predict(self, image, shape):
        r"""
        Predicts the residual that moves ``shape`` towards the true shape in
        ``image``. The regressor is not modified.

        Parameters
        ----------
        image : `menpo.image.Image`
            The image.
        shape : `menpo.shape.PointCloud`
            The current estimate of the shape in ``image``.

        Returns
        -------
        residual : ``(n_landmarks, 2)`` `ndarray`
            The predicted correction of ``shape``.
        """
        self._check_trained()
        check_landmark_correspondence(self.mean_shape, shape,
                                      names=('mean_shape', 'shape'))
        intensities = self._compute_intensities(image, shape)
        residual = self.mean_residual.copy()
        for tree in self.trees:
            residual += tree.predict(intensities) * self.learning_rate
        return residual

    def copy(self):
        r"""
        Returns a deep copy of the regressor.
        """
        return deepcopy(self)

    def as_record(self):
        r"""
        Exports every field needed to reproduce :meth:`predict` as a `dict`
        of fixed width arrays.
        """
        self._check_trained()
        return {
            'mean_shape': np.array(self.mean_shape.points, dtype=np.float64),
            'mean_residual': np.array(self.mean_residual, dtype=np.float64),
            'learning_rate': float(self.learning_rate),
            'pixel_coordinates': np.array(self.pixel_coordinates.offsets,
                                          dtype=np.float64),
            'closest_landmarks': np.array(
                self.pixel_coordinates.closest_landmarks, dtype=np.int32),
            'n_trees': len(self.trees),
            'trees': [t.as_record() for t in self.trees],
            'parameters': {
                'max_tree_depth': self.max_tree_depth,
                'n_split_tests': self.n_split_tests,
                'distance_prior_weighting': self.distance_prior_weighting}
        }

    @classmethod
    def from_record(cls, record):
        r"""
        Builds a trained regressor from a record created by
        :meth:`as_record`.

        Raises
        ------
        MalformedModelError
            The record is missing fields, its arrays have inconsistent sizes
            or the declared number of trees differs from the stored trees.
        """
        if not isinstance(record, dict):
            raise MalformedModelError('A regressor record must be a dict, '
                                      'got {}'.format(type(record).__name__))
        missing = [k for k in _REGRESSOR_RECORD_KEYS if k not in record]
        if missing:
            raise MalformedModelError('Regressor record is missing the '
                                      'fields {}'.format(missing))

        mean_shape = np.array(record['mean_shape'], dtype=np.float64)
        mean_residual = np.array(record['mean_residual'], dtype=np.float64)
        offsets = np.array(record['pixel_coordinates'], dtype=np.float64)
        closest_landmarks = np.array(record['closest_landmarks'],
                                     dtype=np.int32)
        trees = record['trees']
        n_trees = int(record['n_trees'])

        if mean_shape.ndim != 2 or mean_shape.shape[1] != 2:
            raise MalformedModelError('mean_shape must be (n_landmarks, 2), '
                                      'got {}'.format(mean_shape.shape))
        n_landmarks = mean_shape.shape[0]
        if mean_residual.shape != mean_shape.shape:
            raise MalformedModelError(
                'mean_residual {} does not match mean_shape {}'.format(
                    mean_residual.shape, mean_shape.shape))
        if (offsets.ndim != 2 or offsets.shape[1] != 2 or
                closest_landmarks.shape != (offsets.shape[0],)):
            raise MalformedModelError(
                'pixel_coordinates {} and closest_landmarks {} are '
                'inconsistent'.format(offsets.shape, closest_landmarks.shape))
        if closest_landmarks.size > 0 and (
                closest_landmarks.min() < 0 or
                closest_landmarks.max() >= n_landmarks):
            raise MalformedModelError('closest_landmarks references '
                                      'landmarks that do not exist')
        if n_trees != len(trees):
            raise MalformedModelError(
                'Regressor record declares {} trees but stores {}'.format(
                    n_trees, len(trees)))

        forest = [RegressionTree.from_record(t) for t in trees]
        for k, tree in enumerate(forest):
            if tree.n_landmarks != n_landmarks:
                raise MalformedModelError(
                    'Tree {} predicts {} landmarks instead of {}'.format(
                        k, tree.n_landmarks, n_landmarks))
            if tree.split_features.max() >= offsets.shape[0]:
                raise MalformedModelError(
                    'Tree {} references pixels that do not exist'.format(k))

        try:
            learning_rate = check_learning_rate(record['learning_rate'])
        except ValueError as e:
            raise MalformedModelError('Regressor record has an invalid '
                                      'learning rate: {}'.format(e))

        parameters = record.get('parameters', {})
        try:
            regressor = cls(n_trees=n_trees, **parameters)
        except (TypeError, ValueError) as e:
            raise MalformedModelError('Regressor record has invalid '
                                      'parameters: {}'.format(e))
        regressor.n_pixels = offsets.shape[0]
        regressor.learning_rate = learning_rate
        regressor.mean_shape = PointCloud(mean_shape)
        regressor.mean_residual = mean_residual
        regressor.pixel_coordinates = PixelCoordinates(offsets,
                                                       closest_landmarks)
        regressor.trees = forest
        return regressor

    def __str__(self):
        if not self.is_trained:
            state = 'untrained'
        else:
            state = '{} landmarks'.format(self.n_landmarks)
        return ('Ensemble of {} regression trees of depth {} over {} pixels, '
                'learning rate {} ({})'.format(
                    self.n_trees, self.max_tree_depth, self.n_pixels,
                    self.learning_rate, state))
