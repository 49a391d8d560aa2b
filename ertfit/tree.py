import numpy as np
from copy import deepcopy
from sklearn.utils import check_random_state

from .base import MalformedModelError
from .checks import check_positive_int, check_distance_prior_weighting


_TREE_RECORD_KEYS = ('split_features', 'thresholds', 'children', 'leaf_ids',
                     'leaf_residuals')


class RegressionTree(object):
    r"""
    Regression tree whose split tests compare the difference of two pixel
    intensities against a threshold and whose leaves store a constant shape
    residual. It is the weak learner of a :map:`Regressor`.

    The tree is stored as an arena of nodes: node ``0`` is the root and the
    children of a split node are referenced by their index in the arena. A
    sample goes to the right child if ``x[f0] - x[f1] > threshold``.

    Parameters
    ----------
    max_tree_depth : `int`, optional
        The maximum number of node levels. A tree of depth ``1`` is a single
        leaf, a tree of depth ``d`` has at most ``2 ** (d - 1)`` leaves.
    n_split_tests : `int`, optional
        The number of random split tests drawn at every split node. The one
        that best reduces the residual variance is kept.
    distance_prior_weighting : `float` or ``None``, optional
        Locality coefficient of the pixel pairs used by the split tests. A
        random pair is accepted with probability ``exp(-d / weighting)``,
        where ``d`` is the distance between the two pixels normalised by the
        diagonal of the region they are sampled from. Lower values enforce
        closer pixel pairs. If ``None`` or ``0``, pairs are drawn uniformly.
    """
    def __init__(self, max_tree_depth=5, n_split_tests=20,
                 distance_prior_weighting=0.1):
        self.max_tree_depth = check_positive_int(max_tree_depth,
                                                 'max_tree_depth')
        self.n_split_tests = check_positive_int(n_split_tests,
                                                'n_split_tests', minimum=0)
        self.distance_prior_weighting = check_distance_prior_weighting(
            distance_prior_weighting)
        self.split_features = None
        self.thresholds = None
        self.children = None
        self.leaf_ids = None
        self.leaf_residuals = None

    @property
    def is_trained(self):
        return self.leaf_residuals is not None

    @property
    def n_nodes(self):
        r"""
        The number of nodes (split nodes and leaves) of the tree.

        :type: `int`
        """
        return self.children.shape[0]

    @property
    def n_leaves(self):
        r"""
        The number of leaves of the tree.

        :type: `int`
        """
        return self.leaf_residuals.shape[0]

    @property
    def n_landmarks(self):
        r"""
        The number of landmarks of the residuals predicted by the tree.

        :type: `int`
        """
        return self.leaf_residuals.shape[1]

    def train(self, intensities, residuals, pixel_coordinates=None,
              random_state=None):
        r"""
        Grows the tree greedily so that it predicts ``residuals`` from
        ``intensities``.

        Parameters
        ----------
        intensities : ``(n_samples, n_pixels)`` `ndarray`
            The pixel intensities of every training sample.
        residuals : ``(n_samples, n_landmarks, 2)`` `ndarray`
            The shape residual to be predicted for every training sample.
        pixel_coordinates : ``(n_pixels, 2)`` `ndarray`, optional
            The location of every pixel in the mean shape frame, used by the
            locality prior of the pixel pairs. If ``None``, pairs are drawn
            uniformly.
        random_state : `int`, `numpy.random.RandomState` or ``None``
            The random number generator.

        Returns
        -------
        predictions : ``(n_samples, n_landmarks, 2)`` `ndarray`
            The residual that the trained tree predicts for every training
            sample.
        """
        random_state = check_random_state(random_state)
        intensities = np.asarray(intensities, dtype=np.float64)
        residuals = np.asarray(residuals, dtype=np.float64)
        if intensities.shape[0] != residuals.shape[0]:
            raise ValueError('intensities and residuals must have the same '
                             'number of samples, got {} and {}'.format(
                                 intensities.shape[0], residuals.shape[0]))
        self._setup_pair_sampling(intensities.shape[1], pixel_coordinates)

        self._nodes = []
        self._leaves = []
        sample_ids = np.arange(intensities.shape[0])
        self._grow(intensities, residuals, sample_ids, 1, random_state)

        nodes = self._nodes
        self.split_features = np.array([n[0] for n in nodes],
                                       dtype=np.int32).reshape(-1, 2)
        self.thresholds = np.array([n[1] for n in nodes], dtype=np.float64)
        self.children = np.array([n[2] for n in nodes],
                                 dtype=np.int32).reshape(-1, 2)
        self.leaf_ids = np.array([n[3] for n in nodes], dtype=np.int32)
        self.leaf_residuals = np.array(self._leaves, dtype=np.float64)
        del (self._nodes, self._leaves, self._n_pixels,
             self._pair_coordinates, self._pair_scale)
        self._freeze()
        return self.predict(intensities)

    def _setup_pair_sampling(self, n_pixels, pixel_coordinates):
        self._n_pixels = n_pixels
        self._pair_coordinates = None
        self._pair_scale = 1.
        if pixel_coordinates is not None and self.distance_prior_weighting:
            coordinates = np.asarray(pixel_coordinates, dtype=np.float64)
            if coordinates.shape != (n_pixels, 2):
                raise ValueError('pixel_coordinates must be a ({}, 2) '
                                 'array'.format(n_pixels))
            diagonal = np.linalg.norm(coordinates.max(axis=0) -
                                      coordinates.min(axis=0))
            self._pair_coordinates = coordinates
            if diagonal > 0:
                self._pair_scale = diagonal

    def _sample_pixel_pair(self, random_state):
        while True:
            f0, f1 = random_state.randint(self._n_pixels, size=2)
            if f0 == f1:
                continue
            if self._pair_coordinates is None:
                return f0, f1
            distance = np.linalg.norm(self._pair_coordinates[f0] -
                                      self._pair_coordinates[f1])
            distance /= self._pair_scale
            if (random_state.uniform() <
                    np.exp(-distance / self.distance_prior_weighting)):
                return f0, f1

    def _best_split(self, intensities, residuals, sample_ids, random_state):
        if self._n_pixels < 2:
            return None
        x = intensities[sample_ids]
        r = residuals[sample_ids].reshape(len(sample_ids), -1)
        n_samples = len(sample_ids)
        total = r.sum(axis=0)

        best_split, best_score = None, -np.inf
        one_sided = None
        for _ in range(self.n_split_tests):
            f0, f1 = self._sample_pixel_pair(random_state)
            difference = x[:, f0] - x[:, f1]
            threshold = random_state.uniform(difference.min(),
                                             difference.max())
            right = difference > threshold
            n_right = np.count_nonzero(right)
            n_left = n_samples - n_right
            # kept only if no test separates the samples
            if n_right == 0 or n_left == 0:
                if one_sided is None:
                    one_sided = (f0, f1, threshold, right)
                continue
            sum_right = r[right].sum(axis=0)
            sum_left = total - sum_right
            score = (sum_left.dot(sum_left) / n_left +
                     sum_right.dot(sum_right) / n_right)
            if score > best_score:
                best_score = score
                best_split = (f0, f1, threshold, right)
        if best_split is None:
            return one_sided
        return best_split

    def _grow(self, intensities, residuals, sample_ids, depth, random_state):
        node = len(self._nodes)
        self._nodes.append(None)

        split = None
        if depth < self.max_tree_depth and len(sample_ids) > 0:
            split = self._best_split(intensities, residuals, sample_ids,
                                     random_state)

        if split is None:
            if len(sample_ids) > 0:
                value = residuals[sample_ids].mean(axis=0)
            else:
                value = np.zeros(residuals.shape[1:])
            self._nodes[node] = ((-1, -1), 0., (-1, -1), len(self._leaves))
            self._leaves.append(value)
            return node

        f0, f1, threshold, right = split
        left_child = self._grow(intensities, residuals, sample_ids[~right],
                                depth + 1, random_state)
        right_child = self._grow(intensities, residuals, sample_ids[right],
                                 depth + 1, random_state)
        self._nodes[node] = ((f0, f1), threshold, (left_child, right_child),
                             -1)
        return node

    def _freeze(self):
        for a in (self.split_features, self.thresholds, self.children,
                  self.leaf_ids, self.leaf_residuals):
            a.flags.writeable = False

    def apply(self, intensities):
        r"""
        Returns the index of the leaf reached by every sample.

        Parameters
        ----------
        intensities : ``(n_samples, n_pixels)`` `ndarray`
            The pixel intensities of the samples.

        Returns
        -------
        leaf_ids : ``(n_samples,)`` `ndarray`
            The leaf reached by every sample.
        """
        if not self.is_trained:
            raise ValueError('The tree must be trained before it can '
                             'predict.')
        x = np.atleast_2d(np.asarray(intensities, dtype=np.float64))
        nodes = np.zeros(x.shape[0], dtype=np.intp)
        active = np.nonzero(self.children[nodes, 0] >= 0)[0]
        while active.size > 0:
            n = nodes[active]
            features = self.split_features[n]
            difference = (x[active, features[:, 0]] -
                          x[active, features[:, 1]])
            right = difference > self.thresholds[n]
            nodes[active] = np.where(right, self.children[n, 1],
                                     self.children[n, 0])
            active = active[self.children[nodes[active], 0] >= 0]
        return self.leaf_ids[nodes]

    def predict(self, intensities):
        r"""
        Predicts the shape residual of one or more samples. The prediction is
        always the residual stored in exactly one leaf.

        Parameters
        ----------
        intensities : ``(n_pixels,)`` or ``(n_samples, n_pixels)`` `ndarray`
            The pixel intensities.

        Returns
        -------
        residual : ``(n_landmarks, 2)`` or ``(n_samples, n_landmarks, 2)`` `ndarray`
            The predicted residual(s).
        """
        intensities = np.asarray(intensities, dtype=np.float64)
        leaf_ids = self.apply(intensities)
        if intensities.ndim == 1:
            return self.leaf_residuals[leaf_ids[0]]
        return self.leaf_residuals[leaf_ids]

    def copy(self):
        return deepcopy(self)

    def as_record(self):
        r"""
        Exports the trained tree as a `dict` of fixed width arrays.
        """
        if not self.is_trained:
            raise ValueError('Only trained trees can be exported.')
        return {'split_features': np.array(self.split_features),
                'thresholds': np.array(self.thresholds),
                'children': np.array(self.children),
                'leaf_ids': np.array(self.leaf_ids),
                'leaf_residuals': np.array(self.leaf_residuals)}

    @classmethod
    def from_record(cls, record):
        r"""
        Builds a trained tree from a record created by :meth:`as_record`.

        Raises
        ------
        MalformedModelError
            The record is missing fields or its node arena is inconsistent.
        """
        if not isinstance(record, dict):
            raise MalformedModelError('A tree record must be a dict, got '
                                      '{}'.format(type(record).__name__))
        missing = [k for k in _TREE_RECORD_KEYS if k not in record]
        if missing:
            raise MalformedModelError('Tree record is missing the fields '
                                      '{}'.format(missing))
        split_features = np.array(record['split_features'], dtype=np.int32)
        thresholds = np.array(record['thresholds'], dtype=np.float64)
        children = np.array(record['children'], dtype=np.int32)
        leaf_ids = np.array(record['leaf_ids'], dtype=np.int32)
        leaf_residuals = np.array(record['leaf_residuals'], dtype=np.float64)

        n_nodes = thresholds.shape[0] if thresholds.ndim == 1 else -1
        if (n_nodes < 1 or split_features.shape != (n_nodes, 2) or
                children.shape != (n_nodes, 2) or
                leaf_ids.shape != (n_nodes,)):
            raise MalformedModelError(
                'Tree record has inconsistent node arrays: split_features {}, '
                'thresholds {}, children {}, leaf_ids {}'.format(
                    split_features.shape, thresholds.shape, children.shape,
                    leaf_ids.shape))
        if leaf_residuals.ndim != 3 or leaf_residuals.shape[2] != 2:
            raise MalformedModelError(
                'Tree record leaf_residuals must be (n_leaves, n_landmarks, '
                '2), got {}'.format(leaf_residuals.shape))
        n_leaves = leaf_residuals.shape[0]
        for node in range(n_nodes):
            left, right = children[node]
            if left < 0 and right < 0:
                if not 0 <= leaf_ids[node] < n_leaves:
                    raise MalformedModelError(
                        'Leaf node {} references leaf {} but only {} leaves '
                        'are stored'.format(node, leaf_ids[node], n_leaves))
            elif not (node < left < n_nodes and node < right < n_nodes):
                raise MalformedModelError(
                    'Split node {} has invalid children ({}, {})'.format(
                        node, left, right))
            elif leaf_ids[node] != -1 or split_features[node].min() < 0:
                raise MalformedModelError(
                    'Split node {} is not a valid split test'.format(node))

        tree = cls()
        tree.split_features = split_features
        tree.thresholds = thresholds
        tree.children = children
        tree.leaf_ids = leaf_ids
        tree.leaf_residuals = leaf_residuals
        tree._freeze()
        return tree

    def __str__(self):
        if not self.is_trained:
            return 'Untrained regression tree'
        return 'Regression tree with {} nodes and {} leaves'.format(
            self.n_nodes, self.n_leaves)
