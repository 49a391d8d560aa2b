from functools import wraps, partial
import numpy as np

from menpo.shape import PointCloud


def pointcloud_to_points(wrapped):
    @wraps(wrapped)
    def wrapper(*args, **kwargs):
        args = [a.points if isinstance(a, PointCloud) else a for a in args]
        for key in kwargs:
            if isinstance(kwargs[key], PointCloud):
                kwargs[key] = kwargs[key].points
        return wrapped(*args, **kwargs)
    return wrapper


def bb_area(shape):
    height, width = np.max(shape, axis=0) - np.min(shape, axis=0)
    return height * width


def bb_perimeter(shape):
    height, width = np.max(shape, axis=0) - np.min(shape, axis=0)
    return 2 * (height + width)


def bb_avg_edge_length(shape):
    # 0.5(w + h) = (2w + 2h) / 4
    height, width = np.max(shape, axis=0) - np.min(shape, axis=0)
    return 0.5 * (height + width)


def bb_diagonal(shape):
    height, width = np.max(shape, axis=0) - np.min(shape, axis=0)
    return np.sqrt(width ** 2 + height ** 2)


bb_norm_types = {
    'avg_edge_length': bb_avg_edge_length,
    'perimeter': bb_perimeter,
    'diagonal': bb_diagonal,
    'area': bb_area
}


@pointcloud_to_points
def root_mean_square_error(shape, gt_shape):
    r"""
    Root mean square error between the coordinates of two shapes.
    """
    return np.sqrt(np.mean((np.ravel(shape) - np.ravel(gt_shape)) ** 2))


@pointcloud_to_points
def euclidean_error(shape, gt_shape):
    r"""
    Mean point-to-point Euclidean distance between two shapes.
    """
    return np.mean(np.sqrt(np.sum((np.asarray(shape) -
                                   np.asarray(gt_shape)) ** 2, axis=-1)))


@pointcloud_to_points
def bb_normalised_error(shape_error_f, shape, gt_shape, norm_shape=None,
                        norm_type='avg_edge_length'):
    r"""
    Computes ``shape_error_f`` between two shapes, normalised by a measure of
    the bounding box of ``norm_shape`` (by default the ground truth shape).

    Parameters
    ----------
    shape_error_f : `callable`
        The error between the two shapes.
    shape : `menpo.shape.PointCloud` or `ndarray`
        The fitted shape.
    gt_shape : `menpo.shape.PointCloud` or `ndarray`
        The ground truth shape.
    norm_shape : `menpo.shape.PointCloud` or `ndarray`, optional
        The shape whose bounding box normalises the error.
    norm_type : ``{'avg_edge_length', 'perimeter', 'diagonal', 'area'}``
        The bounding box measure.

    Raises
    ------
    ValueError
        Unknown ``norm_type``.
    """
    if norm_type not in bb_norm_types:
        raise ValueError('norm_type must be one of '
                         '{avg_edge_length, perimeter, diagonal, area}.')
    if norm_shape is None:
        norm_shape = gt_shape
    return (shape_error_f(shape, gt_shape) /
            bb_norm_types[norm_type](norm_shape))


root_mean_square_bb_normalised_error = partial(bb_normalised_error,
                                               root_mean_square_error)

euclidean_bb_normalised_error = partial(bb_normalised_error, euclidean_error)


def compute_cumulative_error(errors, bins):
    r"""
    Returns the proportion of ``errors`` that are lower than or equal to each
    value of ``bins``.
    """
    errors = np.asarray(errors)
    n_errors = errors.size
    return [np.count_nonzero(errors <= x) / n_errors for x in bins]


def compute_statistics(errors):
    r"""
    Returns the mean, standard deviation and median of a set of errors.
    """
    return np.mean(errors), np.std(errors), np.median(errors)
