import numbers
import numpy as np

from .base import as_points


def check_positive_int(value, param_name, minimum=1):
    r"""
    Checks that ``value`` is an integer that is >= ``minimum``.
    """
    if (isinstance(value, bool) or
            not isinstance(value, numbers.Integral) or value < minimum):
        raise ValueError("{} must be an int >= {}".format(param_name, minimum))
    return int(value)


def check_learning_rate(learning_rate):
    r"""
    Checks the shrinkage factor applied to every tree of a regressor, which
    must be a float in the range (0, 1].
    """
    if (not isinstance(learning_rate, numbers.Real) or
            not 0 < learning_rate <= 1):
        raise ValueError("learning_rate must be a float in (0, 1]")
    return float(learning_rate)


def check_distance_prior_weighting(distance_prior_weighting):
    r"""
    Checks the locality coefficient of the split test pair selection. It
    must be ``None`` (no locality prior) or a float >= 0.
    """
    if distance_prior_weighting is None:
        return None
    if (not isinstance(distance_prior_weighting, numbers.Real) or
            distance_prior_weighting < 0):
        raise ValueError("distance_prior_weighting must be None or a "
                         "float >= 0")
    return float(distance_prior_weighting)


def check_noise_percentage(noise_percentage):
    if isinstance(noise_percentage, numbers.Real):
        noise_percentage = [noise_percentage] * 3
    elif len(noise_percentage) == 1:
        noise_percentage = list(noise_percentage) * 3
    if (len(noise_percentage) != 3 or
            any(p < 0 for p in noise_percentage)):
        raise ValueError("noise_percentage must be a float >= 0 or a "
                         "list/tuple of 1 or 3 floats >= 0")
    return list(noise_percentage)


def check_landmark_correspondence(shape, other, names=('shape', 'other')):
    r"""
    Checks that two shapes have the same number of landmarks, so that they
    can be aligned or subtracted landmark by landmark.

    Raises
    ------
    ValueError
        The shapes do not have the same number of landmarks.
    """
    points = as_points(shape)
    other_points = as_points(other)
    if points.ndim != 2 or points.shape[1] != 2:
        raise ValueError("{} must be a 2D shape of (n_landmarks, 2) "
                         "points".format(names[0]))
    if points.shape != other_points.shape:
        raise ValueError("{} has {} landmarks but {} has {} - every shape "
                         "must have the same landmarks".format(
                             names[0], points.shape[0], names[1],
                             other_points.shape[0]))


def check_training_batch(images, gt_shapes, current_shapes, mean_shape):
    r"""
    Checks that a training batch is aligned sample by sample and that every
    shape corresponds to the mean shape.
    """
    n_samples = len(current_shapes)
    if n_samples == 0:
        raise ValueError("At least one training sample is required")
    if len(images) != n_samples or len(gt_shapes) != n_samples:
        raise ValueError("images, gt_shapes and current_shapes must have the "
                         "same length, got {}, {} and {}".format(
                             len(images), len(gt_shapes), n_samples))
    for gt_s, c_s in zip(gt_shapes, current_shapes):
        check_landmark_correspondence(mean_shape, gt_s,
                                      names=('mean_shape', 'gt_shape'))
        check_landmark_correspondence(mean_shape, c_s,
                                      names=('mean_shape', 'current_shape'))


def check_stat_type(stat_type):
    stat_types = {'mean': np.mean, 'median': np.median,
                  'max': np.max, 'min': np.min}
    if stat_type not in stat_types:
        raise ValueError("type must be 'mean', 'median', 'min' or 'max'")
    return stat_types[stat_type]
