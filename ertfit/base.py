import numpy as np
from menpo.shape import PointCloud


class MalformedModelError(ValueError):
    r"""
    Raised when a persisted model record is structurally inconsistent, e.g.
    the declared number of trees does not match the stored tree records.
    """
    pass


def as_points(shape):
    r"""
    Returns the ``(n_points, n_dims)`` `ndarray` behind a shape.

    Parameters
    ----------
    shape : `menpo.shape.PointCloud` or `ndarray`
        The shape.

    Returns
    -------
    points : ``(n_points, n_dims)`` `ndarray`
        The points of the shape as float64.
    """
    if isinstance(shape, PointCloud):
        return shape.points
    return np.asarray(shape, dtype=np.float64)


class ERTBuilderWarning(Warning):
    r"""
    A warning that the parameters chosen to build a model may cause
    unexpected behaviour.
    """
    pass
