import numpy as np
from menpo.shape import PointCloud
from menpo.transform import Similarity

from .base import as_points
from .checks import check_landmark_correspondence


def estimate_similarity_transform(source, target):
    r"""
    Estimates the similarity transform (rotation, uniform scale and
    translation) that best maps ``source`` onto ``target`` in the least
    squares sense [1].

    Both shapes are centred on their centroids and the rotation is recovered
    from the singular value decomposition of their cross-covariance. If the
    optimal orthogonal map is a reflection, the sign of the smallest singular
    direction is flipped so that a proper rotation is always returned. If the
    source has no spread (all points coincide) the scale defaults to ``1``.

    Parameters
    ----------
    source : `menpo.shape.PointCloud` or ``(n_landmarks, 2)`` `ndarray`
        The shape to be mapped.
    target : `menpo.shape.PointCloud` or ``(n_landmarks, 2)`` `ndarray`
        The shape to map onto. It must have the same landmarks as
        ``source``.

    Returns
    -------
    transform : `menpo.transform.Similarity`
        The similarity transform from ``source`` to ``target``.

    Raises
    ------
    ValueError
        The shapes do not have the same number of landmarks.

    References
    ----------
    .. [1] S. Umeyama. "Least-squares estimation of transformation parameters
        between two point patterns", IEEE Transactions on Pattern Analysis
        and Machine Intelligence, 13(4), 1991.
    """
    check_landmark_correspondence(source, target,
                                  names=('source', 'target'))
    source = as_points(source)
    target = as_points(target)
    n_points = source.shape[0]

    mean_source = source.mean(axis=0)
    mean_target = target.mean(axis=0)
    centred_source = source - mean_source
    centred_target = target - mean_target

    covariance = centred_source.T.dot(centred_target) / n_points
    source_variance = np.sum(centred_source ** 2) / n_points

    u, d, vt = np.linalg.svd(covariance)

    # correct reflection, if any
    s = np.ones(2)
    det_covariance = np.linalg.det(covariance)
    det_uv = np.linalg.det(u) * np.linalg.det(vt)
    if det_covariance < 0 or (det_covariance == 0 and det_uv < 0):
        if d[1] < d[0]:
            s[1] = -1
        else:
            s[0] = -1

    # points are rows, so the rotation acts as x' = R x on each of them
    rotation = vt.T.dot(np.diag(s)).dot(u.T)
    scale = 1.
    if source_variance > 0:
        scale = np.sum(d * s) / source_variance

    translation = mean_target - scale * rotation.dot(mean_source)

    h_matrix = np.eye(3)
    h_matrix[:2, :2] = scale * rotation
    h_matrix[:2, 2] = translation
    return Similarity(h_matrix)


def similarity_parameters(transform):
    r"""
    Decomposes a 2D similarity transform into its parameters.

    Parameters
    ----------
    transform : `menpo.transform.Similarity`
        The transform to decompose.

    Returns
    -------
    scale : `float`
        The uniform scale.
    theta : `float`
        The rotation angle in radians, measured from the first to the second
        axis.
    translation : ``(2,)`` `ndarray`
        The translation.
    """
    linear = transform.h_matrix[:2, :2]
    scale = np.sqrt(np.abs(np.linalg.det(linear)))
    theta = np.arctan2(linear[1, 0], linear[0, 0])
    return scale, theta, transform.h_matrix[:2, 2].copy()


def find_closest_landmark_index(shape, point):
    r"""
    Returns the index of the landmark of ``shape`` that is closest to
    ``point``. Ties are resolved in favour of the lowest index.
    """
    points = as_points(shape)
    d2 = np.sum((points - np.asarray(point, dtype=np.float64)) ** 2, axis=1)
    return int(np.argmin(d2))


def shape_relative_pixel_coordinates(shape, coordinates):
    r"""
    Expresses absolute coordinates relative to their closest landmark.

    Parameters
    ----------
    shape : `menpo.shape.PointCloud` or ``(n_landmarks, 2)`` `ndarray`
        The shape providing the landmarks.
    coordinates : ``(n_coordinates, 2)`` `ndarray`
        The absolute coordinates, in the frame of ``shape``.

    Returns
    -------
    relative_coordinates : ``(n_coordinates, 2)`` `ndarray`
        The offset of each coordinate from its closest landmark.
    closest_landmarks : ``(n_coordinates,)`` `ndarray`
        The index of the closest landmark of each coordinate.
    """
    points = as_points(shape)
    coordinates = np.asarray(coordinates, dtype=np.float64).reshape(-1, 2)
    closest_landmarks = np.array(
        [find_closest_landmark_index(points, c) for c in coordinates],
        dtype=np.int32)
    relative_coordinates = coordinates - points[closest_landmarks]
    return relative_coordinates, closest_landmarks


def bounding_box_points(shape):
    r"""
    Returns the 4 corners of the axis aligned bounding box of a shape, in
    clockwise order starting from the minimum corner.
    """
    points = as_points(shape)
    min_b = points.min(axis=0)
    max_b = points.max(axis=0)
    return PointCloud(np.array([[min_b[0], min_b[1]],
                                [max_b[0], min_b[1]],
                                [max_b[0], max_b[1]],
                                [min_b[0], max_b[1]]]))

