import numpy as np

from .base import as_points
from .shape import shape_relative_pixel_coordinates


def greyscale_pixels(image):
    r"""
    Returns the single channel ``(height, width)`` pixel array of an image.
    RGB images are converted using luminosity, any other multi-channel image
    is read through its first channel.
    """
    if image.n_channels == 3:
        image = image.as_greyscale(mode='luminosity')
    return image.pixels[0]


def read_pixel_intensities(image, points, fill_value=0.):
    r"""
    Reads the intensities of an image at sub-pixel accurate locations.

    Every location is resolved to the pixel that contains it (the floor of
    its coordinates). Locations that fall outside of the image are given
    ``fill_value`` instead of raising.

    Parameters
    ----------
    image : `menpo.image.Image` or ``(height, width)`` `ndarray`
        The image to be read.
    points : ``(n_points, 2)`` `ndarray`
        The ``(y, x)`` locations to be read.
    fill_value : `float`, optional
        The intensity of out of bounds locations.

    Returns
    -------
    intensities : ``(n_points,)`` `ndarray`
        The intensity at every location.
    """
    if isinstance(image, np.ndarray):
        pixels = image
    else:
        pixels = greyscale_pixels(image)
    points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    height, width = pixels.shape

    with np.errstate(invalid='ignore'):
        indices = np.floor(points)
        inside = (np.isfinite(indices).all(axis=1) &
                  (indices[:, 0] >= 0) & (indices[:, 0] < height) &
                  (indices[:, 1] >= 0) & (indices[:, 1] < width))

    intensities = np.full(points.shape[0], fill_value, dtype=np.float64)
    rows = indices[inside, 0].astype(np.intp)
    cols = indices[inside, 1].astype(np.intp)
    intensities[inside] = pixels[rows, cols]
    return intensities


def sample_pixel_coordinates(mean_shape, n_pixels, random_state):
    r"""
    Draws random pixel coordinates uniformly within the bounding box of the
    mean shape. Each axis is drawn independently.

    Parameters
    ----------
    mean_shape : `menpo.shape.PointCloud`
        The shape whose bounding box defines the sampling region.
    n_pixels : `int`
        The number of coordinates to draw.
    random_state : `numpy.random.RandomState`
        The random number generator.

    Returns
    -------
    coordinates : ``(n_pixels, 2)`` `ndarray`
        The drawn absolute coordinates.
    """
    points = as_points(mean_shape)
    min_b = points.min(axis=0)
    max_b = points.max(axis=0)
    return random_state.uniform(low=min_b, high=max_b, size=(n_pixels, 2))


class PixelCoordinates(object):
    r"""
    Shape-indexed pixel coordinates. Each coordinate is stored as an offset
    from its closest landmark of the mean shape, so that it can be
    re-projected onto any other estimate of the shape.

    Parameters
    ----------
    offsets : ``(n_pixels, 2)`` `ndarray`
        The offset of each coordinate from its landmark.
    closest_landmarks : ``(n_pixels,)`` `ndarray`
        The landmark index of each coordinate.
    """
    def __init__(self, offsets, closest_landmarks):
        self.offsets = np.require(offsets, dtype=np.float64).reshape(-1, 2)
        self.closest_landmarks = np.require(closest_landmarks, dtype=np.int32)

    @classmethod
    def from_absolute(cls, mean_shape, coordinates):
        r"""
        Encodes absolute coordinates, given in the frame of ``mean_shape``,
        relative to their closest landmark.
        """
        offsets, closest_landmarks = shape_relative_pixel_coordinates(
            mean_shape, coordinates)
        return cls(offsets, closest_landmarks)

    @property
    def n_pixels(self):
        r"""
        The number of pixel coordinates.

        :type: `int`
        """
        return self.offsets.shape[0]

    def absolute(self, mean_shape):
        r"""
        The coordinates in the frame of ``mean_shape``.
        """
        return self.offsets + as_points(mean_shape)[self.closest_landmarks]

    def project(self, transform, shape):
        r"""
        Projects the coordinates onto ``shape``. The offsets are mapped
        through the linear part of ``transform`` (the similarity from the mean
        shape to ``shape``) and added to the landmarks they are attached to.
        """
        linear = transform.h_matrix[:2, :2]
        return (self.offsets.dot(linear.T) +
                as_points(shape)[self.closest_landmarks])

    def read_intensities(self, transform, shape, image, fill_value=0.):
        r"""
        Reads the intensities of ``image`` at the coordinates projected onto
        ``shape``.

        Parameters
        ----------
        transform : `menpo.transform.Similarity`
            The similarity from the mean shape to ``shape``.
        shape : `menpo.shape.PointCloud`
            The current estimate of the shape in ``image``.
        image : `menpo.image.Image`
            The image.
        fill_value : `float`, optional
            The intensity of coordinates that fall outside of the image.

        Returns
        -------
        intensities : ``(n_pixels,)`` `ndarray`
            The pixel intensities.
        """
        return read_pixel_intensities(image, self.project(transform, shape),
                                      fill_value=fill_value)
