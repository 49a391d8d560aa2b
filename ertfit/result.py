import numpy as np

from .checks import check_stat_type
from .error import euclidean_bb_normalised_error


class Result(object):
    r"""
    Class for storing a basic fitting result. It holds the final shape of a
    fitting process and, optionally, the initial shape, ground truth shape
    and the image.

    Parameters
    ----------
    final_shape : `menpo.shape.PointCloud`
        The final shape of the fitting process.
    image : `menpo.image.Image` or ``None``, optional
        The image on which the fitting process was applied.
    initial_shape : `menpo.shape.PointCloud` or ``None``, optional
        The initial shape from which the fitting process started.
    gt_shape : `menpo.shape.PointCloud` or ``None``, optional
        The ground truth shape associated with the image.
    """
    def __init__(self, final_shape, image=None, initial_shape=None,
                 gt_shape=None):
        self.final_shape = final_shape
        self.initial_shape = initial_shape
        self.gt_shape = gt_shape
        self.image = image

    def final_error(self, compute_error=None):
        r"""
        Returns the error between the final and the ground truth shape.

        Parameters
        -----------
        compute_error: `callable`, optional
            Callable that computes the error between two shapes. Defaults to
            the bounding box normalised point-to-point error.

        Raises
        ------
        ValueError
            Ground truth shape has not been set, so the final error cannot be
            computed
        """
        if compute_error is None:
            compute_error = euclidean_bb_normalised_error
        if self.gt_shape is None:
            raise ValueError('Ground truth shape has not been set, so the '
                             'final error cannot be computed')
        return compute_error(self.final_shape, self.gt_shape)

    def initial_error(self, compute_error=None):
        r"""
        Returns the error between the initial and the ground truth shape.

        Raises
        ------
        ValueError
            Initial shape has not been set, so the initial error cannot be
            computed
        ValueError
            Ground truth shape has not been set, so the initial error cannot be
            computed
        """
        if compute_error is None:
            compute_error = euclidean_bb_normalised_error
        if self.initial_shape is None:
            raise ValueError('Initial shape has not been set, so the initial '
                             'error cannot be computed')
        elif self.gt_shape is None:
            raise ValueError('Ground truth shape has not been set, so the '
                             'initial error cannot be computed')
        return compute_error(self.initial_shape, self.gt_shape)

    def __str__(self):
        out = "Fitting result of {} landmark points.".format(
            self.final_shape.n_points)
        if self.gt_shape is not None:
            if self.initial_shape is not None:
                out += "\nInitial error: {:.4f}".format(self.initial_error())
            out += "\nFinal error: {:.4f}".format(self.final_error())
        return out


class ERTResult(Result):
    r"""
    Result of fitting an :map:`ERT` cascade. It holds the shape estimate
    after every stage of the cascade.

    Parameters
    ----------
    shapes : `list` of `menpo.shape.PointCloud`
        The shapes of the fitting process. The first one is the initial shape
        and the ``i + 1``-th the estimate after stage ``i``.
    image : `menpo.image.Image` or ``None``, optional
        The image on which the fitting process was applied.
    gt_shape : `menpo.shape.PointCloud` or ``None``, optional
        The ground truth shape associated with the image.
    """
    def __init__(self, shapes, image=None, gt_shape=None):
        super(ERTResult, self).__init__(
            final_shape=shapes[-1], image=image, initial_shape=shapes[0],
            gt_shape=gt_shape)
        self.shapes = shapes

    @property
    def n_iters(self):
        r"""
        The number of cascade stages that were applied.

        :type: `int`
        """
        return len(self.shapes) - 1

    def errors(self, compute_error=None):
        r"""
        Returns the error of the shape at every stage, starting from the
        initial shape.

        Raises
        ------
        ValueError
            Ground truth shape has not been set, so the errors cannot be
            computed
        """
        if compute_error is None:
            compute_error = euclidean_bb_normalised_error
        if self.gt_shape is None:
            raise ValueError('Ground truth shape has not been set, so the '
                             'errors per iteration cannot be computed')
        return [compute_error(s, self.gt_shape) for s in self.shapes]

    def displacements(self):
        r"""
        The displacement of every landmark between consecutive stages.

        :type: `list` of ``(n_landmarks,)`` `ndarray`
        """
        return [np.linalg.norm(s1.points - s2.points, axis=1)
                for s1, s2 in zip(self.shapes, self.shapes[1:])]

    def displacements_stats(self, stat_type='mean'):
        r"""
        A statistic of the landmark displacements of every stage.

        Parameters
        -----------
        stat_type : ``{'mean', 'median', 'min', 'max'}``, optional
            The statistic.

        Raises
        ------
        ValueError
            type must be 'mean', 'median', 'min' or 'max'
        """
        stat = check_stat_type(stat_type)
        return [stat(d) for d in self.displacements()]

    def __str__(self):
        out = super(ERTResult, self).__str__()
        return out + "\nNumber of stages: {}".format(self.n_iters)
