from .base import MalformedModelError, ERTBuilderWarning
from .shape import (estimate_similarity_transform, similarity_parameters,
                    find_closest_landmark_index,
                    shape_relative_pixel_coordinates)
from .feature import (PixelCoordinates, read_pixel_intensities,
                      sample_pixel_coordinates)
from .tree import RegressionTree
from .regressor import Regressor
from .fitter import (ERT, TrainingShapeInitialiser,
                     noisy_shape_from_bounding_box,
                     align_shape_with_bounding_box)
from .result import Result, ERTResult
from .io import export_regressor, import_regressor, export_ert, import_ert


from ._version import __version__
