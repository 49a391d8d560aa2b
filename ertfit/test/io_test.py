import numpy as np
from numpy.testing import assert_array_equal
import pytest
import menpo.io as mio
from menpo.image import Image
from menpo.shape import PointCloud

from ertfit import ERT, MalformedModelError
from ertfit.io import (ERTFIT_BINARY_VERSION, export_regressor,
                       import_regressor, export_ert, import_ert)
from ertfit.shape import bounding_box_points


template = np.array([[12., 12.], [12., 28.], [28., 20.]])
rng = np.random.RandomState(1)
images = [Image(rng.rand(1, 40, 40)) for _ in range(3)]
shapes = [PointCloud(template + rng.uniform(-2, 2, size=(3, 2)))
          for _ in range(3)]
ert = ERT(images, shapes, n_stages=2, n_perturbations=3, n_trees=6,
          max_tree_depth=3, n_pixels=20, n_split_tests=5, random_state=0)


def test_regressor_round_trip(tmp_path):
    path = tmp_path / 'stage.pkl'
    regressor = ert.regressors[0]
    export_regressor(regressor, path)
    loaded = import_regressor(path)
    for image, shape in zip(images, shapes):
        assert_array_equal(loaded.predict(image, shape),
                           regressor.predict(image, shape))


def test_ert_round_trip(tmp_path):
    path = tmp_path / 'ert.pkl'
    export_ert(ert, path)
    loaded = import_ert(path)
    assert loaded.n_stages == ert.n_stages
    for image, shape in zip(images, shapes):
        bounding_box = bounding_box_points(shape)
        assert_array_equal(
            loaded.fit_from_bb(image, bounding_box).final_shape.points,
            ert.fit_from_bb(image, bounding_box).final_shape.points)


def test_wrong_record_type(tmp_path):
    path = tmp_path / 'stage.pkl'
    export_regressor(ert.regressors[0], path)
    with pytest.raises(MalformedModelError):
        import_ert(path)


def test_wrong_binary_version(tmp_path):
    path = tmp_path / 'ert.pkl'
    mio.export_pickle({'binary_version': ERTFIT_BINARY_VERSION + 1,
                       'type': 'ERT', 'record': ert.as_record()}, path)
    with pytest.raises(MalformedModelError):
        import_ert(path)


def test_stage_count_mismatch(tmp_path):
    path = tmp_path / 'ert.pkl'
    record = ert.as_record()
    record['n_stages'] = 3
    mio.export_pickle({'binary_version': ERTFIT_BINARY_VERSION,
                       'type': 'ERT', 'record': record}, path)
    with pytest.raises(MalformedModelError):
        import_ert(path)


def test_tree_count_mismatch(tmp_path):
    path = tmp_path / 'stage.pkl'
    record = ert.regressors[1].as_record()
    record['trees'] = record['trees'][:-1]
    mio.export_pickle({'binary_version': ERTFIT_BINARY_VERSION,
                       'type': 'Regressor', 'record': record}, path)
    with pytest.raises(MalformedModelError):
        import_regressor(path)


def test_not_a_record(tmp_path):
    path = tmp_path / 'other.pkl'
    mio.export_pickle([1, 2, 3], path)
    with pytest.raises(MalformedModelError):
        import_regressor(path)
