import menpo.io as mio

from .base import MalformedModelError
from .fitter import ERT
from .regressor import Regressor


# bumped whenever the layout of the persisted records changes
ERTFIT_BINARY_VERSION = 0


def _wrap_record(record_type, payload):
    return {'binary_version': ERTFIT_BINARY_VERSION,
            'type': record_type,
            'record': payload}


def _unwrap_record(record, record_type):
    if not isinstance(record, dict):
        raise MalformedModelError('The file does not contain an ertfit '
                                  'record')
    missing = [k for k in ('binary_version', 'type', 'record')
               if k not in record]
    if missing:
        raise MalformedModelError('The ertfit record is missing the fields '
                                  '{}'.format(missing))
    if record['binary_version'] != ERTFIT_BINARY_VERSION:
        raise MalformedModelError(
            'Unsupported ertfit binary version {} (expected {})'.format(
                record['binary_version'], ERTFIT_BINARY_VERSION))
    if record['type'] != record_type:
        raise MalformedModelError('Expected a {} record, found a {} '
                                  'record'.format(record_type,
                                                  record['type']))
    return record['record']


def export_regressor(regressor, fp, overwrite=False):
    r"""
    Exports a trained :map:`Regressor` to a pickle file.

    Parameters
    ----------
    regressor : :map:`Regressor`
        The trained regressor.
    fp : `Path` or `str`
        The ``.pkl`` (or ``.pkl.gz``) file to write.
    overwrite : `bool`, optional
        If ``True``, an existing file is overwritten.
    """
    mio.export_pickle(_wrap_record('Regressor', regressor.as_record()), fp,
                      overwrite=overwrite)


def import_regressor(fp):
    r"""
    Imports a :map:`Regressor` exported with :func:`export_regressor`.

    Raises
    ------
    MalformedModelError
        The file holds a record of another version or type, or a record that
        is inconsistent.
    """
    return Regressor.from_record(_unwrap_record(mio.import_pickle(fp),
                                                'Regressor'))


def export_ert(ert, fp, overwrite=False):
    r"""
    Exports a trained :map:`ERT` cascade to a pickle file.

    Parameters
    ----------
    ert : :map:`ERT`
        The trained cascade.
    fp : `Path` or `str`
        The ``.pkl`` (or ``.pkl.gz``) file to write.
    overwrite : `bool`, optional
        If ``True``, an existing file is overwritten.
    """
    mio.export_pickle(_wrap_record('ERT', ert.as_record()), fp,
                      overwrite=overwrite)


def import_ert(fp):
    r"""
    Imports an :map:`ERT` cascade exported with :func:`export_ert`.

    Raises
    ------
    MalformedModelError
        The file holds a record of another version or type, or a record that
        is inconsistent.
    """
    return ERT.from_record(_unwrap_record(mio.import_pickle(fp), 'ERT'))
