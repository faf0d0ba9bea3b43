"""
Static lookup tables used by the threshold tests and the geometry.

All lookups clamp their indices to the table range: the tables are defined
over a finite physical range and anything outside it takes the nearest bucket.
"""
import logging
from pathlib import Path
from typing import NamedTuple

import numpy as np

from cloudscreen import constants
from cloudscreen.errors import LookupTableError

_LOG = logging.getLogger(__name__)

AUXDATA_DIR = Path(__file__).absolute().parent / 'auxdata'
VZA_FILE_NAME = 'view_zenith.txt'
VZA_TABLE_LENGTH = 2048

FMFT_BT_OFFSET = 200.0
TMFT_BT_STEP = 10.0


def _frozen(values, dtype=np.float64):
    array = np.array(values, dtype=dtype)
    array.flags.writeable = False
    return array


def read_view_zenith_table(path=None):
    """
    Read the view zenith angle per scan column (tab separated ``index  vza``).

    Signed angles, negative on the left of the nadir column. The packaged
    table is a symmetric scan geometry approximation (-68.5 to 68.5 degrees)
    rather than a measured one; pass ``path`` to use another.
    """
    path = Path(path) if path is not None else AUXDATA_DIR / VZA_FILE_NAME
    try:
        with open(path, 'r') as table_file:
            rows = [line.split('\t') for line in table_file if line.strip()]
        vza = [float(row[1]) for row in rows[:VZA_TABLE_LENGTH]]
    except (OSError, IndexError, ValueError) as err:
        raise LookupTableError(f"Failed to load view zenith table {path}: {err}") from err
    if len(vza) != VZA_TABLE_LENGTH:
        raise LookupTableError(f"View zenith table {path} has {len(vza)} rows, expected {VZA_TABLE_LENGTH}")
    return _frozen(vza)


class LookupTables(NamedTuple):
    """Read-only tables, built once per process and shared by every worker."""
    fmft: np.ndarray
    tmft_min: np.ndarray
    tmft_max: np.ndarray
    view_zenith: np.ndarray

    @classmethod
    def load(cls, vza_path=None):
        tables = cls(fmft=_frozen(constants.FMFT_THRESHOLDS),
                     tmft_min=_frozen(constants.TMFT_MIN_THRESHOLDS),
                     tmft_max=_frozen(constants.TMFT_MAX_THRESHOLDS),
                     view_zenith=read_view_zenith_table(vza_path))
        tables.validate()
        _LOG.debug('Loaded lookup tables (%d FMFT, %dx%d TMFT, %d VZA entries)',
                   tables.fmft.size, *tables.tmft_max.shape, tables.view_zenith.size)
        return tables

    def validate(self):
        if self.tmft_min.shape != self.tmft_max.shape:
            raise LookupTableError('TMFT min and max tables differ in shape')
        if np.any(self.tmft_min > self.tmft_max):
            raise LookupTableError('TMFT min table exceeds max table')

    def fmft_at(self, index):
        index = np.clip(index, 0, self.fmft.size - 1)
        return self.fmft[index]

    def fmft_threshold(self, bt4):
        """FMFT threshold for channel 4 brightness temperature (K), one bucket per kelvin from 200 K."""
        index = np.floor(np.nan_to_num(np.asarray(bt4, dtype=np.float64) - FMFT_BT_OFFSET))
        return self.fmft_at(np.clip(index, -1, self.fmft.size).astype(np.intp))

    def tmft_at(self, row, col):
        rows, cols = self.tmft_max.shape
        row = np.clip(row, 0, rows - 1)
        col = np.clip(col, 0, cols - 1)
        return self.tmft_min[row, col], self.tmft_max[row, col]

    def tmft_bounds(self, bt4, bt34):
        """
        TMFT envelope (min, max) of ``bt3 - bt4``.

        Rows step through bt4 in 10 K buckets from 200 K, columns through
        bt34 in 1 K buckets starting below -1 K.
        """
        rows, cols = self.tmft_max.shape
        row = np.floor(np.nan_to_num(np.asarray(bt4, dtype=np.float64) - FMFT_BT_OFFSET) / TMFT_BT_STEP)
        col = np.floor(np.nan_to_num(np.asarray(bt34, dtype=np.float64))) + 1
        return self.tmft_at(np.clip(row, -1, rows).astype(np.intp),
                            np.clip(col, -1, cols).astype(np.intp))

    def vza_for_columns(self, columns, width):
        """
        Absolute view zenith angle per image column.

        Full resolution swaths index the table directly, narrower (e.g. GAC)
        swaths are spread evenly over it.
        """
        columns = np.asarray(columns)
        size = self.view_zenith.size
        if width == size:
            index = columns
        else:
            index = np.rint(columns * (size - 1) / max(width - 1, 1)).astype(np.intp)
        return np.abs(self.view_zenith[np.clip(index, 0, size - 1)])
