import numpy as np
import pytest
import xarray as xr

from cloudscreen import constants
from cloudscreen.classifier import PixelClassifier
from cloudscreen.config import ClassificationConfig
from cloudscreen.neuralnet import ConstantNet
from cloudscreen.radiometry import bt_to_radiance


@pytest.mark.parametrize('nn_value', [1.0, 3.0, 4.0, 4.8])
def test_invalid_bit_setting(sample_data, tables, nn_value):
    """
    If the invalid bit (bit 0) is set, all other bits should be 0, after the
    neighbourhood passes too.
    """
    classifier = PixelClassifier(ClassificationConfig(), tables=tables, net=ConstantNet(nn_value))

    flags = classifier.run(sample_data)[constants.CLASSIF_BAND_NAME].values.reshape(-1)

    values_with_invalid_bit_set = flags[np.bitwise_and(flags, constants.INVALID) == constants.INVALID]
    assert values_with_invalid_bit_set.size > 0
    assert np.all(values_with_invalid_bit_set == constants.INVALID)
    assert np.any(flags != constants.INVALID)


@pytest.fixture
def sample_data():
    """16x16 scene sweeping the sun below the horizon, negative radiances and land/water edges."""
    shape = (16, 16)
    rows, cols = np.indices(shape, dtype=np.float64)
    bt_4 = 230.0 + 3.0 * cols
    radiance_4 = bt_to_radiance(bt_4, 4)
    radiance_4[::5, ::3] = -1.0
    albedo_1 = 5.0 + 4.0 * rows
    albedo_1[3, :] = np.nan

    return xr.Dataset(
        {
            'sza': (('y', 'x'), 20.0 + 5.0 * rows),
            'latitude': (('y', 'x'), 60.0 - 0.01 * rows),
            'longitude': (('y', 'x'), 5.0 + 0.015 * cols),
            'albedo_1': (('y', 'x'), albedo_1),
            'albedo_2': (('y', 'x'), 1.1 * albedo_1),
            'radiance_3': (('y', 'x'), bt_to_radiance(bt_4 + (rows % 7) - 2.0, 3)),
            'radiance_4': (('y', 'x'), radiance_4),
            'radiance_5': (('y', 'x'), bt_to_radiance(bt_4 - 1.0, 5)),
            'water_fraction': (('y', 'x'), np.where(cols < 8, 0.0, np.where(cols < 10, 50.0, 100.0))),
        }, attrs={'product_name': 'ao14010795115300_120417.l1b'})
