import numpy as np
import pytest
import xarray as xr

from cloudscreen.radiometry import bt_to_radiance
from cloudscreen.tables import LookupTables

# NOAA-14, acquired 1 July 1995
PRODUCT_NAME = 'ao14010795115300_120417.l1b'


@pytest.fixture(scope='session')
def tables():
    return LookupTables.load()


@pytest.fixture
def make_observation():
    """
    Factory for a uniform scene: every pixel sees the same surface.

    Defaults describe clear land at 50N seen with the sun 30 degrees from zenith.
    """
    def _make(shape=(3, 3), bt_3=250.5, bt_4=250.0, bt_5=245.0, albedo_1=20.0, albedo_2=25.0,
              sza=30.0, lat=50.0, lon=10.0, water_fraction=0.0, **extra):
        def full(value):
            return np.broadcast_to(np.asarray(value, dtype=np.float64), shape).copy()

        variables = {
            'sza': full(sza),
            'latitude': full(lat),
            'longitude': full(lon),
            'albedo_1': full(albedo_1),
            'albedo_2': full(albedo_2),
            'radiance_3': full(bt_to_radiance(bt_3, 3)),
            'radiance_4': full(bt_to_radiance(bt_4, 4)),
            'radiance_5': full(bt_to_radiance(bt_5, 5)),
            'water_fraction': full(water_fraction),
        }
        variables.update({name: full(value) for name, value in extra.items()})
        return xr.Dataset({name: (('y', 'x'), values) for name, values in variables.items()},
                          attrs={'product_name': PRODUCT_NAME})
    return _make
