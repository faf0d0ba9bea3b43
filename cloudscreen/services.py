"""
Auxiliary data consumed by the classification, behind small interfaces.

Production systems plug in their own water mask, DEM, sea-ice climatology and
geocoding; the gridded implementations here wrap regular lat/lon grids held
as ``xarray.DataArray`` objects (dims ``lat``, ``lon``) and answer by
nearest neighbour.
"""
import enum
import logging
from typing import NamedTuple, Protocol

import numpy as np
import xarray

from cloudscreen import constants
from cloudscreen.geometry import GeoPos, distance

_LOG = logging.getLogger(__name__)


class WaterSample(enum.IntEnum):
    LAND = 0
    WATER = 1
    INVALID = 2


class SeaIceClassification(NamedTuple):
    max_concentration: np.ndarray


class WaterMaskService(Protocol):
    def water_fraction(self, lat, lon):
        """Water fraction 0-100 per position, values above 100 mean no data."""

    def water_sample(self, lat, lon):
        """:class:`WaterSample` code per position."""


class ElevationService(Protocol):
    def elevation(self, lat, lon):
        """Height above the geoid in metres."""


class SeaIceService(Protocol):
    def classification(self, lat, lon) -> SeaIceClassification:
        """Climatological sea-ice concentration."""


class GeoCoding(Protocol):
    def pixel_to_geo(self, x, y) -> GeoPos:
        """Position of pixel centre(s)."""

    def geo_to_pixel(self, lat, lon):
        """(x, y) of the nearest pixel."""


def _nearest(grid: xarray.DataArray, lat, lon):
    lat = np.asarray(lat, dtype=np.float64)
    lon = np.asarray(lon, dtype=np.float64)
    shape = np.broadcast(lat, lon).shape
    points = {
        'lat': xarray.DataArray(np.broadcast_to(lat, shape).ravel(), dims='points'),
        'lon': xarray.DataArray(np.broadcast_to(lon, shape).ravel(), dims='points'),
    }
    return grid.sel(points, method='nearest').values.reshape(shape)


class GriddedWaterMask(object):
    """Water fraction grid (0 land, 100 water, in between coastline)."""

    def __init__(self, fraction: xarray.DataArray):
        self.fraction = fraction

    def water_fraction(self, lat, lon):
        fraction = _nearest(self.fraction, lat, lon).astype(np.float64)
        fraction = np.where(np.isfinite(fraction), fraction, constants.WATER_FRACTION_NODATA)
        return fraction

    def water_sample(self, lat, lon):
        fraction = self.water_fraction(lat, lon)
        return np.select([fraction > 100, fraction > 0],
                         [WaterSample.INVALID, WaterSample.WATER],
                         default=WaterSample.LAND)


class GriddedElevation(object):
    def __init__(self, height: xarray.DataArray):
        self.height = height

    def elevation(self, lat, lon):
        return _nearest(self.height, lat, lon).astype(np.float64)


class GriddedSeaIce(object):
    def __init__(self, concentration: xarray.DataArray):
        self.concentration = concentration

    def classification(self, lat, lon) -> SeaIceClassification:
        return SeaIceClassification(max_concentration=_nearest(self.concentration, lat, lon).astype(np.float64))


class ArrayGeoCoding(object):
    """Geocoding from per-pixel latitude/longitude arrays (rows = y)."""

    def __init__(self, latitude, longitude):
        self.latitude = np.asarray(latitude, dtype=np.float64)
        self.longitude = np.asarray(longitude, dtype=np.float64)
        if self.latitude.shape != self.longitude.shape:
            raise ValueError('latitude and longitude arrays differ in shape')

    @property
    def shape(self):
        return self.latitude.shape

    def pixel_to_geo(self, x, y) -> GeoPos:
        x = np.clip(np.asarray(x, dtype=np.intp), 0, self.shape[1] - 1)
        y = np.clip(np.asarray(y, dtype=np.intp), 0, self.shape[0] - 1)
        return GeoPos(lat=self.latitude[y, x], lon=self.longitude[y, x])

    def geo_to_pixel(self, lat, lon):
        flat = np.nanargmin(distance(self.longitude, self.latitude, lon, lat))
        y, x = np.unravel_index(flat, self.shape)
        return int(x), int(y)
