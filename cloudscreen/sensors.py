"""
Sensor profiles: calibration constants and decision thresholds per platform.

A profile is selected once, when a run is set up, and passed explicitly to
the per-pixel code. Asking for an unknown platform is a configuration error.
"""
import logging
import re
from datetime import date
from typing import NamedTuple, Tuple

from pandas import to_datetime

from cloudscreen.errors import ConfigurationError

_LOG = logging.getLogger(__name__)


class SensorProfile(NamedTuple):
    """
    Everything the classification needs to know about one AVHRR platform.

    ``solar_irradiance`` (F) and ``response_width`` (W) are given for the three
    solar channels (1, 2, 3b). Brightness temperature thresholds are in kelvin.
    """
    name: str
    noaa_id: str
    solar_irradiance: Tuple[float, float, float]
    response_width: Tuple[float, float, float]
    ew_3b: float
    a1_3b: float
    a2_3b: float

    tgct_threshold: float = 244.0
    # tunable placeholders, like the RGCT and desert tables below
    rrct_threshold: float = 1.1
    c3at_threshold: float = 0.06
    emissivity_threshold: float = 0.022
    lat_max_threshold: float = 60.0

    # snow/ice consistency test applied after classification
    snow_rt3_cloud: float = 0.08
    snow_bt4_range: Tuple[float, float] = (233.0, 274.5)
    snow_refl1_min: float = 0.25
    snow_ratio_range: Tuple[float, float] = (0.85, 1.15)
    snow_rt3_max: float = 0.02

    # Reflectance gross cloud test: channel 1 reflectance threshold (on [0, 1])
    # per NDVI bucket, one more threshold than bucket edges. Not calibrated.
    rgct_ndvi_edges: Tuple[float, ...] = (-0.05, 0.0, 0.05, 0.1, 0.15, 0.25)
    rgct_thresholds: Tuple[float, ...] = (0.30, 0.27, 0.24, 0.21, 0.18, 0.15, 0.12)

    # Bright desert geofences as (lat_min, lat_max, lon_min, lon_max): Sahara,
    # Arabian peninsula, central Asia and central Australia. Tunable as well.
    desert_regions: Tuple[Tuple[float, float, float, float], ...] = (
        (15.0, 33.0, -17.0, 33.0),
        (15.0, 32.0, 35.0, 60.0),
        (36.0, 47.0, 52.0, 75.0),
        (-31.0, -19.0, 120.0, 142.0),
    )

    def validate(self):
        if len(self.rgct_thresholds) != len(self.rgct_ndvi_edges) + 1:
            raise ConfigurationError(f"{self.name}: RGCT needs one more threshold than NDVI bucket edges")
        if any(high <= low for low, high in zip(self.rgct_ndvi_edges, self.rgct_ndvi_edges[1:])):
            raise ConfigurationError(f"{self.name}: RGCT bucket edges must be increasing")
        for lat_min, lat_max, lon_min, lon_max in self.desert_regions:
            if lat_min > lat_max or lon_min > lon_max:
                raise ConfigurationError(f"{self.name}: empty desert region "
                                         f"{(lat_min, lat_max, lon_min, lon_max)}")
        return self


NOAA11 = SensorProfile(
    name='NOAA11',
    noaa_id='11',
    solar_irradiance=(184.1, 241.1, 241.1),
    response_width=(0.1130, 0.229, 0.229),
    ew_3b=278.85792,
    a1_3b=-1.738973,
    a2_3b=1.003354,
)

NOAA14 = SensorProfile(
    name='NOAA14',
    noaa_id='14',
    solar_irradiance=(221.42, 252.29, 252.29),
    response_width=(0.136, 0.245, 0.245),
    ew_3b=284.69366,
    a1_3b=-1.88533,
    a2_3b=1.003839,
)

PROFILES = {profile.noaa_id: profile for profile in (NOAA11, NOAA14)}

_SENSOR_ID = re.compile(r'^(?:noaa)?[-_ ]?(\d{1,2})$', re.IGNORECASE)
_PRODUCT_NAME = re.compile(r'ao(\d{2})(\d{6})')


def get_profile(sensor_id) -> SensorProfile:
    """
    Look up the profile for a sensor identifier.

    Accepts ``'14'``, ``14``, ``'NOAA14'``, ``'noaa-14'`` and similar spellings.
    """
    match = _SENSOR_ID.match(str(sensor_id).strip())
    if match is None or match.group(1).zfill(2) not in PROFILES:
        raise ConfigurationError(f"Unknown sensor {sensor_id!r}, expected one of "
                                 f"{sorted('NOAA' + key for key in PROFILES)}")
    return PROFILES[match.group(1).zfill(2)].validate()


def parse_product_name(name: str) -> Tuple[str, date]:
    """
    Extract the platform number and acquisition date from a product name.

    Product names look like ``ao11060992103109_120417.l1b`` (``subset_of_`` and
    similar prefixes are tolerated): two digits of NOAA platform followed by
    the acquisition date as DDMMYY.
    """
    match = _PRODUCT_NAME.search(name)
    if match is None:
        raise ConfigurationError(f"Cannot find platform and date in product name {name!r}")
    noaa_id, ddmmyy = match.groups()
    try:
        acquired = to_datetime(ddmmyy, format='%d%m%y').date()
    except ValueError as err:
        raise ConfigurationError(f"Invalid date {ddmmyy!r} in product name {name!r}") from err
    _LOG.debug('Product %s: NOAA%s acquired %s', name, noaa_id, acquired)
    return noaa_id, acquired


def day_of_year(when) -> int:
    return to_datetime(when).dayofyear
