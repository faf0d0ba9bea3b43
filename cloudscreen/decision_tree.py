"""
Threshold tests on the derived physical quantities.

Each test is a vectorised boolean function. ``evaluate`` runs the whole tree
and combines the tests into the cloud and snow/ice predicates:

    cloud_snow_check = not TMFT_clear and (  RGCT and FMFT
                                          or desert and (FMFT or |lat| < 60)
                                          or RRCT and FMFT
                                          or RRCT and C3AT )
    cloud = cloud_snow_check and emissivity3b > threshold
    snow  = cloud_snow_check and emissivity3b < threshold

Bright land, desert and generic scenes each get an independent sufficient
condition. Reflectances (refl_1, refl_2) are normalised albedos in percent,
temperatures are in kelvin. NaN inputs make every test False.
"""
from typing import NamedTuple

import numpy as np

from cloudscreen.radiometry import normalised_difference
from cloudscreen.sensors import SensorProfile
from cloudscreen.tables import LookupTables


def _land(land, like):
    return np.broadcast_to(np.asarray(land, dtype=bool), np.shape(like))


def desert(lat, lon, regions):
    """True inside any of the rectangular ``(lat_min, lat_max, lon_min, lon_max)`` geofences."""
    lat = np.asarray(lat, dtype=np.float64)
    lon = np.asarray(lon, dtype=np.float64)
    inside = np.zeros(np.broadcast(lat, lon).shape, dtype=bool)
    for lat_min, lat_max, lon_min, lon_max in regions:
        inside |= (lat >= lat_min) & (lat <= lat_max) & (lon >= lon_min) & (lon <= lon_max)
    return inside


def ndvi(refl_1, refl_2):
    return normalised_difference(refl_2, refl_1)


def rgct_threshold(vegetation_index, profile: SensorProfile):
    """Channel 1 reflectance threshold (on [0, 1]) for the NDVI bucket."""
    index = np.searchsorted(profile.rgct_ndvi_edges, np.nan_to_num(vegetation_index), side='right')
    return np.asarray(profile.rgct_thresholds)[index]


def rgct(refl_1, refl_2, land, profile: SensorProfile):
    """Reflectance gross cloud test: bright in channel 1 for its vegetation index."""
    threshold = rgct_threshold(ndvi(refl_1, refl_2), profile)
    with np.errstate(invalid='ignore'):
        return _land(land, refl_1) & (refl_1 / 100.0 > threshold)


def rrct(refl_1, refl_2, land, is_desert, profile: SensorProfile):
    """Reflectance ratio cloud test: flat visible/near-infrared ratio outside deserts."""
    with np.errstate(divide='ignore', invalid='ignore'):
        return _land(land, refl_1) & ~is_desert & (refl_2 / refl_1 < profile.rrct_threshold)


def c3at(rho3b, land, is_desert, profile: SensorProfile):
    """Channel 3b albedo test."""
    with np.errstate(invalid='ignore'):
        return _land(land, rho3b) & ~is_desert & (rho3b > profile.c3at_threshold)


def tgct(bt_4, profile: SensorProfile):
    """Thermal gross cloud test: cold channel 4."""
    with np.errstate(invalid='ignore'):
        return np.asarray(bt_4) < profile.tgct_threshold


def fmft(bt_4, bt_5, tables: LookupTables):
    """Four minus five test: split window difference above the temperature dependent threshold."""
    with np.errstate(invalid='ignore'):
        return (bt_4 - bt_5) > tables.fmft_threshold(bt_4)


def tmft_clear(bt_3, bt_4, tables: LookupTables):
    """Three minus four test: True where bt3 - bt4 lies inside the clear-sky envelope."""
    bt_34 = bt_3 - bt_4
    low, high = tables.tmft_bounds(bt_4, bt_34)
    with np.errstate(invalid='ignore'):
        return (bt_34 >= low) & (bt_34 <= high)


def emissivity_cloud(emissivity3b, profile: SensorProfile):
    with np.errstate(invalid='ignore'):
        return np.asarray(emissivity3b) > profile.emissivity_threshold


def emissivity_snow(emissivity3b, profile: SensorProfile):
    with np.errstate(invalid='ignore'):
        return np.asarray(emissivity3b) < profile.emissivity_threshold


class DecisionTreeResult(NamedTuple):
    rgct: np.ndarray
    rrct: np.ndarray
    c3at: np.ndarray
    tgct: np.ndarray
    fmft: np.ndarray
    tmft_clear: np.ndarray
    desert: np.ndarray
    emissivity_cloud: np.ndarray
    cloud_snow_check: np.ndarray
    cloud: np.ndarray
    snow_ice: np.ndarray


def evaluate(derived, land, lat, lon, profile: SensorProfile, tables: LookupTables) -> DecisionTreeResult:
    """
    Run every test and combine them.

    ``derived`` is a :class:`cloudscreen.radiometry.DerivedQuantities`, ``land``
    a boolean mask broadcastable to it.
    """
    is_desert = desert(lat, lon, profile.desert_regions)
    rgct_ = rgct(derived.refl_1, derived.refl_2, land, profile)
    rrct_ = rrct(derived.refl_1, derived.refl_2, land, is_desert, profile)
    c3at_ = c3at(derived.rho3b, land, is_desert, profile)
    fmft_ = fmft(derived.bt_4, derived.bt_5, tables)
    tmft_ = tmft_clear(derived.bt_3, derived.bt_4, tables)
    below_lat_max = np.abs(np.asarray(lat, dtype=np.float64)) < profile.lat_max_threshold

    check = ~tmft_ & ((rgct_ & fmft_)
                      | (is_desert & (fmft_ | below_lat_max))
                      | (rrct_ & fmft_)
                      | (rrct_ & c3at_))
    check &= np.asarray(derived.valid, dtype=bool)

    emissive = emissivity_cloud(derived.emissivity3b, profile)
    return DecisionTreeResult(rgct=rgct_,
                              rrct=rrct_,
                              c3at=c3at_,
                              tgct=tgct(derived.bt_4, profile),
                              fmft=fmft_,
                              tmft_clear=tmft_,
                              desert=is_desert,
                              emissivity_cloud=emissive,
                              cloud_snow_check=check,
                              cloud=check & emissive,
                              snow_ice=check & emissivity_snow(derived.emissivity3b, profile))
