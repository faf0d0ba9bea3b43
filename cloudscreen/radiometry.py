"""
Conversions between albedo, radiance and brightness temperature.

Everything here is elementwise numpy, so scalars and whole rasters go through
the same code. Radiances are in mW/(m^2 sr cm^-1), albedos in percent,
brightness temperatures in kelvin.

Physically impossible inputs (sun below the horizon, non-positive radiance)
produce NaN rather than raising; the classifier turns NaN into INVALID.
"""
import logging
from typing import NamedTuple

import numpy as np

from cloudscreen import constants
from cloudscreen.sensors import SensorProfile

_LOG = logging.getLogger(__name__)

SOLAR_CHANNELS = (1, 2, 3)
THERMAL_CHANNELS = (3, 4, 5)


def distance_correction(doy):
    """Earth-sun distance correction ``1 + 0.033 cos(2 pi doy / 365)``."""
    return 1.0 + 0.033 * np.cos(2.0 * np.pi * np.asarray(doy, dtype=np.float64) / 365.0)


def _cos_sza(sza):
    cos_sza = np.cos(np.radians(np.asarray(sza, dtype=np.float64)))
    return np.where(cos_sza > 0.0, cos_sza, np.nan)


def conversion_factor(sza, profile: SensorProfile, channel: int, doy):
    """
    Radiance per percent albedo, ``F / (100 pi W cos(sza) d)``.

    NaN where the sun is at or below the horizon.
    """
    if channel not in SOLAR_CHANNELS:
        raise ValueError(f"Channel {channel} has no solar calibration")
    index = channel - 1
    return profile.solar_irradiance[index] / (
        100.0 * np.pi * profile.response_width[index] * _cos_sza(sza) * distance_correction(doy))


def albedo_to_radiance(albedo, sza, profile: SensorProfile, channel: int, doy):
    return np.asarray(albedo, dtype=np.float64) * conversion_factor(sza, profile, channel, doy)


def radiance_to_albedo(radiance, sza, profile: SensorProfile, channel: int, doy):
    return np.asarray(radiance, dtype=np.float64) / conversion_factor(sza, profile, channel, doy)


def normalised_albedo(albedo, sza, doy):
    """Albedo (%) normalised by sun distance and illumination, ``albedo / (d cos(sza))``."""
    return np.asarray(albedo, dtype=np.float64) / (distance_correction(doy) * _cos_sza(sza))


def planck(wavenumber, temperature):
    """Blackbody radiance at a wavenumber (cm^-1) and temperature (K)."""
    temperature = np.asarray(temperature, dtype=np.float64)
    with np.errstate(divide='ignore', over='ignore', invalid='ignore'):
        return constants.PLANCK_C1 * wavenumber ** 3 / np.expm1(constants.PLANCK_C2 * wavenumber / temperature)


def bt_to_radiance(bt, channel: int):
    return planck(constants.WAVENUMBER[channel], bt)


def radiance_to_bt(radiance, channel: int):
    """Inverse Planck: ``c2 nu / ln(1 + c1 nu^3 / L)``; NaN for non-positive radiance."""
    nu = constants.WAVENUMBER[channel]
    radiance = np.asarray(radiance, dtype=np.float64)
    radiance = np.where(radiance > 0.0, radiance, np.nan)
    return constants.PLANCK_C2 * nu / np.log1p(constants.PLANCK_C1 * nu ** 3 / radiance)


def channel3_thermal_radiance(bt4, profile: SensorProfile):
    """Emitted part of the channel 3b radiance, estimated from the channel 4 temperature."""
    effective = profile.a1_3b + profile.a2_3b * np.asarray(bt4, dtype=np.float64)
    return planck(constants.WAVENUMBER[3], effective)


def channel3_solar_radiance(sza, profile: SensorProfile, doy):
    """Channel 3b radiance of a perfect lambertian reflector."""
    return (1000.0 * constants.SOLAR_3B / profile.ew_3b) * _cos_sza(sza) / (np.pi * distance_correction(doy))


def rho3b(radiance3, bt4, sza, profile: SensorProfile, doy):
    """Reflective part of channel 3b: ``(L3 - B) / (S - B)``."""
    thermal = channel3_thermal_radiance(bt4, profile)
    solar = channel3_solar_radiance(sza, profile, doy)
    with np.errstate(divide='ignore', invalid='ignore'):
        return (np.asarray(radiance3, dtype=np.float64) - thermal) / (solar - thermal)


def emissivity3b(radiance3, bt4, profile: SensorProfile):
    """Channel 3b radiance relative to the channel 4 blackbody estimate, minus one."""
    with np.errstate(divide='ignore', invalid='ignore'):
        return np.asarray(radiance3, dtype=np.float64) / channel3_thermal_radiance(bt4, profile) - 1.0


def normalised_difference(a, b):
    with np.errstate(divide='ignore', invalid='ignore'):
        return (a - b) / (a + b)


class DerivedQuantities(NamedTuple):
    """Per pixel physical quantities; NaN wherever the pixel is invalid."""
    radiance: np.ndarray    # (5, ...) channels 1-5
    refl_1: np.ndarray      # normalised albedo, percent
    refl_2: np.ndarray
    rt_3: np.ndarray        # channel 3 albedo, radiance over the channel 3 conversion factor
    bt_3: np.ndarray        # K
    bt_4: np.ndarray
    bt_5: np.ndarray
    rho3b: np.ndarray
    emissivity3b: np.ndarray
    ndvi: np.ndarray
    ndsi: np.ndarray
    valid: np.ndarray


def all_reflectances_valid(radiance, *angles):
    """True where every radiance is a positive number and every angle is finite."""
    valid = np.all(np.isfinite(radiance) & (radiance > 0.0), axis=0)
    for angle in angles:
        valid &= np.isfinite(angle)
    return valid


def derive(albedo_1, albedo_2, radiance_3, radiance_4, radiance_5, sza, profile: SensorProfile, doy,
           vza=0.0, relazi=0.0) -> DerivedQuantities:
    """
    Compute every derived quantity from the raw observation.

    ``albedo_1``/``albedo_2`` are albedos in percent, channels 3-5 are
    radiances. A pixel is valid when all five radiances are positive, the
    albedos are non-negative and the sun and view geometry are defined.
    """
    albedo_1 = np.asarray(albedo_1, dtype=np.float64)
    albedo_2 = np.asarray(albedo_2, dtype=np.float64)
    sza = np.asarray(sza, dtype=np.float64)

    radiance = np.stack(np.broadcast_arrays(
        albedo_to_radiance(albedo_1, sza, profile, 1, doy),
        albedo_to_radiance(albedo_2, sza, profile, 2, doy),
        np.asarray(radiance_3, dtype=np.float64),
        np.asarray(radiance_4, dtype=np.float64),
        np.asarray(radiance_5, dtype=np.float64)))

    with np.errstate(invalid='ignore'):
        valid = (all_reflectances_valid(radiance, sza, vza, relazi)
                 & (albedo_1 >= 0.0) & (albedo_2 >= 0.0) & (sza < 90.0))

    radiance = np.where(valid, radiance, np.nan)
    refl_1 = np.where(valid, normalised_albedo(albedo_1, sza, doy), np.nan)
    refl_2 = np.where(valid, normalised_albedo(albedo_2, sza, doy), np.nan)
    bt_3 = radiance_to_bt(radiance[2], 3)
    bt_4 = radiance_to_bt(radiance[3], 4)
    bt_5 = radiance_to_bt(radiance[4], 5)
    reflective = rho3b(radiance[2], bt_4, sza, profile, doy)

    _LOG.debug('Derived quantities for %d of %d pixels', np.count_nonzero(valid), valid.size)

    return DerivedQuantities(radiance=radiance,
                             refl_1=refl_1,
                             refl_2=refl_2,
                             rt_3=radiance_to_albedo(radiance[2], sza, profile, 3, doy),
                             bt_3=bt_3,
                             bt_4=bt_4,
                             bt_5=bt_5,
                             rho3b=reflective,
                             emissivity3b=emissivity3b(radiance[2], bt_4, profile),
                             ndvi=normalised_difference(refl_2, refl_1),
                             ndsi=normalised_difference(refl_1 / 100.0, reflective),
                             valid=valid)
