"""
Sun and satellite geometry on a spherical earth.

Angles are passed in degrees unless the name says otherwise. Every argument
of an inverse cosine is clamped to [-1, 1] first, since rounding can push it
just outside and produce NaN.
"""
import math
from typing import NamedTuple

import ephem
import numpy as np
from pandas import Timedelta, to_datetime

from cloudscreen import constants


class GeoPos(NamedTuple):
    lat: float
    lon: float


def _clamped_arccos(arg):
    return np.arccos(np.clip(arg, -1.0, 1.0))


def sun_position(when) -> GeoPos:
    """
    Sub-solar point for a date.

    Product names only carry the acquisition date, so the sun is placed at
    12:00 UTC of that day. The latitude is good to a fraction of a degree;
    the longitude is wrong by 15 degrees per hour between noon and the
    actual overpass time.
    """
    noon = to_datetime(when).normalize() + Timedelta(hours=12)

    observer = ephem.Observer()
    # pylint: disable=assigning-non-slot
    observer.lat = 0.0
    observer.lon = 0.0
    observer.date = noon.to_pydatetime()
    sun = ephem.Sun(observer)

    # hour angle at greenwich is sidereal time minus right ascension
    lon = math.degrees(sun.ra - observer.sidereal_time())
    lon = (lon + 180.0) % 360.0 - 180.0
    return GeoPos(lat=math.degrees(sun.dec), lon=lon)


def great_circle(point: GeoPos, other: GeoPos):
    """Central angle (radians) between two positions."""
    lat1, lon1 = np.radians(point.lat), np.radians(point.lon)
    lat2, lon2 = np.radians(other.lat), np.radians(other.lon)
    return _clamped_arccos(np.cos(lat1) * np.cos(lat2) * np.cos(lon1 - lon2) + np.sin(lat1) * np.sin(lat2))


def _azimuth(point: GeoPos, target: GeoPos, central_angle):
    """Bearing (radians, clockwise from north) from point towards target, given their separation."""
    lat_p = np.radians(point.lat)
    lat_t = np.radians(target.lat)
    with np.errstate(divide='ignore', invalid='ignore'):
        arg = (np.sin(lat_t) - np.sin(lat_p) * np.cos(central_angle)) / (np.cos(lat_p) * np.sin(central_angle))
    # poles and coincident points give 0/0, any bearing is as good as north there
    arg = np.where(np.isfinite(arg), arg, 1.0)
    azimuth = _clamped_arccos(arg)
    west = np.sin(np.radians(target.lon) - np.radians(point.lon)) < 0.0
    return np.where(west, 2.0 * np.pi - azimuth, azimuth)


def sun_azimuth(sza, point: GeoPos, sun: GeoPos):
    """Solar azimuth (radians) at ``point``, the sun zenith angle being the separation from the sub-solar point."""
    return _azimuth(point, sun, np.radians(sza))


def view_azimuth(vza, point: GeoPos, satellite: GeoPos):
    """
    Satellite azimuth (radians) at ``point``.

    Zero at nadir (|vza| below 0.09 degrees) or when the pixel is the nadir pixel.
    """
    separation = great_circle(point, satellite)
    azimuth = _azimuth(point, satellite, separation)
    defined = (np.abs(vza) >= constants.NEAR_NADIR_VZA) & (separation > 0.0)
    return np.where(defined, azimuth, 0.0)


def relative_azimuth_range(saa_rad, vaa_rad):
    """``|saa - vaa|`` after wrapping the difference into [-pi, pi] (radians)."""
    relative = np.asarray(saa_rad, dtype=np.float64) - vaa_rad
    relative = np.where(relative < -np.pi, relative + 2.0 * np.pi, relative)
    relative = np.where(relative > np.pi, relative - 2.0 * np.pi, relative)
    return np.abs(relative)


class AzimuthAngles(NamedTuple):
    saa: np.ndarray
    vaa: np.ndarray
    relative: np.ndarray


def azimuth_angles(sza, vza, satellite: GeoPos, point: GeoPos, sun: GeoPos) -> AzimuthAngles:
    """Sun azimuth, view azimuth and relative azimuth, all in degrees."""
    saa = sun_azimuth(sza, point, sun)
    vaa = view_azimuth(vza, point, satellite)
    return AzimuthAngles(saa=np.degrees(saa),
                         vaa=np.degrees(vaa),
                         relative=np.degrees(relative_azimuth_range(saa, vaa)))


def relative_azimuth(sza, vza, satellite: GeoPos, point: GeoPos, sun: GeoPos):
    """Relative azimuth (degrees, in [0, 180]) between sun and satellite as seen from ``point``."""
    return azimuth_angles(sza, vza, satellite, point, sun).relative


def satellite_position(latitude, longitude) -> GeoPos:
    """Nadir track of a swath: the middle column of each scan line (rows along axis 0)."""
    latitude = np.asarray(latitude)
    longitude = np.asarray(longitude)
    nadir = latitude.shape[-1] // 2
    return GeoPos(lat=latitude[..., nadir:nadir + 1], lon=longitude[..., nadir:nadir + 1])


def distance(lon1, lat1, lon2, lat2):
    """Great circle distance in metres (haversine form, mean earth radius)."""
    phi1 = np.radians(lat1)
    phi2 = np.radians(lat2)
    half_dphi = 0.5 * (phi2 - phi1)
    half_dlam = 0.5 * np.radians(np.asarray(lon2, dtype=np.float64) - lon1)
    a = np.sin(half_dphi) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(half_dlam) ** 2
    a = np.clip(a, 0.0, 1.0)
    return constants.EARTH_RADIUS_M * 2.0 * np.arctan2(np.sqrt(a), np.sqrt(1.0 - a))


def math_angle(azimuth_deg):
    """Geographic azimuth (clockwise from north) to mathematical angle (counter-clockwise from east)."""
    azimuth_deg = np.asarray(azimuth_deg, dtype=np.float64)
    return np.where(azimuth_deg < 90.0, 90.0 - azimuth_deg, 450.0 - azimuth_deg)


def specular_angle(sza, vza, relazi):
    """Angle (degrees) between the view direction and the direction of specular sun reflection."""
    sza = np.radians(sza)
    vza = np.radians(vza)
    cos_glint = np.cos(sza) * np.cos(vza) - np.sin(sza) * np.sin(vza) * np.cos(np.radians(relazi))
    return np.degrees(_clamped_arccos(cos_glint))
