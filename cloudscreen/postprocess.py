"""
Neighbourhood passes over the classified flag raster.

Runs on a whole merged scene (or a tile with a halo of ``halo_width``
classified pixels) in two phases. Every pass reads a snapshot and writes a
new array, so no pass sees its own partial output:

    phase 1: snow refinement, coastline refinement, cloud buffer
    phase 2: cloud shadow tracing, island fill and belt pass

INVALID pixels are never touched.
"""
import logging

import numpy as np
from scipy import ndimage

from cloudscreen import constants, geometry
from cloudscreen.sensors import get_profile

_LOG = logging.getLogger(__name__)

WINDOW = np.ones((3, 3), dtype=bool)
SURROUNDED_FRACTION = 0.7

# pixels searched for the cloud casting a shadow, along the sun direction
SHADOW_SEARCH_RADIUS = 64


def _bit(flags, bit):
    return (flags & bit) != 0


def _clear(flags, where, bits):
    flags[where] &= np.uint16(~bits & 0xFFFF)


def _any_neighbour(mask):
    return ndimage.binary_dilation(mask, structure=WINDOW)


def surrounded(mask, fraction=SURROUNDED_FRACTION):
    """
    True where at least ``fraction`` of the 3x3 window is set.

    The window always counts nine pixels; outside the raster counts as unset.
    """
    count = ndimage.convolve(mask.astype(np.uint8), WINDOW.astype(np.uint8), mode='constant', cval=0)
    return count >= fraction * WINDOW.size


def cloud_buffer(flags, width):
    """Flag the non-land, non-cloud pixels within ``width`` pixels (chessboard distance) of cloud."""
    out = flags.copy()
    cloud = _bit(flags, constants.CLOUD)
    if width <= 0 or not cloud.any():
        return out
    kernel = np.ones((2 * width + 1, 2 * width + 1), dtype=bool)
    buffer = (ndimage.binary_dilation(cloud, structure=kernel)
              & ~cloud
              & ~_bit(flags, constants.LAND)
              & ~_bit(flags, constants.INVALID))
    out[buffer] |= constants.CLOUD_BUFFER
    return out


def near_coastline(water_fraction, flags):
    """
    True where the 3x3 window mixes water fractions or holds a COASTLINE pixel.

    Edge replication keeps the window inside the raster.
    """
    water_fraction = np.asarray(water_fraction)
    differs = ((ndimage.maximum_filter(water_fraction, size=3, mode='nearest') != water_fraction)
               | (ndimage.minimum_filter(water_fraction, size=3, mode='nearest') != water_fraction))
    return differs | _any_neighbour(_bit(flags, constants.COASTLINE))


def refine_coastline(flags, near):
    """
    Suppress cloud and snow false positives caused by land/water mixed radiometry.

    Near-coastline pixels become COASTLINE and lose SNOW_ICE. They keep their
    cloud only when surrounded by cloud, or when a neighbour away from the
    coast is cloud too.
    """
    out = flags.copy()
    valid = ~_bit(flags, constants.INVALID)
    cloud = _bit(flags, constants.CLOUD)
    coastal = near & valid

    keep_cloud = surrounded(cloud) | _any_neighbour(cloud & ~near)
    out[coastal] |= constants.COASTLINE
    _clear(out, coastal, constants.SNOW_ICE)
    _clear(out, coastal & cloud & ~keep_cloud, constants.CLOUD_ANY)

    _LOG.debug('Coastline refinement removed cloud from %d pixels',
               np.count_nonzero(coastal & cloud & ~keep_cloud))
    return out


def refine_snow(flags, bt_4, refl_1, refl_2, rt_3, profile):
    """
    Turn snow/ice that is not cold, bright and spectrally flat into sure cloud.

    ``refl_1``/``refl_2`` are normalised albedos in percent.
    """
    refl_1 = np.asarray(refl_1, dtype=np.float64) / 100.0
    refl_2 = np.asarray(refl_2, dtype=np.float64) / 100.0
    bt_low, bt_high = profile.snow_bt4_range
    ratio_low, ratio_high = profile.snow_ratio_range

    with np.errstate(divide='ignore', invalid='ignore'):
        ratio = refl_2 / refl_1
        cold_bright_flat = ((bt_4 > bt_low) & (bt_4 < bt_high)
                            & (refl_1 > profile.snow_refl1_min)
                            & (ratio > ratio_low) & (ratio < ratio_high)
                            & (rt_3 < profile.snow_rt3_max))
        to_cloud = _bit(flags, constants.SNOW_ICE) & ((rt_3 > profile.snow_rt3_cloud) | ~cold_bright_flat)

    out = flags.copy()
    out[to_cloud] |= constants.CLOUD | constants.CLOUD_SURE
    _clear(out, to_cloud, constants.CLOUD_AMBIGUOUS | constants.SNOW_ICE)
    return out


def cloud_height(cloud_top_pressure):
    """Height (m) of a pressure level in an isothermal atmosphere; NaN for non-positive pressure."""
    ctp = np.asarray(cloud_top_pressure, dtype=np.float64)
    with np.errstate(divide='ignore', invalid='ignore'):
        return np.where(ctp > 0.0, -constants.SCALE_HEIGHT_M * np.log(ctp / constants.SURFACE_PRESSURE_HPA), np.nan)


def cloud_base(height, cloud, shadow_config):
    """
    Cloud base per pixel: the lowest cloud top in the 3x3 window, counting only
    cloud neighbours with a height, less ``base_offset`` and never below
    ``base_floor``. Infinite where the pixel itself has no cloud top.
    """
    tops = np.where(cloud & np.isfinite(height), height, np.inf)
    lowest = ndimage.minimum_filter(tops, size=3, mode='nearest')
    lowest[~np.isfinite(tops)] = np.inf
    return np.maximum(shadow_config.base_floor, lowest - shadow_config.base_offset)


# pylint: disable=too-many-locals
def trace_shadow(targets, height, base, candidates, sza, saa, lat, lon, margin):
    """
    First pass of the cloud shadow.

    From every candidate pixel, walk the raster one pixel per step (along the
    major axis, rounding the minor one) in the direction of the sun until the
    border. The pixel is shadowed when it meets a target cloud whose vertical
    extent ``[base - margin, height + margin]`` contains the height of the sun
    ray above that cloud.

    All origins advance together; an origin drops out once it is shadowed, has
    left the raster or sees the sun ray above every cloud top in the scene.
    """
    rows, cols = targets.shape
    shadow = np.zeros(targets.shape, dtype=bool)

    reachable = targets & np.isfinite(height)
    origin_r, origin_c = np.nonzero(candidates & np.isfinite(sza) & np.isfinite(saa))
    if not reachable.any() or origin_r.size == 0:
        return shadow
    highest = height[reachable].max() + margin

    angle = np.radians(geometry.math_angle(saa[origin_r, origin_c]))
    step_c = np.cos(angle)
    step_r = -np.sin(angle)  # rows run north to south
    norm = np.maximum(np.abs(step_c), np.abs(step_r))
    step_c /= norm
    step_r /= norm
    tan_elevation = np.tan(np.radians(90.0 - sza[origin_r, origin_c]))

    active = np.arange(origin_r.size)
    for k in range(1, max(rows, cols)):
        r = origin_r[active] + np.rint(k * step_r[active]).astype(np.intp)
        c = origin_c[active] + np.rint(k * step_c[active]).astype(np.intp)
        inside = (r >= 0) & (r < rows) & (c >= 0) & (c < cols)
        active, r, c = active[inside], r[inside], c[inside]
        if active.size == 0:
            break

        o_r, o_c = origin_r[active], origin_c[active]
        sun_height = geometry.distance(lon[o_r, o_c], lat[o_r, o_c], lon[r, c], lat[r, c]) * tan_elevation[active]
        with np.errstate(invalid='ignore'):
            hit = targets[r, c] & (sun_height >= base[r, c] - margin) & (sun_height <= height[r, c] + margin)
            above = sun_height > highest
        shadow[o_r[hit], o_c[hit]] = True
        active = active[~hit & ~above]

    return shadow


def fill_shadow(first_pass, cloud, valid):
    """
    Island and belt passes.

    A clear pixel becomes shadow when most of its 3x3 window is cloud or first
    pass shadow (islands), or when any neighbour is first pass shadow (belt).
    """
    clear = valid & ~cloud
    island = clear & (surrounded(cloud) | surrounded(first_pass))
    belt = clear & _any_neighbour(first_pass)
    return first_pass | island | belt


class SpatialPostProcessor(object):
    def __init__(self, config):
        self.config = config

    @property
    def halo_width(self):
        return self.config.halo_width(SHADOW_SEARCH_RADIUS)

    def phase_one(self, flags, water_fraction, bt_4=None, refl_1=None, refl_2=None, rt_3=None, profile=None):
        """Snow, coastline and cloud buffer passes. Returns the new flags and the near-coastline mask."""
        if self.config.snow_refinement and profile is not None and bt_4 is not None:
            flags = refine_snow(flags, bt_4, refl_1, refl_2, rt_3, profile)

        near = near_coastline(water_fraction, flags)
        if self.config.coastline_refinement:
            flags = refine_coastline(flags, near)

        still_cloud = _bit(flags, constants.CLOUD)
        flags = flags.copy()
        _clear(flags, still_cloud, constants.SNOW_ICE)

        return cloud_buffer(flags, self.config.cloud_buffer_width), near

    def phase_two(self, flags, near, cloud_top_pressure, sza, saa, lat, lon):
        """Cloud shadow. Needs the whole of phase one to be complete."""
        shadow_config = self.config.cloud_shadow
        valid = ~_bit(flags, constants.INVALID)
        cloud = _bit(flags, constants.CLOUD)

        height = cloud_height(cloud_top_pressure)
        targets = cloud & ~_bit(flags, constants.MIXED_PIXEL) & ~near
        base = cloud_base(height, cloud, shadow_config)

        first_pass = trace_shadow(targets, height, base, valid & ~cloud,
                                  np.asarray(sza, dtype=np.float64), np.asarray(saa, dtype=np.float64),
                                  np.asarray(lat, dtype=np.float64), np.asarray(lon, dtype=np.float64),
                                  shadow_config.margin)
        shadow = fill_shadow(first_pass, cloud, valid)
        _LOG.debug('Cloud shadow: %d pixels traced, %d after island and belt passes',
                   np.count_nonzero(first_pass), np.count_nonzero(shadow))

        out = flags.copy()
        out[shadow] |= constants.CLOUD_SHADOW
        return out

    def process(self, classified):
        """Post-process the flags of a classified dataset (see :meth:`PixelClassifier.classify`)."""
        flags = classified[constants.CLASSIF_BAND_NAME].values

        def band(name):
            return classified[name].values.astype(np.float64) if name in classified else None

        profile = get_profile(classified.attrs['sensor']) if 'sensor' in classified.attrs else None
        flags, near = self.phase_one(flags, band('water_fraction'),
                                     bt_4=band('bt_4'), refl_1=band('refl_1'), refl_2=band('refl_2'),
                                     rt_3=band('rt_3'), profile=profile)

        if self.config.cloud_shadow.enabled:
            if 'cloud_top_pressure' not in classified:
                _LOG.warning('Cloud shadow enabled but no cloud_top_pressure input, skipping shadow tracing')
            else:
                flags = self.phase_two(flags, near, band('cloud_top_pressure'), band('sza'), band('saa'),
                                       band('latitude'), band('longitude'))
        return flags
