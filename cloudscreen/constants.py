"""
Pixel classification flag definitions
=====================================

Each value in ``pixel_classif_flags`` is a 16 bit word. Where the INVALID bit
is set, every other bit is zero and the diagnostic bands hold NaN.

CLOUD is always the union of CLOUD_AMBIGUOUS and CLOUD_SURE. SNOW_ICE and
CLOUD_SURE are never set together (snow/ice wins).

===  =============  ==========  =======
Bit  Decimal value  Value       Meaning
===  =============  ==========  =======
0    1              1<<0        invalid (radiometric or geometric impossibility)
1    2              1<<1        cloud (ambiguous or sure)
2    4              1<<2        cloud ambiguous
3    8              1<<3        cloud sure
4    16             1<<4        cloud buffer (non-land margin around cloud)
5    32             1<<5        cloud shadow
6    64             1<<6        snow/ice
7    128            1<<7        mixed pixel
8    256            1<<8        sun glint risk
9    512            1<<9        coastline
10   1024           1<<10       land
===  =============  ==========  =======

CLOUD_BUFFER and CLOUD_SHADOW are only ever set by the post-processing passes.
"""

# pylint: disable=bad-whitespace, line-too-long

INVALID         = 1 << 0    # (dec 1)    bit 0: 1=pixel invalid, all other bits zero
CLOUD           = 1 << 1    # (dec 2)    bit 1: 1=cloud ambiguous or cloud sure
CLOUD_AMBIGUOUS = 1 << 2    # (dec 4)    bit 2: 1=semi-transparent or uncertain cloud
CLOUD_SURE      = 1 << 3    # (dec 8)    bit 3: 1=fully opaque cloud
CLOUD_BUFFER    = 1 << 4    # (dec 16)   bit 4: 1=within the buffer distance of cloud, over water
CLOUD_SHADOW    = 1 << 5    # (dec 32)   bit 5: 1=shadowed by a nearby cloud
SNOW_ICE        = 1 << 6    # (dec 64)   bit 6: 1=snow or ice
MIXED_PIXEL     = 1 << 7    # (dec 128)  bit 7: 1=mixture of cloud and clear
GLINT_RISK      = 1 << 8    # (dec 256)  bit 8: 1=sun glint risk over water
COASTLINE       = 1 << 9    # (dec 512)  bit 9: 1=land/water mixed pixel or near coastline
LAND            = 1 << 10   # (dec 1024) bit 10: 1=land according to the water fraction
CLEAR           = 0         # (dec 0)    all bits zero: valid observation over water, no cloud

FLAG_NAMES = {
    'INVALID': INVALID,
    'CLOUD': CLOUD,
    'CLOUD_AMBIGUOUS': CLOUD_AMBIGUOUS,
    'CLOUD_SURE': CLOUD_SURE,
    'CLOUD_BUFFER': CLOUD_BUFFER,
    'CLOUD_SHADOW': CLOUD_SHADOW,
    'SNOW_ICE': SNOW_ICE,
    'MIXED_PIXEL': MIXED_PIXEL,
    'GLINT_RISK': GLINT_RISK,
    'COASTLINE': COASTLINE,
    'LAND': LAND,
}

CLOUD_ANY = CLOUD | CLOUD_AMBIGUOUS | CLOUD_SURE

CLASSIF_BAND_NAME = 'pixel_classif_flags'
NN_OUTPUT_BAND_NAME = 'schiller_nn_value'

# Planck function, radiances in mW/(m^2 sr cm^-1)
PLANCK_C1 = 1.1910659e-5    # mW/(m^2 sr cm^-4)
PLANCK_C2 = 1.438833        # cm K

# central wavenumbers (cm^-1) of the thermal channels
WAVENUMBER = {3: 2694.0, 4: 925.0, 5: 839.0}

SOLAR_3B = 4.448            # channel 3b in-band solar constant

EARTH_RADIUS_M = 6371000.0  # mean earth radius
SCALE_HEIGHT_M = 8000.0     # atmospheric scale height for cloud top pressure -> height
SURFACE_PRESSURE_HPA = 1013.0

NN_OUTPUT_MAX = 5.0         # upper end of the snow/ice band of the cloud net

WATER_FRACTION_NODATA = 255 # values above 100 are no data
WATER_MASK_SOUTH_LIMIT = -58.0  # the water mask ends at 59S, stop earlier to avoid artefacts

NEAR_NADIR_VZA = 0.09       # degrees, below this the view azimuth is undefined

# brightness temperature of channel 4 for the FMFT table, one entry per kelvin from 200 K
FMFT_THRESHOLDS = (
    0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0,
    0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0,
    0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0,
    0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0,
    0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0,
    0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0,
    0.0, 0.01, 0.03, 0.05, 0.08, 0.11, 0.14, 0.18, 0.23, 0.28,
    0.34, 0.41, 0.48, 0.57, 0.66, 0.76, 0.87, 1.0, 1.13, 1.27,
    1.42, 1.59, 1.76, 1.94, 2.14, 2.34, 2.55, 2.77, 3.0, 3.24,
    3.48, 3.73, 3.99, 4.26, 4.52, 4.80, 5.0, 5.35, 5.64, 5.92,
    6.20, 6.48, 6.76, 7.03, 7.30, 7.8, 7.8, 7.8, 7.8, 7.8,
    7.8, 7.8, 7.8, 7.8, 7.8, 7.8, 7.8, 7.8, 7.8, 7.8,
    7.8,
)

# rows: bt4 in 10 K steps from 200 K, columns: bt3 - bt4 in 1 K steps from -1 K
TMFT_MAX_THRESHOLDS = (
    (2.635, 2.505, 3.395, 3.5),
    (2.635, 2.505, 3.395, 3.5),
    (2.635, 2.505, 3.395, 3.5),
    (2.635, 2.505, 3.395, 3.5),
    (2.615, 2.655, 2.685, 2.505),
    (1.865, 1.835, 1.845, 1.915),
    (1.815, 1.785, 1.815, 1.795),
    (1.885, 1.885, 1.875, 1.875),
    (2.135, 2.115, 2.095, 2.105),
    (6.825, 7.445, 8.305, 7.125),
    (19.055, 18.485, 17.795, 17.025),
    (20.625, 19.775, 19.355, 19.895),
    (18.115, 15.935, 20.395, 16.025),
    (18.115, 15.935, 20.395, 16.025),
)

TMFT_MIN_THRESHOLDS = (
    (0.145, -0.165, -0.075, -0.075),
    (0.145, -0.165, -0.075, -0.075),
    (0.145, -0.165, -0.075, -0.075),
    (0.145, -0.165, -0.075, -0.075),
    (-0.805, -0.975, -0.795, -1.045),
    (-1.195, -1.065, -1.125, -1.175),
    (-1.225, -1.285, -1.285, -1.285),
    (-2.425, -1.325, -2.105, -1.975),
    (-1.685, -1.595, -1.535, -2.045),
    (-4.205, -4.145, -3.645, -3.585),
    (-2.425, -1.715, -2.275, -2.105),
    (0.585, -0.585, 0.825, 0.345),
    (0.655, 1.905, 0.475, 1.385),
    (0.655, 1.905, 0.475, 1.385),
)
