"""
Per pixel classification of an AVHRR observation.

Combines the radiometric conversions, the cloud net and the threshold decision
tree into the ``pixel_classif_flags`` raster (see :mod:`cloudscreen.constants`)
and the float diagnostic bands. Spatial post-processing (cloud buffer,
coastline, shadow) runs afterwards on the whole merged scene.

Issues:
    - Product names only carry the acquisition date, so the sun position (and
      with it the computed relative azimuth) is for 12:00 UTC of that day.
    - The MIXED_PIXEL bit is reserved for sensors that report sub-pixel
      mixtures; nothing here sets it for AVHRR.
"""
import logging
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import xarray
from pandas import to_datetime

from cloudscreen import constants, decision_tree, geometry, radiometry
from cloudscreen.config import ClassificationConfig
from cloudscreen.errors import ConfigurationError
from cloudscreen.neuralnet import NeuralNet, input_vector
from cloudscreen.postprocess import SpatialPostProcessor
from cloudscreen.sensors import day_of_year, get_profile, parse_product_name
from cloudscreen.tables import LookupTables

_LOG = logging.getLogger(__name__)

REQUIRED_VARIABLES = ('sza', 'latitude', 'longitude', 'albedo_1', 'albedo_2',
                      'radiance_3', 'radiance_4', 'radiance_5')

DIAGNOSTIC_BANDS = ('vza', 'sza', 'vaa', 'saa', 'relative_azimuth', 'altitude',
                    'bt_3', 'bt_4', 'bt_5', 'refl_1', 'refl_2', 'rt_3',
                    constants.NN_OUTPUT_BAND_NAME, 'emissivity3b', 'rho3b', 'ndsi',
                    'sea_ice_climatology')

# carried from classification into post-processing, not part of the product
INTERNAL_BANDS = ('water_fraction', 'cloud_top_pressure')

UNITS = {
    'vza': 'degrees', 'sza': 'degrees', 'vaa': 'degrees', 'saa': 'degrees',
    'relative_azimuth': 'degrees', 'altitude': 'm',
    'bt_3': 'K', 'bt_4': 'K', 'bt_5': 'K',
    'refl_1': 'percent', 'refl_2': 'percent', 'rt_3': '1',
    'emissivity3b': '1', 'rho3b': '1', 'ndsi': '1', 'sea_ice_climatology': 'percent',
    'water_fraction': 'percent', 'cloud_top_pressure': 'hPa',
}


def resolve_acquisition(attrs, sensor=None, date=None):
    """
    Sensor profile and acquisition date of a scene.

    Explicit arguments win over the ``sensor``/``date`` attributes, which win
    over whatever the ``product_name`` attribute encodes.
    """
    sensor = sensor or attrs.get('sensor')
    date = date or attrs.get('date')
    if (sensor is None or date is None) and 'product_name' in attrs:
        noaa_id, acquired = parse_product_name(attrs['product_name'])
        sensor = sensor or noaa_id
        date = date or acquired
    if sensor is None or date is None:
        raise ConfigurationError('Cannot tell sensor and acquisition date: give a product_name '
                                 'attribute, sensor/date attributes or explicit values')
    try:
        when = to_datetime(date)
    except ValueError as err:
        raise ConfigurationError(f"Invalid acquisition date {date!r}") from err
    return get_profile(sensor), when


def water_classes(water_fraction, use_water_mask=True):
    """(land, coastline, water) masks; no data (and a disabled mask) is none of them."""
    water_fraction = np.asarray(water_fraction, dtype=np.float64)
    if not use_water_mask:
        nothing = np.zeros(water_fraction.shape, dtype=bool)
        return nothing, nothing, nothing
    with np.errstate(invalid='ignore'):
        return (water_fraction == 0,
                (water_fraction > 0) & (water_fraction < 100),
                water_fraction == 100)


def pixel_flags(valid, dt_cloud, dt_snow, nn_output, land, coastline, boundaries,
                glint=False, glint_addition=0.0):
    """
    Combine the test results into flag words, in priority order.

    Invalid pixels get INVALID and nothing else. Snow/ice beats sure cloud,
    which beats ambiguous cloud. On glint pixels the ambiguous and sure
    boundaries of the net are raised by ``glint_addition``.
    """
    valid = np.asarray(valid, dtype=bool)
    shape = valid.shape
    nn_output = np.asarray(nn_output, dtype=np.float64)
    glint = np.broadcast_to(np.asarray(glint, dtype=bool), shape)

    raised = boundaries.shifted(glint_addition)
    lower = np.where(glint, raised.ambiguous_lower, boundaries.ambiguous_lower)
    sure = np.where(glint, raised.ambiguous_sure, boundaries.ambiguous_sure)

    with np.errstate(invalid='ignore'):
        snow_ice = dt_snow | ((nn_output > boundaries.sure_snow) & (nn_output <= constants.NN_OUTPUT_MAX))
        cloud_sure = ~snow_ice & (dt_cloud | ((nn_output > sure) & (nn_output <= boundaries.sure_snow)))
        cloud_ambiguous = ~cloud_sure & ~snow_ice & (nn_output >= lower) & (nn_output <= sure)

    flags = np.zeros(shape, dtype=np.uint16)
    for mask, bit in [(cloud_ambiguous, constants.CLOUD_AMBIGUOUS),
                      (cloud_sure, constants.CLOUD_SURE),
                      (cloud_ambiguous | cloud_sure, constants.CLOUD),
                      (snow_ice, constants.SNOW_ICE),
                      (glint, constants.GLINT_RISK),
                      (coastline, constants.COASTLINE),
                      (land, constants.LAND)]:
        flags[np.broadcast_to(mask, shape)] |= bit

    flags[~valid] = constants.INVALID
    return flags


def _values(dataset, name):
    return dataset[name].values.astype(np.float64)


class PixelClassifier(object):
    """
    Classify observations for one run configuration.

    The lookup tables and the net are loaded once and shared read-only by
    every tile and thread.
    """

    def __init__(self, config: ClassificationConfig = None, tables: LookupTables = None, net=None,
                 water_mask=None, elevation=None, sea_ice=None):
        self.config = config or ClassificationConfig()
        self.tables = tables if tables is not None else LookupTables.load()
        if net is None and self.config.neural_net:
            net = NeuralNet.from_file(self.config.neural_net)
        if net is None:
            _LOG.warning('No neural net configured, classifying with the threshold tests only')
        self.net = net
        self.water_mask = water_mask
        self.elevation = elevation
        self.sea_ice = sea_ice
        self.postprocessor = SpatialPostProcessor(self.config)

    def _water_fraction(self, dataset, lat, lon):
        if 'water_fraction' in dataset:
            water_fraction = _values(dataset, 'water_fraction')
        elif self.water_mask is not None:
            water_fraction = self.water_mask.water_fraction(lat, lon)
        else:
            raise ConfigurationError('Input has no water_fraction variable and no water mask is configured')
        water_fraction = np.where(np.isfinite(water_fraction), water_fraction, constants.WATER_FRACTION_NODATA)
        with np.errstate(invalid='ignore'):
            south = lat < constants.WATER_MASK_SOUTH_LIMIT
        return np.where(south, constants.WATER_FRACTION_NODATA, water_fraction)

    def _altitude(self, dataset, lat, lon):
        if 'elevation' in dataset:
            return _values(dataset, 'elevation')
        if self.elevation is not None:
            return self.elevation.elevation(lat, lon)
        return None

    def _nn_output(self, sza, vza, relazi, radiance, valid):
        nn_output = np.full(valid.shape, np.nan)
        if self.net is None or not valid.any():
            return nn_output
        inputs = input_vector(sza, vza, relazi, radiance)
        nn_output[valid] = self.net.calc(inputs[valid])[..., 0]
        return nn_output

    def classify(self, dataset: xarray.Dataset, sensor=None, date=None) -> xarray.Dataset:
        """
        Classify every pixel of a scene (or tile), without spatial post-processing.

        The result holds ``pixel_classif_flags``, every diagnostic band and the
        water fraction used.
        """
        missing = [name for name in REQUIRED_VARIABLES if name not in dataset]
        if missing:
            raise ConfigurationError(f"Input is missing variables {missing}")
        profile, when = resolve_acquisition(dataset.attrs, sensor or self.config.sensor, date)
        doy = day_of_year(when)

        dims = dataset.latitude.dims
        lat = _values(dataset, 'latitude')
        lon = _values(dataset, 'longitude')
        sza = _values(dataset, 'sza')
        shape = lat.shape

        if 'vza' in dataset:
            vza = _values(dataset, 'vza')
        else:
            width = shape[-1]
            vza = np.broadcast_to(self.tables.vza_for_columns(np.arange(width), width), shape)

        point = geometry.GeoPos(lat=lat, lon=lon)
        angles = geometry.azimuth_angles(sza, vza, geometry.satellite_position(lat, lon), point,
                                         geometry.sun_position(when))
        saa = _values(dataset, 'sun_azimuth') if 'sun_azimuth' in dataset else angles.saa
        relazi = _values(dataset, 'relative_azimuth') if 'relative_azimuth' in dataset else angles.relative

        derived = radiometry.derive(dataset.albedo_1.values, dataset.albedo_2.values,
                                    dataset.radiance_3.values, dataset.radiance_4.values,
                                    dataset.radiance_5.values, sza, profile, doy, vza=vza, relazi=relazi)
        valid = derived.valid & np.isfinite(lat) & np.isfinite(lon)

        water_fraction = self._water_fraction(dataset, lat, lon)
        land, coastline, water = water_classes(water_fraction, self.config.use_water_mask)

        tree = decision_tree.evaluate(derived, land, lat, lon, profile, self.tables)
        nn_output = self._nn_output(sza, vza, relazi, derived.radiance, valid)

        glint_config = self.config.glint
        if glint_config.enabled:
            with np.errstate(invalid='ignore'):
                glint = valid & water & (geometry.specular_angle(sza, vza, relazi) < glint_config.angle)
        else:
            glint = np.zeros(shape, dtype=bool)

        flags = pixel_flags(valid, tree.cloud, tree.snow_ice, nn_output, land, coastline,
                            self.config.nn_boundaries, glint, glint_config.threshold_addition)

        _LOG.debug('%s: %d of %d pixels valid, %d cloud, %d snow/ice', profile.name,
                   np.count_nonzero(valid), valid.size,
                   np.count_nonzero(flags & constants.CLOUD), np.count_nonzero(flags & constants.SNOW_ICE))

        bands = {
            'vza': vza, 'sza': sza, 'vaa': angles.vaa, 'saa': saa, 'relative_azimuth': relazi,
            'bt_3': derived.bt_3, 'bt_4': derived.bt_4, 'bt_5': derived.bt_5,
            'refl_1': derived.refl_1, 'refl_2': derived.refl_2, 'rt_3': derived.rt_3,
            constants.NN_OUTPUT_BAND_NAME: nn_output, 'emissivity3b': derived.emissivity3b,
            'rho3b': derived.rho3b, 'ndsi': derived.ndsi,
        }
        altitude = self._altitude(dataset, lat, lon)
        if altitude is not None:
            bands['altitude'] = altitude
        if self.sea_ice is not None:
            bands['sea_ice_climatology'] = self.sea_ice.classification(lat, lon).max_concentration

        output = xarray.Dataset(coords=dataset.latitude.coords, attrs=dict(dataset.attrs))
        output[constants.CLASSIF_BAND_NAME] = xarray.DataArray(flags, dims=dims, attrs=flags_attrs())
        for name, values in bands.items():
            values = np.where(valid, np.broadcast_to(values, shape), np.nan).astype(np.float32)
            output[name] = xarray.DataArray(values, dims=dims, attrs={'units': UNITS.get(name, '1'),
                                                                       'nodata': np.nan})
        output['water_fraction'] = xarray.DataArray(water_fraction.astype(np.float32), dims=dims,
                                                    attrs={'units': 'percent'})
        if 'cloud_top_pressure' in dataset:
            output['cloud_top_pressure'] = dataset.cloud_top_pressure.astype(np.float32)
        output['latitude'] = dataset.latitude
        output['longitude'] = dataset.longitude
        output.attrs.update(sensor=profile.name, date=when.strftime('%Y-%m-%d'))
        return output

    def classify_tiles(self, dataset: xarray.Dataset, tile_size=None, workers=1, sensor=None, date=None):
        """
        Classify a scene in blocks of scan lines on a thread pool and merge the blocks.

        Scan lines are independent for the per pixel stage, so no halo is needed
        here; the post-processing barrier comes after the merge.
        """
        row_dim = dataset.latitude.dims[0]
        rows = dataset.sizes[row_dim]
        tile_size = tile_size or rows
        tiles = [dataset.isel({row_dim: slice(start, start + tile_size)}) for start in range(0, rows, tile_size)]
        _LOG.info('Classifying %d rows in %d tile(s) on %d worker(s)', rows, len(tiles), workers)

        if len(tiles) == 1:
            return self.classify(tiles[0], sensor=sensor, date=date)

        # the nadir track comes from the centre column, which every row-block has
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(lambda tile: self.classify(tile, sensor=sensor, date=date), tiles))
        merged = xarray.concat(results, dim=row_dim, data_vars='all')
        merged.attrs = results[0].attrs
        return merged

    def run(self, dataset: xarray.Dataset, tile_size=None, workers=1, sensor=None, date=None) -> xarray.Dataset:
        """Classify, post-process and trim a scene to the product bands."""
        classified = self.classify_tiles(dataset, tile_size=tile_size, workers=workers, sensor=sensor, date=date)
        flags = classified[constants.CLASSIF_BAND_NAME]
        classified[constants.CLASSIF_BAND_NAME] = flags.copy(data=self.postprocessor.process(classified))

        drop = [name for name in INTERNAL_BANDS if name in classified]
        if not self.config.diagnostics:
            drop += [name for name in DIAGNOSTIC_BANDS if name in classified]
        return classified.drop_vars(drop)


def flags_attrs():
    return {
        'flag_masks': np.array(list(constants.FLAG_NAMES.values()), dtype=np.uint16),
        'flag_meanings': ' '.join(name.lower() for name in constants.FLAG_NAMES),
        'nodata': constants.INVALID,
    }
