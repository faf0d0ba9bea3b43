"""
Per pixel classification: priority of the classes and the flag invariants
"""
from datetime import timedelta

import numpy as np
import pytest
import xarray as xr
from hypothesis import given, settings
from hypothesis import strategies as st

from cloudscreen import constants
from cloudscreen.classifier import (DIAGNOSTIC_BANDS, PixelClassifier, pixel_flags, resolve_acquisition,
                                    water_classes)
from cloudscreen.config import ClassificationConfig, NNBoundaries, config_from_dict
from cloudscreen.errors import ConfigurationError
from cloudscreen.neuralnet import ConstantNet
from cloudscreen.sensors import NOAA11, NOAA14

FLAGS = constants.CLASSIF_BAND_NAME


def _has(flags, bit):
    return (np.asarray(flags) & bit) != 0


def assert_flag_invariants(flags):
    flags = np.asarray(flags)
    cloud = _has(flags, constants.CLOUD)
    assert np.array_equal(cloud, _has(flags, constants.CLOUD_AMBIGUOUS) | _has(flags, constants.CLOUD_SURE))
    assert not np.any(_has(flags, constants.SNOW_ICE) & _has(flags, constants.CLOUD_SURE))
    assert np.all(flags[_has(flags, constants.INVALID)] == constants.INVALID)


@pytest.fixture
def classifier(tables):
    def _make(nn_value=None, **config):
        net = ConstantNet(nn_value) if nn_value is not None else None
        return PixelClassifier(config_from_dict(config), tables=tables, net=net)
    return _make


def test_clear_land(make_observation, classifier):
    """Channel 3 - 4 within the clear envelope and a clear net answer: land only."""
    result = classifier(nn_value=1.0).classify(make_observation(bt_3=250.5))
    assert np.all(result[FLAGS].values == constants.LAND)
    assert result[FLAGS].dtype == np.uint16


def test_snow_wins_over_sure_cloud(make_observation, classifier):
    """Decision tree says snow, the net says sure cloud: snow/ice and never sure cloud."""
    result = classifier(nn_value=4.0).classify(make_observation(bt_3=248.5))
    flags = result[FLAGS].values
    assert np.all(_has(flags, constants.SNOW_ICE))
    assert not np.any(_has(flags, constants.CLOUD_SURE))
    assert not np.any(_has(flags, constants.CLOUD))
    assert np.all(_has(flags, constants.LAND))
    assert_flag_invariants(flags)


def test_net_sure_cloud(make_observation, classifier):
    result = classifier(nn_value=4.0).classify(make_observation(bt_3=250.5))
    flags = result[FLAGS].values
    assert np.all(_has(flags, constants.CLOUD_SURE) & _has(flags, constants.CLOUD))
    assert not np.any(_has(flags, constants.CLOUD_AMBIGUOUS))


def test_net_ambiguous_cloud(make_observation, classifier):
    result = classifier(nn_value=3.0).classify(make_observation(bt_3=250.5))
    flags = result[FLAGS].values
    assert np.all(_has(flags, constants.CLOUD_AMBIGUOUS) & _has(flags, constants.CLOUD))
    assert not np.any(_has(flags, constants.CLOUD_SURE))


def test_net_snow(make_observation, classifier):
    result = classifier(nn_value=4.8).classify(make_observation(bt_3=250.5))
    assert np.all(_has(result[FLAGS].values, constants.SNOW_ICE))


def test_no_net_uses_threshold_tests_only(make_observation, classifier):
    result = classifier().classify(make_observation(bt_3=262.0))
    flags = result[FLAGS].values
    assert np.all(_has(flags, constants.CLOUD_SURE))
    assert np.all(np.isnan(result[constants.NN_OUTPUT_BAND_NAME].values))


def test_water_and_coastline(make_observation, classifier):
    observation = make_observation(shape=(1, 3))
    observation['water_fraction'][:] = [[0.0, 40.0, 100.0]]
    flags = classifier(nn_value=1.0, glint={'enabled': False}).classify(observation)[FLAGS].values
    assert flags.tolist() == [[constants.LAND, constants.COASTLINE, constants.CLEAR]]


def test_water_mask_ends_at_58_south(make_observation, classifier):
    observation = make_observation(shape=(1, 2), lat=-60.0)
    result = classifier(nn_value=1.0).classify(observation)
    assert np.all(result.water_fraction.values == constants.WATER_FRACTION_NODATA)
    assert not np.any(_has(result[FLAGS].values, constants.LAND))


def test_water_mask_disabled(make_observation, classifier):
    result = classifier(nn_value=1.0, use_water_mask=False).classify(make_observation())
    assert not np.any(_has(result[FLAGS].values, constants.LAND))


def test_invalid_pixels_have_only_the_invalid_bit(make_observation, classifier):
    observation = make_observation(shape=(2, 2), bt_3=262.0)
    observation['radiance_4'][0, 0] = -1.0
    observation['sza'][0, 1] = 95.0
    observation['albedo_1'][1, 0] = np.nan
    result = classifier(nn_value=4.0).classify(observation)

    flags = result[FLAGS].values
    assert flags[0, 0] == flags[0, 1] == flags[1, 0] == constants.INVALID
    assert flags[1, 1] != constants.INVALID
    for name in ('bt_3', 'bt_4', 'refl_1', 'rt_3', constants.NN_OUTPUT_BAND_NAME, 'emissivity3b', 'ndsi'):
        values = result[name].values
        assert np.isnan(values[0, 0]) and np.isnan(values[0, 1]) and np.isnan(values[1, 0])
        assert np.isfinite(values[1, 1])


def test_glint_risk_over_water(make_observation, classifier):
    observation = make_observation(water_fraction=100.0, vza=30.0, relative_azimuth=175.0)
    flags = classifier(nn_value=1.0).classify(observation)[FLAGS].values
    assert np.all(_has(flags, constants.GLINT_RISK))


def test_glint_raises_the_cloud_boundaries(make_observation, classifier):
    # 2.2 is ambiguous cloud, unless glint moves the boundary to 2.25
    glint = make_observation(water_fraction=100.0, vza=30.0, relative_azimuth=175.0)
    flags = classifier(nn_value=2.2).classify(glint)[FLAGS].values
    assert not np.any(_has(flags, constants.CLOUD))

    no_glint = make_observation(water_fraction=100.0, vza=30.0, relative_azimuth=10.0)
    flags = classifier(nn_value=2.2).classify(no_glint)[FLAGS].values
    assert np.all(_has(flags, constants.CLOUD_AMBIGUOUS))
    assert not np.any(_has(flags, constants.GLINT_RISK))


def test_no_glint_over_land(make_observation, classifier):
    observation = make_observation(vza=30.0, relative_azimuth=175.0)
    flags = classifier(nn_value=1.0).classify(observation)[FLAGS].values
    assert not np.any(_has(flags, constants.GLINT_RISK))


def test_diagnostic_bands(make_observation, classifier):
    result = classifier(nn_value=1.0).classify(make_observation())
    for name in set(DIAGNOSTIC_BANDS) - {'altitude', 'sea_ice_climatology'}:
        assert result[name].dtype == np.float32, name
    assert result.bt_4.values == pytest.approx(250.0, abs=1e-3)
    assert result.attrs['sensor'] == 'NOAA14'
    assert result.attrs['date'] == '1995-07-01'


def test_altitude_from_elevation_band(make_observation, classifier):
    result = classifier(nn_value=1.0).classify(make_observation(elevation=350.0))
    assert np.all(result.altitude.values == 350.0)


def test_missing_variable(make_observation, classifier):
    with pytest.raises(ConfigurationError):
        classifier().classify(make_observation().drop_vars('radiance_5'))


def test_acquisition_from_attributes():
    assert resolve_acquisition({'sensor': 'NOAA11', 'date': '1992-09-06'})[0] is NOAA11
    profile, when = resolve_acquisition({'product_name': 'ao14010795115300'}, sensor='11')
    assert profile is NOAA11
    assert when.month == 7
    with pytest.raises(ConfigurationError):
        resolve_acquisition({})
    with pytest.raises(ConfigurationError):
        resolve_acquisition({'sensor': 'NOAA14', 'date': 'yesterday-ish'})
    assert resolve_acquisition({'product_name': 'ao14010795115300'})[0] is NOAA14


def test_water_classes():
    land, coastline, water = water_classes(np.array([0.0, 50.0, 100.0, 255.0]))
    assert land.tolist() == [True, False, False, False]
    assert coastline.tolist() == [False, True, False, False]
    assert water.tolist() == [False, False, True, False]


def test_tiles_match_whole_scene(make_observation, classifier):
    observation = make_observation(shape=(7, 4), bt_3=262.0)
    observation['radiance_4'][3, 2] = -1.0
    observation['water_fraction'][:, 0] = 100.0
    whole = classifier(nn_value=3.0).classify(observation)
    tiled = classifier(nn_value=3.0).classify_tiles(observation, tile_size=2, workers=3)
    assert np.array_equal(whole[FLAGS].values, tiled[FLAGS].values)
    xr.testing.assert_allclose(whole.relative_azimuth, tiled.relative_azimuth)


def test_run_refines_snow_and_drops_internal_bands(make_observation, classifier):
    # not bright enough for snow after refinement: becomes sure cloud
    result = classifier(nn_value=1.0).run(make_observation(bt_3=248.5))
    flags = result[FLAGS].values
    assert np.all(_has(flags, constants.CLOUD_SURE))
    assert not np.any(_has(flags, constants.SNOW_ICE))
    assert 'water_fraction' not in result

    kept = classifier(nn_value=1.0, snow_refinement=False).run(make_observation(bt_3=248.5))
    assert np.all(_has(kept[FLAGS].values, constants.SNOW_ICE))


def test_run_without_diagnostics(make_observation, classifier):
    result = classifier(nn_value=1.0, output={'diagnostics': False}).run(make_observation())
    assert set(result.data_vars) == {FLAGS, 'latitude', 'longitude'}


boundaries = NNBoundaries()
nn_values = st.one_of(st.floats(min_value=0.0, max_value=5.5), st.just(np.nan),
                      st.sampled_from([boundaries.ambiguous_lower, boundaries.ambiguous_sure,
                                       boundaries.sure_snow, constants.NN_OUTPUT_MAX]))


@settings(deadline=timedelta(milliseconds=500))
@given(st.booleans(), st.booleans(), st.booleans(), nn_values, st.booleans(), st.booleans(), st.booleans())
def test_flag_invariants(valid, dt_cloud, dt_snow, nn_output, land, coastline, glint):
    def one(value):
        return np.array([value])

    flags = pixel_flags(one(valid), one(dt_cloud), one(dt_snow), one(nn_output), one(land), one(coastline),
                        boundaries, one(glint), 0.1)
    assert_flag_invariants(flags)
    if not valid:
        assert flags[0] == constants.INVALID
    if valid and dt_snow:
        assert flags[0] & constants.SNOW_ICE
    if valid and dt_cloud and not dt_snow and not (boundaries.sure_snow < nn_output <= constants.NN_OUTPUT_MAX):
        assert flags[0] & constants.CLOUD_SURE


@pytest.mark.parametrize('nn_output,expected', [
    (2.0, 0),
    (2.15, constants.CLOUD | constants.CLOUD_AMBIGUOUS),
    (3.45, constants.CLOUD | constants.CLOUD_AMBIGUOUS),
    (3.5, constants.CLOUD | constants.CLOUD_SURE),
    (4.45, constants.CLOUD | constants.CLOUD_SURE),
    (4.5, constants.SNOW_ICE),
    (5.0, constants.SNOW_ICE),
    (5.1, 0),
])
def test_net_class_boundaries(nn_output, expected):
    flags = pixel_flags(np.array([True]), np.array([False]), np.array([False]), np.array([nn_output]),
                        np.array([False]), np.array([False]), NNBoundaries())
    assert flags[0] == expected


def test_default_config_without_net_warns(tables, caplog):
    PixelClassifier(ClassificationConfig(), tables=tables)
    assert 'No neural net configured' in caplog.text


def test_glint_shifts_boundaries_per_pixel():
    nn_output = np.array([2.2, 2.2, 3.5, 3.5, 4.45])
    glint = np.array([True, False, True, False, True])
    nothing = np.zeros(5, dtype=bool)
    flags = pixel_flags(np.ones(5, dtype=bool), nothing, nothing, nn_output, nothing, nothing,
                        NNBoundaries(), glint=glint, glint_addition=0.1)
    cloud = flags & ~np.uint16(constants.GLINT_RISK)
    assert cloud.tolist() == [0,
                              constants.CLOUD | constants.CLOUD_AMBIGUOUS,
                              constants.CLOUD | constants.CLOUD_AMBIGUOUS,
                              constants.CLOUD | constants.CLOUD_SURE,
                              constants.CLOUD | constants.CLOUD_SURE]
    assert (_has(flags, constants.GLINT_RISK) == glint).all()
