"""
Threshold tests of the decision tree
"""
import numpy as np
import pytest

from cloudscreen import decision_tree, radiometry
from cloudscreen.sensors import NOAA14


def _derive(bt_3, bt_4=250.0, bt_5=245.0, albedo_1=20.0, albedo_2=25.0, sza=30.0):
    return radiometry.derive(np.atleast_1d(albedo_1), np.atleast_1d(albedo_2),
                             radiometry.bt_to_radiance(np.atleast_1d(bt_3), 3),
                             radiometry.bt_to_radiance(np.atleast_1d(bt_4), 4),
                             radiometry.bt_to_radiance(np.atleast_1d(bt_5), 5),
                             np.atleast_1d(sza), NOAA14, 182)


@pytest.mark.parametrize('lat,lon,expected', [
    (25.0, 10.0, True),      # Sahara
    (25.0, 45.0, True),      # Arabian peninsula
    (-25.0, 130.0, True),    # central Australia
    (50.0, 10.0, False),
    (0.0, -60.0, False),
])
def test_desert(lat, lon, expected):
    assert decision_tree.desert(lat, lon, NOAA14.desert_regions) == expected


def test_desert_regions_come_from_the_profile(tables):
    gobi = NOAA14._replace(desert_regions=((38.0, 47.0, 90.0, 112.0),))
    assert decision_tree.desert(42.0, 100.0, gobi.desert_regions)
    assert not decision_tree.desert(25.0, 10.0, gobi.desert_regions)
    assert not decision_tree.desert(25.0, 10.0, ())

    # a scene in the Sahara is cloud without any land pixel, unless the
    # profile no longer knows the Sahara
    derived = _derive(262.0)
    lat, lon = np.array([25.0]), np.array([10.0])
    assert decision_tree.evaluate(derived, False, lat, lon, NOAA14, tables).cloud[0]
    assert not decision_tree.evaluate(derived, False, lat, lon, gobi, tables).cloud[0]


def test_rgct_needs_land():
    refl_1 = np.array([40.0, 40.0])
    refl_2 = np.array([45.0, 45.0])
    assert decision_tree.rgct(refl_1, refl_2, np.array([True, False]), NOAA14).tolist() == [True, False]


def test_rgct_bright_pixel_is_cloudy():
    # ndvi 0.11 -> 18 % threshold
    assert decision_tree.rgct(np.array([20.0]), np.array([25.0]), True, NOAA14)[0]
    assert not decision_tree.rgct(np.array([15.0]), np.array([18.75]), True, NOAA14)[0]


def test_rrct_excludes_deserts():
    refl_1 = np.array([30.0, 30.0])
    refl_2 = np.array([31.0, 31.0])
    result = decision_tree.rrct(refl_1, refl_2, True, np.array([False, True]), NOAA14)
    assert result.tolist() == [True, False]


def test_tgct():
    assert decision_tree.tgct(np.array([230.0, 260.0]), NOAA14).tolist() == [True, False]


def test_fmft(tables):
    # no split window threshold below 261 K
    assert decision_tree.fmft(np.array([250.0]), np.array([249.5]), tables)[0]
    assert not decision_tree.fmft(np.array([300.0]), np.array([299.0]), tables)[0]


def test_tmft_clear(tables):
    assert decision_tree.tmft_clear(np.array([250.5]), np.array([250.0]), tables)[0]
    assert not decision_tree.tmft_clear(np.array([248.5]), np.array([250.0]), tables)[0]


def test_nan_makes_every_test_false(tables):
    nan = np.array([np.nan])
    assert not decision_tree.tgct(nan, NOAA14)[0]
    assert not decision_tree.fmft(nan, nan, tables)[0]
    assert not decision_tree.tmft_clear(nan, nan, tables)[0]
    assert not decision_tree.emissivity_cloud(nan, NOAA14)[0]
    assert not decision_tree.emissivity_snow(nan, NOAA14)[0]


def test_clear_land(tables):
    """Channel 3 - 4 inside the clear envelope: nothing to report."""
    result = decision_tree.evaluate(_derive(bt_3=250.5), True, np.array([50.0]), np.array([10.0]), NOAA14, tables)
    assert result.tmft_clear[0]
    assert not result.cloud_snow_check[0]
    assert not result.cloud[0]
    assert not result.snow_ice[0]


def test_bright_cold_land_is_snow(tables):
    """Bright, split window positive and channel 3b darker than the channel 4 blackbody."""
    derived = _derive(bt_3=248.5)
    assert derived.emissivity3b[0] == pytest.approx(-0.035, abs=0.01)

    result = decision_tree.evaluate(derived, True, np.array([50.0]), np.array([10.0]), NOAA14, tables)
    assert result.rgct[0] and result.fmft[0]
    assert result.cloud_snow_check[0]
    assert result.snow_ice[0]
    assert not result.cloud[0]


def test_warm_channel3_is_cloud(tables):
    derived = _derive(bt_3=262.0)
    assert derived.emissivity3b[0] > NOAA14.emissivity_threshold

    result = decision_tree.evaluate(derived, True, np.array([50.0]), np.array([10.0]), NOAA14, tables)
    assert not result.tmft_clear[0]
    assert result.cloud[0]
    assert not result.snow_ice[0]


def test_desert_south_of_lat_max(tables):
    derived = _derive(bt_3=262.0, albedo_1=5.0, albedo_2=6.0, bt_5=250.0)
    result = decision_tree.evaluate(derived, True, np.array([25.0]), np.array([10.0]), NOAA14, tables)
    assert result.desert[0]
    assert not result.fmft[0]
    assert result.cloud_snow_check[0]


def test_invalid_pixel_never_flags(tables):
    derived = _derive(bt_3=262.0, sza=95.0)
    result = decision_tree.evaluate(derived, True, np.array([25.0]), np.array([10.0]), NOAA14, tables)
    assert not result.cloud[0]
    assert not result.snow_ice[0]


def test_rgct_threshold_does_not_increase_with_ndvi():
    ndvi = np.linspace(-1.0, 1.0, 401)
    thresholds = decision_tree.rgct_threshold(ndvi, NOAA14)
    assert np.all(np.diff(thresholds) <= 0)
    assert thresholds[0] == pytest.approx(0.30)
    assert thresholds[-1] == pytest.approx(0.12)


def test_rgct_thresholds_come_from_the_profile():
    strict = NOAA14._replace(rgct_ndvi_edges=(0.0,), rgct_thresholds=(0.5, 0.4))
    assert decision_tree.rgct_threshold(np.array([-0.2, 0.2]), strict).tolist() == [0.5, 0.4]
    # 20 % is bright for the default buckets, not for these
    assert decision_tree.rgct(np.array([20.0]), np.array([25.0]), True, NOAA14)[0]
    assert not decision_tree.rgct(np.array([20.0]), np.array([25.0]), True, strict)[0]
