import numpy as np
import pytest
import xarray as xr
from click.testing import CliRunner

from cloudscreen import __version__, constants
from cloudscreen.app import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def scene(tmp_path, make_observation):
    path = tmp_path / 'ao14010795115300_120417.nc'
    observation = make_observation(shape=(4, 5), bt_3=262.0)
    observation.to_netcdf(path)
    return path


def test_version(runner):
    result = runner.invoke(cli, ['--version'])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_list_configs(runner):
    result = runner.invoke(cli, ['list'])
    assert result.exit_code == 0
    assert 'avhrr_ac.yaml' in result.output
    assert 'avhrr_ac_shadow.yaml' in result.output


def test_sun_position(runner):
    result = runner.invoke(cli, ['sun-position', '1997-06-21'])
    assert result.exit_code == 0
    lat, lon = (float(value) for value in result.output.split())
    assert lat == pytest.approx(23.44, abs=0.1)
    assert lon == pytest.approx(0.0, abs=1.0)


def test_sun_position_bad_date(runner):
    result = runner.invoke(cli, ['sun-position', 'midsummer'])
    assert result.exit_code == 2


def test_classify(runner, scene, tmp_path):
    output = tmp_path / 'flags.nc'
    result = runner.invoke(cli, ['classify', str(scene), str(output), '--config', 'avhrr_ac', '--tile-size', '2'])
    assert result.exit_code == 0, result.output
    assert '20 pixels, 20 cloud' in result.output

    with xr.open_dataset(output) as classified:
        flags = classified[constants.CLASSIF_BAND_NAME].values
        assert flags.shape == (4, 5)
        assert np.all(flags & constants.CLOUD_SURE)
        assert 'bt_4' in classified
        assert 'water_fraction' not in classified
        assert classified.attrs['sensor'] == 'NOAA14'


def test_classify_refuses_to_overwrite(runner, scene, tmp_path):
    output = tmp_path / 'flags.nc'
    output.write_text('')
    result = runner.invoke(cli, ['classify', str(scene), str(output)])
    assert result.exit_code == 1
    assert 'overwrite' in result.output


def test_classify_unknown_config(runner, scene, tmp_path):
    result = runner.invoke(cli, ['classify', str(scene), str(tmp_path / 'flags.nc'), '--config', 'no_such_config'])
    assert result.exit_code == 2


def test_classify_unknown_sensor(runner, scene, tmp_path):
    result = runner.invoke(cli, ['classify', str(scene), str(tmp_path / 'flags.nc'), '--sensor', 'NOAA99'])
    assert result.exit_code == 1
    assert 'NOAA99' in result.output
