# coding=utf-8
"""
Command line entry point for classifying AVHRR scenes.

The three commands are:
1. cloudscreen list
2. cloudscreen classify
3. cloudscreen sun-position
"""
import logging
import sys
from pathlib import Path
from time import time as time_now

import click
import xarray

from cloudscreen import __version__, constants
from cloudscreen.classifier import PixelClassifier
from cloudscreen.config import ClassificationConfig, load_config
from cloudscreen.errors import CloudScreenError
from cloudscreen.geometry import sun_position

APP_NAME = 'cloudscreen'
_LOG = logging.getLogger(__name__)

# ROOT_DIR is the directory holding the package (the repository root in a checkout).
ROOT_DIR = Path(__file__).absolute().parent.parent

CONFIG_DIRS = [ROOT_DIR / 'config', Path(sys.prefix) / APP_NAME / 'config']

_ENCODING_KEYS = {'zlib': True, 'complevel': 4, 'shuffle': True}


def _init_logging(ctx, param, value):
    level = {0: logging.WARNING, 1: logging.INFO}.get(value, logging.DEBUG)
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')


verbose_option = click.option('--verbose', '-v', count=True, expose_value=False, is_eager=True,
                              callback=_init_logging, help='Use multiple times for more verbosity')


def installed_configs():
    for config_dir in CONFIG_DIRS:
        yield from sorted(config_dir.glob('*.yaml'))


def _find_config(name):
    """A config path, or the name of an installed config with or without ``.yaml``."""
    if name is None:
        return ClassificationConfig()
    path = Path(name)
    if not path.exists():
        matches = [cfg for cfg in installed_configs() if cfg.stem == path.stem]
        if not matches:
            raise click.BadParameter(f"No config file or installed config named {name!r}", param_hint='--config')
        path = matches[0]
    return load_config(path)


@click.group(help='AVHRR cloud, snow/ice and land/water pixel classification')
@click.version_option(version=__version__)
def cli():
    """
    Instantiate a click 'cloudscreen' group object to register the following sub-commands:
         1) list
         2) classify
         3) sun-position
    :return: None
    """


@cli.command(name='list', help='List installed cloudscreen config files')
def list_configs():
    for cfg in installed_configs():
        click.echo(cfg)


@cli.command(help='Classify a scene stored as netCDF')
@click.argument('input_path', type=click.Path(exists=True, dir_okay=False))
@click.argument('output_path', type=click.Path(dir_okay=False))
@click.option('--config', 'config_name', help='Config file, or the name of an installed config')
@click.option('--sensor', help='Platform, e.g. NOAA14 (default: from the product name)')
@click.option('--date', help='Acquisition date (default: from the product name)')
@click.option('--tile-size', type=click.IntRange(min=1), help='Scan lines per tile')
@click.option('--workers', type=click.IntRange(min=1), default=1, show_default=True,
              help='Threads classifying tiles')
@click.option('--overwrite', is_flag=True, default=False, help='Replace an existing output file')
@verbose_option
def classify(input_path, output_path, config_name, sensor, date, tile_size, workers, overwrite):
    """
    Classify every pixel of INPUT_PATH and write the flags (and diagnostics) to OUTPUT_PATH.
    """
    if Path(output_path).exists() and not overwrite:
        _LOG.warning('Output file already exists %r', output_path)
        raise click.ClickException(f"{output_path} exists, use --overwrite to replace it")

    started = time_now()
    try:
        config = _find_config(config_name)
        classifier = PixelClassifier(config)
        with xarray.open_dataset(input_path) as observation:
            _LOG.info('Classifying %s', input_path)
            result = classifier.run(observation.load(), tile_size=tile_size, workers=workers,
                                    sensor=sensor, date=date)
    except CloudScreenError as err:
        raise click.ClickException(str(err)) from err

    encoding = {name: dict(_ENCODING_KEYS) for name in result.data_vars}
    result.to_netcdf(output_path, encoding=encoding)

    flags = result[constants.CLASSIF_BAND_NAME].values
    _LOG.info('Wrote %s in %.1f s', output_path, time_now() - started)
    click.echo(f"{output_path}: {flags.size} pixels, "
               f"{(flags & constants.CLOUD).astype(bool).sum()} cloud, "
               f"{(flags & constants.SNOW_ICE).astype(bool).sum()} snow/ice, "
               f"{(flags & constants.INVALID).astype(bool).sum()} invalid")


@cli.command(name='sun-position', help='Print the sub-solar latitude and longitude at noon UTC of DATE')
@click.argument('date')
def sun_position_command(date):
    try:
        position = sun_position(date)
    except ValueError as err:
        raise click.BadParameter(str(err), param_hint='DATE') from err
    click.echo(f"{position.lat:.4f} {position.lon:.4f}")
