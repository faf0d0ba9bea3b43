"""
Run configuration, read from YAML.

Every value has a default, so an empty document is a valid configuration.
Validation happens here, once, when the run is set up; per-pixel code never
has to check its parameters.
"""
import logging
from typing import NamedTuple, Optional

import yaml

from cloudscreen.errors import ConfigurationError

_LOG = logging.getLogger(__name__)


class NNBoundaries(NamedTuple):
    """Class bands of the cloud net output: clear < ambiguous_lower <= ambiguous <= ambiguous_sure < sure <= sure_snow < snow."""
    ambiguous_lower: float = 2.15
    ambiguous_sure: float = 3.45
    sure_snow: float = 4.45

    def shifted(self, offset):
        return self._replace(ambiguous_lower=self.ambiguous_lower + offset,
                             ambiguous_sure=self.ambiguous_sure + offset)


class ShadowConfig(NamedTuple):
    """Cloud shadow tracing. The 300 m values are empirical, not physics."""
    enabled: bool = False
    base_offset: float = 300.0      # cloud base is this far below the lowest neighbouring cloud top
    base_floor: float = 300.0       # and never lower than this
    margin: float = 300.0           # tolerance on the sun ray height


class GlintConfig(NamedTuple):
    enabled: bool = True
    angle: float = 25.0             # degrees from the specular direction
    threshold_addition: float = 0.1  # raise the net's cloud boundaries on glint pixels


class ClassificationConfig(NamedTuple):
    sensor: Optional[str] = None
    neural_net: Optional[str] = None
    nn_boundaries: NNBoundaries = NNBoundaries()
    use_water_mask: bool = True
    coastline_refinement: bool = True
    snow_refinement: bool = True
    cloud_buffer_width: int = 2
    cloud_shadow: ShadowConfig = ShadowConfig()
    glint: GlintConfig = GlintConfig()
    diagnostics: bool = True

    def halo_width(self, shadow_search_radius=0):
        """Margin of classified pixels needed around a tile before post-processing it."""
        halo = max(self.cloud_buffer_width, 1)
        if self.cloud_shadow.enabled:
            halo += shadow_search_radius
        return halo


def _section(cls, doc, name):
    values = doc.get(name) or {}
    if not isinstance(values, dict):
        raise ConfigurationError(f"Config section {name!r} must be a mapping")
    unknown = set(values) - set(cls._fields)
    if unknown:
        raise ConfigurationError(f"Unknown keys in config section {name!r}: {sorted(unknown)}")
    return cls(**values)


def validate(config: ClassificationConfig) -> ClassificationConfig:
    bounds = config.nn_boundaries
    if not bounds.ambiguous_lower < bounds.ambiguous_sure < bounds.sure_snow:
        raise ConfigurationError(f"NN class boundaries must be strictly increasing, got {tuple(bounds)}")
    if not isinstance(config.cloud_buffer_width, int) or config.cloud_buffer_width < 0:
        raise ConfigurationError(f"cloud_buffer_width must be a non-negative integer, "
                                 f"got {config.cloud_buffer_width!r}")
    shadow = config.cloud_shadow
    if shadow.base_floor < 0 or shadow.base_offset < 0 or shadow.margin < 0:
        raise ConfigurationError('Cloud shadow heights must not be negative')
    if not 0 <= config.glint.angle <= 90:
        raise ConfigurationError(f"Glint angle must be within [0, 90] degrees, got {config.glint.angle}")
    return config


def config_from_dict(doc: dict) -> ClassificationConfig:
    doc = dict(doc or {})
    sections = {
        'nn_boundaries': _section(NNBoundaries, doc, 'nn_boundaries'),
        'cloud_shadow': _section(ShadowConfig, doc, 'cloud_shadow'),
        'glint': _section(GlintConfig, doc, 'glint'),
    }
    output = doc.pop('output', None) or {}
    if 'diagnostics' in output:
        doc['diagnostics'] = output['diagnostics']
    doc.update(sections)

    unknown = set(doc) - set(ClassificationConfig._fields)
    if unknown:
        raise ConfigurationError(f"Unknown config keys: {sorted(unknown)}")
    return validate(ClassificationConfig(**doc))


def load_config(path) -> ClassificationConfig:
    _LOG.info('Loading config %s', path)
    try:
        with open(path, 'r') as config_file:
            doc = yaml.safe_load(config_file)
    except (OSError, yaml.YAMLError) as err:
        raise ConfigurationError(f"Cannot read config {path}: {err}") from err
    if doc is not None and not isinstance(doc, dict):
        raise ConfigurationError(f"Config {path} must be a YAML mapping")
    return config_from_dict(doc)
