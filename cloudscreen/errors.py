"""
Exceptions raised while setting up a classification run.

Per-pixel problems (impossible radiances, sun below the horizon, table indices
outside their range) never raise: the pixel is flagged INVALID or the index is
clamped. Only problems with the configuration or the static resources abort a run.
"""


class CloudScreenError(Exception):
    """Base class for all cloudscreen errors."""


class ConfigurationError(CloudScreenError, ValueError):
    """Invalid or inconsistent run configuration (unknown sensor, bad thresholds, missing inputs)."""


class ArtifactError(ConfigurationError):
    """Neural net artifact is missing or malformed."""


class LookupTableError(ConfigurationError):
    """A packaged lookup table is missing or cannot be parsed."""
