"""
Feed-forward neural net used as the primary cloud / clear / snow discriminant.

The net is loaded once from a text artifact and never modified afterwards:
``calc`` keeps all intermediate values local, so a single instance can be
shared by any number of worker threads.

Artifact format (whitespace separated, ``#`` starts a comment)::

    #planes=7 6 1
    input_min  <n0 values>
    input_max  <n0 values>
    output_min <nk values>
    output_max <nk values>
    bias 1
    <n1 values>
    wgt 1
    <n1 rows of n0 values>
    bias 2
    ...

Inputs are scaled to [0, 1] with the input ranges, every layer after the
input layer applies the logistic function, and the output layer is scaled
back with the output ranges.
"""
import logging
import re
from pathlib import Path

import numpy as np

from cloudscreen.errors import ArtifactError

_LOG = logging.getLogger(__name__)

_PLANES = re.compile(r'^#\s*planes\s*=\s*([\d\s]+)$')


def _frozen(values):
    array = np.array(values, dtype=np.float64)
    array.flags.writeable = False
    return array


def _sigmoid(x):
    return 0.5 * (1.0 + np.tanh(0.5 * x))


class _Reader(object):
    """Token stream over the non-comment part of an artifact."""

    def __init__(self, lines):
        self._tokens = [token for line in lines for token in line.split('#', 1)[0].split()]
        self._position = 0

    def keyword(self, expected, *numbers):
        found = self._take()
        if found != expected:
            raise ArtifactError(f"Expected {expected!r} but found {found!r}")
        for number in numbers:
            value = self._take()
            if value != str(number):
                raise ArtifactError(f"Expected {expected} {number} but found {expected} {value}")

    def floats(self, count):
        try:
            return [float(self._take()) for _ in range(count)]
        except ValueError as err:
            raise ArtifactError(f"Bad number in neural net artifact: {err}") from err

    def done(self):
        return self._position >= len(self._tokens)

    def _take(self):
        if self.done():
            raise ArtifactError('Neural net artifact ends prematurely')
        token = self._tokens[self._position]
        self._position += 1
        return token


class NeuralNet(object):
    """
    Immutable multi-layer perceptron.

    Use :meth:`load` or :meth:`from_file` rather than the constructor.
    """

    def __init__(self, planes, input_range, output_range, weights, biases):
        self.planes = tuple(planes)
        self._input_min, self._input_max = (_frozen(values) for values in input_range)
        self._output_min, self._output_max = (_frozen(values) for values in output_range)
        self._weights = tuple(_frozen(w) for w in weights)
        self._biases = tuple(_frozen(b) for b in biases)

    @property
    def n_inputs(self):
        return self.planes[0]

    @property
    def n_outputs(self):
        return self.planes[-1]

    @classmethod
    def load(cls, artifact):
        """Parse an artifact given as bytes or text."""
        if isinstance(artifact, bytes):
            try:
                artifact = artifact.decode('ascii')
            except UnicodeDecodeError as err:
                raise ArtifactError('Neural net artifact is not a text file') from err

        lines = artifact.splitlines()
        header = next((_PLANES.match(line.strip()) for line in lines if line.strip()), None)
        if header is None:
            raise ArtifactError('Neural net artifact does not start with a #planes= header')
        planes = [int(n) for n in header.group(1).split()]
        if len(planes) < 2 or min(planes) < 1:
            raise ArtifactError(f"Invalid net topology {planes}")

        reader = _Reader(lines)
        reader.keyword('input_min')
        input_min = reader.floats(planes[0])
        reader.keyword('input_max')
        input_max = reader.floats(planes[0])
        reader.keyword('output_min')
        output_min = reader.floats(planes[-1])
        reader.keyword('output_max')
        output_max = reader.floats(planes[-1])

        biases = []
        weights = []
        for layer in range(1, len(planes)):
            reader.keyword('bias', layer)
            biases.append(reader.floats(planes[layer]))
            reader.keyword('wgt', layer)
            flat = reader.floats(planes[layer] * planes[layer - 1])
            weights.append(np.reshape(flat, (planes[layer], planes[layer - 1])))
        if not reader.done():
            raise ArtifactError('Unexpected trailing content in neural net artifact')

        if any(high <= low for low, high in zip(input_min, input_max)):
            raise ArtifactError('Neural net input ranges must have max > min')

        _LOG.debug('Loaded neural net with planes %s', planes)
        return cls(planes, (input_min, input_max), (output_min, output_max), weights, biases)

    @classmethod
    def from_file(cls, path):
        try:
            artifact = Path(path).read_bytes()
        except OSError as err:
            raise ArtifactError(f"Cannot read neural net {path}: {err}") from err
        _LOG.info('Reading neural net %s', path)
        return cls.load(artifact)

    def calc(self, inputs):
        """
        Evaluate the net.

        ``inputs`` has shape ``(..., n_inputs)``; the result has shape
        ``(..., n_outputs)``. NaN inputs give NaN outputs.
        """
        inputs = np.asarray(inputs, dtype=np.float64)
        if inputs.shape[-1] != self.n_inputs:
            raise ValueError(f"Net expects {self.n_inputs} inputs, got {inputs.shape[-1]}")

        activation = (inputs - self._input_min) / (self._input_max - self._input_min)
        for weights, bias in zip(self._weights, self._biases):
            activation = _sigmoid(activation @ weights.T + bias)
        return self._output_min + activation * (self._output_max - self._output_min)


class ConstantNet(object):
    """Stand-in with the same ``calc`` contract that always answers ``value``."""

    def __init__(self, value, n_inputs=7):
        self.value = float(value)
        self.n_inputs = n_inputs
        self.n_outputs = 1

    def calc(self, inputs):
        inputs = np.asarray(inputs, dtype=np.float64)
        return np.full(inputs.shape[:-1] + (1,), self.value)


def input_vector(sza, vza, relazi, radiance):
    """
    Net inputs ``[sza, vza, relazi, sqrt(r1), sqrt(r2), sqrt(r4), sqrt(r5)]``.

    ``radiance`` is stacked by channel (channels 1-5 along axis 0) and must
    already have NaN in place of invalid values.
    """
    radiance = np.asarray(radiance, dtype=np.float64)
    roots = np.sqrt(np.where(radiance[[0, 1, 3, 4]] >= 0.0, radiance[[0, 1, 3, 4]], np.nan))
    angles = np.broadcast_arrays(np.asarray(sza, dtype=np.float64), vza, relazi, roots[0])[:3]
    return np.stack(list(angles) + list(roots), axis=-1)
