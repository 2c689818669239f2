# noise_field.py
"""
Seeded gradient noise and the noise-to-direction mapping.

This module defines the NoiseFieldConfig value object and the NoiseField
sampler. A sample maps a 2-D position to a steering angle in [0, 2*pi)
by evaluating Perlin-style gradient noise at `position * scale` and
stretching the raw value from [-1, 1] onto a full turn.
"""
import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence, Tuple

import numpy as np
from numba import jit

from constants import NOISE_LATTICE_PERIOD

# --- Data Contracts ---
#
# class NoiseFieldConfig:
#   - seed: int, any Python int. Selects the noise topology.
#   - scale: float, strictly positive. Spatial frequency multiplier.
#   - Invariants: immutable. A new field topology means a new instance.
#
# sample(config: NoiseFieldConfig, position: Tuple[float, float]) -> float:
#   - Outputs: angle in radians, 0 <= angle < 2*pi.
#   - Side Effects: None. Same inputs always give the same output.
#
# class NoiseField:
#   - sample(self, position) -> float
#   - sample_many(self, positions: np.ndarray (N, 2)) -> np.ndarray (N,)
#     - Element i of sample_many equals sample(positions[i]) bit for bit.

TWO_PI = 2.0 * math.pi


@dataclass(frozen=True)
class NoiseFieldConfig:
    """The active (seed, scale) pair of a flow field."""
    seed: int
    scale: float

    def __post_init__(self):
        # NumPy scalars are normalised so seeds hash and reduce like Python ints.
        object.__setattr__(self, 'seed', int(self.seed))
        object.__setattr__(self, 'scale', float(self.scale))
        if not (math.isfinite(self.scale) and self.scale > 0):
            raise ValueError(f"Noise scale must be a positive finite number, got {self.scale!r}.")


@jit(nopython=True)
def _fade(t):
    return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)


@jit(nopython=True)
def _lerp(a, b, t):
    return a + t * (b - a)


@jit(nopython=True)
def _grad(h, x, y):
    # Four diagonal gradients keep the output inside [-1, 1].
    h = h & 3
    if h == 0:
        return x + y
    elif h == 1:
        return -x + y
    elif h == 2:
        return x - y
    return -x - y


@jit(nopython=True)
def _perlin_2d_numba(xs, ys, perm, period):
    """
    Numba-jitted 2-D gradient noise over flat coordinate arrays.

    `perm` is a doubled permutation table of length 2 * period. Coordinates
    are reduced modulo the lattice period first, which leaves the field
    unchanged and keeps the integer lattice index bounded for any input.
    """
    n = xs.shape[0]
    out = np.empty(n, dtype=np.float64)
    mask = period - 1
    for i in range(n):
        x = xs[i]
        y = ys[i]
        if not (math.isfinite(x) and math.isfinite(y)):
            out[i] = 0.0
            continue

        x = x % period
        y = y % period
        x0 = math.floor(x)
        y0 = math.floor(y)
        xf = x - x0
        yf = y - y0
        xi = int(x0) & mask
        yi = int(y0) & mask

        u = _fade(xf)
        v = _fade(yf)

        aa = perm[perm[xi] + yi]
        ab = perm[perm[xi] + yi + 1]
        ba = perm[perm[xi + 1] + yi]
        bb = perm[perm[xi + 1] + yi + 1]

        x1 = _lerp(_grad(aa, xf, yf), _grad(ba, xf - 1.0, yf), u)
        x2 = _lerp(_grad(ab, xf, yf - 1.0), _grad(bb, xf - 1.0, yf - 1.0), u)
        out[i] = _lerp(x1, x2, v)
    return out


@lru_cache(maxsize=32)
def _seed_tables(seed: int) -> Tuple[np.ndarray, float, float]:
    """
    Builds the permutation table and lattice offset selected by a seed.

    The offset shifts sampling off the integer lattice, where gradient noise
    is zero for every seed.
    """
    rng = np.random.default_rng(seed % (1 << 64))
    perm = rng.permutation(NOISE_LATTICE_PERIOD).astype(np.int64)
    table = np.concatenate((perm, perm))
    table.flags.writeable = False
    offset_x, offset_y = rng.uniform(0.0, NOISE_LATTICE_PERIOD, size=2)
    logging.debug(f"Built noise tables for seed {seed}.")
    return table, float(offset_x), float(offset_y)


def noise_to_angle(values):
    """Maps raw noise in [-1, 1] linearly onto [0, 2*pi)."""
    clipped = np.clip(values, -1.0, 1.0)
    return np.mod((clipped + 1.0) * math.pi, TWO_PI)


class NoiseField:
    """
    Deterministic direction sampler for a single NoiseFieldConfig.
    """
    def __init__(self, config: NoiseFieldConfig):
        self.config = config
        self._perm, self._offset_x, self._offset_y = _seed_tables(config.seed)

    def raw_many(self, positions) -> np.ndarray:
        """Raw noise values in [-1, 1] for an (N, 2) array of positions."""
        pts = np.asarray(positions, dtype=np.float64).reshape(-1, 2)
        scale = self.config.scale
        xs = pts[:, 0] * scale + self._offset_x
        ys = pts[:, 1] * scale + self._offset_y
        return _perlin_2d_numba(xs, ys, self._perm, NOISE_LATTICE_PERIOD)

    def sample_many(self, positions) -> np.ndarray:
        """Steering angles for an (N, 2) array of positions."""
        return noise_to_angle(self.raw_many(positions))

    def sample(self, position: Sequence[float]) -> float:
        """Steering angle for a single (x, y) position."""
        return float(self.sample_many(np.array([position], dtype=np.float64))[0])


def sample(config: NoiseFieldConfig, position: Sequence[float]) -> float:
    """Pure function form of NoiseField.sample."""
    return NoiseField(config).sample(position)
