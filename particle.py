# particle.py
"""
Manages the state of all particles in the simulation.

This module defines the Particle record and the ParticleSystem class,
which is responsible for initializing and storing particle data
(position, heading and trail history) in efficient NumPy arrays.
A particle's identity is its index into those arrays.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple

import numpy as np

# --- Data Contracts ---
#
# class ParticleSystem:
#   - __init__(self, params: Dict[str, Any], width: float, height: float,
#              positions: Optional[np.ndarray] = None):
#     - Inputs:
#       - params: Dictionary of simulation parameters from config.json.
#         - "seed": int
#         - "particle_count": int
#         - "trail_length": int (optional, default 1)
#       - width, height: size of the simulation viewport.
#       - positions: optional (N, 2) array of starting positions. When given,
#         it replaces the seeded uniform draw and defines the particle count.
#     - Side Effects: Initializes internal NumPy arrays for particle state.
#     - Invariants:
#       - self.positions is a NumPy array of shape (N, 2) of dtype float64.
#       - self.headings is a NumPy array of shape (N,) of dtype float64.
#       - self.trails is a NumPy array of shape (N, L, 2) of dtype float64,
#         a ring buffer whose newest column is self.trail_cursor.
#
#   - __getitem__(self, index: int) -> Particle: read-only record.


@dataclass(frozen=True)
class Particle:
    """A read-only view of one particle at one point in time."""
    index: int
    position: Tuple[float, float]
    heading: float
    trail: Tuple[Tuple[float, float], ...]

    @property
    def direction(self) -> Tuple[float, float]:
        """Unit vector of the heading."""
        return (math.cos(self.heading), math.sin(self.heading))


class ParticleSystem:
    """
    A container for all particles, managing their state via NumPy arrays.
    """
    def __init__(self, params: Dict[str, Any], width: float, height: float,
                 positions: Optional[np.ndarray] = None):
        """
        Initializes the particle system.

        Args:
            params (Dict[str, Any]): Simulation parameters from config.
            width (float): The width of the simulation area.
            height (float): The height of the simulation area.
            positions (Optional[np.ndarray]): Explicit starting positions.
        """
        self.seed = params['seed']
        self.trail_length = int(params.get('trail_length', 1))
        self.width = float(width)
        self.height = float(height)

        if self.trail_length < 1:
            msg = f"Configuration error: trail_length must be at least 1, got {self.trail_length}."
            logging.critical(msg)
            raise ValueError(msg)

        # All randomness in this module comes from one RNG built from the
        # master seed, so a run is reproducible from config.json alone.
        self.rng = np.random.default_rng(self.seed)

        if positions is not None:
            self.positions = np.array(positions, dtype=np.float64).reshape(-1, 2)
            self.particle_count = self.positions.shape[0]
            if self.particle_count != params.get('particle_count', self.particle_count):
                logging.warning(
                    f"Explicit positions define {self.particle_count} particles; "
                    f"ignoring particle_count={params['particle_count']}."
                )
        else:
            self.particle_count = int(params['particle_count'])
            if self.particle_count < 0:
                msg = f"Configuration error: particle_count must be non-negative, got {self.particle_count}."
                logging.critical(msg)
                raise ValueError(msg)
            self.positions = self.random_positions(self.particle_count)

        self.headings = self.rng.uniform(0.0, 2.0 * math.pi, size=self.particle_count)
        self.trails = np.repeat(self.positions[:, np.newaxis, :], self.trail_length, axis=1)
        self.trail_cursor = 0

        logging.info(
            f"ParticleSystem initialized with {self.particle_count} particles "
            f"(trail length {self.trail_length})."
        )
        logging.debug(
            f"Particle data arrays created. "
            f"Positions shape: {self.positions.shape}, "
            f"Headings shape: {self.headings.shape}, "
            f"Trails shape: {self.trails.shape}"
        )

    def __len__(self) -> int:
        return self.particle_count

    def __getitem__(self, index: int) -> Particle:
        if not -self.particle_count <= index < self.particle_count:
            raise IndexError(f"particle index {index} out of range")
        index %= self.particle_count
        x, y = self.positions[index]
        trail = self.trails_ordered()[index]
        return Particle(
            index=index,
            position=(float(x), float(y)),
            heading=float(self.headings[index]),
            trail=tuple((float(px), float(py)) for px, py in trail),
        )

    def __iter__(self) -> Iterator[Particle]:
        for i in range(self.particle_count):
            yield self[i]

    def random_positions(self, count: int) -> np.ndarray:
        """Draws `count` positions uniformly over the viewport."""
        return self.rng.uniform(
            low=[0.0, 0.0],
            high=[self.width, self.height],
            size=(count, 2)
        )

    def record_trail(self):
        """Pushes the current positions into the trail ring buffer."""
        self.trail_cursor = (self.trail_cursor + 1) % self.trail_length
        self.trails[:, self.trail_cursor] = self.positions

    def reset_trails(self, mask: Optional[np.ndarray] = None):
        """Collapses trails onto the current positions, for all or masked particles."""
        if mask is None:
            self.trails[:] = self.positions[:, np.newaxis, :]
        else:
            self.trails[mask] = self.positions[mask][:, np.newaxis, :]

    def trails_ordered(self) -> np.ndarray:
        """Trail history as an (N, L, 2) array, oldest entry first."""
        return np.roll(self.trails, -(self.trail_cursor + 1), axis=1)

    def set_viewport(self, width: float, height: float):
        self.width = float(width)
        self.height = float(height)

    def resize(self, count: int):
        """
        Grows or shrinks the population, keeping surviving particles intact.

        New particles are placed uniformly; shrinking drops the highest indices.
        """
        count = max(0, int(count))
        current = self.particle_count
        if count == current:
            return
        if count < current:
            self.positions = self.positions[:count].copy()
            self.headings = self.headings[:count].copy()
            self.trails = self.trails[:count].copy()
        else:
            extra = count - current
            new_positions = self.random_positions(extra)
            new_headings = self.rng.uniform(0.0, 2.0 * math.pi, size=extra)
            new_trails = np.repeat(new_positions[:, np.newaxis, :], self.trail_length, axis=1)
            self.positions = np.concatenate((self.positions, new_positions))
            self.headings = np.concatenate((self.headings, new_headings))
            self.trails = np.concatenate((self.trails, new_trails))
        self.particle_count = count
        logging.info(f"Particle count changed from {current} to {count}.")
