# simulation.py
"""
Handles the core simulation logic.

This module defines the Simulation class, which is responsible for
advancing the state of the particle system by one time step. Every step
samples the active noise field at each particle's position, steers the
particle toward the sampled direction and moves it, then applies the
boundary policy. The Simulation also owns the live NoiseFieldConfig and
is the only place where it can be replaced.
"""
import logging
import math
import numbers
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np

from constants import (
    BOUNDARY_POLICIES, DEFAULT_MAX_SCALE, DEFAULT_MIN_SCALE,
    DEFAULT_NOISE_SCALE, DEFAULT_SPEED
)
from noise_field import NoiseField, NoiseFieldConfig, TWO_PI
from particle import ParticleSystem

# --- Data Contracts ---
#
# class Simulation:
#   - __init__(self, particles: ParticleSystem, params: Dict[str, Any],
#              width: float, height: float):
#     - Inputs:
#       - particles: An initialized ParticleSystem object.
#       - params: Dictionary of simulation parameters from config.json.
#         - "seed": int, master seed
#         - "noise_seed": int (optional, defaults to "seed")
#         - "noise_scale": float
#         - "speed": float, distance per unit of time
#         - "turn_rate": float or null, radians per unit of time
#         - "boundary_policy": "wrap" | "clamp" | "respawn"
#         - "min_scale", "max_scale": float, bounds for noise_scale
#     - Side Effects: Stores references to particles and parameters.
#       Brings any out-of-bounds starting positions inside the viewport.
#
#   - tick(self, dt: float) -> None:
#     - Side Effects: Replaces the positions and headings arrays of the
#       ParticleSystem and pushes one trail entry.
#     - Invariants: Particle count remains constant. Afterwards every
#       position satisfies 0 <= x < width and 0 <= y < height. On failure
#       nothing is committed.
#
#   - reconfigure(self, new_seed=None, new_scale_delta=None, new_scale=None)
#       -> NoiseFieldConfig:
#     - Side Effects: Replaces the active NoiseFieldConfig. Positions and
#       headings are untouched.
#     - Invariants: min_scale <= scale <= max_scale.


class SimulationError(RuntimeError):
    """Raised when a tick cannot be completed. The previous state is kept."""


@dataclass(frozen=True)
class SimulationState:
    """A read-only copy of everything the host needs to draw one frame."""
    positions: np.ndarray
    headings: np.ndarray
    trails: np.ndarray
    config: NoiseFieldConfig
    width: float
    height: float
    step_count: int


def wrap_angle(angles):
    """Maps angles onto [-pi, pi)."""
    return np.mod(np.asarray(angles) + math.pi, TWO_PI) - math.pi


def wrap_positions(positions: np.ndarray, width: float, height: float) -> np.ndarray:
    """Toroidal wrap of an (N, 2) array into [0, width) x [0, height)."""
    wrapped = np.empty_like(positions)
    for axis, extent in ((0, width), (1, height)):
        column = np.mod(positions[:, axis], extent)
        # A tiny negative value can round up to exactly `extent`.
        column[column >= extent] = 0.0
        wrapped[:, axis] = column
    return wrapped


def clamp_positions(positions: np.ndarray, width: float, height: float) -> np.ndarray:
    """Clamps an (N, 2) array into [0, width) x [0, height)."""
    upper = np.array([np.nextafter(width, 0.0), np.nextafter(height, 0.0)])
    return np.clip(positions, 0.0, upper)


def outside_mask(positions: np.ndarray, width: float, height: float) -> np.ndarray:
    x = positions[:, 0]
    y = positions[:, 1]
    return (x < 0.0) | (x >= width) | (y < 0.0) | (y >= height)


class Simulation:
    """
    Advances a flow-field particle population one time step at a time.
    """
    def __init__(self, particles: ParticleSystem, params: Dict[str, Any],
                 width: float, height: float):
        """
        Initializes the simulation environment.

        Args:
            particles (ParticleSystem): The particle system to simulate.
            params (Dict[str, Any]): Simulation parameters from config.
            width (float): Width of the viewport.
            height (float): Height of the viewport.
        """
        self.particles = particles
        self.speed = float(params.get('speed', DEFAULT_SPEED))
        turn_rate = params.get('turn_rate')
        self.turn_rate = None if turn_rate is None else float(turn_rate)
        self.boundary_policy = params.get('boundary_policy', 'wrap')
        self.min_scale = float(params.get('min_scale', DEFAULT_MIN_SCALE))
        self.max_scale = float(params.get('max_scale', DEFAULT_MAX_SCALE))
        self.width = float(width)
        self.height = float(height)
        self.step_count = 0

        # Structural problems in the config are fatal at start-up.
        errors = []
        if not (self.width > 0 and self.height > 0):
            errors.append(f"viewport must be positive, got {self.width}x{self.height}")
        if self.boundary_policy not in BOUNDARY_POLICIES:
            errors.append(
                f"boundary_policy must be one of {BOUNDARY_POLICIES}, got {self.boundary_policy!r}"
            )
        if not (0 < self.min_scale <= self.max_scale and math.isfinite(self.max_scale)):
            errors.append(
                f"scale bounds must satisfy 0 < min_scale <= max_scale, "
                f"got {self.min_scale} and {self.max_scale}"
            )
        if not math.isfinite(self.speed):
            errors.append(f"speed must be finite, got {self.speed}")
        if self.turn_rate is not None and not (self.turn_rate >= 0 and math.isfinite(self.turn_rate)):
            errors.append(f"turn_rate must be null or a non-negative number, got {self.turn_rate}")
        if errors:
            msg = "Configuration error: " + "; ".join(errors) + "."
            logging.critical(msg)
            raise ValueError(msg)

        # A bad starting scale degrades to the nearest valid value.
        scale = float(params.get('noise_scale', DEFAULT_NOISE_SCALE))
        if not math.isfinite(scale):
            logging.warning(f"noise_scale {scale} is not finite; using {DEFAULT_NOISE_SCALE}.")
            scale = DEFAULT_NOISE_SCALE
        clamped = self._clamp_scale(scale)
        if clamped != scale:
            logging.warning(f"noise_scale {scale} outside [{self.min_scale}, {self.max_scale}]; using {clamped}.")
        seed = params.get('noise_seed', params['seed'])
        self._field = NoiseField(NoiseFieldConfig(seed=seed, scale=clamped))

        # Respawned particles are drawn over the particle system's viewport.
        self.particles.set_viewport(self.width, self.height)
        if self.particles.particle_count:
            bounded, respawned = self._apply_boundary(self.particles.positions)
            if (respawned is not None and respawned.any()) or not np.array_equal(bounded, self.particles.positions):
                logging.warning("Some starting positions were outside the viewport and were re-bounded.")
            self.particles.positions = bounded
            self.particles.reset_trails()

        steering = "direct assignment" if self.turn_rate is None else f"turn rate {self.turn_rate:.2f} rad/s"
        logging.info("Simulation logic initialized and configuration validated.")
        logging.info(
            f"Noise field: seed {self.config.seed}, scale {self.config.scale:.4f}. "
            f"Speed {self.speed:.1f}, {steering}, boundary policy '{self.boundary_policy}'."
        )

    @property
    def config(self) -> NoiseFieldConfig:
        return self._field.config

    @property
    def field(self) -> NoiseField:
        return self._field

    @property
    def positions(self) -> np.ndarray:
        """
        Read-only view of the current positions.

        Ticks replace the positions array instead of writing into it, so a
        view taken between ticks stays valid as a snapshot of that frame.
        """
        view = self.particles.positions.view()
        view.flags.writeable = False
        return view

    @property
    def headings(self) -> np.ndarray:
        view = self.particles.headings.view()
        view.flags.writeable = False
        return view

    def snapshot(self) -> SimulationState:
        return SimulationState(
            positions=self.particles.positions.copy(),
            headings=self.particles.headings.copy(),
            trails=self.particles.trails_ordered(),
            config=self.config,
            width=self.width,
            height=self.height,
            step_count=self.step_count,
        )

    def _clamp_scale(self, scale: float) -> float:
        return min(max(scale, self.min_scale), self.max_scale)

    def _steer(self, headings: np.ndarray, targets: np.ndarray, dt: float) -> np.ndarray:
        """Turns each heading toward its target along the shortest arc."""
        if self.turn_rate is None:
            return targets
        max_turn = self.turn_rate * dt
        delta = np.clip(wrap_angle(targets - headings), -max_turn, max_turn)
        return np.mod(headings + delta, TWO_PI)

    def _apply_boundary(self, positions: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        """
        Brings positions back into the viewport.

        Returns the bounded positions and, for the respawn policy, the mask
        of particles that were respawned.
        """
        if self.boundary_policy == 'wrap':
            return wrap_positions(positions, self.width, self.height), None
        if self.boundary_policy == 'clamp':
            return clamp_positions(positions, self.width, self.height), None

        mask = outside_mask(positions, self.width, self.height)
        bounded = positions.copy()
        if mask.any():
            bounded[mask] = self.particles.random_positions(int(mask.sum()))
        return bounded, mask

    def tick(self, dt: float):
        """
        Executes one time step of the simulation.

        Args:
            dt (float): Elapsed time since the previous tick.
        """
        dt = float(dt)
        if not math.isfinite(dt):
            logging.warning(f"Skipping tick with non-finite dt={dt}.")
            return
        if dt < 0:
            logging.warning(f"Negative dt={dt} treated as 0.")
            dt = 0.0

        particles = self.particles
        # One field for the whole tick, even if reconfigure runs in between.
        field = self._field

        # 1. Sample the flow field at every particle
        targets = field.sample_many(particles.positions)

        # 2. Steer toward the sampled direction
        headings = self._steer(particles.headings, targets, dt)

        # 3. Integrate positions
        step = self.speed * dt
        positions = particles.positions + np.column_stack((np.cos(headings), np.sin(headings))) * step

        if not (np.isfinite(positions).all() and np.isfinite(headings).all()):
            msg = f"Tick {self.step_count + 1} produced non-finite particle state; keeping previous state."
            logging.error(msg)
            raise SimulationError(msg)

        # 4. Boundary policy
        positions, respawned = self._apply_boundary(positions)

        # 5. Commit
        particles.headings = headings
        particles.positions = positions
        particles.record_trail()
        if respawned is not None and respawned.any():
            particles.reset_trails(respawned)
        self.step_count += 1

    def reconfigure(self, new_seed: Optional[int] = None,
                    new_scale_delta: Optional[float] = None,
                    new_scale: Optional[float] = None) -> NoiseFieldConfig:
        """
        Replaces the active noise configuration.

        The new configuration is used from the next tick on. Scale changes
        are clamped to [min_scale, max_scale]; non-finite scales and
        non-integral seeds are ignored. Particles keep their position and heading.

        Returns:
            NoiseFieldConfig: The configuration now in effect.
        """
        old = self.config
        seed = old.seed
        scale = old.scale

        if new_seed is not None:
            if isinstance(new_seed, numbers.Integral) or (
                    isinstance(new_seed, float) and new_seed.is_integer()):
                seed = int(new_seed)
            else:
                logging.warning(f"Ignoring non-integral seed request {new_seed!r}.")
        if new_scale is not None:
            if math.isfinite(new_scale):
                scale = float(new_scale)
            else:
                logging.warning(f"Ignoring non-finite scale request {new_scale}.")
        if new_scale_delta is not None:
            if math.isfinite(new_scale_delta):
                scale = scale + float(new_scale_delta)
            else:
                logging.warning(f"Ignoring non-finite scale delta {new_scale_delta}.")

        clamped = self._clamp_scale(scale)
        if clamped != scale:
            logging.warning(
                f"Requested noise scale {scale:.4f} is outside "
                f"[{self.min_scale}, {self.max_scale}]; clamped to {clamped}."
            )

        config = NoiseFieldConfig(seed=seed, scale=clamped)
        if config != old:
            self._field = NoiseField(config)
            logging.info(
                f"Noise field reconfigured. Seed: {old.seed} -> {config.seed}, "
                f"Scale: {old.scale:.4f} -> {config.scale:.4f}"
            )
        return config

    def reset_particles(self):
        """Scatters every particle to a fresh uniform position and clears trails."""
        particles = self.particles
        particles.positions = particles.random_positions(particles.particle_count)
        particles.reset_trails()
        logging.info("Particle positions reset by user.")

    def resize_viewport(self, width: float, height: float):
        """Adopts a new viewport size and re-bounds all particles into it."""
        width = float(width)
        height = float(height)
        if not (width > 0 and height > 0 and math.isfinite(width) and math.isfinite(height)):
            logging.warning(f"Ignoring invalid viewport size {width}x{height}.")
            return
        self.width = width
        self.height = height
        self.particles.set_viewport(width, height)
        if self.particles.particle_count:
            self.particles.positions, _ = self._apply_boundary(self.particles.positions)
        self.particles.reset_trails()
        logging.info(f"Viewport resized to {width:.0f}x{height:.0f}.")

    def set_particle_count(self, count: int):
        """Grows or shrinks the population to `count` particles."""
        if count < 0:
            logging.warning(f"Particle count {count} is negative; using 0.")
        self.particles.resize(count)
