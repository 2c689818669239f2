# controls.py
"""
Maps discrete user intents onto simulation reconfiguration calls.

The ControlSurface holds no simulation state of its own. It decides what
each intent means (which reconfigure call it triggers, with which step)
and leaves validation and clamping to the Simulation.
"""
import logging
from enum import Enum, auto
from typing import Callable, Optional

import numpy as np

from constants import DEFAULT_PARTICLE_STEP, DEFAULT_SCALE_STEP
from simulation import Simulation


class Intent(Enum):
    RANDOMIZE_SEED = auto()
    ZOOM_OUT = auto()         # smaller scale, smoother field
    ZOOM_IN = auto()          # larger scale, more turbulent field
    RESET_PARTICLES = auto()
    MORE_PARTICLES = auto()
    FEWER_PARTICLES = auto()


def draw_fresh_random_seed() -> int:
    """Draws a seed from an unseeded generator."""
    return int(np.random.default_rng().integers(0, 2**63 - 1))


class ControlSurface:
    """
    Translates user intents into Simulation calls.
    """
    def __init__(self, simulation: Simulation, scale_step: float = DEFAULT_SCALE_STEP,
                 particle_step: int = DEFAULT_PARTICLE_STEP,
                 seed_source: Optional[Callable[[], int]] = None):
        if not scale_step > 0:
            msg = f"Configuration error: scale_step must be positive, got {scale_step}."
            logging.critical(msg)
            raise ValueError(msg)
        self.simulation = simulation
        self.scale_step = float(scale_step)
        self.particle_step = int(particle_step)
        self.seed_source = seed_source or draw_fresh_random_seed

        self._handlers = {
            Intent.RANDOMIZE_SEED: self.randomize_seed,
            Intent.ZOOM_OUT: self.zoom_out,
            Intent.ZOOM_IN: self.zoom_in,
            Intent.RESET_PARTICLES: self.simulation.reset_particles,
            Intent.MORE_PARTICLES: lambda: self.adjust_particle_count(self.particle_step),
            Intent.FEWER_PARTICLES: lambda: self.adjust_particle_count(-self.particle_step),
        }

    def randomize_seed(self):
        """Switches to a new, different noise seed."""
        current = self.simulation.config.seed
        seed = self.seed_source()
        for _ in range(8):
            if seed != current:
                break
            seed = self.seed_source()
        else:
            seed = current + 1
        return self.simulation.reconfigure(new_seed=seed)

    def zoom_out(self):
        return self.simulation.reconfigure(new_scale_delta=-self.scale_step)

    def zoom_in(self):
        return self.simulation.reconfigure(new_scale_delta=self.scale_step)

    def adjust_particle_count(self, delta: int):
        count = max(0, self.simulation.particles.particle_count + delta)
        self.simulation.set_particle_count(count)

    def handle(self, intent: Intent):
        """Dispatches one intent. Unknown intents are ignored."""
        handler = self._handlers.get(intent)
        if handler is None:
            logging.warning(f"No handler for intent {intent!r}.")
            return None
        logging.debug(f"Handling intent {intent.name}.")
        return handler()
