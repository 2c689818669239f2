# visualization.py
"""
Handles the visualization of the flow field using Pygame.

The Visualizer is the host side of the engine: it owns the window, turns
key presses into ControlSurface intents, and draws whatever snapshot the
Simulation reports. It never writes to simulation state directly.
"""
import logging
from dataclasses import dataclass, replace
from typing import Optional, Tuple

import numpy as np
import pygame

from constants import (
    BACKGROUND_COLOR, DEFAULT_LUMINOSITY, DEFAULT_PARTICLE_RADIUS,
    DEFAULT_WINDOW_SIZE, FPS, FULLSCREEN, HUD_BACKGROUND_ALPHA,
    LUMINOSITY_MAX, LUMINOSITY_MIN, LUMINOSITY_NEUTRAL, MOTION_BLUR_ALPHA,
    PARTICLE_COLOR
)
from controls import ControlSurface, Intent
from simulation import Simulation, SimulationState

# --- Data Contracts ---
#
# class Visualizer:
#   - __init__(self, vis_params: Optional[dict] = None):
#     - Inputs:
#       - vis_params: the "visualization" section of config.json.
#         - "background_color", "particle_color": [r, g, b] (optional)
#         - "luminosity": float (optional)
#         - "show_hud": bool (optional)
#     - Side Effects: Initializes Pygame and creates a display surface.
#
#   - draw(self, simulation: Simulation, controls: ControlSurface) -> bool:
#     - Outputs:
#       - bool: False if the user has quit, True otherwise.
#     - Side Effects: Handles Pygame events (forwarding engine intents to
#       the ControlSurface) and renders the current snapshot.

KEY_INTENTS = {
    pygame.K_SPACE: Intent.RANDOMIZE_SEED,
    pygame.K_UP: Intent.ZOOM_OUT,
    pygame.K_DOWN: Intent.ZOOM_IN,
    pygame.K_r: Intent.RESET_PARTICLES,
    pygame.K_EQUALS: Intent.MORE_PARTICLES,
    pygame.K_MINUS: Intent.FEWER_PARTICLES,
}

HELP_TEXT = "SPACE seed  UP/DOWN scale  R reset  +/- count  I/N colours  A/D glow  H hud"


def intent_for_key(key: int) -> Optional[Intent]:
    """Returns the engine intent bound to a key, or None."""
    return KEY_INTENTS.get(key)


@dataclass(frozen=True)
class ColorScheme:
    background: Tuple[int, int, int]
    particle: Tuple[int, int, int]
    luminosity: float = DEFAULT_LUMINOSITY

    def inverse(self) -> "ColorScheme":
        return ColorScheme(self.particle, self.background, self.luminosity)

    @classmethod
    def random(cls, luminosity: float = DEFAULT_LUMINOSITY,
               rng: Optional[np.random.Generator] = None) -> "ColorScheme":
        rng = rng or np.random.default_rng()
        background, particle = rng.integers(0, 256, size=(2, 3))
        return cls(tuple(int(c) for c in background), tuple(int(c) for c in particle), luminosity)

    def with_luminosity(self, luminosity: float) -> "ColorScheme":
        return replace(self, luminosity=float(np.clip(luminosity, LUMINOSITY_MIN, LUMINOSITY_MAX)))

    def particle_draw_color(self) -> Tuple[int, int, int]:
        """Particle colour scaled by luminosity and clipped to 0-255."""
        gain = self.luminosity / LUMINOSITY_NEUTRAL
        return tuple(int(np.clip(c * gain, 0, 255)) for c in self.particle)


def _parse_color(value, fallback: Tuple[int, int, int], name: str) -> Tuple[int, int, int]:
    if value is None:
        return fallback
    try:
        color = pygame.Color(*value) if isinstance(value, (list, tuple)) else pygame.Color(value)
    except (ValueError, TypeError) as e:
        logging.error(f"Could not parse {name} from config due to invalid format: {e}. Using default.")
        return fallback
    return (color.r, color.g, color.b)


class Visualizer:
    """
    Renders the flow field particles and a small HUD, and handles input.
    """
    def __init__(self, vis_params: Optional[dict] = None):
        """
        Initializes Pygame and the display window.
        """
        pygame.init()
        pygame.font.init()
        vis_params = vis_params if vis_params is not None else {}

        if FULLSCREEN:
            display_info = pygame.display.Info()
            width, height = display_info.current_w, display_info.current_h
            self.screen = pygame.display.set_mode((width, height), pygame.FULLSCREEN)
        else:
            width, height = vis_params.get('window_size', DEFAULT_WINDOW_SIZE)
            self.screen = pygame.display.set_mode((width, height), pygame.RESIZABLE)

        pygame.display.set_caption("Flow Field")
        self.clock = pygame.time.Clock()

        self.colors = ColorScheme(
            background=_parse_color(vis_params.get('background_color'), BACKGROUND_COLOR, "background_color"),
            particle=_parse_color(vis_params.get('particle_color'), PARTICLE_COLOR, "particle_color"),
        ).with_luminosity(vis_params.get('luminosity', DEFAULT_LUMINOSITY))
        self.particle_radius = int(vis_params.get('particle_radius', DEFAULT_PARTICLE_RADIUS))
        self.show_hud = bool(vis_params.get('show_hud', True))
        self._rng = np.random.default_rng()

        try:
            self.font_main = pygame.font.SysFont("Segoe UI", 14)
        except pygame.error:
            logging.warning("Segoe UI font not found, falling back to default sans-serif.")
            self.font_main = pygame.font.SysFont(None, 18)

        self._create_surfaces(width, height)
        logging.info(f"Visualizer initialized with Pygame display ({width}x{height}).")

    def _create_surfaces(self, width: int, height: int):
        """(Re)creates the surfaces that depend on window size or colours."""
        self.sim_width = width
        self.sim_height = height
        self.sim_surface = pygame.Surface((width, height))
        self.sim_surface.fill(self.colors.background)
        # Blitting this translucent layer every frame fades the previous
        # frames, which is what leaves the flowing trails behind.
        self.blur_surface = pygame.Surface((width, height), pygame.SRCALPHA)
        self.blur_surface.fill((*self.colors.background, MOTION_BLUR_ALPHA))

    def _set_colors(self, colors: ColorScheme):
        self.colors = colors
        self._create_surfaces(self.sim_width, self.sim_height)
        logging.info(
            f"Colour scheme changed. Background: {colors.background}, "
            f"Particle: {colors.particle}, Luminosity: {colors.luminosity:.0f}"
        )

    def _handle_key(self, key: int, controls: ControlSurface) -> bool:
        if key == pygame.K_ESCAPE:
            logging.info("ESC key pressed. Shutting down visualizer.")
            return False
        if key == pygame.K_i:
            self._set_colors(self.colors.inverse())
        elif key == pygame.K_n:
            self._set_colors(ColorScheme.random(self.colors.luminosity, self._rng))
        elif key == pygame.K_a:
            self._set_colors(self.colors.with_luminosity(self.colors.luminosity - 1.0))
        elif key == pygame.K_d:
            self._set_colors(self.colors.with_luminosity(self.colors.luminosity + 1.0))
        elif key == pygame.K_h:
            self.show_hud = not self.show_hud
        else:
            intent = intent_for_key(key)
            if intent is not None:
                controls.handle(intent)
        return True

    def handle_events(self, simulation: Simulation, controls: ControlSurface) -> bool:
        """Processes pending events. Returns False when the user quits."""
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                logging.info("Quit event received. Shutting down visualizer.")
                return False
            if event.type == pygame.KEYDOWN:
                if not self._handle_key(event.key, controls):
                    return False
            if event.type == pygame.VIDEORESIZE:
                self.screen = pygame.display.get_surface()
                self._create_surfaces(event.w, event.h)
                simulation.resize_viewport(event.w, event.h)
        return True

    def _draw_particles(self, state: SimulationState):
        color = self.colors.particle_draw_color()
        trails = state.trails
        if trails.shape[0] == 0:
            return

        if trails.shape[1] == 1:
            for x, y in state.positions:
                pygame.draw.circle(self.sim_surface, color, (int(x), int(y)), self.particle_radius)
            return

        # A segment longer than half the viewport is a wrap or respawn jump,
        # not motion, so the polyline is split there.
        steps = np.abs(np.diff(trails, axis=1))
        jumps = (steps[:, :, 0] > state.width / 2) | (steps[:, :, 1] > state.height / 2)
        for trail, breaks in zip(trails, jumps):
            start = 0
            for cut in np.flatnonzero(breaks) + 1:
                if cut - start >= 2:
                    pygame.draw.lines(self.sim_surface, color, False, trail[start:cut].tolist())
                start = cut
            if len(trail) - start >= 2:
                pygame.draw.lines(self.sim_surface, color, False, trail[start:].tolist())

    def _draw_hud(self, state: SimulationState):
        lines = [
            f"Seed: {state.config.seed}",
            f"Scale: {state.config.scale:.4f}",
            f"Particles: {state.positions.shape[0]}",
            f"FPS: {self.clock.get_fps():.0f}",
            HELP_TEXT,
        ]
        text_color = self.colors.particle_draw_color()
        surfaces = [self.font_main.render(line, True, text_color) for line in lines]
        padding = 8
        box_width = max(s.get_width() for s in surfaces) + padding * 2
        box_height = sum(s.get_height() for s in surfaces) + padding * 2

        box = pygame.Surface((box_width, box_height), pygame.SRCALPHA)
        box.fill((*self.colors.background, HUD_BACKGROUND_ALPHA))
        self.screen.blit(box, (10, 10))
        y = 10 + padding
        for surf in surfaces:
            self.screen.blit(surf, (10 + padding, y))
            y += surf.get_height()

    def draw(self, simulation: Simulation, controls: ControlSurface) -> bool:
        """
        Handles events, then draws the current frame.

        Returns:
            bool: False if the simulation should exit, True otherwise.
        """
        if not self.handle_events(simulation, controls):
            return False

        state = simulation.snapshot()
        self.sim_surface.blit(self.blur_surface, (0, 0))
        self._draw_particles(state)
        self.screen.blit(self.sim_surface, (0, 0))
        if self.show_hud:
            self._draw_hud(state)

        pygame.display.flip()
        return True

    def frame_time(self) -> float:
        """Waits for the next frame and returns the elapsed time in seconds."""
        return self.clock.tick(FPS) / 1000.0

    def close(self):
        """Shuts down Pygame."""
        pygame.font.quit()
        pygame.quit()
