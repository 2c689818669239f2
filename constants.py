# constants.py
"""
Application-level constants.

These values are static and do not change between simulation runs.
They are fundamental to the application's framework, such as rendering
properties, default window sizes, or engine limits that are not part of
the experimental configuration in config.json.
"""

# Visualization settings
# Set to True to run in borderless fullscreen mode.
# Set to False to run in a resizable window of DEFAULT_WINDOW_SIZE.
FULLSCREEN = False
DEFAULT_WINDOW_SIZE = (1200, 800)
FPS = 60
BACKGROUND_COLOR = (0, 0, 0)
PARTICLE_COLOR = (255, 255, 255)
DEFAULT_PARTICLE_RADIUS = 1

# --- Visual Appeal Enhancements ---
# Alpha value for the motion blur effect (0-255). Lower is a longer trail.
MOTION_BLUR_ALPHA = 12
# Brightness multiplier applied to the particle colour. 20 is the
# neutral value; each luminosity step is 1.
DEFAULT_LUMINOSITY = 20.0
LUMINOSITY_NEUTRAL = 20.0
LUMINOSITY_MIN = 1.0
LUMINOSITY_MAX = 60.0
# Alpha for the HUD overlay background
HUD_BACKGROUND_ALPHA = 120

# --- Engine defaults ---
# Used when the matching key is missing from simulation_parameters.
DEFAULT_NOISE_SCALE = 0.005
DEFAULT_SPEED = 60.0
DEFAULT_MIN_SCALE = 0.001
# Above about half a lattice cell per pixel, neighbouring samples alias.
DEFAULT_MAX_SCALE = 0.5
DEFAULT_SCALE_STEP = 0.001
DEFAULT_PARTICLE_STEP = 250
BOUNDARY_POLICIES = ("wrap", "clamp", "respawn")

# Number of lattice cells before gradient noise repeats.
NOISE_LATTICE_PERIOD = 256
