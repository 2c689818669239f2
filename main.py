# main.py
"""
Main entry point for the Flow Field visualization.

This script orchestrates the entire lifecycle:
1. Loads configuration from `config.json`.
2. Initializes the logging system.
3. Sets up the window, the particles, the simulation and its controls.
4. Runs the frame loop: one tick per frame, then events and drawing.
5. Handles clean shutdown.
"""
import cProfile
import io
import logging
import pstats
import sys

from constants import DEFAULT_PARTICLE_STEP, DEFAULT_SCALE_STEP
from utils import setup_logging, load_config


def main(config_path: str = 'config.json'):
    """
    The main function to run the visualization.
    """
    # Logging is not set up yet, so we use a print for this one error.
    try:
        config = load_config(config_path)
    except Exception as e:
        print(f"FATAL: Could not load {config_path}. Error: {e}")
        return

    setup_logging(config)

    logging.info("--- Flow Field Starting ---")

    sim_params = config['simulation_parameters']
    run_params = config['run_control']
    vis_params = config['visualization']

    from controls import ControlSurface
    from particle import ParticleSystem
    from simulation import Simulation
    from visualization import Visualizer

    # --- Component Initialization ---
    # 1. The visualizer determines the viewport size.
    visualizer = Visualizer(vis_params)
    sim_width = visualizer.sim_width
    sim_height = visualizer.sim_height

    # 2. The engine is built for that viewport.
    particles = ParticleSystem(sim_params, sim_width, sim_height)
    sim = Simulation(particles, sim_params, sim_width, sim_height)
    controls = ControlSurface(
        sim,
        scale_step=sim_params.get('scale_step', DEFAULT_SCALE_STEP),
        particle_step=sim_params.get('particle_step', DEFAULT_PARTICLE_STEP),
    )

    profiler = cProfile.Profile()

    log_throttle = run_params.get('log_throttle_steps', 300)
    max_steps = run_params.get('max_steps')  # null runs until the window closes
    max_dt = run_params.get('max_dt', 0.1)

    running = True
    step_num = 0

    profiler.enable()
    while running:
        # Long frames (window drags, breakpoints) are capped so particles
        # do not leap across the field.
        dt = min(visualizer.frame_time(), max_dt)
        sim.tick(dt)
        step_num += 1

        # Events are handled after the tick, so reconfiguration always
        # lands between two ticks.
        if not visualizer.draw(sim, controls):
            running = False

        if step_num % log_throttle == 0:
            logging.info(f"Simulation step {step_num}")
            logging.debug(
                f"Step {step_num} | Seed: {sim.config.seed} | Scale: {sim.config.scale:.4f} | "
                f"Particles: {len(particles)} | dt: {dt:.4f}"
            )

        if max_steps is not None and step_num >= max_steps:
            logging.info(f"Reached max_steps ({max_steps}). Stopping simulation.")
            running = False
    profiler.disable()

    visualizer.close()
    logging.info("Simulation loop finished.")

    if run_params.get('profile', True):
        logging.info("--- Performance Profile ---")
        s = io.StringIO()
        stats = pstats.Stats(profiler, stream=s).sort_stats('cumtime')
        stats.print_stats(20)
        logging.info(f"\n{s.getvalue()}")

    logging.info("--- Flow Field Shutting Down ---")


if __name__ == "__main__":
    main(*sys.argv[1:2])
