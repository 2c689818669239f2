# utils.py
"""
Utility functions for the flow field application.

This module provides helper functions, such as logging setup and
configuration loading, that are used across different parts of the
application but do not belong to the simulation engine or to rendering.
"""
import copy
import json
import logging
import logging.handlers
import os
from typing import Any, Dict

# --- Data Contracts ---
#
# setup_logging(config: Dict[str, Any]) -> None:
#   - Inputs:
#     - config: A dictionary with an optional "logging" key holding
#       "level", "format", "log_file" and "log_to_file" sub-keys.
#   - Side Effects: Configures the root Python logger. Creates the log
#     directory if needed. Sets up a console handler and, unless disabled,
#     a rotating file handler.
#
# load_config(path: str) -> Dict[str, Any]:
#   - Outputs: the parsed JSON document with every section of
#     DEFAULT_CONFIG present. Values from the file win.
#   - Raises: FileNotFoundError, json.JSONDecodeError (logged first).

DEFAULT_CONFIG: Dict[str, Any] = {
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s - %(levelname)s - %(message)s",
        "log_file": "logs/flow_field.log",
        "log_to_file": True
    },
    "simulation_parameters": {},
    "run_control": {},
    "visualization": {}
}


def setup_logging(config: Dict[str, Any]) -> None:
    """
    Configures the logging system from a configuration dictionary.

    Sets up logging to the console and, unless disabled, to a rotating file.
    """
    log_config = config.get('logging', {})
    log_level = log_config.get('level', 'INFO').upper()
    log_format = log_config.get('format', DEFAULT_CONFIG['logging']['format'])
    log_file_path = log_config.get('log_file', DEFAULT_CONFIG['logging']['log_file'])
    log_to_file = log_config.get('log_to_file', True)

    logger = logging.getLogger()
    logger.setLevel(log_level)

    # Clear existing handlers to avoid duplicate lines on re-initialization
    if logger.hasHandlers():
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_to_file:
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        # Rotates when the log reaches 1MB, keeps 5 backup logs.
        file_handler = logging.handlers.RotatingFileHandler(
            log_file_path, maxBytes=1024*1024, backupCount=5
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logging.info("Logging system initialized.")
    logging.debug(f"Log level set to {log_level}.")
    if log_to_file:
        logging.debug(f"Log file path: {log_file_path}")


def load_config(path: str) -> Dict[str, Any]:
    """Loads a JSON configuration file and fills in missing sections."""
    logging.info(f"Loading configuration from {path}...")
    try:
        with open(path, 'r') as f:
            loaded = json.load(f)
    except FileNotFoundError:
        logging.error(f"Configuration file not found at {path}.")
        raise
    except json.JSONDecodeError:
        logging.error(f"Error decoding JSON from {path}.")
        raise

    config = copy.deepcopy(DEFAULT_CONFIG)
    for section, values in loaded.items():
        if isinstance(values, dict) and isinstance(config.get(section), dict):
            config[section].update(values)
        else:
            config[section] = values
    logging.info("Configuration loaded successfully.")
    return config
