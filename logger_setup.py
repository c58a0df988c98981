# logger_setup.py

import logging
import os
import json

LOGGER_NAME = "particle_sim"

def _build_handlers(log_file, fmt):
    """File handler for the run log plus a console mirror, sharing one formatter."""
    formatter = logging.Formatter(fmt)
    handlers = [logging.FileHandler(log_file), logging.StreamHandler()]
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers

def setup_logging(config_path='config.json', runs_dir='runs'):
    """
    Routes the simulator's log records to runs/<run_id>/simulation.log and the console.

    Index builds and per-tick timings are logged at DEBUG, world setup and
    front-end events at INFO, so the 'level' in config.json decides how chatty
    a run is. Only the "particle_sim" logger is touched; records stop there and
    never reach the root logger, which keeps Numba's compiler output out of the
    run log.

    Data Contract:
    - Inputs:
        - config_path (str) - JSON file with 'run_id' and a 'logging' section
          holding 'level' and 'format'.
        - runs_dir (str) - Parent directory of the per-run log folders.
    - Outputs: The configured "particle_sim" logger.
    - Side Effects:
        - Creates runs_dir/<run_id>/ if missing.
        - Closes and replaces any handlers left by an earlier call.
    """
    with open(config_path, 'r') as f:
        config = json.load(f)

    run_id = config['run_id']
    log_config = config['logging']

    log_dir = os.path.join(runs_dir, run_id)
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, 'simulation.log')

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_config['level'])
    logger.propagate = False

    # --- Swap in fresh handlers; repeated calls must not duplicate output ---
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    for handler in _build_handlers(log_file, log_config['format']):
        logger.addHandler(handler)

    logger.info(f"Logging initialized. Run ID: {run_id}. Log file: {log_file}")
    return logger
