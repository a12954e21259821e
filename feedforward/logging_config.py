"""
logging_config.py
~~~~~~~~~~~~~~~~~

Process-level logging setup for programs embedding the engine.

Library modules only create their loggers with ``logging.getLogger``;
calling :func:`configure_logging` is left to the application.
"""

import logging
import os

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

PACKAGE_LOGGERS = (
    'feedforward',
    'feedforward.network',
    'feedforward.model_persistence',
)


def configure_logging() -> None:
    """
    Set up logging based on environment.

    - ``LOG_LEVEL`` picks the root level (default ``INFO``)
    - ``FEEDFORWARD_ENV=production`` keeps the package loggers at INFO so
      per-network DEBUG lines stay out of production logs
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FEEDFORWARD_ENV') == 'production'

    # Set up basic logging format
    logging.basicConfig(level=log_level, format=LOG_FORMAT)

    if is_production:
        for logger_name in PACKAGE_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.INFO)
    else:
        logging.getLogger('feedforward').setLevel(log_level)
