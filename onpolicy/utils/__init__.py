"""
Utility functions for the training core.

Provides device management, logging and seeding helpers.
"""

from .device import get_device
from .logging_config import get_logger, setup_logging
from .seed import set_seed, get_random_seed

__all__ = [
    # Device management
    'get_device',
    # Logging
    'get_logger',
    'setup_logging',
    # Reproducibility
    'set_seed',
    'get_random_seed',
]
