"""
Seed management for reproducible experiments.

Provides utilities to set random seeds across all random sources
(Python, NumPy, PyTorch CPU/CUDA) for reproducible training.

Usage:
    from onpolicy.utils.seed import set_seed

    # Use specific seed
    seed = set_seed(42)

    # Generate and use random seed (logged for reproducibility)
    seed = set_seed(None)  # Returns the seed that was used
"""
import os
import random
import time
from typing import Optional

import numpy as np
import torch

from .logging_config import get_logger

logger = get_logger("seed")


def get_random_seed() -> int:
    """
    Generate a random seed from system entropy.

    Uses os.urandom, falling back to a time-based seed if unavailable.
    """
    try:
        return int.from_bytes(os.urandom(4), byteorder='little')
    except NotImplementedError:
        return int(time.time() * 1000) % (2**32)


def set_seed(seed: Optional[int] = None, deterministic: bool = False) -> int:
    """
    Set random seeds for Python, NumPy and PyTorch (CPU and CUDA).

    Args:
        seed: Seed value. If None, generates a random seed.
        deterministic: If True, enables PyTorch deterministic algorithms.
                      Slower, but repeatable across runs on the same hardware.

    Returns:
        The seed that was used (useful when seed=None)
    """
    if seed is None:
        seed = get_random_seed()

    logger.debug(f"Using seed: {seed}")

    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)

    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(seed)

    if deterministic:
        torch.backends.cudnn.deterministic = True
        torch.backends.cudnn.benchmark = False
        torch.use_deterministic_algorithms(True, warn_only=True)

    return seed
