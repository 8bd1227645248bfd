"""
Centralized PyTorch device selection.

Priority order:
1. Explicit override parameter
2. ONPOLICY_DEVICE environment variable
3. config.toml [runtime] device setting
4. Auto-detect (CUDA > CPU)
"""
import os

import torch

from .logging_config import get_logger

logger = get_logger("device")

# Module-level cache for the device (avoid repeated detection)
_cached_device: torch.device | None = None


def get_device(override: str | None = None) -> torch.device:
    """
    Get the configured PyTorch device.

    Args:
        override: Explicit device string (e.g., 'cpu', 'cuda', 'cuda:1').
                  Takes highest priority if provided and is never cached.

    Returns:
        torch.device configured for computation
    """
    global _cached_device

    if override is not None:
        return torch.device(override)

    if _cached_device is not None:
        return _cached_device

    env_device = os.environ.get('ONPOLICY_DEVICE')
    if env_device:
        _cached_device = torch.device(env_device)
        logger.info(f"Device: {_cached_device} (from ONPOLICY_DEVICE env)")
        return _cached_device

    from onpolicy.config import get_runtime_config
    cfg_device = get_runtime_config().get('device')
    if cfg_device and cfg_device != 'auto':
        _cached_device = torch.device(cfg_device)
        logger.info(f"Device: {_cached_device} (from config)")
        return _cached_device

    if torch.cuda.is_available():
        _cached_device = torch.device('cuda')
    else:
        _cached_device = torch.device('cpu')
    logger.info(f"Device: {_cached_device}")
    return _cached_device


def reset_device_cache():
    """Forget the cached device (used by tests)."""
    global _cached_device
    _cached_device = None
