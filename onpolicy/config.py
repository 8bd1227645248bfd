"""
Centralized configuration loader.

Loads config from TOML file and provides a cached get_config() function
that all modules can use.

Config precedence:
1. config.toml in the working directory (user's custom config)
2. config.default.toml (shipped inside the package)

Usage:
    from onpolicy.config import get_config
    config = get_config()
    print(config['training']['batch_size'])
"""
import tomllib
from pathlib import Path


# Cached config
_config: dict | None = None
_config_path: Path | None = None

# Shipped defaults live next to this module so installed copies find them
PACKAGE_DIR = Path(__file__).parent
DEFAULT_CONFIG = PACKAGE_DIR / 'config.default.toml'


def find_config_file() -> Path:
    """
    Find the config file to use.

    Priority:
    1. config.toml in the current working directory (user customizations)
    2. config.default.toml (shipped defaults)
    """
    user_config = Path.cwd() / 'config.toml'

    if user_config.exists():
        return user_config
    elif DEFAULT_CONFIG.exists():
        return DEFAULT_CONFIG
    else:
        raise FileNotFoundError(
            f"No config file found. Expected one of:\n"
            f"  {user_config}\n"
            f"  {DEFAULT_CONFIG}\n"
            f"Copy config.default.toml to config.toml to customize."
        )


def load_config(path: Path | str | None = None) -> dict:
    """
    Load configuration from a TOML file.

    Args:
        path: Path to config file. If None, auto-detects.

    Returns:
        Parsed config dictionary
    """
    global _config, _config_path

    if path is not None:
        config_path = Path(path)
    else:
        config_path = find_config_file()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'rb') as f:
        config = tomllib.load(f)

    _config = config
    _config_path = config_path

    return config


def get_config() -> dict:
    """
    Get the current configuration (loads if not already loaded).

    This is the main entry point for accessing config throughout the codebase.
    """
    global _config
    if _config is None:
        load_config()
    return _config


def get_config_path() -> Path | None:
    """Get the path to the currently loaded config file."""
    return _config_path


def reload_config(path: Path | str | None = None) -> dict:
    """Force reload of configuration."""
    global _config
    _config = None
    return load_config(path)


# Convenience accessors for common config sections
def get_training_config() -> dict:
    """
    Get [training] config section.

    Contains rollout, return estimation and update hyperparameters.
    """
    return get_config().get('training', {})


def get_environment_config() -> dict:
    """Get [environment] config section."""
    return get_config().get('environment', {})


def get_model_config() -> dict:
    """Get [model] config section."""
    return get_config().get('model', {})


def get_runtime_config() -> dict:
    """
    Get [runtime] config section.

    Contains device selection, seeding and output settings.
    """
    return get_config().get('runtime', {})
