from .loader import DEFAULT_CONFIG_PATH, ConfigError, build_config, load_config

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ConfigError",
    "build_config",
    "load_config",
]
