"""Bus configuration: YAML + env overlay."""

from busd.config.loader import load_config, load_config_with_env
from busd.config.schema import BusConfig

__all__ = ["BusConfig", "load_config", "load_config_with_env"]
