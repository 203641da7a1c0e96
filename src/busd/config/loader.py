"""Config loading."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from busd.core.errors import ConfigurationError


def load_config(path: str | Path) -> dict[str, Any]:
    """Load config from YAML file with SafeLoader. Returns raw dict.

    OSError (missing or unreadable file) and yaml.YAMLError propagate so the
    caller can report them against the path.
    """
    path = Path(path)
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            logger.debug("Failed to parse config {}: {}", path, exc)
            raise
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            "top level must be a mapping",
            code="invalid_structure",
            details={"type": type(data).__name__},
        )
    return data


def load_config_with_env(path: str | Path) -> dict[str, Any]:
    """Load config from YAML after loading .env into the environment."""
    from dotenv import load_dotenv

    load_dotenv()
    return load_config(path)
