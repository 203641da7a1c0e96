"""Config schema and accessor."""

from __future__ import annotations

import os
from typing import Any

from loguru import logger

from busd.core.errors import ConfigurationError

# Env keys that override config (read once per BusConfig)
_ENV_OVERRIDE_KEYS = ("BUSD_LISTEN_ADDRESS",)


def _load_env_overrides() -> dict[str, str]:
    return {k: os.environ.get(k, "") for k in _ENV_OVERRIDE_KEYS}


class BusConfig:
    """Validated view over the raw configuration mapping."""

    def __init__(self, data: dict[str, Any] | None = None, *, validate: bool = True) -> None:
        self._data = data or {}
        self._env: dict[str, str] = _load_env_overrides()
        if validate:
            self._validate()
        logger.debug("Config: {} listen address(es)", len(self.listen))

    def _validate(self) -> None:
        """Raise ConfigurationError when the structure is unusable."""
        listen = self._data.get("listen")
        if self._env["BUSD_LISTEN_ADDRESS"]:
            listen = self._env["BUSD_LISTEN_ADDRESS"]
        if listen is None:
            raise ConfigurationError("no listen address configured", code="missing_listen")
        if isinstance(listen, str):
            listen = [listen]
        if not isinstance(listen, list) or not listen:
            raise ConfigurationError(
                "listen must be an address or a non-empty list of addresses",
                code="invalid_listen",
                details={"type": type(listen).__name__},
            )
        for i, item in enumerate(listen):
            if not isinstance(item, str) or not item.strip():
                raise ConfigurationError(
                    f"listen[{i}] must be a non-empty string",
                    code="invalid_listen_item",
                    details={"index": i},
                )
        pidfile = self._data.get("pidfile")
        if pidfile is not None and not isinstance(pidfile, str):
            raise ConfigurationError("pidfile must be a path", code="invalid_pidfile")

    @property
    def raw(self) -> dict[str, Any]:
        return self._data

    @property
    def listen(self) -> list[str]:
        """Listen addresses, in order. The first one is the announced address."""
        override = self._env.get("BUSD_LISTEN_ADDRESS", "")
        if override:
            return [override.strip()]
        value = self._data.get("listen")
        if isinstance(value, str):
            return [value.strip()]
        if isinstance(value, list):
            return [str(v).strip() for v in value]
        return []

    @property
    def bus_type(self) -> str:
        return str(self._data.get("type", "custom"))

    @property
    def pidfile(self) -> str | None:
        val = self._data.get("pidfile")
        if val and isinstance(val, str) and val.strip():
            return val.strip()
        return None
