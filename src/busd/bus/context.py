"""Bus context: configuration, listeners and the loop they run on.

Message dispatch, authentication and policy belong to the bus engine and are
not handled here; accepted connections are tracked and drained until the peer
hangs up.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import uuid
from dataclasses import dataclass
from pathlib import Path

import yaml
from loguru import logger

from busd.bus.address import ListenAddress, format_address, parse_listen_address
from busd.bus.loop import BusLoop
from busd.config import BusConfig, load_config_with_env
from busd.core.errors import ConfigurationError
from busd.error import ERROR_FAILED, BusError, kind_from_errno, set_error

_READ_CHUNK = 4096


@dataclass
class _Listener:
    server: asyncio.AbstractServer
    address: str
    socket_path: str | None = None


class BusContext:
    """A running bus: one per daemon process.

    Lifecycle::

        context = BusContext.new(path, error)   # None with error set on failure
        context.loop().run()
        context.shutdown()
        context.release()
    """

    def __init__(self, config: BusConfig, loop: BusLoop) -> None:
        self._config = config
        self._loop = loop
        self._listeners: list[_Listener] = []
        self._connections: set[asyncio.StreamWriter] = set()
        self._pidfile: Path | None = None
        self._refcount = 1
        self._shut_down = False

    @classmethod
    def new(cls, config_path: str, error: BusError | None = None) -> BusContext | None:
        """Load *config_path*, bind every listen address and write the pid file.

        Returns None with *error* set if any step fails; whatever was set up
        before the failure is torn down again.
        """
        try:
            config = BusConfig(load_config_with_env(config_path))
        except OSError as exc:
            set_error(error, kind_from_errno(exc.errno), 'Failed to open "%s": %s', config_path, exc.strerror or exc)
            return None
        except yaml.YAMLError as exc:
            set_error(error, ERROR_FAILED, 'Failed to parse "%s": %s', config_path, exc)
            return None
        except ConfigurationError as exc:
            set_error(error, ERROR_FAILED, 'Invalid configuration "%s": %s', config_path, exc)
            return None

        context = cls(config, BusLoop())
        if not context._setup(error):
            context.release()
            return None
        logger.info("Message bus ({}) ready on {}", config.bus_type, context.address())
        return context

    @property
    def config(self) -> BusConfig:
        return self._config

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def address(self) -> str:
        """Address of the first listener; always available once constructed."""
        return self._listeners[0].address

    def loop(self) -> BusLoop:
        return self._loop

    def ref(self) -> BusContext:
        self._refcount += 1
        return self

    def release(self) -> None:
        """Drop one reference; the last one shuts down and closes the loop."""
        if self._refcount <= 0:
            raise RuntimeError("bus context released more often than referenced")
        self._refcount -= 1
        if self._refcount == 0:
            self.shutdown()
            self._loop.close()

    def shutdown(self) -> None:
        """Stop listening, drop connections, remove the pid file. Idempotent."""
        if self._shut_down:
            return
        self._shut_down = True
        logger.info("Shutting down message bus")
        self._loop.run_until_complete(self._close_all())
        for listener in self._listeners:
            if listener.socket_path:
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(listener.socket_path)
        self._listeners.clear()
        if self._pidfile is not None:
            with contextlib.suppress(FileNotFoundError):
                self._pidfile.unlink()
            self._pidfile = None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _setup(self, error: BusError | None) -> bool:
        for text in self._config.listen:
            address = parse_listen_address(text, error)
            if address is None:
                return False
            if not self._listen(text, address, error):
                return False
        pidfile = self._config.pidfile
        if pidfile and not self._write_pidfile(Path(pidfile), error):
            return False
        return True

    def _listen(self, text: str, address: ListenAddress, error: BusError | None) -> bool:
        try:
            listener = self._loop.run_until_complete(self._start_listener(address))
        except OSError as exc:
            set_error(error, kind_from_errno(exc.errno), 'Failed to listen on "%s": %s', text, exc.strerror or exc)
            return False
        self._listeners.append(listener)
        logger.info("Listening on {}", listener.address)
        return True

    async def _start_listener(self, address: ListenAddress) -> _Listener:
        if address.transport == "unix":
            path = address.get("path") or os.path.join(address.get("tmpdir") or "/tmp", f"busd-{uuid.uuid4().hex[:10]}")
            server = await asyncio.start_unix_server(self._handle_connection, path=path)
            return _Listener(server, format_address("unix", path=path), path)

        host = address.get("host") or "127.0.0.1"
        server = await asyncio.start_server(self._handle_connection, host=host, port=int(address.get("port") or 0))
        port = server.sockets[0].getsockname()[1]
        return _Listener(server, format_address("tcp", host=host, port=port))

    def _write_pidfile(self, path: Path, error: BusError | None) -> bool:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(f"{os.getpid()}\n")
        except OSError as exc:
            set_error(error, kind_from_errno(exc.errno), 'Failed to write pid file "%s": %s', path, exc.strerror or exc)
            return False
        self._pidfile = path
        logger.debug("Wrote pid file {}", path)
        return True

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._connections.add(writer)
        logger.debug("Connection accepted ({} active)", len(self._connections))
        try:
            while await reader.read(_READ_CHUNK):
                pass
        except ConnectionError as exc:
            logger.debug("Connection lost: {}", exc)
        finally:
            self._connections.discard(writer)
            writer.close()
            with contextlib.suppress(ConnectionError):
                await writer.wait_closed()
            logger.debug("Connection closed ({} active)", len(self._connections))

    async def _close_all(self) -> None:
        for listener in self._listeners:
            listener.server.close()
        for writer in list(self._connections):
            writer.close()
        for listener in self._listeners:
            await listener.server.wait_closed()
