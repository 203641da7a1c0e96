"""Daemon lifecycle: from resolved options to a running bus and back.

Phases::

    starting -> running -> stopping -> stopped
    starting -> failed

Signals only reach the daemon through the event loop's self-pipe
(``BusLoop.add_signal_handler``); the callbacks below set a flag and ask the
loop to stop, nothing more.
"""

from __future__ import annotations

import contextlib
import enum
import os
import signal
import sys
from collections.abc import Sequence

from loguru import logger

from busd.bus import BusContext, BusLoop
from busd.core.constants import EXIT_FAILURE, EXIT_SUCCESS, LAST_STANDARD_STREAM
from busd.error import ERROR_IO_ERROR, BusError, kind_from_errno, set_error
from busd.options import DaemonOptions, without_announce_arguments

QUIT_SIGNALS = (signal.SIGTERM, signal.SIGINT)
RESTART_SIGNALS = (signal.SIGHUP,)


class Phase(enum.Enum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


class DaemonState:
    """Process-wide bootstrap state, shared with the signal callbacks."""

    def __init__(self) -> None:
        self.phase = Phase.STARTING
        self.context: BusContext | None = None
        self.quit_requested = False
        self.restart_requested = False


_state: DaemonState | None = None


def current_state() -> DaemonState | None:
    """The state of the daemon running in this process, if any."""
    return _state


def _begin() -> DaemonState:
    global _state
    if _state is not None:
        raise RuntimeError("daemon already running in this process")
    _state = DaemonState()
    return _state


def _end() -> None:
    global _state
    _state = None


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------


def _on_quit(state: DaemonState, loop: BusLoop) -> None:
    state.quit_requested = True
    loop.request_stop()


def _on_restart(state: DaemonState, loop: BusLoop) -> None:
    state.restart_requested = True
    loop.request_stop()


def install_signal_handlers(state: DaemonState, loop: BusLoop) -> None:
    """SIGTERM/SIGINT quit, SIGHUP restarts; both end the current loop run."""
    for sig in QUIT_SIGNALS:
        loop.add_signal_handler(sig, _on_quit, state, loop)
    for sig in RESTART_SIGNALS:
        loop.add_signal_handler(sig, _on_restart, state, loop)


# ---------------------------------------------------------------------------
# Address announcement
# ---------------------------------------------------------------------------


def announce_address(context: BusContext, descriptor: int, error: BusError | None) -> bool:
    """Write the bus address plus a newline to *descriptor* in one write.

    Descriptors other than the standard streams are closed afterwards.
    Returns False with *error* set on a failed or short write.
    """
    data = f"{context.address()}\n".encode()
    try:
        written = os.write(descriptor, data)
    except OSError as exc:
        set_error(error, kind_from_errno(exc.errno), "%s", exc.strerror or exc)
        return False
    finally:
        if descriptor > LAST_STANDARD_STREAM:
            with contextlib.suppress(OSError):
                os.close(descriptor)
    if written != len(data):
        set_error(error, ERROR_IO_ERROR, "Short write: %d of %d bytes", written, len(data))
        return False
    return True


# ---------------------------------------------------------------------------
# Restart
# ---------------------------------------------------------------------------


def restart_command(argv: Sequence[str], options: DaemonOptions) -> list[str]:
    """Command line that starts this daemon again with the same arguments.

    An announce descriptor above the standard streams was closed after the
    first announcement, so the restarted daemon is not asked to use it again.
    """
    args = list(argv)
    target = options.address_announce_target
    if target is not None and target > LAST_STANDARD_STREAM:
        args = without_announce_arguments(args)
    launcher = sys.orig_argv[: len(sys.orig_argv) - len(sys.argv) + 1]
    return [*launcher, *args]


def restart(argv: Sequence[str], options: DaemonOptions) -> None:
    """Replace the current process with a fresh daemon. Returns only on failure."""
    command = restart_command(argv, options)
    logger.info("Restarting message bus: {}", " ".join(command))
    sys.stdout.flush()
    sys.stderr.flush()
    os.execv(sys.executable, command)


# ---------------------------------------------------------------------------
# Run sequence
# ---------------------------------------------------------------------------


def _teardown(state: DaemonState) -> None:
    context = state.context
    state.context = None
    if context is not None:
        context.shutdown()
        context.release()


def _run(state: DaemonState, options: DaemonOptions) -> int:
    error = BusError()
    context = BusContext.new(options.config_path, error)
    if context is None:
        logger.error("Failed to start message bus: {}", error.message)
        error.clear()
        state.phase = Phase.FAILED
        return EXIT_FAILURE
    state.context = context
    try:
        loop = context.loop()
        # handlers are live before the address is announced
        install_signal_handlers(state, loop)

        target = options.address_announce_target
        if target is not None and not announce_address(context, target, error):
            logger.error("Failed to print message bus address: {}", error.message)
            error.clear()
            state.phase = Phase.FAILED
            return EXIT_FAILURE

        state.phase = Phase.RUNNING
        logger.info("Message bus ({}) running (pid {})", context.config.bus_type, os.getpid())
        loop.run()

        state.phase = Phase.STOPPING
        # quit wins when both signals arrived in the same run
        if state.quit_requested:
            logger.info("Quit requested")
        elif state.restart_requested:
            logger.info("Restart requested")
    finally:
        _teardown(state)
    state.phase = Phase.STOPPED
    logger.info("Message bus stopped")
    return EXIT_SUCCESS


def run(options: DaemonOptions, argv: Sequence[str] = ()) -> int:
    """Run the daemon to completion and return the process exit status.

    *argv* is the command line the options were parsed from; it is reused
    when a restart is requested and no quit was.
    """
    state = _begin()
    try:
        status = _run(state, options)
        restart_requested = state.restart_requested and not state.quit_requested and status == EXIT_SUCCESS
    finally:
        _end()

    if restart_requested:
        try:
            restart(argv, options)
        except OSError as exc:
            logger.error("Failed to restart message bus: {}", exc)
            return EXIT_FAILURE
    return status
