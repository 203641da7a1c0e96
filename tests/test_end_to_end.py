"""Run the daemon as a real process."""

import os
import select
import signal
import subprocess
import sys
from pathlib import Path

import pytest

SRC = Path(__file__).resolve().parent.parent / "src"
TIMEOUT = 10


@pytest.fixture
def env():
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC), env.get("PYTHONPATH")]))
    env.pop("BUSD_LISTEN_ADDRESS", None)
    return env


def _busd(*args):
    return [sys.executable, "-m", "busd", *args]


def _read_line(fd):
    """Read one newline-terminated line from *fd*, failing after TIMEOUT."""
    data = b""
    while not data.endswith(b"\n"):
        ready, _, _ = select.select([fd], [], [], TIMEOUT)
        if not ready:
            raise AssertionError(f"timed out waiting for a line, got {data!r}")
        chunk = os.read(fd, 1)
        if not chunk:
            break
        data += chunk
    return data.decode()


def _stop(proc):
    proc.send_signal(signal.SIGTERM)
    try:
        return proc.wait(timeout=TIMEOUT)
    finally:
        if proc.poll() is None:
            proc.kill()
            proc.wait()


def test_missing_config_file_fails(tmp_path, env):
    """A missing config file exits 1 and names the path."""
    path = tmp_path / "missing.yaml"

    result = subprocess.run(_busd(f"--config-file={path}"), env=env, capture_output=True, text=True, timeout=TIMEOUT)

    assert result.returncode == 1
    assert str(path) in result.stderr


def test_conflicting_sources_fail(env):
    """--system with --session exits 1 naming both flags."""
    result = subprocess.run(_busd("--system", "--session"), env=env, capture_output=True, text=True, timeout=TIMEOUT)

    assert result.returncode == 1
    assert "--session" in result.stderr
    assert "--system" in result.stderr


def test_version(env):
    """--version prints the banner and exits 0."""
    result = subprocess.run(_busd("--version"), env=env, capture_output=True, text=True, timeout=TIMEOUT)

    assert result.returncode == 0
    assert result.stdout.startswith("busd message bus daemon")


def test_announce_on_descriptor_then_quit(tcp_config, env):
    """The address goes to the passed descriptor, which is closed; SIGTERM exits 0."""
    read_fd, write_fd = os.pipe()
    try:
        proc = subprocess.Popen(
            _busd(f"--config-file={tcp_config}", f"--print-address={write_fd}"),
            env=env,
            pass_fds=(write_fd,),
            stderr=subprocess.DEVNULL,
        )
        os.close(write_fd)

        line = _read_line(read_fd)
        # the daemon closed its end after announcing
        eof = _read_line(read_fd)

        assert line.startswith("tcp:host=127.0.0.1,port=")
        assert eof == ""
        assert _stop(proc) == 0
    finally:
        os.close(read_fd)


def test_hangup_restarts_and_announces_again(tcp_config, env):
    """SIGHUP re-executes the daemon, which announces again on stdout."""
    proc = subprocess.Popen(
        _busd(f"--config-file={tcp_config}", "--print-address"),
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
    )
    try:
        first = _read_line(proc.stdout.fileno())
        proc.send_signal(signal.SIGHUP)
        second = _read_line(proc.stdout.fileno())

        assert first.startswith("tcp:host=127.0.0.1,port=")
        assert second.startswith("tcp:host=127.0.0.1,port=")
        assert proc.poll() is None
        assert _stop(proc) == 0
    finally:
        proc.stdout.close()
