"""Shared fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from busd.error import OwnedMessage


class TrackingAllocator:
    """Allocator that records every buffer handed out and given back."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.allocated: list[OwnedMessage] = []
        self.freed: list[OwnedMessage] = []

    def allocate(self, text: str) -> OwnedMessage:
        if self.fail:
            raise MemoryError
        message = OwnedMessage(text, self)
        self.allocated.append(message)
        return message

    def free(self, message: OwnedMessage) -> None:
        self.freed.append(message)

    @property
    def live(self) -> int:
        return len(self.allocated) - len(self.freed)


@pytest.fixture
def allocator() -> TrackingAllocator:
    return TrackingAllocator()


@pytest.fixture(autouse=True)
def _no_listen_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("BUSD_LISTEN_ADDRESS", raising=False)


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """Write a bus config file and return its path."""

    def _write(text: str, name: str = "bus.yaml") -> Path:
        path = tmp_path / name
        path.write_text(text)
        return path

    return _write


@pytest.fixture
def tcp_config(write_config: Callable[..., Path]) -> Path:
    return write_config("listen: tcp:host=127.0.0.1,port=0\n")
