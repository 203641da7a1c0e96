"""Error reporting without exceptions.

A ``BusError`` is passed down into a call as an out-parameter. The callee
sets it once when something fails; the caller either handles it (and clears
it), or hands it further up with ``move_into``. Setting an error that is
already set is a bug, not a recoverable condition, and raises ``ErrorMisuse``.

Messages come in two flavours:

* ``BorrowedMessage`` points at text owned elsewhere, normally the canonical
  description table below. The error never releases it.
* ``OwnedMessage`` is a buffer obtained from a ``MessageAllocator`` for a
  formatted, per-call message. The error releases it exactly once, when it is
  cleared.

Typical use::

    error = BusError()
    context = BusContext.new(path, error)
    if context is None:
        logger.error("Failed to start message bus: {}", error.message)
        error.clear()
"""

from __future__ import annotations

import errno
from dataclasses import dataclass
from typing import Protocol

ERROR_FAILED = "busd.Error.Failed"
ERROR_NO_MEMORY = "busd.Error.NoMemory"
ERROR_IO_ERROR = "busd.Error.IOError"
ERROR_BAD_ADDRESS = "busd.Error.BadAddress"
ERROR_NOT_SUPPORTED = "busd.Error.NotSupported"
ERROR_LIMITS_EXCEEDED = "busd.Error.LimitsExceeded"
ERROR_ACCESS_DENIED = "busd.Error.AccessDenied"
ERROR_AUTH_FAILED = "busd.Error.AuthFailed"
ERROR_NO_SERVER = "busd.Error.NoServer"
ERROR_TIMEOUT = "busd.Error.Timeout"
ERROR_NO_NETWORK = "busd.Error.NoNetwork"
ERROR_ADDRESS_IN_USE = "busd.Error.AddressInUse"
ERROR_DISCONNECTED = "busd.Error.Disconnected"
ERROR_INVALID_ARGS = "busd.Error.InvalidArgs"
ERROR_NO_REPLY = "busd.Error.NoReply"
ERROR_FILE_NOT_FOUND = "busd.Error.FileNotFound"

_DESCRIPTIONS: dict[str, str] = {
    ERROR_FAILED: "Unknown error",
    ERROR_NO_MEMORY: "Not enough memory available",
    ERROR_IO_ERROR: "Error reading or writing data",
    ERROR_BAD_ADDRESS: "Could not parse address",
    ERROR_NOT_SUPPORTED: "Feature not supported",
    ERROR_LIMITS_EXCEEDED: "Resource limits exceeded",
    ERROR_ACCESS_DENIED: "Permission denied",
    ERROR_AUTH_FAILED: "Could not authenticate to server",
    ERROR_NO_SERVER: "No server available at address",
    ERROR_TIMEOUT: "Connection timed out",
    ERROR_NO_NETWORK: "Network unavailable",
    ERROR_ADDRESS_IN_USE: "Address already in use",
    ERROR_DISCONNECTED: "Disconnected.",
    ERROR_INVALID_ARGS: "Invalid arguments.",
    ERROR_NO_REPLY: "Did not get a reply message.",
    ERROR_FILE_NOT_FOUND: "File doesn't exist.",
}

_ERRNO_KINDS: dict[int, str] = {
    errno.ENOMEM: ERROR_NO_MEMORY,
    errno.EIO: ERROR_IO_ERROR,
    errno.EBADF: ERROR_IO_ERROR,
    errno.EPIPE: ERROR_IO_ERROR,
    errno.ENOSPC: ERROR_IO_ERROR,
    errno.EACCES: ERROR_ACCESS_DENIED,
    errno.EPERM: ERROR_ACCESS_DENIED,
    errno.EROFS: ERROR_ACCESS_DENIED,
    errno.ENOENT: ERROR_FILE_NOT_FOUND,
    errno.ENOTDIR: ERROR_FILE_NOT_FOUND,
    errno.EADDRINUSE: ERROR_ADDRESS_IN_USE,
    errno.EADDRNOTAVAIL: ERROR_BAD_ADDRESS,
    errno.ECONNREFUSED: ERROR_NO_SERVER,
    errno.ETIMEDOUT: ERROR_TIMEOUT,
    errno.ENETUNREACH: ERROR_NO_NETWORK,
    errno.ENETDOWN: ERROR_NO_NETWORK,
    errno.ECONNRESET: ERROR_DISCONNECTED,
    errno.EINVAL: ERROR_INVALID_ARGS,
    errno.ENOSYS: ERROR_NOT_SUPPORTED,
    errno.EOPNOTSUPP: ERROR_NOT_SUPPORTED,
    errno.EAFNOSUPPORT: ERROR_NOT_SUPPORTED,
    errno.EMFILE: ERROR_LIMITS_EXCEEDED,
    errno.ENFILE: ERROR_LIMITS_EXCEEDED,
}


class ErrorMisuse(AssertionError):
    """A BusError was used against its lifecycle rules (a bug in the caller).

    Raised explicitly rather than through ``assert`` so the check stays in
    place under ``python -O``.
    """


def describe(kind: str) -> str:
    """Return the canonical description of *kind*, or *kind* itself if unknown."""
    return _DESCRIPTIONS.get(kind, kind)


def kind_from_errno(code: int | None) -> str:
    """Map an OS errno value to an error kind."""
    if code is None:
        return ERROR_FAILED
    return _ERRNO_KINDS.get(code, ERROR_FAILED)


@dataclass(frozen=True)
class BorrowedMessage:
    """Message text whose lifetime belongs to someone else."""

    text: str

    @property
    def owned(self) -> bool:
        return False


class OwnedMessage:
    """Formatted message buffer handed out by a MessageAllocator."""

    __slots__ = ("_text", "_allocator", "_released")

    def __init__(self, text: str, allocator: MessageAllocator) -> None:
        self._text = text
        self._allocator = allocator
        self._released = False

    @property
    def owned(self) -> bool:
        return True

    @property
    def released(self) -> bool:
        return self._released

    @property
    def text(self) -> str:
        if self._released:
            raise ErrorMisuse("message used after release")
        return self._text

    def release(self) -> None:
        """Give the buffer back to its allocator. Only valid once."""
        if self._released:
            raise ErrorMisuse("message released twice")
        self._released = True
        self._allocator.free(self)

    def __repr__(self) -> str:
        state = "released" if self._released else repr(self._text)
        return f"OwnedMessage({state})"


class MessageAllocator(Protocol):
    """Source of owned message buffers."""

    def allocate(self, text: str) -> OwnedMessage:
        """Return a buffer holding *text*; raise MemoryError on exhaustion."""
        ...

    def free(self, message: OwnedMessage) -> None:
        """Called exactly once per buffer when its owner lets go of it."""
        ...


class HeapAllocator:
    """Allocator backed by the interpreter's heap."""

    def allocate(self, text: str) -> OwnedMessage:
        return OwnedMessage(text, self)

    def free(self, message: OwnedMessage) -> None:
        # reclaimed by the garbage collector once unreferenced
        pass


default_allocator = HeapAllocator()


class BusError:
    """An error kind and message, or nothing.

    ``kind`` and ``message`` are either both ``None`` (cleared) or both set.
    A set error must be cleared or moved before it can be set again, and it
    cannot be copied: copying would give two objects ownership of the same
    buffer.
    """

    __slots__ = ("_kind", "_message", "_allocator")

    def __init__(self, allocator: MessageAllocator | None = None) -> None:
        self._kind: str | None = None
        self._message: BorrowedMessage | OwnedMessage | None = None
        self._allocator = allocator or default_allocator

    @property
    def kind(self) -> str | None:
        return self._kind

    @property
    def message(self) -> str | None:
        if self._message is None:
            return None
        return self._message.text

    @property
    def owns_message(self) -> bool:
        return self._message is not None and self._message.owned

    def __repr__(self) -> str:
        if self._kind is None:
            return "BusError()"
        return f"BusError({self._kind!r}, {self.message!r})"

    def __copy__(self) -> BusError:
        if self.is_set():
            raise ErrorMisuse("cannot copy a set error; use move_into()")
        return BusError(self._allocator)

    def __deepcopy__(self, memo: dict[int, object]) -> BusError:
        return self.__copy__()

    def clear(self) -> None:
        """Release an owned message, if any, and return to the cleared state."""
        message = self._message
        self._kind = None
        self._message = None
        if isinstance(message, OwnedMessage):
            message.release()

    def set_borrowed(self, kind: str, message: str | None = None) -> None:
        """Set the error without taking ownership of *message*.

        With no message, the canonical description of *kind* is used.
        """
        self._check_settable(kind)
        if message is None:
            message = describe(kind)
        self._kind = kind
        self._message = BorrowedMessage(message)

    def set_owned(self, kind: str, template: str | None = None, *args: object) -> None:
        """Set the error with a message formatted as ``template % args``.

        The formatted text lives in a buffer from the allocator and is owned
        by this error. If the buffer cannot be obtained, the error is set to
        the borrowed no-memory error instead.
        """
        self._check_settable(kind)
        try:
            text = describe(kind) if template is None else template % args
            owned = self._allocator.allocate(text)
        except MemoryError:
            self.set_borrowed(ERROR_NO_MEMORY)
            return
        self._kind = kind
        self._message = owned

    def is_set(self) -> bool:
        return self._kind is not None

    def has_kind(self, candidate: str) -> bool:
        """True if the error is set and its kind is exactly *candidate*."""
        if candidate is None:
            raise ErrorMisuse("has_kind() needs a kind to compare against")
        return self._kind is not None and self._kind == candidate

    def move_into(self, destination: BusError | None) -> None:
        """Hand kind, message and ownership to *destination*; clear this error.

        *destination* must be cleared. With no destination the error is
        simply cleared.
        """
        if destination is None:
            self.clear()
            return
        if destination.is_set():
            raise ErrorMisuse(f"destination error already set to {destination.kind}")
        destination._kind, destination._message = self._kind, self._message
        self._kind = None
        self._message = None

    def _check_settable(self, kind: str) -> None:
        if kind is None:
            raise ErrorMisuse("an error kind is required")
        if self._kind is not None:
            raise ErrorMisuse(f"error already set to {self._kind}; clear or move it first")


def set_error(error: BusError | None, kind: str, template: str | None = None, *args: object) -> None:
    """``error.set_owned(...)`` for callers whose error target is optional."""
    if error is None:
        return
    error.set_owned(kind, template, *args)


def set_error_const(error: BusError | None, kind: str, message: str | None = None) -> None:
    """``error.set_borrowed(...)`` for callers whose error target is optional."""
    if error is None:
        return
    error.set_borrowed(kind, message)
