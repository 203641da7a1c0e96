"""Listen addresses: ``transport:key=value,key=value``.

Values are percent-escaped. Supported transports:

* ``unix:path=/run/busd/socket`` or ``unix:tmpdir=/tmp``
* ``tcp:host=127.0.0.1,port=0`` (port 0 binds a free port)
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote, unquote

from busd.error import ERROR_BAD_ADDRESS, BusError, set_error

TRANSPORTS = ("unix", "tcp")


@dataclass(frozen=True)
class ListenAddress:
    transport: str
    options: tuple[tuple[str, str], ...] = ()

    def get(self, key: str, default: str | None = None) -> str | None:
        for k, v in self.options:
            if k == key:
                return v
        return default


def format_address(transport: str, **options: object) -> str:
    """Build an address string, escaping each value."""
    pairs = ",".join(f"{key}={quote(str(value), safe='/*')}" for key, value in options.items())
    return f"{transport}:{pairs}"


def parse_listen_address(text: str, error: BusError | None = None) -> ListenAddress | None:
    """Parse *text*; on failure return None with *error* set to BadAddress."""
    transport, sep, rest = text.partition(":")
    if not sep or not transport:
        set_error(error, ERROR_BAD_ADDRESS, 'Address does not contain a transport: "%s"', text)
        return None
    if transport not in TRANSPORTS:
        set_error(error, ERROR_BAD_ADDRESS, 'Unknown address transport "%s" in "%s"', transport, text)
        return None

    options: list[tuple[str, str]] = []
    for pair in filter(None, rest.split(",")):
        key, eq, value = pair.partition("=")
        if not eq or not key:
            set_error(error, ERROR_BAD_ADDRESS, 'Malformed address entry "%s" in "%s"', pair, text)
            return None
        options.append((key, unquote(value)))
    address = ListenAddress(transport, tuple(options))

    if transport == "unix":
        given = [k for k in ("path", "tmpdir") if address.get(k)]
        if len(given) != 1:
            set_error(error, ERROR_BAD_ADDRESS, 'unix address needs exactly one of path= or tmpdir=: "%s"', text)
            return None
    else:
        port = address.get("port", "0")
        if not port.isdigit() or int(port) > 65535:
            set_error(error, ERROR_BAD_ADDRESS, 'Invalid port "%s" in "%s"', port, text)
            return None
    return address
