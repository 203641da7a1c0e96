"""Command-line parsing: tokens in, DaemonOptions out.

Parsing never exits the process. Help, version and every usage problem are
raised as ``busd.core.errors`` exceptions and turned into output and an exit
status by ``busd.__main__``.
"""

from __future__ import annotations

import argparse
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from busd.core.constants import MAX_DESCRIPTOR, SESSION_CONFIG_FILE, SYSTEM_CONFIG_FILE
from busd.core.errors import UsageError, UsageRequested, VersionRequested

STDOUT_DESCRIPTOR = 1

_DESCRIPTOR_RE = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class DaemonOptions:
    """Resolved startup configuration."""

    config_path: str
    config_source: str  # "system" | "session" | "config-file"
    address_announce_target: int | None = None

    @property
    def announce_address(self) -> bool:
        return self.address_announce_target is not None


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises UsageError instead of exiting."""

    def error(self, message: str) -> Any:  # type: ignore[override]
        raise UsageError(message, show_usage=True, code="invalid_argument")


class _HelpAction(argparse.Action):
    def __call__(self, parser: argparse.ArgumentParser, namespace: argparse.Namespace, values: Any, option_string: str | None = None) -> None:
        raise UsageRequested()


class _VersionAction(argparse.Action):
    def __call__(self, parser: argparse.ArgumentParser, namespace: argparse.Namespace, values: Any, option_string: str | None = None) -> None:
        raise VersionRequested()


class _ConfigSourceAction(argparse.Action):
    """Record the configuration path; a second source of any kind is refused."""

    def __call__(self, parser: argparse.ArgumentParser, namespace: argparse.Namespace, values: Any, option_string: str | None = None) -> None:
        flag = (option_string or self.option_strings[0]).lstrip("-")
        if namespace.config_path:
            raise UsageError(
                f"--{flag} specified but configuration file {namespace.config_path} "
                f"already requested by --{namespace.config_source}",
                code="conflicting_config_source",
                details={"flags": (namespace.config_source, flag)},
            )
        namespace.config_path = self.const if self.nargs == 0 else values
        namespace.config_source = flag


class _PrintAddressAction(argparse.Action):
    """Bare form enables the announcement; a value also names the target."""

    def __call__(self, parser: argparse.ArgumentParser, namespace: argparse.Namespace, values: Any, option_string: str | None = None) -> None:
        namespace.print_address = True
        if not values:
            return
        if namespace.announce_text:
            raise UsageError(
                f"--print-address specified but printing address to {namespace.announce_text} already requested",
                code="conflicting_announce_target",
                details={"targets": (namespace.announce_text, values)},
            )
        namespace.announce_text = values


def _build_parser() -> _ArgumentParser:
    parser = _ArgumentParser(prog="busd", add_help=False, allow_abbrev=False)
    parser.add_argument("--help", "-h", "-?", nargs=0, action=_HelpAction)
    parser.add_argument("--version", nargs=0, action=_VersionAction)
    parser.add_argument("--system", nargs=0, const=SYSTEM_CONFIG_FILE, dest="config_path", action=_ConfigSourceAction)
    parser.add_argument("--session", nargs=0, const=SESSION_CONFIG_FILE, dest="config_path", action=_ConfigSourceAction)
    parser.add_argument("--config-file", dest="config_path", metavar="FILE", action=_ConfigSourceAction)
    parser.add_argument("--print-address", nargs="?", dest="announce_text", metavar="descriptor", action=_PrintAddressAction)
    parser.set_defaults(config_path=None, config_source=None, announce_text=None, print_address=False)
    return parser


def parse_descriptor(text: str) -> int:
    """Parse a descriptor number given on the command line."""
    if not _DESCRIPTOR_RE.fullmatch(text) or int(text) > MAX_DESCRIPTOR:
        raise UsageError(
            f'Invalid file descriptor: "{text}"',
            code="invalid_descriptor",
            details={"value": text},
        )
    return int(text)


def parse_args(argv: Sequence[str]) -> DaemonOptions:
    """Resolve *argv* (without the program name) into DaemonOptions.

    Raises UsageRequested for help, VersionRequested for --version and
    UsageError for anything that cannot be resolved.
    """
    namespace = _build_parser().parse_args(list(argv))

    if not namespace.config_path:
        raise UsageError("No configuration file specified.", show_usage=True, code="no_configuration")

    target = None
    if namespace.print_address:
        target = parse_descriptor(namespace.announce_text) if namespace.announce_text else STDOUT_DESCRIPTOR

    return DaemonOptions(
        config_path=namespace.config_path,
        config_source=namespace.config_source,
        address_announce_target=target,
    )


def without_announce_arguments(argv: Sequence[str]) -> list[str]:
    """Return *argv* with every --print-address request (and its value) removed."""
    kept: list[str] = []
    tokens = list(argv)
    i = 0
    while i < len(tokens):
        arg = tokens[i]
        if arg.startswith("--print-address="):
            i += 1
            continue
        if arg == "--print-address":
            following = tokens[i + 1] if i + 1 < len(tokens) else None
            i += 2 if following is not None and not _looks_like_flag(following) else 1
            continue
        kept.append(arg)
        i += 1
    return kept


def _looks_like_flag(token: str) -> bool:
    # argparse hands negative numbers to nargs="?" options as values
    return token.startswith("-") and not re.fullmatch(r"-\d+", token)
