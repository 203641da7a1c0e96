"""Tests for command-line parsing."""

import itertools

import pytest

from busd.core.constants import MAX_DESCRIPTOR, SESSION_CONFIG_FILE, SYSTEM_CONFIG_FILE
from busd.core.errors import UsageError, UsageRequested, VersionRequested
from busd.options import (
    STDOUT_DESCRIPTOR,
    DaemonOptions,
    parse_args,
    parse_descriptor,
    without_announce_arguments,
)

# Each form that names a configuration source, with the flag it reports
CONFIG_FORMS = [
    (["--system"], "system"),
    (["--session"], "session"),
    (["--config-file=/etc/a.yaml"], "config-file"),
    (["--config-file", "/etc/b.yaml"], "config-file"),
]


class TestConfigSource:
    def test_system_preset(self):
        """--system selects the system config file."""
        options = parse_args(["--system"])

        assert options == DaemonOptions(SYSTEM_CONFIG_FILE, "system", None)
        assert options.announce_address is False

    def test_session_preset(self):
        """--session selects the session config file."""
        options = parse_args(["--session"])

        assert options.config_path == SESSION_CONFIG_FILE
        assert options.config_source == "session"

    def test_config_file_single_token(self):
        """--config-file=PATH sets the path."""
        assert parse_args(["--config-file=/tmp/bus.yaml"]).config_path == "/tmp/bus.yaml"

    def test_config_file_two_tokens(self):
        """--config-file PATH sets the path."""
        assert parse_args(["--config-file", "/tmp/bus.yaml"]).config_path == "/tmp/bus.yaml"

    def test_config_file_value_may_contain_equals(self):
        """Only the first = separates flag and value."""
        assert parse_args(["--config-file=/tmp/a=b.yaml"]).config_path == "/tmp/a=b.yaml"

    @pytest.mark.parametrize(
        ("first", "second"),
        list(itertools.product(CONFIG_FORMS, repeat=2)),
    )
    def test_second_source_conflicts(self, first, second):
        """Any second config source is refused, naming both flags."""
        (first_args, first_flag), (second_args, second_flag) = first, second

        with pytest.raises(UsageError) as exc_info:
            parse_args(first_args + second_args)

        message = str(exc_info.value)
        assert exc_info.value.code == "conflicting_config_source"
        assert exc_info.value.details["flags"] == (first_flag, second_flag)
        assert f"--{second_flag} specified" in message
        assert f"already requested by --{first_flag}" in message

    def test_system_and_session_conflict_names_both(self):
        """The conflict message names system, session and the first path."""
        with pytest.raises(UsageError) as exc_info:
            parse_args(["--system", "--session"])

        message = str(exc_info.value)
        assert "system" in message
        assert "session" in message
        assert SYSTEM_CONFIG_FILE in message

    def test_no_configuration(self):
        """Without a config source parsing fails."""
        with pytest.raises(UsageError) as exc_info:
            parse_args([])

        assert exc_info.value.code == "no_configuration"
        assert str(exc_info.value) == "No configuration file specified."
        assert exc_info.value.show_usage

    def test_empty_config_file_is_no_configuration(self):
        """An empty --config-file= counts as no configuration."""
        with pytest.raises(UsageError) as exc_info:
            parse_args(["--config-file="])

        assert exc_info.value.code == "no_configuration"

    def test_config_file_without_value(self):
        """--config-file with no value is an argument error."""
        with pytest.raises(UsageError) as exc_info:
            parse_args(["--config-file"])

        assert exc_info.value.code == "invalid_argument"


class TestPrintAddress:
    def test_bare_flag_targets_stdout(self):
        """A bare --print-address announces on stdout."""
        options = parse_args(["--system", "--print-address"])

        assert options.address_announce_target == STDOUT_DESCRIPTOR
        assert options.announce_address is True

    def test_single_token_target(self):
        """--print-address=N names the descriptor."""
        assert parse_args(["--system", "--print-address=3"]).address_announce_target == 3

    def test_two_token_target(self):
        """--print-address N names the descriptor."""
        assert parse_args(["--print-address", "5", "--session"]).address_announce_target == 5

    def test_bare_flag_followed_by_other_flag(self):
        """A bare --print-address does not swallow the next flag."""
        options = parse_args(["--print-address", "--system"])

        assert options.address_announce_target == STDOUT_DESCRIPTOR
        assert options.config_source == "system"

    def test_empty_value_means_stdout(self):
        """--print-address= announces on stdout."""
        assert parse_args(["--system", "--print-address="]).address_announce_target == STDOUT_DESCRIPTOR

    def test_bare_then_explicit_is_allowed(self):
        """A bare request followed by an explicit target is allowed."""
        assert parse_args(["--system", "--print-address", "--print-address=4"]).address_announce_target == 4

    @pytest.mark.parametrize(
        "args",
        [
            ["--print-address=3", "--print-address=4"],
            ["--print-address=3", "--print-address", "4"],
            ["--print-address", "3", "--print-address=4"],
        ],
    )
    def test_second_target_conflicts(self, args):
        """A second explicit target is refused."""
        with pytest.raises(UsageError) as exc_info:
            parse_args(["--system", *args])

        assert exc_info.value.code == "conflicting_announce_target"
        assert "printing address to 3 already requested" in str(exc_info.value)

    @pytest.mark.parametrize("value", ["abc", "-1", "+3", " 3", "3.0", str(MAX_DESCRIPTOR + 1)])
    def test_invalid_descriptor(self, value):
        """Descriptors that are not plain decimals in range are refused."""
        with pytest.raises(UsageError) as exc_info:
            parse_args(["--system", f"--print-address={value}"])

        assert exc_info.value.code == "invalid_descriptor"
        assert str(exc_info.value) == f'Invalid file descriptor: "{value}"'

    def test_largest_descriptor_accepted(self):
        """The bounds of the descriptor range parse."""
        assert parse_descriptor(str(MAX_DESCRIPTOR)) == MAX_DESCRIPTOR
        assert parse_descriptor("0") == 0


class TestHelpAndVersion:
    @pytest.mark.parametrize("flag", ["--help", "-h", "-?"])
    def test_help(self, flag):
        """Every help flag requests usage."""
        with pytest.raises(UsageRequested):
            parse_args(["--system", flag])

    def test_help_is_a_usage_error(self):
        """A help request is a usage error that shows usage."""
        with pytest.raises(UsageError) as exc_info:
            parse_args(["--help"])

        assert exc_info.value.show_usage

    def test_version(self):
        """--version is reported as a version request."""
        with pytest.raises(VersionRequested):
            parse_args(["--version"])

    def test_arguments_are_handled_in_order(self):
        """An earlier conflict wins over a later --help."""
        with pytest.raises(UsageError) as exc_info:
            parse_args(["--system", "--session", "--help"])

        assert not isinstance(exc_info.value, UsageRequested)
        assert exc_info.value.code == "conflicting_config_source"


class TestUnknownArguments:
    @pytest.mark.parametrize(
        "args",
        [
            ["--session", "--bogus"],
            ["--session", "stray"],
            ["--sys"],
            ["--system=x"],
            ["--session", "-x"],
        ],
    )
    def test_unknown_token_is_usage_error(self, args):
        """Unknown or malformed tokens are usage errors."""
        with pytest.raises(UsageError) as exc_info:
            parse_args(args)

        assert exc_info.value.code == "invalid_argument"
        assert exc_info.value.show_usage


class TestWithoutAnnounceArguments:
    @pytest.mark.parametrize(
        ("argv", "expected"),
        [
            (["--system", "--print-address=3"], ["--system"]),
            (["--print-address", "3", "--system"], ["--system"]),
            (["--print-address", "--system"], ["--system"]),
            (["--system", "--print-address"], ["--system"]),
            (["--config-file", "/x", "--print-address", "-1"], ["--config-file", "/x"]),
            (["--session"], ["--session"]),
        ],
    )
    def test_strips_every_form(self, argv, expected):
        """Every --print-address form is removed, value included."""
        assert without_announce_arguments(argv) == expected
