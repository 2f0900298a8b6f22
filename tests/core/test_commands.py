"""Tests for external command execution."""

import subprocess
from unittest.mock import patch

import pytest

from core.commands import run_command, split_command


def test_success_captures_stdout(python_probe):
    result = run_command(split_command(python_probe("print('hello')")))

    assert result.ok
    assert result.returncode == 0
    assert result.stdout.strip() == "hello"
    assert result.error is None


def test_non_zero_exit_reports_first_stderr_line(python_probe):
    code = "import sys; sys.stderr.write('boom\\nmore\\n'); sys.exit(4)"

    result = run_command(split_command(python_probe(code)))

    assert not result.ok
    assert result.returncode == 4
    assert result.error == "boom"


def test_undecodable_output_is_replaced(python_probe):
    code = "import sys; sys.stdout.buffer.write(bytes([0xff, 0xfe, 0xa9]))"

    result = run_command(split_command(python_probe(code)))

    assert result.ok
    assert result.stdout == "\ufffd" * 3


def test_missing_executable(tmp_path):
    result = run_command([str(tmp_path / "no-such-tool"), "--version"])

    assert not result.ok
    assert result.returncode is None
    assert result.error


def test_timeout():
    with patch("core.commands.subprocess.run",
               side_effect=subprocess.TimeoutExpired(cmd="slow", timeout=0.5)):
        result = run_command(["slow"], timeout=0.5)

    assert not result.ok
    assert result.returncode is None
    assert result.error == "timed out after 0.5s"


def test_empty_command():
    result = run_command([])

    assert not result.ok
    assert result.error == "empty command"


@pytest.mark.parametrize(
    "command, expected",
    [
        ("tool --version", ["tool", "--version"]),
        ("'my tool' -v", ["my tool", "-v"]),
        (["already", "split"], ["already", "split"]),
    ],
)
def test_split_command(command, expected):
    assert split_command(command) == expected
