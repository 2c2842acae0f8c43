"""Shared fixtures for the log-watchdog test suite.

Commands run the current interpreter so the suite does not depend on
any particular shell utilities being installed.
"""
import sys

import pytest

from log_watchdog.watchdog.definition import WatchdogDefinition
from log_watchdog.watchdog.dispatcher import CommandSpec

from tests.helpers import FakeClock


@pytest.fixture
def python_command():
    def factory(code: str) -> CommandSpec:
        return CommandSpec(sys.executable, ("-c", code))
    return factory


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_definition(tmp_path, python_command):
    """Build a definition whose command prints the watchdog name"""
    def factory(name="errors", regex="ERROR", log_name="app.log", commands=None, **kwargs):
        log_file = tmp_path / log_name
        log_file.touch()
        return WatchdogDefinition(
            name=name,
            log_file=log_file,
            output_file=tmp_path / f"{name}.out",
            regex=regex,
            commands=commands or (python_command(f"print({name!r})"),),
            **kwargs,
        )
    return factory
