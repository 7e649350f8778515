from io import StringIO
from pathlib import Path

import pytest
from rich.console import Console

# Import all modules that rely on DBSH_HOME so we can patch them all in one place.
from dbsh import utils
from dbsh.engine import config as engine_config
from dbsh.engine.service import DatabaseService
from dbsh.interactive.executor import CommandExecutor
from dbsh.interactive.interpreter import Interpreter
from dbsh.interactive.output_handler import ShellOutput
from dbsh.interactive.session import SessionState


def _capture_console() -> Console:
    return Console(
        file=StringIO(),
        force_terminal=False,
        color_system=None,
        highlight=False,
        width=200,
    )


class CapturedOutput(ShellOutput):
    """ShellOutput writing to in-memory buffers instead of the terminal."""

    def __init__(self):
        super().__init__(console=_capture_console(), error_console=_capture_console())

    @property
    def stdout(self) -> str:
        return self.console.file.getvalue()

    @property
    def stderr(self) -> str:
        return self.error_console.file.getvalue()


@pytest.fixture
def clean_dbsh_home(tmp_path: Path, monkeypatch):
    """
    A project-wide fixture that creates a pristine, isolated ~/.dbsh home for
    each test and redirects all parts of the application to use it.
    """
    temp_dbsh_home = tmp_path / ".dbsh"
    temp_dbsh_home.mkdir()

    monkeypatch.setattr(utils, "DBSH_HOME", temp_dbsh_home)
    monkeypatch.setattr(engine_config, "DBSH_HOME", temp_dbsh_home)

    yield temp_dbsh_home


@pytest.fixture
def environ(tmp_path: Path):
    """A private environment so `setenv` never leaks into the test process."""
    return {"HOME": str(tmp_path), "FOO": "bar"}


@pytest.fixture
def state(clean_dbsh_home: Path, environ) -> SessionState:
    return SessionState(
        environ=environ, service=DatabaseService(), output=CapturedOutput()
    )


@pytest.fixture
def executor(state: SessionState) -> CommandExecutor:
    return CommandExecutor(state)


@pytest.fixture
def interpreter(state: SessionState, executor: CommandExecutor) -> Interpreter:
    return Interpreter(state, executor=executor)


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'inventory.db'}"
