import os
from typing import Dict, MutableMapping, Optional

from ..engine.service import Connection, DatabaseService
from .commands import CommandDescriptor
from .options import ShellOptions
from .output_handler import ShellOutput


class SessionState:
    """
    Holds the state of one dbsh session.

    It is created once at start-up and handed to every component that parses,
    dispatches or executes statements. Options, the `${NAME}` environment,
    the database connections and the output sinks all live here.
    """

    def __init__(
        self,
        environ: Optional[MutableMapping[str, str]] = None,
        service: Optional[DatabaseService] = None,
        output: Optional[ShellOutput] = None,
    ):
        # Variables visible to `${NAME}` substitution and `setenv`.
        self.environ: MutableMapping[str, str] = (
            os.environ if environ is None else environ
        )
        self.options = ShellOptions(self.environ)
        self.service = service or DatabaseService()
        self.output = output or ShellOutput()
        self.output.state = self

        # The descriptor currently executing, used to prefix diagnostics.
        self.active_command: Optional[CommandDescriptor] = None

        # A flag to control the main loop of the REPL.
        self.is_running: bool = True

    @property
    def connections(self) -> Dict[str, Connection]:
        return self.service.connections

    @property
    def current(self) -> Optional[Connection]:
        return self.service.current

    @property
    def continue_on_error(self) -> bool:
        return self.options.get("continue")

    @property
    def silent(self) -> bool:
        return self.options.get("silent")

    @property
    def verbose(self) -> bool:
        return self.options.get("verbose")

    @property
    def prompt(self) -> str:
        return self.options.get("prompt")
