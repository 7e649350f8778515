import re
from typing import Awaitable, Callable, Dict, Optional

import structlog

from .. import PACKAGE_NAME, PROGRAM_NAME, __version__
from ..errors import FatalShellError, ShellError, UsageError
from .commands import COMMANDS, CommandDescriptor, CommandTable
from .result import OK, FatalError, Outcome, RecoverableError, Terminate
from .session import SessionState
from .tokenizer import Statement

logger = structlog.get_logger(__name__)

Handler = Callable[[Statement], Awaitable[Optional[Outcome]]]

DEFAULT_CONNECTION = "default"
TOPICS_PER_ROW = 5
MAX_SOURCE_DEPTH = 16

_VARIABLE_NAME = re.compile(r"^[A-Za-z0-9_]+$")
_FIRST_WORD = re.compile(r"^\S+\s*")


class CommandExecutor:
    """
    Dispatches parsed statements to their command handlers.

    Handlers receive the whole statement. They report success by returning
    None or an Outcome and failure by raising: ShellError for errors the
    user can recover from, FatalShellError for anything that must stop the
    shell. All diagnostics are printed here so that they carry the name of
    the command that produced them.
    """

    def __init__(self, state: SessionState, commands: CommandTable = COMMANDS):
        self.state = state
        self.commands = commands
        self.source_depth = 0
        self.builtin_commands: Dict[str, Handler] = {
            "sql": self.execute_sql,
            "send": self.execute_send,
            "clear": self.execute_clear,
            "close": self.execute_close,
            "connect": self.execute_connect,
            "disconnect": self.execute_disconnect,
            "reconnect": self.execute_reconnect,
            "use": self.execute_use,
            "echo": self.execute_echo,
            "quit": self.execute_quit,
            "help": self.execute_help,
            "open": self.execute_open,
            "reset": self.execute_reset,
            "set": self.execute_set,
            "unset": self.execute_unset,
            "setenv": self.execute_setenv,
            "unsetenv": self.execute_unsetenv,
            "show": self.execute_show,
            "source": self.execute_source,
            "version": self.execute_version,
        }
        for descriptor in self.commands:
            if descriptor.handler not in self.builtin_commands:
                raise ValueError(
                    f"command '{descriptor.name}' has no handler '{descriptor.handler}'"
                )

    @property
    def output(self):
        return self.state.output

    def resolve(self, statement: Statement) -> Optional[CommandDescriptor]:
        """Finds the descriptor for a statement, honouring `NAME = value`."""
        descriptor = self.commands.lookup(statement.name)
        if descriptor is None and statement.argc > 1 and statement.argv[1] == "=":
            descriptor = self.commands.lookup("SETENV")
        return descriptor

    async def execute(self, statement: Statement) -> Outcome:
        name = statement.name
        descriptor = self.resolve(statement)
        if descriptor is None:
            logger.debug("executor.dispatch.unknown", command=name)
            return self._usage_error(
                f"{name}: unknown command.", "try `help;' for more information."
            )
        nargs = statement.argc - 1
        if nargs < descriptor.min_args:
            return self._usage_error(
                f"{name}: missing required arguments",
                f"try `help {name};' for more information.",
            )
        if not descriptor.accepts(nargs):
            return self._usage_error(
                f"{name}: unknown arguments",
                f"try `help {name};' for more information.",
            )

        handler = self.builtin_commands[descriptor.handler]
        log = logger.bind(command=descriptor.name)
        log.debug("executor.dispatch.begin", nargs=nargs)
        previous = self.state.active_command
        self.state.active_command = descriptor
        try:
            outcome = await handler(statement)
        except FatalShellError as e:
            self.output.fatal(str(e))
            return FatalError(str(e))
        except MemoryError:
            self.output.fatal("out of virtual memory")
            return FatalError("out of virtual memory")
        except ShellError as e:
            self.output.error(str(e))
            return RecoverableError(str(e))
        except Exception as e:
            log.debug("executor.execute.failed", error=str(e), exc_info=True)
            self.output.error(str(e) or type(e).__name__)
            return RecoverableError(str(e))
        finally:
            self.state.active_command = previous
        log.debug("executor.dispatch.end", outcome=type(outcome).__name__)
        return outcome or OK

    def _usage_error(self, message: str, hint: str) -> RecoverableError:
        self.output.error(message)
        self.output.error(hint)
        return RecoverableError(message)

    # --- Database commands ---

    async def execute_sql(self, statement: Statement):
        await self._run_sql(statement.text)

    async def execute_send(self, statement: Statement):
        await self._run_sql(_FIRST_WORD.sub("", statement.text, count=1))

    async def _run_sql(self, sql: str):
        if self.state.current is None:
            raise ShellError("not connected to a database")
        self.output.verbose("executing SQL statement...")
        result = await self.state.service.execute(sql)
        self.output.verbose("preparing SQL results...")
        self.output.render_result(result)

    async def execute_connect(self, statement: Statement):
        if statement.argc == 3:
            name, dsn = statement.argv[1], statement.argv[2]
        else:
            name, dsn = DEFAULT_CONNECTION, statement.argv[1]
        connection = await self.state.service.connect(name, dsn)
        self.output.verbose(f'connected to "{connection.name}"')

    async def execute_disconnect(self, statement: Statement):
        name = statement.argv[1] if statement.argc == 2 else None
        connection = await self.state.service.disconnect(name)
        self.output.verbose(f'disconnected from "{connection.name}"')

    async def execute_reconnect(self, statement: Statement):
        name = statement.argv[1] if statement.argc == 2 else None
        connection = await self.state.service.reconnect(name)
        self.output.verbose(f'reconnected to "{connection.name}"')

    async def execute_use(self, statement: Statement):
        if statement.argc == 2:
            connection = self.state.service.use(statement.argv[1])
            self.output.message(f'using connection "{connection.name}"')
            return
        current = self.state.current
        self.output.out("  Name:      DSN:")
        for connection in self.state.connections.values():
            marker = "*" if connection is current else " "
            self.output.out(f"{marker} {connection.name:<10} {connection.dsn}")

    async def execute_show(self, statement: Statement):
        result = await self.state.service.show(statement.argv[1])
        self.output.render_result(result)

    # --- Output commands ---

    async def execute_clear(self, statement: Statement):
        self.output.clear()

    async def execute_echo(self, statement: Statement):
        if statement.argc < 2:
            self.output.out()
            return
        for arg in statement.argv[1:]:
            self.output.out(arg)

    async def execute_open(self, statement: Statement):
        if statement.argc < 2:
            if self.output.sink_path is not None:
                self.output.out(f'writing output to "{self.output.sink_path}"')
            else:
                self.output.out("not writing output to a file")
            return
        path = self.output.open(statement.argv[1])
        self.output.verbose(f'writing output to "{path}"')

    async def execute_close(self, statement: Statement):
        self.output.close()

    # --- Session commands ---

    async def execute_quit(self, statement: Statement):
        await self._close_connections()
        self.output.close()
        self.output.message("bye.")
        self.state.is_running = False
        return Terminate(0)

    async def execute_reset(self, statement: Statement):
        await self._close_connections()
        self.output.close()
        self.state.options.reset()
        logger.debug("executor.reset.done")

    async def _close_connections(self):
        for connection in list(self.state.connections.values()):
            self.output.out(f'closing connection "{connection.name}"')
        await self.state.service.close_all()

    async def execute_help(self, statement: Statement):
        if statement.argc == 1:
            self.output.out(f"This is {PROGRAM_NAME} version {__version__}")
            self.output.out("Topics:")
            names = self.commands.names()
            for start in range(0, len(names), TOPICS_PER_ROW):
                row = names[start : start + TOPICS_PER_ROW]
                self.output.out("   " + "".join(f"{name:<12}" for name in row))
            self.output.out('For more info use "HELP <topic>".')
            self.output.out()
            return

        descriptor = self.commands.lookup(statement.argv[1])
        if descriptor is None:
            raise ShellError(f'HELP topic "{statement.argv[1]}" unknown.')
        if descriptor.description:
            self.output.out(f"{descriptor.name} Description:")
            self.output.out(f"   {descriptor.description}")
            self.output.out()
        if descriptor.usage:
            self.output.out(f"{descriptor.name} Usage:")
            for usage in descriptor.usage:
                self.output.out(f"   {PROGRAM_NAME}> {usage};")
            self.output.out()
        if not descriptor.description and not descriptor.usage:
            self.output.out(
                f'   Help information for this topic is unavailable for "{descriptor.name}".'
            )

    async def execute_set(self, statement: Statement):
        options = self.state.options
        argv = statement.argv
        if statement.argc == 1:
            self.output.out("Shell Parameters:")
            for spec in options:
                self.output.out(options.show(spec.name))
            return

        if argv[1].lower() == "help":
            if statement.argc == 3:
                spec = options.lookup(argv[2])
                self.output.out(f"{spec.name:<15} {spec.description}")
                return
            self.output.out("Shell Parameter Descriptions:")
            for spec in options:
                self.output.out(f"{spec.name:<15} {spec.description}")
            return

        if statement.argc == 2:
            self.output.out(options.show(argv[1]))
            return

        options.set(argv[1], argv[2])
        logger.debug("executor.set.option", option=argv[1], value=argv[2])

    async def execute_unset(self, statement: Statement):
        self.state.options.set(statement.argv[1], None)

    async def execute_setenv(self, statement: Statement):
        argv = statement.argv
        environ = self.state.environ
        if statement.argc > 1 and argv[1] == "=":
            # NAME = value
            name = argv[0]
            value = argv[2] if statement.argc == 3 else ""
        elif statement.argc == 1:
            self._list_environment()
            return
        elif statement.argc == 2:
            self.output.out(f"   {argv[1]:<20} {environ.get(argv[1], '')}")
            return
        else:
            name, value = argv[1], argv[2]

        if not _VARIABLE_NAME.match(name):
            raise UsageError("invalid variable name")
        environ[name] = value

    async def execute_unsetenv(self, statement: Statement):
        if statement.argc == 1:
            self._list_environment()
            return
        self.state.environ.pop(statement.argv[1], None)

    def _list_environment(self):
        self.output.out("Environment Variables:")
        for name, value in self.state.environ.items():
            self.output.out(f"   {name:<20} {value}")
        self.output.out()

    async def execute_source(self, statement: Statement):
        # Imported here; the interpreter depends on this module.
        from .interpreter import Interpreter

        if self.source_depth >= MAX_SOURCE_DEPTH:
            raise ShellError("too many nested scripts")
        self.source_depth += 1
        try:
            outcome = await Interpreter(self.state, executor=self).run_script(
                statement.argv[1]
            )
        finally:
            self.source_depth -= 1
        return outcome

    async def execute_version(self, statement: Statement):
        self.output.out(f"{PROGRAM_NAME} ({PACKAGE_NAME}) {__version__}")
        for component, version in self.state.service.version_info():
            self.output.out(f"{component}: {version}")
