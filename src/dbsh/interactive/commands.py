from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

UNBOUNDED = -1


class CommandDescriptor(BaseModel):
    """Static registration record for one shell command."""

    model_config = ConfigDict(frozen=True)

    name: str
    # Arity counts the arguments after the command name.
    min_args: int = Field(..., ge=0)
    max_args: int = Field(..., ge=UNBOUNDED, description="-1 for no limit.")
    handler: str = Field(
        ..., description="Key of the executor method that runs the command."
    )
    description: Optional[str] = None
    usage: Tuple[str, ...] = ()

    def accepts(self, nargs: int) -> bool:
        return nargs >= self.min_args and (
            self.max_args == UNBOUNDED or nargs <= self.max_args
        )


class CommandTable:
    """
    Ordered, case-insensitive registry of command descriptors.

    Several names may share a handler (aliases) but a name can only be
    registered once.
    """

    def __init__(self, descriptors: Iterable[CommandDescriptor]):
        self._ordered: List[CommandDescriptor] = []
        self._by_name: Dict[str, CommandDescriptor] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: CommandDescriptor) -> None:
        key = descriptor.name.lower()
        if key in self._by_name:
            raise ValueError(f"command '{descriptor.name}' is already registered")
        self._by_name[key] = descriptor
        self._ordered.append(descriptor)

    def lookup(self, name: str) -> Optional[CommandDescriptor]:
        return self._by_name.get(name.lower())

    def names(self) -> List[str]:
        return [descriptor.name for descriptor in self._ordered]

    def __iter__(self) -> Iterator[CommandDescriptor]:
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)


def _sql(name: str, category: str) -> CommandDescriptor:
    return CommandDescriptor(
        name=name,
        min_args=0,
        max_args=UNBOUNDED,
        handler="sql",
        description=f"SQL command ({category})",
    )


COMMANDS = CommandTable(
    [
        _sql("ALTER", "data definition"),
        _sql("BEGIN", "transaction controls"),
        CommandDescriptor(
            name="CLEAR",
            min_args=0,
            max_args=0,
            handler="clear",
            description="clears screen",
            usage=("clear",),
        ),
        CommandDescriptor(
            name="CLOSE",
            min_args=0,
            max_args=0,
            handler="close",
            description="closes output file",
            usage=("close",),
        ),
        _sql("COMMIT", "transaction controls"),
        CommandDescriptor(
            name="CONNECT",
            min_args=1,
            max_args=2,
            handler="connect",
            description="connects to a database",
            usage=(
                'connect "sqlite:///inventory.db"',
                'connect name "DSN=warehouse;UID=jdoe;PWD=password"',
            ),
        ),
        _sql("CREATE", "data definition"),
        _sql("DELETE", "data manipulation"),
        CommandDescriptor(
            name="DISCONNECT",
            min_args=0,
            max_args=1,
            handler="disconnect",
            description="disconnects from a database",
            usage=("disconnect", "disconnect name"),
        ),
        _sql("DROP", "data definition"),
        CommandDescriptor(
            name="ECHO",
            min_args=0,
            max_args=UNBOUNDED,
            handler="echo",
            description="prints arguments to screen",
            usage=('echo "string"', 'echo "string1" "string2"'),
        ),
        CommandDescriptor(
            name="EXIT",
            min_args=0,
            max_args=0,
            handler="quit",
            description="exits the shell",
            usage=("exit",),
        ),
        _sql("GRANT", "data control"),
        CommandDescriptor(
            name="HELP",
            min_args=0,
            max_args=1,
            handler="help",
            description="displays help information",
            usage=("help", "help topic"),
        ),
        _sql("INSERT", "data manipulation"),
        CommandDescriptor(
            name="LOGOUT",
            min_args=0,
            max_args=0,
            handler="quit",
            description="exits the shell",
            usage=("logout",),
        ),
        _sql("MERGE", "data manipulation"),
        CommandDescriptor(
            name="OPEN",
            min_args=0,
            max_args=1,
            handler="open",
            description="opens file to write results",
            usage=("open", "open filename"),
        ),
        CommandDescriptor(
            name="QUIT",
            min_args=0,
            max_args=0,
            handler="quit",
            description="exits the shell",
            usage=("quit",),
        ),
        CommandDescriptor(
            name="RECONNECT",
            min_args=0,
            max_args=1,
            handler="reconnect",
            description="reconnects to a database",
            usage=("reconnect", "reconnect name"),
        ),
        CommandDescriptor(
            name="RESET",
            min_args=0,
            max_args=0,
            handler="reset",
            description="resets internal configuration",
            usage=("reset",),
        ),
        _sql("REVOKE", "data control"),
        _sql("ROLLBACK", "transaction controls"),
        _sql("SAVE", "transaction controls"),
        _sql("SAVEPOINT", "transaction controls"),
        _sql("SELECT", "queries"),
        CommandDescriptor(
            name="SEND",
            min_args=1,
            max_args=UNBOUNDED,
            handler="send",
            description="sends statement to the database unchanged",
            usage=("send SQL_statement",),
        ),
        CommandDescriptor(
            name="SET",
            min_args=0,
            max_args=2,
            handler="set",
            description="sets configuration option",
            usage=("set", "set option", "set option value", "set help option"),
        ),
        CommandDescriptor(
            name="SETENV",
            min_args=0,
            max_args=2,
            handler="setenv",
            description="displays and sets environment variables",
            usage=("setenv", "setenv variable", "setenv variable value", "variable = value"),
        ),
        CommandDescriptor(
            name="SHOW",
            min_args=1,
            max_args=1,
            handler="show",
            description="shows database information",
            usage=(
                "show dsn",
                "show tables",
                "show qualifiers",
                "show owners",
                "show types",
                "show datatypes",
            ),
        ),
        CommandDescriptor(
            name="SOURCE",
            min_args=1,
            max_args=1,
            handler="source",
            description="runs a script file",
            usage=("source filename",),
        ),
        _sql("START", "transaction controls"),
        _sql("TRUNCATE", "data definition"),
        CommandDescriptor(
            name="UNSET",
            min_args=1,
            max_args=1,
            handler="unset",
            description="resets configuration option to its default",
            usage=("unset option",),
        ),
        CommandDescriptor(
            name="UNSETENV",
            min_args=0,
            max_args=1,
            handler="unsetenv",
            description="unsets environment variables",
            usage=("unsetenv variable",),
        ),
        _sql("UPDATE", "data manipulation"),
        CommandDescriptor(
            name="USE",
            min_args=0,
            max_args=1,
            handler="use",
            description="switches active connection",
            usage=("use", "use name"),
        ),
        CommandDescriptor(
            name="VERSION",
            min_args=0,
            max_args=0,
            handler="version",
            description="displays version information",
            usage=("version",),
        ),
    ]
)

SHOW_TOPICS = ("datatypes", "dsn", "owners", "qualifiers", "tables", "types")
