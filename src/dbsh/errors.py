class ShellError(Exception):
    """Base class for recoverable errors raised while running a statement."""


class ShellSyntaxError(ShellError):
    """A statement could not be tokenized (e.g. an unterminated quote)."""


class UsageError(ShellError):
    """A command was called with arguments it does not accept."""


class ConnectivityError(ShellError):
    """The database layer failed to connect or to run a statement."""


class FatalShellError(Exception):
    """An unrecoverable error. Interpretation always stops."""
