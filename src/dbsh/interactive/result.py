from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Ok:
    """The statement succeeded; keep interpreting."""

    code = 0


@dataclass(frozen=True)
class RecoverableError:
    """The statement failed; keep going only when `continue` is enabled."""

    message: str
    code = -1


@dataclass(frozen=True)
class FatalError:
    """Unrecoverable failure; interpretation always stops."""

    message: str
    code = -2


@dataclass(frozen=True)
class Terminate:
    """A command asked the shell to exit (quit, exit, logout)."""

    exit_code: int = 0
    code = 1


Outcome = Union[Ok, RecoverableError, FatalError, Terminate]

OK = Ok()


def should_stop(outcome: Outcome, continue_on_error: bool) -> bool:
    """Decides whether the interpreter stops after `outcome`."""
    if isinstance(outcome, Ok):
        return False
    if isinstance(outcome, RecoverableError):
        return not continue_on_error
    return True


def exit_status(outcome: Outcome) -> int:
    """Maps an outcome to the process exit status."""
    if isinstance(outcome, Terminate):
        return outcome.exit_code
    if isinstance(outcome, (RecoverableError, FatalError)):
        return 1
    return 0
