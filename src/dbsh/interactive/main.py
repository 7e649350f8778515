import asyncio
from typing import Optional

import structlog
from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory, History, InMemoryHistory

from .. import PROGRAM_NAME, __version__
from ..errors import ShellError
from ..utils import resolve_path
from .completer import ShellCompleter
from .executor import DEFAULT_CONNECTION
from .interpreter import Interpreter
from .result import OK, FatalError, Terminate, exit_status
from .session import SessionState

logger = structlog.get_logger(__name__)

CONTINUATION_PROMPT = "> "


def build_history(state: SessionState) -> History:
    histfile = state.options.get("histfile")
    if state.options.get("history") and histfile:
        return FileHistory(str(resolve_path(histfile)))
    return InMemoryHistory()


async def repl_main(interpreter: Interpreter) -> int:
    """Reads statements from the terminal until quit, EOF or a fatal error."""
    state = interpreter.state
    prompt_session = PromptSession(
        history=build_history(state),
        completer=ShellCompleter(state),
        complete_while_typing=False,
    )

    if not state.silent:
        state.output.out(f"Welcome to {PROGRAM_NAME} v{__version__}. Commands end with ';'.")
        state.output.out('Type "help;" for usage information.')
        state.output.out()

    try:
        while state.is_running:
            prompt = CONTINUATION_PROMPT if interpreter.has_pending else state.prompt
            try:
                line = await prompt_session.prompt_async(prompt)
            except KeyboardInterrupt:
                # Drops the statement being typed.
                interpreter.discard_pending()
                continue
            except EOFError:
                state.output.out()
                break

            outcome = await interpreter.interpret_line(line)
            if isinstance(outcome, (Terminate, FatalError)):
                logger.debug("repl.stop", outcome=type(outcome).__name__)
                return exit_status(outcome)
    finally:
        await state.service.close_all()
        state.output.close()
    return 0


def start_repl(
    state: SessionState,
    interpreter: Optional[Interpreter] = None,
    dsn: Optional[str] = None,
    profile: bool = True,
) -> int:
    """Starts the main Read-Eval-Print-Loop (REPL) for the interactive shell."""
    interpreter = interpreter or Interpreter(state)

    async def run() -> int:
        outcome = OK
        if dsn:
            try:
                await state.service.connect(DEFAULT_CONNECTION, dsn)
            except ShellError as e:
                state.output.error(str(e))
        if profile:
            try:
                outcome = await interpreter.run_profile()
            except ShellError as e:
                state.output.error(str(e))
        if isinstance(outcome, (Terminate, FatalError)):
            await state.service.close_all()
            return exit_status(outcome)
        return await repl_main(interpreter)

    return asyncio.run(run())
