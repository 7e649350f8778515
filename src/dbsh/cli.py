import asyncio
import functools
import logging
import sys
from typing import List, Optional

import structlog
import typer
from rich.console import Console
from rich.traceback import Traceback

from dbsh import PACKAGE_NAME, PROGRAM_NAME, __version__
from dbsh.errors import ShellError
from dbsh.interactive.executor import DEFAULT_CONNECTION
from dbsh.interactive.interpreter import Interpreter
from dbsh.interactive.main import start_repl
from dbsh.interactive.result import RecoverableError, Terminate, exit_status, should_stop
from dbsh.interactive.session import SessionState
from dbsh.state import APP_STATE


def setup_logging(verbose: bool):
    """
    Configures structlog for the entire application.
    - Default level: WARNING (the shell's own output stays clean)
    - Verbose level: DEBUG (for power users)
    - All logs are routed to stderr to keep stdout clean for piping.
    """
    log_level = logging.DEBUG if verbose else logging.WARNING

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    root_logger = logging.getLogger()
    # ConsoleRenderer does all the formatting.
    handler = logging.StreamHandler(sys.stderr)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        if getattr(handler, "stream", None) is not sys.stderr:
            root_logger.removeHandler(handler)


def handle_exceptions(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        console = Console(stderr=True)
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except Exception as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            if APP_STATE.verbose_mode:
                console.print(
                    Traceback.from_exception(
                        type(e), e, e.__traceback__, show_locals=True
                    )
                )
            raise typer.Exit(code=1)

    return wrapper


# --- Main Application Definition ---
app = typer.Typer(
    name=PROGRAM_NAME,
    help=f"{PACKAGE_NAME}: run SQL and shell commands against your databases.",
    add_completion=False,
    rich_markup_mode="markdown",
)


async def _connect(state: SessionState, dsn: Optional[str]) -> bool:
    if not dsn:
        return True
    try:
        await state.service.connect(DEFAULT_CONNECTION, dsn)
    except ShellError as e:
        state.output.error(str(e))
        return False
    return True


async def run_batch(
    state: SessionState,
    dsn: Optional[str],
    statements: List[str],
    list_dsn: bool,
    show: Optional[str],
) -> int:
    """Runs the non-interactive -e, -l and -s modes."""
    service = state.service
    status = 0
    try:
        if list_dsn:
            state.output.render_result(service.list_data_sources())
            return 0
        if not await _connect(state, dsn):
            return 1
        if show is not None:
            state.output.render_result(await service.show(show))
            return 0
        for sql in statements:
            try:
                state.output.render_result(await service.execute(sql))
            except ShellError as e:
                state.output.error(str(e))
                status = 1
                if not state.continue_on_error:
                    break
        return status
    except ShellError as e:
        state.output.error(str(e))
        return 1
    finally:
        await service.close_all()
        state.output.close()


async def run_scripts(state: SessionState, dsn: Optional[str], scripts: List[str]) -> int:
    """Runs each script file in turn through the chunk-mode interpreter."""
    interpreter = Interpreter(state)
    status = 0
    try:
        if not await _connect(state, dsn):
            return 1
        for script in scripts:
            try:
                outcome = await interpreter.run_script(script)
            except ShellError as e:
                state.output.error(str(e))
                outcome = RecoverableError(str(e))
            if isinstance(outcome, Terminate):
                return status or outcome.exit_code
            status = status or exit_status(outcome)
            if should_stop(outcome, state.continue_on_error):
                return 1
        return status
    finally:
        await state.service.close_all()
        state.output.close()


@app.command()
@handle_exceptions
def main(
    scripts: Optional[List[str]] = typer.Argument(
        None, help="Script files to run instead of starting the interactive shell."
    ),
    continue_on_error: bool = typer.Option(
        False, "--continue", "-c", help="Continue if non-fatal errors are encountered."
    ),
    dsn: Optional[str] = typer.Option(
        None, "--dsn", "-D", help="Connect to this data source or URL at start-up."
    ),
    execute: Optional[List[str]] = typer.Option(
        None, "--execute", "-e", help="Execute SQL against --dsn (repeatable)."
    ),
    list_dsn: bool = typer.Option(
        False, "--list-dsn", "-l", help="List the configured data sources."
    ),
    noprofile: bool = typer.Option(
        False, "--noprofile", "-N", help="Do not run the start-up profile."
    ),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Write results to FILE instead of stdout."
    ),
    silent: bool = typer.Option(
        False, "--quiet", "--silent", "-q", help="Do not display non-fatal messages."
    ),
    show: Optional[str] = typer.Option(
        None, "--show", "-s", help="Show database information (dsn, tables, owners, ...)."
    ),
    version: bool = typer.Option(
        False, "--version", "-V", help="Print version information and exit."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Display verbose messages and DEBUG logging."
    ),
):
    APP_STATE.verbose_mode = verbose
    setup_logging(verbose)

    if version:
        typer.echo(f"{PROGRAM_NAME} ({PACKAGE_NAME}) {__version__}")
        return

    modes = [flag for flag, on in (("-e", execute), ("-l", list_dsn), ("-s", show)) if on]
    if len(modes) > 1:
        Console(stderr=True).print(
            f"[bold red]Error:[/bold red] options {' and '.join(modes)} are mutually exclusive"
        )
        raise typer.Exit(code=1)

    state = SessionState()
    interactive = not modes and not scripts
    # The interactive shell tolerates errors unless told otherwise by a profile.
    state.options.set("continue", continue_on_error or interactive)
    state.options.set("silent", silent)
    state.options.set("verbose", verbose)
    if output:
        state.output.open(output)

    if modes:
        status = asyncio.run(run_batch(state, dsn, execute or [], list_dsn, show))
    elif scripts:
        status = asyncio.run(run_scripts(state, dsn, scripts))
    else:
        status = start_repl(state, dsn=dsn, profile=not noprofile)
    if status:
        raise typer.Exit(code=status)


if __name__ == "__main__":
    app()
