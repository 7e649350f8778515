import functools
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

import structlog

from ..errors import ShellError, ShellSyntaxError
from ..utils import resolve_path
from .executor import CommandExecutor
from .reader import StatementReader
from .result import OK, FatalError, Ok, Outcome, RecoverableError, should_stop
from .session import SessionState
from .tokenizer import Tokenizer

logger = structlog.get_logger(__name__)

CHUNK_SIZE = 4096
PROFILE_FILENAME = ".dbsh_profile"
LOCAL_PROFILE_FILENAME = ".dbshrc"


class Interpreter:
    """
    Feeds input through the statement reader and the dispatcher.

    This is the one place that applies the continue-on-error policy: after
    each statement the outcome decides whether the remaining input is run
    or thrown away.
    """

    def __init__(
        self, state: SessionState, executor: Optional[CommandExecutor] = None
    ):
        self.state = state
        self.executor = executor or CommandExecutor(state)
        self.line_reader = StatementReader(Tokenizer(state.environ, line_mode=True))

    @property
    def has_pending(self) -> bool:
        """True while the REPL holds an unfinished statement."""
        return bool(self.line_reader.pending.strip())

    def discard_pending(self) -> None:
        self.line_reader.discard()

    async def interpret_line(self, line: str) -> Outcome:
        """
        Interprets one line typed at the prompt.

        Complete statements run in order; an unfinished trailing statement is
        kept and joined with the next line.
        """
        pending = self.line_reader.pending
        if pending:
            # A trailing backslash continues the statement on the next line.
            continued = self.line_reader.tokenizer.ends_with_continuation(pending)
            line = ("\n" if continued else " ") + line
        self.line_reader.feed(line)
        return await self._drain(self.line_reader)

    async def run_chunks(self, chunks: Iterable[Union[bytes, str]]) -> Outcome:
        """
        Interprets a script delivered as arbitrary-sized chunks.

        Returns the outcome that stopped interpretation, otherwise the last
        error that was tolerated, otherwise Ok.
        """
        reader = StatementReader(Tokenizer(self.state.environ))
        result: Outcome = OK
        for chunk in chunks:
            reader.feed(chunk)
            outcome = await self._drain(reader)
            if not isinstance(outcome, Ok):
                result = outcome
            if should_stop(outcome, self.state.continue_on_error):
                return outcome
        outcome = await self._drain(reader, final=True)
        if not isinstance(outcome, Ok):
            result = outcome
        return result

    async def run_script(self, path: str) -> Outcome:
        target = resolve_path(path)
        log = logger.bind(script=str(target))
        try:
            handle = open(target, "rb")
        except OSError as e:
            raise ShellError(f"{path}: {e.strerror or e}") from e
        log.debug("interpreter.script.begin")
        with handle:
            outcome = await self.run_chunks(_read_chunks(handle))
        log.debug("interpreter.script.end", outcome=type(outcome).__name__)
        return outcome

    def profile_candidates(self) -> List[Path]:
        conffile = self.state.options.get("conffile")
        if conffile:
            return [resolve_path(conffile)]
        candidates = []
        home = self.state.environ.get("HOME")
        if home:
            candidates.append(Path(home) / PROFILE_FILENAME)
        candidates.append(Path(LOCAL_PROFILE_FILENAME))
        return candidates

    async def run_profile(self) -> Outcome:
        """Runs the first start-up profile that exists."""
        for candidate in self.profile_candidates():
            if candidate.is_file():
                logger.debug("interpreter.profile.found", path=str(candidate))
                return await self.run_script(str(candidate))
        return OK

    async def _drain(self, reader: StatementReader, final: bool = False) -> Outcome:
        """Runs every complete statement the reader holds."""
        result: Outcome = OK
        try:
            for statement in reader.statements(final=final):
                outcome = await self.executor.execute(statement)
                if not isinstance(outcome, Ok):
                    result = outcome
                if should_stop(outcome, self.state.continue_on_error):
                    reader.discard()
                    return outcome
        except ShellSyntaxError as e:
            # The reader has already dropped the rest of its buffer.
            self.state.output.error(str(e))
            return RecoverableError(str(e))
        except MemoryError:
            reader.discard()
            self.state.output.fatal("out of virtual memory")
            return FatalError("out of virtual memory")
        return result


def _read_chunks(handle) -> Iterator[bytes]:
    return iter(functools.partial(handle.read, CHUNK_SIZE), b"")
