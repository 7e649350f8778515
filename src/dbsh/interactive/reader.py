import codecs
from typing import Iterator, Union

import structlog

from ..errors import ShellSyntaxError
from .tokenizer import TERMINATOR, Statement, Tokenizer

logger = structlog.get_logger(__name__)


class StatementReader:
    """
    Incremental statement segmenter.

    Input is appended with `feed()` either as whole lines (the interactive
    shell) or as raw byte chunks read from a script. `statements()` yields
    every complete statement the buffer holds; whatever is left after the
    last terminator is kept and parsed again, together with the next chunk,
    on the following call.
    """

    def __init__(self, tokenizer: Tokenizer, encoding: str = "utf-8"):
        self.tokenizer = tokenizer
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self._offset = 0
        # Buffer position up to which the pending text is known to be incomplete.
        self._scanned = 0

    @property
    def pending(self) -> str:
        """Text received but not yet consumed as a statement."""
        return self._buffer[self._offset :]

    def feed(self, data: Union[str, bytes], final: bool = False) -> None:
        if isinstance(data, bytes):
            # The decoder holds back a multi-byte character split across chunks.
            data = self._decoder.decode(data, final)
        self._buffer += data

    def discard(self) -> None:
        self._buffer = ""
        self._offset = 0
        self._scanned = 0
        self._decoder.reset()

    def statements(self, final: bool = False) -> Iterator[Statement]:
        """
        Yields complete statements in input order.

        The read offset is moved past each statement before it is yielded, so
        a caller that stops iterating early leaves the remaining statements in
        the buffer. With `final` set, the end of the buffer terminates the last
        statement.
        """
        if final:
            self._buffer += self._decoder.decode(b"", True)
        elif not self._may_complete():
            return
        while self._offset < len(self._buffer):
            try:
                statement = self.tokenizer.tokenize(
                    self._buffer, self._offset, final=final
                )
            except ShellSyntaxError:
                logger.debug("reader.syntax_error", pending=self.pending)
                self.discard()
                raise
            if statement is None:
                self._scanned = len(self._buffer)
                break
            self._offset = statement.end
            if statement.argv:
                yield statement
        self._compact()

    def _may_complete(self) -> bool:
        """
        False when nothing received since the last scan can end the pending
        statement, so scanning it again would only repeat work.
        """
        if self.tokenizer.line_mode or self._scanned <= self._offset:
            return True
        return self._buffer.find(TERMINATOR, self._scanned) != -1

    def _compact(self) -> None:
        if self._offset:
            self._scanned = max(self._scanned - self._offset, 0)
            self._buffer = self._buffer[self._offset :]
            self._offset = 0
