"""
Splits shell input into statements and argument vectors.

A statement is everything up to an unquoted ``;``. Inside a statement:

- blanks separate arguments and ``#`` starts a comment,
- ``'single quotes'`` keep their content verbatim,
- ``"double quotes"`` and bare words resolve ``\\x`` escapes and
  ``${NAME}`` references,
- ``=`` is always an argument of its own, so ``NAME = value`` and
  ``NAME=value`` tokenize the same way,
- a trailing backslash continues the statement on the next input.

In line mode (the interactive shell) a newline or NUL also ends a statement
and an unterminated quote is an error right away, since the line editor has
already delivered everything the user typed.
"""

import os
import re
from dataclasses import dataclass
from typing import List, Mapping, Optional

from ..errors import ShellSyntaxError

TERMINATOR = ";"
LINE_TERMINATORS = "\n\0"
BLANKS = " \t\r"
NEWLINES = "\r\n"
WORD_BREAKS = "#='\""

_COMMENT_END = re.compile(r"[\r\n]")


@dataclass
class Statement:
    """One parsed statement, ready for dispatch."""

    argv: List[str]
    # Raw source text from the first argument up to the terminator.
    text: str
    offset: int
    end: int

    @property
    def argc(self) -> int:
        return len(self.argv)

    @property
    def name(self) -> str:
        return self.argv[0] if self.argv else ""


def expand(value: str, environ: Mapping[str, str]) -> str:
    """Resolves backslash escapes and ``${NAME}`` references in one pass."""
    out: List[str] = []
    pos = 0
    length = len(value)
    while pos < length:
        ch = value[pos]
        if ch == "\\":
            if pos + 1 < length:
                out.append(value[pos + 1])
            pos += 2
            continue
        if ch == "$" and value.startswith("{", pos + 1):
            close = value.find("}", pos + 2)
            if close == -1:
                name, pos = value[pos + 2 :], length
            else:
                name, pos = value[pos + 2 : close], close + 1
            out.append(environ.get(name, ""))
            continue
        out.append(ch)
        pos += 1
    return "".join(out)


class Tokenizer:
    """Turns buffered text into :class:`Statement` objects."""

    def __init__(
        self, environ: Optional[Mapping[str, str]] = None, line_mode: bool = False
    ):
        self.environ = os.environ if environ is None else environ
        self.line_mode = line_mode

    def tokenize(
        self, text: str, pos: int = 0, final: bool = False
    ) -> Optional[Statement]:
        """
        Parses the statement starting at `pos`.

        Returns None when the statement is not complete yet and more input
        may follow. When `final` is set, the end of `text` acts as a
        terminator. Raises ShellSyntaxError for an unterminated quote that
        can no longer be closed.
        """
        argv: List[str] = []
        start: Optional[int] = None
        length = len(text)

        while pos < length:
            ch = text[pos]

            if self._is_terminator(ch):
                return self._statement(text, argv, start, pos, pos + 1)

            if self._is_blank(ch):
                pos += 1
                continue

            if ch == "#":
                match = _COMMENT_END.search(text, pos)
                if match is None:
                    if self.line_mode:
                        return self._statement(text, argv, start, pos, length)
                    pos = length
                    break
                pos = match.start()
                continue

            if ch == "\\":
                if pos + 1 >= length:
                    break
                if text.startswith("\r\n", pos + 1):
                    pos += 3
                    continue
                if text[pos + 1] in NEWLINES:
                    pos += 2
                    continue

            if start is None:
                start = pos

            if ch == "=":
                argv.append("=")
                pos += 1
            elif ch == "'":
                close = text.find("'", pos + 1)
                if close == -1:
                    return self._unterminated(final)
                argv.append(text[pos + 1 : close])
                pos = close + 1
            elif ch == '"':
                close = self._closing_quote(text, pos + 1)
                if close == -1:
                    return self._unterminated(final)
                argv.append(expand(text[pos + 1 : close], self.environ))
                pos = close + 1
            else:
                end = self._end_of_word(text, pos)
                argv.append(expand(text[pos:end], self.environ))
                pos = end

        if not final:
            return None
        return self._statement(text, argv, start, length, length)

    def split(self, text: str) -> List[str]:
        """Tokenizes a single complete statement and returns its arguments."""
        statement = self.tokenize(text, final=True)
        return statement.argv if statement else []

    @staticmethod
    def ends_with_continuation(text: str) -> bool:
        """True when `text` ends in a backslash that is not itself escaped."""
        pos = 0
        length = len(text)
        while pos < length:
            ch = text[pos]
            if ch == "\\":
                if pos + 1 >= length:
                    return True
                pos += 2
                continue
            if ch == "'":
                close = text.find("'", pos + 1)
                if close == -1:
                    return False
                pos = close
            pos += 1
        return False

    def _is_terminator(self, ch: str) -> bool:
        return ch == TERMINATOR or (self.line_mode and ch in LINE_TERMINATORS)

    def _is_blank(self, ch: str) -> bool:
        return ch in BLANKS or (not self.line_mode and ch in LINE_TERMINATORS)

    def _unterminated(self, final: bool) -> None:
        if self.line_mode or final:
            raise ShellSyntaxError("unterminated quoted string")
        return None

    @staticmethod
    def _closing_quote(text: str, pos: int) -> int:
        length = len(text)
        while pos < length:
            ch = text[pos]
            if ch == "\\":
                pos += 2
                continue
            if ch == '"':
                return pos
            pos += 1
        return -1

    def _end_of_word(self, text: str, pos: int) -> int:
        length = len(text)
        while pos < length:
            ch = text[pos]
            if ch == "\\":
                # A continuation backslash ends the word; any other escape
                # stays with its character for expand().
                if pos + 1 >= length or text[pos + 1] in NEWLINES:
                    return pos
                pos += 2
                continue
            if ch in WORD_BREAKS or self._is_terminator(ch) or self._is_blank(ch):
                return pos
            pos += 1
        return pos

    @staticmethod
    def _statement(
        text: str, argv: List[str], start: Optional[int], stop: int, end: int
    ) -> Statement:
        if start is None:
            return Statement(argv=argv, text="", offset=stop, end=end)
        return Statement(argv=argv, text=text[start:stop].strip(), offset=start, end=end)
