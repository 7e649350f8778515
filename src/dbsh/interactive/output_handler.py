import csv
import io
from pathlib import Path
from typing import IO, Any, List, Optional, Sequence, TYPE_CHECKING
from xml.sax.saxutils import escape, quoteattr

import structlog
from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .. import PROGRAM_NAME
from ..errors import ShellError
from ..utils import resolve_path

if TYPE_CHECKING:
    from ..engine.service import ResultSet
    from .session import SessionState

logger = structlog.get_logger(__name__)


class ShellOutput:
    """
    Presentation layer of the shell.

    Diagnostics go to stderr, messages to stdout and result data to the
    output sink, which is stdout until `open` redirects it to a file. The
    `silent` and `verbose` options of the attached session decide what is
    shown at all.
    """

    def __init__(
        self, console: Optional[Console] = None, error_console: Optional[Console] = None
    ):
        self.console = console or Console(highlight=False)
        self.error_console = error_console or Console(stderr=True, highlight=False)
        self.state: Optional["SessionState"] = None
        self.sink_path: Optional[Path] = None
        self._sink_file: Optional[IO[str]] = None
        self._sink: Optional[Console] = None

    @property
    def data_console(self) -> Console:
        return self._sink or self.console

    @property
    def _silent(self) -> bool:
        return bool(self.state and self.state.silent)

    @property
    def _verbose(self) -> bool:
        return bool(self.state and self.state.verbose)

    def out(self, text: str = "") -> None:
        """Prints a line of command output to stdout."""
        self.console.out(text, highlight=False)

    def message(self, text: str = "") -> None:
        """Prints an informational line unless the shell is silent."""
        if not self._silent:
            self.console.out(text, highlight=False)

    def verbose(self, text: str) -> None:
        if self._verbose and not self._silent:
            self.console.out(text, highlight=False)

    def error(self, text: str) -> None:
        """Reports a non-fatal diagnostic unless the shell is silent."""
        if not self._silent:
            self._diagnostic(text)

    def fatal(self, text: str) -> None:
        self._diagnostic(text)

    def write(self, text: str = "") -> None:
        """Writes data to the output sink; never silenced."""
        self.data_console.out(text, highlight=False)

    def clear(self) -> None:
        self.console.clear()

    def open(self, path: str) -> Path:
        """Redirects result data to `path`, truncating it."""
        self.close()
        target = resolve_path(path)
        try:
            self._sink_file = open(target, "w", encoding="utf-8")
        except OSError as e:
            raise ShellError(f"{path}: {e.strerror or e}") from e
        self._sink = Console(
            file=self._sink_file,
            force_terminal=False,
            color_system=None,
            highlight=False,
            width=self.console.width,
        )
        self.sink_path = target
        logger.debug("output.sink.opened", path=str(target))
        return target

    def close(self) -> Optional[Path]:
        """Closes the output file, if any, and returns its path."""
        closed = self.sink_path
        if self._sink_file is not None:
            self._sink_file.close()
            logger.debug("output.sink.closed", path=str(closed))
        self._sink_file = None
        self._sink = None
        self.sink_path = None
        return closed

    def render_result(self, result: "ResultSet") -> None:
        if not result.returns_rows:
            self.message(f"Statement executed. {max(result.rowcount, 0)} rows affected.")
            return

        maxcols = self.state.options.get("maxcols") if self.state else 0
        columns: Sequence[str] = result.columns
        rows: List[Sequence[Any]] = result.rows
        if maxcols and len(columns) > maxcols:
            self.error(f"NOTE: Resultset truncated to {maxcols} columns.")
            columns = columns[:maxcols]
            rows = [row[:maxcols] for row in rows]

        output_format = self.state.options.get("format") if self.state else "csv"
        if output_format == "fixed":
            self._render_fixed(columns, rows)
        elif output_format == "xml":
            self._render_xml(columns, rows)
        else:
            self._render_csv(columns, rows)
        self.verbose(f"result set returned {len(rows)} rows.")

    def _diagnostic(self, text: str) -> None:
        prefix = f"{PROGRAM_NAME}: "
        if self.state and self.state.active_command:
            prefix += f"{self.state.active_command.name}: "
        self.error_console.print(Text(prefix + text), soft_wrap=True, highlight=False)

    def _render_csv(self, columns: Sequence[str], rows: List[Sequence[Any]]) -> None:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(columns)
        for row in rows:
            writer.writerow(["" if value is None else value for value in row])
        self.data_console.out(buffer.getvalue(), end="", highlight=False)

    def _render_fixed(self, columns: Sequence[str], rows: List[Sequence[Any]]) -> None:
        table = Table(box=box.SIMPLE_HEAD, show_edge=False)
        for column in columns:
            table.add_column(column, overflow="fold")
        for row in rows:
            table.add_row(*("NULL" if value is None else str(value) for value in row))
        self.data_console.print(table)

    def _render_xml(self, columns: Sequence[str], rows: List[Sequence[Any]]) -> None:
        lines = ['<?xml version="1.0" encoding="UTF-8"?>', "<resultset>"]
        for row in rows:
            lines.append("  <row>")
            for column, value in zip(columns, row):
                if value is None:
                    lines.append(f'    <column name={quoteattr(column)} null="true"/>')
                else:
                    lines.append(
                        f"    <column name={quoteattr(column)}>{escape(str(value))}</column>"
                    )
            lines.append("  </row>")
        lines.append("</resultset>")
        self.data_console.out("\n".join(lines), highlight=False)
