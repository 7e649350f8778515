from typing import Iterable, Iterator, List

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .commands import COMMANDS, SHOW_TOPICS, CommandTable
from .session import SessionState

_OPTION_COMMANDS = ("set", "unset")
_CONNECTION_COMMANDS = ("use", "disconnect", "reconnect")


class ShellCompleter(Completer):
    """
    Context-aware completion for the dbsh prompt.

    Only the statement under the cursor matters, i.e. the text after the
    last `;`. The first word completes to a command name, the second one
    depends on the command: option names for `set`/`unset`, connection
    names for `use`, `disconnect` and `reconnect`, catalog requests for
    `show` and topics for `help`.
    """

    def __init__(self, state: SessionState, commands: CommandTable = COMMANDS):
        self.state = state
        self.commands = commands

    def get_completions(self, document: Document, complete_event):
        statement = document.text_before_cursor.rsplit(";", 1)[-1]
        words = statement.split()
        word_before_cursor = document.get_word_before_cursor(WORD=True)
        if word_before_cursor:
            words = words[:-1]

        if not words:
            yield from self._matching(self.commands.names(), word_before_cursor, "command")
            return

        command = words[0].lower()
        if command == "help" and len(words) == 1:
            yield from self._matching(self.commands.names(), word_before_cursor, "topic")
        elif command == "show" and len(words) == 1:
            yield from self._matching(SHOW_TOPICS, word_before_cursor, "database data")
        elif command in _OPTION_COMMANDS and (
            len(words) == 1 or (len(words) == 2 and words[1].lower() == "help")
        ):
            options = [spec.name for spec in self.state.options]
            yield from self._matching(options, word_before_cursor, "option")
        elif command in _CONNECTION_COMMANDS and len(words) == 1:
            names = [connection.name for connection in self.state.connections.values()]
            yield from self._matching(names, word_before_cursor, "connection")

    @staticmethod
    def _matching(
        candidates: Iterable[str], prefix: str, meta: str
    ) -> Iterator[Completion]:
        lowered = prefix.lower()
        # Follow the case the user started typing in.
        upper = bool(prefix) and prefix.isupper()
        seen: List[str] = []
        for candidate in candidates:
            if not candidate.lower().startswith(lowered):
                continue
            text = candidate.upper() if upper else candidate.lower()
            if meta == "connection":
                text = candidate
            if text in seen:
                continue
            seen.append(text)
            yield Completion(text=text, start_position=-len(prefix), display_meta=meta)
