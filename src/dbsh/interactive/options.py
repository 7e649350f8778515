from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from ..errors import UsageError

DEFAULT_PROMPT = "dbsh> "
HISTORY_FILENAME = ".dbsh_history"

_TRUE_WORDS = ("true", "yes", "on", "1")
_FALSE_WORDS = ("false", "no", "off", "0")


class OptionKind(str, Enum):
    BOOL = "bool"
    INT = "int"
    TEXT = "text"
    CHOICE = "choice"


class OptionSpec(BaseModel):
    """Static description of one shell option."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: OptionKind
    description: str
    default: Any = None
    choices: Tuple[str, ...] = ()
    # Computes the default from the environment at reset time.
    default_factory: Optional[Callable[[Mapping[str, str]], Any]] = None


def parse_bool(value: str) -> bool:
    """Parses the boolean words accepted by `set`, case-insensitively."""
    word = value.strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise UsageError(f'invalid boolean value "{value}" (use yes/no, on/off, true/false or 1/0)')


def _default_histfile(environ: Mapping[str, str]) -> Optional[str]:
    home = environ.get("HOME")
    if not home:
        return None
    return f"{home}/{HISTORY_FILENAME}"


OPTION_SPECS: List[OptionSpec] = [
    OptionSpec(
        name="conffile",
        kind=OptionKind.TEXT,
        description="configuration file used to set initial settings",
    ),
    OptionSpec(
        name="continue",
        kind=OptionKind.BOOL,
        description="continue if non-fatal errors are encountered",
        default=False,
    ),
    OptionSpec(
        name="format",
        kind=OptionKind.CHOICE,
        description="output format of results (csv, fixed, xml)",
        default="csv",
        choices=("csv", "fixed", "xml"),
    ),
    OptionSpec(
        name="histfile",
        kind=OptionKind.TEXT,
        description="file used for saving command history",
        default_factory=_default_histfile,
    ),
    OptionSpec(
        name="history",
        kind=OptionKind.BOOL,
        description="enable history file",
        default=True,
    ),
    OptionSpec(
        name="maxcols",
        kind=OptionKind.INT,
        description="maximum number of columns displayed per result set (0 for no limit)",
        default=256,
    ),
    OptionSpec(
        name="prompt",
        kind=OptionKind.TEXT,
        description="prompt used within the shell",
        default=DEFAULT_PROMPT,
    ),
    OptionSpec(
        name="silent",
        kind=OptionKind.BOOL,
        description="do not display non-fatal messages",
        default=False,
    ),
    OptionSpec(
        name="verbose",
        kind=OptionKind.BOOL,
        description="display verbose messages",
        default=False,
    ),
]


class ShellOptions:
    """
    Typed store for the shell's configuration options.

    Every option has a kind which drives coercion of the text typed by the
    user. Setting an option to None restores its default.
    """

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        specs: List[OptionSpec] = OPTION_SPECS,
    ):
        self.environ = environ if environ is not None else {}
        self.specs: Dict[str, OptionSpec] = {spec.name: spec for spec in specs}
        self._values: Dict[str, Any] = {}
        self.reset()

    def __iter__(self):
        return iter(self.specs.values())

    def lookup(self, name: str) -> OptionSpec:
        spec = self.specs.get(name.lower())
        if spec is None:
            raise UsageError(f"{name}: unknown option")
        return spec

    def get(self, name: str) -> Any:
        return self._values[self.lookup(name).name]

    def set(self, name: str, value: Any) -> None:
        spec = self.lookup(name)
        if value is None:
            self._values[spec.name] = self._default(spec)
            return
        self._values[spec.name] = self._coerce(spec, value)

    def reset(self) -> None:
        for spec in self.specs.values():
            self._values[spec.name] = self._default(spec)

    def show(self, name: str) -> str:
        """Formats an option and its value as one line of `set` output."""
        spec = self.lookup(name)
        value = self._values[spec.name]
        if spec.kind == OptionKind.BOOL:
            text = "yes" if value else "no"
        elif spec.kind == OptionKind.TEXT:
            text = f'"{value if value is not None else ""}"'
        else:
            text = str(value)
        return f"{spec.name:<15} {text}"

    def _default(self, spec: OptionSpec) -> Any:
        if spec.default_factory is not None:
            return spec.default_factory(self.environ)
        return spec.default

    @staticmethod
    def _coerce(spec: OptionSpec, value: Any) -> Any:
        if spec.kind == OptionKind.BOOL:
            return value if isinstance(value, bool) else parse_bool(str(value))
        if spec.kind == OptionKind.INT:
            if isinstance(value, int):
                return value
            try:
                return int(str(value), 0)
            except ValueError:
                raise UsageError(f'invalid integer value "{value}" for option "{spec.name}"')
        if spec.kind == OptionKind.CHOICE:
            choice = str(value).lower()
            if choice not in spec.choices:
                raise UsageError(f'invalid value for option "{spec.name}"')
            return choice
        return str(value)
