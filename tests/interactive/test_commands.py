import pytest
from pydantic import ValidationError

from dbsh.interactive.commands import COMMANDS, UNBOUNDED, CommandDescriptor, CommandTable


def test_duplicate_names_are_rejected():
    """Unit Test: Verifies a table cannot register the same name twice."""
    with pytest.raises(ValueError, match="already registered"):
        CommandTable(
            [
                CommandDescriptor(name="ECHO", min_args=0, max_args=1, handler="echo"),
                CommandDescriptor(name="echo", min_args=0, max_args=3, handler="echo"),
            ]
        )


def test_lookup_is_case_insensitive():
    assert COMMANDS.lookup("select").name == "SELECT"
    assert COMMANDS.lookup("Connect").name == "CONNECT"
    assert COMMANDS.lookup("nosuch") is None


def test_aliases_share_a_handler():
    handlers = {COMMANDS.lookup(name).handler for name in ("quit", "exit", "logout")}

    assert handlers == {"quit"}


def test_table_keeps_registration_order():
    names = COMMANDS.names()

    assert names == sorted(names)
    assert len(names) == len(COMMANDS)


def test_accepts_checks_both_bounds():
    descriptor = CommandDescriptor(name="NAME", min_args=2, max_args=2, handler="echo")

    assert not descriptor.accepts(0)
    assert descriptor.accepts(2)
    assert not descriptor.accepts(3)


def test_unbounded_descriptor_has_no_upper_limit():
    descriptor = COMMANDS.lookup("ECHO")

    assert descriptor.max_args == UNBOUNDED
    assert descriptor.accepts(0)
    assert descriptor.accepts(100)


def test_descriptors_are_immutable():
    with pytest.raises(ValidationError):
        COMMANDS.lookup("ECHO").min_args = 3
