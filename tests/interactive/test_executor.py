import pytest
from unittest.mock import AsyncMock

from dbsh.engine.service import ResultSet
from dbsh.errors import ConnectivityError, FatalShellError
from dbsh.interactive.commands import CommandDescriptor, CommandTable
from dbsh.interactive.executor import CommandExecutor
from dbsh.interactive.result import FatalError, Ok, RecoverableError, Terminate
from dbsh.interactive.session import SessionState
from dbsh.interactive.tokenizer import Tokenizer


def parse(state: SessionState, text: str):
    return Tokenizer(state.environ).tokenize(text, final=True)


async def run(executor: CommandExecutor, text: str):
    return await executor.execute(parse(executor.state, text))


@pytest.mark.asyncio
async def test_unknown_command_is_recoverable(executor: CommandExecutor):
    """Unit Test: Verifies an unknown command reports the help hint."""
    outcome = await run(executor, "bogus 1 2;")

    assert isinstance(outcome, RecoverableError)
    stderr = executor.state.output.stderr
    assert "dbsh: bogus: unknown command." in stderr
    assert "dbsh: try `help;' for more information." in stderr


@pytest.mark.asyncio
async def test_arity_is_enforced(state: SessionState):
    """Unit Test: Verifies min/max arity with a two-argument command."""
    table = CommandTable(
        [CommandDescriptor(name="NAME", min_args=2, max_args=2, handler="echo")]
    )
    executor = CommandExecutor(state, commands=table)

    too_few = await run(executor, "NAME;")
    too_many = await run(executor, "NAME a b c;")
    exact = await run(executor, "NAME a b;")

    assert isinstance(too_few, RecoverableError)
    assert isinstance(too_many, RecoverableError)
    assert isinstance(exact, Ok)
    stderr = state.output.stderr
    assert "NAME: missing required arguments" in stderr
    assert "NAME: unknown arguments" in stderr
    assert "try `help NAME;' for more information." in stderr


@pytest.mark.asyncio
async def test_lookup_ignores_case(executor: CommandExecutor):
    outcome = await run(executor, "EcHo hello;")

    assert isinstance(outcome, Ok)
    assert executor.state.output.stdout == "hello\n"


@pytest.mark.asyncio
async def test_echo_prints_one_argument_per_line(executor: CommandExecutor):
    await run(executor, "echo 'a b' c;")
    await run(executor, "echo;")

    assert executor.state.output.stdout == "a b\nc\n\n"


@pytest.mark.asyncio
async def test_set_prompt_then_show_it(executor: CommandExecutor):
    """Unit Test: Verifies `SET prompt` sets the option and a bare `SET prompt` only shows it."""
    first = await run(executor, 'SET prompt "db> ";')
    second = await run(executor, "SET prompt;")

    assert isinstance(first, Ok)
    assert isinstance(second, Ok)
    assert executor.state.prompt == "db> "
    assert executor.state.output.stdout == f'{"prompt":<15} "db> "\n'


@pytest.mark.asyncio
async def test_set_lists_options_and_descriptions(executor: CommandExecutor):
    await run(executor, "set;")
    await run(executor, "set help maxcols;")

    stdout = executor.state.output.stdout
    assert stdout.startswith("Shell Parameters:\n")
    assert f'{"continue":<15} no' in stdout
    assert f'{"maxcols":<15} maximum number of columns' in stdout


@pytest.mark.asyncio
async def test_set_unknown_option_names_the_command(executor: CommandExecutor):
    outcome = await run(executor, "set nosuch 1;")

    assert isinstance(outcome, RecoverableError)
    assert "dbsh: SET: nosuch: unknown option" in executor.state.output.stderr


@pytest.mark.asyncio
async def test_unset_restores_default(executor: CommandExecutor):
    await run(executor, "set maxcols 10;")
    await run(executor, "unset maxcols;")

    assert executor.state.options.get("maxcols") == 256


@pytest.mark.asyncio
async def test_assignment_is_dispatched_to_setenv(executor: CommandExecutor):
    """Unit Test: Verifies `NAME = value` sets an environment variable."""
    outcome = await run(executor, "GREETING = 'hello there';")

    assert isinstance(outcome, Ok)
    assert executor.state.environ["GREETING"] == "hello there"

    await run(executor, "setenv TARGET world;")
    await run(executor, "echo ${GREETING} ${TARGET};")
    assert executor.state.output.stdout == "hello there\nworld\n"


@pytest.mark.asyncio
async def test_setenv_rejects_invalid_names(executor: CommandExecutor):
    outcome = await run(executor, "setenv 'bad-name' x;")

    assert isinstance(outcome, RecoverableError)
    assert "invalid variable name" in executor.state.output.stderr
    assert "bad-name" not in executor.state.environ


@pytest.mark.asyncio
async def test_setenv_shows_and_unsetenv_removes(executor: CommandExecutor):
    await run(executor, "setenv FOO;")
    await run(executor, "unsetenv FOO;")

    assert executor.state.output.stdout == f"   {'FOO':<20} bar\n"
    assert "FOO" not in executor.state.environ


@pytest.mark.asyncio
async def test_help_lists_topics_five_per_row(executor: CommandExecutor):
    await run(executor, "help;")

    lines = executor.state.output.stdout.splitlines()
    assert lines[1] == "Topics:"
    expected = "   " + "".join(
        f"{name:<12}" for name in ["ALTER", "BEGIN", "CLEAR", "CLOSE", "COMMIT"]
    )
    assert lines[2].rstrip() == expected.rstrip()


@pytest.mark.asyncio
async def test_help_topic_shows_description_and_usage(executor: CommandExecutor):
    await run(executor, "help show;")

    stdout = executor.state.output.stdout
    assert "SHOW Description:\n   shows database information\n" in stdout
    assert "   dbsh> show tables;" in stdout


@pytest.mark.asyncio
async def test_help_unknown_topic_is_an_error(executor: CommandExecutor):
    outcome = await run(executor, "help nosuch;")

    assert isinstance(outcome, RecoverableError)
    assert 'HELP topic "nosuch" unknown.' in executor.state.output.stderr


@pytest.mark.asyncio
async def test_sql_requires_a_connection(executor: CommandExecutor):
    outcome = await run(executor, "select 1;")

    assert isinstance(outcome, RecoverableError)
    assert "dbsh: SELECT: not connected to a database" in executor.state.output.stderr


@pytest.mark.asyncio
async def test_sql_sends_raw_statement_text(executor: CommandExecutor, mocker):
    """Unit Test: Verifies SQL is passed through exactly as typed, without substitution."""
    state = executor.state
    mocker.patch.object(type(state), "current", new_callable=mocker.PropertyMock)
    state.service.execute = AsyncMock(return_value=ResultSet(rowcount=2))

    await run(executor, "UPDATE t SET a = '${FOO}' WHERE b = 1;")
    await run(executor, "send  vacuum  full;")

    sent = [call.args[0] for call in state.service.execute.await_args_list]
    assert sent == ["UPDATE t SET a = '${FOO}' WHERE b = 1", "vacuum  full"]
    assert "Statement executed. 2 rows affected." in state.output.stdout


@pytest.mark.asyncio
async def test_handler_errors_are_recoverable(executor: CommandExecutor):
    executor.state.service.show = AsyncMock(side_effect=ConnectivityError("boom"))

    outcome = await run(executor, "show tables;")

    assert isinstance(outcome, RecoverableError)
    assert "dbsh: SHOW: boom" in executor.state.output.stderr
    assert executor.state.active_command is None


@pytest.mark.asyncio
async def test_fatal_and_memory_errors_stop(executor: CommandExecutor):
    executor.state.service.show = AsyncMock(side_effect=FatalShellError("disk gone"))
    fatal = await run(executor, "show tables;")

    executor.state.service.show = AsyncMock(side_effect=MemoryError())
    memory = await run(executor, "show tables;")

    assert isinstance(fatal, FatalError)
    assert isinstance(memory, FatalError)
    assert "out of virtual memory" in executor.state.output.stderr


@pytest.mark.asyncio
async def test_unexpected_exceptions_are_recoverable(executor: CommandExecutor):
    executor.state.service.show = AsyncMock(side_effect=RuntimeError("surprise"))

    outcome = await run(executor, "show tables;")

    assert isinstance(outcome, RecoverableError)
    assert executor.state.active_command is None


@pytest.mark.asyncio
async def test_unexpected_exception_traceback_is_debug_only(executor: CommandExecutor, mocker):
    """Unit Test: Verifies an unexpected handler error prints one line and logs its traceback at debug level."""
    logger = mocker.patch("dbsh.interactive.executor.logger")
    log = logger.bind.return_value
    executor.state.service.show = AsyncMock(side_effect=RuntimeError("surprise"))

    await run(executor, "show tables;")

    assert executor.state.output.stderr == "dbsh: SHOW: surprise\n"
    log.debug.assert_any_call("executor.execute.failed", error="surprise", exc_info=True)
    log.error.assert_not_called()
    log.warning.assert_not_called()


@pytest.mark.asyncio
async def test_quit_closes_connections_and_terminates(executor: CommandExecutor):
    state = executor.state
    state.service.close_all = AsyncMock(return_value=[])

    outcome = await run(executor, "quit;")

    assert outcome == Terminate(0)
    assert state.output.stdout.endswith("bye.\n")
    assert state.is_running is False
    state.service.close_all.assert_awaited_once()


@pytest.mark.asyncio
async def test_silent_hides_messages_but_not_results(executor: CommandExecutor):
    executor.state.service.close_all = AsyncMock(return_value=[])
    await run(executor, "set silent yes;")

    await run(executor, "bogus;")
    await run(executor, "echo visible;")
    await run(executor, "quit;")

    assert executor.state.output.stderr == ""
    assert executor.state.output.stdout == "visible\n"


@pytest.mark.asyncio
async def test_open_redirects_results_and_close_restores(executor: CommandExecutor, tmp_path):
    target = tmp_path / "out.csv"
    output = executor.state.output

    await run(executor, f"open '{target}';")
    output.render_result(ResultSet(columns=["a"], rows=[(1,)]))
    await run(executor, "open;")
    await run(executor, "close;")
    await run(executor, "open;")

    assert target.read_text(encoding="utf-8") == '"a"\n"1"\n'
    assert f'writing output to "{target}"' in output.stdout
    assert output.stdout.endswith("not writing output to a file\n")


@pytest.mark.asyncio
async def test_version_reports_program_and_sqlalchemy(executor: CommandExecutor):
    await run(executor, "version;")

    stdout = executor.state.output.stdout
    assert stdout.startswith("dbsh (Database Shell) ")
    assert "SQLAlchemy: " in stdout


@pytest.mark.asyncio
async def test_reset_restores_options(executor: CommandExecutor):
    executor.state.service.close_all = AsyncMock(return_value=[])
    await run(executor, "set format xml;")

    await run(executor, "reset;")

    assert executor.state.options.get("format") == "csv"


@pytest.mark.asyncio
async def test_maxcols_zero_shows_every_column(executor: CommandExecutor):
    output = executor.state.output
    wide = ResultSet(columns=["a", "b", "c"], rows=[(1, 2, 3)])

    await run(executor, "set maxcols 2;")
    output.render_result(wide)
    await run(executor, "set maxcols 0;")
    output.render_result(wide)

    assert output.stdout == '"a","b"\n"1","2"\n"a","b","c"\n"1","2","3"\n'
    assert output.stderr == "dbsh: NOTE: Resultset truncated to 2 columns.\n"
