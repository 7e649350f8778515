import pytest
from prompt_toolkit.history import FileHistory, InMemoryHistory

from dbsh.interactive.interpreter import Interpreter
from dbsh.interactive.main import build_history, repl_main


def fake_prompt(mocker, lines):
    """Replaces the prompt_toolkit session with one that replays `lines`."""
    session_cls = mocker.patch("dbsh.interactive.main.PromptSession")
    session = session_cls.return_value
    session.prompt_async = mocker.AsyncMock(side_effect=lines)
    return session


@pytest.mark.asyncio
async def test_repl_runs_statements_until_eof(interpreter: Interpreter, mocker):
    """Integration Test: Verifies the REPL greets, runs input and exits on Ctrl-D."""
    fake_prompt(mocker, ["echo hello;", EOFError()])

    status = await repl_main(interpreter)

    stdout = interpreter.state.output.stdout
    assert status == 0
    assert stdout.startswith("Welcome to dbsh v")
    assert "hello\n" in stdout


@pytest.mark.asyncio
async def test_repl_uses_continuation_prompt(interpreter: Interpreter, mocker):
    session = fake_prompt(mocker, ["echo", "done;", EOFError()])
    interpreter.state.options.set("prompt", "db> ")

    await repl_main(interpreter)

    prompts = [call.args[0] for call in session.prompt_async.await_args_list]
    assert prompts == ["db> ", "> ", "db> "]


@pytest.mark.asyncio
async def test_ctrl_c_drops_pending_statement(interpreter: Interpreter, mocker):
    fake_prompt(mocker, ["echo lost", KeyboardInterrupt(), "echo kept;", EOFError()])

    await repl_main(interpreter)

    stdout = interpreter.state.output.stdout
    assert "kept\n" in stdout
    assert "lost" not in stdout


@pytest.mark.asyncio
async def test_quit_ends_the_repl(interpreter: Interpreter, mocker):
    session = fake_prompt(mocker, ["quit;", "echo never;"])

    status = await repl_main(interpreter)

    assert status == 0
    assert session.prompt_async.await_count == 1
    assert interpreter.state.output.stdout.endswith("bye.\n")


@pytest.mark.asyncio
async def test_silent_repl_skips_banner(interpreter: Interpreter, mocker):
    fake_prompt(mocker, [EOFError()])
    interpreter.state.options.set("silent", True)

    await repl_main(interpreter)

    assert "Welcome" not in interpreter.state.output.stdout


def test_history_file_follows_options(state, tmp_path):
    assert isinstance(build_history(state), FileHistory)

    state.options.set("history", False)
    assert isinstance(build_history(state), InMemoryHistory)
