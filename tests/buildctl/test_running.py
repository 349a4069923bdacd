import asyncio
import os

import pytest

from kbridge._cogs.configs.configuration import BuildCtlSettings
from kbridge._core.buildctl.errors import ExternalToolError, ExternalToolTimeoutError
from kbridge._core.buildctl.running import ShellExecutor, run_command


async def test_stdout_is_returned_as_is(executor, logger):
    executor.reply(('  some output\n\n', ''))
    result = await run_command('get --appName app1', description="Doing...",
                               executor=executor, logger=logger)
    assert result == '  some output\n\n'
    assert executor.commands == ['get --appName app1']


async def test_empty_stdout_is_a_valid_result(executor, logger):
    executor.reply(('', ''))
    result = await run_command('update --appName app1', description="Doing...",
                               executor=executor, logger=logger)
    assert result == ''


@pytest.mark.parametrize('stdout', ['', 'partial output'])
async def test_any_stderr_is_an_error(executor, logger, stdout):
    executor.reply((stdout, 'something went wrong\n'))
    with pytest.raises(ExternalToolError) as err:
        await run_command('get --appName app1', description="Doing...",
                          executor=executor, logger=logger)
    assert err.value.stderr == 'something went wrong\n'


async def test_executor_errors_are_escalated_as_is(executor, logger):
    executor.reply(OSError("no such shell"))
    with pytest.raises(OSError, match="no such shell"):
        await run_command('get --appName app1', description="Doing...",
                          executor=executor, logger=logger)


async def test_command_and_output_are_logged(executor, logger, assert_logs):
    executor.reply(('the-output', ''))
    await run_command('get --appName app1', description="Retrieving framework info...",
                      executor=executor, logger=logger)
    assert_logs([
        r"Retrieving framework info\.\.\. : get --appName app1",
        r"buildctl output:\nthe-output",
    ])


#
# The real subprocesses, but with the harmless shell utilities instead of buildctl.
#

async def test_shell_executor_prepends_the_executable():
    executor = ShellExecutor(BuildCtlSettings(executable='echo', shell='/bin/sh'))
    stdout, stderr = await executor("get --appName 'my app'")
    assert stdout == 'get --appName my app\n'
    assert stderr == ''


async def test_shell_executor_captures_stderr_regardless_of_exit_code():
    executor = ShellExecutor(BuildCtlSettings(executable='echo oops >&2; true', shell='/bin/sh'))
    stdout, stderr = await executor('get --appName app1')
    assert stdout == ''
    assert stderr == 'oops\n'


async def test_shell_executor_ignores_the_exit_code():
    executor = ShellExecutor(BuildCtlSettings(executable='exit 3 #', shell='/bin/sh'))
    stdout, stderr = await executor('get --appName app1')
    assert stdout == ''
    assert stderr == ''


async def test_shell_executor_kills_the_utility_on_timeout():
    executor = ShellExecutor(BuildCtlSettings(executable='exec sleep 10 #', shell='/bin/sh',
                                              timeout=0.1))
    with pytest.raises(ExternalToolTimeoutError) as err:
        await executor('get --appName app1')
    assert err.value.timeout == 0.1
    assert isinstance(err.value, ExternalToolError)


async def test_shell_executor_with_default_settings():
    executor = ShellExecutor()
    assert executor.settings.executable == 'buildctl'
    assert executor.settings.shell == '/bin/bash'
    assert executor.settings.timeout is None


async def test_shell_executor_tolerates_undecodable_stdout():
    executor = ShellExecutor(BuildCtlSettings(executable="printf 'ok\\377'; true", shell='/bin/sh'))
    stdout, stderr = await executor('get --appName app1')
    assert stdout == 'ok\ufffd'
    assert stderr == ''


async def test_undecodable_stderr_is_still_an_error(logger):
    executor = ShellExecutor(BuildCtlSettings(executable="printf '\\377\\376 fail' >&2; true",
                                              shell='/bin/sh'))
    with pytest.raises(ExternalToolError) as err:
        await run_command('get --appName app1', description="Doing...",
                          executor=executor, logger=logger)
    assert err.value.stderr == '\ufffd\ufffd fail'


async def test_shell_executor_kills_the_utility_when_cancelled(tmp_path):
    pidfile = tmp_path / 'pid'
    executor = ShellExecutor(BuildCtlSettings(executable=f'echo $$ > {pidfile}; exec sleep 10 #',
                                              shell='/bin/sh'))
    task = asyncio.create_task(executor('get --appName app1'))
    for _ in range(100):
        if pidfile.exists() and pidfile.read_text().strip():
            break
        await asyncio.sleep(0.05)
    pid = int(pidfile.read_text())

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)
