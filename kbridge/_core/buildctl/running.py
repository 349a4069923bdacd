"""
Invocation of the build/control utility as a subprocess.

The utility reports its failures via stderr: anything written there is
an error, regardless of the exit code (the exit code is not inspected at all).
Otherwise, its stdout is the result, returned exactly as printed.

The actual process spawning is hidden behind :class:`CommandExecutor`,
so that it can be replaced with a scripted fake (e.g. in tests),
or with a remote executor, or anything else that accepts a command line.
"""
import asyncio
from typing import Optional, Protocol, Tuple

from kbridge._cogs.configs import configuration
from kbridge._cogs.helpers import typedefs
from kbridge._core.buildctl import errors


class CommandExecutor(Protocol):
    async def __call__(self, command: str) -> Tuple[str, str]:
        """ Execute the command line fully, and return its ``(stdout, stderr)``. """
        ...


class ShellExecutor:
    """
    Execute the commands with the configured utility in a subshell.
    """

    def __init__(self, settings: Optional[configuration.BuildCtlSettings] = None) -> None:
        super().__init__()
        self.settings = settings if settings is not None else configuration.BuildCtlSettings()

    async def __call__(self, command: str) -> Tuple[str, str]:
        line = f'{self.settings.executable} {command}'
        process = await asyncio.create_subprocess_exec(
            self.settings.shell, '-c', line,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), self.settings.timeout)
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            timeout = self.settings.timeout or 0
            raise errors.ExternalToolTimeoutError(
                f"The utility did not exit in {timeout}s: {self.settings.executable}",
                timeout=timeout)
        # Lossy: the utility's output is not guaranteed to be valid UTF-8.
        return stdout.decode('utf-8', errors='replace'), stderr.decode('utf-8', errors='replace')


async def run_command(
        command: str,
        *,
        description: str,
        executor: CommandExecutor,
        logger: typedefs.Logger,
) -> str:
    logger.debug(f"{description} : {command}")
    stdout, stderr = await executor(command)
    logger.debug(f"buildctl output:\n{stdout}")
    if stderr:
        raise errors.ExternalToolError(stderr)
    return stdout
