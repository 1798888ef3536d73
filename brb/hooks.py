"""
Hook command execution.

Start hooks run before the countdown begins and exit hooks run before the
process exits. Commands in a phase run one after another, in order; a
failing, missing or hanging command is logged and the phase carries on.
"""

import asyncio
import logging
import shlex
from dataclasses import dataclass
from typing import List, Optional, Sequence


@dataclass
class HookResult:
    """Outcome of a single hook command."""
    command: str
    returncode: Optional[int] = None
    timed_out: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and self.error is None


class HookRunner:
    """
    Runs ordered hook command lists.

    Commands are split with shell-like quoting and executed directly (no
    shell). Their standard streams are detached so they cannot draw over
    the terminal UI.

    Args:
        timeout: Seconds each command may run before it is killed.
    """

    def __init__(self, timeout: float = 10.0, logger: Optional[logging.Logger] = None):
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    async def run(self, phase: str, commands: Sequence[str]) -> List[HookResult]:
        """
        Run every command of a phase in list order.

        Args:
            phase: Phase name ('start' or 'exit'), used for logging.
            commands: Command strings.

        Returns:
            One HookResult per non-empty command, in execution order.
        """
        results = []
        if commands:
            self.logger.info("Running %d %s hook(s)", len(commands), phase)

        for command in commands:
            result = await self.run_command(command)
            if result is None:
                continue
            results.append(result)
            if result.ok:
                self.logger.info("%s hook succeeded: %s", phase, command)
            elif result.timed_out:
                self.logger.warning(
                    "%s hook timed out after %ss: %s", phase, self.timeout, command
                )
            elif result.error:
                self.logger.warning("%s hook failed to start: %s (%s)", phase, command, result.error)
            else:
                self.logger.warning(
                    "%s hook exited with %s: %s", phase, result.returncode, command
                )

        return results

    async def run_command(self, command: str) -> Optional[HookResult]:
        """
        Run one command and wait for it, bounded by the timeout.

        Returns:
            HookResult, or None for a blank command.
        """
        try:
            argv = shlex.split(command)
        except ValueError as e:
            return HookResult(command=command, error=f"cannot parse command: {e}")

        if not argv:
            return None

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            return HookResult(command=command, error=str(e))

        try:
            returncode = await asyncio.wait_for(process.wait(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await _kill(process)
            return HookResult(command=command, timed_out=True)
        except asyncio.CancelledError:
            await _kill(process)
            raise

        return HookResult(command=command, returncode=returncode)


async def read_command_output(command: str, timeout: float) -> str:
    """
    Run a command and return its standard output.

    Raises:
        OSError: If the command cannot be started
        ValueError: If the command string cannot be parsed or is empty
        asyncio.TimeoutError: If the command does not finish in time
    """
    argv = shlex.split(command)
    if not argv:
        raise ValueError('empty command')

    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
    )
    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except (asyncio.TimeoutError, asyncio.CancelledError):
        # Cancelled on shutdown: the child must not outlive the run
        await _kill(process)
        raise

    return stdout.decode('utf-8', errors='replace')


async def _kill(process) -> None:
    """Kill a process that overran its timeout or was cancelled, and reap it."""
    try:
        process.kill()
    except ProcessLookupError:
        pass
    await process.wait()
