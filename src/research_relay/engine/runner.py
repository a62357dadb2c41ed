"""Subprocess execution with streamed stdout and an optional hard timeout."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import os
import re
import shutil
from typing import Protocol

from research_relay.errors import sanitize_stderr
from research_relay.obs.tracing import Timer, command_preview
from research_relay.types import OutputCallback

logger = logging.getLogger(__name__)

_READ_SIZE = 4096
_VERSION_PATTERN = re.compile(r"(\d+\.\d+\.\d+)")


class CommandError(Exception):
    """Base class for subprocess failures."""

    def __init__(self, command: str, message: str) -> None:
        super().__init__(message)
        self.command = command


class CommandNotFoundError(CommandError):
    def __init__(self, command: str) -> None:
        super().__init__(command, f"Command not found: {command}")


class CommandFailedError(CommandError):
    def __init__(self, command: str, exit_code: int | None, stderr: str) -> None:
        self.exit_code = exit_code
        # Full text for classification; never logged or surfaced.
        self.raw_stderr = stderr or ""
        self.stderr = sanitize_stderr(stderr) if stderr else "Unknown error"
        super().__init__(command, f"Command failed with exit code {exit_code}: {self.stderr}")


class CommandTimeoutError(CommandError):
    def __init__(self, command: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(command, f"Command '{command}' timed out after {timeout:g}s")


class CommandRunner(Protocol):
    """Minimal process runner contract used by the orchestrator."""

    async def run(
        self,
        command: str,
        args: list[str],
        on_output: OutputCallback | None = None,
        *,
        timeout: float | None = None,
    ) -> str:
        """Run `command` and return its stdout, raising `CommandError` on failure."""


class ProcessRunner:
    """Spawns commands as argument vectors; no shell ever parses an argument."""

    async def run(
        self,
        command: str,
        args: list[str],
        on_output: OutputCallback | None = None,
        *,
        timeout: float | None = None,
    ) -> str:
        logger.debug("Executing: %s", command_preview(command, args))
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=os.environ.copy(),
            )
        except FileNotFoundError as exc:
            logger.error("Failed to spawn command '%s': not found", command)
            raise CommandNotFoundError(command) from exc
        except OSError as exc:
            logger.error("Failed to spawn command '%s': %s", command, exc)
            raise CommandFailedError(command, None, str(exc)) from exc

        if process.stdout is None or process.stderr is None:
            await _terminate(process, None)
            raise CommandFailedError(command, None, "subprocess pipes were not created")
        stderr_task = asyncio.ensure_future(process.stderr.read())
        pieces: list[str] = []

        async def _pump_stdout() -> int:
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            while True:
                data = await process.stdout.read(_READ_SIZE)
                text = decoder.decode(data, final=not data)
                if text:
                    pieces.append(text)
                    if on_output is not None:
                        on_output(text)
                if not data:
                    break
            return await process.wait()

        with Timer() as timer:
            try:
                exit_code = await asyncio.wait_for(_pump_stdout(), timeout)
            except asyncio.TimeoutError:
                await _terminate(process, stderr_task)
                logger.error("Command '%s' killed after %ss timeout", command, timeout)
                raise CommandTimeoutError(command, timeout or 0.0) from None
            except BaseException:
                await _terminate(process, stderr_task)
                raise
            stderr = (await stderr_task).decode("utf-8", errors="replace")

        stdout = "".join(pieces)
        logger.debug(
            "[%.1fs] Process finished with exit code: %s", timer.elapsed_ms / 1000.0, exit_code
        )
        if exit_code != 0:
            logger.error("Command failed with exit code %s", exit_code)
            raise CommandFailedError(command, exit_code, stderr)
        logger.debug("Response length: %d chars", len(stdout))
        return stdout.strip()


async def _terminate(process: asyncio.subprocess.Process, stderr_task: asyncio.Future[bytes] | None) -> None:
    """Kill the child if it is still running and reap it."""
    if process.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
    if stderr_task is not None:
        stderr_task.cancel()


def command_exists(command: str) -> bool:
    return shutil.which(command) is not None


async def command_version(runner: CommandRunner, command: str, timeout: float = 15.0) -> str | None:
    """Return the version reported by `command --version`, or None."""
    try:
        output = await runner.run(command, ["--version"], timeout=timeout)
    except CommandError:
        return None
    first_line = output.splitlines()[0] if output else ""
    match = _VERSION_PATTERN.search(first_line)
    return match.group(1) if match else (first_line.strip() or None)
