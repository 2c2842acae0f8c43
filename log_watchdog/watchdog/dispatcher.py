# log_watchdog/watchdog/dispatcher.py

"""
Run a watchdog's commands and capture their output
"""
import asyncio
import logging
import shlex
import time
from pathlib import Path
from typing import Dict, List, Optional, Any, Sequence, Tuple
from dataclasses import dataclass

from .errors import DispatchError

logger = logging.getLogger(__name__)

STDERR_EXCERPT = 200
READ_CHUNK = 64 * 1024


@dataclass(frozen=True)
class CommandSpec:
    """Program to execute with its arguments"""
    name: str
    args: Tuple[str, ...] = ()

    def argv(self) -> List[str]:
        return [self.name, *self.args]

    def __str__(self):
        return shlex.join(self.argv())


@dataclass
class DispatchResult:
    """Outcome of one command within a dispatch"""
    command: CommandSpec
    returncode: Optional[int] = None
    duration: float = 0.0
    error: Optional[DispatchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Dispatcher:
    """
    Runs commands one after another, appending stdout and stderr of each
    to the watchdog's output file
    """

    def __init__(self, name: str = "",
                 timeout: Optional[float] = None,
                 grace_period: float = 5.0):
        """
        Initialize dispatcher

        Args:
            name: Owning watchdog name, used in log output
            timeout: Seconds a single command may run (None for no limit)
            grace_period: Seconds between terminate and kill
        """
        self.name = name
        self.timeout = timeout
        self.grace_period = grace_period

        self.stats = {
            'dispatches': 0,
            'commands_run': 0,
            'errors': 0,
            'last_dispatch': None,
        }

    async def dispatch(self, commands: Sequence[CommandSpec],
                       output_file: Path) -> List[DispatchResult]:
        """
        Run every command in order

        A failing command does not stop the ones after it.

        Returns:
            One result per command, in invocation order
        """
        self.stats['dispatches'] += 1
        self.stats['last_dispatch'] = time.time()
        logger.info(f"[{self.name}] Dispatching {len(commands)} command(s)")

        results = []
        for command in commands:
            result = await self._run_command(command, Path(output_file))
            self.stats['commands_run'] += 1
            if result.error:
                self.stats['errors'] += 1
                logger.error(f"[{self.name}] {result.error}")
            else:
                logger.info(f"[{self.name}] {command} finished in {result.duration:.2f}s")
            results.append(result)

        return results

    async def _run_command(self, command: CommandSpec, output_file: Path) -> DispatchResult:
        started = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *command.argv(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            return DispatchResult(
                command=command,
                error=DispatchError(command.name, f"failed to start: {e}")
            )

        # Collected as it arrives so a timed-out command keeps what it printed
        stdout, stderr = bytearray(), bytearray()
        problems = []
        returncode = None
        try:
            await asyncio.wait_for(
                asyncio.gather(
                    self._collect(process.stdout, stdout),
                    self._collect(process.stderr, stderr),
                    process.wait()
                ),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            await self._terminate(process)
            problems.append(f"timed out after {self.timeout}s")
        except asyncio.CancelledError:
            logger.warning(f"[{self.name}] Dispatch cancelled, terminating {command}")
            await self._terminate(process)
            raise
        else:
            returncode = process.returncode
            if returncode != 0:
                excerpt = stderr.decode("utf-8", errors="replace").strip()[-STDERR_EXCERPT:]
                problems.append(f"exited with status {returncode}: {excerpt}")

        try:
            self._append_output(output_file, bytes(stdout), bytes(stderr))
        except OSError as e:
            problems.append(f"cannot write output to {output_file}: {e}")

        result = DispatchResult(
            command=command,
            returncode=process.returncode,
            duration=time.monotonic() - started,
        )
        if problems:
            result.error = DispatchError(
                command.name,
                "; ".join(problems),
                returncode=returncode if returncode else None
            )
        return result

    @staticmethod
    async def _collect(stream: asyncio.StreamReader, buffer: bytearray):
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                return
            buffer.extend(chunk)

    def _append_output(self, output_file: Path, stdout: bytes, stderr: bytes):
        output_file.parent.mkdir(parents=True, exist_ok=True)
        with open(output_file, "ab") as f:
            f.write(stdout)
            f.write(stderr)

    async def _terminate(self, process: asyncio.subprocess.Process):
        """Terminate a running command, killing it after the grace period"""
        if process.returncode is not None:
            return

        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=self.grace_period)
        except asyncio.TimeoutError:
            logger.warning(
                f"[{self.name}] Process {process.pid} ignored terminate for "
                f"{self.grace_period}s, killing"
            )
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            'timeout': self.timeout,
        }
