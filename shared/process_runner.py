"""
Shared subprocess runner for external engines (Remotion CLI, ffmpeg, ffprobe).

Children run with a scrubbed environment so service secrets are never
inherited by engines executing caller-supplied code.
"""
import asyncio
import os
import re
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

# Variables passed through to child processes; everything else is dropped.
PASSTHROUGH_ENV = (
    "PATH", "HOME", "LANG", "LC_ALL", "TMPDIR", "TEMP", "TMP",
    "SYSTEMROOT", "NODE_PATH", "NODE_OPTIONS", "NPM_CONFIG_CACHE",
    "PLAYWRIGHT_BROWSERS_PATH", "REMOTION_CHROME_EXECUTABLE",
)

OUTPUT_TAIL_LINES = 500

_LINE_SPLIT = re.compile(r"[\r\n]")


class ProcessTimeoutError(RuntimeError):
    """Raised when a child process exceeds its time budget and is killed."""


@dataclass
class ProcessResult:
    returncode: int
    stdout_lines: List[str]
    stderr_lines: List[str]

    @property
    def stdout(self) -> str:
        return "\n".join(self.stdout_lines)

    @property
    def stderr(self) -> str:
        return "\n".join(self.stderr_lines)

    def error_tail(self, lines: int = 20) -> str:
        """Last lines of stderr (or stdout when stderr is empty)."""
        source = self.stderr_lines or self.stdout_lines
        return "\n".join(source[-lines:]) or "Unknown error"


def scrubbed_env(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    env = {key: os.environ[key] for key in PASSTHROUGH_ENV if key in os.environ}
    env.setdefault("PATH", os.defpath)
    if extra:
        env.update(extra)
    return env


async def _pump(
    stream: asyncio.StreamReader,
    sink: deque,
    on_line: Optional[Callable[[str], None]],
) -> None:
    buffer = ""
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            break
        buffer += chunk.decode(errors="replace")
        *lines, buffer = _LINE_SPLIT.split(buffer)
        for line in lines:
            if line.strip():
                sink.append(line)
                if on_line:
                    on_line(line)
    if buffer.strip():
        sink.append(buffer)
        if on_line:
            on_line(buffer)


async def run_process(
    cmd: Sequence[str],
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
    env: Optional[Dict[str, str]] = None,
    on_stdout_line: Optional[Callable[[str], None]] = None,
) -> ProcessResult:
    """
    Run a command to completion, streaming its output.

    Args:
        cmd: Command and arguments
        cwd: Working directory
        timeout: Seconds before the process is killed
        env: Child environment (defaults to `scrubbed_env()`)
        on_stdout_line: Called for every stdout line as it arrives

    Returns:
        ProcessResult with exit code and the tail of stdout/stderr

    Raises:
        FileNotFoundError: If the executable does not exist
        ProcessTimeoutError: If the timeout elapsed
    """
    process = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env if env is not None else scrubbed_env(),
    )

    stdout_lines: deque = deque(maxlen=OUTPUT_TAIL_LINES)
    stderr_lines: deque = deque(maxlen=OUTPUT_TAIL_LINES)

    async def _communicate() -> int:
        await asyncio.gather(
            _pump(process.stdout, stdout_lines, on_stdout_line),
            _pump(process.stderr, stderr_lines, None),
        )
        return await process.wait()

    try:
        returncode = await asyncio.wait_for(_communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise ProcessTimeoutError(f"{cmd[0]} timed out after {timeout}s")
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise

    return ProcessResult(
        returncode=returncode,
        stdout_lines=list(stdout_lines),
        stderr_lines=list(stderr_lines),
    )
