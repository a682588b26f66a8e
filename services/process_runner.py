"""
Async runner for external tools (yt-dlp, ffmpeg).

Output is logged as it arrives and only a bounded tail is kept in memory,
so long transcodes cannot grow the process without limit.
"""

import os
import re
import shlex
import signal
import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Sequence

from services.errors import ProcessError, ProcessTimeoutError

logger = logging.getLogger(__name__)

OUTPUT_TAIL_LINES = 50
READ_CHUNK_SIZE = 4096

_LINE_SPLIT = re.compile(r'[\r\n]+')


@dataclass
class ProcessResult:
    returncode: int
    stdout_tail: List[str] = field(default_factory=list)
    stderr_tail: List[str] = field(default_factory=list)


async def _drain(stream: asyncio.StreamReader, tail: Deque[str], label: str, channel: str) -> None:
    """Read a pipe until EOF, logging each line and keeping the last few."""
    pending = ''
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        pending += chunk.decode(errors='replace')
        # ffmpeg separates progress updates with bare carriage returns
        *lines, pending = _LINE_SPLIT.split(pending)
        for line in lines:
            line = line.strip()
            if line:
                tail.append(line)
                logger.debug(f"{label} {channel}: {line}")
    pending = pending.strip()
    if pending:
        tail.append(pending)
        logger.debug(f"{label} {channel}: {pending}")


def _kill_group(process) -> None:
    """SIGKILL the child and anything it spawned (ffmpeg under yt-dlp)."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


async def _stop_readers(readers: Sequence[asyncio.Future]) -> None:
    for reader in readers:
        reader.cancel()
    await asyncio.gather(*readers, return_exceptions=True)


async def run_process(
    binary: str,
    args: Sequence[str],
    timeout: Optional[float] = None,
    label: Optional[str] = None,
) -> ProcessResult:
    """
    Run ``binary`` with ``args`` and wait for it to exit.

    Raises:
        ProcessError: the binary could not be started, exited non-zero or was
            killed by a signal.
        ProcessTimeoutError: ``timeout`` seconds passed; the child was killed
            and reaped before raising.
    """
    label = label or os.path.basename(binary)
    command = [binary, *args]
    logger.info(f"Running {label}: {' '.join(shlex.quote(part) for part in command)}")

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        logger.error(f"Failed to start {label}: {e}")
        raise ProcessError(f"Failed to start {label}: {e}")

    stdout_tail: Deque[str] = deque(maxlen=OUTPUT_TAIL_LINES)
    stderr_tail: Deque[str] = deque(maxlen=OUTPUT_TAIL_LINES)
    readers = [
        asyncio.ensure_future(_drain(process.stdout, stdout_tail, label, 'stdout')),
        asyncio.ensure_future(_drain(process.stderr, stderr_tail, label, 'stderr')),
    ]

    try:
        await asyncio.wait_for(process.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{label} exceeded {timeout}s, killing pid {process.pid}")
        _kill_group(process)
        await process.wait()
        await _stop_readers(readers)
        raise ProcessTimeoutError(
            f"{label} timed out after {timeout:g}s",
            timeout=timeout,
            returncode=process.returncode,
            stderr_tail=list(stderr_tail),
        )
    except asyncio.CancelledError:
        if process.returncode is None:
            _kill_group(process)
            await process.wait()
        await _stop_readers(readers)
        raise

    # Grandchildren may keep the pipes open after the child exits
    done, pending = await asyncio.wait(readers, timeout=5)
    if pending:
        await _stop_readers(list(pending))

    returncode = process.returncode
    if returncode != 0:
        if returncode < 0:
            message = f"{label} was killed by signal {-returncode}"
        else:
            message = f"{label} exited with code {returncode}"
        logger.error(f"{message}. Stderr tail: {' | '.join(list(stderr_tail)[-5:])}")
        raise ProcessError(message, returncode=returncode, stderr_tail=list(stderr_tail))

    return ProcessResult(
        returncode=returncode,
        stdout_tail=list(stdout_tail),
        stderr_tail=list(stderr_tail),
    )
