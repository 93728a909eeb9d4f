from __future__ import annotations
import asyncio
import logging
import shlex
from typing import Awaitable, Callable, Optional

from jnihost.api.models.task_models import ProcessInvocation

log = logging.getLogger("jnihost.exec")

LogCallback = Callable[[str, str], Awaitable[None]]
Executor = Callable[[ProcessInvocation, LogCallback, Optional[asyncio.Event]], Awaitable[int]]

# Exit status reported when the program cannot be spawned (shell convention)
SPAWN_FAILED = 127
CANCELLED = -1

READ_CHUNK = 64 * 1024
# Longer unterminated output is flushed to the log in pieces of this size
MAX_LINE = 1024 * 1024


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    proc.terminate()
    try:
        await asyncio.wait_for(proc.wait(), timeout=10)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()


async def run_and_stream(invocation: ProcessInvocation, log_cb: LogCallback, cancel_event: Optional[asyncio.Event] = None) -> int:
    """Run one child to completion and return its exit status.

    stdout/stderr are forwarded line by line to log_cb. The status is not
    interpreted here; the caller decides what counts as failure.
    """
    cmd = invocation.argv
    await log_cb("debug", f"Running: {' '.join(shlex.quote(c) for c in cmd)} (cwd={invocation.working_dir})")
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=invocation.working_dir,
            env=invocation.merged_env(),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        await log_cb("error", f"Command not found: {cmd[0]}")
        return SPAWN_FAILED
    except PermissionError:
        await log_cb("error", f"Command not executable: {cmd[0]}")
        return SPAWN_FAILED

    async def emit(raw: bytes, level: str):
        text = raw.decode(errors='ignore').rstrip()
        # cmake and compilers print warnings on stderr
        derived = level
        if level == "error" and "warning" in text.lower():
            derived = "warn"
        await log_cb(derived, text)

    async def reader(stream, level):
        # Lines may exceed the StreamReader limit; split them here
        pending = b""
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                break
            pending += chunk
            *lines, pending = pending.split(b"\n")
            for line in lines:
                await emit(line, level)
            if len(pending) > MAX_LINE:
                await emit(pending, level)
                pending = b""
        if pending:
            await emit(pending, level)

    readers = [asyncio.create_task(reader(proc.stdout, "info")), asyncio.create_task(reader(proc.stderr, "error"))]
    try:
        while True:
            if cancel_event is not None and cancel_event.is_set():
                await log_cb("warn", f"Task cancelled; terminating {cmd[0]}")
                await _terminate(proc)
                return CANCELLED
            try:
                code = await asyncio.wait_for(proc.wait(), timeout=1)
                break
            except asyncio.TimeoutError:
                pass
        # Drain whatever is still buffered in the pipes
        await asyncio.gather(*readers, return_exceptions=True)
        log.debug(f"{cmd[0]} exited with {code}")
        return code
    except asyncio.CancelledError:
        await _terminate(proc)
        raise
    finally:
        for t in readers:
            t.cancel()
