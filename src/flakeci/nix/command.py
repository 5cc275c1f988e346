# command.py
# Small, focused wrapper around external processes (nix, nix-store, ssh).
# Every process flakeci spawns goes through run_process(), so the rest of the
# codebase never calls asyncio.create_subprocess_exec directly.

from __future__ import annotations

import asyncio
import json
import sys
from collections import deque
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Deque, List, Optional, Sequence

from ..errors import CommandError
from ..ui.console import get_console

# Signature shared by run_process and the fakes used in tests:
#   runner(argv, *, cwd=None, capture_stdout=True) -> stdout bytes
Runner = Callable[..., Awaitable[bytes]]

STDERR_TAIL_LINES = 200
STDERR_CHUNK_SIZE = 64 * 1024

_NOISY_PREFIXES = (
    "warning: not writing modified lock file of flake",
)


async def _stderr_lines(stream: asyncio.StreamReader) -> AsyncIterator[bytes]:
    # Chunked reads: StreamReader.readline() gives up on lines over its
    # buffer limit and nix -L logs routinely produce those.
    pending = b""
    while True:
        chunk = await stream.read(STDERR_CHUNK_SIZE)
        if not chunk:
            break
        pending += chunk
        *lines, pending = pending.split(b"\n")
        for line in lines:
            yield line
    if pending:
        yield pending


async def _relay_stderr(stream: asyncio.StreamReader, verbose: bool, tail: Deque[str]) -> None:
    """
    Copy a child's stderr to ours, line by line, keeping a tail for errors.

    Outside verbose mode the `• Added input` blocks that --override-input
    produces are consumed (header line plus the following line).
    """
    swallow_next = False
    async for raw in _stderr_lines(stream):
        line = raw.decode("utf-8", errors="replace").rstrip("\r")
        tail.append(line)
        if not verbose:
            if swallow_next:
                swallow_next = False
                continue
            if line.startswith("• Added input"):
                swallow_next = True
                continue
            if line.startswith(_NOISY_PREFIXES):
                continue
        print(line, file=sys.stderr, flush=True)


async def run_process(
    argv: Sequence[str],
    *,
    cwd: Optional[str] = None,
    capture_stdout: bool = True,
    verbose: Optional[bool] = None,
) -> bytes:
    """
    Run a process to completion and return its stdout.

    stderr is relayed by a background task that is always joined before
    this returns. If the awaiting task is cancelled the child is killed.

    Args:
        argv: Program and arguments
        cwd: Optional working directory
        capture_stdout: Capture stdout (returned) or let it pass through
        verbose: Relay stderr unfiltered (defaults to the console setting)

    Returns:
        Captured stdout (empty when capture_stdout is False).

    Raises:
        CommandError: If the process cannot be started or exits non-zero
    """
    console = get_console()
    if verbose is None:
        verbose = console.verbose
    argv = [str(a) for a in argv]
    console.print_command(argv)

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE if capture_stdout else None,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CommandError(argv=argv, exit_code=None, stderr=str(e)) from e

    tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)
    relay = asyncio.create_task(_relay_stderr(proc.stderr, verbose, tail))
    try:
        stdout = await proc.stdout.read() if capture_stdout else b""
        exit_code = await proc.wait()
        await relay
    finally:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        if not relay.done():
            relay.cancel()

    if exit_code != 0:
        raise CommandError(argv=argv, exit_code=exit_code, stderr="\n".join(tail))
    return stdout


@dataclass
class NixCmd:
    """
    The `nix` command together with its global options.

    Tests swap `runner` for a fake; nothing else in flakeci spawns nix.
    """
    extra_experimental_features: List[str] = field(
        default_factory=lambda: ["nix-command", "flakes"]
    )
    extra_access_tokens: List[str] = field(default_factory=list)
    refresh: bool = False
    accept_flake_config: bool = False
    runner: Runner = field(default=run_process, repr=False, compare=False)

    program = "nix"

    def args(self) -> List[str]:
        args: List[str] = []
        if self.extra_experimental_features:
            args += ["--extra-experimental-features", " ".join(self.extra_experimental_features)]
        if self.extra_access_tokens:
            args += ["--extra-access-tokens", " ".join(self.extra_access_tokens)]
        if self.refresh:
            args.append("--refresh")
        if self.accept_flake_config:
            args.append("--accept-flake-config")
        return args

    def argv(self, *args: str) -> List[str]:
        return [self.program, *self.args(), *args]

    async def run(self, *args: str, cwd: Optional[str] = None) -> None:
        """Run nix, letting its stdout through to ours."""
        await self.runner(self.argv(*args), cwd=cwd, capture_stdout=False)

    async def output(self, *args: str, cwd: Optional[str] = None) -> bytes:
        return await self.runner(self.argv(*args), cwd=cwd)

    async def json(self, *args: str, cwd: Optional[str] = None) -> Any:
        """Run nix and parse its stdout as JSON."""
        return json.loads(await self.output(*args, cwd=cwd))
