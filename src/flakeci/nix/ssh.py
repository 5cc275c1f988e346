# ssh.py
# The remote-shell transport. Commands are joined into a single shell string
# for the remote side, and remote stderr is relayed to ours verbatim.

from __future__ import annotations

import shlex
from typing import Sequence

from .command import Runner, run_process


def ssh_argv(host: str, args: Sequence[str]) -> list[str]:
    return ["ssh", host, shlex.join(args)]


async def run_ssh(host: str, args: Sequence[str], runner: Runner = run_process) -> None:
    """Run a command on `host`; its stdout passes through to ours."""
    await runner(ssh_argv(host, args), capture_stdout=False, verbose=True)


async def run_ssh_with_output(host: str, args: Sequence[str], runner: Runner = run_process) -> str:
    """Run a command on `host` and return its stdout (stripped)."""
    out = await runner(ssh_argv(host, args), verbose=True)
    return out.decode("utf-8").strip()
