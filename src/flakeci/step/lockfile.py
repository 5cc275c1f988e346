from __future__ import annotations

from typing import TYPE_CHECKING

from ..nix.flake import lock_check
from ..ui.console import get_console

if TYPE_CHECKING:
    from .core import StepContext


async def run_lockfile_step(ctx: StepContext) -> None:
    """Check that `flake.lock` of the subflake is not out of date."""
    get_console().print_step("lockfile", f"checking {ctx.subflake.dir}/flake.lock is up-to-date")
    await lock_check(ctx.nixcmd, ctx.subflake_url)
