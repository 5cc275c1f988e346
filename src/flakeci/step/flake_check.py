from __future__ import annotations

from typing import TYPE_CHECKING

from ..nix import flake
from ..ui.console import get_console

if TYPE_CHECKING:
    from .core import StepContext


async def run_flake_check_step(ctx: StepContext) -> None:
    """
    Run `nix flake check` on the subflake.

    `nix build` does not evaluate everything `nix flake check` does, so this
    catches evaluation errors in checks that building alone would miss.
    """
    get_console().print_step("flake-check", f"running flake check on {ctx.subflake.dir}")
    await flake.check(ctx.nixcmd, ctx.subflake_url, ctx.subflake.override_inputs)
