# build.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List

from ..config.subflake import SubflakeConfig
from ..model import BuildStepResult
from ..nix.devour_flake import DevourFlakeInput, devour_flake, transform_override_inputs
from ..nix.flake import override_input_args
from ..nix.store import NixStoreCmd
from ..ui.console import get_console

if TYPE_CHECKING:
    from .core import StepContext


@dataclass(frozen=True)
class BuildStepArgs:
    """CLI arguments for the build step."""
    # Put the full closure of the out paths into the results as well
    include_all_dependencies: bool = False
    # Passed through to `nix build` (after `--` on the command line)
    extra_args: List[str] = field(default_factory=list)

    def to_cli_args(self) -> List[str]:
        args: List[str] = []
        if self.include_all_dependencies:
            args.append("--include-all-dependencies")
        return args


def subflake_extra_args(subflake: SubflakeConfig, build_args: BuildStepArgs) -> List[str]:
    """Extra args for devour-flake: the subflake's overrides, then pass-through args."""
    args = override_input_args(subflake.override_inputs, prefix="flake/")
    args += transform_override_inputs(build_args.extra_args)
    return args


async def run_build_step(ctx: StepContext) -> BuildStepResult:
    """Build all outputs of the subflake."""
    console = get_console()
    console.print_step("build", f"building subflake {ctx.subflake.dir}")

    output = await devour_flake(
        ctx.nixcmd,
        DevourFlakeInput(
            flake=ctx.subflake_url,
            systems=ctx.systems_ref.url if ctx.systems_ref is not None else None,
        ),
        subflake_extra_args(ctx.subflake, ctx.build_args),
    )

    all_deps = None
    if ctx.build_args.include_all_dependencies:
        all_deps = await NixStoreCmd(runner=ctx.nixcmd.runner).fetch_all_deps(output.out_paths)

    console.print_out_paths([str(p) for p in output.out_paths])
    return BuildStepResult(out_paths=output.out_paths, by_name=output.by_name, all_deps=all_deps)
