# core.py
# The per-subflake step pipeline. Order is fixed:
#   lockfile -> flake-check -> build -> custom steps (declaration order)
# The first failing step stops the subflake; later steps do not run.

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from ..config.subflake import CustomStep, SubflakeConfig
from ..errors import StepFailure
from ..model import BuildStepResult, StepsResult
from ..nix.command import NixCmd
from ..nix.system_list import SystemsListFlakeRef
from ..nix.url import FlakeUrl
from ..ui.console import get_console
from .build import BuildStepArgs, run_build_step
from .custom import run_custom_step
from .flake_check import run_flake_check_step
from .lockfile import run_lockfile_step


class StepKind(str, Enum):
    LOCKFILE = "lockfile"
    FLAKE_CHECK = "flake-check"
    BUILD = "build"
    CUSTOM = "custom"


@dataclass(frozen=True)
class PlannedStep:
    kind: StepKind
    name: str
    # Set when the step will not run
    skip_reason: Optional[str] = None
    custom: Optional[CustomStep] = None


@dataclass
class StepContext:
    """Everything a step needs to run against one subflake."""
    nixcmd: NixCmd
    flake_url: FlakeUrl
    name: str
    subflake: SubflakeConfig
    systems: List[str]
    systems_ref: Optional[SystemsListFlakeRef] = None
    build_args: BuildStepArgs = field(default_factory=BuildStepArgs)

    @property
    def subflake_url(self) -> FlakeUrl:
        return self.flake_url.sub_flake_url(self.subflake.dir)


def plan_steps(subflake: SubflakeConfig, systems: Sequence[str]) -> List[PlannedStep]:
    steps = subflake.steps
    plan: List[PlannedStep] = []

    if not steps.lockfile_step.enable:
        reason = "disabled"
    elif subflake.override_inputs:
        # Overridden inputs never match the lock file
        reason = "inputs are overridden"
    else:
        reason = None
    plan.append(PlannedStep(StepKind.LOCKFILE, "lockfile", reason))

    plan.append(PlannedStep(
        StepKind.FLAKE_CHECK, "flake-check",
        None if steps.flake_check_step.enable else "disabled",
    ))
    plan.append(PlannedStep(
        StepKind.BUILD, "build",
        None if steps.build_step.enable else "disabled",
    ))

    for name, step in steps.custom_steps.items():
        reason = None
        if not step.can_run_on(systems):
            reason = f"not enabled for {', '.join(systems)}"
        plan.append(PlannedStep(StepKind.CUSTOM, name, reason, step))

    return plan


async def run_steps(ctx: StepContext) -> StepsResult:
    """
    Run the planned steps of one subflake, in order.

    Raises:
        StepFailure: on the first step that fails
    """
    console = get_console()
    build_result: Optional[BuildStepResult] = None

    for step in plan_steps(ctx.subflake, ctx.systems):
        if step.skip_reason is not None:
            console.print_step_skipped(step.name, step.skip_reason)
            continue
        try:
            if step.kind is StepKind.LOCKFILE:
                await run_lockfile_step(ctx)
            elif step.kind is StepKind.FLAKE_CHECK:
                await run_flake_check_step(ctx)
            elif step.kind is StepKind.BUILD:
                build_result = await run_build_step(ctx)
            else:
                await run_custom_step(ctx, step.name, step.custom)
        except Exception as e:
            # Cancellation and KeyboardInterrupt are BaseException and still
            # abort the whole run.
            raise StepFailure(ctx.name, step.name, e) from e

    return StepsResult(build_step=build_result)
