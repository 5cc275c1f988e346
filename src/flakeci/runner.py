# runner.py
from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field, replace
from typing import List, Optional

from .config.loader import CIConfig, resolve
from .config.subflake import SubflakeConfig
from .errors import StepFailure, UnknownSubflake
from .model import RunResult
from .nix.command import NixCmd
from .nix.flake import current_system
from .nix.store import StorePath, StoreURI, add_results_root
from .nix.system_list import SystemsListFlakeRef, resolve_systems
from .nix.url import FlakeUrl
from .step.build import BuildStepArgs
from .step.core import StepContext, run_steps
from .ui.console import get_console

# local flake ---> config ---> subflakes ---> steps ---> results (GC root)
#        \
#         `--on ssh://host--> same command, run on the remote store

DESELECTED = "deselected out"
INCOMPATIBLE = "cannot run on this system"
SKIPPED_BY_CONFIG = "skip = true"


@dataclass
class RunCommand:
    """Arguments of `flakeci run`."""
    flake_ref: FlakeUrl = field(default_factory=lambda: FlakeUrl("."))
    # Run on this remote store instead of locally
    on: Optional[StoreURI] = None
    # None means the current system only
    systems: Optional[SystemsListFlakeRef] = None
    out_link: Optional[str] = "result"
    no_link: bool = False
    github_output: bool = False
    # A subflake filter that matches nothing is an error
    strict_selection: bool = True
    copy_inputs: bool = False
    copy_outputs: bool = False
    build_args: BuildStepArgs = field(default_factory=BuildStepArgs)

    def get_out_link(self) -> Optional[str]:
        if self.no_link:
            return None
        return self.out_link

    def local_with(self, flake_ref: FlakeUrl, out_link: Optional[str]) -> RunCommand:
        """This command as run on the remote side: local, against `flake_ref`."""
        return replace(
            self,
            on=None,
            flake_ref=flake_ref,
            out_link=out_link,
            no_link=out_link is None,
            copy_inputs=False,
            copy_outputs=False,
        )

    def to_cli_args(self) -> List[str]:
        """Arguments that reproduce this command (after `flakeci run`)."""
        args: List[str] = []
        if self.on is not None:
            args += ["--on", str(self.on)]
        if self.systems is not None:
            args += ["--systems", str(self.systems)]
        out_link = self.get_out_link()
        if out_link is None:
            args.append("--no-link")
        else:
            args += ["-o", out_link]
        if self.github_output:
            args.append("--github-output")
        if not self.strict_selection:
            args.append("--allow-empty-selection")
        if self.copy_inputs:
            args.append("--copy-inputs")
        if self.copy_outputs:
            args.append("--copy-outputs")
        args += self.build_args.to_cli_args()
        args.append(str(self.flake_ref))
        if self.build_args.extra_args:
            args += ["--", *self.build_args.extra_args]
        return args


async def get_systems(nixcmd: NixCmd, run_cmd: RunCommand) -> List[str]:
    if run_cmd.systems is None:
        return [await current_system(nixcmd)]
    return await resolve_systems(nixcmd, run_cmd.systems)


def skip_reason(
    name: str,
    subflake: SubflakeConfig,
    only: Optional[str],
    systems: List[str],
) -> Optional[str]:
    """Why a subflake will not run, or None if it will."""
    if only is not None and name != only:
        return DESELECTED
    if subflake.skip:
        return SKIPPED_BY_CONFIG
    if not subflake.can_run_on(systems):
        return INCOMPATIBLE
    return None


async def ci_run(nixcmd: NixCmd, run_cmd: RunCommand, cfg: CIConfig) -> RunResult:
    """
    Run every selected subflake, in name order.

    A failing subflake is recorded in `failures` and does not stop the
    others.
    """
    console = get_console()
    only = cfg.selected_subflake
    if only is not None and only not in cfg.subflakes and run_cmd.strict_selection:
        raise UnknownSubflake(only, cfg.subflakes.names())

    systems = await get_systems(nixcmd, run_cmd)
    result = RunResult(systems=systems, flake=cfg.flake_url)
    console.print_run_started(str(cfg.flake_url), systems, len(cfg.subflakes))

    for name, subflake in cfg.subflakes.items():
        reason = skip_reason(name, subflake, only, systems)
        if reason is not None:
            console.print_subflake_skipped(name, reason)
            result.skipped[name] = reason
            continue

        with console.log_group(f"subflake={name}", run_cmd.github_output):
            console.print_subflake_started(name)
            ctx = StepContext(
                nixcmd=nixcmd,
                flake_url=cfg.flake_url,
                name=name,
                subflake=subflake,
                systems=systems,
                systems_ref=run_cmd.systems,
                build_args=run_cmd.build_args,
            )
            try:
                steps_result = await run_steps(ctx)
            except StepFailure as e:
                console.print_failure(name, str(e), getattr(e.cause, "exit_code", None))
                result.failures[name] = str(e)
                continue
            console.print_success(name)

        result.add(name, steps_result)

    return result


async def write_results(nixcmd: NixCmd, result: RunResult, out_link: str) -> StorePath:
    """Put the results JSON in the store, rooted at `out_link`."""
    fd, tmp = tempfile.mkstemp(prefix="om-ci-results-", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(result.to_dict(), f, indent=2)
        return await add_results_root(nixcmd, tmp, out_link)
    finally:
        os.unlink(tmp)


@dataclass
class RunOutcome:
    """What `run` did: the results (local runs only) and their store path."""
    result: Optional[RunResult] = None
    results_path: Optional[StorePath] = None

    @property
    def ok(self) -> bool:
        return self.result is None or self.result.ok


async def run_local(nixcmd: NixCmd, run_cmd: RunCommand, cfg: CIConfig) -> RunOutcome:
    result = await ci_run(nixcmd, run_cmd, cfg)
    results_path = None
    out_link = run_cmd.get_out_link()
    if out_link is not None:
        results_path = await write_results(nixcmd, result, out_link)
    return RunOutcome(result=result, results_path=results_path)


async def run(nixcmd: NixCmd, run_cmd: RunCommand) -> RunOutcome:
    """Resolve the configuration, then run it here or on `run_cmd.on`."""
    cfg = await resolve(nixcmd, run_cmd.flake_ref)
    get_console().print_debug(
        f"Using {cfg.source.value} config '{cfg.selected_name}' with {len(cfg.subflakes)} subflake(s)"
    )
    if run_cmd.on is not None:
        from .remote import run_remote

        results_path = await run_remote(nixcmd, run_cmd, cfg, run_cmd.on)
        return RunOutcome(results_path=results_path)
    return await run_local(nixcmd, run_cmd, cfg)
