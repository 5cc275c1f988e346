# custom.py
# User-defined steps: a flake app or a devshell command, run from the subflake dir.

from __future__ import annotations

import os
import shutil
import stat
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, List

from ..config.subflake import AppStep, CustomStep, DevShellStep
from ..nix.command import NixCmd
from ..nix.flake import metadata, override_input_args
from ..nix.url import FlakeUrl
from ..ui.console import get_console

if TYPE_CHECKING:
    from .core import StepContext


def copy_dir_all(src: Path, dst: Path) -> None:
    """
    Copy `src` to `dst` and make the copy writable by its owner.

    Directories end up 0o755; files keep their execute bits and gain 0o644.
    """
    shutil.copytree(src, dst, symlinks=True)
    for root, dirs, files in os.walk(dst):
        for d in dirs:
            p = Path(root) / d
            if not p.is_symlink():
                p.chmod(0o755)
        for f in files:
            p = Path(root) / f
            if not p.is_symlink():
                p.chmod(stat.S_IMODE(p.stat().st_mode) | 0o644)
    dst.chmod(0o755)


async def writable_flake_dir(nixcmd: NixCmd, url: FlakeUrl) -> Path:
    """
    A writable local checkout of the flake.

    Steps like formatters expect to write into the working tree; a flake in
    the nix store is read-only, so it is mirrored into a temporary directory.
    """
    local = url.as_local_path()
    if local is not None and os.access(local, os.W_OK):
        return Path(local)
    src = Path(local) if local is not None else Path((await metadata(nixcmd, url)).path)
    dst = Path(tempfile.mkdtemp(prefix="om-ci-")) / "flake"
    get_console().print_debug(f"Copying {src} to writable {dst}")
    copy_dir_all(src, dst)
    return dst


def custom_step_args(step: CustomStep, override_inputs: dict) -> List[str]:
    """nix arguments (without the leading `nix`) that run `step`."""
    overrides = override_input_args(override_inputs)
    target = f".#{step.name}"
    if isinstance(step, AppStep):
        return ["run", *overrides, target, "--", *step.args]
    if isinstance(step, DevShellStep):
        return ["develop", *overrides, target, "-c", *step.command]
    raise TypeError(f"Unknown custom step: {step!r}")


async def run_custom_step(ctx: StepContext, name: str, step: CustomStep) -> None:
    get_console().print_step(name, f"custom {step.type} step")
    path = await writable_flake_dir(ctx.nixcmd, ctx.flake_url)
    await ctx.nixcmd.run(
        *custom_step_args(step, ctx.subflake.override_inputs),
        cwd=str(path / ctx.subflake.dir),
    )
