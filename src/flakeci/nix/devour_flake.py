# devour_flake.py
# Invoking devour-flake, which builds every output of a flake and reports the
# resulting store paths.

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .. import settings
from ..errors import DevourFlakeError
from .command import NixCmd
from .store import StorePath
from .url import FlakeUrl


@dataclass(frozen=True)
class DevourFlakeInput:
    flake: FlakeUrl
    # Flake referencing the list of systems; None means all allowed systems.
    systems: Optional[FlakeUrl] = None


@dataclass
class DevourFlakeOutput:
    out_paths: List[StorePath] = field(default_factory=list)
    by_name: Dict[str, StorePath] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DevourFlakeOutput:
        # A flake may expose one path under several names (e.g.
        # `packages.foo = self'.packages.default`), hence the dedup.
        out_paths = sorted({StorePath(p) for p in data.get("out-paths", [])})
        by_name = {k: StorePath(v) for k, v in (data.get("by-name") or {}).items()}
        return cls(out_paths=out_paths, by_name=by_name)


def transform_override_inputs(args: Sequence[str]) -> List[str]:
    """
    Rewrite `--override-input X Y` to `--override-input flake/X Y`.

    devour-flake takes the user's flake as its own input named `flake`, so
    overrides meant for the user's flake must be nested under it.
    """
    out: List[str] = []
    it = iter(args)
    for arg in it:
        out.append(arg)
        if arg == "--override-input":
            nxt = next(it, None)
            if nxt is not None:
                out.append(f"flake/{nxt}")
    return out


async def devour_flake(
    nixcmd: NixCmd,
    input: DevourFlakeInput,
    extra_args: Sequence[str] = (),
    devour_flake_url: str = settings.DEVOUR_FLAKE,
) -> DevourFlakeOutput:
    """
    Build all outputs of `input.flake`.

    devour-flake prints the store path of a JSON document
    `{"out-paths": [...], "by-name": {...}}`, which is read back here.

    Raises:
        CommandError: If the build fails
        DevourFlakeError: If the printed report is missing or malformed
    """
    args = [
        "build",
        f"{devour_flake_url}#json",
        "-L",
        "--no-link",
        "--print-out-paths",
        "--override-input",
        "flake",
        str(input.flake),
    ]
    if input.systems is not None:
        args += ["--override-input", "systems", str(input.systems)]
    args += list(extra_args)

    out = await nixcmd.output(*args)
    lines = out.decode("utf-8", errors="replace").strip().splitlines()
    if not lines:
        raise DevourFlakeError("no output path printed")
    result_path = lines[-1]
    try:
        data = json.loads(Path(result_path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise DevourFlakeError(f"{result_path}: {e}") from e
    if not isinstance(data, dict):
        raise DevourFlakeError(f"{result_path}: expected a JSON object")
    return DevourFlakeOutput.from_dict(data)
