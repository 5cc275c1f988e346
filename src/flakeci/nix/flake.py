# flake.py
# nix commands that act on a flake: evaluate, lock, check, metadata, archive.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ..errors import CommandError
from .command import NixCmd
from .url import FlakeUrl

_MISSING_ATTRIBUTE = "does not provide attribute"


def override_input_args(override_inputs: Mapping[str, Any], prefix: str = "") -> List[str]:
    """
    `--override-input` arguments, in name order.

    Args:
        override_inputs: input name -> flake URL
        prefix: Prepended to each input name (e.g. "flake/")
    """
    args: List[str] = []
    for name in sorted(override_inputs):
        args += ["--override-input", f"{prefix}{name}", str(override_inputs[name])]
    return args


async def eval_json(nixcmd: NixCmd, url: FlakeUrl) -> Any:
    """`nix eval <url> --json`"""
    return await nixcmd.json("eval", str(url), "--json")


async def eval_attr(nixcmd: NixCmd, url: FlakeUrl) -> Optional[Any]:
    """Like eval_json, but a missing attribute gives None instead of an error."""
    try:
        return await eval_json(nixcmd, url)
    except CommandError as e:
        if _MISSING_ATTRIBUTE in e.stderr:
            return None
        raise


async def eval_impure_expr(nixcmd: NixCmd, expr: str) -> Any:
    return await nixcmd.json("eval", "--impure", "--json", "--expr", expr)


async def current_system(nixcmd: NixCmd) -> str:
    return await eval_impure_expr(nixcmd, "builtins.currentSystem")


@dataclass(frozen=True)
class FlakeMetadata:
    path: str


async def metadata(nixcmd: NixCmd, url: FlakeUrl) -> FlakeMetadata:
    """Runs `nix flake metadata --json`; `path` is the locally cached source."""
    data = await nixcmd.json("flake", "metadata", "--json", str(url))
    return FlakeMetadata(path=data["path"])


async def archive_paths(nixcmd: NixCmd, url: FlakeUrl) -> List[str]:
    """Store paths of the flake source and of all its (transitive) inputs."""
    data = await nixcmd.json("flake", "archive", "--json", "--no-write-lock-file", str(url))
    paths: List[str] = []

    def collect(node: Dict[str, Any]) -> None:
        if node.get("path"):
            paths.append(node["path"])
        for child in (node.get("inputs") or {}).values():
            collect(child)

    collect(data)
    return sorted(set(paths))


async def lock_check(nixcmd: NixCmd, url: FlakeUrl) -> None:
    """Fail if flake.lock is not in sync with flake.nix."""
    await nixcmd.run("flake", "lock", str(url), "--no-update-lock-file")


async def check(nixcmd: NixCmd, url: FlakeUrl, override_inputs: Mapping[str, Any]) -> None:
    await nixcmd.run("flake", "check", str(url), *override_input_args(override_inputs))
