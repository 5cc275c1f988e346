# store.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from .. import settings
from ..errors import StoreURIParseError, UnknownDeriver
from .command import NixCmd, Runner, run_process


@dataclass(frozen=True, order=True)
class StorePath:
    """
    A path in the store: either a build recipe (`.drv`) or anything else
    (build outputs, sources). Equality and ordering are on the path itself.
    """
    path: str

    @property
    def is_drv(self) -> bool:
        return self.path.endswith(".drv")

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True)
class StoreURI:
    """A remote store reachable over SSH: `ssh://[user@]host`."""
    host: str
    user: Optional[str] = None

    @classmethod
    def parse(cls, uri: str) -> StoreURI:
        scheme, sep, rest = uri.partition("://")
        if not sep:
            raise StoreURIParseError(uri, "invalid URI format")
        if scheme != "ssh":
            raise StoreURIParseError(uri, f"unsupported scheme: {scheme}")
        user, at, host = rest.rpartition("@")
        if not host:
            raise StoreURIParseError(uri, "missing host")
        return cls(host=host, user=user if at else None)

    @property
    def ssh_target(self) -> str:
        """`user@host` as the ssh CLI expects it."""
        return f"{self.user}@{self.host}" if self.user else self.host

    def __str__(self) -> str:
        return f"ssh://{self.ssh_target}"


# ----------------------------------------------------------------------
# nix-store queries
# ----------------------------------------------------------------------

@dataclass
class NixStoreCmd:
    """The `nix-store` command."""
    runner: Runner = field(default=run_process, repr=False, compare=False)

    program = "nix-store"

    async def output(self, *args: str) -> str:
        out = await self.runner([self.program, *args])
        return out.decode("utf-8")

    async def query_deriver(self, out_paths: Iterable[StorePath]) -> List[str]:
        """
        Return the derivations that built the given outputs.

        Raises:
            UnknownDeriver: If the store cannot name the deriver of any output
        """
        paths = [str(p) for p in out_paths]
        if not paths:
            return []
        out = await self.output("--query", "--valid-derivers", *paths)
        drv_paths = out.splitlines()
        if "unknown-deriver" in drv_paths:
            raise UnknownDeriver(paths)
        return drv_paths

    async def query_requisites_with_outputs(self, drv_paths: Iterable[str]) -> List[StorePath]:
        drv_paths = list(drv_paths)
        if not drv_paths:
            return []
        out = await self.output("--query", "--requisites", "--include-outputs", *drv_paths)
        return [StorePath(line) for line in out.splitlines() if line]

    async def fetch_all_deps(self, out_paths: Iterable[StorePath]) -> List[StorePath]:
        """
        Closure of the given outputs: every build and runtime dependency.

        First the deriver of each output is queried, then all requisites
        (outputs included) of those derivers. The given outputs are always
        part of the result.

        Derivations among the given paths are their own recipe, so feeding
        a closure back in returns the same closure.
        """
        out_paths = list(out_paths)
        given_drvs = [str(p) for p in out_paths if p.is_drv]
        drvs = await self.query_deriver(p for p in out_paths if not p.is_drv)
        requisites = await self.query_requisites_with_outputs([*drvs, *given_drvs])
        return sorted(set(out_paths) | set(requisites))

    async def add_root(self, link: str | Path, path: StorePath | str) -> None:
        """Make `link` an (indirect) GC root pointing at `path`."""
        await self.runner(
            [self.program, "--add-root", str(link), "--indirect", "--realise", str(path)]
        )


# ----------------------------------------------------------------------
# nix copy
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class CopyOptions:
    from_: Optional[StoreURI] = None
    to: Optional[StoreURI] = None
    no_check_sigs: bool = False


async def nix_copy(nixcmd: NixCmd, options: CopyOptions, paths: Iterable[str | StorePath]) -> None:
    """Copy store paths (and their closures) between stores."""
    args = ["copy"]
    if options.from_ is not None:
        args += ["--from", str(options.from_)]
    if options.to is not None:
        args += ["--to", str(options.to)]
    if options.no_check_sigs:
        args.append("--no-check-sigs")
    args += [str(p) for p in paths]
    await nixcmd.run(*args)


# ----------------------------------------------------------------------
# Results file as a store path
# ----------------------------------------------------------------------

# Rebuilds the results JSON inside a derivation, re-attaching string context
# to every store path so that the resulting file references (and thus keeps
# alive) everything it lists.
_RESULTS_EXPR = """\
let
  results = builtins.fromJSON (builtins.readFile {jsonfile});
  ctx = k: v:
    if k == "outPaths" || k == "allDeps" then map builtins.storePath v
    else if k == "byName" then builtins.mapAttrs (_: builtins.storePath) v
    else if builtins.isAttrs v then builtins.mapAttrs ctx v
    else v;
in derivation {{
  name = {name};
  system = builtins.currentSystem;
  builder = "/bin/sh";
  args = [ "-c" "IFS= read -r json < \\"$jsonPath\\"; printf '%s\\\\n' \\"$json\\" > \\"$out\\"" ];
  passAsFile = [ "json" ];
  json = builtins.toJSON (builtins.mapAttrs ctx results);
}}
"""


def _nix_string(s: str) -> str:
    return json.dumps(s).replace("${", "\\${")


async def add_results_root(
    nixcmd: NixCmd,
    jsonfile: str | Path,
    out_link: Optional[str | Path],
    name: str = settings.RESULTS_NAME,
) -> StorePath:
    """
    Put a results JSON file into the store, with references to the paths
    it lists, and make `out_link` a GC root for it.

    Returns:
        The store path of the results file.
    """
    expr = _RESULTS_EXPR.format(
        jsonfile=_nix_string(str(Path(jsonfile).resolve())),
        name=_nix_string(name),
    )
    args = ["build", "--impure", "--print-out-paths"]
    if out_link is not None:
        args += ["--out-link", str(out_link)]
    else:
        args.append("--no-link")
    args += ["--expr", expr]
    out = await nixcmd.output(*args)
    return StorePath(out.decode("utf-8").strip())
