# remote.py
# Running `flakeci run` on another machine over ssh.
#
#   local store --nix copy--> remote store     (flakeci itself + the flake)
#   ssh host  nix run <flakeci>#default -- run <same args, local there>
#   remote results --nix copy--> local store   (only when an out-link is wanted)

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Tuple

from . import settings
from .config.loader import CIConfig
from .errors import RemoteError
from .model import RunResult
from .nix.command import NixCmd
from .nix.flake import archive_paths, metadata
from .nix.ssh import run_ssh, run_ssh_with_output
from .nix.store import CopyOptions, NixStoreCmd, StorePath, StoreURI, nix_copy
from .nix.url import FlakeUrl
from .runner import RunCommand
from .ui.console import get_console


def flakeci_cli_with(nixcmd: NixCmd, source: str, run_cmd: RunCommand) -> List[str]:
    """The command line that runs `run_cmd` through flakeci's own flake."""
    nix = replace(nixcmd, accept_flake_config=True)
    return nix.argv("run", f"{source}#default", "--", "run", *run_cmd.to_cli_args())


async def cache_flake(nixcmd: NixCmd, cfg: CIConfig, copy_inputs: bool) -> Tuple[FlakeUrl, List[str]]:
    """
    The flake as a store path (keeping the selected attribute) and the paths
    to ship to the remote store.
    """
    meta = await metadata(nixcmd, cfg.flake_url)
    attr = cfg.get_attr()
    local_url = FlakeUrl(meta.path)
    if not attr.is_none():
        local_url = local_url.with_attr(attr.get_name())

    if copy_inputs:
        paths = await archive_paths(nixcmd, cfg.flake_url)
    else:
        paths = [meta.path]
    return local_url, paths


async def run_remote(
    nixcmd: NixCmd,
    run_cmd: RunCommand,
    cfg: CIConfig,
    store_uri: StoreURI,
    source: Optional[str] = None,
) -> Optional[StorePath]:
    """
    Run `run_cmd` on `store_uri`.

    Returns:
        The results store path, copied back and rooted at the out-link; None
        when no out-link was requested (nothing is copied back then).

    Raises:
        RemoteError: If flakeci's own source store path is unknown
    """
    source = source if source is not None else settings.FLAKECI_SOURCE
    if not source:
        raise RemoteError("FLAKECI_SOURCE is not set; cannot run flakeci on a remote store")

    console = get_console()
    console.print_remote_started(str(store_uri))
    host = store_uri.ssh_target
    runner = nixcmd.runner

    local_url, paths = await cache_flake(nixcmd, cfg, run_cmd.copy_inputs)
    await nix_copy(nixcmd, CopyOptions(to=store_uri, no_check_sigs=True), [source, *paths])

    out_link = run_cmd.get_out_link()
    if out_link is None:
        await run_ssh(host, flakeci_cli_with(nixcmd, source, run_cmd.local_with(local_url, None)), runner)
        return None

    tmpdir = await run_ssh_with_output(host, ["mktemp", "-d", "-t", "om-ci-XXXXXX"], runner)
    remote_link = f"{tmpdir}/result"
    await run_ssh(host, flakeci_cli_with(nixcmd, source, run_cmd.local_with(local_url, remote_link)), runner)
    results_path = await run_ssh_with_output(host, ["readlink", remote_link], runner)

    console.print_info(f"Copying results {results_path} from {store_uri}")
    from_remote = CopyOptions(from_=store_uri, no_check_sigs=True)
    await nix_copy(nixcmd, from_remote, [results_path])

    if run_cmd.copy_outputs:
        result = RunResult.from_dict(json.loads(Path(results_path).read_text(encoding="utf-8")))
        outputs = result.all_out_paths()
        if outputs:
            console.print_info(f"Copying {len(outputs)} output path(s) from {store_uri}")
            await nix_copy(nixcmd, from_remote, outputs)

    await NixStoreCmd(runner=runner).add_root(out_link, results_path)
    return StorePath(results_path)
