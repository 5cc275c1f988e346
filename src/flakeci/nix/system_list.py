# system_list.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .. import settings
from .command import NixCmd
from .flake import eval_impure_expr
from .url import FlakeUrl


@dataclass(frozen=True)
class SystemsListFlakeRef:
    """
    A flake that, when imported, evaluates to a list of systems.

    A bare well-known system name ("x86_64-linux") is shorthand for
    `github:nix-systems/<system>`.
    """
    url: FlakeUrl

    @classmethod
    def parse(cls, s: str) -> SystemsListFlakeRef:
        s = s.strip()
        if s in settings.KNOWN_SYSTEMS:
            return cls(FlakeUrl(f"github:nix-systems/{s}"))
        return cls(FlakeUrl(s))

    def known_systems(self) -> Optional[List[str]]:
        """Systems for the nix-systems lists we know without evaluating anything."""
        systems = settings.KNOWN_SYSTEM_LISTS.get(self.url.url)
        return list(systems) if systems is not None else None

    def __str__(self) -> str:
        return str(self.url)


async def nix_import_flake(nixcmd: NixCmd, url: FlakeUrl):
    """Evaluate `import <flake source>` and return the resulting JSON value."""
    return await eval_impure_expr(nixcmd, f'import (builtins.getFlake "{url}").outPath')


async def resolve_systems(nixcmd: NixCmd, ref: SystemsListFlakeRef) -> List[str]:
    known = ref.known_systems()
    if known is not None:
        return known
    return list(await nix_import_flake(nixcmd, ref.url))
