# loader.py
# Locating and selecting the CI configuration of a flake.
#
# Two sources, exactly one of which is consulted per run:
#   1. a sidecar file (om.yaml) at the flake root, under the `ci` key
#   2. otherwise, the flake's own `om.ci` (or legacy `nixci`) attribute
#
# Either gives a tree  <config name> -> <subflake name> -> SubflakeConfig.
# The URL's attribute path picks the config name, then (optionally) a subflake:
#   .#default.dev  ->  config "default", only subflake "dev"

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from .. import settings
from ..errors import InvalidConfig, MissingConfigAttribute, UnexpectedAttribute
from ..nix.command import NixCmd
from ..nix.flake import eval_attr, metadata
from ..nix.url import FlakeAttr, FlakeUrl
from ..ui.console import get_console
from .subflake import SubflakesConfig


class ConfigSource(str, Enum):
    SIDECAR = "sidecar"
    FLAKE = "flake"


@dataclass(frozen=True)
class ConfigTree:
    """The raw `<config name> -> value` mapping and where it came from."""
    source: ConfigSource
    location: str
    # None when the source holds no CI configuration at all
    variants: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class CIConfig:
    flake_url: FlakeUrl
    source: ConfigSource
    selected_name: str
    subflakes: SubflakesConfig
    # Attribute path segments after the config name, uninterpreted here
    rest: List[str] = field(default_factory=list)

    @property
    def selected_subflake(self) -> Optional[str]:
        return self.rest[0] if self.rest else None

    def get_attr(self) -> FlakeAttr:
        """The non-default attribute that selects this configuration."""
        if self.selected_subflake is not None:
            return FlakeAttr(f"{self.selected_name}.{self.selected_subflake}")
        if self.selected_name == "default":
            return FlakeAttr(None)
        return FlakeAttr(self.selected_name)


async def _flake_root(nixcmd: NixCmd, url: FlakeUrl) -> Path:
    local = url.as_local_path()
    if local is not None:
        return Path(local)
    meta = await metadata(nixcmd, url)
    return Path(meta.path)


def load_sidecar(path: Path) -> ConfigTree:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise InvalidConfig(str(path), str(e)) from e
    if not isinstance(data, dict):
        raise InvalidConfig(str(path), "top level must be a mapping")
    return ConfigTree(ConfigSource.SIDECAR, str(path), data.get(settings.CONFIG_NAMESPACE))


async def load_from_flake(nixcmd: NixCmd, url: FlakeUrl) -> ConfigTree:
    for root_attr in settings.CONFIG_ROOT_ATTRS:
        qualified = url.with_attr(root_attr)
        value = await eval_attr(nixcmd, qualified)
        if value is not None:
            return ConfigTree(ConfigSource.FLAKE, str(qualified), value)
    return ConfigTree(ConfigSource.FLAKE, str(url), None)


async def load_tree(nixcmd: NixCmd, url: FlakeUrl) -> ConfigTree:
    """
    Load the configuration tree for `url` (attribute ignored).

    A missing sidecar file is not an error; it means the flake is evaluated.
    """
    url = url.without_attr()
    sidecar = (await _flake_root(nixcmd, url)) / settings.SIDECAR_FILENAME
    if sidecar.is_file():
        get_console().print_debug(f"Reading CI config from {sidecar}")
        return load_sidecar(sidecar)
    get_console().print_debug(f"No {sidecar.name}; evaluating flake for CI config")
    return await load_from_flake(nixcmd, url)


def select(tree: ConfigTree, attrs: List[str]) -> Tuple[str, SubflakesConfig, List[str]]:
    """
    Pick the configuration named by the first attr segment.

    Without an attr, "default" is used (or the only config, if there is just
    one). Remaining segments are returned as they are.
    """
    if tree.variants is None:
        if attrs:
            raise UnexpectedAttribute(".".join(attrs))
        return "default", SubflakesConfig.default(), []

    if not isinstance(tree.variants, dict):
        raise InvalidConfig(tree.location, "expected a mapping of configuration names")

    if attrs:
        name, rest = attrs[0], attrs[1:]
        if name not in tree.variants:
            raise UnexpectedAttribute(".".join(attrs))
    elif "default" in tree.variants:
        name, rest = "default", []
    elif len(tree.variants) == 1:
        name, rest = next(iter(tree.variants)), []
    else:
        raise MissingConfigAttribute("default", sorted(tree.variants))

    try:
        subflakes = SubflakesConfig.model_validate(tree.variants[name])
    except ValidationError as e:
        raise InvalidConfig(f"{tree.location} ({name})", str(e)) from e
    return name, subflakes, rest


async def resolve(nixcmd: NixCmd, url: FlakeUrl) -> CIConfig:
    tree = await load_tree(nixcmd, url)
    name, subflakes, rest = select(tree, url.get_attr().as_list())
    return CIConfig(
        flake_url=url.without_attr(),
        source=tree.source,
        selected_name=name,
        subflakes=subflakes,
        rest=rest,
    )
