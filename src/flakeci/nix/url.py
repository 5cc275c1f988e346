# url.py
# Flake URLs: the project reference flakeci is pointed at.
#
#   github:owner/repo#default.dev
#   \_______________/ \_________/
#        the flake       attribute path (config name, then subflake)

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class FlakeAttr:
    """The optional `#attr` part of a flake URL."""
    value: Optional[str] = None

    def get_name(self) -> str:
        """Attribute name, or "default" when none was given."""
        return self.value if self.value is not None else "default"

    def is_none(self) -> bool:
        return self.value is None

    def as_list(self) -> List[str]:
        """Nested attrs split on '.'."""
        if self.value is None:
            return []
        return self.value.split(".")


@dataclass(frozen=True, order=True)
class FlakeUrl:
    url: str

    def __post_init__(self) -> None:
        if not self.url.strip():
            raise ValueError("Empty string is not a valid flake URL")

    def __str__(self) -> str:
        return self.url

    @classmethod
    def parse(cls, s: str) -> FlakeUrl:
        return cls(s.strip())

    def split_attr(self) -> Tuple[FlakeUrl, FlakeAttr]:
        url, sep, attr = self.url.partition("#")
        if not sep:
            return self, FlakeAttr(None)
        return FlakeUrl(url), FlakeAttr(attr)

    def get_attr(self) -> FlakeAttr:
        return self.split_attr()[1]

    def without_attr(self) -> FlakeUrl:
        return self.split_attr()[0]

    def with_attr(self, attr: str) -> FlakeUrl:
        return FlakeUrl(f"{self.without_attr().url}#{attr}")

    def as_local_path(self) -> Optional[PurePosixPath]:
        """
        The local path this URL points at, if it uses the path-like syntax.

        Query (`?..`) and attribute (`#..`) parts are stripped.
        """
        s = self.url[len("path:"):] if self.url.startswith("path:") else self.url
        if not s.startswith((".", "/")):
            return None
        s = s.split("?", 1)[0]
        s = s.split("#", 1)[0]
        return PurePosixPath(s)

    def sub_flake_url(self, dir: str) -> FlakeUrl:
        """URL of the flake living in `dir` under this one."""
        if dir == ".":
            return self
        local = self.as_local_path()
        if local is not None:
            joined = str(local / dir)
            # PurePosixPath drops a leading "./", which nix needs to see a path
            if not joined.startswith((".", "/")):
                joined = f"./{joined}"
            scheme = "path:" if self.url.startswith("path:") else ""
            _, sep, query = self.url.split("#", 1)[0].partition("?")
            return FlakeUrl(f"{scheme}{joined}{sep}{query}")
        sep = "&" if "?" in self.url else "?"
        return FlakeUrl(f"{self.url}{sep}dir={dir}")
