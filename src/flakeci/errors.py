# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence


@dataclass
class CommandError(Exception):
    """
    An external process exited unsuccessfully.

    Carries enough context for clean CLI output without a traceback:
    the argv that was run, its exit code and the tail of its stderr.
    """
    argv: Sequence[str]
    exit_code: Optional[int]
    stderr: str = ""

    def __str__(self) -> str:
        program = self.argv[0] if self.argv else "<unknown>"
        msg = f"{program} exited unsuccessfully (exit={self.exit_code})"
        if self.stderr:
            msg += f"\n{self.stderr.rstrip()}"
        return msg


# ----------------------------------------------------------------------
# Configuration errors (abort the whole run before any subflake starts)
# ----------------------------------------------------------------------

class ConfigError(Exception):
    """Base class for errors in locating or parsing the CI configuration."""


@dataclass
class UnexpectedAttribute(ConfigError):
    attr: str

    def __str__(self) -> str:
        return f"Unexpected attribute, when config not present in flake: {self.attr}"


@dataclass
class MissingConfigAttribute(ConfigError):
    name: str
    available: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        known = ", ".join(self.available) or "<none>"
        return f"Missing configuration attribute: {self.name} (available: {known})"


@dataclass
class InvalidConfig(ConfigError):
    source: str
    message: str

    def __str__(self) -> str:
        return f"Invalid CI configuration in {self.source}:\n{self.message}"


@dataclass
class UnknownSubflake(ConfigError):
    name: str
    available: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        known = ", ".join(self.available) or "<none>"
        return f"No subflake named '{self.name}' (available: {known})"


# ----------------------------------------------------------------------
# Store errors
# ----------------------------------------------------------------------

class StoreError(Exception):
    """Base class for failures of store queries."""


@dataclass
class UnknownDeriver(StoreError):
    paths: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return "Unknown deriver for one or more of: " + " ".join(self.paths)


@dataclass
class DevourFlakeError(Exception):
    """devour-flake succeeded but its report could not be read."""
    reason: str

    def __str__(self) -> str:
        return f"Unreadable devour-flake output: {self.reason}"


class StoreURIParseError(ValueError):
    def __init__(self, uri: str, reason: str):
        super().__init__(f"Invalid store URI {uri!r}: {reason}")
        self.uri = uri
        self.reason = reason


# ----------------------------------------------------------------------
# Remote delegation / pipeline
# ----------------------------------------------------------------------

class RemoteError(Exception):
    """Remote delegation could not be carried out."""


@dataclass
class StepFailure(Exception):
    subflake: str
    step: str
    cause: Exception

    def __str__(self) -> str:
        return f"[{self.subflake}] step '{self.step}' failed: {self.cause}"
