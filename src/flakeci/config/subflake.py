from __future__ import annotations

from typing import Annotated, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, RootModel

from .. import settings

# -------------------- Steps --------------------

class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class StepToggle(_Frozen):
    enable: bool = True


class _CustomStepBase(_Frozen):
    name: str = "default"
    # Whitelist of systems to run on; None means any
    systems: Optional[List[str]] = None

    def can_run_on(self, systems: Sequence[str]) -> bool:
        if self.systems is None:
            return True
        return any(s in systems for s in self.systems)


class AppStep(_CustomStepBase):
    """A flake app to run (`nix run .#<name> -- <args>`)."""
    type: Literal["app"]
    args: List[str] = Field(default_factory=list)


class DevShellStep(_CustomStepBase):
    """A command to run inside a devshell (`nix develop .#<name> -c <command>`)."""
    type: Literal["devshell"]
    command: List[str] = Field(min_length=1)


CustomStep = Annotated[Union[AppStep, DevShellStep], Field(discriminator="type")]


class Steps(_Frozen):
    lockfile_step: StepToggle = Field(default_factory=StepToggle, alias="lockfile")
    flake_check_step: StepToggle = Field(default_factory=StepToggle, alias="flake-check")
    build_step: StepToggle = Field(default_factory=StepToggle, alias="build")
    # Declaration order is execution order
    custom_steps: Dict[str, CustomStep] = Field(default_factory=dict, alias="custom")


# -------------------- Subflakes --------------------

class SubflakeConfig(_Frozen):
    """
    One independently built unit of the flake.

    Its inputs may be partial, which is what `overrideInputs` is for.
    """
    skip: bool = False
    dir: str = "."
    override_inputs: Dict[str, str] = Field(default_factory=dict, alias="overrideInputs")
    systems: Optional[List[str]] = None
    steps: Steps = Field(default_factory=Steps)

    def can_run_on(self, systems: Sequence[str]) -> bool:
        if self.systems is None:
            return True
        return any(s in systems for s in self.systems)


class SubflakesConfig(RootModel[Dict[str, SubflakeConfig]]):
    """All subflakes of one configuration, keyed by name."""

    model_config = ConfigDict(frozen=True)

    @classmethod
    def default(cls) -> SubflakesConfig:
        return cls({settings.ROOT_SUBFLAKE: SubflakeConfig()})

    def items(self) -> List[tuple[str, SubflakeConfig]]:
        """Subflakes sorted by name, whatever order they were declared in."""
        return sorted(self.root.items())

    def names(self) -> List[str]:
        return sorted(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __getitem__(self, name: str) -> SubflakeConfig:
        return self.root[name]

    def __contains__(self, name: object) -> bool:
        return name in self.root
