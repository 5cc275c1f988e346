# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .nix.store import StorePath
from .nix.url import FlakeUrl


@dataclass(frozen=True)
class BuildStepResult:
    """What the build step produced for one subflake."""
    out_paths: List[StorePath] = field(default_factory=list)
    by_name: Dict[str, StorePath] = field(default_factory=dict)
    # Full closure of out_paths; only with --include-all-dependencies
    all_deps: Optional[List[StorePath]] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "outPaths": [str(p) for p in self.out_paths],
            "byName": {k: str(v) for k, v in self.by_name.items()},
        }
        if self.all_deps is not None:
            d["allDeps"] = [str(p) for p in self.all_deps]
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> BuildStepResult:
        all_deps = d.get("allDeps")
        return cls(
            out_paths=[StorePath(p) for p in d.get("outPaths", [])],
            by_name={k: StorePath(v) for k, v in d.get("byName", {}).items()},
            all_deps=[StorePath(p) for p in all_deps] if all_deps is not None else None,
        )


@dataclass(frozen=True)
class StepsResult:
    """Results of all steps of one subflake (only the build step has any)."""
    build_step: Optional[BuildStepResult] = None

    def to_dict(self) -> Dict[str, Any]:
        # Build results are flattened into the subflake entry
        return self.build_step.to_dict() if self.build_step is not None else {}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> StepsResult:
        if "outPaths" not in d:
            return cls()
        return cls(build_step=BuildStepResult.from_dict(d))


@dataclass
class RunResult:
    """
    Outcome of a `run`: one entry per subflake that ran successfully.

    `skipped` and `failures` are for reporting only and are not serialized.
    """
    systems: List[str]
    flake: FlakeUrl
    result: Dict[str, StepsResult] = field(default_factory=dict)
    skipped: Dict[str, str] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def add(self, name: str, steps_result: StepsResult) -> None:
        if name in self.result:
            raise ValueError(f"Duplicate result for subflake: {name}")
        self.result[name] = steps_result

    def statuses(self) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for name in sorted(set(self.result) | set(self.skipped) | set(self.failures)):
            if name in self.failures:
                out[name] = "failed"
            elif name in self.skipped:
                out[name] = "skipped"
            else:
                out[name] = "ok"
        return out

    def all_out_paths(self) -> List[StorePath]:
        """Every store path mentioned in the results (outputs and deps)."""
        paths = set()
        for steps_result in self.result.values():
            build = steps_result.build_step
            if build is None:
                continue
            paths.update(build.out_paths)
            if build.all_deps is not None:
                paths.update(build.all_deps)
        return sorted(paths)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "systems": list(self.systems),
            "flake": str(self.flake),
            "result": {name: r.to_dict() for name, r in sorted(self.result.items())},
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> RunResult:
        return cls(
            systems=list(d.get("systems", [])),
            flake=FlakeUrl(d["flake"]),
            result={name: StepsResult.from_dict(r) for name, r in d.get("result", {}).items()},
        )
