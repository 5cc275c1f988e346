from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from flakeci import settings
from flakeci.errors import CommandError
from flakeci.nix.command import NixCmd
from flakeci.ui.console import Console, set_console

DEVOUR_JSON = f"{settings.DEVOUR_FLAKE}#json"


@dataclass
class Call:
    argv: List[str]
    cwd: Optional[str]
    capture_stdout: bool


@dataclass
class Rule:
    tokens: tuple
    stdout: bytes = b""
    fail: Optional[str] = None
    handler: Optional[Callable[[List[str]], bytes]] = None


class FakeRunner:
    """
    Stands in for run_process. Records every argv; the most recently added
    rule whose tokens all appear in argv decides the outcome.
    """

    def __init__(self):
        self.calls: List[Call] = []
        self._rules: List[Rule] = []

    def when(self, *tokens, stdout=b"", fail=None, handler=None) -> None:
        if isinstance(stdout, str):
            stdout = stdout.encode()
        self._rules.append(Rule(tokens, stdout, fail, handler))

    async def __call__(self, argv, *, cwd=None, capture_stdout=True, verbose=None) -> bytes:
        argv = [str(a) for a in argv]
        self.calls.append(Call(argv, cwd, capture_stdout))
        for rule in reversed(self._rules):
            if all(t in argv for t in rule.tokens):
                if rule.fail is not None:
                    raise CommandError(argv=argv, exit_code=1, stderr=rule.fail)
                if rule.handler is not None:
                    return rule.handler(argv)
                return rule.stdout
        return b""

    def matching(self, *tokens) -> List[Call]:
        return [c for c in self.calls if all(t in c.argv for t in tokens)]


@pytest.fixture(autouse=True)
def console():
    c = Console()
    set_console(c)
    return c


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def nixcmd(runner) -> NixCmd:
    return NixCmd(runner=runner)


@pytest.fixture
def devour(runner, tmp_path):
    """Register a devour-flake result, optionally only for one flake URL."""
    counter = [0]

    def register(out_paths, by_name=None, flake=None, fail=None):
        tokens = (DEVOUR_JSON,) if flake is None else (DEVOUR_JSON, str(flake))
        if fail is not None:
            runner.when(*tokens, fail=fail)
            return
        counter[0] += 1
        path = tmp_path / f"devour-{counter[0]}.json"
        path.write_text(json.dumps({"out-paths": list(out_paths), "by-name": by_name or {}}))
        runner.when(*tokens, stdout=f"{path}\n")

    return register


@pytest.fixture
def write_sidecar(tmp_path):
    def write(text: str, root: Path = tmp_path) -> Path:
        path = root / settings.SIDECAR_FILENAME
        path.write_text(text)
        return path

    return write
