import asyncio

import pytest

from flakeci import settings
from flakeci.errors import DevourFlakeError
from flakeci.nix.devour_flake import (
    DevourFlakeInput,
    DevourFlakeOutput,
    devour_flake,
    transform_override_inputs,
)
from flakeci.nix.store import StorePath
from flakeci.nix.url import FlakeUrl

DEVOUR_JSON = f"{settings.DEVOUR_FLAKE}#json"


def test_duplicate_out_paths_collapse():
    out = DevourFlakeOutput.from_dict({
        "out-paths": ["/store/a-foo", "/store/a-foo"],
        "by-name": {"foo": "/store/a-foo", "default": "/store/a-foo"},
    })
    assert out.out_paths == [StorePath("/store/a-foo")]
    assert out.by_name["default"] == StorePath("/store/a-foo")


def test_transform_override_inputs():
    args = ["-j", "4", "--override-input", "nixpkgs", "github:nixos/nixpkgs", "--refresh"]
    assert transform_override_inputs(args) == [
        "-j", "4", "--override-input", "flake/nixpkgs", "github:nixos/nixpkgs", "--refresh",
    ]


def test_devour_flake_invocation(nixcmd, runner, devour):
    devour(["/nix/store/b-bar", "/nix/store/a-foo"], {"bar": "/nix/store/b-bar"})
    out = asyncio.run(devour_flake(
        nixcmd,
        DevourFlakeInput(FlakeUrl("./sub"), systems=FlakeUrl("github:nix-systems/x86_64-linux")),
        ["-j", "2"],
    ))

    assert out.out_paths == [StorePath("/nix/store/a-foo"), StorePath("/nix/store/b-bar")]
    argv = runner.calls[-1].argv
    i = argv.index(DEVOUR_JSON)
    assert argv[i + 1:] == [
        "-L", "--no-link", "--print-out-paths",
        "--override-input", "flake", "./sub",
        "--override-input", "systems", "github:nix-systems/x86_64-linux",
        "-j", "2",
    ]


@pytest.mark.parametrize("printed, content", [
    ("", None),
    ("{path}\n", "not json"),
    ("{path}\n", "[1, 2]"),
])
def test_unreadable_report(nixcmd, runner, tmp_path, printed, content):
    report = tmp_path / "report.json"
    if content is not None:
        report.write_text(content)
    runner.when(DEVOUR_JSON, stdout=printed.format(path=report))

    with pytest.raises(DevourFlakeError):
        asyncio.run(devour_flake(nixcmd, DevourFlakeInput(FlakeUrl("."))))
