import asyncio

from flakeci.nix.system_list import SystemsListFlakeRef, resolve_systems


def test_system_name_is_shorthand():
    ref = SystemsListFlakeRef.parse("aarch64-darwin")
    assert str(ref) == "github:nix-systems/aarch64-darwin"


def test_known_lists_need_no_evaluation(nixcmd, runner):
    ref = SystemsListFlakeRef.parse("github:nix-systems/default-linux")
    assert asyncio.run(resolve_systems(nixcmd, ref)) == ["aarch64-linux", "x86_64-linux"]
    assert asyncio.run(resolve_systems(nixcmd, SystemsListFlakeRef.parse("github:nix-systems/empty"))) == []
    assert runner.calls == []


def test_other_lists_are_imported(nixcmd, runner):
    runner.when("eval", stdout='["riscv64-linux"]')
    ref = SystemsListFlakeRef.parse("github:me/my-systems")

    assert asyncio.run(resolve_systems(nixcmd, ref)) == ["riscv64-linux"]
    expr = runner.calls[0].argv[-1]
    assert expr == 'import (builtins.getFlake "github:me/my-systems").outPath'
