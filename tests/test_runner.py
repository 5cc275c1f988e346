import asyncio
import json
import re

import pytest

from flakeci import settings
from flakeci.errors import UnknownSubflake
from flakeci.nix.store import StorePath, StoreURI
from flakeci.nix.system_list import SystemsListFlakeRef
from flakeci.nix.url import FlakeUrl
from flakeci.runner import DESELECTED, INCOMPATIBLE, SKIPPED_BY_CONFIG, RunCommand, run
from flakeci.step.build import BuildStepArgs

X86_LINUX = SystemsListFlakeRef.parse("x86_64-linux")


def _run(nixcmd, flake_ref, **kwargs):
    kwargs.setdefault("systems", X86_LINUX)
    kwargs.setdefault("no_link", True)
    return asyncio.run(run(nixcmd, RunCommand(flake_ref=FlakeUrl(flake_ref), **kwargs)))


def test_single_subflake(nixcmd, tmp_path, write_sidecar, devour):
    write_sidecar("ci:\n  default:\n    default:\n      dir: .\n")
    devour(["/nix/store/a-foo"], {"foo": "/nix/store/a-foo"})

    outcome = _run(nixcmd, str(tmp_path))

    assert outcome.ok
    assert outcome.results_path is None
    assert list(outcome.result.result) == ["default"]
    assert outcome.result.systems == ["x86_64-linux"]


def test_incompatible_subflake_is_skipped(nixcmd, runner, tmp_path, write_sidecar, devour):
    write_sidecar(
        "ci:\n"
        "  default:\n"
        "    main: {}\n"
        "    mac:\n"
        "      systems: [aarch64-darwin]\n"
    )
    devour(["/nix/store/a-foo"])

    result = _run(nixcmd, str(tmp_path)).result

    assert list(result.result) == ["main"]
    assert result.skipped == {"mac": INCOMPATIBLE}
    assert len(runner.matching("build")) == 1


def test_skipped_subflake_never_builds(nixcmd, runner, tmp_path, write_sidecar, devour):
    write_sidecar("ci:\n  default:\n    off:\n      skip: true\n")
    devour(["/nix/store/a-foo"])

    result = _run(nixcmd, str(tmp_path)).result

    assert result.result == {}
    assert result.skipped == {"off": SKIPPED_BY_CONFIG}
    assert runner.calls == []


def test_subflake_filter_deselects_others(nixcmd, runner, tmp_path, write_sidecar, devour):
    write_sidecar("ci:\n  default:\n    a:\n      dir: a\n    b:\n      dir: b\n")
    devour(["/nix/store/b-out"])

    result = _run(nixcmd, f"{tmp_path}#default.b").result

    assert list(result.result) == ["b"]
    assert result.skipped == {"a": DESELECTED}
    assert DESELECTED != INCOMPATIBLE
    build = runner.matching("build")[0].argv
    assert f"{tmp_path}/b" in build


def test_unknown_subflake_filter(nixcmd, tmp_path, write_sidecar):
    write_sidecar("ci:\n  default:\n    a: {}\n")
    with pytest.raises(UnknownSubflake):
        _run(nixcmd, f"{tmp_path}#default.nope")


def test_unknown_subflake_filter_allowed(nixcmd, runner, tmp_path, write_sidecar):
    write_sidecar("ci:\n  default:\n    a: {}\n")
    result = _run(nixcmd, f"{tmp_path}#default.nope", strict_selection=False).result
    assert result.result == {}
    assert result.skipped == {"a": DESELECTED}
    assert runner.calls == []


def test_failures_are_isolated_per_subflake(nixcmd, runner, tmp_path, write_sidecar, devour):
    write_sidecar("ci:\n  default:\n    a:\n      dir: a\n    b:\n      dir: b\n")
    devour(["/nix/store/b-out"])
    devour([], flake=f"{tmp_path}/a", fail="error: builder for '/nix/store/x.drv' failed")

    result = _run(nixcmd, str(tmp_path)).result

    assert not result.ok
    assert list(result.failures) == ["a"]
    assert list(result.result) == ["b"]
    assert result.statuses() == {"a": "failed", "b": "ok"}


def test_unexpected_step_error_stays_with_its_subflake(nixcmd, runner, tmp_path, write_sidecar, devour):
    write_sidecar("ci:\n  default:\n    a:\n      dir: a\n    b:\n      dir: b\n    c:\n      dir: c\n")
    devour(["/nix/store/c-out"])
    runner.when(f"{settings.DEVOUR_FLAKE}#json", f"{tmp_path}/a", stdout="")

    def broken_lock(argv):
        raise KeyError("path")

    runner.when("lock", f"{tmp_path}/b", handler=broken_lock)

    result = _run(nixcmd, str(tmp_path)).result

    assert sorted(result.failures) == ["a", "b"]
    assert "devour-flake" in result.failures["a"]
    assert list(result.result) == ["c"]


def test_lockfile_not_checked_with_overrides(nixcmd, runner, tmp_path, write_sidecar, devour):
    write_sidecar(
        "ci:\n"
        "  default:\n"
        "    main:\n"
        "      overrideInputs:\n"
        "        mylib: github:o/mylib\n"
    )
    devour(["/nix/store/a-foo"])

    _run(nixcmd, str(tmp_path))

    assert runner.matching("lock") == []
    build = runner.matching("build")[0].argv
    assert build[-3:] == ["--override-input", "flake/mylib", "github:o/mylib"]


def test_current_system_is_the_default(nixcmd, runner, tmp_path, write_sidecar, devour):
    write_sidecar("ci:\n  default:\n    main: {}\n")
    runner.when("builtins.currentSystem", stdout='"aarch64-darwin"\n')
    devour(["/nix/store/a-foo"])

    result = _run(nixcmd, str(tmp_path), systems=None).result

    assert result.systems == ["aarch64-darwin"]
    assert "systems" not in runner.matching("build")[0].argv


def test_results_written_to_out_link(nixcmd, runner, tmp_path, write_sidecar, devour):
    write_sidecar("ci:\n  default:\n    main: {}\n    off:\n      skip: true\n")
    devour(["/nix/store/a-foo", "/nix/store/a-foo"], {"foo": "/nix/store/a-foo"})
    written = {}

    def build_results(argv):
        expr = argv[argv.index("--expr") + 1]
        jsonfile = json.loads(re.search(r"builtins.readFile (\"[^\"]*\")", expr).group(1))
        with open(jsonfile) as f:
            written.update(json.load(f))
        return b"/nix/store/r-om-ci-results.json\n"

    runner.when("build", "--impure", handler=build_results)
    out_link = str(tmp_path / "result")

    outcome = _run(nixcmd, str(tmp_path), no_link=False, out_link=out_link)

    assert outcome.results_path == StorePath("/nix/store/r-om-ci-results.json")
    assert written == {
        "systems": ["x86_64-linux"],
        "flake": str(tmp_path),
        "result": {"main": {"outPaths": ["/nix/store/a-foo"], "byName": {"foo": "/nix/store/a-foo"}}},
    }
    call = runner.matching("build", "--impure")[0]
    assert call.argv[call.argv.index("--out-link") + 1] == out_link


# -------------------- RunCommand --------------------

def test_out_link_and_no_link():
    assert RunCommand().get_out_link() == "result"
    assert RunCommand(out_link="x", no_link=True).get_out_link() is None


def test_to_cli_args():
    cmd = RunCommand(
        flake_ref=FlakeUrl("/nix/store/abc-source#default.dev"),
        systems=X86_LINUX,
        out_link="/tmp/om/result",
        github_output=True,
        strict_selection=False,
        build_args=BuildStepArgs(include_all_dependencies=True, extra_args=["-j", "4"]),
    )
    assert cmd.to_cli_args() == [
        "--systems", "github:nix-systems/x86_64-linux",
        "-o", "/tmp/om/result",
        "--github-output",
        "--allow-empty-selection",
        "--include-all-dependencies",
        "/nix/store/abc-source#default.dev",
        "--", "-j", "4",
    ]


def test_local_with_drops_remote_options():
    cmd = RunCommand(on=StoreURI("builder"), copy_inputs=True, copy_outputs=True)
    local = cmd.local_with(FlakeUrl("/nix/store/abc-source"), None)
    assert local.on is None
    assert local.get_out_link() is None
    args = local.to_cli_args()
    assert "--on" not in args
    assert "--copy-inputs" not in args
    assert args == ["--no-link", "/nix/store/abc-source"]
