# cli.py
from __future__ import annotations

import asyncio
import json
import os
import sys

import click
from click.core import ParameterSource

from flakeci import settings
from flakeci.config.loader import resolve
from flakeci.errors import ConfigError
from flakeci.matrix import matrix, matrix_json
from flakeci.nix.command import NixCmd
from flakeci.nix.store import StoreURI
from flakeci.nix.system_list import SystemsListFlakeRef
from flakeci.nix.url import FlakeUrl
from flakeci.runner import RunCommand, run as run_ci
from flakeci.step.build import BuildStepArgs
from flakeci.ui.console import Console, get_console, set_console


def _parse_store_uri(ctx, param, value):
    if value is None:
        return None
    try:
        return StoreURI.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


def _parse_systems(ctx, param, value):
    if value is None:
        return None
    return SystemsListFlakeRef.parse(value)


def _parse_flake_url(ctx, param, value):
    try:
        return FlakeUrl.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


def _fail(e: BaseException) -> None:
    console = get_console()
    if isinstance(e, ConfigError):
        # Validation errors span several lines; indent everything after the first
        message, *details = str(e).splitlines() or [""]
        console.print_error(
            "CI configuration problem",
            message,
            details=details,
            suggestion=f"Check the `{settings.CONFIG_NAMESPACE}` key of {settings.SIDECAR_FILENAME}, "
            f"or the flake's {' / '.join(settings.CONFIG_ROOT_ATTRS)} attribute.",
        )
    else:
        console.print_exception(e)
    sys.exit(1)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.option("-v", "--verbose", is_flag=True, default=False, help="Relay all nix stderr output unfiltered")
@click.option("--refresh", is_flag=True, default=False, help="Consider all previously downloaded files out-of-date")
@click.option("--access-token", "access_tokens", multiple=True, help="Extra access token for nix (HOST=TOKEN)")
@click.pass_context
def cli(ctx, debug, verbose, refresh, access_tokens):
    """flakeci: build and check every output of a nix flake."""
    set_console(Console(debug=debug, verbose=verbose))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj.setdefault(
        "nixcmd",
        NixCmd(refresh=refresh, extra_access_tokens=list(access_tokens)),
    )


@cli.command(context_settings={"show_default": True})
@click.option("--on", "on", default=None, callback=_parse_store_uri, help="Remote store to run on (ssh://[user@]host)")
@click.option(
    "--systems",
    default=None,
    callback=_parse_systems,
    help="Flake evaluating to a list of systems, or a system name [default: current system]",
)
@click.option("-o", "--out-link", default="result", help="Symlink to the results JSON")
@click.option("--no-link", is_flag=True, default=False, help="Do not create a results symlink")
@click.option(
    "--github-output/--no-github-output",
    default=lambda: "GITHUB_ACTION" in os.environ,
    show_default="when GITHUB_ACTION is set",
    help="Group log output for GitHub Actions",
)
@click.option(
    "--allow-empty-selection",
    is_flag=True,
    default=False,
    help="A subflake filter matching nothing gives an empty run instead of an error",
)
@click.option("--copy-inputs", is_flag=True, default=False, help="With --on, also copy all flake inputs to the remote")
@click.option("--copy-outputs", is_flag=True, default=False, help="With --on, copy all built paths back")
@click.option(
    "-d",
    "--include-all-dependencies",
    is_flag=True,
    default=False,
    help="Include the full closure of every output in the results",
)
@click.argument("flake_ref", default=".", callback=_parse_flake_url)
@click.argument("extra_args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def run(
    ctx,
    on,
    systems,
    out_link,
    no_link,
    github_output,
    allow_empty_selection,
    copy_inputs,
    copy_outputs,
    include_all_dependencies,
    flake_ref,
    extra_args,
):
    """
    Build all outputs of FLAKE_REF.

    FLAKE_REF may select a configuration and a subflake (`.#default.dev`).
    Arguments after `--` are passed to `nix build`.
    """
    console = get_console()

    if no_link and ctx.get_parameter_source("out_link") is ParameterSource.COMMANDLINE:
        raise click.UsageError("--out-link and --no-link are mutually exclusive")

    run_cmd = RunCommand(
        flake_ref=flake_ref,
        on=on,
        systems=systems,
        out_link=out_link,
        no_link=no_link,
        github_output=github_output,
        strict_selection=not allow_empty_selection,
        copy_inputs=copy_inputs,
        copy_outputs=copy_outputs,
        build_args=BuildStepArgs(
            include_all_dependencies=include_all_dependencies,
            extra_args=list(extra_args),
        ),
    )

    try:
        outcome = asyncio.run(run_ci(ctx.obj["nixcmd"], run_cmd))
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        _fail(e)

    if outcome.result is not None:
        console.print_results(outcome.result.statuses())
    if outcome.results_path is not None:
        click.echo(str(outcome.results_path))
    if not outcome.ok:
        sys.exit(1)


@cli.command("gh-matrix")
@click.option("--systems", required=True, help="Comma-separated list of systems")
@click.option(
    "--allow-empty-selection",
    is_flag=True,
    default=False,
    help="A subflake filter matching nothing gives an empty matrix instead of an error",
)
@click.argument("flake_ref", default=".", callback=_parse_flake_url)
@click.pass_context
def gh_matrix(ctx, systems, allow_empty_selection, flake_ref):
    """Print a GitHub Actions matrix of systems and subflakes as JSON."""
    system_list = [s.strip() for s in systems.split(",") if s.strip()]
    try:
        cfg = asyncio.run(resolve(ctx.obj["nixcmd"], flake_ref))
        rows = matrix(
            system_list,
            cfg.subflakes,
            only=cfg.selected_subflake,
            strict_selection=not allow_empty_selection,
        )
    except KeyboardInterrupt:
        get_console().print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        _fail(e)

    click.echo(json.dumps(matrix_json(rows)))


cli.add_command(gh_matrix, "matrix")


if __name__ == "__main__":
    cli()
