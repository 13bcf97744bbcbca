"""
hostconverge — CLI entrypoint.

Usage:
    hostconverge list
    hostconverge plan motioneye
    sudo hostconverge install samba alice
    sudo MAVPROXY_GUI=1 hostconverge install mavproxy
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from hostconverge import __version__
from hostconverge.core.models.state import Decision
from hostconverge.core.observability.logging_config import resolve_level, setup_logging

_DECISION_STYLE = {
    Decision.APPLIED: ("✓", "green"),
    Decision.SKIPPED: ("⊘", "white"),
    Decision.PLANNED: ("→", "cyan"),
    Decision.WARNED: ("⚠", "yellow"),
    Decision.FAILED: ("✗", "red"),
}


@click.group()
@click.version_option(version=__version__, prog_name="hostconverge")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Only show errors.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to a YAML config file (default: $HC_CONFIG).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """hostconverge — converge a host to a known-good installation."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        flag_level = "DEBUG"
    elif verbose:
        flag_level = "INFO"
    elif quiet:
        flag_level = "ERROR"
    else:
        flag_level = None

    setup_logging(
        level=resolve_level(flag_level),
        log_file=os.environ.get("HC_LOG_FILE"),
        log_file_level=os.environ.get("HC_LOG_FILE_LEVEL"),
    )


@cli.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def list_installers(as_json: bool) -> None:
    """List available installers."""
    from hostconverge.core.installers import INSTALLERS

    if as_json:
        data = [
            {"name": inst.name, "description": inst.description, "takes_target_user": inst.takes_target_user}
            for inst in INSTALLERS.values()
        ]
        click.echo(json.dumps(data, indent=2))
        return

    for inst in INSTALLERS.values():
        usage = f"{inst.name} [TARGET_USER]" if inst.takes_target_user else inst.name
        click.secho(f"   {usage:<26}", fg="cyan", nl=False)
        click.echo(inst.description)


@cli.command()
@click.argument("name")
@click.argument("target_user", required=False)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(ctx: click.Context, name: str, target_user: str | None, as_json: bool) -> None:
    """Show what an install would change, without changing anything.

    Examples:

        hostconverge plan motioneye

        hostconverge plan samba alice --json
    """
    from hostconverge.core.use_cases.install import run_installer

    result = run_installer(
        name,
        target_user=target_user,
        dry_run=True,
        config_path=ctx.obj.get("config_path"),
    )
    _render(ctx, result, as_json)


@cli.command()
@click.argument("name")
@click.argument("target_user", required=False)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--no-lock", is_flag=True, help="Don't take the per-installer run lock.")
@click.option("--skip-root-check", is_flag=True, help="Run even when not root (containers, tests).")
@click.pass_context
def install(
    ctx: click.Context,
    name: str,
    target_user: str | None,
    as_json: bool,
    no_lock: bool,
    skip_root_check: bool,
) -> None:
    """Converge this host to an installer's plan.

    Safe to re-run: steps that are already satisfied are skipped.

    Examples:

        sudo hostconverge install mavproxy

        sudo SMB_PASSWORD=... hostconverge install samba alice
    """
    from hostconverge.core.use_cases.install import run_installer

    result = run_installer(
        name,
        target_user=target_user,
        config_path=ctx.obj.get("config_path"),
        use_lock=not no_lock,
        require_root=not skip_root_check,
    )
    _render(ctx, result, as_json)


def _render(ctx: click.Context, result, as_json: bool) -> None:
    """Print an InstallResult and exit non-zero on failure."""
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    report = result.report
    if report is None:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    quiet = ctx.obj.get("quiet", False)
    verbose = ctx.obj.get("verbose", False)
    mode_label = "[dry-run] " if report.dry_run else ""

    if not quiet:
        click.secho(f"\n⚡ {mode_label}{report.plan} — {report.run_id}", fg="cyan", bold=True)
        click.echo()
        for entry in report.log.entries:
            marker, color = _DECISION_STYLE.get(entry.decision, ("?", "white"))
            click.secho(f"   {marker} {entry.step_name}", fg=color, nl=False)
            timing = f" ({entry.duration_ms}ms)" if entry.duration_ms else ""
            click.echo(f" {entry.decision.value}{timing}")
            if entry.detail and (verbose or entry.decision != Decision.SKIPPED):
                for line in entry.detail.split("\n")[:5]:
                    click.echo(f"     │ {line}")
            for warning in entry.warnings:
                click.secho(f"     ⚠ {warning}", fg="yellow")

    if result.error:
        click.echo(err=True)
        click.secho(f"❌ {result.error}", fg="red", bold=True, err=True)
        sys.exit(1)

    if not quiet:
        click.echo()
        status_color = {"ok": "green", "degraded": "yellow"}.get(report.status, "white")
        if report.dry_run:
            summary = f"{len(report.planned)} step(s) would change, {len(report.skipped)} satisfied"
        else:
            summary = f"{len(report.applied)} applied, {len(report.skipped)} already satisfied"
        click.secho(f"   Result: {report.status} — {summary}", fg=status_color, bold=True)
        for note in report.notes:
            click.echo(f"   {note}")
        click.echo()


if __name__ == "__main__":
    cli()
