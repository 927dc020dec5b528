"""
buildplane — CLI entrypoint.

Usage:
    buildplane --help
    buildplane check
    buildplane coverage-report
    buildplane configure-deployment
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from buildplane import __version__
from buildplane.core import errors
from buildplane.core.config.properties import parse_assignments
from buildplane.core.observability.logging_config import setup_from_environment


@click.group()
@click.version_option(version=__version__, prog_name="buildplane")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to buildplane.yml (default: auto-detect).",
)
@click.option(
    "-P",
    "properties",
    multiple=True,
    metavar="KEY=VALUE",
    help="Project property; wins over the environment and the project file.",
)
@click.option(
    "-D",
    "system_properties",
    multiple=True,
    metavar="KEY=VALUE",
    help="System property; cas.test.* ones reach the test JVMs.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    properties: tuple[str, ...],
    system_properties: tuple[str, ...],
) -> None:
    """buildplane — verification, coverage and deployment for the JVM modules."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_from_environment(debug=debug, verbose=verbose, quiet=quiet)

    try:
        ctx.obj["overrides"] = parse_assignments(properties, option="-P")
        ctx.obj["system_properties"] = parse_assignments(system_properties, option="-D")
    except errors.ConfigurationError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


def _common(ctx: click.Context) -> dict:
    return {
        "config_path": ctx.obj.get("config_path"),
        "overrides": ctx.obj.get("overrides"),
        "system_properties": ctx.obj.get("system_properties"),
    }


def _print_verify(ctx: click.Context, result, title: str, dry_run: bool, mock: bool) -> None:
    """Shared rendering for check / coverage-report."""
    report = result.report
    assert report is not None
    assert result.project is not None

    mode_label = "[dry-run] " if dry_run else "[mock] " if mock else ""
    click.secho(f"\n⚡ {mode_label}{title} — {result.project.name}", fg="cyan", bold=True)
    click.echo(f"   Targets: {', '.join(result.targets)} | Tasks: {report.total}")
    click.echo()

    for name in report.completion_order:
        receipt = report.task_receipts[name]
        timing = f" ({receipt.duration_ms}ms)" if receipt.duration_ms else ""
        if receipt.ok:
            click.secho(f"   ✓ {name}", fg="green", nl=False)
            click.echo(timing)
            if ctx.obj.get("verbose") and receipt.output:
                for line in receipt.output.split("\n")[:10]:
                    click.echo(f"     │ {line}")
        elif receipt.failed:
            click.secho(f"   ✗ {name}", fg="red", nl=False)
            click.echo(timing)
            if receipt.error:
                for line in receipt.error.split("\n")[:5]:
                    click.echo(f"     │ {line}")
        else:
            click.secho(f"   ⊘ {name} ", fg="yellow", nl=False)
            click.echo(f"({receipt.output})")

    coverage = result.coverage
    if coverage:
        click.echo()
        click.secho(
            f"   📊 Coverage: {coverage['lines_covered']}/{coverage['lines_total']} lines "
            f"({coverage['percentage']:.2f}%)",
            fg="cyan",
        )
        click.echo(f"      {coverage['output_path']}")
        if coverage["missing"]:
            click.secho(f"      ⚠️  No report from: {', '.join(coverage['missing'])}", fg="yellow")

    click.echo()
    status_color = {"ok": "green", "partial": "yellow", "failed": "red"}.get(report.status, "white")
    click.secho(
        f"   Result: {report.succeeded}/{report.total} succeeded, {report.skipped} skipped",
        fg=status_color,
        bold=True,
    )
    click.echo()


def _verify_command(ctx, runner, title, as_json, dry_run, mock, workers) -> None:
    result = runner(dry_run=dry_run, mock_mode=mock, workers=workers, **_common(ctx))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    _print_verify(ctx, result, title, dry_run, mock)

    if not result.ok:
        click.secho(f"❌ {result.failure_message()}", fg="red")
        sys.exit(1)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--dry-run", is_flag=True, help="Plan but don't execute.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real execution).")
@click.option("--workers", "-w", default=1, type=click.IntRange(min=1), help="Parallel tasks.")
@click.pass_context
def check(ctx: click.Context, as_json: bool, dry_run: bool, mock: bool, workers: int) -> None:
    """Full verification: all module tests plus the unified coverage report."""
    from buildplane.core.use_cases.verify import run_check

    _verify_command(ctx, run_check, "check", as_json, dry_run, mock, workers)


@cli.command("coverage-report")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--dry-run", is_flag=True, help="Plan but don't execute.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real execution).")
@click.option("--workers", "-w", default=1, type=click.IntRange(min=1), help="Parallel tasks.")
@click.pass_context
def coverage_report(
    ctx: click.Context, as_json: bool, dry_run: bool, mock: bool, workers: int
) -> None:
    """Run the contributing test suites and write the unified coverage report."""
    from buildplane.core.use_cases.verify import run_coverage_report

    _verify_command(ctx, run_coverage_report, "coverage-report", as_json, dry_run, mock, workers)


@cli.command("configure-deployment")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real execution).")
@click.option("--timeout", type=float, default=None, help="Stop the script after N seconds.")
@click.pass_context
def configure_deployment(ctx: click.Context, as_json: bool, mock: bool, timeout: float | None) -> None:
    """Hand the recorded build outputs to .ci/configure_deployment.sh."""
    from buildplane.core.use_cases.deploy import configure_deployment as run_configure

    result = run_configure(
        config_path=ctx.obj.get("config_path"),
        overrides=ctx.obj.get("overrides"),
        mock_mode=mock,
        timeout=timeout,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    outcome = result.outcome
    if outcome is not None and not ctx.obj.get("quiet"):
        click.secho("\n🚀 configure-deployment", fg="cyan", bold=True)
        click.echo(f"   Phases: {' → '.join(p.value for p in outcome.transitions)}")
        if outcome.build_dir:
            click.echo(f"   Build dir: {outcome.build_dir}")
        if outcome.environment_keys:
            click.echo(f"   Environment: {', '.join(outcome.environment_keys)}")
        click.echo()

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho("✅ Deployment configured", fg="green", bold=True)
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def modules(ctx: click.Context, as_json: bool) -> None:
    """List the selected modules and the conventions applied to them."""
    from buildplane.core.use_cases.modules import list_modules

    result = list_modules(**_common(ctx))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    assert result.project is not None
    click.secho(f"\n📋 {result.project.name}", fg="cyan", bold=True)
    click.secho(f"   Selected: {len(result.selected)}", fg="white", bold=True)
    for mod in result.selected:
        conv = result.conventions.get(mod.name)
        coords = f" {conv.group}:{mod.name}:{conv.version}" if conv else ""
        tests = "" if mod.has_tests else " (no tests)"
        click.echo(f"     • {mod.name}{coords}{tests}  → {mod.directory}")
        if conv and ctx.obj.get("verbose"):
            for key, value in sorted(conv.test_system_properties.items()):
                click.echo(f"         -D{key}={value}")

    if result.excluded:
        click.echo(f"   Not built: {', '.join(result.excluded)}")

    for warn in result.warnings:
        click.secho(f"   ⚠️  {warn}", fg="yellow")
    click.echo()


@cli.command()
@click.argument("targets", nargs=-1)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def tasks(ctx: click.Context, targets: tuple[str, ...], as_json: bool) -> None:
    """Print the resolved task order for TARGETS (default: check)."""
    from buildplane.core.use_cases.verify import describe_plan

    result = describe_plan(targets=list(targets) or None, **_common(ctx))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    plan = result.plan
    assert plan is not None
    click.secho(f"\n🧭 {' '.join(result.targets)}", fg="cyan", bold=True)
    for i, task in enumerate(plan.tasks, start=1):
        notes = []
        if not task.enabled:
            notes.append("disabled")
        if task.finalized_by:
            notes.append(f"finalized by {', '.join(task.finalized_by)}")
        suffix = f"  ({'; '.join(notes)})" if notes else ""
        click.echo(f"   {i:>2}. {task.name}{suffix}")
    click.echo()


@cli.command("record-build")
@click.argument("module")
@click.option("--image-name", required=True, help="Image the build produced.")
@click.option("--image-tag", default=None, help="Tag of the produced image.")
@click.option("--reset", is_flag=True, help="Forget previous build results first.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def record_build(
    ctx: click.Context,
    module: str,
    image_name: str,
    image_tag: str | None,
    reset: bool,
    as_json: bool,
) -> None:
    """Record the image MODULE's build produced (write-once)."""
    from buildplane.core.use_cases.deploy import record_build as run_record

    result = run_record(
        module,
        image_name,
        image_tag,
        config_path=ctx.obj.get("config_path"),
        reset=reset,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    label = "Recorded" if result.stored else "Already recorded"
    tag = f":{image_tag}" if image_tag else ""
    click.secho(f"💾 {label} {module} → {image_name}{tag}", fg="cyan")


@cli.group()
def config() -> None:
    """Project configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate buildplane.yml configuration."""
    from buildplane.core.use_cases.config_check import check_config

    result = check_config(
        config_path=ctx.obj.get("config_path"),
        overrides=ctx.obj.get("overrides"),
        environ=os.environ,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.project is not None
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Project: {result.project.name}")
        click.echo(f"   Modules: {len(result.project.modules)}")
        click.echo(f"   Coverage contributors: {', '.join(result.project.coverage.contributors)}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


if __name__ == "__main__":
    cli()
