"""
StorageForge CLI Main Entry Point.

Command-line interface for planning, running and tearing down provisioning
runs described by an install plan file.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
import humanize
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from storageforge import __version__
from storageforge.core.config import StorageForgeConfig, load_config
from storageforge.core.plan import InstallPlan
from storageforge.core.session import ProvisionSession
from storageforge.provision.identity import export_records
from storageforge.provision.partitioning import build_disk_layouts
from storageforge.provision.paths import partition_path
from storageforge.provision.strategy import describe_execution

console = Console()

MIB = 1024 * 1024


def get_session(ctx: click.Context, dry_run: bool | None = None) -> ProvisionSession:
    """Get or create session from context."""
    if "session" not in ctx.obj:
        config = ctx.obj.get("config") or load_config()
        ctx.obj["session"] = ProvisionSession(config=config, dry_run=dry_run)
        ctx.call_on_close(ctx.obj["session"].close)
    return ctx.obj["session"]


def load_plan(plan_file: Path) -> InstallPlan:
    """Load a plan file, exiting with a readable message if it is invalid."""
    try:
        return InstallPlan.load(plan_file)
    except ValidationError as e:
        console.print(f"[red]Invalid plan {plan_file}:[/red]")
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"]) or "(plan)"
            console.print(f"  [red]{location}[/red]: {error['msg']}")
        sys.exit(2)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read plan {plan_file}: {e}[/red]")
        sys.exit(2)


def format_size(size_mib: int | None) -> str:
    if size_mib is None:
        return "Remaining"
    return humanize.naturalsize(size_mib * MIB, binary=True)


@click.group()
@click.version_option(version=__version__, prog_name="StorageForge")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    json_output: bool,
    quiet: bool,
) -> None:
    """
    StorageForge - Disk provisioning for fresh OS installs.

    Partitions disks, assembles RAID, LUKS and LVM layers, creates
    filesystems and mounts them under the install target.
    """
    ctx.ensure_object(dict)

    if config:
        ctx.obj["config"] = StorageForgeConfig.load(config)
    else:
        ctx.obj["config"] = load_config()

    if json_output or quiet:
        # Log lines on the console would corrupt machine-readable output
        ctx.obj["config"].logging.console_enabled = False

    ctx.obj["json_output"] = json_output
    ctx.obj["quiet"] = quiet


@cli.command("plan")
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def show_plan(ctx: click.Context, plan_file: Path) -> None:
    """Show the partition layout and steps a plan would execute."""
    plan = load_plan(plan_file)
    layouts = build_disk_layouts(plan)
    execution = describe_execution(plan)

    if ctx.obj.get("json_output", False):
        data = {
            "plan": plan.describe(),
            "layouts": {disk: [s.to_dict() for s in specs] for disk, specs in layouts.items()},
            "steps": execution.steps,
            "warnings": execution.warnings,
        }
        click.echo(json.dumps(data, indent=2, default=str))
        return

    table = Table(title=f"Partition Layout ({plan.strategy.kind}, {plan.boot_mode.value} boot)")
    table.add_column("Partition", style="cyan")
    table.add_column("Start", style="white")
    table.add_column("Size", style="green")
    table.add_column("Role", style="yellow")
    table.add_column("Name", style="magenta")

    for disk, specs in layouts.items():
        for spec in specs:
            table.add_row(
                partition_path(disk, spec.index),
                f"{spec.start_mib} MiB",
                format_size(spec.size_mib),
                spec.role.name,
                spec.name,
            )

    console.print(table)
    console.print(Panel(execution.get_plan_text(), title="Execution Plan"))


@cli.command("provision")
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--dry-run", is_flag=True, help="Print the commands without running them")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Skip the typed confirmation")
@click.option(
    "--identity-output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write captured device UUIDs to this JSON file",
)
@click.pass_context
def provision(
    ctx: click.Context,
    plan_file: Path,
    dry_run: bool,
    assume_yes: bool,
    identity_output: Path | None,
) -> None:
    """Wipe the plan's disks and build its storage stack."""
    plan = load_plan(plan_file)
    session = get_session(ctx, dry_run=dry_run or None)
    json_output = ctx.obj.get("json_output", False)
    quiet = ctx.obj.get("quiet", False)

    if session.dry_run:
        if not quiet and not json_output:
            console.print(Panel("[yellow]DRY RUN - No changes will be made[/yellow]"))
    elif not assume_yes and session.config.execution.require_confirmation:
        execution = describe_execution(plan)
        execution.confirmation_string = session.safety.generate_confirmation_string(plan.disks)
        console.print(Panel(execution.get_plan_text(), title="Provisioning Plan"))
        console.print(f"[red]⚠️  This will destroy all data on {', '.join(plan.disks)}[/red]")
        user_confirm = click.prompt("Confirmation", default="", show_default=False)

        if not session.safety.verify_confirmation(plan.disks, user_confirm):
            console.print("[red]Confirmation failed - operation cancelled[/red]")
            sys.exit(1)

    with console.status("Provisioning disks..."):
        result = session.provision(plan)

    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        if session.dry_run and not quiet:
            for command in result.commands:
                console.print(f"  [dim]$[/dim] {command.command.display()}")

        if result.success:
            table = Table(title="Device Identities")
            table.add_column("Role", style="cyan")
            table.add_column("Device", style="white")
            table.add_column("UUID", style="green")
            table.add_column("LUKS UUID", style="magenta")
            for record in result.records:
                table.add_row(
                    record.role, record.device_path, record.uuid, record.container_uuid or "-"
                )
            console.print(table)

            for warning in result.warnings:
                console.print(f"[yellow]⚠️  {warning}[/yellow]")
            console.print(
                f"[green]✓ Provisioned {plan.strategy.kind} on {', '.join(plan.disks)}"
                f" in {result.duration_seconds or 0:.1f}s[/green]"
            )
        else:
            console.print(
                Panel(
                    f"""[red]{result.error}[/red]

Kind: {result.error_kind}
Step: {result.failed_step or "-"}
Device: {result.failed_device or "-"}
Destructive commands issued: {result.destructive_command_count}""",
                    title="Provisioning Failed",
                    border_style="red",
                )
            )

    if not result.success:
        sys.exit(1)

    if identity_output:
        export_records(result.records, identity_output)
        if not quiet and not json_output:
            console.print(f"Device identities written to {identity_output}")


@cli.command("teardown")
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--dry-run", is_flag=True, help="Print the commands without running them")
@click.pass_context
def teardown(ctx: click.Context, plan_file: Path, dry_run: bool) -> None:
    """Unmount and deactivate everything a run of the plan left active."""
    plan = load_plan(plan_file)
    session = get_session(ctx, dry_run=dry_run or None)

    report = session.teardown(plan)

    if ctx.obj.get("json_output", False):
        data = {
            "clean": report.clean,
            "released": report.released,
            "failed": [r.to_dict() for r in report.failed],
        }
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        for released in report.released:
            console.print(f"[green]✓[/green] {released}")
        for failed in report.failed:
            console.print(f"[red]✗[/red] {failed.command.display()}: {failed.diagnostic}")

    if not report.clean:
        sys.exit(1)


@cli.command("config-show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show the active configuration."""
    config: StorageForgeConfig = ctx.obj["config"]

    if ctx.obj.get("json_output", False):
        click.echo(json.dumps(config.model_dump(mode="json"), indent=2))
        return

    table = Table(title="StorageForge Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")

    for section in ("logging", "execution"):
        for key, value in getattr(config, section).model_dump(mode="json").items():
            table.add_row(f"{section}.{key}", str(value))
    table.add_row("session_directory", str(config.session_directory))

    console.print(table)


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
