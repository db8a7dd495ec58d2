from typing import Optional

import typer

from nodepilot.commands import exit_on_error, print_json, print_progress, with_overrides
from nodepilot.models import OperationKind, RollingNodeInfo
from nodepilot.modules import build_operation, get_scheduler, resolve_address
from nodepilot.modules.cordon import CordonController
from nodepilot.modules.settings import get_settings

app = typer.Typer(help="Cordon, uncordon, drain or reboot a single node")


def _report(result, as_json: bool) -> None:
    if as_json:
        print_json(result.to_dict())
    elif result.success:
        typer.echo(f"✅ {result.message}")
    else:
        typer.echo(f"❌ {result.message}", err=True)
    for warning in result.warnings:
        typer.echo(f"⚠️  {warning}", err=True)
    if not result.success:
        raise typer.Exit(code=1)


@app.command("cordon")
@exit_on_error
def cordon(name: str = typer.Argument(..., help="Node name")):
    """Mark a node unschedulable."""
    result = CordonController(get_scheduler()).cordon(name)
    if not result.success:
        typer.echo(f"❌ Failed to cordon {name}: {result.error}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"✅ Cordoned {name}")


@app.command("uncordon")
@exit_on_error
def uncordon(name: str = typer.Argument(..., help="Node name")):
    """Mark a node schedulable again."""
    result = CordonController(get_scheduler()).uncordon(name)
    if not result.success:
        typer.echo(f"❌ Failed to uncordon {name}: {result.error}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"✅ Uncordoned {name}")


@app.command("drain")
@exit_on_error
def drain(
    name: str = typer.Argument(..., help="Node name"),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Eviction retry budget per pod, in seconds"),
    grace_period: Optional[int] = typer.Option(None, "--grace-period", help="Grace period for force deletes"),
    force: Optional[bool] = typer.Option(None, "--force/--no-force", help="Force delete unmanaged pods that cannot be evicted"),
    ignore_daemonsets: Optional[bool] = typer.Option(None, "--ignore-daemonsets/--no-ignore-daemonsets"),
    delete_emptydir_data: Optional[bool] = typer.Option(None, "--delete-emptydir-data/--no-delete-emptydir-data"),
    uncordon_after: bool = typer.Option(False, "--uncordon", help="Uncordon the node once drained"),
    strict: Optional[bool] = typer.Option(None, "--strict-pdb/--no-strict-pdb", help="Refuse to start when PDBs would block"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Cordon a node and evict its pods. The node stays cordoned unless --uncordon is given."""
    settings = get_settings()
    options = with_overrides(
        settings.drain.to_options(),
        per_pod_timeout_seconds=timeout,
        grace_period_seconds=grace_period,
        force_delete_unmanaged=force,
        ignore_daemonsets=ignore_daemonsets,
        delete_emptydir_data=delete_emptydir_data,
        strict_pdb_check=strict,
        uncordon_after_reboot=uncordon_after,
    )
    if not as_json:
        typer.echo(f"🚧 Draining {name}...")
    node = RollingNodeInfo(hostname=name, address=name)
    result = build_operation(settings).run(
        node, OperationKind.DRAIN, options=options, progress=None if as_json else print_progress
    )
    _report(result, as_json)


@app.command("reboot")
@exit_on_error
def reboot(
    name: str = typer.Argument(..., help="Node name"),
    address: Optional[str] = typer.Option(None, "--address", help="Address for node control (defaults to the node's InternalIP)"),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Eviction retry budget per pod, in seconds"),
    ready_timeout: Optional[int] = typer.Option(None, "--ready-timeout", help="Seconds to wait for Ready after reboot"),
    force: Optional[bool] = typer.Option(None, "--force/--no-force", help="Force delete unmanaged pods that cannot be evicted"),
    wait: Optional[bool] = typer.Option(None, "--wait/--no-wait", help="Wait for the node to become Ready"),
    uncordon_after: Optional[bool] = typer.Option(None, "--uncordon/--no-uncordon", help="Uncordon once Ready"),
    strict: Optional[bool] = typer.Option(None, "--strict-pdb/--no-strict-pdb", help="Refuse to start when PDBs would block"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Cordon, drain, reboot, wait for Ready and uncordon a node."""
    settings = get_settings()
    options = with_overrides(
        settings.drain.to_options(),
        per_pod_timeout_seconds=timeout,
        post_reboot_timeout_seconds=ready_timeout,
        force_delete_unmanaged=force,
        wait_for_node_ready=wait,
        uncordon_after_reboot=uncordon_after,
        strict_pdb_check=strict,
    )
    node = RollingNodeInfo(hostname=name, address=resolve_address(name, address))
    if not as_json:
        typer.echo(f"🔄 Rebooting {name} ({node.address})...")
    result = build_operation(settings).run(
        node, OperationKind.REBOOT, options=options, progress=None if as_json else print_progress
    )
    _report(result, as_json)
