from typing import List, Optional

import typer

from nodepilot.commands import exit_on_error, print_json, print_progress, with_overrides
from nodepilot.errors import ConfigurationError
from nodepilot.models import FailurePolicy, OperationKind, OutcomeStatus, RollingNodeInfo, RolloutStatus
from nodepilot.modules import build_orchestrator, resolve_address
from nodepilot.modules.settings import get_settings, load_fleet

app = typer.Typer(help="Rolling drain or reboot across several nodes, one at a time")

STATUS_ICONS = {
    OutcomeStatus.SUCCEEDED: "✅",
    OutcomeStatus.FAILED: "❌",
    OutcomeStatus.SKIPPED: "⏭️ ",
}


def parse_node(value: str) -> RollingNodeInfo:
    """Parse ``hostname[=address][,cp][,order=N]``.

    Without an address the node's InternalIP is looked up.
    """
    parts = [p.strip() for p in value.split(",") if p.strip()]
    if not parts:
        raise ConfigurationError(f"Invalid node '{value}'")

    hostname, _, address = parts[0].partition("=")
    if not hostname:
        raise ConfigurationError(f"Invalid node '{value}': missing hostname")

    is_control_plane = False
    order = None
    for flag in parts[1:]:
        if flag in ("cp", "control-plane"):
            is_control_plane = True
        elif flag.startswith("order="):
            try:
                order = int(flag[len("order="):])
            except ValueError:
                raise ConfigurationError(f"Invalid order in node '{value}'")
        else:
            raise ConfigurationError(f"Unknown node flag '{flag}' in '{value}'")

    return RollingNodeInfo(
        hostname=hostname,
        address=resolve_address(hostname, address or None),
        is_control_plane=is_control_plane,
        selection_order=order,
    )


def _rollout(
    kind: OperationKind,
    nodes: Optional[List[str]],
    fleet: Optional[str],
    policy: Optional[FailurePolicy],
    overrides: dict,
    as_json: bool,
) -> None:
    if bool(nodes) == bool(fleet):
        raise ConfigurationError("Pass either --node (one or more) or --fleet")
    targets = load_fleet(fleet, resolve_address) if fleet else [parse_node(n) for n in nodes]

    settings = get_settings()
    options = with_overrides(settings.drain.to_options(), **overrides)
    orchestrator = build_orchestrator(settings, policy=policy)

    if not as_json:
        typer.echo(f"🔁 Rolling {kind.value} of {len(targets)} nodes ({orchestrator.policy.value} on failure)")
    run = orchestrator.run(targets, options=options, kind=kind, progress=None if as_json else print_progress)

    if as_json:
        print_json(run.to_dict())
    else:
        typer.echo("")
        for outcome in run.outcomes:
            typer.echo(f"{STATUS_ICONS[outcome.status]} {outcome.node.hostname}: {outcome.message}")
        typer.echo(f"Rollout {run.status.value}")

    if run.status != RolloutStatus.COMPLETED or run.failed:
        raise typer.Exit(code=1)


@app.command("drain")
@exit_on_error
def drain(
    node: Optional[List[str]] = typer.Option(None, "--node", "-n", help="hostname[=address][,cp][,order=N], repeatable"),
    fleet: Optional[str] = typer.Option(None, "--fleet", "-f", help="YAML file listing the nodes"),
    policy: Optional[FailurePolicy] = typer.Option(None, "--policy", help="What to do after a node fails"),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Eviction retry budget per pod, in seconds"),
    force: Optional[bool] = typer.Option(None, "--force/--no-force", help="Force delete unmanaged pods that cannot be evicted"),
    as_json: bool = typer.Option(False, "--json", help="Print the run as JSON"),
):
    """Cordon, drain and uncordon each node in turn."""
    _rollout(
        OperationKind.DRAIN, node, fleet, policy,
        dict(per_pod_timeout_seconds=timeout, force_delete_unmanaged=force),
        as_json,
    )


@app.command("reboot")
@exit_on_error
def reboot(
    node: Optional[List[str]] = typer.Option(None, "--node", "-n", help="hostname[=address][,cp][,order=N], repeatable"),
    fleet: Optional[str] = typer.Option(None, "--fleet", "-f", help="YAML file listing the nodes"),
    policy: Optional[FailurePolicy] = typer.Option(None, "--policy", help="What to do after a node fails"),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Eviction retry budget per pod, in seconds"),
    ready_timeout: Optional[int] = typer.Option(None, "--ready-timeout", help="Seconds to wait for Ready after each reboot"),
    force: Optional[bool] = typer.Option(None, "--force/--no-force", help="Force delete unmanaged pods that cannot be evicted"),
    as_json: bool = typer.Option(False, "--json", help="Print the run as JSON"),
):
    """Cordon, drain, reboot, wait for Ready and uncordon each node in turn."""
    _rollout(
        OperationKind.REBOOT, node, fleet, policy,
        dict(
            per_pod_timeout_seconds=timeout,
            post_reboot_timeout_seconds=ready_timeout,
            force_delete_unmanaged=force,
        ),
        as_json,
    )
