import typer

from nodepilot.commands import exit_on_error, print_json
from nodepilot.models import NodeCondition
from nodepilot.modules import get_scheduler
from nodepilot.modules.probe import ScheduleProbe

app = typer.Typer(help="Read-only cluster health checks")


@app.command("pods")
@exit_on_error
def pods(as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON")):
    """Report crashing, image-pull failing and pending pods."""
    info = ScheduleProbe(get_scheduler()).pod_health()
    if as_json:
        print_json(info.to_dict())
    else:
        typer.echo(f"📦 {info.total_pods} pods: {info.summary()}")
        for pod in info.crashing + info.image_pull_errors + info.pending:
            typer.echo(f"   {pod.namespace}/{pod.name}: {pod.state} (restarts: {pod.restart_count})")
    if info.has_issues():
        raise typer.Exit(code=1)


@app.command("pdbs")
@exit_on_error
def pdbs(as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON")):
    """List PodDisruptionBudgets and flag the ones that would block a drain."""
    info = ScheduleProbe(get_scheduler()).pdb_health()
    if as_json:
        print_json(info.to_dict())
        return
    typer.echo(f"🛡️  {info.summary()}")
    for pdb in info.pdbs:
        marker = "⛔" if pdb.would_block_drain else "  "
        typer.echo(
            f"   {marker} {pdb.namespace}/{pdb.name}: {pdb.current_healthy}/{pdb.desired_healthy} healthy, "
            f"{pdb.disruptions_allowed} disruptions allowed"
        )


@app.command("ready")
@exit_on_error
def ready(name: str = typer.Argument(..., help="Node name")):
    """Show a node's Ready condition; exits 1 unless it is Ready."""
    condition = ScheduleProbe(get_scheduler()).node_ready_condition(name)
    if condition != NodeCondition.READY:
        typer.echo(f"❌ {name}: {condition.value}")
        raise typer.Exit(code=1)
    typer.echo(f"✅ {name}: {condition.value}")
