import typer
import logging
import sys
from typing import Optional
from nodepilot.config import Config
from nodepilot.commands import node, probe, rollout
from nodepilot.errors import NodePilotError
from nodepilot.logging import add_file_handler, quiet_noisy_loggers
from nodepilot.modules.settings import Settings, set_settings

app = typer.Typer(help="Cordon, drain, reboot and re-admit cluster nodes safely.")

debug_mode = False

# Configure logging
def setup_logging(debug_mode: bool = False, level: str = None):
    """Configure logging based on debug mode."""
    log_level = logging.DEBUG if debug_mode else getattr(logging, level or Config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=Config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler()
        ]
    )
    logging.getLogger().setLevel(log_level)
    quiet_noisy_loggers(debug_mode)

# Add all command groups
app.add_typer(node.app, name="node")
app.add_typer(rollout.app, name="rollout")
app.add_typer(probe.app, name="probe")

@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Bind port"),
):
    """Run the HTTP API."""
    import uvicorn
    uvicorn.run("nodepilot.api.main:app", host=host, port=port, log_level="debug" if debug_mode else "info")

# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
    settings_path: Optional[str] = typer.Option(None, "--settings", "-s", help="Path to settings YAML"),
    kubeconfig: Optional[str] = typer.Option(None, "--kubeconfig", help="Path to kubeconfig"),
):
    """nodepilot - node lifecycle operations."""
    global debug_mode
    debug_mode = debug

    try:
        Config.validate()
        settings = Settings.load(settings_path)
    except NodePilotError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)
    set_settings(settings)

    setup_logging(debug, settings.logging.level)
    if settings.logging.file:
        add_file_handler(
            logging.getLogger("nodepilot"),
            settings.logging.file,
            max_size_mb=settings.logging.max_size_mb,
            backup_count=settings.logging.backup_count,
        )
    if kubeconfig:
        Config.KUBECONFIG = kubeconfig
    if debug:
        logging.debug("Debug mode enabled")

if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        if debug_mode:
            import traceback
            logging.error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logging.error(f"Error: {e}")
        sys.exit(1)
