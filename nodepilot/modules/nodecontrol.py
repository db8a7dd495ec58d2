"""Node control through the talosctl binary.

Reboot, shutdown and config apply are fire-and-forget here; waiting for the
node to come back is the ReadinessWaiter's job.
"""
import logging
import subprocess
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..config import Config
from ..errors import ConfigurationError

logger = logging.getLogger("nodepilot.nodecontrol")


@dataclass
class ControlResult:
    """Outcome of a node control command."""
    success: bool
    output: str


class NodeControl:
    """Thin wrapper around talosctl commands."""

    def __init__(
        self,
        talosctl: Optional[str] = None,
        context: Optional[str] = None,
        timeout: Optional[int] = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        """Initialize the node control adapter.

        Args:
            talosctl: Path to the talosctl binary
            context: talosconfig context to use, the current one if omitted
            timeout: Per-command timeout in seconds
            runner: subprocess.run compatible callable, replaced in tests
        """
        self.talosctl = talosctl or Config.TALOSCTL
        self.context = context if context is not None else Config.TALOS_CONTEXT
        self.timeout = timeout or Config.COMMAND_TIMEOUT
        self.runner = runner

    def _run(self, args: List[str], context: Optional[str] = None) -> ControlResult:
        cmd = [self.talosctl]
        context = context or self.context
        if context:
            cmd += ['--context', context]
        cmd += args

        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = self.runner(cmd, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as e:
            raise ConfigurationError(f"talosctl not found: {self.talosctl}") from e
        except subprocess.TimeoutExpired:
            return ControlResult(False, f"talosctl {args[0]} timed out after {self.timeout}s")

        if result.returncode != 0:
            error = (result.stderr or '').strip() or f"exit status {result.returncode}"
            logger.warning(f"talosctl {args[0]} failed: {error}")
            return ControlResult(False, f"talosctl failed: {error}")
        return ControlResult(True, (result.stdout or '').strip())

    def reboot(self, node: str) -> ControlResult:
        """Ask the node to reboot without waiting for it to return."""
        return self._run(['reboot', '--nodes', node, '--wait=false'])

    def shutdown(self, node: str) -> ControlResult:
        return self._run(['shutdown', '--nodes', node, '--wait=false'])

    def get_version(self, node: str) -> ControlResult:
        return self._run(['version', '--nodes', node, '--short'])

    def get_etcd_status(self, context: Optional[str] = None) -> ControlResult:
        """etcd member status as seen from the given (or configured) context."""
        return self._run(['etcd', 'status'], context=context)

    def apply_config(self, node: str, config_path: str, insecure: bool = False) -> ControlResult:
        """Apply a machine configuration file to a node."""
        args = ['apply-config', '--nodes', node, '--file', config_path]
        if insecure:
            args.append('--insecure')
        return self._run(args)

    def kubeconfig(self, node: str) -> ControlResult:
        """Fetch an admin kubeconfig from a control plane node; written to stdout."""
        return self._run(['kubeconfig', '--nodes', node, '--force', '-'])
