import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from kubernetes import config
from kubernetes.config.config_exception import ConfigException

from ..errors import ConfigurationError

logger = logging.getLogger("nodepilot.kube")


def _write_temp_kubeconfig(content: str, prefix: str) -> str:
    fd, temp_path = tempfile.mkstemp(prefix=prefix, suffix=".yaml")
    with os.fdopen(fd, "w") as f:
        f.write(content)
    os.chmod(temp_path, 0o600)
    return temp_path


def load_kubeconfig(path: str = None, node: Optional[str] = None, node_control=None) -> str:
    """
    Load a kubeconfig and return a description of where it came from.

    Sources are tried in this order:
    1. KUBECONFIG_CONTENT env var (CI/CD secrets)
    2. The explicit path
    3. KUBECONFIG / ~/.kube/config
    4. In-cluster service account
    5. A kubeconfig fetched from control plane node `node` through node control

    Raises:
        ConfigurationError: If no source works
    """
    # CI/CD secret-based loading
    if "KUBECONFIG_CONTENT" in os.environ:
        temp_path = _write_temp_kubeconfig(os.environ["KUBECONFIG_CONTENT"], "ci-kubeconfig-")
        config.load_kube_config(config_file=temp_path)
        return temp_path

    # Local path loading
    if path:
        resolved = Path(os.path.expanduser(path)).resolve()
        if not resolved.exists():
            raise ConfigurationError(f"Kubeconfig not found: {resolved}")
        config.load_kube_config(config_file=str(resolved))
        return str(resolved)

    try:
        config.load_kube_config()
        return os.environ.get("KUBECONFIG", "~/.kube/config")
    except (ConfigException, OSError) as e:
        logger.debug(f"No local kubeconfig: {e}")

    try:
        config.load_incluster_config()
        return "in-cluster"
    except ConfigException as e:
        logger.debug(f"Not running in a cluster: {e}")

    if node and node_control is not None:
        logger.debug(f"Fetching kubeconfig from control plane node {node}")
        fetched = node_control.kubeconfig(node)
        if not fetched.success:
            raise ConfigurationError(f"Failed to fetch kubeconfig from {node}: {fetched.output}")
        temp_path = _write_temp_kubeconfig(fetched.output, "nodepilot-kubeconfig-")
        config.load_kube_config(config_file=temp_path)
        return f"talos:{node}"

    raise ConfigurationError(
        "No kubeconfig available: set KUBECONFIG_CONTENT, pass --kubeconfig, "
        "or name a control plane node to fetch one from."
    )
