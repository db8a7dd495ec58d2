"""Configuration management for the nodepilot application."""
import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

class Config:
    """Application configuration with sensible defaults."""

    # Kubernetes API access
    KUBECONFIG: Optional[str] = os.getenv("NODEPILOT_KUBECONFIG") or None
    # Control plane node used to fetch a kubeconfig when none is available locally
    KUBECONFIG_NODE: Optional[str] = os.getenv("NODEPILOT_KUBECONFIG_NODE") or None

    # Node control
    TALOSCTL: str = os.getenv("NODEPILOT_TALOSCTL", "talosctl")
    TALOS_CONTEXT: Optional[str] = os.getenv("NODEPILOT_TALOS_CONTEXT") or None
    COMMAND_TIMEOUT: int = int(os.getenv("NODEPILOT_COMMAND_TIMEOUT", "120"))

    # Audit trail of mutating steps
    AUDIT_LOG: str = os.getenv("NODEPILOT_AUDIT_LOG", "~/.nodepilot/audit.log")

    # Logging
    LOG_LEVEL: str = os.getenv("NODEPILOT_LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "NODEPILOT_LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # HTTP API
    API_KEY: str = os.getenv("NODEPILOT_API_KEY", "nodepilot-secret")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        from .errors import ConfigurationError

        if not cls.TALOSCTL:
            raise ConfigurationError("Missing required configuration: NODEPILOT_TALOSCTL")
        if cls.COMMAND_TIMEOUT <= 0:
            raise ConfigurationError("NODEPILOT_COMMAND_TIMEOUT must be positive")
        if cls.LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"Invalid NODEPILOT_LOG_LEVEL: {cls.LOG_LEVEL}")

# Don't validate on import to allow for dynamic configuration
# Call Config.validate() explicitly when needed
