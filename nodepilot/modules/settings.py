"""Settings file handling.

Settings are loaded with the following precedence:
1. Explicitly passed path (--settings)
2. The first existing file in DEFAULT_SETTINGS_PATHS
3. Default values
"""
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..config import Config
from ..errors import ConfigurationError
from ..models import DrainOptions, FailurePolicy, RollingNodeInfo, Timings

logger = logging.getLogger("nodepilot.settings")

DEFAULT_SETTINGS_PATHS = [
    Path("/etc/nodepilot/settings.yaml"),
    Path("~/.config/nodepilot/settings.yaml").expanduser(),
    Path("nodepilot.yaml").absolute(),
]


class DrainSettings(BaseModel):
    """Drain and reboot behaviour."""
    per_pod_timeout_seconds: int = Field(default=30, ge=1, description="Eviction retry budget per pod")
    grace_period_seconds: Optional[int] = Field(
        default=None, ge=0, description="Grace period for force deletes (0 if unset)"
    )
    force_delete_unmanaged: bool = Field(default=False, description="Force delete unmanaged pods that cannot be evicted")
    ignore_daemonsets: bool = Field(default=True, description="Leave DaemonSet pods in place")
    delete_emptydir_data: bool = Field(default=True, description="Evict pods with emptyDir volumes")
    wait_for_node_ready: bool = Field(default=True, description="Wait for Ready after reboot")
    post_reboot_timeout_seconds: int = Field(default=300, ge=1, description="Ready wait ceiling")
    uncordon_after_reboot: bool = Field(default=True, description="Uncordon once the node is healthy")
    strict_pdb_check: bool = Field(default=False, description="Refuse to start when PDBs would block the drain")

    def to_options(self) -> DrainOptions:
        return DrainOptions(**self.model_dump())


class TimingSettings(BaseModel):
    """Poll intervals and backoffs, in seconds."""
    eviction_interval: float = Field(default=0.5, ge=0)
    pdb_retry_backoff: float = Field(default=2.0, ge=0)
    ready_poll_interval: float = Field(default=5.0, ge=0)
    disconnect_poll_interval: float = Field(default=2.0, ge=0)
    disconnect_timeout: float = Field(default=60.0, ge=0)

    def to_timings(self) -> Timings:
        return Timings(**self.model_dump())


class RolloutSettings(BaseModel):
    """Fleet rollout behaviour."""
    policy: FailurePolicy = Field(default=FailurePolicy.CONTINUE, description="continue or abort after a failed node")
    pdb_precheck: bool = Field(default=True, description="Report blocking PDBs before each node")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: str = Field(default_factory=lambda: Config.LOG_LEVEL, description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
    file: Optional[str] = Field(default=None, description="Path to log file (if None, logs to stdout only)")
    max_size_mb: int = Field(default=100, ge=1, description="Maximum log file size in MB before rotation")
    backup_count: int = Field(default=5, ge=0, description="Number of backup log files to keep")

    @field_validator('level')
    @classmethod
    def check_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid log level: {v}")
        return level


class Settings(BaseModel):
    """nodepilot settings."""
    model_config = ConfigDict(extra="ignore")

    drain: DrainSettings = Field(default_factory=DrainSettings)
    timings: TimingSettings = Field(default_factory=TimingSettings)
    rollout: RolloutSettings = Field(default_factory=RolloutSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> 'Settings':
        """Load settings from a YAML file, falling back to defaults.

        Raises:
            ConfigurationError: If an explicit path does not exist or the
                file content is invalid
        """
        data: Dict[str, Any] = {}
        if path:
            path = Path(path).expanduser().absolute()
            if not path.exists():
                raise ConfigurationError(f"Settings file not found: {path}")
            data = cls._load_file(path)
        else:
            for candidate in DEFAULT_SETTINGS_PATHS:
                candidate = candidate.expanduser().absolute()
                if candidate.exists():
                    data = cls._load_file(candidate)
                    break

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings: {e}") from e

    @classmethod
    def _load_file(cls, path: Path) -> Dict[str, Any]:
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load settings from {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {path} must contain a mapping")
        logger.debug(f"Loaded settings from {path}")
        return data

    def save(self, path: Union[str, Path]) -> None:
        """Save settings to a YAML file."""
        path = Path(path).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.safe_dump(self.model_dump(mode="json", exclude_none=True), f, default_flow_style=False, sort_keys=False)


# (hostname, explicit address or None) -> address node control should use
AddressResolver = Callable[[str, Optional[str]], str]


class FleetNode(BaseModel):
    """One entry of a fleet file."""
    hostname: str
    address: Optional[str] = None
    control_plane: bool = False
    order: Optional[int] = None

    def to_node_info(self, resolve: Optional[AddressResolver] = None) -> RollingNodeInfo:
        """Without an address, resolve(hostname, None) picks one, else the hostname is used."""
        if self.address or resolve is None:
            address = self.address or self.hostname
        else:
            address = resolve(self.hostname, None)
        return RollingNodeInfo(
            hostname=self.hostname,
            address=address,
            is_control_plane=self.control_plane,
            selection_order=self.order,
        )


def load_fleet(path: Union[str, Path], resolve: Optional[AddressResolver] = None) -> List[RollingNodeInfo]:
    """Load the node list for a rollout from a YAML file.

    Entries without an address go through resolve when one is given.

    The file holds either a list of nodes or a mapping with a ``nodes`` key::

        nodes:
          - hostname: worker-1
            address: 10.5.0.3
            order: 1
          - hostname: cp-1
            address: 10.5.0.2
            control_plane: true
    """
    path = Path(path).expanduser()
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or []
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load fleet file {path}: {e}") from e

    entries = data.get('nodes', []) if isinstance(data, dict) else data
    if not isinstance(entries, list) or not entries:
        raise ConfigurationError(f"Fleet file {path} contains no nodes")
    try:
        return [FleetNode(**entry).to_node_info(resolve) for entry in entries]
    except (TypeError, ValidationError) as e:
        raise ConfigurationError(f"Invalid fleet file {path}: {e}") from e


# Global settings instance
_settings: Optional[Settings] = None


def get_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load(path)
    return _settings


def set_settings(settings: Optional[Settings]) -> None:
    """Set (or reset with None) the global settings instance."""
    global _settings
    _settings = settings
