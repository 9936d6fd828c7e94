"""Driver configuration.

Settings are merged from three sources, later ones winning:
1. Config file (YAML): --config, else $KUBE_DRIVER_CONFIG, else none
2. Environment: KUBE_DRIVER_NAMESPACE, KUBE_DRIVER_CONTEXT
   ($KUBECONFIG is read by the kubernetes client itself)
3. CLI flags (applied by cli.py through DriverConfig.apply_overrides)

Example config file:

    namespace: demo
    context: kind-dev
    ready_timeout: 30
    ready_condition: ready
    grace_period: 5
    wait_for_deletion: true
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from conditions import READY_CONDITIONS

CONFIG_ENV_VAR = 'KUBE_DRIVER_CONFIG'


class ConfigError(Exception):
    """Configuration error."""


@dataclass
class DriverConfig:
    """Connection settings and lifecycle budgets for one run.

    Attributes:
        namespace: Namespace the resource handle is bound to
        kubeconfig: Path to kubeconfig (None = client default / $KUBECONFIG)
        context: kubeconfig context (None = current context)
        in_cluster: Use the pod's service account instead of a kubeconfig
        ready_timeout: Seconds to wait for the readiness condition
        ready_condition: Name of the readiness predicate (see READY_CONDITIONS)
        delete_timeout: Seconds to wait for deletion to finish (wait_for_deletion)
        poll_interval: Seconds between observations while waiting
        request_timeout: Per-request client timeout in seconds
        grace_period: Deletion grace period override (None = server default)
        wait_for_deletion: After a deletion is initiated, wait until the object is gone
        report_dir: Directory for JSON/markdown run reports (None = no files)
    """
    namespace: str = 'default'
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    in_cluster: bool = False
    ready_timeout: float = 15.0
    ready_condition: str = 'running'
    delete_timeout: float = 60.0
    poll_interval: float = 1.0
    request_timeout: float = 10.0
    grace_period: Optional[int] = None
    wait_for_deletion: bool = False
    report_dir: Optional[Path] = None

    def __post_init__(self):
        if isinstance(self.report_dir, str):
            self.report_dir = Path(self.report_dir)
        self.validate()

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigError: If any value is out of range
        """
        if not self.namespace:
            raise ConfigError("namespace must not be empty")
        for name in ('ready_timeout', 'delete_timeout', 'poll_interval', 'request_timeout'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                raise ConfigError(f"{name} must be a positive number, got {value!r}")
        if not isinstance(self.ready_condition, str) or self.ready_condition not in READY_CONDITIONS:
            raise ConfigError(
                f"ready_condition must be one of {sorted(READY_CONDITIONS)}, got {self.ready_condition!r}"
            )
        if self.grace_period is not None and (not isinstance(self.grace_period, int) or self.grace_period < 0):
            raise ConfigError(f"grace_period must be a non-negative integer, got {self.grace_period!r}")

    def apply_overrides(self, **overrides: Any) -> 'DriverConfig':
        """Set every override that is not None, then revalidate."""
        known = {f.name for f in fields(self)}
        for key, value in overrides.items():
            if key not in known:
                raise ConfigError(f"Unknown config key: {key}")
            if value is not None:
                setattr(self, key, Path(value) if key == 'report_dir' else value)
        self.validate()
        return self

    @classmethod
    def from_dict(cls, data: dict) -> 'DriverConfig':
        """Create DriverConfig from a parsed config file.

        Raises:
            ConfigError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        try:
            return cls(**data)
        except TypeError as e:
            raise ConfigError(f"Invalid config: {e}") from e


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def get_config_path(explicit: Optional[Path] = None) -> Optional[Path]:
    """Locate the config file.

    Resolution order:
    1. Explicit path (--config)
    2. $KUBE_DRIVER_CONFIG

    Raises:
        ConfigError: If a named file does not exist
    """
    if explicit is not None:
        path = Path(explicit)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        return path

    if env_path := os.environ.get(CONFIG_ENV_VAR):
        path = Path(env_path)
        if path.exists():
            return path
        raise ConfigError(f"{CONFIG_ENV_VAR}={env_path} does not exist")

    return None


def load_config(path: Optional[Path] = None) -> DriverConfig:
    """Load configuration from file and environment.

    Args:
        path: Explicit config file (otherwise $KUBE_DRIVER_CONFIG, otherwise defaults)
    """
    config_path = get_config_path(path)
    data = _parse_yaml(config_path) if config_path else {}

    # Environment beats file
    if namespace := os.environ.get('KUBE_DRIVER_NAMESPACE'):
        data['namespace'] = namespace
    if context := os.environ.get('KUBE_DRIVER_CONTEXT'):
        data['context'] = context

    return DriverConfig.from_dict(data)
