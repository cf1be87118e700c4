#!/usr/bin/env python3
"""
Run configuration for pvc-sync.

The configuration is built once at startup and passed explicitly into every
component. Values are resolved in this order: command-line flags, then an
optional YAML file, then ``PVC_SYNC_*`` environment variables, then the
built-in defaults below.
"""

import logging
import os
import re
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional

import yaml

from migration_errors import ConfigurationError

logger = logging.getLogger(__name__)


DEFAULT_STORAGE_CLASS = "efs"
DEFAULT_MOUNT_ARGS = (
    "-t nfs4 -o nfsvers=4.1,rsize=1048576,wsize=1048576,hard,timeo=600,retrans=2,noresvport"
)
DEFAULT_RSYNC_ARGS = "-rulpEto"
DEFAULT_NAMESPACE_PATTERN = "default"
DEFAULT_NAME_PATTERN = ".*"
DEFAULT_KUBECONFIG = os.path.join("~", ".kube", "config")
DEFAULT_MOUNT_ROOT = "/tmp"
DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_POLL_INTERVAL_SECONDS = 60.0

LOG_FORMATS = ("text", "json")
ENV_PREFIX = "PVC_SYNC_"

REQUIRED_FIELDS = (
    "source_context",
    "target_context",
    "source_efs_dns_name",
    "target_efs_dns_name",
)

_BOOL_FIELDS = {"dry_run", "quiet"}
_INT_FIELDS = {"max_attempts"}
_FLOAT_FIELDS = {"poll_interval_seconds"}


@dataclass(frozen=True)
class MigrationConfig:
    """Immutable configuration record for one sync run"""

    source_context: str = ""
    target_context: str = ""
    source_efs_dns_name: str = ""
    target_efs_dns_name: str = ""
    source_storage_class: str = DEFAULT_STORAGE_CLASS
    target_storage_class: str = DEFAULT_STORAGE_CLASS
    mount_args: str = DEFAULT_MOUNT_ARGS
    rsync_args: str = DEFAULT_RSYNC_ARGS
    namespace_pattern: str = DEFAULT_NAMESPACE_PATTERN
    name_pattern: str = DEFAULT_NAME_PATTERN
    dry_run: bool = False
    quiet: bool = False
    kubeconfig: str = DEFAULT_KUBECONFIG
    mount_root: str = DEFAULT_MOUNT_ROOT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    log_format: str = "text"

    @property
    def kubeconfig_path(self) -> str:
        return os.path.expanduser(self.kubeconfig)

    def with_overrides(self, overrides: Mapping[str, Any]) -> "MigrationConfig":
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")

        values = {
            key: _coerce(key, value)
            for key, value in overrides.items()
            if value is not None
        }
        return replace(self, **values)

    def validate(self) -> "MigrationConfig":
        """
        Validate the configuration.

        Returns:
            The same config, so calls can be chained

        Raises:
            ConfigurationError: If a required value is missing or invalid
        """
        missing = [name for name in REQUIRED_FIELDS if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}"
            )

        if self.max_attempts <= 0:
            raise ConfigurationError(
                f"max_attempts must be positive, got {self.max_attempts}"
            )

        if self.poll_interval_seconds < 0:
            raise ConfigurationError(
                f"poll_interval_seconds must not be negative, got {self.poll_interval_seconds}"
            )

        if self.log_format not in LOG_FORMATS:
            raise ConfigurationError(
                f"log_format must be one of {', '.join(LOG_FORMATS)}, got '{self.log_format}'"
            )

        for name in ("namespace_pattern", "name_pattern"):
            pattern = getattr(self, name)
            try:
                re.compile(pattern)
            except re.error as e:
                raise ConfigurationError(f"Invalid {name} '{pattern}': {e}") from e

        logger.debug("Configuration validated successfully")
        return self


def _coerce(key: str, value: Any) -> Any:
    """Convert YAML/env values to the field's type."""
    if not isinstance(value, (str, int, float, bool)):
        raise ConfigurationError(
            f"Invalid value for {key}: expected a scalar, got {type(value).__name__}"
        )
    try:
        if key in _BOOL_FIELDS:
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if key in _INT_FIELDS:
            return int(value)
        if key in _FLOAT_FIELDS:
            return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value for {key}: {value!r}") from e
    return str(value)


def load_yaml_overrides(filepath: str) -> Dict[str, Any]:
    """
    Load configuration values from a YAML file.

    Keys may use either snake_case field names or the CLI's camelCase
    spelling (``sourceEKSContext``, ``rsyncArgs`` ...).

    Args:
        filepath: Path to YAML configuration file

    Returns:
        Dictionary of field name to value
    """
    if not os.path.exists(filepath):
        raise ConfigurationError(f"Configuration file not found: {filepath}")

    try:
        with open(filepath, 'r') as f:
            yaml_data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Couldn't read configuration file {filepath}: {e}") from e

    if yaml_data is None:
        return {}
    if not isinstance(yaml_data, dict):
        raise ConfigurationError(
            f"Configuration file {filepath} must contain a mapping, got {type(yaml_data).__name__}"
        )

    overrides = {CAMEL_CASE_KEYS.get(key, key): value for key, value in yaml_data.items()}
    logger.info(f"Loaded {len(overrides)} configuration value(s) from {filepath}")
    return overrides


def load_env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Collect ``PVC_SYNC_<FIELD>`` environment variables."""
    environ = os.environ if environ is None else environ
    known = {f.name for f in fields(MigrationConfig)}

    overrides = {}
    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        key = name[len(ENV_PREFIX):].lower()
        if key in known:
            overrides[key] = value
    return overrides


def build_config(
    cli_overrides: Mapping[str, Any],
    config_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> MigrationConfig:
    """Resolve defaults, environment, YAML file and CLI flags into one config."""
    config = MigrationConfig().with_overrides(load_env_overrides(environ))
    if config_file:
        config = config.with_overrides(load_yaml_overrides(config_file))
    config = config.with_overrides(cli_overrides)
    return config.validate()


# CLI flag spelling -> field name
CAMEL_CASE_KEYS = {
    "sourceEKSContext": "source_context",
    "targetEKSContext": "target_context",
    "sourceEFSDNSName": "source_efs_dns_name",
    "targetEFSDNSName": "target_efs_dns_name",
    "sourceStorageClass": "source_storage_class",
    "targetStorageClass": "target_storage_class",
    "mountArgs": "mount_args",
    "rsyncArgs": "rsync_args",
    "pvcIncludeNamespaceRegex": "namespace_pattern",
    "pvcIncludeNameRegex": "name_pattern",
    "dryRun": "dry_run",
    "quiet": "quiet",
    "kubeconfig": "kubeconfig",
    "mountRoot": "mount_root",
    "maxAttempts": "max_attempts",
    "pollInterval": "poll_interval_seconds",
    "logFormat": "log_format",
}
