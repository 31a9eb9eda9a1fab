"""Configuration loading and deploy target resolution"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..api.exceptions import ConfigError
from ..constants import (
    TransportType,
    PROJECT_CONFIG_FILE,
    ENV_CONFIG_PATH,
    ENV_FTP_PASSWORD,
    ENV_SFTP_PASSWORD,
)
from ..models.config import DeployTarget

logger = logging.getLogger(__name__)

_PASSWORD_ENV = {
    TransportType.FTP: ENV_FTP_PASSWORD,
    TransportType.SFTP: ENV_SFTP_PASSWORD,
}


def find_config_file(start: Optional[Path] = None) -> Optional[Path]:
    """Look for the project config in start and its parents"""
    env_path = os.environ.get(ENV_CONFIG_PATH)
    if env_path:
        return Path(env_path)

    current = Path(start or Path.cwd()).resolve()
    for directory in [current, *current.parents]:
        candidate = directory / PROJECT_CONFIG_FILE
        if candidate.is_file():
            return candidate
    return None


class ConfigService:
    """Loads `.site-deploy.yaml` and turns it plus CLI overrides into a DeployTarget"""

    def __init__(self, config_path: Optional[Path] = None, data: Optional[Dict[str, Any]] = None):
        """Initialize config service

        Args:
            config_path: Config file to load (optional; flags alone can describe a target)
            data: Already parsed configuration, used instead of a file
        """
        self.config_path = Path(config_path) if config_path else None
        self._data = data

    @classmethod
    def discover(cls, explicit: Optional[str] = None) -> 'ConfigService':
        if explicit:
            path = Path(explicit)
            if not path.is_file():
                raise ConfigError(f"Configuration file not found: {path}")
            return cls(path)
        return cls(find_config_file())

    @property
    def data(self) -> Dict[str, Any]:
        """Parsed configuration (lazy load)"""
        if self._data is None:
            self._data = self.load_config()
        return self._data

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file, expanding ${VAR} references

        Returns:
            Parsed mapping, empty when there is no config file
        """
        if self.config_path is None:
            return {}
        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as f:
            content = os.path.expandvars(f.read())

        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_path} must contain a mapping at the top level")

        logger.debug("Loaded configuration from %s", self.config_path)
        return data

    @property
    def deploy_section(self) -> Dict[str, Any]:
        section = self.data.get('deploy') or {}
        if not isinstance(section, dict):
            raise ConfigError("'deploy' must be a mapping")
        return section

    @property
    def targets(self) -> Dict[str, Dict[str, Any]]:
        targets = self.deploy_section.get('targets') or {}
        if not isinstance(targets, dict):
            raise ConfigError("'deploy.targets' must be a mapping")
        return targets

    def resolve_transport(self, requested: Optional[str] = None) -> TransportType:
        """Requested transport, else deploy.default, else the first configured target"""
        name = requested or self.deploy_section.get('default')
        if not name and self.targets:
            name = next(iter(self.targets))
        if not name:
            raise ConfigError(
                "No transport selected: use upload:shell|upload:sftp|upload:ftp "
                "or set deploy.default in " + PROJECT_CONFIG_FILE
            )
        try:
            return TransportType(str(name).lower())
        except ValueError:
            raise ConfigError(f"Unknown transport: {name} (choose from shell, sftp, ftp)")

    def build_target(self, transport: TransportType, overrides: Optional[Dict[str, Any]] = None) -> DeployTarget:
        """Merge environment, target config and CLI overrides (in rising precedence)

        Raises:
            ConfigError: If the merged values do not describe a valid target
        """
        merged: Dict[str, Any] = {}

        env_var = _PASSWORD_ENV.get(transport)
        if env_var and os.environ.get(env_var):
            merged['password'] = os.environ[env_var]

        section = self.targets.get(transport.value) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"'deploy.targets.{transport.value}' must be a mapping")
        merged.update({k: v for k, v in section.items() if v is not None})

        overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
        health_url = overrides.pop('healthcheck_url', None)
        health_cmd = overrides.pop('healthcheck_cmd', None)
        if overrides.pop('no_hooks', False):
            merged.pop('hooks', None)
        if 'port' in overrides:
            merged.pop('ssh_port', None)
        if 'timeout_ms' in overrides:
            merged.pop('timeout', None)
        merged.update(overrides)

        if health_url or health_cmd:
            health = dict(merged.get('healthcheck') or {})
            if health_url:
                health['url'] = health_url
            if health_cmd:
                health.pop('cmd', None)
                health['command'] = health_cmd
            merged['healthcheck'] = health

        return DeployTarget.from_dict(transport, merged)

    def resolve_artifact(self, transport: TransportType, explicit: Optional[str] = None) -> Path:
        """Release zip: --zip, then the target's zip_path, then top-level `out`"""
        section = self.targets.get(transport.value) or {}
        value = explicit or section.get('zip_path') or self.data.get('out')
        if not value:
            raise ConfigError(
                "Missing release archive: pass --zip, set deploy.targets."
                f"{transport.value}.zip_path or set 'out' in {PROJECT_CONFIG_FILE}"
            )
        path = Path(os.path.expanduser(str(value)))
        return path if path.is_absolute() else Path.cwd() / path
