"""Deployer API for deploy and restore operations"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

from rich.console import Console

from ..constants import TransportType
from ..core.confirmation import consent_from_env
from ..models import DeployResult, RestoreResult, DeployTarget
from ..services.config_service import ConfigService
from ..services.deploy_service import DeploymentOrchestrator
from ..utils.async_utils import run_async


class Deployer:
    """Synchronous entry point for library users and the CLI"""

    def __init__(self,
                 transport: Optional[Union[str, TransportType]] = None,
                 config_path: Optional[str] = None,
                 overrides: Optional[Dict[str, Any]] = None,
                 config: Optional[ConfigService] = None,
                 console: Optional[Console] = None):
        """
        Initialize deployer

        Args:
            transport: shell, sftp or ftp (defaults to deploy.default)
            config_path: Explicit config file (defaults to discovery)
            overrides: Target settings that win over the config file
            config: Prebuilt config service
            console: Console for previews and progress
        """
        self.config = config or ConfigService.discover(config_path)
        if isinstance(transport, TransportType):
            transport = transport.value
        self.transport = self.config.resolve_transport(transport)
        self.overrides = dict(overrides or {})
        self.console = console or Console()

    @property
    def target(self) -> DeployTarget:
        return self.config.build_target(self.transport, self.overrides)

    def _orchestrator(self, assume_yes: bool, interactive: Optional[bool], progress=None) -> DeploymentOrchestrator:
        return DeploymentOrchestrator(
            self.target,
            assume_yes=assume_yes or consent_from_env(),
            interactive=interactive,
            console=self.console,
            progress=progress,
        )

    def deploy(self,
               artifact: Optional[Union[str, Path]] = None,
               dry_run: bool = False,
               assume_yes: bool = False,
               interactive: Optional[bool] = None,
               progress=None) -> DeployResult:
        """
        Deploy a release zip

        Args:
            artifact: Release zip (defaults to zip_path / out from config)
            dry_run: Print the plan only
            assume_yes: Skip the confirmation prompt
            interactive: Override terminal detection
            progress: Upload progress callback (phase, path, done, total)

        Returns:
            DeployResult
        """
        path = self.config.resolve_artifact(self.transport, str(artifact) if artifact else None)
        orchestrator = self._orchestrator(assume_yes, interactive, progress)
        return run_async(orchestrator.deploy(path, dry_run=dry_run))

    def restore(self,
                backup: Optional[Union[str, Path]] = None,
                backup_name: Optional[str] = None,
                dry_run: bool = False,
                assume_yes: bool = False,
                interactive: Optional[bool] = None,
                progress=None) -> RestoreResult:
        """
        Restore the webroot from a local backup archive or a remote backup

        Args:
            backup: Local .zip/.tar.gz/.tgz backup
            backup_name: Exact remote backup file name (newest when omitted)
        """
        orchestrator = self._orchestrator(assume_yes, interactive, progress)
        return run_async(orchestrator.restore(
            backup=Path(backup) if backup else None,
            backup_name=backup_name,
            dry_run=dry_run,
        ))


def deploy(transport: Optional[str] = None,
           artifact: Optional[Union[str, Path]] = None,
           dry_run: bool = False,
           assume_yes: bool = False,
           config_path: Optional[str] = None,
           **overrides) -> DeployResult:
    """
    Deploy a release zip to the configured target

    Args:
        transport: shell, sftp or ftp
        artifact: Release zip
        dry_run: Print the plan only
        assume_yes: Skip the confirmation prompt
        config_path: Config file path
        **overrides: Target settings (host, user, webroot, preserve, ...)

    Returns:
        DeployResult

    Example:
        >>> result = deploy("sftp", "dist/site.zip", host="example.com", user="web", assume_yes=True)
        >>> print(result.status)
    """
    deployer = Deployer(transport, config_path=config_path, overrides=overrides)
    return deployer.deploy(artifact, dry_run=dry_run, assume_yes=assume_yes)


def restore(transport: Optional[str] = None,
            backup: Optional[Union[str, Path]] = None,
            backup_name: Optional[str] = None,
            dry_run: bool = False,
            assume_yes: bool = False,
            config_path: Optional[str] = None,
            **overrides) -> RestoreResult:
    """Restore the configured target's webroot from a backup"""
    deployer = Deployer(transport, config_path=config_path, overrides=overrides)
    return deployer.restore(backup, backup_name=backup_name, dry_run=dry_run, assume_yes=assume_yes)
