# site_deploy/api/__init__.py
"""API layer for site-deploy"""

from .exceptions import (
    SiteDeployError,
    ConfigError,
    ArtifactError,
    ConsentError,
    UserCancelledError,
    TransportError,
    BackupError,
    DeployError,
    RollbackError,
    HookError,
)
from .deployer import Deployer, deploy, restore

__all__ = [
    # Main classes
    "Deployer",

    # Convenience functions
    "deploy",
    "restore",

    # Exceptions
    "SiteDeployError",
    "ConfigError",
    "ArtifactError",
    "ConsentError",
    "UserCancelledError",
    "TransportError",
    "BackupError",
    "DeployError",
    "RollbackError",
    "HookError",
]
