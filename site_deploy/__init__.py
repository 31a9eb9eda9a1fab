"""Site Deploy - reconcile a web server's document root with a release archive.

Deletes what the release no longer contains, uploads what it does, and never
touches preserved paths such as user uploads. Over SSH the previous webroot
is backed up and kept as a snapshot for instant rollback.
"""

from .__version__ import __version__, __version_info__, __author__, __email__, __license__

# Exceptions
from .api.exceptions import (
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

# Data models
from .models import (
    DeployTarget,
    ReconciliationPlan,
    ReconciliationWarning,
    OperationStatus,
    DeployResult,
    RestoreResult,
)

# Core API
from .api.deployer import Deployer, deploy, restore

__all__ = [
    # Version information
    "__version__",
    "__version_info__",
    "__author__",
    "__email__",
    "__license__",

    # Main classes
    "Deployer",

    # Core API functions
    "deploy",
    "restore",

    # Data models
    "DeployTarget",
    "ReconciliationPlan",
    "ReconciliationWarning",
    "OperationStatus",
    "DeployResult",
    "RestoreResult",

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
