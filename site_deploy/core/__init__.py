"""Core reconciliation, backup and rollback components"""

from .preserve import PreserveMatcher, is_preserved, normalize_rel
from .reconciler import Reconciler
from .confirmation import ConfirmationGate, DeployPreview, consent_from_env
from .backup_manager import BackupManager
from .rollback import RollbackController, RollbackState, DeployContext
from .healthcheck import HealthChecker
from .release import LocalReleaseTree, select_backup

__all__ = [
    'PreserveMatcher',
    'is_preserved',
    'normalize_rel',
    'Reconciler',
    'ConfirmationGate',
    'DeployPreview',
    'consent_from_env',
    'BackupManager',
    'RollbackController',
    'RollbackState',
    'DeployContext',
    'HealthChecker',
    'LocalReleaseTree',
    'select_backup',
]
