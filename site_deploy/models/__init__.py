"""Data models for site-deploy"""

from .config import DeployTarget, HealthCheckConfig, HookConfig, RollbackPolicy
from .plan import ReconciliationPlan
from .result import (
    OperationStatus,
    Result,
    ReconciliationWarning,
    ReconcileResult,
    HealthCheckResult,
    DeployResult,
    RestoreResult,
)

__all__ = [
    'DeployTarget',
    'HealthCheckConfig',
    'HookConfig',
    'RollbackPolicy',
    'ReconciliationPlan',
    'OperationStatus',
    'Result',
    'ReconciliationWarning',
    'ReconcileResult',
    'HealthCheckResult',
    'DeployResult',
    'RestoreResult',
]
