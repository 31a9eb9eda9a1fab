"""Operation result models"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .plan import ReconciliationPlan


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OperationStatus(Enum):
    """Operation status"""
    SUCCESS = "success"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"
    DRY_RUN = "dry_run"
    IN_PROGRESS = "in_progress"


@dataclass
class ReconciliationWarning:
    """A best-effort step that failed without threatening correctness"""

    operation: str
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.operation} {self.path}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {"operation": self.operation, "path": self.path, "message": self.message}


@dataclass
class Result:
    """Base result class"""

    status: OperationStatus = OperationStatus.IN_PROGRESS
    message: str = ""
    warnings: List[ReconciliationWarning] = field(default_factory=list)
    start_time: datetime = field(default_factory=_now)
    end_time: Optional[datetime] = None

    @property
    def duration(self) -> Optional[float]:
        """Get operation duration in seconds"""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    def add_warning(self, operation: str, path: str, message: str) -> ReconciliationWarning:
        """Record a non-fatal failure"""
        warning = ReconciliationWarning(operation=operation, path=path, message=message)
        self.warnings.append(warning)
        return warning

    def complete(self, status: Optional[OperationStatus] = None) -> None:
        """Mark operation as complete"""
        self.end_time = _now()
        if status:
            self.status = status


@dataclass
class ReconcileResult(Result):
    """Outcome of applying one reconciliation plan"""

    plan: ReconciliationPlan = field(default_factory=ReconciliationPlan)
    dry_run: bool = False
    deleted: int = 0
    uploaded: int = 0
    merged: int = 0
    pruned: int = 0

    @property
    def mutation_count(self) -> int:
        return self.deleted + self.uploaded + self.merged + self.pruned

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "dry_run": self.dry_run,
            "plan": self.plan.to_dict(),
            "deleted": self.deleted,
            "uploaded": self.uploaded,
            "merged": self.merged,
            "pruned": self.pruned,
            "warnings": [w.to_dict() for w in self.warnings],
            "duration": self.duration,
        }


@dataclass
class HealthCheckResult:
    """Pass/fail outcome of the post-deploy health check"""

    passed: bool
    detail: str = ""
    configured: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"passed": self.passed, "detail": self.detail, "configured": self.configured}


@dataclass
class DeployResult(Result):
    """Result of a deploy run"""

    transport: Optional[str] = None
    target: Optional[str] = None
    webroot: Optional[str] = None
    artifact: Optional[str] = None
    dry_run: bool = False
    local_files: int = 0
    reconcile: Optional[ReconcileResult] = None
    backup_path: Optional[str] = None
    rollback_state: Optional[str] = None
    pre_snapshot: Optional[str] = None
    failed_snapshot: Optional[str] = None
    health: Optional[HealthCheckResult] = None

    @property
    def plan(self) -> Optional[ReconciliationPlan]:
        return self.reconcile.plan if self.reconcile else None

    @property
    def health_failed(self) -> bool:
        return self.health is not None and not self.health.passed

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "status": self.status.value,
            "message": self.message,
            "transport": self.transport,
            "target": self.target,
            "webroot": self.webroot,
            "artifact": self.artifact,
            "dry_run": self.dry_run,
            "local_files": self.local_files,
            "reconcile": self.reconcile.to_dict() if self.reconcile else None,
            "backup_path": self.backup_path,
            "rollback_state": self.rollback_state,
            "pre_snapshot": self.pre_snapshot,
            "failed_snapshot": self.failed_snapshot,
            "health": self.health.to_dict() if self.health else None,
            "warnings": [w.to_dict() for w in self.warnings],
            "duration": self.duration
        }


@dataclass
class RestoreResult(DeployResult):
    """Result of a restore run; `source` names the backup that was applied"""

    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["source"] = self.source
        return data
