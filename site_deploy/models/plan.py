"""Reconciliation plan model"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class ReconciliationPlan:
    """Operations that converge a remote tree to a release tree

    Derived for one run and never persisted. The same plan is previewed,
    printed in dry-run mode, and executed.
    """

    to_delete: List[str] = field(default_factory=list)
    to_upload_authoritative: List[str] = field(default_factory=list)
    to_merge_only: List[str] = field(default_factory=list)
    prune_candidates: List[str] = field(default_factory=list)

    @property
    def uploads(self) -> List[str]:
        """All uploads in execution order"""
        return self.to_upload_authoritative + self.to_merge_only

    @property
    def operation_count(self) -> int:
        """Number of file operations (prune attempts are best effort and excluded)"""
        return len(self.to_delete) + len(self.to_upload_authoritative) + len(self.to_merge_only)

    @property
    def is_empty(self) -> bool:
        return self.operation_count == 0

    @property
    def is_converged(self) -> bool:
        """Nothing to delete and nothing missing from preserved space

        Authoritative uploads are re-sent on every run, so a converged
        remote still yields a plan with uploads.
        """
        return not self.to_delete and not self.to_merge_only

    def summary(self) -> str:
        return (f"{len(self.to_delete)} delete, "
                f"{len(self.to_upload_authoritative)} upload, "
                f"{len(self.to_merge_only)} merge")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "to_delete": list(self.to_delete),
            "to_upload_authoritative": list(self.to_upload_authoritative),
            "to_merge_only": list(self.to_merge_only),
            "prune_candidates": list(self.prune_candidates),
        }
