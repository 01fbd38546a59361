"""Status reconciliation between disk, roster script and index."""

from .duplicates import (
    DuplicateDetector,
    DuplicateGroup,
    DuplicateReason,
    OutdatedItem,
    VersionInfo,
    normalized_name,
)
from .reconciler import (
    RECONCILED_KINDS,
    ContentStatusReconciler,
    ReconciledItem,
    ReconciliationReport,
)
from .status import ScriptState, derive_status
from .validator import (
    ContentValidator,
    ReferenceFix,
    Severity,
    ValidationIssue,
    ValidationResult,
    apply_fixes,
)

__all__ = [
    "RECONCILED_KINDS",
    "ContentStatusReconciler",
    "ContentValidator",
    "DuplicateDetector",
    "DuplicateGroup",
    "DuplicateReason",
    "OutdatedItem",
    "ReconciledItem",
    "ReconciliationReport",
    "ReferenceFix",
    "ScriptState",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    "VersionInfo",
    "apply_fixes",
    "derive_status",
    "normalized_name",
]
