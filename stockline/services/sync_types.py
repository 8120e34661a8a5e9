# stockline/services/sync_types.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from stockline.models.enums import ImportRunStatus, SyncKind


@dataclass
class PushRowLog:
    sku: str
    effective: int
    ok: bool
    status: Optional[int] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sku": self.sku,
            "effective": self.effective,
            "ok": self.ok,
            "status": self.status,
            "message": self.message,
        }


@dataclass
class SyncRunResult:
    """一次同步执行的汇总（与落库的 ImportRun 一一对应）。"""

    account_id: str
    kind: SyncKind
    status: ImportRunStatus
    import_run_id: Optional[int] = None
    rows_total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: List[Dict[str, Any]] = field(default_factory=list)
    rows: List[PushRowLog] = field(default_factory=list)
    dry_run: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "account_id": self.account_id,
            "kind": self.kind.value,
            "status": self.status.value,
            "import_run_id": self.import_run_id,
            "rows_total": self.rows_total,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
            "error_details": self.error_details,
        }
        if self.kind == SyncKind.PUSH:
            out["dry_run"] = self.dry_run
            out["rows"] = [r.to_dict() for r in self.rows]
        return out
