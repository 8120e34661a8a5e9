# stockline/services/import_run_service.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.models.enums import ImportRunStatus, ImportSourceType
from stockline.models.import_run import ImportRun

# error_details 过长时截断，避免单行 JSON 失控
MAX_ERROR_DETAILS = 200


@dataclass
class RunCounters:
    rows_total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: List[Dict[str, Any]] = field(default_factory=list)

    def add_error(self, ref: Optional[str], message: str) -> None:
        self.errors += 1
        if len(self.error_details) < MAX_ERROR_DETAILS:
            self.error_details.append({"ref": ref, "message": message[:500]})

    @property
    def status(self) -> ImportRunStatus:
        return ImportRunStatus.WARNING if self.errors > 0 else ImportRunStatus.SUCCESS


class ImportRunService:
    """ImportRun 只追加：每次同步执行写一条，写完即提交。"""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def record(
        self,
        *,
        source_type: ImportSourceType,
        source_ref: str,
        counters: RunCounters,
        status: Optional[ImportRunStatus] = None,
        triggered_by: str = "manual_or_scheduler",
    ) -> ImportRun:
        row = ImportRun(
            source_type=source_type.value,
            source_ref=source_ref,
            triggered_by=triggered_by,
            rows_total=counters.rows_total,
            created=counters.created,
            updated=counters.updated,
            skipped=counters.skipped,
            errors=counters.errors,
            status=(status or counters.status).value,
            error_details=list(counters.error_details) or None,
        )
        self.session.add(row)
        await self.session.commit()
        return row

    async def list_runs(
        self,
        *,
        source_type: Optional[str] = None,
        source_ref: Optional[str] = None,
        limit: int = 50,
    ) -> List[ImportRun]:
        stmt = select(ImportRun).order_by(ImportRun.created_at.desc(), ImportRun.id.desc()).limit(limit)
        if source_type:
            stmt = stmt.where(ImportRun.source_type == source_type)
        if source_ref:
            stmt = stmt.where(ImportRun.source_ref == source_ref)
        return list((await self.session.execute(stmt)).scalars())
