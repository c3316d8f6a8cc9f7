# flcseek/exports/routes.py
from __future__ import annotations
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from flcseek.audit import log_audit_event
from flcseek.auth import CurrentUser, require
from flcseek.constants import AuditAction
from flcseek.db import get_db
from flcseek.utils.common import now_utc
from . import service

router = APIRouter(prefix="/export", tags=["Export"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("")
def api_export(
    request: Request,
    type: str = Query("converts", pattern="^(converts|progress|attendance|all)$"),
    format: str = Query("json", pattern="^(json|csv|xlsx)$"),
    group_id: Optional[str] = Query(None),
    user: CurrentUser = Depends(require("export")),
    db: Session = Depends(get_db),
):
    data = service.build_export(db, type, group_id)
    log_audit_event(
        db, AuditAction.EXPORT_DATA, user_id=user.id,
        new_values={"type": type, "group_id": group_id, "format": format}, request=request,
    )

    filename = f"flcseek-export-{type}-{date.today().isoformat()}"
    if format == "csv":
        return Response(
            content=service.to_csv(data),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}.csv"'},
        )
    if format == "xlsx":
        return Response(
            content=service.to_xlsx(data),
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{filename}.xlsx"'},
        )
    return {
        "exported_at": now_utc().isoformat(),
        "exported_by": user.username,
        "filters": {"type": type, "group_id": group_id},
        "data": data,
    }
