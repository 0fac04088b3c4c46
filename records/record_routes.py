"""
Record API endpoints. Every route goes through RecordService, which decides
and audits before returning content.

Exposed endpoints:
- POST /api/records - Add a record to a subject
- GET /api/records/accessible - Records reachable through the caller's grants
- GET /api/records/owner/{owner_id} - A subject's records
- GET /api/records/{id} - One record
- GET /api/records/{id}/download - Plain-text download
"""

from typing import List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from auth.rbac_dependencies import get_client_ip, get_current_actor_id
from records.schemas import AccessibleRecordResponse, CreateRecordRequest, RecordResponse
from records.service import RecordService
from storage.database import DatabaseManager

router = APIRouter(prefix="/api/records", tags=["records"])


@router.post("", response_model=RecordResponse, status_code=201)
async def create_record(
    data: CreateRecordRequest,
    request: Request,
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    return RecordService.create_record(
        db,
        actor_id=actor_id,
        owner_id=data.owner_id,
        title=data.title,
        category=data.category,
        record_date=data.record_date,
        notes=data.notes,
        file_url=data.file_url,
        origin_address=get_client_ip(request)
    )


@router.get("/accessible", response_model=List[AccessibleRecordResponse])
async def list_accessible_records(
    request: Request,
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    return RecordService.list_accessible_records(db, actor_id, origin_address=get_client_ip(request))


@router.get("/owner/{owner_id}", response_model=List[RecordResponse])
async def list_records_by_owner(
    owner_id: str,
    request: Request,
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    return RecordService.list_records_by_owner(db, actor_id, owner_id, origin_address=get_client_ip(request))


@router.get("/{record_id}", response_model=RecordResponse)
async def get_record(
    record_id: str,
    request: Request,
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    return RecordService.get_record(db, actor_id, record_id, origin_address=get_client_ip(request))


@router.get("/{record_id}/download", response_class=PlainTextResponse)
async def download_record(
    record_id: str,
    request: Request,
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    filename, body = RecordService.download_record(
        db, actor_id, record_id, origin_address=get_client_ip(request)
    )
    return PlainTextResponse(
        body,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )
