import logging

from fastapi import APIRouter, Depends, HTTPException

from medcapture.dependencies import get_record_store, get_subject_id
from medcapture.errors import RecordStoreError
from medcapture.models.record import HealthRecordsResponse, StoredRecordDetail
from medcapture.services.health_records import get_health_record, list_health_records
from medcapture.services.record_store import RecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/health-records", tags=["health-records"])


@router.get("", response_model=HealthRecordsResponse)
async def list_records(
    subject_id: str = Depends(get_subject_id),
    store: RecordStore = Depends(get_record_store),
):
    """List the subject's stored records with the latest revision."""
    try:
        return await list_health_records(store, subject_id)
    except RecordStoreError as exc:
        logger.error("Failed to fetch health records: %s", exc)
        raise HTTPException(status_code=502, detail=f"Failed to fetch health records: {exc}") from exc


@router.get("/{record_id}", response_model=StoredRecordDetail)
async def get_record(
    record_id: str,
    subject_id: str = Depends(get_subject_id),
    store: RecordStore = Depends(get_record_store),
):
    try:
        record = await get_health_record(store, subject_id, record_id)
    except RecordStoreError as exc:
        raise HTTPException(status_code=502, detail=f"Failed to fetch health records: {exc}") from exc
    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return record
