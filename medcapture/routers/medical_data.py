import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from medcapture.config import Settings
from medcapture.dependencies import get_extractor, get_record_store, get_settings, get_subject_id
from medcapture.errors import AIProcessingError, RecordStoreError, UnsupportedMediaTypeError
from medcapture.models.extraction import (
    ExtractedFact,
    ExtractionSummary,
    FileExtractionResponse,
    TextExtractionRequest,
    TextExtractionResponse,
)
from medcapture.models.record import CommitRequest, CommitResult
from medcapture.services.commit import CommitCoordinator
from medcapture.services.extractor import ALLOWED_MIME_TYPES, Extractor
from medcapture.services.record_store import RecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/medical-data", tags=["medical-data"])


def _summarize(facts: list[ExtractedFact]) -> ExtractionSummary:
    average = sum(f.confidence for f in facts) / len(facts) if facts else 0.0
    return ExtractionSummary(
        total_records=len(facts),
        categories=sorted({f.category.value for f in facts}),
        average_confidence=round(average, 2),
        processed_at=datetime.now(UTC).isoformat(),
    )


@router.post("/text", response_model=TextExtractionResponse)
async def extract_text(
    body: TextExtractionRequest,
    settings: Settings = Depends(get_settings),
    extractor: Extractor = Depends(get_extractor),
):
    """Extract medical facts from free text."""
    text = body.text.strip()
    if len(text) < settings.min_text_length:
        raise HTTPException(
            status_code=400,
            detail=f"Text must be at least {settings.min_text_length} characters long",
        )
    if len(text) > settings.max_text_length:
        raise HTTPException(
            status_code=400,
            detail=f"Text is too long (max {settings.max_text_length} characters)",
        )

    try:
        facts = await extractor.extract_from_text(text)
    except AIProcessingError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    logger.info("Text extraction produced %d fact(s)", len(facts))
    return TextExtractionResponse(input_length=len(text), facts=facts, summary=_summarize(facts))


@router.post("/upload", response_model=FileExtractionResponse)
async def extract_upload(
    file: UploadFile = File(...),
    settings: Settings = Depends(get_settings),
    extractor: Extractor = Depends(get_extractor),
):
    """Extract medical facts from an uploaded image or video."""
    mime_type = file.content_type or ""
    if mime_type not in ALLOWED_MIME_TYPES:
        raise HTTPException(
            status_code=415,
            detail=f"Unsupported file type: {mime_type or 'unknown'}. "
                   f"Supported types: {', '.join(ALLOWED_MIME_TYPES)}",
        )

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=400,
            detail=f"File too large (max {settings.max_upload_bytes // (1024 * 1024)}MB)",
        )

    filename = file.filename or "upload"
    try:
        facts = await extractor.extract_from_file(data, mime_type, filename=filename)
    except UnsupportedMediaTypeError as exc:
        raise HTTPException(status_code=415, detail=str(exc)) from exc
    except AIProcessingError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    logger.info("File extraction from %s produced %d fact(s)", filename, len(facts))
    return FileExtractionResponse(
        filename=filename,
        file_type=mime_type,
        file_size=len(data),
        facts=facts,
        summary=_summarize(facts),
    )


@router.post("/commit", response_model=CommitResult)
async def commit_records(
    body: CommitRequest,
    subject_id: str = Depends(get_subject_id),
    store: RecordStore = Depends(get_record_store),
):
    """Map extracted facts to compositions and write them to the record store."""
    if not body.facts:
        raise HTTPException(status_code=400, detail="No medical data provided")

    try:
        result = await CommitCoordinator(store).commit(
            body.facts, subject_id, commit_message=body.commit_message,
        )
    except RecordStoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    if result.records_mapped == 0:
        raise HTTPException(status_code=400, detail="No valid records could be created from the data")
    return result
