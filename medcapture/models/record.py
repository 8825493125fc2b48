from typing import Any

from pydantic import BaseModel

from medcapture.models.extraction import ExtractedFact


class MappedRecord(BaseModel):
    """An extracted fact paired with the composition it was mapped to."""

    category: str
    subcategory: str
    confidence: float
    source_excerpt: str = ""
    composition: dict[str, Any]
    extracted_fields: dict[str, str] = {}
    mapping_error: str | None = None


class DroppedRecord(BaseModel):
    """A fact that neither its category mapper nor the fallback could map."""

    index: int
    category: str
    subcategory: str
    error: str


class BatchSummary(BaseModel):
    by_category: dict[str, int] = {}
    by_subcategory: dict[str, int] = {}
    average_confidence: float = 0.0
    processed_at: str = ""


class CommittedFile(BaseModel):
    filename: str
    path: str
    category: str
    subcategory: str
    confidence: float
    revision: str
    commit_id: str | None = None
    html_url: str | None = None


class CommitRequest(BaseModel):
    facts: list[ExtractedFact]
    commit_message: str | None = None


class CommitResult(BaseModel):
    records_processed: int
    records_mapped: int
    files_created: int
    repository: str
    files: list[CommittedFile] = []
    dropped: list[DroppedRecord] = []
    summary: BatchSummary = BatchSummary()


class RevisionInfo(BaseModel):
    revision_id: str
    message: str = ""
    author: str = ""
    timestamp: str = ""


class StoredRecordItem(BaseModel):
    id: str
    type: str
    title: str
    date: str
    data: dict[str, Any] = {}


class HealthRecordsResponse(BaseModel):
    records: list[StoredRecordItem] = []
    revision: RevisionInfo | None = None


class StoredRecordDetail(StoredRecordItem):
    details: dict[str, Any] = {}
    raw_data: dict[str, Any] = {}
