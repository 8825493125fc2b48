from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Category(StrEnum):
    """The five record categories the extraction prompt asks the model for."""

    LAB_RESULT = "lab_result"
    DIAGNOSIS = "diagnosis"
    MEDICATION = "medication"
    VITAL_SIGNS = "vital_signs"
    CLINICAL_NOTE = "clinical_note"


class FactFields(BaseModel):
    """Field payload of a fact. Every member is always a string after normalization."""

    model_config = ConfigDict(frozen=True)

    name: str = "Unknown"
    value: str = ""
    units: str = ""
    date: str = ""
    status: str = ""
    reference_range: str = ""
    interpretation: str = ""
    notes: str = ""


class ExtractedFact(BaseModel):
    """A single normalized medical assertion produced by AI extraction."""

    model_config = ConfigDict(frozen=True)

    category: Category
    subcategory: str = "general"
    fields: FactFields = FactFields()
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    source_excerpt: str = ""


class ExtractionSummary(BaseModel):
    total_records: int = 0
    categories: list[str] = []
    average_confidence: float = 0.0
    processed_at: str = ""


class TextExtractionRequest(BaseModel):
    text: str


class TextExtractionResponse(BaseModel):
    input_length: int
    facts: list[ExtractedFact] = []
    summary: ExtractionSummary = ExtractionSummary()


class FileExtractionResponse(BaseModel):
    filename: str
    file_type: str
    file_size: int
    facts: list[ExtractedFact] = []
    summary: ExtractionSummary = ExtractionSummary()
