"""Batch mapping and persistence of extracted facts.

Each fact is mapped independently. A category mapper failure is replaced by
the generic mapper with a confidence penalty; only a failure of the generic
mapper itself drops the fact. Mapped records are written one object per
record, so a store error part way through leaves earlier writes in place.
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime

from medcapture.errors import RecordStoreError
from medcapture.models.extraction import ExtractedFact
from medcapture.models.record import (
    BatchSummary,
    CommitResult,
    CommittedFile,
    DroppedRecord,
    MappedRecord,
)
from medcapture.services.openehr_mapper import map_generic, map_one
from medcapture.services.record_store import RecordStore

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE_FACTOR = 0.8
RECORD_FORMAT_VERSION = "1.0.0"
RECORD_SOURCE = "ai_extraction"


@dataclass
class BatchMapping:
    records: list[MappedRecord] = field(default_factory=list)
    dropped: list[DroppedRecord] = field(default_factory=list)


def _to_record(fact: ExtractedFact, composition: dict, confidence: float,
               mapping_error: str | None = None) -> MappedRecord:
    return MappedRecord(
        category=fact.category.value,
        subcategory=fact.subcategory,
        confidence=confidence,
        source_excerpt=fact.source_excerpt,
        composition=composition,
        extracted_fields=fact.fields.model_dump(),
        mapping_error=mapping_error,
    )


def map_batch_detailed(facts: list[ExtractedFact]) -> BatchMapping:
    """Map every fact, reporting the ones that could not be mapped at all."""
    result = BatchMapping()
    for index, fact in enumerate(facts):
        try:
            result.records.append(_to_record(fact, map_one(fact), fact.confidence))
            continue
        except Exception as exc:
            logger.warning(
                "Mapping failed for record %d (%s), using generic mapper: %s",
                index, fact.category.value, exc,
            )
            mapping_error = str(exc) or exc.__class__.__name__

        try:
            composition = map_generic(fact)
        except Exception as exc:
            logger.error("Generic mapping failed for record %d, dropping it: %s", index, exc)
            result.dropped.append(DroppedRecord(
                index=index,
                category=fact.category.value,
                subcategory=fact.subcategory,
                error=str(exc) or exc.__class__.__name__,
            ))
            continue

        result.records.append(_to_record(
            fact,
            composition,
            fact.confidence * FALLBACK_CONFIDENCE_FACTOR,
            mapping_error=mapping_error,
        ))

    logger.info(
        "Mapped %d of %d record(s) (%d dropped)",
        len(result.records), len(facts), len(result.dropped),
    )
    return result


def map_batch(facts: list[ExtractedFact]) -> list[MappedRecord]:
    return map_batch_detailed(facts).records


def summarize_batch(records: list[MappedRecord | ExtractedFact]) -> BatchSummary:
    """Counts per category and subcategory plus the mean confidence."""
    categories = [str(r.category) for r in records]
    average = sum(r.confidence for r in records) / len(records) if records else 0.0
    return BatchSummary(
        by_category=dict(Counter(categories)),
        by_subcategory=dict(Counter(r.subcategory for r in records)),
        average_confidence=round(average, 2),
        processed_at=datetime.now(UTC).isoformat(),
    )


def record_path(subject_id: str, record: MappedRecord, index: int, moment: datetime) -> str:
    stamp = moment.astimezone(UTC)
    return (
        f"{subject_id}/{record.category}_{stamp.strftime('%Y-%m-%d')}"
        f"_{stamp.strftime('%H-%M-%S')}-{stamp.microsecond // 1000:03d}_{index}.json"
    )


def _content_name(record: MappedRecord) -> str:
    content = record.composition.get("content") or [{}]
    return content[0].get("name", {}).get("value", "")


def build_commit_message(record: MappedRecord, subject_id: str, timestamp: str) -> str:
    category_words = record.category.replace("_", " ")
    lines = [
        f"Add {category_words} record: {record.subcategory} - {_content_name(record)}",
        "",
        f"- Type: {record.category}",
        f"- Category: {record.subcategory}",
        f"- Confidence: {round(record.confidence * 100)}%",
        f"- Source: {RECORD_SOURCE}",
        f"- Subject: {subject_id}",
        f"- Timestamp: {timestamp}",
    ]
    return "\n".join(lines)


def build_record_document(record: MappedRecord, subject_id: str, created_at: str) -> dict:
    document = {
        "metadata": {
            "created_at": created_at,
            "source": RECORD_SOURCE,
            "version": RECORD_FORMAT_VERSION,
            "record_type": record.category,
            "category": record.subcategory,
            "confidence": record.confidence,
            "subject_id": subject_id,
        },
        "openehr_record": record.composition,
        "extracted_data": record.extracted_fields,
        "source_text": record.source_excerpt,
    }
    if record.mapping_error:
        document["mapping_error"] = record.mapping_error
    return document


class CommitCoordinator:
    """Maps a batch of facts and writes one stored object per mapped record."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def commit(
        self,
        facts: list[ExtractedFact],
        subject_id: str,
        commit_message: str | None = None,
    ) -> CommitResult:
        mapping = map_batch_detailed(facts)
        moment = datetime.now(UTC)
        created_at = moment.isoformat()

        files: list[CommittedFile] = []
        for index, record in enumerate(mapping.records):
            path = record_path(subject_id, record, index, moment)
            filename = path.rsplit("/", 1)[-1]
            content = json.dumps(build_record_document(record, subject_id, created_at), indent=2)
            message = commit_message or build_commit_message(record, subject_id, created_at)

            try:
                existing = await self.store.get(path)
                receipt = await self.store.put(
                    path,
                    content,
                    message,
                    revision=existing.revision if existing else None,
                )
            except RecordStoreError as exc:
                logger.error("Commit failed for %s: %s", filename, exc)
                raise RecordStoreError(
                    f"Record store commit failed for {filename}: {exc}",
                    status_code=exc.status_code,
                ) from exc

            logger.info("Committed %s to %s", path, self.store.name)
            files.append(CommittedFile(
                filename=filename,
                path=path,
                category=record.category,
                subcategory=record.subcategory,
                confidence=record.confidence,
                revision=receipt.revision,
                commit_id=receipt.commit_id,
                html_url=receipt.html_url,
            ))

        return CommitResult(
            records_processed=len(facts),
            records_mapped=len(mapping.records),
            files_created=len(files),
            repository=self.store.name,
            files=files,
            dropped=mapping.dropped,
            summary=summarize_batch(mapping.records),
        )
