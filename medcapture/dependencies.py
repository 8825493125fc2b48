"""Process-wide objects shared by the routers, kept on ``app.state``."""

import logging

from fastapi import Header, HTTPException, Request

from medcapture.config import Settings
from medcapture.errors import ConfigurationError
from medcapture.services.extractor import Extractor
from medcapture.services.record_store import RecordStore, build_record_store

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        settings = Settings.from_env()
        request.app.state.settings = settings
    return settings


def get_extractor(request: Request) -> Extractor:
    extractor = getattr(request.app.state, "extractor", None)
    if extractor is None:
        try:
            extractor = Extractor(get_settings(request))
        except ConfigurationError as exc:
            logger.error("Extractor unavailable: %s", exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        request.app.state.extractor = extractor
    return extractor


def get_record_store(request: Request) -> RecordStore:
    store = getattr(request.app.state, "record_store", None)
    if store is None:
        try:
            store = build_record_store(get_settings(request))
        except ConfigurationError as exc:
            logger.error("Record store unavailable: %s", exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        request.app.state.record_store = store
    return store


def get_subject_id(x_subject_id: str | None = Header(default=None)) -> str:
    """Opaque subject identifier supplied by the caller."""
    if not x_subject_id or not x_subject_id.strip():
        raise HTTPException(status_code=400, detail="X-Subject-Id header is required")
    return x_subject_id.strip()
