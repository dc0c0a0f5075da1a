"""
Activity trail: best-effort audit events for the dashboard feed.

Writes here must never fail the business operation that triggered them, so
every error is logged and dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from fastapi import BackgroundTasks, Request, Response

from lawyerzen.db import Collections, DocumentService

logger = logging.getLogger(__name__)

DEFAULT_TTL_DAYS = 90

METADATA_FIELDS = (
    "caseNumber",
    "clientName",
    "invoiceNumber",
    "amount",
    "currency",
    "duration",
    "description",
    "priority",
    "status",
    "fileName",
    "billable",
)


class ActivityType(str, Enum):
    CASE_CREATED = "case_created"
    CASE_UPDATED = "case_updated"
    CASE_CLOSED = "case_closed"
    CLIENT_REGISTERED = "client_registered"
    CLIENT_UPDATED = "client_updated"
    INVOICE_CREATED = "invoice_created"
    INVOICE_SENT = "invoice_sent"
    PAYMENT_RECEIVED = "payment_received"
    TIME_LOGGED = "time_logged"
    DOCUMENT_UPLOADED = "document_uploaded"
    HEARING_CREATED = "hearing_created"
    HEARING_UPDATED = "hearing_updated"
    HEARING_DELETED = "hearing_deleted"
    HEARING_SCHEDULED = "hearing_scheduled"
    ALERT_CREATED = "alert_created"


class EntityType(str, Enum):
    CASE = "case"
    CLIENT = "client"
    INVOICE = "invoice"
    TIME_ENTRY = "time_entry"
    DOCUMENT = "document"
    ALERT = "alert"
    HEARING = "hearing"


def build_activity_record(
    owner_id: str,
    activity_type: ActivityType | str,
    message: str,
    entity_type: EntityType | str,
    entity_id: str,
    metadata: Optional[dict] = None,
    *,
    ttl_days: int = DEFAULT_TTL_DAYS,
) -> dict:
    """Validate an activity against the closed enumerations. Raises ValueError."""
    if not owner_id or not message or not entity_id:
        raise ValueError("owner, message and entityId are required")
    kept = {
        key: value
        for key, value in (metadata or {}).items()
        if key in METADATA_FIELDS and value is not None
    }
    return {
        "owner": owner_id,
        "type": ActivityType(activity_type).value,
        "message": message,
        "entityType": EntityType(entity_type).value,
        "entityId": str(entity_id),
        "metadata": kept,
        "expiresAt": datetime.now(timezone.utc) + timedelta(days=ttl_days),
    }


def log_activity(
    documents: DocumentService,
    owner_id: str,
    activity_type: ActivityType | str,
    message: str,
    entity_type: EntityType | str,
    entity_id: str,
    metadata: Optional[dict] = None,
    *,
    ttl_days: int = DEFAULT_TTL_DAYS,
) -> Optional[dict]:
    """Persist an activity record. Returns None instead of raising on failure."""
    try:
        record = build_activity_record(
            owner_id,
            activity_type,
            message,
            entity_type,
            entity_id,
            metadata,
            ttl_days=ttl_days,
        )
        return documents.create_document(Collections.ACTIVITIES, record)
    except Exception:
        logger.exception(
            "Activity logging error (owner=%s, type=%s, entity=%s)",
            owner_id,
            activity_type,
            entity_id,
        )
        return None


@dataclass
class StagedActivity:
    activity_type: ActivityType
    message: str
    entity_type: EntityType
    entity_id: str
    metadata: dict = field(default_factory=dict)


class ActivityRecorder:
    """Lets a handler stage one activity, written after a successful response."""

    def __init__(self, request: Request):
        self.request = request

    def stage(
        self,
        activity_type: ActivityType,
        message: str,
        entity_type: EntityType,
        entity_id: str,
        metadata: Optional[dict] = None,
    ) -> None:
        self.request.state.activity = StagedActivity(
            activity_type=activity_type,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata or {},
        )

    @property
    def staged(self) -> Optional[StagedActivity]:
        return getattr(self.request.state, "activity", None)


def get_activity_recorder(request: Request) -> ActivityRecorder:
    return ActivityRecorder(request)


def schedule_staged_activity(request: Request, response: Response) -> None:
    """Attach the staged activity to the response's background tasks.

    Starlette runs background tasks only after the body has been sent, so the
    write never adds latency to the client response.
    """
    staged = getattr(request.state, "activity", None)
    identity = getattr(request.state, "user", None)
    if staged is None or identity is None:
        return
    if not 200 <= response.status_code < 300:
        return

    tasks = BackgroundTasks()
    if response.background is not None:
        tasks.add_task(response.background)
    tasks.add_task(
        log_activity,
        request.app.state.documents,
        identity.user_id,
        staged.activity_type,
        staged.message,
        staged.entity_type,
        staged.entity_id,
        staged.metadata,
        ttl_days=request.app.state.settings.activity_ttl_days,
    )
    response.background = tasks


async def log_activity_after_response(request: Request, call_next):
    response = await call_next(request)
    schedule_staged_activity(request, response)
    return response
