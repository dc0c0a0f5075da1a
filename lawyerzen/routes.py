"""
HTTP routes for practice records: cases, clients, invoices, hearings,
time entries, alerts and the activity feed.

Every record carries an ``owner`` field; records owned by someone else are
reported as missing.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from lawyerzen.activity import ActivityRecorder, ActivityType, EntityType, get_activity_recorder
from lawyerzen.auth import SessionIdentity, require_auth
from lawyerzen.db import (
    BatchOperation,
    Collections,
    DocumentService,
    OrderBy,
    QueryFilter,
    QueryResult,
)
from lawyerzen.dependencies import get_documents
from lawyerzen.schemas import (
    AlertCreate,
    CaseCreate,
    ClientCreate,
    HearingCreate,
    InvoiceCreate,
    OkResponse,
    RecordUpdate,
    TimeEntryCreate,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_auth)])

NEWEST_FIRST = OrderBy("createdAt", "desc")
INDEX_FALLBACK_HEADER = "X-Index-Fallback"
MOBILE_NUMBER_PATTERN = re.compile(r"^[6-9]\d{9}$")


def _owner_filter(user: SessionIdentity) -> QueryFilter:
    return QueryFilter("owner", "==", user.user_id)


def _flag_fallback(response: Response, result: QueryResult) -> list[dict]:
    if result.sorted_in_memory:
        response.headers[INDEX_FALLBACK_HEADER] = result.missing_index or "unknown"
    return list(result)


def _list_owned(
    documents: DocumentService,
    collection: str,
    user: SessionIdentity,
    response: Response,
    *extra: QueryFilter,
    limit: int | None = None,
) -> list[dict]:
    result = documents.query_documents(
        collection, [_owner_filter(user), *extra], NEWEST_FIRST, limit
    )
    return _flag_fallback(response, result)


def _get_owned(
    documents: DocumentService, collection: str, doc_id: str, user: SessionIdentity
) -> dict:
    record = documents.get_document_by_id(collection, doc_id)
    if not record or str(record.get("owner")) != user.user_id:
        raise HTTPException(status_code=404, detail="Not found")
    return record


def _update_fields(payload: RecordUpdate) -> dict:
    updates = dict(payload.model_extra or {})
    updates.pop("owner", None)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    return updates


def _create_owned(
    documents: DocumentService, collection: str, user: SessionIdentity, data: dict
) -> dict:
    return documents.create_document(collection, {**data, "owner": user.user_id})


def _delete_owned(
    documents: DocumentService, collection: str, doc_id: str, user: SessionIdentity
) -> OkResponse:
    _get_owned(documents, collection, doc_id, user)
    documents.delete_document(collection, doc_id)
    return OkResponse()


def generate_client_code(name: str, when: datetime | None = None, counter: int = 1) -> str:
    """``<slug>-<YYMMDD>-<NNN>``, e.g. ``acme-corp-250114-001``."""
    when = when or datetime.now(timezone.utc)
    slug = re.sub(r"[^a-z0-9\s-]", "", name.lower().strip())
    slug = re.sub(r"\s+", "-", slug)[:20]
    return f"{slug}-{when:%y%m%d}-{counter:03d}"


def normalize_mobile_number(phone: str) -> str:
    """Reduce an Indian mobile number to its 10 significant digits.

    Accepts a leading ``0``, ``91`` or ``091`` prefix.
    """
    digits = re.sub(r"\D", "", phone)
    for prefix in ("091", "91", "0"):
        if len(digits) == 10 + len(prefix) and digits.startswith(prefix):
            digits = digits[len(prefix):]
            break
    if not MOBILE_NUMBER_PATTERN.match(digits):
        raise HTTPException(
            status_code=400, detail="Phone number must be 10 digits and start with 6-9"
        )
    return digits


# ---- Cases ------------------------------------------------------------------


def _check_case_number(
    documents: DocumentService, user: SessionIdentity, case_number: str, exclude_id: str | None = None
) -> str:
    case_number = case_number.strip()
    if not case_number:
        raise HTTPException(status_code=400, detail="Case number is required")
    existing = documents.query_documents(
        Collections.CASES,
        [_owner_filter(user), QueryFilter("caseNumber", "==", case_number)],
    )
    if any(case["id"] != exclude_id for case in existing):
        raise HTTPException(
            status_code=409, detail=f'Case number "{case_number}" already exists'
        )
    return case_number


def _case_metadata(case: dict) -> dict:
    return {
        "caseNumber": case.get("caseNumber"),
        "clientName": case.get("clientName"),
        "priority": case.get("priority"),
        "status": case.get("status"),
    }


@router.get("/cases")
def list_cases(
    response: Response,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _list_owned(documents, Collections.CASES, user, response)


@router.post("/cases", status_code=201)
def create_case(
    payload: CaseCreate,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    recorder: ActivityRecorder = Depends(get_activity_recorder),
):
    data = payload.model_dump()
    data["caseNumber"] = _check_case_number(documents, user, payload.caseNumber)
    case = _create_owned(documents, Collections.CASES, user, data)
    recorder.stage(
        ActivityType.CASE_CREATED,
        f"New case {case['caseNumber']} created",
        EntityType.CASE,
        case["id"],
        _case_metadata(case),
    )
    return case


@router.get("/cases/{case_id}")
def get_case(
    case_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _get_owned(documents, Collections.CASES, case_id, user)


@router.put("/cases/{case_id}")
def update_case(
    case_id: str,
    payload: RecordUpdate,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    recorder: ActivityRecorder = Depends(get_activity_recorder),
):
    existing = _get_owned(documents, Collections.CASES, case_id, user)
    updates = _update_fields(payload)
    if "caseNumber" in updates:
        updates["caseNumber"] = _check_case_number(
            documents, user, str(updates["caseNumber"] or ""), exclude_id=case_id
        )
    case = documents.update_document(Collections.CASES, case_id, updates)
    if existing.get("status") != "closed" and case.get("status") == "closed":
        recorder.stage(
            ActivityType.CASE_CLOSED,
            f"Case {case.get('caseNumber')} closed",
            EntityType.CASE,
            case_id,
            _case_metadata(case),
        )
    else:
        recorder.stage(
            ActivityType.CASE_UPDATED,
            f"Case {case.get('caseNumber')} updated",
            EntityType.CASE,
            case_id,
            _case_metadata(case),
        )
    return case


@router.delete("/cases/{case_id}", response_model=OkResponse)
def delete_case(
    case_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    _get_owned(documents, Collections.CASES, case_id, user)
    hearings = documents.query_documents(
        Collections.HEARINGS, [_owner_filter(user), QueryFilter("caseId", "==", case_id)]
    )
    # Hearings only exist under their case.
    documents.batch_write(
        [BatchOperation("delete", Collections.CASES, id=case_id)]
        + [BatchOperation("delete", Collections.HEARINGS, id=h["id"]) for h in hearings]
    )
    return OkResponse()


# ---- Clients ----------------------------------------------------------------


@router.get("/clients")
def list_clients(
    response: Response,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _list_owned(documents, Collections.CLIENTS, user, response)


@router.post("/clients", status_code=201)
def create_client(
    payload: ClientCreate,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    recorder: ActivityRecorder = Depends(get_activity_recorder),
):
    data = payload.model_dump()
    data["email"] = payload.email.strip().lower()
    data["phone"] = normalize_mobile_number(payload.phone)

    counter = 1
    client_code = generate_client_code(payload.name)
    while documents.query_documents(
        Collections.CLIENTS, [QueryFilter("clientCode", "==", client_code)], limit=1
    ):
        counter += 1
        client_code = generate_client_code(payload.name, counter=counter)
    data["clientCode"] = client_code

    client = _create_owned(documents, Collections.CLIENTS, user, data)
    recorder.stage(
        ActivityType.CLIENT_REGISTERED,
        f"New client {client['name']} registered",
        EntityType.CLIENT,
        client["id"],
        {"clientName": client["name"]},
    )
    return client


@router.get("/clients/{client_id}")
def get_client(
    client_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _get_owned(documents, Collections.CLIENTS, client_id, user)


@router.put("/clients/{client_id}")
def update_client(
    client_id: str,
    payload: RecordUpdate,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    recorder: ActivityRecorder = Depends(get_activity_recorder),
):
    _get_owned(documents, Collections.CLIENTS, client_id, user)
    updates = _update_fields(payload)
    if "phone" in updates:
        updates["phone"] = normalize_mobile_number(str(updates["phone"] or ""))
    client = documents.update_document(Collections.CLIENTS, client_id, updates)
    recorder.stage(
        ActivityType.CLIENT_UPDATED,
        f"Client {client.get('name')} information updated",
        EntityType.CLIENT,
        client_id,
        {"clientName": client.get("name")},
    )
    return client


@router.delete("/clients/{client_id}", response_model=OkResponse)
def delete_client(
    client_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _delete_owned(documents, Collections.CLIENTS, client_id, user)


@router.get("/clients/{client_id}/cases")
def list_client_cases(
    client_id: str,
    response: Response,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    _get_owned(documents, Collections.CLIENTS, client_id, user)
    return _list_owned(
        documents, Collections.CASES, user, response, QueryFilter("clientId", "==", client_id)
    )


# ---- Invoices ---------------------------------------------------------------


def _invoice_metadata(invoice: dict) -> dict:
    return {
        "invoiceNumber": invoice.get("invoiceNumber"),
        "amount": invoice.get("total"),
        "currency": invoice.get("currency"),
        "status": invoice.get("status"),
    }


@router.get("/invoices")
def list_invoices(
    response: Response,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _list_owned(documents, Collections.INVOICES, user, response)


@router.post("/invoices", status_code=201)
def create_invoice(
    payload: InvoiceCreate,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    recorder: ActivityRecorder = Depends(get_activity_recorder),
):
    invoice = _create_owned(documents, Collections.INVOICES, user, payload.model_dump())
    recorder.stage(
        ActivityType.INVOICE_CREATED,
        f"Invoice {invoice['invoiceNumber']} created",
        EntityType.INVOICE,
        invoice["id"],
        _invoice_metadata(invoice),
    )
    return invoice


@router.get("/invoices/{invoice_id}")
def get_invoice(
    invoice_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _get_owned(documents, Collections.INVOICES, invoice_id, user)


@router.put("/invoices/{invoice_id}")
def update_invoice(
    invoice_id: str,
    payload: RecordUpdate,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    recorder: ActivityRecorder = Depends(get_activity_recorder),
):
    existing = _get_owned(documents, Collections.INVOICES, invoice_id, user)
    updates = _update_fields(payload)
    newly_paid = existing.get("status") != "paid" and updates.get("status") == "paid"
    if newly_paid:
        updates.setdefault("paidAt", datetime.now(timezone.utc))
    invoice = documents.update_document(Collections.INVOICES, invoice_id, updates)
    # Plain edits have no activity type of their own; only payment is recorded.
    if newly_paid:
        recorder.stage(
            ActivityType.PAYMENT_RECEIVED,
            f"Payment received for invoice {invoice.get('invoiceNumber')}",
            EntityType.INVOICE,
            invoice_id,
            _invoice_metadata(invoice),
        )
    return invoice


@router.post("/invoices/{invoice_id}/send")
def send_invoice(
    invoice_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    recorder: ActivityRecorder = Depends(get_activity_recorder),
):
    _get_owned(documents, Collections.INVOICES, invoice_id, user)
    invoice = documents.update_document(
        Collections.INVOICES,
        invoice_id,
        {"status": "sent", "sentAt": datetime.now(timezone.utc)},
    )
    recorder.stage(
        ActivityType.INVOICE_SENT,
        f"Invoice {invoice.get('invoiceNumber')} sent",
        EntityType.INVOICE,
        invoice_id,
        _invoice_metadata(invoice),
    )
    return invoice


@router.delete("/invoices/{invoice_id}", response_model=OkResponse)
def delete_invoice(
    invoice_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _delete_owned(documents, Collections.INVOICES, invoice_id, user)


# ---- Hearings ---------------------------------------------------------------


@router.get("/hearings")
def list_hearings(
    response: Response,
    case_id: str | None = Query(None, alias="caseId"),
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    extra = [QueryFilter("caseId", "==", case_id)] if case_id else []
    return _list_owned(documents, Collections.HEARINGS, user, response, *extra)


@router.post("/hearings", status_code=201)
def create_hearing(
    payload: HearingCreate,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    recorder: ActivityRecorder = Depends(get_activity_recorder),
):
    case = _get_owned(documents, Collections.CASES, payload.caseId, user)
    hearing = _create_owned(
        documents,
        Collections.HEARINGS,
        user,
        {**payload.model_dump(), "caseNumber": case.get("caseNumber")},
    )
    documents.update_document(Collections.CASES, case["id"], {"nextHearing": payload.date})
    recorder.stage(
        ActivityType.HEARING_SCHEDULED,
        f"Hearing scheduled for case {case.get('caseNumber')} on {payload.date}",
        EntityType.HEARING,
        hearing["id"],
        {"caseNumber": case.get("caseNumber"), "status": hearing.get("status")},
    )
    return hearing


@router.get("/hearings/{hearing_id}")
def get_hearing(
    hearing_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _get_owned(documents, Collections.HEARINGS, hearing_id, user)


@router.put("/hearings/{hearing_id}")
def update_hearing(
    hearing_id: str,
    payload: RecordUpdate,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    recorder: ActivityRecorder = Depends(get_activity_recorder),
):
    _get_owned(documents, Collections.HEARINGS, hearing_id, user)
    hearing = documents.update_document(
        Collections.HEARINGS, hearing_id, _update_fields(payload)
    )
    recorder.stage(
        ActivityType.HEARING_UPDATED,
        f"Hearing for case {hearing.get('caseNumber')} updated",
        EntityType.HEARING,
        hearing_id,
        {"caseNumber": hearing.get("caseNumber"), "status": hearing.get("status")},
    )
    return hearing


@router.delete("/hearings/{hearing_id}", response_model=OkResponse)
def delete_hearing(
    hearing_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    recorder: ActivityRecorder = Depends(get_activity_recorder),
):
    hearing = _get_owned(documents, Collections.HEARINGS, hearing_id, user)
    documents.delete_document(Collections.HEARINGS, hearing_id)
    # The hearing is gone; the activity points at its case, if it has one.
    if hearing.get("caseId"):
        recorder.stage(
            ActivityType.HEARING_DELETED,
            f"Hearing for case {hearing.get('caseNumber')} deleted",
            EntityType.CASE,
            hearing["caseId"],
            {"caseNumber": hearing.get("caseNumber")},
        )
    return OkResponse()


# ---- Time entries -----------------------------------------------------------


@router.get("/time-entries")
def list_time_entries(
    response: Response,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _list_owned(documents, Collections.TIME_ENTRIES, user, response)


@router.post("/time-entries", status_code=201)
def create_time_entry(
    payload: TimeEntryCreate,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    recorder: ActivityRecorder = Depends(get_activity_recorder),
):
    if payload.caseId:
        _get_owned(documents, Collections.CASES, payload.caseId, user)
    entry = _create_owned(documents, Collections.TIME_ENTRIES, user, payload.model_dump())
    recorder.stage(
        ActivityType.TIME_LOGGED,
        f"{entry['duration']} minutes logged: {entry['description']}",
        EntityType.TIME_ENTRY,
        entry["id"],
        {
            "duration": entry["duration"],
            "description": entry["description"],
            "billable": entry["billable"],
        },
    )
    return entry


@router.get("/time-entries/{entry_id}")
def get_time_entry(
    entry_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _get_owned(documents, Collections.TIME_ENTRIES, entry_id, user)


@router.put("/time-entries/{entry_id}")
def update_time_entry(
    entry_id: str,
    payload: RecordUpdate,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    _get_owned(documents, Collections.TIME_ENTRIES, entry_id, user)
    return documents.update_document(
        Collections.TIME_ENTRIES, entry_id, _update_fields(payload)
    )


@router.delete("/time-entries/{entry_id}", response_model=OkResponse)
def delete_time_entry(
    entry_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _delete_owned(documents, Collections.TIME_ENTRIES, entry_id, user)


# ---- Alerts -----------------------------------------------------------------


@router.get("/alerts")
def list_alerts(
    response: Response,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _list_owned(documents, Collections.ALERTS, user, response)


@router.post("/alerts", status_code=201)
def create_alert(
    payload: AlertCreate,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    recorder: ActivityRecorder = Depends(get_activity_recorder),
):
    alert = _create_owned(documents, Collections.ALERTS, user, payload.model_dump())
    recorder.stage(
        ActivityType.ALERT_CREATED,
        f"Alert created: {alert['title']}",
        EntityType.ALERT,
        alert["id"],
        {"priority": alert["priority"]},
    )
    return alert


@router.get("/alerts/{alert_id}")
def get_alert(
    alert_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _get_owned(documents, Collections.ALERTS, alert_id, user)


@router.put("/alerts/{alert_id}")
def update_alert(
    alert_id: str,
    payload: RecordUpdate,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    _get_owned(documents, Collections.ALERTS, alert_id, user)
    return documents.update_document(Collections.ALERTS, alert_id, _update_fields(payload))


@router.delete("/alerts/{alert_id}", response_model=OkResponse)
def delete_alert(
    alert_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _delete_owned(documents, Collections.ALERTS, alert_id, user)


# ---- Activity feed ----------------------------------------------------------


@router.get("/activities")
def list_activities(
    response: Response,
    limit: int = Query(20, ge=1, le=100),
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    return _list_owned(documents, Collections.ACTIVITIES, user, response, limit=limit)
