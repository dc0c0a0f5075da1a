"""
Dashboard summaries computed from the caller's records.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from fastapi import APIRouter, Depends

from lawyerzen.auth import SessionIdentity, require_auth
from lawyerzen.db import Collections, DocumentService, OrderBy, QueryFilter, sort_documents
from lawyerzen.dependencies import get_documents

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard", dependencies=[Depends(require_auth)])

UNPAID_STATUSES = ("draft", "sent", "overdue")
OVERDUE_STATUSES = ("sent", "overdue")


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _as_datetime(value: Any) -> Optional[datetime]:
    if hasattr(value, "to_datetime") and not isinstance(value, datetime):
        value = value.to_datetime()
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _day(value: Any) -> Optional[str]:
    """ISO ``YYYY-MM-DD`` of a stored date or datetime."""
    parsed = _as_datetime(value)
    return parsed.date().isoformat() if parsed else None


def _month_bounds(today: date) -> tuple[datetime, datetime]:
    start = datetime(today.year, today.month, 1, tzinfo=timezone.utc)
    if today.month == 12:
        end = datetime(today.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(today.year, today.month + 1, 1, tzinfo=timezone.utc)
    return start, end


def _in_window(value: Any, start: datetime, end: datetime) -> bool:
    parsed = _as_datetime(value)
    return parsed is not None and start <= parsed < end


def _owned(documents: DocumentService, collection: str, user: SessionIdentity) -> list[dict]:
    return list(
        documents.query_documents(collection, [QueryFilter("owner", "==", user.user_id)])
    )


def _total(invoices: Iterable[dict]) -> float:
    return sum(invoice.get("total") or 0 for invoice in invoices)


@router.get("/stats")
def dashboard_stats(
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    today = _today()
    month_start, month_end = _month_bounds(today)
    prev_start, _ = _month_bounds(month_start.date() - timedelta(days=1))

    cases = _owned(documents, Collections.CASES, user)
    clients = _owned(documents, Collections.CLIENTS, user)
    invoices = _owned(documents, Collections.INVOICES, user)
    hearings = _owned(documents, Collections.HEARINGS, user)
    entries = _owned(documents, Collections.TIME_ENTRIES, user)

    invoiced = _total(i for i in invoices if _in_window(i.get("createdAt"), month_start, month_end))
    previous = _total(i for i in invoices if _in_window(i.get("createdAt"), prev_start, month_start))
    paid = _total(
        i
        for i in invoices
        if i.get("status") == "paid" and _in_window(i.get("paidAt"), month_start, month_end)
    )
    growth = round((invoiced - previous) / previous * 100, 1) if previous > 0 else 0

    billable = [
        e
        for e in entries
        if e.get("billable") and _in_window(e.get("createdAt"), month_start, month_end)
    ]
    billable_minutes = sum(e.get("duration") or 0 for e in billable)
    billable_amount = sum((e.get("duration") or 0) / 60 * (e.get("hourlyRate") or 0) for e in billable)

    today_iso = today.isoformat()
    upcoming = [
        h for h in hearings if (_day(h.get("date")) or "") >= today_iso and h.get("status") != "cancelled"
    ]

    logger.debug("Dashboard stats for %s: %d cases, %d invoices", user.user_id, len(cases), len(invoices))
    return {
        "totalCases": len(cases),
        "activeCases": sum(1 for c in cases if c.get("status") == "active"),
        "urgentCases": sum(1 for c in cases if c.get("priority") == "urgent"),
        "totalClients": len(clients),
        "upcomingHearings": len(upcoming),
        "todaysHearings": sum(1 for h in upcoming if _day(h.get("date")) == today_iso),
        "revenue": {
            "currentMonth": invoiced,
            "growth": growth,
            "invoiced": invoiced,
            "paid": paid,
            "unpaid": _total(i for i in invoices if i.get("status") in UNPAID_STATUSES),
            "billable": round(billable_amount, 2),
            "billableHours": round(billable_minutes / 60, 2),
        },
    }


@router.get("/notifications")
def dashboard_notifications(
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    """Unread alerts, hearings today and tomorrow, and the oldest overdue invoices."""
    today = _today()
    today_iso = today.isoformat()
    tomorrow_iso = (today + timedelta(days=1)).isoformat()

    alerts = [a for a in _owned(documents, Collections.ALERTS, user) if not a.get("isRead")]
    hearings = sort_documents(_owned(documents, Collections.HEARINGS, user), OrderBy("time"))
    todays = [h for h in hearings if _day(h.get("date")) == today_iso]
    tomorrows = [h for h in hearings if _day(h.get("date")) == tomorrow_iso]
    overdue = sort_documents(
        [
            i
            for i in _owned(documents, Collections.INVOICES, user)
            if i.get("status") in OVERDUE_STATUSES and (_day(i.get("dueDate")) or today_iso) < today_iso
        ],
        OrderBy("dueDate"),
    )[:5]

    return {
        "alerts": sort_documents(alerts, OrderBy("createdAt", "desc")),
        "overdueInvoices": overdue,
        "todaysHearings": todays,
        "tomorrowsHearings": tomorrows,
        "summary": {
            "totalUnread": len(alerts),
            "overdueCount": len(overdue),
            "todayHearings": len(todays),
            "tomorrowHearings": len(tomorrows),
        },
    }
