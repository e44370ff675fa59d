"""
Dashboard Aggregator

Read-only metrics over the enquiry pipeline.  Every enquiry aggregate is
scoped by ``enquiry_access.visible_enquiry_criteria`` so a dashboard never
counts what the actor could not list.

  get_stats   KPI counts, values, status distribution, alerts, stage buckets
  get_kanban  visible enquiries grouped by status
  get_reports analytics: material mix, monthly trend, top clients
"""

import logging
from datetime import date, datetime, timezone

from sqlalchemy import func

from workflow_crm.models import db
from workflow_crm.models.auth import User
from workflow_crm.models.client import Client
from workflow_crm.models.enquiry import ENQUIRY_STATUSES, STAGE_GROUPS, Enquiry
from workflow_crm.models.finance import REVENUE_INVOICE_STATUSES, Invoice, Quotation
from workflow_crm.services import enquiry_access
from workflow_crm.services.permission import check_capability, is_admin
from workflow_crm.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)

RECENT_LIMIT = 10
RECENT_ACTIVITY_LIMIT = 5
IN_PRODUCTION_STATUSES = ("InProduction", "ProductionComplete", "Hotdip")
NEEDS_ATTENTION_STATUSES = ("Enquiry", "BOQ")
# An order counts as confirmed once it reaches production
CONFIRMED_STATUSES = ENQUIRY_STATUSES[ENQUIRY_STATUSES.index("ReadyForProduction"):]
TREND_MONTHS = 6
TOP_CLIENTS_LIMIT = 10
REPORT_ENQUIRY_LIMIT = 100


def _as_float(value) -> float:
    if value is None:
        return 0.0
    return float(value)


def _period_filters(column, start, end):
    filters = []
    start = parse_datetime(start) if start else None
    end = parse_datetime(end) if end else None
    if start:
        filters.append(column >= start)
    if end:
        filters.append(column <= end)
    return filters


def _enquiry_query(actor, start=None, end=None):
    q = Enquiry.query
    criterion = enquiry_access.visible_enquiry_criteria(actor)
    if criterion is not None:
        q = q.filter(criterion)
    for f in _period_filters(Enquiry.created_at, start, end):
        q = q.filter(f)
    return q


def _count_where(query, *criteria) -> int:
    return query.filter(*criteria).order_by(None).count()


def _start_of_month() -> datetime:
    today = datetime.now(timezone.utc)
    return today.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def get_stats(actor, start=None, end=None) -> dict:
    """
    Dashboard KPIs for ``actor``.

    ``start`` / ``end`` bound ``created_at`` on enquiries, clients,
    quotations and invoices (ISO date or datetime strings).
    """
    check_capability(actor, "dashboard", "view")
    admin = is_admin(actor)
    enquiries = _enquiry_query(actor, start, end)

    total_enquiries = enquiries.count()
    by_status_rows = (
        enquiries.with_entities(Enquiry.status, func.count(Enquiry.id))
        .group_by(Enquiry.status)
        .order_by(None)
        .all()
    )
    by_status = {status: count for status, count in by_status_rows}

    total_value = _as_float(
        enquiries.with_entities(func.coalesce(func.sum(Enquiry.enquiry_amount), 0)).order_by(None).scalar()
    )
    mine = enquiries.filter(
        (Enquiry.enquiry_by_id == actor.id) | (Enquiry.current_assigned_person_id == actor.id)
    )
    my_count = mine.count()
    my_value = _as_float(
        mine.with_entities(func.coalesce(func.sum(Enquiry.enquiry_amount), 0)).order_by(None).scalar()
    )

    confirmed_orders = _count_where(enquiries, Enquiry.status.in_(CONFIRMED_STATUSES))
    conversion_rate = round(confirmed_orders / total_enquiries * 100, 1) if total_enquiries else 0.0
    avg_value = total_value / total_enquiries if total_enquiries else 0.0
    pending = total_enquiries - by_status.get("Dispatched", 0)
    dispatched_this_month = _count_where(
        enquiries, Enquiry.status == "Dispatched", Enquiry.work_assigned_date >= _start_of_month(),
    )
    needs_attention = 0
    if actor.role == "salesman":
        needs_attention = _count_where(
            enquiries, Enquiry.status.in_(NEEDS_ATTENTION_STATUSES), Enquiry.enquiry_by_id == actor.id,
        )
    pending_tasks = _count_where(
        enquiries, Enquiry.current_assigned_person_id == actor.id, Enquiry.status != "Dispatched",
    )

    today = date.today()
    orders_due_today = _count_where(
        enquiries,
        Enquiry.status == "ReadyForDispatch",
        Enquiry.expected_dispatch_date == today,
    )

    clients = Client.query.filter(*_period_filters(Client.created_at, start, end)).count()
    quotations = Quotation.query.filter(*_period_filters(Quotation.created_at, start, end)).count()
    invoices = Invoice.query.filter(*_period_filters(Invoice.created_at, start, end)).count()
    revenue = _as_float(
        db.session.query(func.coalesce(func.sum(Invoice.grand_total), 0))
        .filter(Invoice.status.in_(REVENUE_INVOICE_STATUSES),
                *_period_filters(Invoice.created_at, start, end))
        .scalar()
    )

    recent = enquiries.order_by(Enquiry.created_at.desc(), Enquiry.id.desc()).limit(RECENT_LIMIT).all()
    recent_activity = []
    if admin:
        recent_activity = (
            enquiries.order_by(Enquiry.work_assigned_date.desc(), Enquiry.id.desc())
            .limit(RECENT_ACTIVITY_LIMIT).all()
        )

    return {
        "total_enquiries": total_enquiries,
        "my_enquiries_count": my_count,
        "total_clients": clients,
        "total_quotations": quotations,
        "total_invoices": invoices,
        "total_users": User.query.count() if admin else 0,
        "total_revenue": revenue,
        "total_value": total_value if admin else my_value,
        "my_total_value": my_value,
        "avg_order_value": avg_value,
        "confirmed_orders": confirmed_orders,
        "conversion_rate": conversion_rate,
        "pending_enquiries": pending,
        "dispatched_this_month": dispatched_this_month,
        "needs_attention": needs_attention,
        "pending_tasks": pending_tasks,
        "enquiries_by_status": [
            {"status": s, "count": by_status[s]} for s in ENQUIRY_STATUSES if s in by_status
        ],
        "recent_enquiries": [e.to_dict() for e in recent],
        "recent_activity": [e.to_dict() for e in recent_activity],
        "alerts": {
            "orders_due_today": orders_due_today,
            "in_production": sum(by_status.get(s, 0) for s in IN_PRODUCTION_STATUSES),
            "ready_for_dispatch": by_status.get("ReadyForDispatch", 0),
        },
        "workflow_stages": {
            stage: sum(by_status.get(s, 0) for s in statuses)
            for stage, statuses in STAGE_GROUPS.items()
        },
    }


def get_kanban(actor) -> dict[str, list[dict]]:
    """Visible enquiries keyed by status; every status is present, possibly empty."""
    check_capability(actor, "kanban", "view")
    rows = (
        enquiry_access.visible_enquiries_query(actor)
        .order_by(Enquiry.created_at.desc(), Enquiry.id.desc())
        .all()
    )
    board = {status: [] for status in ENQUIRY_STATUSES}
    for enquiry in rows:
        board.setdefault(enquiry.status, []).append(enquiry.to_dict())
    return board


def _month_windows(months: int, now: datetime | None = None) -> list[tuple[datetime, datetime]]:
    """``months`` calendar-month [start, end) windows, oldest first, ending with the current month."""
    now = now or datetime.now(timezone.utc)
    year, month = now.year, now.month
    windows = []
    for _ in range(months):
        start = datetime(year, month, 1, tzinfo=timezone.utc)
        end = datetime(year + month // 12, month % 12 + 1, 1, tzinfo=timezone.utc)
        windows.append((start, end))
        year, month = (year - 1, 12) if month == 1 else (year, month - 1)
    return windows[::-1]


def _sum_amount():
    return func.coalesce(func.sum(Enquiry.enquiry_amount), 0)


def get_reports(actor, start=None, end=None, now: datetime | None = None) -> dict:
    """
    Reports page analytics.

    Same role filter and ``start`` / ``end`` window as ``get_stats``.  The
    monthly trend always covers the last TREND_MONTHS calendar months up to
    ``now`` (intersected with the window when one is given).
    """
    check_capability(actor, "reports", "view")
    enquiries = _enquiry_query(actor, start, end)

    total_enquiries = enquiries.count()
    total_value = _as_float(enquiries.with_entities(_sum_amount()).order_by(None).scalar())
    active_orders = _count_where(enquiries, Enquiry.status != "Dispatched")

    by_status = dict(
        enquiries.with_entities(Enquiry.status, func.count(Enquiry.id))
        .group_by(Enquiry.status).order_by(None).all()
    )
    materials = (
        enquiries.with_entities(Enquiry.material_type, func.count(Enquiry.id), _sum_amount())
        .group_by(Enquiry.material_type)
        .order_by(None)
        .all()
    )

    trend = []
    for month_start, month_end in _month_windows(TREND_MONTHS, now):
        in_month = enquiries.filter(Enquiry.created_at >= month_start, Enquiry.created_at < month_end)
        trend.append({
            "month": month_start.strftime("%Y-%m"),
            "label": month_start.strftime("%b"),
            "enquiries": in_month.order_by(None).count(),
            "value": _as_float(in_month.with_entities(_sum_amount()).order_by(None).scalar()),
        })

    client_value = _sum_amount().label("value")
    top_clients = (
        enquiries.join(Client, Client.id == Enquiry.client_id)
        .with_entities(Client.id, Client.client_name, func.count(Enquiry.id), client_value)
        .group_by(Client.id, Client.client_name)
        .order_by(None)
        .order_by(client_value.desc(), Client.id.asc())
        .limit(TOP_CLIENTS_LIMIT)
        .all()
    )

    listed = (
        enquiries.order_by(Enquiry.created_at.desc(), Enquiry.id.desc())
        .limit(REPORT_ENQUIRY_LIMIT).all()
    )

    return {
        "metrics": {
            "total_value": total_value,
            "total_enquiries": total_enquiries,
            "avg_order_value": total_value / total_enquiries if total_enquiries else 0.0,
            "active_orders": active_orders,
            "total_clients": Client.query.filter(*_period_filters(Client.created_at, start, end)).count(),
            "total_quotations": Quotation.query.filter(*_period_filters(Quotation.created_at, start, end)).count(),
            "total_invoices": Invoice.query.filter(*_period_filters(Invoice.created_at, start, end)).count(),
        },
        "status_distribution": [
            {"status": s, "count": by_status[s]} for s in ENQUIRY_STATUSES if s in by_status
        ],
        "material_type_distribution": [
            {"material_type": material, "count": count, "value": _as_float(value)}
            for material, count, value in sorted(materials, key=lambda row: row[0] or "")
        ],
        "monthly_trend": trend,
        "top_clients": [
            {"client_id": cid, "name": name, "count": count, "value": _as_float(value)}
            for cid, name, count, value in top_clients
        ],
        "enquiries": [e.to_dict() for e in listed],
    }
