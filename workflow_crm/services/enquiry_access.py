"""
Enquiry visibility filter.

Every read of enquiries goes through this module before it reaches a
listing, a kanban board or a dashboard aggregate.

Rules:
    superadmin / director   → every enquiry
    salesman                → enquiry_by == actor OR assigned == actor
    designer / production / purchase → assigned == actor

Single-record reads also accept anyone who appears as an assignee in the
enquiry's status history ("worked on it once, may still view it").

A caller-supplied search is ANDed with the role filter as its own OR
group; the two groups are never flattened into one OR.
"""

import logging

from sqlalchemy import and_, or_, select

from workflow_crm.models import db
from workflow_crm.models.client import Client
from workflow_crm.models.enquiry import Enquiry, EnquiryStatusHistory
from workflow_crm.services.permission import is_admin

logger = logging.getLogger(__name__)


def role_filter(actor):
    """SQL criterion restricting enquiries to what ``actor`` may list, or None."""
    if is_admin(actor):
        return None
    if actor.role == "salesman":
        return or_(
            Enquiry.enquiry_by_id == actor.id,
            Enquiry.current_assigned_person_id == actor.id,
        )
    return Enquiry.current_assigned_person_id == actor.id


def search_filter(text: str | None):
    """Case-insensitive OR group over the searchable enquiry fields."""
    text = (text or "").strip()
    if not text:
        return None
    pattern = f"%{text}%"
    return or_(
        Enquiry.enquiry_num.ilike(pattern),
        Enquiry.enquiry_detail.ilike(pattern),
        Enquiry.order_number.ilike(pattern),
        Enquiry.client.has(Client.client_name.ilike(pattern)),
    )


def visible_enquiries_query(actor, base_query=None):
    """Restrict ``base_query`` (default: all enquiries) to the actor's visible set."""
    query = base_query if base_query is not None else Enquiry.query
    criterion = role_filter(actor)
    if criterion is not None:
        query = query.filter(criterion)
    return query


def apply_search(query, text: str | None):
    """AND a search OR-group onto an already role-filtered query."""
    criterion = search_filter(text)
    if criterion is not None:
        query = query.filter(criterion)
    return query


def visible_enquiry_criteria(actor, search: str | None = None):
    """Combined criterion for callers that build their own statements (dashboard)."""
    parts = [c for c in (role_filter(actor), search_filter(search)) if c is not None]
    if not parts:
        return None
    return parts[0] if len(parts) == 1 else and_(*parts)


def _history_subquery(actor_id: int):
    return (
        select(EnquiryStatusHistory.enquiry_id)
        .where(EnquiryStatusHistory.assigned_person_id == actor_id)
    )


def appears_in_history(actor_id: int, enquiry_id: int) -> bool:
    return db.session.query(
        EnquiryStatusHistory.query
        .filter_by(enquiry_id=enquiry_id, assigned_person_id=actor_id)
        .exists()
    ).scalar()


def can_view_enquiry(actor, enquiry: Enquiry) -> bool:
    """Single-record check: direct access, or a status-history grant."""
    if is_admin(actor):
        return True
    if actor.id in (enquiry.enquiry_by_id, enquiry.current_assigned_person_id):
        return True
    return appears_in_history(actor.id, enquiry.id)


def worked_enquiries_query(actor, base_query=None):
    """
    "My worked enquiries": enquiries the actor raised or was ever assigned.

    Admins see everything, as everywhere else.
    """
    query = base_query if base_query is not None else Enquiry.query
    if is_admin(actor):
        return query
    return query.filter(or_(
        Enquiry.enquiry_by_id == actor.id,
        Enquiry.id.in_(_history_subquery(actor.id)),
    ))
