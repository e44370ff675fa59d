"""
Dispatch Sub-workflow Service

  assign_dispatch   Enquiry → ReadyForDispatch, DispatchWork upserted (pending)
  update_dispatch   shipping details; status "dispatched" cascades the
                    enquiry to Dispatched and tells its salesperson
"""

import logging
from datetime import datetime, timezone

from workflow_crm.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from workflow_crm.models import db
from workflow_crm.models.workflow import DISPATCH_STATUSES, DispatchWork
from workflow_crm.services.enquiry_workflow import (
    enforce_transition,
    get_user_or_404,
    load_enquiry_for_actor,
    move_enquiry,
    record_history,
)
from workflow_crm.services.notification import build_payload, get_dispatcher
from workflow_crm.services.permission import is_admin
from workflow_crm.services.provisioning import upsert_dispatch_work
from workflow_crm.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)


def get_dispatch_or_404(dispatch_id) -> DispatchWork:
    work = db.session.get(DispatchWork, dispatch_id)
    if work is None:
        raise NotFoundError(resource="DispatchWork", resource_id=dispatch_id)
    return work


def get_dispatch_for_enquiry(enquiry_id, actor) -> DispatchWork | None:
    enquiry = load_enquiry_for_actor(enquiry_id, actor)
    return enquiry.dispatch_work


def assign_dispatch(enquiry_id, dispatch_assigned_to, actor, *, tracking_number=None,
                    dispatch_date=None, estimated_delivery_date=None) -> DispatchWork:
    enquiry = load_enquiry_for_actor(enquiry_id, actor)
    assignee = get_user_or_404(dispatch_assigned_to, "dispatch_assigned_to")
    enforce_transition(enquiry, "ReadyForDispatch")

    move_enquiry(enquiry, "ReadyForDispatch", assignee.id)
    work = upsert_dispatch_work(
        enquiry, assignee.id,
        tracking_number=tracking_number,
        dispatch_date=parse_datetime(dispatch_date),
        estimated_delivery_date=parse_datetime(estimated_delivery_date),
    )
    record_history(enquiry, f"Assigned for dispatch by {actor.name}", actor)
    db.session.commit()

    logger.info("Enquiry %s assigned for dispatch to %s", enquiry.enquiry_num, assignee.id,
                extra={"enquiry_id": enquiry.id, "actor_id": actor.id})

    dispatcher = get_dispatcher()
    dispatcher.notify_user(assignee.id, build_payload(
        "dispatch_assigned", "Dispatch Assignment",
        f"You have been assigned to dispatch enquiry {enquiry.enquiry_num}",
        enquiry, assigned_by=actor.name, assigned_by_id=actor.id,
    ))
    dispatcher.emit_to_enquiry(enquiry.id, "assignment_changed", {
        "enquiry": enquiry.to_dict(),
        "assigned_to": assignee.to_summary(),
        "assigned_by": actor.to_summary(),
    })
    return work


def update_dispatch(dispatch_id, data: dict, actor) -> DispatchWork:
    """
    Partial update of the shipping record.

    Moving to ``dispatched`` (from any other status) sets the enquiry to
    Dispatched, records history and notifies the enquiry's salesperson.
    """
    work = get_dispatch_or_404(dispatch_id)
    enquiry = work.enquiry
    if actor.id not in (work.dispatch_assigned_to_id, enquiry.enquiry_by_id) and not is_admin(actor):
        raise AuthorizationError("Only the dispatch assignee may update this dispatch", actor_id=actor.id)

    status = data.get("status")
    if status and status not in DISPATCH_STATUSES:
        raise ValidationError(
            f"Invalid dispatch status: {status!r}",
            details={"status": f"must be one of {', '.join(DISPATCH_STATUSES)}"},
        )
    becomes_dispatched = status == "dispatched" and work.status != "dispatched"
    if becomes_dispatched:
        enforce_transition(enquiry, "Dispatched")

    if "tracking_number" in data:
        work.tracking_number = data["tracking_number"]
    if data.get("dispatch_date"):
        work.dispatch_date = parse_datetime(data["dispatch_date"])
    if data.get("estimated_delivery_date"):
        work.estimated_delivery_date = parse_datetime(data["estimated_delivery_date"])
    if "notes" in data:
        work.notes = data["notes"] or ""
    if status:
        work.status = status

    old_status = enquiry.status
    if becomes_dispatched:
        work.dispatch_date = work.dispatch_date or datetime.now(timezone.utc)
        enquiry.status = "Dispatched"
        record_history(enquiry, f"Dispatched with tracking number: {work.tracking_number or 'N/A'}", actor)
    db.session.commit()

    if not becomes_dispatched:
        return work

    logger.info("Enquiry %s dispatched (tracking %s)", enquiry.enquiry_num, work.tracking_number,
                extra={"enquiry_id": enquiry.id, "actor_id": actor.id})
    dispatcher = get_dispatcher()
    dispatcher.notify_user(enquiry.enquiry_by_id, build_payload(
        "enquiry_dispatched", "Enquiry Dispatched",
        f"Enquiry {enquiry.enquiry_num} has been dispatched",
        enquiry, tracking_number=work.tracking_number,
    ))
    dispatcher.emit_to_enquiry(enquiry.id, "status_changed", {
        "enquiry": enquiry.to_dict(),
        "old_status": old_status,
        "new_status": "Dispatched",
        "changed_by": actor.to_summary(),
    })
    return work
