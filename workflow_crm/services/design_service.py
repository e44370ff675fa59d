"""
Design Sub-workflow Service

  assign_designer            Enquiry → Design, DesignWork upserted (pending)
  save_design_progress       partial update, DesignWork → in_progress
  complete_design_and_return DesignWork → completed, Enquiry → BOQ and back
                             to its original salesperson (enquiry_by)

Only the DesignWork's own designer, or superadmin/director, may save or
complete it.
"""

import logging
from datetime import datetime, timezone

from workflow_crm.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from workflow_crm.models import db
from workflow_crm.models.workflow import DESIGN_STATUSES, DesignAttachment, DesignWork
from workflow_crm.services.enquiry_workflow import (
    append_note,
    assignment_payload,
    enforce_transition,
    get_user_or_404,
    load_enquiry_for_actor,
    move_enquiry,
    record_history,
)
from workflow_crm.services.notification import build_payload, get_dispatcher
from workflow_crm.services.permission import is_admin
from workflow_crm.services.provisioning import upsert_design_work

logger = logging.getLogger(__name__)

RETURN_TO_SALES_NOTE = "Design completed, returned to salesperson for BOQ"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_design_work_or_404(design_work_id) -> DesignWork:
    work = db.session.get(DesignWork, design_work_id)
    if work is None:
        raise NotFoundError(resource="DesignWork", resource_id=design_work_id)
    return work


def _check_owner(work: DesignWork, actor) -> None:
    if work.designer_id != actor.id and not is_admin(actor):
        raise AuthorizationError("Only the assigned designer may update this design", actor_id=actor.id)


def get_design_work_for_enquiry(enquiry_id, actor) -> DesignWork | None:
    enquiry = load_enquiry_for_actor(enquiry_id, actor)
    return enquiry.design_work


def assign_designer(enquiry_id, designer_id, actor, *, client_requirements=None) -> DesignWork:
    """Send the enquiry to a designer and (re)create its DesignWork."""
    enquiry = load_enquiry_for_actor(enquiry_id, actor)
    designer = get_user_or_404(designer_id, "designer_id")
    if designer.role != "designer":
        raise ValidationError(f"User id={designer.id} is not a designer",
                              details={"designer_id": designer.role})
    enforce_transition(enquiry, "Design")

    move_enquiry(enquiry, "Design", designer.id)
    work = upsert_design_work(enquiry, designer.id, client_requirements)
    record_history(enquiry, f"Assigned to designer {designer.name}", actor)
    db.session.commit()

    logger.info("Enquiry %s assigned to designer %s", enquiry.enquiry_num, designer.id,
                extra={"enquiry_id": enquiry.id, "actor_id": actor.id})

    dispatcher = get_dispatcher()
    dispatcher.notify_user(designer.id, build_payload(
        "design_assigned", "New Design Task",
        f"You have been assigned design work for enquiry {enquiry.enquiry_num}",
        enquiry, assigned_by=actor.name, assigned_by_id=actor.id,
    ))
    dispatcher.emit_to_enquiry(enquiry.id, "assignment_changed", {
        "enquiry": enquiry.to_dict(),
        "assigned_to": designer.to_summary(),
        "assigned_by": actor.to_summary(),
    })
    return work


def save_design_progress(design_work_id, actor, *, designer_notes=None, client_requirements=None) -> DesignWork:
    """Partial update; marks the work in_progress. The enquiry is untouched."""
    work = get_design_work_or_404(design_work_id)
    _check_owner(work, actor)
    if work.design_status == "completed":
        raise ValidationError("Design work is already completed", details={"design_status": "completed"})

    if designer_notes is not None:
        work.designer_notes = designer_notes
    if client_requirements is not None:
        work.client_requirements = client_requirements
    work.design_status = "in_progress"
    db.session.commit()
    return work


def complete_design_and_return(design_work_id, actor, *, note=None) -> DesignWork:
    """
    Finish the design and return the enquiry to its original salesperson
    at status BOQ, whoever the designer was.
    """
    work = get_design_work_or_404(design_work_id)
    _check_owner(work, actor)
    if work.design_status == "completed":
        raise ValidationError("Design work is already completed", details={"design_status": "completed"})
    enquiry = work.enquiry
    enforce_transition(enquiry, "BOQ")
    old_status = enquiry.status

    work.design_status = "completed"
    work.completed_at = _utcnow()
    move_enquiry(enquiry, "BOQ", enquiry.enquiry_by_id)
    record_history(enquiry, RETURN_TO_SALES_NOTE, actor)
    append_note(enquiry, note, actor)
    db.session.commit()

    logger.info("Design for enquiry %s completed, returned to %s", enquiry.enquiry_num,
                enquiry.enquiry_by_id, extra={"enquiry_id": enquiry.id, "actor_id": actor.id})

    designer = work.designer
    dispatcher = get_dispatcher()
    dispatcher.notify_user(enquiry.enquiry_by_id, build_payload(
        "design_completed", "Design Completed",
        f"Design for enquiry {enquiry.enquiry_num} has been completed",
        enquiry, designer=designer.name, designer_id=designer.id,
    ))
    dispatcher.emit_to_enquiry(enquiry.id, "status_changed", {
        "enquiry": enquiry.to_dict(),
        "old_status": old_status,
        "new_status": "BOQ",
        "changed_by": actor.to_summary(),
    })
    return work


def update_design_work(design_work_id, data: dict, actor) -> DesignWork:
    """Generic edit; setting design_status=completed runs the return-to-sales flow."""
    work = get_design_work_or_404(design_work_id)
    _check_owner(work, actor)
    status = data.get("design_status")
    if status and status not in DESIGN_STATUSES:
        raise ValidationError(f"Invalid design_status: {status!r}", details={"design_status": status})
    if status == "completed":
        if "designer_notes" in data:
            work.designer_notes = data["designer_notes"]
        if "client_requirements" in data:
            work.client_requirements = data["client_requirements"]
        return complete_design_and_return(work.id, actor, note=data.get("note"))

    if "designer_notes" in data:
        work.designer_notes = data["designer_notes"]
    if "client_requirements" in data:
        work.client_requirements = data["client_requirements"]
    if status:
        work.design_status = status
    db.session.commit()
    return work


def list_designer_tasks(actor, status=None) -> list[DesignWork]:
    """Design work owned by the actor (all designers' work for admins)."""
    q = DesignWork.query
    if not is_admin(actor):
        q = q.filter(DesignWork.designer_id == actor.id)
    if status:
        if status not in DESIGN_STATUSES:
            raise ValidationError(f"Invalid design_status: {status!r}", details={"status": status})
        q = q.filter(DesignWork.design_status == status)
    else:
        q = q.filter(DesignWork.design_status != "completed")
    return q.order_by(DesignWork.updated_at.desc(), DesignWork.id.desc()).all()


def list_completed_designs(actor) -> list[DesignWork]:
    return list_designer_tasks(actor, status="completed")


# ── Attachments ──────────────────────────────────────────────────────────────

def add_attachment(enquiry_id, data: dict, actor) -> DesignAttachment:
    enquiry = load_enquiry_for_actor(enquiry_id, actor)
    file_name = (data.get("file_name") or "").strip()
    file_url = (data.get("file_url") or "").strip()
    if not file_name or not file_url:
        raise ValidationError("file_name and file_url are required",
                              details={"file_name": "required", "file_url": "required"})
    attachment = DesignAttachment(
        enquiry_id=enquiry.id,
        file_name=file_name,
        file_url=file_url,
        file_type=data.get("file_type") or "application/octet-stream",
        uploaded_by_id=actor.id,
    )
    db.session.add(attachment)
    db.session.commit()
    return attachment


def list_attachments(enquiry_id, actor) -> list[DesignAttachment]:
    enquiry = load_enquiry_for_actor(enquiry_id, actor)
    return (
        DesignAttachment.query
        .filter_by(enquiry_id=enquiry.id)
        .order_by(DesignAttachment.uploaded_at.desc(), DesignAttachment.id.desc())
        .all()
    )


def delete_attachment(attachment_id, actor) -> None:
    attachment = db.session.get(DesignAttachment, attachment_id)
    if attachment is None:
        raise NotFoundError(resource="DesignAttachment", resource_id=attachment_id)
    if attachment.uploaded_by_id != actor.id and not is_admin(actor):
        raise AuthorizationError("Only the uploader may delete this attachment", actor_id=actor.id)
    db.session.delete(attachment)
    db.session.commit()
