"""
Production Sub-workflow Service

  assign_production            Enquiry → ReadyForProduction, workflow upserted
  start_production_workflow    workflow → in_progress (step "cutting"),
                               Enquiry → InProduction
  create_task / update_task    shop-floor steps, unordered
  complete_production_workflow workflow → completed, Enquiry →
                               ReadyForDispatch back to enquiry_by

A workflow completes only when every task under it is completed
(``PRODUCTION_REQUIRE_TASKS_COMPLETE``, on by default).
"""

import logging
from datetime import datetime, timezone

from flask import current_app

from workflow_crm.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from workflow_crm.models import db
from workflow_crm.models.workflow import (
    DEFAULT_PRODUCTION_STEP,
    PRODUCTION_STEPS,
    TASK_STATUSES,
    ProductionTask,
    ProductionWorkflow,
)
from workflow_crm.services.code_generator import allocate_order_number
from workflow_crm.services.enquiry_workflow import (
    enforce_transition,
    get_user_or_404,
    load_enquiry_for_actor,
    move_enquiry,
    record_history,
)
from workflow_crm.services.notification import build_payload, get_dispatcher
from workflow_crm.services.permission import is_admin
from workflow_crm.services.provisioning import upsert_production_workflow
from workflow_crm.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)

RETURN_FOR_DISPATCH_NOTE = "Production completed, returned to salesperson for dispatch"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_workflow_or_404(workflow_id) -> ProductionWorkflow:
    workflow = db.session.get(ProductionWorkflow, workflow_id)
    if workflow is None:
        raise NotFoundError(resource="ProductionWorkflow", resource_id=workflow_id)
    return workflow


def get_task_or_404(task_id) -> ProductionTask:
    task = db.session.get(ProductionTask, task_id)
    if task is None:
        raise NotFoundError(resource="ProductionTask", resource_id=task_id)
    return task


def _check_lead(workflow: ProductionWorkflow, actor) -> None:
    if workflow.production_lead_id != actor.id and not is_admin(actor):
        raise AuthorizationError("Only the production lead may manage this workflow", actor_id=actor.id)


def get_workflow_for_enquiry(enquiry_id, actor) -> ProductionWorkflow | None:
    enquiry = load_enquiry_for_actor(enquiry_id, actor)
    return enquiry.production_workflow


def assign_production(enquiry_id, production_lead_id, actor) -> ProductionWorkflow:
    enquiry = load_enquiry_for_actor(enquiry_id, actor)
    lead = get_user_or_404(production_lead_id, "production_lead_id")
    if lead.role != "production":
        raise ValidationError(f"User id={lead.id} is not a production user",
                              details={"production_lead_id": lead.role})
    enforce_transition(enquiry, "ReadyForProduction")

    if enquiry.order_number is None:
        enquiry.order_number = allocate_order_number()
        enquiry.order_date = _utcnow()

    move_enquiry(enquiry, "ReadyForProduction", lead.id)
    workflow = upsert_production_workflow(enquiry, lead.id)
    record_history(enquiry, f"Assigned to production by {actor.name}", actor)
    db.session.commit()

    logger.info("Enquiry %s assigned to production lead %s", enquiry.enquiry_num, lead.id,
                extra={"enquiry_id": enquiry.id, "actor_id": actor.id})

    dispatcher = get_dispatcher()
    dispatcher.notify_user(lead.id, build_payload(
        "production_assigned", "New Production Task",
        f"Enquiry {enquiry.enquiry_num} has been assigned to production",
        enquiry, assigned_by=actor.name, assigned_by_id=actor.id,
    ))
    dispatcher.emit_to_enquiry(enquiry.id, "assignment_changed", {
        "enquiry": enquiry.to_dict(),
        "assigned_to": lead.to_summary(),
        "assigned_by": actor.to_summary(),
    })
    return workflow


def start_production_workflow(workflow_id, actor) -> ProductionWorkflow:
    workflow = get_workflow_or_404(workflow_id)
    _check_lead(workflow, actor)
    if workflow.status == "completed":
        raise ValidationError("Production workflow is already completed", details={"status": "completed"})
    enquiry = workflow.enquiry
    enforce_transition(enquiry, "InProduction")

    workflow.status = "in_progress"
    workflow.started_at = workflow.started_at or _utcnow()
    workflow.current_step = DEFAULT_PRODUCTION_STEP
    old_status = enquiry.status
    enquiry.status = "InProduction"
    enquiry.work_assigned_date = _utcnow()
    record_history(enquiry, "Production started", actor)
    db.session.commit()

    logger.info("Production started for enquiry %s", enquiry.enquiry_num,
                extra={"enquiry_id": enquiry.id, "actor_id": actor.id})
    get_dispatcher().emit_to_enquiry(enquiry.id, "status_changed", {
        "enquiry": enquiry.to_dict(),
        "old_status": old_status,
        "new_status": "InProduction",
        "changed_by": actor.to_summary(),
    })
    return workflow


def create_task(workflow_id, data: dict, actor) -> ProductionTask:
    workflow = get_workflow_or_404(workflow_id)
    _check_lead(workflow, actor)
    step = data.get("step")
    if step not in PRODUCTION_STEPS:
        raise ValidationError(f"Invalid step: {step!r}",
                              details={"step": f"must be one of {', '.join(PRODUCTION_STEPS)}"})
    assignee = get_user_or_404(data.get("assigned_to_id"), "assigned_to_id")

    task = ProductionTask(
        workflow_id=workflow.id,
        step=step,
        assigned_to_id=assignee.id,
        notes=data.get("notes") or "",
        status="pending",
    )
    db.session.add(task)
    db.session.commit()
    logger.info("Production task %s created on workflow %s", step, workflow.id,
                extra={"enquiry_id": workflow.enquiry_id, "actor_id": actor.id})
    return task


def update_task(task_id, data: dict, actor) -> ProductionTask:
    """
    Partial update.  Moving to in_progress stamps started_at, moving to
    completed stamps completed_at, unless explicit timestamps are given.
    """
    task = get_task_or_404(task_id)
    workflow = task.workflow
    if actor.id not in (task.assigned_to_id, workflow.production_lead_id) and not is_admin(actor):
        raise AuthorizationError("Only the task assignee or production lead may update this task",
                                 actor_id=actor.id)

    status = data.get("status")
    if status and status not in TASK_STATUSES:
        raise ValidationError(f"Invalid task status: {status!r}", details={"status": status})

    started_at = parse_datetime(data.get("started_at"))
    completed_at = parse_datetime(data.get("completed_at"))
    if status:
        task.status = status
        if status == "in_progress" and not started_at and task.started_at is None:
            task.started_at = _utcnow()
        if status == "completed" and not completed_at and task.completed_at is None:
            task.completed_at = _utcnow()
    if "notes" in data:
        task.notes = data["notes"] or ""
    if started_at:
        task.started_at = started_at
    if completed_at:
        task.completed_at = completed_at
    if status == "in_progress":
        workflow.current_step = task.step
    db.session.commit()
    return task


def update_workflow_notes(workflow_id, notes, actor) -> ProductionWorkflow:
    workflow = get_workflow_or_404(workflow_id)
    _check_lead(workflow, actor)
    workflow.notes = notes or ""
    db.session.commit()
    return workflow


def complete_production_workflow(workflow_id, actor, *, note=None) -> ProductionWorkflow:
    """Close the workflow and return the enquiry to enquiry_by at ReadyForDispatch."""
    workflow = get_workflow_or_404(workflow_id)
    _check_lead(workflow, actor)
    if workflow.status == "completed":
        raise ValidationError("Production workflow is already completed", details={"status": "completed"})
    if current_app.config.get("PRODUCTION_REQUIRE_TASKS_COMPLETE", True):
        open_tasks = workflow.open_tasks()
        if open_tasks:
            raise ValidationError(
                f"{len(open_tasks)} production task(s) are not completed",
                details={"open_task_ids": [t.id for t in open_tasks]},
            )
    enquiry = workflow.enquiry
    enforce_transition(enquiry, "ReadyForDispatch")

    now = _utcnow()
    workflow.status = "completed"
    workflow.completed_at = now
    workflow.started_at = workflow.started_at or now
    old_status = enquiry.status
    move_enquiry(enquiry, "ReadyForDispatch", enquiry.enquiry_by_id)
    record_history(enquiry, note or RETURN_FOR_DISPATCH_NOTE, actor)
    db.session.commit()

    logger.info("Production completed for enquiry %s", enquiry.enquiry_num,
                extra={"enquiry_id": enquiry.id, "actor_id": actor.id})

    dispatcher = get_dispatcher()
    dispatcher.notify_user(enquiry.enquiry_by_id, build_payload(
        "production_completed", "Production Completed",
        f"Production for enquiry {enquiry.enquiry_num} has been completed",
        enquiry, completed_by=actor.name, completed_by_id=actor.id,
    ))
    dispatcher.emit_to_enquiry(enquiry.id, "status_changed", {
        "enquiry": enquiry.to_dict(),
        "old_status": old_status,
        "new_status": "ReadyForDispatch",
        "changed_by": actor.to_summary(),
    })
    return workflow
