"""
Auto-provisioning of stage work records.

When an enquiry lands on certain (status, assignee role) pairs a stage
record is created, or repointed if one already exists:

    (Design,             designer)   → DesignWork          (pending)
    (ReadyForProduction, production) → ProductionWorkflow  (not_started)

The table is evaluated once per transition.  Each provisioner runs inside
a SAVEPOINT: if it fails only the side effect is rolled back, a structured
``provisioning_degraded`` warning is logged and the transition carries on.

DispatchWork is not provisioned from a status change; it is upserted by
``dispatch_service.assign_dispatch``.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from workflow_crm.core.exceptions import DependencyDegraded
from workflow_crm.models import db
from workflow_crm.models.workflow import DesignWork, DispatchWork, ProductionWorkflow

logger = logging.getLogger(__name__)


# ── Upserts (one row per enquiry, never duplicated) ──────────────────────────

def upsert_design_work(enquiry, designer_id: int, client_requirements: str | None = None) -> DesignWork:
    work = DesignWork.query.filter_by(enquiry_id=enquiry.id).first()
    if work is None:
        work = DesignWork(
            enquiry_id=enquiry.id,
            designer_id=designer_id,
            client_requirements=client_requirements or "",
            designer_notes="",
            design_status="pending",
        )
        db.session.add(work)
    else:
        work.designer_id = designer_id
        work.design_status = "pending"
        if client_requirements is not None:
            work.client_requirements = client_requirements
    db.session.flush()
    return work


def upsert_production_workflow(enquiry, production_lead_id: int) -> ProductionWorkflow:
    workflow = ProductionWorkflow.query.filter_by(enquiry_id=enquiry.id).first()
    if workflow is None:
        workflow = ProductionWorkflow(
            enquiry_id=enquiry.id,
            production_lead_id=production_lead_id,
            status="not_started",
            notes="",
        )
        db.session.add(workflow)
    else:
        workflow.production_lead_id = production_lead_id
        workflow.status = "not_started"
    db.session.flush()
    return workflow


def upsert_dispatch_work(enquiry, assigned_to_id: int, **fields) -> DispatchWork:
    work = DispatchWork.query.filter_by(enquiry_id=enquiry.id).first()
    if work is None:
        work = DispatchWork(enquiry_id=enquiry.id, dispatch_assigned_to_id=assigned_to_id,
                            status="pending", notes="")
        db.session.add(work)
    else:
        work.dispatch_assigned_to_id = assigned_to_id
        work.status = "pending"
    for key, value in fields.items():
        if value is not None:
            setattr(work, key, value)
    db.session.flush()
    return work


# ── Dispatch table ───────────────────────────────────────────────────────────

def _provision_design_work(enquiry, assignee):
    return upsert_design_work(enquiry, assignee.id)


def _provision_production_workflow(enquiry, assignee):
    return upsert_production_workflow(enquiry, assignee.id)


PROVISIONERS = {
    ("Design", "designer"): _provision_design_work,
    ("ReadyForProduction", "production"): _provision_production_workflow,
}


def provision_for(enquiry, assignee):
    """
    Run the provisioner matching (enquiry.status, assignee.role), if any.

    Returns the provisioned record, or None when nothing matched or the
    side effect degraded.
    """
    provisioner = PROVISIONERS.get((enquiry.status, assignee.role))
    if provisioner is None:
        return None
    step = provisioner.__name__.lstrip("_")
    try:
        with db.session.begin_nested():
            return provisioner(enquiry, assignee)
    except SQLAlchemyError as exc:
        degraded = DependencyDegraded(step, enquiry_id=enquiry.id, cause=exc)
        logger.warning(
            "Auto-provisioning skipped: %s", degraded,
            exc_info=True,
            extra={"event_type": "provisioning_degraded", "enquiry_id": enquiry.id, "step": step},
        )
        return None
