"""
Communication Log Service: calls, emails and visits recorded against an enquiry.
"""

import logging

from workflow_crm.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from workflow_crm.models import db
from workflow_crm.models.communication import COMMUNICATION_TYPES, CommunicationLog
from workflow_crm.services.enquiry_workflow import load_enquiry_for_actor
from workflow_crm.services.notification import get_dispatcher
from workflow_crm.services.permission import is_admin
from workflow_crm.utils.helpers import parse_datetime, require_fields

logger = logging.getLogger(__name__)


def _validate_type(value) -> str:
    if value not in COMMUNICATION_TYPES:
        raise ValidationError(
            f"Invalid communication_type: {value!r}",
            details={"communication_type": f"must be one of {', '.join(COMMUNICATION_TYPES)}"},
        )
    return value


def get_log_or_404(log_id) -> CommunicationLog:
    log = db.session.get(CommunicationLog, log_id)
    if log is None:
        raise NotFoundError(resource="CommunicationLog", resource_id=log_id)
    return log


def _check_author(log: CommunicationLog, actor) -> None:
    if log.created_by_id != actor.id and not is_admin(actor):
        raise AuthorizationError("Only the author may change this communication log", actor_id=actor.id)


def create_log(data: dict, actor) -> CommunicationLog:
    require_fields(data, "enquiry_id", "communication_type", "subject", "message")
    enquiry = load_enquiry_for_actor(data["enquiry_id"], actor)
    log = CommunicationLog(
        enquiry_id=enquiry.id,
        communication_type=_validate_type(data["communication_type"]),
        subject=data["subject"],
        message=data["message"],
        client_response=data.get("client_response"),
        created_by_id=actor.id,
    )
    communication_date = parse_datetime(data.get("communication_date"))
    if communication_date:
        log.communication_date = communication_date
    db.session.add(log)
    db.session.commit()

    logger.info("Communication %s logged", log.communication_type,
                extra={"enquiry_id": enquiry.id, "actor_id": actor.id})
    get_dispatcher().emit_to_enquiry(enquiry.id, "communication_logged", {
        "log": log.to_dict(),
        "logged_by": actor.to_summary(),
    })
    return log


def list_logs(enquiry_id, actor) -> list[CommunicationLog]:
    enquiry = load_enquiry_for_actor(enquiry_id, actor)
    return (
        CommunicationLog.query
        .filter_by(enquiry_id=enquiry.id)
        .order_by(CommunicationLog.communication_date.desc(), CommunicationLog.id.desc())
        .all()
    )


def update_log(log_id, data: dict, actor) -> CommunicationLog:
    log = get_log_or_404(log_id)
    _check_author(log, actor)
    if data.get("communication_type"):
        log.communication_type = _validate_type(data["communication_type"])
    for field in ("subject", "message", "client_response"):
        if field in data:
            setattr(log, field, data[field])
    if data.get("communication_date"):
        log.communication_date = parse_datetime(data["communication_date"])
    db.session.commit()
    return log


def delete_log(log_id, actor) -> None:
    log = get_log_or_404(log_id)
    _check_author(log, actor)
    db.session.delete(log)
    db.session.commit()
