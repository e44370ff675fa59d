"""
Client Service: customer records that enquiries hang off.
"""

import logging

from sqlalchemy import or_

from workflow_crm.core.exceptions import NotFoundError, ValidationError
from workflow_crm.models import db
from workflow_crm.models.client import Client
from workflow_crm.services.permission import check_capability
from workflow_crm.utils.helpers import require_fields

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = (
    "client_name", "contact_person", "contact_no", "email",
    "address", "city", "state", "gst_number",
)


def get_client_or_404(client_id) -> Client:
    client = db.session.get(Client, client_id)
    if client is None:
        raise NotFoundError(resource="Client", resource_id=client_id)
    return client


def create_client(data: dict, actor) -> Client:
    check_capability(actor, "clients", "create")
    require_fields(data, "client_name", "contact_person", "contact_no", "address")
    client = Client(created_by_id=actor.id)
    for field in _EDITABLE_FIELDS:
        if field in data:
            value = data[field]
            setattr(client, field, value.strip() if isinstance(value, str) else value)
    db.session.add(client)
    db.session.commit()
    logger.info("Client %s created", client.client_name, extra={"actor_id": actor.id})
    return client


def get_client(client_id, actor) -> Client:
    check_capability(actor, "clients", "view")
    return get_client_or_404(client_id)


def list_clients(actor, search: str | None = None, limit=None, offset=0):
    """Returns (items, total); ``search`` matches name, email or contact person."""
    check_capability(actor, "clients", "view")
    q = Client.query
    text = (search or "").strip()
    if text:
        pattern = f"%{text}%"
        q = q.filter(or_(
            Client.client_name.ilike(pattern),
            Client.email.ilike(pattern),
            Client.contact_person.ilike(pattern),
        ))
    total = q.count()
    q = q.order_by(Client.created_at.desc(), Client.id.desc())
    if offset:
        q = q.offset(offset)
    if limit:
        q = q.limit(limit)
    return q.all(), total


def update_client(client_id, data: dict, actor) -> Client:
    check_capability(actor, "clients", "edit")
    client = get_client_or_404(client_id)
    for field in _EDITABLE_FIELDS:
        if data.get(field):
            value = data[field]
            setattr(client, field, value.strip() if isinstance(value, str) else value)
    db.session.commit()
    return client


def delete_client(client_id, actor) -> None:
    check_capability(actor, "clients", "delete")
    client = get_client_or_404(client_id)
    enquiries = client.enquiries.count()
    if enquiries:
        raise ValidationError(
            "Client has enquiries and cannot be deleted",
            details={"enquiries": enquiries},
        )
    db.session.delete(client)
    db.session.commit()
    logger.info("Client %s deleted", client.client_name, extra={"actor_id": actor.id})
