"""
Enquiry Workflow Engine

Owns every mutation of an Enquiry's status, assignee and order number:

  - create_enquiry:  new record at status Enquiry, owned by its creator
  - set_status:      any known status (strict table optional), with
                     order numbering and auto-provisioning side effects
  - assign:          reassign without changing status
  - confirm_order:   BOQ → ReadyForProduction hand-off to production

Every transition or reassignment appends exactly one
EnquiryStatusHistory row.  The write commits first; notifications are
dispatched afterwards and can never fail the operation.

Usage:
    from workflow_crm.services.enquiry_workflow import set_status

    enquiry = set_status(enquiry_id=7, new_status="Design", actor=user,
                         assigned_person_id=designer.id)
"""

import logging
from datetime import datetime, timezone

from flask import current_app

from workflow_crm.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from workflow_crm.models import db
from workflow_crm.models.auth import User
from workflow_crm.models.client import Client
from workflow_crm.models.enquiry import (
    ENQUIRY_STATUSES,
    MATERIAL_TYPES,
    STATUS_TRANSITIONS,
    Enquiry,
    EnquiryNote,
    EnquiryStatusHistory,
)
from workflow_crm.models.finance import Invoice, Quotation
from workflow_crm.services import enquiry_access
from workflow_crm.services.code_generator import allocate_order_number, generate_enquiry_num
from workflow_crm.services.notification import build_payload, get_dispatcher, notify_admins
from workflow_crm.services.permission import check_capability
from workflow_crm.services.provisioning import provision_for
from workflow_crm.utils.helpers import parse_amount, parse_date, require_fields

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = (
    "client_id", "material_type", "enquiry_detail", "enquiry_amount",
    "purchase_detail", "expected_dispatch_date", "delivery_address",
    "enquiry_num", "order_number",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_int(value, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: str(value)})


# ── Lookups ──────────────────────────────────────────────────────────────────

def get_user_or_404(user_id, field: str = "user_id") -> User:
    if user_id in (None, ""):
        raise ValidationError(f"{field} is required", details={field: "required"})
    uid = _as_int(user_id, field)
    user = db.session.get(User, uid)
    if user is None:
        raise NotFoundError(resource="User", resource_id=uid)
    if not user.is_active:
        raise ValidationError(f"User id={uid} is inactive", details={field: "inactive"})
    return user


def get_enquiry_or_404(enquiry_id) -> Enquiry:
    enquiry = db.session.get(Enquiry, _as_int(enquiry_id, "enquiry_id"))
    if enquiry is None:
        raise NotFoundError(resource="Enquiry", resource_id=enquiry_id)
    return enquiry


def load_enquiry_for_actor(enquiry_id, actor) -> Enquiry:
    """Fetch an enquiry the actor may see (direct access or history grant)."""
    enquiry = get_enquiry_or_404(enquiry_id)
    if not enquiry_access.can_view_enquiry(actor, enquiry):
        raise AuthorizationError("You do not have access to this enquiry", actor_id=actor.id)
    return enquiry


# ── History / notes ──────────────────────────────────────────────────────────

def record_history(enquiry: Enquiry, note: str, actor=None) -> EnquiryStatusHistory:
    """Append one audit row reflecting the enquiry's current status and owner."""
    row = EnquiryStatusHistory(
        enquiry_id=enquiry.id,
        status=enquiry.status,
        assigned_person_id=enquiry.current_assigned_person_id,
        changed_by_id=actor.id if actor is not None else None,
        note=note or "",
    )
    db.session.add(row)
    return row


def append_note(enquiry: Enquiry, text: str | None, actor) -> EnquiryNote | None:
    text = (text or "").strip()
    if not text:
        return None
    note = EnquiryNote(enquiry_id=enquiry.id, note=text, created_by_id=actor.id)
    db.session.add(note)
    return note


def move_enquiry(enquiry: Enquiry, status: str, assignee_id: int) -> None:
    enquiry.status = status
    enquiry.current_assigned_person_id = assignee_id
    enquiry.work_assigned_date = _utcnow()


# ── Transition rules ─────────────────────────────────────────────────────────

def validate_status(status) -> str:
    if status not in ENQUIRY_STATUSES:
        raise ValidationError(
            f"Unknown status: {status!r}",
            details={"status": f"must be one of {', '.join(ENQUIRY_STATUSES)}"},
        )
    return status


def validate_transition(enquiry: Enquiry, new_status: str) -> dict:
    """
    Check ``new_status`` against the strict transition table.

    Returns:
        {"valid": bool, "from": str, "to": str, "reason": str|None}
    """
    current = enquiry.status
    if new_status == current or new_status in STATUS_TRANSITIONS.get(current, ()):
        return {"valid": True, "from": current, "to": new_status, "reason": None}
    return {"valid": False, "from": current, "to": new_status,
            "reason": f"Cannot move enquiry {enquiry.enquiry_num} from '{current}' to '{new_status}'"}


def get_available_transitions(enquiry: Enquiry) -> list[str]:
    allowed = STATUS_TRANSITIONS.get(enquiry.status, set())
    return [s for s in ENQUIRY_STATUSES if s in allowed]


def enforce_transition(enquiry: Enquiry, new_status: str) -> None:
    """Raise if strict mode is on and the move is not in the table."""
    if not current_app.config.get("WORKFLOW_STRICT_TRANSITIONS", False):
        return
    result = validate_transition(enquiry, new_status)
    if not result["valid"]:
        raise ValidationError(result["reason"], details={"from": result["from"], "to": result["to"]})


# ── Notifications ────────────────────────────────────────────────────────────

def assignment_payload(enquiry: Enquiry, assignee: User, actor) -> dict:
    return build_payload(
        "assignment", "New Assignment",
        f"You have been assigned to enquiry {enquiry.enquiry_num}",
        enquiry,
        assigned_to=assignee.name, assigned_to_id=assignee.id,
        assigned_by=actor.name, assigned_by_id=actor.id,
    )


def _notify_status_change(enquiry, old_status, assignee, actor):
    dispatcher = get_dispatcher()
    dispatcher.notify_user(assignee.id, assignment_payload(enquiry, assignee, actor))
    dispatcher.emit_to_enquiry(enquiry.id, "status_changed", {
        "enquiry": enquiry.to_dict(),
        "old_status": old_status,
        "new_status": enquiry.status,
        "changed_by": actor.to_summary(),
    })
    notify_admins(build_payload(
        "status_change", "Status Changed",
        f"Enquiry {enquiry.enquiry_num} status changed from {old_status} to {enquiry.status}",
        enquiry,
        old_status=old_status, new_status=enquiry.status,
        changed_by=actor.name, changed_by_id=actor.id,
    ))


# ── Create / read ────────────────────────────────────────────────────────────

def create_enquiry(data: dict, actor) -> Enquiry:
    """
    Create an enquiry at status Enquiry, raised by and assigned to ``actor``
    (or to ``current_assigned_person_id`` when supplied).

    Raises:
        ValidationError, NotFoundError, ConflictError, AuthorizationError
    """
    check_capability(actor, "enquiries", "create")
    require_fields(data, "client_id", "material_type", "enquiry_detail")
    amount = parse_amount(data.get("enquiry_amount"))
    material_type = data["material_type"]
    if material_type not in MATERIAL_TYPES:
        raise ValidationError(
            f"Invalid material_type: {material_type!r}",
            details={"material_type": f"must be one of {', '.join(MATERIAL_TYPES)}"},
        )
    client_id = _as_int(data["client_id"], "client_id")
    if db.session.get(Client, client_id) is None:
        raise NotFoundError(resource="Client", resource_id=client_id)

    assignee = actor
    if data.get("current_assigned_person_id") not in (None, ""):
        assignee = get_user_or_404(data["current_assigned_person_id"], "current_assigned_person_id")

    enquiry_num = str(data.get("enquiry_num") or "").strip() or generate_enquiry_num()
    if Enquiry.query.filter_by(enquiry_num=enquiry_num).first():
        raise ConflictError("Enquiry", "enquiry_num", enquiry_num)

    # First write of the transaction: takes the order-sequence lock
    order_number = allocate_order_number()

    enquiry = Enquiry(
        enquiry_num=enquiry_num,
        client_id=client_id,
        material_type=material_type,
        enquiry_detail=data["enquiry_detail"],
        enquiry_amount=amount,
        purchase_detail=data.get("purchase_detail"),
        expected_dispatch_date=parse_date(data.get("expected_dispatch_date")),
        delivery_address=data.get("delivery_address"),
        status="Enquiry",
        enquiry_by_id=actor.id,
        current_assigned_person_id=assignee.id,
        work_assigned_date=_utcnow(),
        order_number=order_number,
        order_date=_utcnow(),
    )
    db.session.add(enquiry)
    db.session.flush()
    record_history(enquiry, "Enquiry created", actor)
    append_note(enquiry, data.get("note"), actor)
    db.session.commit()

    logger.info("Enquiry %s created (order %s)", enquiry.enquiry_num, order_number,
                extra={"enquiry_id": enquiry.id, "actor_id": actor.id})

    dispatcher = get_dispatcher()
    if assignee.id != actor.id:
        dispatcher.notify_user(assignee.id, assignment_payload(enquiry, assignee, actor))
    notify_admins(build_payload(
        "enquiry_created", "New Enquiry Created",
        f"New enquiry {enquiry.enquiry_num} has been created",
        enquiry, created_by=actor.name, created_by_id=actor.id,
    ))
    return enquiry


def get_enquiry(enquiry_id, actor) -> Enquiry:
    check_capability(actor, "enquiries", "view")
    return load_enquiry_for_actor(enquiry_id, actor)


def _filtered(query, status=None, material_type=None, client_id=None):
    if status:
        query = query.filter(Enquiry.status == validate_status(status))
    if material_type:
        query = query.filter(Enquiry.material_type == material_type)
    if client_id:
        query = query.filter(Enquiry.client_id == _as_int(client_id, "client_id"))
    return query


def _page(query, limit, offset):
    total = query.count()
    query = query.order_by(Enquiry.created_at.desc(), Enquiry.id.desc())
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    return query.all(), total


def list_enquiries(actor, *, search=None, status=None, material_type=None, client_id=None,
                   limit=None, offset=0):
    """Role-filtered listing; search is ANDed as its own OR group. Returns (items, total)."""
    check_capability(actor, "enquiries", "view")
    query = enquiry_access.visible_enquiries_query(actor)
    query = enquiry_access.apply_search(query, search)
    return _page(_filtered(query, status, material_type, client_id), limit, offset)


def list_worked_enquiries(actor, *, search=None, status=None, limit=None, offset=0):
    """Enquiries the actor raised or was ever assigned. Returns (items, total)."""
    check_capability(actor, "enquiries", "view")
    query = enquiry_access.worked_enquiries_query(actor)
    query = enquiry_access.apply_search(query, search)
    return _page(_filtered(query, status), limit, offset)


def get_history(enquiry_id, actor) -> list[EnquiryStatusHistory]:
    enquiry = load_enquiry_for_actor(enquiry_id, actor)
    return (
        enquiry.status_history
        .order_by(EnquiryStatusHistory.status_changed_at.desc(), EnquiryStatusHistory.id.desc())
        .all()
    )


def list_notes(enquiry_id, actor) -> list[EnquiryNote]:
    enquiry = load_enquiry_for_actor(enquiry_id, actor)
    return enquiry.notes.order_by(EnquiryNote.created_at.desc(), EnquiryNote.id.desc()).all()


def add_note(enquiry_id, text, actor) -> EnquiryNote:
    enquiry = load_enquiry_for_actor(enquiry_id, actor)
    note = append_note(enquiry, text, actor)
    if note is None:
        raise ValidationError("note is required", details={"note": "required"})
    db.session.commit()
    return note


def my_tasks(actor) -> dict[str, list[Enquiry]]:
    """Enquiries assigned to the actor at statuses the actor handles, grouped by status."""
    statuses = [s for s in (actor.workflow_status or []) if s in ENQUIRY_STATUSES]
    if not statuses:
        return {}
    rows = (
        Enquiry.query
        .filter(Enquiry.current_assigned_person_id == actor.id, Enquiry.status.in_(statuses))
        .order_by(Enquiry.work_assigned_date.asc(), Enquiry.id.asc())
        .all()
    )
    grouped: dict[str, list[Enquiry]] = {}
    for enquiry in rows:
        grouped.setdefault(enquiry.status, []).append(enquiry)
    return grouped


# ── Update / delete ──────────────────────────────────────────────────────────

def update_enquiry(enquiry_id, data: dict, actor) -> Enquiry:
    """
    Edit descriptive fields.  Status and assignee only change through the
    workflow operations; ``order_number`` may be set only while it is empty.
    """
    check_capability(actor, "enquiries", "edit")
    enquiry = load_enquiry_for_actor(enquiry_id, actor)

    for forbidden in ("status", "current_assigned_person_id", "enquiry_by_id"):
        if forbidden in data:
            raise ValidationError(
                f"{forbidden} cannot be changed here; use the workflow endpoints",
                details={forbidden: "read-only"},
            )

    if "client_id" in data:
        client_id = _as_int(data["client_id"], "client_id")
        if db.session.get(Client, client_id) is None:
            raise NotFoundError(resource="Client", resource_id=client_id)
        enquiry.client_id = client_id
    if "material_type" in data:
        if data["material_type"] not in MATERIAL_TYPES:
            raise ValidationError(f"Invalid material_type: {data['material_type']!r}",
                                  details={"material_type": "invalid"})
        enquiry.material_type = data["material_type"]
    if "enquiry_amount" in data:
        enquiry.enquiry_amount = parse_amount(data["enquiry_amount"])
    if "expected_dispatch_date" in data:
        enquiry.expected_dispatch_date = parse_date(data["expected_dispatch_date"])
    for field in ("enquiry_detail", "purchase_detail", "delivery_address"):
        if field in data:
            setattr(enquiry, field, data[field])

    if "enquiry_num" in data:
        new_num = str(data["enquiry_num"] or "").strip()
        if not new_num:
            raise ValidationError("enquiry_num cannot be blank", details={"enquiry_num": "required"})
        if new_num != enquiry.enquiry_num:
            if Enquiry.query.filter(Enquiry.enquiry_num == new_num, Enquiry.id != enquiry.id).first():
                raise ConflictError("Enquiry", "enquiry_num", new_num)
            enquiry.enquiry_num = new_num

    if data.get("order_number"):
        new_order = str(data["order_number"]).strip()
        if enquiry.order_number and new_order != enquiry.order_number:
            raise ValidationError(
                "order_number is already set and cannot be changed",
                details={"order_number": enquiry.order_number},
            )
        if not enquiry.order_number:
            _claim_order_number(enquiry, new_order)

    db.session.commit()
    logger.info("Enquiry %s updated", enquiry.enquiry_num,
                extra={"enquiry_id": enquiry.id, "actor_id": actor.id})
    return enquiry


def delete_enquiry(enquiry_id, actor) -> None:
    """Hard delete; refused while quotations or invoices reference the enquiry."""
    check_capability(actor, "enquiries", "delete")
    enquiry = get_enquiry_or_404(enquiry_id)
    quotations = Quotation.query.filter_by(enquiry_id=enquiry.id).count()
    invoices = Invoice.query.filter_by(enquiry_id=enquiry.id).count()
    if quotations or invoices:
        raise ValidationError(
            "Enquiry has quotations or invoices and cannot be deleted",
            details={"quotations": quotations, "invoices": invoices},
        )
    db.session.delete(enquiry)
    db.session.commit()
    logger.info("Enquiry %s deleted", enquiry.enquiry_num,
                extra={"enquiry_id": enquiry.id, "actor_id": actor.id})


def _claim_order_number(enquiry: Enquiry, order_number: str) -> None:
    clash = Enquiry.query.filter(Enquiry.order_number == order_number, Enquiry.id != enquiry.id).first()
    if clash:
        raise ConflictError("Enquiry", "order_number", order_number)
    enquiry.order_number = order_number
    enquiry.order_date = _utcnow()


# ── Transitions ──────────────────────────────────────────────────────────────

def set_status(enquiry_id, new_status, actor, *, assigned_person_id=None, note=None) -> Enquiry:
    """
    Move an enquiry to ``new_status`` and (optionally) a new owner.

    Side effects:
      - ReadyForProduction with no order number → allocate one + order_date
      - PROVISIONERS[(new_status, assignee.role)] → stage record upsert
        (best effort; failure is logged, the status change still commits)

    Raises:
        ValidationError: unknown status / strict-mode violation
        NotFoundError: enquiry or assignee missing
        AuthorizationError: actor cannot see the enquiry
    """
    validate_status(new_status)
    check_capability(actor, "enquiries", "edit")
    enquiry = load_enquiry_for_actor(enquiry_id, actor)
    enforce_transition(enquiry, new_status)

    old_status = enquiry.status
    if assigned_person_id not in (None, ""):
        assignee = get_user_or_404(assigned_person_id, "assigned_person_id")
    else:
        assignee = enquiry.assigned_user

    if new_status == "ReadyForProduction" and enquiry.order_number is None:
        enquiry.order_number = allocate_order_number()
        enquiry.order_date = _utcnow()

    move_enquiry(enquiry, new_status, assignee.id)
    db.session.flush()
    provision_for(enquiry, assignee)

    record_history(enquiry, note or f"Status changed from {old_status} to {new_status}", actor)
    append_note(enquiry, note, actor)
    db.session.commit()

    logger.info("Enquiry %s: %s → %s (assignee %s)", enquiry.enquiry_num, old_status, new_status,
                assignee.id, extra={"enquiry_id": enquiry.id, "actor_id": actor.id})

    _notify_status_change(enquiry, old_status, assignee, actor)
    return enquiry


def assign(enquiry_id, assigned_person_id, actor, *, note=None) -> Enquiry:
    """Reassign without changing status."""
    check_capability(actor, "enquiries", "edit")
    enquiry = load_enquiry_for_actor(enquiry_id, actor)
    assignee = get_user_or_404(assigned_person_id, "assigned_person_id")

    move_enquiry(enquiry, enquiry.status, assignee.id)
    record_history(enquiry, note or f"Reassigned to {assignee.name}", actor)
    append_note(enquiry, note, actor)
    db.session.commit()

    logger.info("Enquiry %s reassigned to %s", enquiry.enquiry_num, assignee.id,
                extra={"enquiry_id": enquiry.id, "actor_id": actor.id})

    dispatcher = get_dispatcher()
    dispatcher.notify_user(assignee.id, assignment_payload(enquiry, assignee, actor))
    dispatcher.emit_to_enquiry(enquiry.id, "assignment_changed", {
        "enquiry": enquiry.to_dict(),
        "assigned_to": assignee.to_summary(),
        "assigned_by": actor.to_summary(),
    })
    return enquiry


def first_production_user() -> User | None:
    return (
        User.query
        .filter_by(role="production", is_active=True)
        .order_by(User.id.asc())
        .first()
    )


def confirm_order(enquiry_id, actor, *, order_number=None, production_user_id=None, note=None) -> Enquiry:
    """
    Confirm the order and hand the enquiry to production.

    An existing order number is kept; a supplied one is used only when the
    enquiry has none; otherwise the next sequential number is allocated.
    Without ``production_user_id`` the first active production user is taken.
    """
    check_capability(actor, "enquiries", "edit")
    enquiry = load_enquiry_for_actor(enquiry_id, actor)

    if production_user_id not in (None, ""):
        production_user = get_user_or_404(production_user_id, "production_user_id")
        if production_user.role != "production":
            raise ValidationError(
                f"User id={production_user.id} is not a production user",
                details={"production_user_id": production_user.role},
            )
    else:
        production_user = first_production_user()
        if production_user is None:
            raise ValidationError("No production user available to take the order",
                                  details={"production_user_id": "required"})

    enforce_transition(enquiry, "ReadyForProduction")

    supplied = str(order_number or "").strip()
    if enquiry.order_number:
        if supplied and supplied != enquiry.order_number:
            logger.info("Ignoring supplied order number %s; enquiry %s already has %s",
                        supplied, enquiry.enquiry_num, enquiry.order_number,
                        extra={"enquiry_id": enquiry.id})
    elif supplied:
        _claim_order_number(enquiry, supplied)
    else:
        enquiry.order_number = allocate_order_number()
        enquiry.order_date = _utcnow()

    move_enquiry(enquiry, "ReadyForProduction", production_user.id)
    db.session.flush()
    provision_for(enquiry, production_user)

    record_history(enquiry, note or f"Order confirmed with order number: {enquiry.order_number}", actor)
    append_note(enquiry, note, actor)
    db.session.commit()

    logger.info("Order %s confirmed for enquiry %s", enquiry.order_number, enquiry.enquiry_num,
                extra={"enquiry_id": enquiry.id, "actor_id": actor.id})

    payload = build_payload(
        "order_confirmed", "Order Confirmed",
        f"Order {enquiry.order_number} confirmed for enquiry {enquiry.enquiry_num}",
        enquiry, order_number=enquiry.order_number, confirmed_by=actor.name,
    )
    dispatcher = get_dispatcher()
    dispatcher.notify_users([production_user.id, enquiry.enquiry_by_id], payload)
    dispatcher.emit_to_enquiry(enquiry.id, "order_confirmed", {
        "enquiry": enquiry.to_dict(),
        "order_number": enquiry.order_number,
        "confirmed_by": actor.to_summary(),
    })
    return enquiry
