"""
Shared pytest fixtures for the Solar Structure Workflow CRM test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - channel: the in-memory realtime channel, cleared per test
    - make_user / make_client / make_enquiry: factories
    - auth_headers: Bearer header for a given user
    - users / acme: one user per role and a default client
"""

import pytest

from workflow_crm import create_app
from workflow_crm.models import db as _db
from workflow_crm.models.auth import User
from workflow_crm.models.client import Client
from workflow_crm.models.enquiry import ENQUIRY_STATUSES
from workflow_crm.services.jwt_service import generate_access_token
from workflow_crm.services.notification import get_dispatcher

ROLE_STATUSES = {
    "superadmin": list(ENQUIRY_STATUSES),
    "director": list(ENQUIRY_STATUSES),
    "salesman": list(ENQUIRY_STATUSES),
    "designer": ["Design"],
    "production": ["ReadyForProduction", "InProduction", "ProductionComplete",
                   "Hotdip", "ReadyForDispatch", "Dispatched"],
    "purchase": ["PurchaseWaiting"],
}


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        get_dispatcher().channel.clear()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def channel():
    """In-memory realtime channel wired into the dispatcher (TESTING)."""
    return get_dispatcher().channel


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    counter = {"n": 0}

    def _make(role="salesman", name=None, workflow_status=None, is_active=True):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            name=name or f"{role.title()} {n}",
            email=f"{role}{n}@solarsync.com",
            password_hash="x",
            role=role,
            workflow_status=ROLE_STATUSES[role] if workflow_status is None else workflow_status,
            is_active=is_active,
        )
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make


@pytest.fixture()
def make_client():
    def _make(name="Acme Solar Pvt Ltd", **fields):
        c = Client(
            client_name=name,
            contact_person=fields.pop("contact_person", "R. Kumar"),
            contact_no=fields.pop("contact_no", "+91 90000 00000"),
            address=fields.pop("address", "Plot 7, Industrial Area"),
            **fields,
        )
        _db.session.add(c)
        _db.session.commit()
        return c
    return _make


@pytest.fixture()
def users(make_user):
    """One active user per role (two designers, two production users)."""
    return {
        "admin": make_user("superadmin", name="Asha Admin"),
        "director": make_user("director", name="Dev Director"),
        "sales": make_user("salesman", name="Sam Sales"),
        "sales2": make_user("salesman", name="Sia Sales"),
        "designer": make_user("designer", name="Dina Designer"),
        "designer2": make_user("designer", name="Dan Designer"),
        "production": make_user("production", name="Pia Production"),
        "production2": make_user("production", name="Pal Production"),
        "purchase": make_user("purchase", name="Puru Purchase"),
    }


@pytest.fixture()
def acme(make_client):
    return make_client()


@pytest.fixture()
def make_enquiry(acme):
    from workflow_crm.services.enquiry_workflow import create_enquiry

    def _make(actor, **overrides):
        data = {
            "client_id": acme.id,
            "material_type": "GI",
            "enquiry_detail": "Ground-mount structure, 500 kW",
            "enquiry_amount": 150000,
        }
        data.update(overrides)
        return create_enquiry(data, actor)
    return _make


@pytest.fixture()
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {generate_access_token(user.id, user.role)}"}
    return _headers
