"""
Demo data for a fresh database: one account per role and two clients.

Idempotent: existing users (by email) and clients (by name) are left alone.
"""

import logging

from workflow_crm.models import db
from workflow_crm.models.auth import User
from workflow_crm.models.client import Client
from workflow_crm.models.enquiry import ENQUIRY_STATUSES
from workflow_crm.utils.crypto import hash_password

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "password123"

DEMO_USERS = [
    {"name": "Super Admin", "email": "admin@solarsync.com", "role": "superadmin",
     "workflow_status": list(ENQUIRY_STATUSES)},
    {"name": "Director", "email": "director@solarsync.com", "role": "director",
     "workflow_status": list(ENQUIRY_STATUSES)},
    {"name": "Sales Person", "email": "salesman@solarsync.com", "role": "salesman",
     "workflow_status": list(ENQUIRY_STATUSES)},
    {"name": "Designer", "email": "designer@solarsync.com", "role": "designer",
     "workflow_status": ["Design"]},
    {"name": "Production Lead", "email": "production@solarsync.com", "role": "production",
     "workflow_status": ["ReadyForProduction", "InProduction", "ProductionComplete",
                         "Hotdip", "ReadyForDispatch", "Dispatched"]},
    {"name": "Purchase Manager", "email": "purchase@solarsync.com", "role": "purchase",
     "workflow_status": ["PurchaseWaiting"]},
]

DEMO_CLIENTS = [
    {"client_name": "SunPower Industries", "email": "contact@sunpower.com",
     "contact_no": "+91 98765 43210", "contact_person": "Mr. Anil Verma",
     "address": "123 Industrial Area, Jaipur, Rajasthan 302001"},
    {"client_name": "Green Energy Solutions", "email": "info@greenenergy.co.in",
     "contact_no": "+91 87654 32109", "contact_person": "Ms. Sunita Rao",
     "address": "456 Tech Park, Bangalore, Karnataka 560001"},
]


def seed_demo_data(password: str = DEMO_PASSWORD) -> dict:
    """Insert the demo users and clients that are missing. Returns counts created."""
    created = {"users": 0, "clients": 0}
    password_hash = hash_password(password)
    for attrs in DEMO_USERS:
        if User.query.filter_by(email=attrs["email"]).first():
            continue
        db.session.add(User(password_hash=password_hash, **attrs))
        created["users"] += 1
    db.session.flush()

    admin = User.query.filter_by(email=DEMO_USERS[0]["email"]).first()
    for attrs in DEMO_CLIENTS:
        if Client.query.filter_by(client_name=attrs["client_name"]).first():
            continue
        db.session.add(Client(created_by_id=admin.id if admin else None, **attrs))
        created["clients"] += 1
    db.session.commit()
    logger.info("Seeded %d users, %d clients", created["users"], created["clients"])
    return created
