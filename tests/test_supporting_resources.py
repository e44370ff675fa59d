"""
Users, clients, finance documents, communication logs, dashboard, reports and
demo seeding.
"""

from datetime import datetime, timezone

import pytest

from workflow_crm.core.exceptions import AuthorizationError, ConflictError, ValidationError
from workflow_crm.models.auth import User
from workflow_crm.models.client import Client
from workflow_crm.services import (
    client_service,
    communication_service,
    dashboard_service,
    finance_service,
    user_service,
)
from workflow_crm.services import enquiry_workflow as wf
from workflow_crm.services.permission import can_manage_user, get_role_permissions, has_capability
from workflow_crm.services.seed_service import DEMO_CLIENTS, DEMO_USERS, seed_demo_data
from workflow_crm.utils.crypto import hash_password, verify_password


# ═══════════════════════════════════════════════════════════════
# Permissions / crypto
# ═══════════════════════════════════════════════════════════════

class TestPermissionMatrix:
    @pytest.mark.parametrize("role,resource,action,expected", [
        ("superadmin", "users", "delete", True),
        ("director", "users", "delete", False),
        ("director", "enquiries", "create", True),
        ("salesman", "quotations", "create", True),
        ("salesman", "users", "view", False),
        ("designer", "clients", "view", True),
        ("designer", "clients", "create", False),
        ("production", "invoices", "view", False),
        ("purchase", "reports", "view", False),
        ("nobody", "dashboard", "view", False),
    ])
    def test_capabilities(self, role, resource, action, expected):
        assert has_capability(role, resource, action) is expected

    def test_hierarchy(self):
        assert can_manage_user("superadmin", "superadmin")
        assert can_manage_user("director", "salesman")
        assert not can_manage_user("director", "superadmin")
        assert not can_manage_user("salesman", "designer")

    def test_role_permissions_are_serialisable(self):
        perms = get_role_permissions("designer")
        assert perms["enquiries"] == ["edit", "view"]
        assert perms["users"] == []


class TestPasswords:
    def test_bcrypt_round_trip(self):
        hashed = hash_password("s3cret!")
        assert hashed.startswith("$2b$")
        assert verify_password("s3cret!", hashed)
        assert not verify_password("wrong", hashed)

    def test_empty_hash_never_verifies(self):
        assert not verify_password("anything", "")


# ═══════════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════════

class TestUsers:
    def test_director_creates_salesman(self, users):
        user = user_service.create_user({
            "name": "New Sales", "email": "New.Sales@SolarSync.com", "password": "pw",
            "role": "salesman", "workflow_status": ["Enquiry", "BOQ", "Enquiry"],
        }, users["director"])
        assert user.email == "New.Sales@solarsync.com"
        assert user.workflow_status == ["Enquiry", "BOQ"]
        assert verify_password("pw", user.password_hash)

    def test_director_cannot_create_superadmin(self, users):
        with pytest.raises(AuthorizationError):
            user_service.create_user({"name": "X", "email": "x@solarsync.com", "password": "pw",
                                      "role": "superadmin"}, users["director"])

    def test_duplicate_email_conflicts(self, users):
        with pytest.raises(ConflictError):
            user_service.create_user({"name": "X", "email": users["sales"].email.upper(),
                                      "password": "pw"}, users["admin"])

    def test_invalid_email_and_status(self, users):
        with pytest.raises(ValidationError):
            user_service.create_user({"name": "X", "email": "not-an-email", "password": "pw"}, users["admin"])
        with pytest.raises(ValidationError):
            user_service.create_user({"name": "X", "email": "x@solarsync.com", "password": "pw",
                                      "workflow_status": ["Shipped"]}, users["admin"])

    def test_self_edit_but_no_self_promotion(self, users):
        user_service.update_user(users["sales"].id, {"name": "Samir"}, users["sales"])
        assert users["sales"].name == "Samir"
        with pytest.raises(AuthorizationError):
            user_service.update_user(users["sales"].id, {"role": "director"}, users["sales"])
        with pytest.raises(AuthorizationError):
            user_service.update_user(users["sales2"].id, {"name": "Nope"}, users["sales"])

    def test_admin_deactivates_user(self, users):
        user_service.update_user(users["sales2"].id, {"is_active": False}, users["director"])
        assert users["sales2"].is_active is False
        assert users["sales2"].id not in {u.id for u in user_service.list_users()}
        assert users["sales2"].id in {u.id for u in user_service.list_users(include_inactive=True)}

    def test_lookup_by_role_and_status(self, users):
        designers = user_service.list_users_by_role("designer")
        assert {u.id for u in designers} == {users["designer"].id, users["designer2"].id}
        handlers = user_service.list_users_by_status("PurchaseWaiting")
        assert users["purchase"].id in {u.id for u in handlers}
        assert users["designer"].id not in {u.id for u in handlers}

    def test_delete_rules(self, users, make_enquiry):
        make_enquiry(users["sales"])
        with pytest.raises(ValidationError):
            user_service.delete_user(users["admin"].id, users["admin"])
        with pytest.raises(ValidationError):
            user_service.delete_user(users["sales"].id, users["admin"])
        with pytest.raises(AuthorizationError):
            user_service.delete_user(users["purchase"].id, users["director"])
        user_service.delete_user(users["purchase"].id, users["admin"])
        assert User.query.filter_by(id=users["purchase"].id).count() == 0

    def test_me_endpoint_includes_permissions(self, client, users, auth_headers):
        res = client.get("/api/v1/users/me", headers=auth_headers(users["designer"]))
        data = res.get_json()["data"]
        assert data["role"] == "designer"
        assert data["permissions"]["clients"] == ["view"]

    def test_create_endpoint_is_role_gated(self, client, users, auth_headers):
        body = {"name": "X", "email": "x@solarsync.com", "password": "pw"}
        assert client.post("/api/v1/users", json=body, headers=auth_headers(users["sales"])).status_code == 403
        res = client.post("/api/v1/users", json=body, headers=auth_headers(users["director"]))
        assert res.status_code == 201
        assert "password_hash" not in res.get_json()["data"]


# ═══════════════════════════════════════════════════════════════
# Clients
# ═══════════════════════════════════════════════════════════════

class TestClients:
    def test_create_requires_contact_fields(self, users):
        with pytest.raises(ValidationError) as exc:
            client_service.create_client({"client_name": "Nova"}, users["sales"])
        assert exc.value.details == {"contact_person": "required", "contact_no": "required",
                                     "address": "required"}

    def test_search_and_paginate(self, users, make_client):
        make_client("Nova Renewables", email="ops@nova.example")
        make_client("Helios Parks", contact_person="Nova Iyer")
        make_client("Zenith Power")
        items, total = client_service.list_clients(users["sales"], search="nova")
        assert total == 2
        assert {c.client_name for c in items} == {"Nova Renewables", "Helios Parks"}

        items, total = client_service.list_clients(users["sales"], limit=1)
        assert (len(items), total) == (1, 3)

    def test_designer_cannot_create(self, users):
        with pytest.raises(AuthorizationError):
            client_service.create_client({"client_name": "X", "contact_person": "Y",
                                          "contact_no": "1", "address": "Z"}, users["designer"])

    def test_delete_refused_while_enquiries_exist(self, users, acme, make_enquiry):
        make_enquiry(users["sales"])
        with pytest.raises(ValidationError):
            client_service.delete_client(acme.id, users["admin"])

    def test_crud_endpoints(self, client, users, auth_headers):
        headers = auth_headers(users["sales"])
        res = client.post("/api/v1/clients", headers=headers, json={
            "client_name": "Nova", "contact_person": "A", "contact_no": "1", "address": "B",
        })
        assert res.status_code == 201
        client_id = res.get_json()["data"]["id"]

        res = client.put(f"/api/v1/clients/{client_id}", headers=headers, json={"city": "Pune"})
        assert res.get_json()["data"]["city"] == "Pune"

        listing = client.get("/api/v1/clients", headers=headers).get_json()
        assert listing["total"] == 1
        assert listing["data"][0]["enquiry_count"] == 0

        assert client.delete(f"/api/v1/clients/{client_id}", headers=headers).status_code == 403
        assert client.delete(f"/api/v1/clients/{client_id}",
                             headers=auth_headers(users["admin"])).status_code == 200


# ═══════════════════════════════════════════════════════════════
# Finance
# ═══════════════════════════════════════════════════════════════

def _quotation_body(enquiry, **overrides):
    body = {
        "enquiry_id": enquiry.id,
        "line_items": [
            {"description": "GI purlins", "quantity": 120, "unit": "m", "rate": 450, "amount": 54000},
        ],
        "subtotal": 54000,
        "tax_amount": 9720,
        "grand_total": 63720,
    }
    body.update(overrides)
    return body


class TestFinance:
    def test_quotation_carries_enquiry_order_number(self, users, make_enquiry, channel):
        enquiry = make_enquiry(users["sales"])
        quotation = finance_service.create_quotation(_quotation_body(enquiry), users["sales"])
        assert quotation.order_no == enquiry.order_number
        assert quotation.quotation_number.startswith("QUO-")
        assert float(quotation.grand_total) == 63720.0
        assert quotation.status == "draft"
        assert channel.messages(topic=f"enquiry:{enquiry.id}", event="quotation_created")

    def test_line_items_required(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        with pytest.raises(ValidationError):
            finance_service.create_quotation(_quotation_body(enquiry, line_items=[]), users["sales"])

    def test_duplicate_number_conflicts(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        finance_service.create_quotation(_quotation_body(enquiry, quotation_number="Q-1"), users["sales"])
        with pytest.raises(ConflictError):
            finance_service.create_quotation(_quotation_body(enquiry, quotation_number="Q-1"), users["sales"])

    def test_designer_has_no_finance_access(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        with pytest.raises(AuthorizationError):
            finance_service.create_quotation(_quotation_body(enquiry), users["designer"])

    def test_invoice_from_quotation(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        other = make_enquiry(users["sales"])
        quotation = finance_service.create_quotation(_quotation_body(enquiry), users["sales"])
        invoice = finance_service.create_invoice(
            _quotation_body(enquiry, quotation_id=quotation.id, status="sent"), users["sales"],
        )
        assert invoice.quotation_id == quotation.id
        assert invoice.invoice_number.startswith("INV-")

        with pytest.raises(ValidationError):
            finance_service.create_invoice(_quotation_body(other, quotation_id=quotation.id), users["sales"])

    def test_update_and_filter(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        quotation = finance_service.create_quotation(_quotation_body(enquiry), users["sales"])
        finance_service.update_quotation(quotation.id, {"status": "accepted", "discount": 500}, users["sales"])
        assert quotation.status == "accepted"
        assert float(quotation.discount) == 500.0
        assert float(quotation.grand_total) == 63720.0

        accepted = finance_service.list_quotations(users["sales"], status="accepted")
        assert [q.id for q in accepted] == [quotation.id]
        with pytest.raises(ValidationError):
            finance_service.list_quotations(users["sales"], status="paid")

    def test_enquiry_with_documents_cannot_be_deleted(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        finance_service.create_quotation(_quotation_body(enquiry), users["sales"])
        with pytest.raises(ValidationError):
            wf.delete_enquiry(enquiry.id, users["admin"])

    def test_endpoints(self, client, users, make_enquiry, auth_headers):
        enquiry = make_enquiry(users["sales"])
        headers = auth_headers(users["sales"])
        res = client.post("/api/v1/quotations", headers=headers, json=_quotation_body(enquiry))
        assert res.status_code == 201
        data = res.get_json()["data"]
        assert data["line_items"][0]["amount"] == 54000.0

        listing = client.get(f"/api/v1/quotations?enquiry_id={enquiry.id}", headers=headers).get_json()
        assert [q["id"] for q in listing["data"]] == [data["id"]]

        res = client.post("/api/v1/invoices", headers=headers, json=_quotation_body(enquiry))
        assert res.status_code == 201


# ═══════════════════════════════════════════════════════════════
# Communication logs
# ═══════════════════════════════════════════════════════════════

class TestCommunications:
    def test_log_lifecycle(self, users, make_enquiry, channel):
        enquiry = make_enquiry(users["sales"])
        log = communication_service.create_log({
            "enquiry_id": enquiry.id, "communication_type": "call",
            "subject": "Tilt angle", "message": "Client confirmed 25 degrees",
        }, users["sales"])
        assert channel.messages(topic=f"enquiry:{enquiry.id}", event="communication_logged")
        assert [l.id for l in communication_service.list_logs(enquiry.id, users["sales"])] == [log.id]

        with pytest.raises(AuthorizationError):
            communication_service.update_log(log.id, {"subject": "x"}, users["sales2"])
        communication_service.update_log(log.id, {"client_response": "Approved"}, users["sales"])
        assert log.client_response == "Approved"

        communication_service.delete_log(log.id, users["admin"])
        assert communication_service.list_logs(enquiry.id, users["sales"]) == []

    def test_type_validated(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        with pytest.raises(ValidationError):
            communication_service.create_log({
                "enquiry_id": enquiry.id, "communication_type": "fax",
                "subject": "s", "message": "m",
            }, users["sales"])

    def test_requires_enquiry_access(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        with pytest.raises(AuthorizationError):
            communication_service.create_log({
                "enquiry_id": enquiry.id, "communication_type": "email",
                "subject": "s", "message": "m",
            }, users["sales2"])


# ═══════════════════════════════════════════════════════════════
# Dashboard
# ═══════════════════════════════════════════════════════════════

class TestDashboard:
    def test_stats_are_scoped_to_visible_enquiries(self, users, make_enquiry):
        first = make_enquiry(users["sales"], enquiry_amount=1000)
        make_enquiry(users["sales"], enquiry_amount=3000)
        make_enquiry(users["sales2"], enquiry_amount=5000)
        wf.set_status(first.id, "Dispatched", users["sales"])

        mine = dashboard_service.get_stats(users["sales"])
        assert mine["total_enquiries"] == 2
        assert mine["total_value"] == 4000.0
        assert mine["pending_enquiries"] == 1
        assert mine["dispatched_this_month"] == 1
        assert mine["needs_attention"] == 1
        assert mine["total_users"] == 0
        assert mine["conversion_rate"] == 50.0

        admin = dashboard_service.get_stats(users["admin"])
        assert admin["total_enquiries"] == 3
        assert admin["total_value"] == 9000.0
        assert admin["avg_order_value"] == 3000.0
        assert admin["confirmed_orders"] == 1
        assert admin["conversion_rate"] == 33.3
        assert admin["total_users"] == User.query.count()
        assert admin["enquiries_by_status"] == [
            {"status": "Enquiry", "count": 2}, {"status": "Dispatched", "count": 1},
        ]
        assert admin["workflow_stages"]["new"] == 2
        assert admin["workflow_stages"]["ready"] == 1
        assert len(admin["recent_activity"]) == 3

    def test_revenue_counts_sent_and_accepted_invoices(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        finance_service.create_invoice(_quotation_body(enquiry, status="sent"), users["sales"])
        finance_service.create_invoice(_quotation_body(enquiry, status="draft"), users["sales"])
        assert dashboard_service.get_stats(users["admin"])["total_revenue"] == 63720.0

    def test_kanban_has_every_status(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        wf.set_status(enquiry.id, "Design", users["sales"], assigned_person_id=users["designer"].id)

        board = dashboard_service.get_kanban(users["designer"])
        assert len(board) == 10
        assert [e["id"] for e in board["Design"]] == [enquiry.id]
        assert board["Enquiry"] == []
        assert dashboard_service.get_kanban(users["designer2"])["Design"] == []

    def test_stats_endpoint(self, client, users, make_enquiry, auth_headers):
        make_enquiry(users["sales"])
        res = client.get("/api/v1/dashboard/stats?start_date=2000-01-01", headers=auth_headers(users["sales"]))
        assert res.status_code == 200
        assert res.get_json()["data"]["total_enquiries"] == 1


class TestReports:
    def test_breakdowns_follow_the_role_filter(self, users, make_enquiry, make_client):
        helios = make_client("Helios Parks")
        make_enquiry(users["sales"], enquiry_amount=1000)
        make_enquiry(users["sales"], enquiry_amount=2000, material_type="Aluminium")
        make_enquiry(users["sales"], enquiry_amount=7000, client_id=helios.id)
        make_enquiry(users["sales2"], enquiry_amount=50000)

        report = dashboard_service.get_reports(users["sales"])
        assert report["metrics"]["total_enquiries"] == 3
        assert report["metrics"]["total_value"] == 10000.0
        assert report["metrics"]["active_orders"] == 3
        assert report["material_type_distribution"] == [
            {"material_type": "Aluminium", "count": 1, "value": 2000.0},
            {"material_type": "GI", "count": 2, "value": 8000.0},
        ]
        assert [(c["name"], c["count"], c["value"]) for c in report["top_clients"]] == [
            ("Helios Parks", 1, 7000.0), ("Acme Solar Pvt Ltd", 2, 3000.0),
        ]
        assert len(report["enquiries"]) == 3

        admin = dashboard_service.get_reports(users["admin"])
        assert admin["metrics"]["total_value"] == 60000.0
        assert admin["top_clients"][0]["value"] == 53000.0

    def test_monthly_trend_covers_six_months(self, users, make_enquiry):
        make_enquiry(users["sales"], enquiry_amount=1000)
        make_enquiry(users["sales"], enquiry_amount=500)
        trend = dashboard_service.get_reports(users["sales"])["monthly_trend"]
        assert len(trend) == 6
        assert (trend[-1]["enquiries"], trend[-1]["value"]) == (2, 1500.0)
        assert all(m["enquiries"] == 0 for m in trend[:-1])

    def test_month_windows_roll_over_the_year(self):
        windows = dashboard_service._month_windows(3, datetime(2026, 1, 20, tzinfo=timezone.utc))
        assert [(s.strftime("%Y-%m"), e.strftime("%Y-%m")) for s, e in windows] == [
            ("2025-11", "2025-12"), ("2025-12", "2026-01"), ("2026-01", "2026-02"),
        ]

    def test_date_range_excludes_enquiries(self, users, make_enquiry):
        make_enquiry(users["sales"])
        report = dashboard_service.get_reports(users["sales"], start="2999-01-01")
        assert report["metrics"]["total_enquiries"] == 0
        assert report["top_clients"] == []
        assert all(m["enquiries"] == 0 for m in report["monthly_trend"])

    def test_roles_without_reports_are_refused(self, users):
        with pytest.raises(AuthorizationError):
            dashboard_service.get_reports(users["designer"])
        assert dashboard_service.get_reports(users["production"])["metrics"]["total_enquiries"] == 0

    def test_reports_endpoint(self, client, users, make_enquiry, auth_headers):
        make_enquiry(users["sales"])
        res = client.get("/api/v1/reports?end_date=2999-12-31", headers=auth_headers(users["sales"]))
        assert res.status_code == 200
        assert res.get_json()["data"]["metrics"]["total_enquiries"] == 1
        res = client.get("/api/v1/reports", headers=auth_headers(users["purchase"]))
        assert res.status_code == 403


# ═══════════════════════════════════════════════════════════════
# Demo seed
# ═══════════════════════════════════════════════════════════════

class TestSeed:
    def test_seed_is_idempotent(self):
        assert seed_demo_data() == {"users": len(DEMO_USERS), "clients": len(DEMO_CLIENTS)}
        assert seed_demo_data() == {"users": 0, "clients": 0}
        admin = User.query.filter_by(email="admin@solarsync.com").one()
        assert admin.role == "superadmin"
        assert verify_password("password123", admin.password_hash)
        assert Client.query.count() == len(DEMO_CLIENTS)

    def test_cli_command(self, app):
        result = app.test_cli_runner().invoke(args=["seed-demo"])
        assert result.exit_code == 0
        assert "Seeded 6 users, 2 clients." in result.output
