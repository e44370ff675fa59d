"""
HTTP contract tests for the enquiry, design, production, dispatch and
notification blueprints: envelope shape, status codes, auth.
"""

from workflow_crm.models.workflow import DesignWork


def _create(client, headers, acme, **overrides):
    body = {
        "client_id": acme.id,
        "material_type": "Aluminium",
        "enquiry_detail": "Rooftop rails",
        "enquiry_amount": 1250000,
    }
    body.update(overrides)
    return client.post("/api/v1/enquiries", json=body, headers=headers)


class TestAuth:
    def test_missing_token_is_401(self, client):
        res = client.get("/api/v1/enquiries")
        assert res.status_code == 401
        body = res.get_json()
        assert body == {"success": False, "message": "Authentication required", "code": "ERR_UNAUTHORIZED"}

    def test_garbage_token_is_401(self, client):
        res = client.get("/api/v1/enquiries", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401

    def test_inactive_user_token_is_401(self, client, make_user, auth_headers):
        gone = make_user("salesman", is_active=False)
        res = client.get("/api/v1/enquiries", headers=auth_headers(gone))
        assert res.status_code == 401

    def test_health_needs_no_token(self, client):
        assert client.get("/api/v1/health/ready").status_code == 200
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"


class TestEnquiryEndpoints:
    def test_create_envelope(self, client, users, acme, auth_headers):
        res = _create(client, auth_headers(users["sales"]), acme)
        assert res.status_code == 201
        body = res.get_json()
        assert body["success"] is True
        assert body["message"] == "Enquiry created successfully"
        assert body["data"]["status"] == "Enquiry"
        assert body["data"]["order_number"] == "ORD-0001"
        assert body["data"]["enquiry_by"]["id"] == users["sales"].id

    def test_missing_field_is_validation_required(self, client, users, acme, auth_headers):
        res = client.post("/api/v1/enquiries", json={"client_id": acme.id},
                          headers=auth_headers(users["sales"]))
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_REQUIRED"
        assert body["details"]["material_type"] == "required"

    def test_bad_value_is_validation_invalid(self, client, users, acme, auth_headers):
        res = _create(client, auth_headers(users["sales"]), acme, enquiry_amount="lots")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_designer_create_is_403(self, client, users, acme, auth_headers):
        res = _create(client, auth_headers(users["designer"]), acme)
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_unknown_enquiry_is_404(self, client, users, auth_headers):
        res = client.get("/api/v1/enquiries/999", headers=auth_headers(users["admin"]))
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_duplicate_enquiry_num_is_409(self, client, users, acme, auth_headers):
        headers = auth_headers(users["sales"])
        _create(client, headers, acme, enquiry_num="ENQ-1")
        res = _create(client, headers, acme, enquiry_num="ENQ-1")
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_list_is_role_filtered_and_paginated(self, client, users, acme, auth_headers):
        _create(client, auth_headers(users["sales"]), acme)
        _create(client, auth_headers(users["sales"]), acme)
        _create(client, auth_headers(users["sales2"]), acme)

        res = client.get("/api/v1/enquiries?limit=1", headers=auth_headers(users["sales"]))
        body = res.get_json()
        assert res.status_code == 200
        assert body["total"] == 2
        assert body["limit"] == 1
        assert len(body["data"]) == 1

        res = client.get("/api/v1/enquiries", headers=auth_headers(users["admin"]))
        assert res.get_json()["total"] == 3

    def test_detail_includes_history(self, client, users, acme, auth_headers):
        enquiry_id = _create(client, auth_headers(users["sales"]), acme).get_json()["data"]["id"]
        res = client.get(f"/api/v1/enquiries/{enquiry_id}", headers=auth_headers(users["sales"]))
        assert len(res.get_json()["data"]["status_history"]) == 1

    def test_other_salesman_is_403(self, client, users, acme, auth_headers):
        enquiry_id = _create(client, auth_headers(users["sales"]), acme).get_json()["data"]["id"]
        res = client.get(f"/api/v1/enquiries/{enquiry_id}", headers=auth_headers(users["sales2"]))
        assert res.status_code == 403

    def test_status_assign_and_history(self, client, users, acme, auth_headers):
        headers = auth_headers(users["sales"])
        enquiry_id = _create(client, headers, acme).get_json()["data"]["id"]

        res = client.put(f"/api/v1/enquiries/{enquiry_id}/status", headers=headers, json={
            "status": "Design", "assigned_person_id": users["designer"].id, "note": "Please size for 500kW",
        })
        assert res.status_code == 200
        assert res.get_json()["data"]["status"] == "Design"
        assert DesignWork.query.filter_by(enquiry_id=enquiry_id).count() == 1

        res = client.put(f"/api/v1/enquiries/{enquiry_id}/assign", headers=headers,
                         json={"assigned_person_id": users["designer2"].id})
        assert res.get_json()["data"]["current_assigned_person_id"] == users["designer2"].id

        history = client.get(f"/api/v1/enquiries/{enquiry_id}/history", headers=headers).get_json()["data"]
        assert [h["status"] for h in history] == ["Design", "Design", "Enquiry"]

        notes = client.get(f"/api/v1/enquiries/{enquiry_id}/notes", headers=headers).get_json()["data"]
        assert [n["note"] for n in notes] == ["Please size for 500kW"]

    def test_unknown_status_is_400(self, client, users, acme, auth_headers):
        headers = auth_headers(users["sales"])
        enquiry_id = _create(client, headers, acme).get_json()["data"]["id"]
        res = client.patch(f"/api/v1/enquiries/{enquiry_id}/status", headers=headers, json={"status": "Lost"})
        assert res.status_code == 400

    def test_transitions_endpoint(self, client, users, acme, auth_headers):
        headers = auth_headers(users["sales"])
        enquiry_id = _create(client, headers, acme).get_json()["data"]["id"]
        data = client.get(f"/api/v1/enquiries/{enquiry_id}/transitions", headers=headers).get_json()["data"]
        assert data == {"status": "Enquiry", "strict": False, "transitions": ["Design", "BOQ"]}

    def test_my_tasks_and_worked(self, client, users, acme, auth_headers):
        headers = auth_headers(users["sales"])
        enquiry_id = _create(client, headers, acme).get_json()["data"]["id"]
        client.put(f"/api/v1/enquiries/{enquiry_id}/status", headers=headers,
                   json={"status": "Design", "assigned_person_id": users["designer"].id})

        tasks = client.get("/api/v1/enquiries/my-tasks", headers=auth_headers(users["designer"])).get_json()
        assert [e["id"] for e in tasks["data"]["Design"]] == [enquiry_id]

        worked = client.get("/api/v1/enquiries/worked", headers=auth_headers(users["designer"])).get_json()
        assert worked["total"] == 1

    def test_delete_requires_superadmin(self, client, users, acme, auth_headers):
        enquiry_id = _create(client, auth_headers(users["sales"]), acme).get_json()["data"]["id"]
        assert client.delete(f"/api/v1/enquiries/{enquiry_id}",
                             headers=auth_headers(users["sales"])).status_code == 403
        assert client.delete(f"/api/v1/enquiries/{enquiry_id}",
                             headers=auth_headers(users["admin"])).status_code == 200


class TestFullPipeline:
    def test_enquiry_to_dispatch(self, client, users, acme, auth_headers):
        sales = auth_headers(users["sales"])
        designer = auth_headers(users["designer"])
        production = auth_headers(users["production"])

        enquiry_id = _create(client, sales, acme).get_json()["data"]["id"]

        work = client.post("/api/v1/design/assign", headers=sales, json={
            "enquiry_id": enquiry_id, "designer_id": users["designer"].id,
        }).get_json()["data"]
        client.put(f"/api/v1/design/{work['id']}/progress", headers=designer, json={"designer_notes": "v1"})
        res = client.post(f"/api/v1/design/{work['id']}/complete", headers=designer, json={})
        assert res.get_json()["data"]["design_status"] == "completed"

        res = client.post(f"/api/v1/enquiries/{enquiry_id}/confirm-order", headers=sales,
                          json={"production_user_id": users["production"].id})
        assert res.get_json()["data"]["status"] == "ReadyForProduction"

        workflow = client.get(f"/api/v1/production/enquiry/{enquiry_id}", headers=production).get_json()["data"]
        assert workflow["status"] == "not_started"
        client.post(f"/api/v1/production/{workflow['id']}/start", headers=production)
        task = client.post(f"/api/v1/production/{workflow['id']}/tasks", headers=production, json={
            "step": "cutting", "assigned_to_id": users["production"].id,
        }).get_json()["data"]

        res = client.post(f"/api/v1/production/{workflow['id']}/complete", headers=production, json={})
        assert res.status_code == 400
        assert res.get_json()["details"] == {"open_task_ids": [task["id"]]}

        client.put(f"/api/v1/production/tasks/{task['id']}", headers=production, json={"status": "completed"})
        res = client.post(f"/api/v1/production/{workflow['id']}/complete", headers=production, json={})
        assert res.status_code == 200

        dispatch = client.post("/api/v1/dispatch/assign", headers=sales, json={
            "enquiry_id": enquiry_id, "dispatch_assigned_to": users["purchase"].id,
        }).get_json()["data"]
        client.put(f"/api/v1/dispatch/{dispatch['id']}", headers=auth_headers(users["purchase"]),
                   json={"status": "dispatched", "tracking_number": "TRK-1"})

        detail = client.get(f"/api/v1/enquiries/{enquiry_id}", headers=sales).get_json()["data"]
        assert detail["status"] == "Dispatched"
        assert detail["order_number"] == "ORD-0001"
        assert detail["status_history"][0]["note"] == "Dispatched with tracking number: TRK-1"


class TestNotificationEndpoints:
    def test_list_mark_read_and_read_all(self, client, users, acme, auth_headers):
        sales = auth_headers(users["sales"])
        for _ in range(2):
            enquiry_id = _create(client, sales, acme).get_json()["data"]["id"]
            client.put(f"/api/v1/enquiries/{enquiry_id}/status", headers=sales,
                       json={"status": "Design", "assigned_person_id": users["designer"].id})

        designer = auth_headers(users["designer"])
        res = client.get("/api/v1/notifications", headers=designer)
        body = res.get_json()
        assert body["unread_count"] == 2
        assert [n["type"] for n in body["data"]] == ["assignment", "assignment"]

        first_id = body["data"][0]["id"]
        res = client.put(f"/api/v1/notifications/{first_id}/read", headers=designer)
        assert res.get_json()["data"]["read"] is True
        count = client.get("/api/v1/notifications/unread-count", headers=designer).get_json()["data"]
        assert count == {"unread_count": 1}

        res = client.put("/api/v1/notifications/read-all", headers=designer)
        assert res.get_json()["data"] == {"updated": 1}

    def test_foreign_notification_is_404(self, client, users, acme, auth_headers):
        sales = auth_headers(users["sales"])
        enquiry_id = _create(client, sales, acme).get_json()["data"]["id"]
        client.put(f"/api/v1/enquiries/{enquiry_id}/status", headers=sales,
                   json={"status": "Design", "assigned_person_id": users["designer"].id})
        notif_id = client.get("/api/v1/notifications", headers=auth_headers(users["designer"])) \
            .get_json()["data"][0]["id"]
        res = client.put(f"/api/v1/notifications/{notif_id}/read", headers=auth_headers(users["designer2"]))
        assert res.status_code == 404
