"""
Design, production and dispatch sub-workflow tests.
"""

import pytest

from workflow_crm.core.exceptions import AuthorizationError, ValidationError
from workflow_crm.models.enquiry import EnquiryStatusHistory
from workflow_crm.services import design_service, dispatch_service, production_service
from workflow_crm.services import enquiry_workflow as wf


def _last_history(enquiry):
    return (
        EnquiryStatusHistory.query
        .filter_by(enquiry_id=enquiry.id)
        .order_by(EnquiryStatusHistory.id.desc())
        .first()
    )


# ═══════════════════════════════════════════════════════════════
# Design
# ═══════════════════════════════════════════════════════════════

class TestDesign:
    def test_assign_designer(self, users, make_enquiry, channel):
        enquiry = make_enquiry(users["sales"])
        work = design_service.assign_designer(
            enquiry.id, users["designer"].id, users["sales"], client_requirements="25 deg tilt",
        )
        assert enquiry.status == "Design"
        assert enquiry.current_assigned_person_id == users["designer"].id
        assert work.client_requirements == "25 deg tilt"
        assert work.design_status == "pending"
        assert _last_history(enquiry).note == f"Assigned to designer {users['designer'].name}"
        assert channel.messages(topic=f"enquiry:{enquiry.id}", event="assignment_changed")

    def test_assign_requires_designer_role(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        with pytest.raises(ValidationError):
            design_service.assign_designer(enquiry.id, users["production"].id, users["sales"])

    def test_progress_marks_in_progress_without_touching_enquiry(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        work = design_service.assign_designer(enquiry.id, users["designer"].id, users["sales"])
        design_service.save_design_progress(work.id, users["designer"], designer_notes="Draft v1")
        assert work.design_status == "in_progress"
        assert work.designer_notes == "Draft v1"
        assert enquiry.status == "Design"

    def test_only_owner_or_admin_may_complete(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        work = design_service.assign_designer(enquiry.id, users["designer"].id, users["sales"])
        with pytest.raises(AuthorizationError):
            design_service.complete_design_and_return(work.id, users["designer2"])
        design_service.complete_design_and_return(work.id, users["director"])
        assert enquiry.status == "BOQ"

    def test_update_to_completed_runs_return_flow(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        work = design_service.assign_designer(enquiry.id, users["designer"].id, users["sales"])
        design_service.update_design_work(
            work.id, {"design_status": "completed", "designer_notes": "Final"}, users["designer"],
        )
        assert work.designer_notes == "Final"
        assert work.design_status == "completed"
        assert enquiry.current_assigned_person_id == users["sales"].id

    def test_completed_design_cannot_be_saved(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        work = design_service.assign_designer(enquiry.id, users["designer"].id, users["sales"])
        design_service.complete_design_and_return(work.id, users["designer"])
        with pytest.raises(ValidationError):
            design_service.save_design_progress(work.id, users["designer"], designer_notes="late")

    def test_completing_twice_leaves_later_stages_alone(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        work = design_service.assign_designer(enquiry.id, users["designer"].id, users["sales"])
        design_service.complete_design_and_return(work.id, users["designer"])
        wf.confirm_order(enquiry.id, users["sales"], production_user_id=users["production"].id)

        with pytest.raises(ValidationError):
            design_service.complete_design_and_return(work.id, users["designer"])
        with pytest.raises(ValidationError):
            design_service.update_design_work(work.id, {"design_status": "completed"}, users["designer"])
        assert enquiry.status == "ReadyForProduction"
        assert enquiry.current_assigned_person_id == users["production"].id

    def test_reassigned_design_can_complete_again(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        work = design_service.assign_designer(enquiry.id, users["designer"].id, users["sales"])
        design_service.complete_design_and_return(work.id, users["designer"])
        design_service.assign_designer(enquiry.id, users["designer"].id, users["sales"])
        assert work.design_status == "pending"
        design_service.complete_design_and_return(work.id, users["designer"])
        assert enquiry.status == "BOQ"

    def test_completion_event_reports_previous_status(self, users, make_enquiry, channel):
        enquiry = make_enquiry(users["sales"])
        work = design_service.assign_designer(enquiry.id, users["designer"].id, users["sales"])
        channel.clear()
        design_service.complete_design_and_return(work.id, users["designer"])
        event = channel.messages(topic=f"enquiry:{enquiry.id}", event="status_changed")[-1]
        assert event["payload"]["old_status"] == "Design"
        assert event["payload"]["new_status"] == "BOQ"

    def test_task_lists(self, users, make_enquiry):
        first = make_enquiry(users["sales"])
        second = make_enquiry(users["sales"])
        w1 = design_service.assign_designer(first.id, users["designer"].id, users["sales"])
        design_service.assign_designer(second.id, users["designer2"].id, users["sales"])
        design_service.complete_design_and_return(w1.id, users["designer"])

        assert design_service.list_designer_tasks(users["designer"]) == []
        assert [w.id for w in design_service.list_completed_designs(users["designer"])] == [w1.id]
        assert len(design_service.list_designer_tasks(users["admin"])) == 1

    def test_attachments(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        design_service.assign_designer(enquiry.id, users["designer"].id, users["sales"])
        att = design_service.add_attachment(enquiry.id, {
            "file_name": "layout.pdf", "file_url": "https://files.example.com/layout.pdf",
            "file_type": "application/pdf",
        }, users["designer"])
        assert [a.id for a in design_service.list_attachments(enquiry.id, users["sales"])] == [att.id]

        with pytest.raises(AuthorizationError):
            design_service.delete_attachment(att.id, users["sales"])
        design_service.delete_attachment(att.id, users["designer"])
        assert design_service.list_attachments(enquiry.id, users["sales"]) == []

    def test_attachment_requires_name_and_url(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        with pytest.raises(ValidationError):
            design_service.add_attachment(enquiry.id, {"file_name": "x.dwg"}, users["sales"])


# ═══════════════════════════════════════════════════════════════
# Production
# ═══════════════════════════════════════════════════════════════

@pytest.fixture()
def production_workflow(users, make_enquiry):
    enquiry = make_enquiry(users["sales"])
    wf.confirm_order(enquiry.id, users["sales"], production_user_id=users["production"].id)
    return enquiry.production_workflow


class TestProduction:
    def test_assign_production_upserts_workflow(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        workflow = production_service.assign_production(enquiry.id, users["production2"].id, users["sales"])
        assert enquiry.status == "ReadyForProduction"
        assert workflow.production_lead_id == users["production2"].id
        assert _last_history(enquiry).note == f"Assigned to production by {users['sales'].name}"

        again = production_service.assign_production(enquiry.id, users["production"].id, users["sales"])
        assert again.id == workflow.id
        assert again.production_lead_id == users["production"].id

    def test_start_moves_enquiry_in_production(self, users, production_workflow):
        production_service.start_production_workflow(production_workflow.id, users["production"])
        assert production_workflow.status == "in_progress"
        assert production_workflow.current_step == "cutting"
        assert production_workflow.started_at is not None
        assert production_workflow.enquiry.status == "InProduction"

    def test_only_lead_may_start(self, users, production_workflow):
        with pytest.raises(AuthorizationError):
            production_service.start_production_workflow(production_workflow.id, users["production2"])

    def test_task_lifecycle_stamps_times_and_step(self, users, production_workflow):
        task = production_service.create_task(
            production_workflow.id, {"step": "welding", "assigned_to_id": users["production2"].id},
            users["production"],
        )
        assert task.status == "pending"

        production_service.update_task(task.id, {"status": "in_progress"}, users["production2"])
        assert task.started_at is not None
        assert production_workflow.current_step == "welding"

        production_service.update_task(task.id, {"status": "completed"}, users["production2"])
        assert task.completed_at is not None

    def test_task_requires_known_step(self, users, production_workflow):
        with pytest.raises(ValidationError):
            production_service.create_task(
                production_workflow.id, {"step": "painting", "assigned_to_id": users["production"].id},
                users["production"],
            )

    def test_unrelated_user_cannot_update_task(self, users, production_workflow):
        task = production_service.create_task(
            production_workflow.id, {"step": "cutting", "assigned_to_id": users["production"].id},
            users["production"],
        )
        with pytest.raises(AuthorizationError):
            production_service.update_task(task.id, {"status": "completed"}, users["production2"])

    def test_complete_blocked_by_open_tasks(self, users, production_workflow):
        task = production_service.create_task(
            production_workflow.id, {"step": "cutting", "assigned_to_id": users["production"].id},
            users["production"],
        )
        with pytest.raises(ValidationError) as exc:
            production_service.complete_production_workflow(production_workflow.id, users["production"])
        assert exc.value.details == {"open_task_ids": [task.id]}
        assert production_workflow.enquiry.status == "ReadyForProduction"

        production_service.update_task(task.id, {"status": "completed"}, users["production"])
        production_service.complete_production_workflow(production_workflow.id, users["production"])
        assert production_workflow.status == "completed"

    def test_gate_can_be_disabled(self, app, users, production_workflow, monkeypatch):
        monkeypatch.setitem(app.config, "PRODUCTION_REQUIRE_TASKS_COMPLETE", False)
        production_service.create_task(
            production_workflow.id, {"step": "cutting", "assigned_to_id": users["production"].id},
            users["production"],
        )
        production_service.complete_production_workflow(production_workflow.id, users["production"])
        assert production_workflow.status == "completed"

    def test_completion_returns_to_salesperson(self, users, production_workflow):
        enquiry = production_workflow.enquiry
        production_service.start_production_workflow(production_workflow.id, users["production"])
        production_service.complete_production_workflow(production_workflow.id, users["production"])

        assert enquiry.status == "ReadyForDispatch"
        assert enquiry.current_assigned_person_id == users["sales"].id
        assert production_workflow.completed_at is not None
        assert _last_history(enquiry).note == production_service.RETURN_FOR_DISPATCH_NOTE

        with pytest.raises(ValidationError):
            production_service.complete_production_workflow(production_workflow.id, users["production"])

    def test_notes(self, users, production_workflow):
        production_service.update_workflow_notes(production_workflow.id, "Galvanise after weld", users["admin"])
        assert production_workflow.notes == "Galvanise after weld"


# ═══════════════════════════════════════════════════════════════
# Dispatch
# ═══════════════════════════════════════════════════════════════

class TestDispatch:
    def test_assign_and_dispatch(self, users, make_enquiry, channel):
        enquiry = make_enquiry(users["sales"])
        work = dispatch_service.assign_dispatch(
            enquiry.id, users["purchase"].id, users["sales"],
            tracking_number=None, estimated_delivery_date="2026-05-01",
        )
        assert enquiry.status == "ReadyForDispatch"
        assert enquiry.current_assigned_person_id == users["purchase"].id
        assert work.status == "pending"
        assert work.estimated_delivery_date is not None

        dispatch_service.update_dispatch(
            work.id, {"status": "dispatched", "tracking_number": "TRK-88"}, users["purchase"],
        )
        assert enquiry.status == "Dispatched"
        assert work.dispatch_date is not None
        assert _last_history(enquiry).note == "Dispatched with tracking number: TRK-88"
        assert channel.messages(topic=f"user:{users['sales'].id}", event="notification")

    def test_dispatch_without_tracking_number(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        work = dispatch_service.assign_dispatch(enquiry.id, users["purchase"].id, users["sales"])
        dispatch_service.update_dispatch(work.id, {"status": "dispatched"}, users["sales"])
        assert _last_history(enquiry).note == "Dispatched with tracking number: N/A"

    def test_detail_update_does_not_cascade(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        work = dispatch_service.assign_dispatch(enquiry.id, users["purchase"].id, users["sales"])
        dispatch_service.update_dispatch(work.id, {"notes": "Two trucks"}, users["purchase"])
        assert enquiry.status == "ReadyForDispatch"
        assert work.notes == "Two trucks"

    def test_invalid_status(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        work = dispatch_service.assign_dispatch(enquiry.id, users["purchase"].id, users["sales"])
        with pytest.raises(ValidationError):
            dispatch_service.update_dispatch(work.id, {"status": "lost"}, users["purchase"])

    def test_outsider_cannot_update(self, users, make_enquiry):
        enquiry = make_enquiry(users["sales"])
        work = dispatch_service.assign_dispatch(enquiry.id, users["purchase"].id, users["sales"])
        with pytest.raises(AuthorizationError):
            dispatch_service.update_dispatch(work.id, {"status": "dispatched"}, users["sales2"])
