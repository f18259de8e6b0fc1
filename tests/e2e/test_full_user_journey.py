from fastapi import FastAPI
from fastapi.testclient import TestClient

from intake.features.workflow.api.router import get_workflow_service, router


def test_full_intake_journey(workflow, apply_user_override, clock):
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_workflow_service] = lambda: workflow.service
    client = TestClient(app)

    def move(user, task_id, status):
        apply_user_override(app, user)
        response = client.patch(f"/api/tasks/{task_id}/status", json={"status": status})
        assert response.status_code == 200, response.text
        return response.json()

    apply_user_override(app, workflow.manager)
    created = client.post(
        "/api/products",
        json={
            "product": {"title": "Linen throw", "vendor": "Loom House", "price": "59.00"},
            "task": {"assigned_to": workflow.editor.id},
        },
    )
    assert created.status_code == 201
    task_id = created.json()["task"]["id"]

    move(workflow.manager, task_id, "TRIAGE")
    clock.advance(minutes=10)
    move(workflow.manager, task_id, "ASSIGNED")
    clock.advance(minutes=20)
    move(workflow.editor, task_id, "IN_PROGRESS")
    clock.advance(minutes=90)
    move(workflow.editor, task_id, "READY_FOR_REVIEW")
    clock.advance(minutes=15)
    published = move(workflow.manager, task_id, "PUBLISHED")
    assert published["published_at"] is not None
    clock.advance(minutes=5)
    move(workflow.auditor, task_id, "QA_APPROVED")
    clock.advance(minutes=5)
    done = move(workflow.auditor, task_id, "DONE")

    assert done["status"] == "DONE"
    assert done["lead_time_minutes"] == 135
    assert done["cycle_time_minutes"] == 115

    # Terminal: nobody can move it again
    apply_user_override(app, workflow.admin)
    transitions = client.get(f"/api/tasks/{task_id}/transitions")
    assert transitions.json()["valid_transitions"] == []

    audit = client.get(f"/api/tasks/{task_id}/audit").json()
    assert len(audit) == 8
    assert audit[0]["to_status"] == "DONE"
    assert audit[-1]["action"] == "TASK_CREATED"

    assert [p.title for p in workflow.publisher.published] == ["Linen throw"]

    apply_user_override(app, workflow.editor)
    titles = {n["title"] for n in client.get("/api/notifications").json()}
    assert titles == {"Task Published"}

    apply_user_override(app, workflow.auditor)
    titles = {n["title"] for n in client.get("/api/notifications").json()}
    assert titles == {"Task Ready for Review"}

    stats = client.get("/api/dashboard/stats").json()
    assert stats["totalTasks"] == 1
    assert stats["completedToday"] == 1
    assert stats["kanbanCounts"]["DONE"] == 1
