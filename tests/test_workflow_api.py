"""HTTP tests for the request and approval routes."""

import logging

import pytest

from cbahi.repositories.approval_repo import ApprovalStepRepository


async def _first_step_id(db_session, request_id):
    steps = await ApprovalStepRepository(db_session).list_for_round(request_id, 1)
    return steps[0].step_id


@pytest.mark.asyncio
async def test_requests_require_authentication(client, people):
    response = await client.get("/api/v1/approvals/pending")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTHENTICATION_ERROR"


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(client, people):
    response = await client.get(
        "/api/v1/approvals/pending", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unknown_user_is_rejected(client, people, auth_headers):
    response = await client.get("/api/v1/approvals/pending", headers=auth_headers("u_nobody"))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_and_submit_builds_chain(client, people, auth_headers):
    response = await client.post(
        "/api/v1/requests",
        json={"privilege_type": "non_core", "privilege_ids": ["priv_eeg"], "submit": True},
        headers=auth_headers("u_applicant"),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["request"]["status"] == "pending"
    assert data["current_step"]["level"] == "head_of_section"
    assert [s["level"] for s in data["steps"]] == [
        "head_of_section", "head_of_dept", "committee", "medical_director",
    ]
    assert [p["privilege_id"] for p in data["privileges"]] == ["priv_eeg"]

    pending = await client.get("/api/v1/approvals/pending", headers=auth_headers("u_hos"))
    assert pending.status_code == 200
    assert [p["step_id"] for p in pending.json()] == [data["current_step"]["step_id"]]


@pytest.mark.asyncio
async def test_second_active_request_conflicts(client, people, auth_headers):
    body = {"privilege_ids": ["priv_echo"]}
    first = await client.post("/api/v1/requests", json=body, headers=auth_headers("u_applicant"))
    assert first.status_code == 201

    second = await client.post("/api/v1/requests", json=body, headers=auth_headers("u_applicant"))
    assert second.status_code == 409
    error = second.json()["error"]
    assert error["code"] == "ACTIVE_REQUEST_EXISTS"
    assert error["details"]["existing_request_id"] == first.json()["request"]["request_id"]


@pytest.mark.asyncio
async def test_approve_via_api(client, db_session, four_level_request, auth_headers):
    step_id = await _first_step_id(db_session, four_level_request.request_id)
    url = f"/api/v1/approvals/{step_id}"

    forbidden = await client.post(url, json={"action": "approve"}, headers=auth_headers("u_other"))
    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["code"] == "FORBIDDEN"

    ok = await client.post(url, json={"action": "approve"}, headers=auth_headers("u_hos"))
    assert ok.status_code == 200
    assert ok.json()["is_complete"] is False
    assert ok.json()["next_level"] == "head_of_dept"

    again = await client.post(url, json={"action": "approve"}, headers=auth_headers("u_hos"))
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "ALREADY_PROCESSED"

    detail = await client.get(
        f"/api/v1/requests/{four_level_request.request_id}", headers=auth_headers("u_applicant")
    )
    assert detail.json()["request"]["status"] == "in_review"
    assert detail.json()["current_step"]["level"] == "head_of_dept"


@pytest.mark.asyncio
async def test_conflict_is_logged_with_error_code(client, db_session, four_level_request, auth_headers, caplog):
    caplog.set_level(logging.INFO, logger="cbahi.errors.handlers")
    step_id = await _first_step_id(db_session, four_level_request.request_id)
    url = f"/api/v1/approvals/{step_id}"

    await client.post(url, json={"action": "approve"}, headers=auth_headers("u_hos"))
    again = await client.post(url, json={"action": "approve"}, headers=auth_headers("u_hos"))

    assert again.status_code == 409
    conflicts = [r for r in caplog.records if r.getMessage() == "workflow_conflict"]
    assert len(conflicts) == 1
    assert conflicts[0].code == "ALREADY_PROCESSED"
    assert conflicts[0].details == {"step_id": step_id, "status": "approved"}


@pytest.mark.asyncio
async def test_reject_without_comments_is_bad_request(client, db_session, four_level_request, auth_headers):
    step_id = await _first_step_id(db_session, four_level_request.request_id)
    response = await client.post(
        f"/api/v1/approvals/{step_id}", json={"action": "reject"}, headers=auth_headers("u_hos")
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "COMMENTS_REQUIRED"


@pytest.mark.asyncio
async def test_unknown_action_is_unprocessable(client, db_session, four_level_request, auth_headers):
    step_id = await _first_step_id(db_session, four_level_request.request_id)
    response = await client.post(
        f"/api/v1/approvals/{step_id}", json={"action": "escalate"}, headers=auth_headers("u_hos")
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_approval_view_visibility(client, db_session, four_level_request, auth_headers):
    step_id = await _first_step_id(db_session, four_level_request.request_id)
    url = f"/api/v1/approvals/{step_id}"

    mine = await client.get(url, headers=auth_headers("u_hos"))
    assert mine.status_code == 200
    assert mine.json()["approval"]["status"] == "pending"
    assert mine.json()["request"]["request"]["request_id"] == four_level_request.request_id

    assert (await client.get(url, headers=auth_headers("u_applicant"))).status_code == 200
    assert (await client.get(url, headers=auth_headers("u_other"))).status_code == 403
    assert (await client.get("/api/v1/approvals/step_missing", headers=auth_headers("u_hos"))).status_code == 404


@pytest.mark.asyncio
async def test_cancel_via_api(client, four_level_request, auth_headers):
    response = await client.post(
        f"/api/v1/requests/{four_level_request.request_id}/cancel", headers=auth_headers("u_applicant")
    )
    assert response.status_code == 200
    data = response.json()
    assert data["request"]["status"] == "cancelled"
    assert data["current_step"] is None
    assert {e["status"] for e in data["escalations"]} == {"cancelled"}
