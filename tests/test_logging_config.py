"""Tests for structlog context binding."""

import structlog

from cbahi.logging_config import bind_request_context, bind_workflow_context, clear_request_context, workflow_context


def setup_function():
    clear_request_context()


def teardown_function():
    clear_request_context()


def test_request_and_workflow_ids_are_bound_together():
    bind_request_context("trc_1", "u_hos")
    bind_workflow_context(request_id="req_1", step_id=None)

    assert structlog.contextvars.get_contextvars() == {
        "trace_id": "trc_1",
        "user_id": "u_hos",
        "request_id": "req_1",
    }


def test_workflow_context_restores_previous_binding():
    bind_request_context("trc_1")
    bind_workflow_context(request_id="req_outer")

    with workflow_context(request_id="req_inner", escalation_id="esc_1"):
        assert structlog.contextvars.get_contextvars()["request_id"] == "req_inner"
        assert structlog.contextvars.get_contextvars()["escalation_id"] == "esc_1"

    assert structlog.contextvars.get_contextvars() == {"trace_id": "trc_1", "request_id": "req_outer"}
