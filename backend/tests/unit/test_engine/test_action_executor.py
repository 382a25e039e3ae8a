"""Transition actions: ordering, independence, placeholders, each action type"""
import json

import httpx
import pytest

from incidentflow.domain.enums import ActionType, RevisionActionType
from incidentflow.domain.errors import ActionConfigError
from incidentflow.domain.models import TransitionAction, TransitionRequest
from incidentflow.engine.action_executor import render_placeholders


def _action(action_type, config, order=0, **kwargs):
    return TransitionAction(action_type=action_type, config=config, execution_order=order, **kwargs)


def _start_with_actions(world, actions, actor=None):
    world.workflow_service.set_transition_actions(world.transitions["start"], actions)
    incident = world.create_incident()
    result = world.engine.execute_transition(
        incident.incident_id,
        TransitionRequest(transition_id=world.transitions["start"], comment="go"),
        actor or world.admin
    )
    return incident, result


# =============================================================================
# Placeholders
# =============================================================================

def test_render_placeholders_replaces_known_tokens_only():
    rendered = render_placeholders(
        "{{incident_number}} is {{current_state}} ({{unknown}})",
        {"incident_number": "INC-2026-000007", "current_state": "Open"}
    )
    assert rendered == "INC-2026-000007 is Open ({{unknown}})"


def test_render_placeholders_handles_empty_template():
    assert render_placeholders("", {"incident_id": "x"}) == ""


def test_notification_renders_context(world):
    incident, result = _start_with_actions(world, [
        _action(ActionType.NOTIFICATION, {
            "recipients": ["assignee", "reporter"],
            "title": "{{incident_number}}: {{from_state}} -> {{to_state}}",
            "message": "{{performed_by}} ran {{transition_name}}; assignee {{assignee}}, now {{current_state}}",
        }),
    ])

    assert result.actions[0].success is True
    notes = world.notification_repo.notifications
    assert [n.recipient_user_id for n in notes] == ["USR-A", "USR-ADMIN"]
    assert notes[0].title == f"{incident.incident_number}: Open -> In Progress"
    assert notes[0].message == "Ada Tester ran Start Work; assignee Abe Tester, now In Progress"


# =============================================================================
# Ordering and independence
# =============================================================================

def test_actions_run_in_execution_order(world):
    incident, result = _start_with_actions(world, [
        _action(ActionType.FIELD_UPDATE, {"field": "priority", "value": 5}, order=2, name="second"),
        _action(ActionType.FIELD_UPDATE, {"field": "priority", "value": 1}, order=1, name="first"),
    ])

    assert [o.name for o in result.actions] == ["first", "second"]
    assert result.incident.priority == 5

    changes = world.revision_repo.list_revisions(incident.incident_id, action_type=RevisionActionType.FIELD_CHANGE)
    # Newest first
    assert [r.changes[0].new_value for r in changes] == ["5", "1"]


def test_failing_action_does_not_stop_later_ones(make_world):
    world = make_world(webhook_status=500)
    incident, result = _start_with_actions(world, [
        _action(ActionType.WEBHOOK, {"url": "https://hooks.example.com/incident"}, order=1, name="hook"),
        _action(ActionType.NOTIFICATION, {"recipients": ["reporter"], "title": "t", "message": "m"}, order=2),
    ])

    hook, note = result.actions
    assert hook.success is False
    assert "500" in hook.error
    assert note.success is True
    assert len(world.notification_repo.notifications) == 1
    assert result.incident.current_state_id == world.states["in_progress"]
    assert any(d.startswith("action hook") for d in result.diagnostics)


def test_directory_outage_does_not_skip_actions(world, monkeypatch):
    def directory_down(user_id):
        raise RuntimeError("directory down")

    monkeypatch.setattr(world.user_repo, "get_user", directory_down)
    _, result = _start_with_actions(world, [
        _action(ActionType.FIELD_UPDATE, {"field": "priority", "value": 5}, order=1),
        _action(ActionType.NOTIFICATION, {"recipients": ["reporter"], "title": "{{assignee}}"}, order=2),
    ])

    assert [o.success for o in result.actions] == [True, True]
    assert result.incident.priority == 5
    # Raw id stands in for the unreachable display name
    assert world.notification_repo.notifications[0].title == "USR-A"


def test_inactive_actions_are_skipped(world):
    _, result = _start_with_actions(world, [
        _action(ActionType.NOTIFICATION, {"recipients": ["reporter"]}, is_active=False),
    ])
    assert result.actions == []
    assert world.notification_repo.notifications == []


# =============================================================================
# Webhooks
# =============================================================================

def test_webhook_sends_rendered_body_and_headers(world):
    incident, result = _start_with_actions(world, [
        _action(ActionType.WEBHOOK, {
            "url": "https://hooks.example.com/incident",
            "method": "put",
            "headers": {"X-Api-Key": "secret"},
            "body": '{"number": "{{incident_number}}", "state": "{{to_state}}"}',
        }),
    ])

    assert result.actions[0].success is True
    request = world.webhook.requests[0]
    assert request.method == "PUT"
    assert str(request.url) == "https://hooks.example.com/incident"
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["X-Api-Key"] == "secret"
    assert json.loads(request.content) == {"number": incident.incident_number, "state": "In Progress"}


def test_webhook_client_error_is_failure(make_world):
    world = make_world(webhook_status=404)
    _, result = _start_with_actions(world, [
        _action(ActionType.WEBHOOK, {"url": "https://hooks.example.com/missing"}),
    ])
    assert result.actions[0].success is False
    assert "404" in result.actions[0].error


def test_webhook_timeout_is_action_failure(world):
    world.webhook.error = httpx.ReadTimeout("timed out")
    _, result = _start_with_actions(world, [
        _action(ActionType.WEBHOOK, {"url": "https://hooks.example.com/slow"}, name="slow hook"),
    ])

    assert result.actions[0].success is False
    assert "Webhook request failed" in result.actions[0].error
    assert result.incident.current_state_id == world.states["in_progress"]
    assert any(d.startswith("action slow hook") for d in result.diagnostics)


# =============================================================================
# Field updates
# =============================================================================

def test_unsupported_field_update_fails(world):
    incident, result = _start_with_actions(world, [
        _action(ActionType.FIELD_UPDATE, {"field": "title", "value": "hijacked"}),
    ])
    assert result.actions[0].success is False
    assert "Unsupported field" in result.actions[0].error
    assert result.incident.title == incident.title


@pytest.mark.parametrize("value", ["high", 9, 0, True, 2.5, 3.0, float("inf")])
def test_priority_must_be_level(world, value):
    _, result = _start_with_actions(world, [
        _action(ActionType.FIELD_UPDATE, {"field": "priority", "value": value}),
    ])
    assert result.actions[0].success is False
    assert result.incident.priority == 3


def test_field_update_can_clear_department(world):
    _, result = _start_with_actions(world, [
        _action(ActionType.FIELD_UPDATE, {"field": "department_id", "value": ""}),
    ])
    assert result.actions[0].success is True
    assert result.incident.department_id is None


def test_field_update_revision_uses_label(world):
    incident, _ = _start_with_actions(world, [
        _action(ActionType.FIELD_UPDATE, {"field": "severity", "value": 1}),
    ])
    revision = world.revision_repo.list_revisions(
        incident.incident_id, action_type=RevisionActionType.FIELD_CHANGE
    )[0]
    assert revision.action_description == "Severity changed from 3 to 1"


# =============================================================================
# Email and async dispatch
# =============================================================================

def test_email_resolves_addresses(world):
    incident, result = _start_with_actions(world, [
        _action(ActionType.EMAIL, {
            "recipients": ["assignee", "email:oncall@example.com", "role:manager", "bogus"],
            "subject": "[{{incident_number}}] {{incident_title}}",
            "body": "Priority {{priority}}",
        }),
    ])

    assert result.actions[0].success is True
    email = world.notification_repo.emails[0]
    assert email.recipients == ["usr-a@example.com", "oncall@example.com", "usr-admin@example.com"]
    assert email.subject == f"[{incident.incident_number}] Printer on fire"
    assert email.body == "Priority 3"


def test_async_action_runs_in_background(world):
    _, result = _start_with_actions(world, [
        _action(ActionType.NOTIFICATION, {"recipients": ["reporter"], "title": "bg"}, is_async=True),
    ])
    world.engine.action_executor.shutdown(wait=True)

    assert result.actions[0].is_async is True
    assert result.actions[0].success is True
    assert [n.title for n in world.notification_repo.notifications] == ["bg"]


def test_async_action_after_shutdown_is_failure(world):
    world.engine.action_executor.shutdown(wait=True)
    _, result = _start_with_actions(world, [
        _action(ActionType.NOTIFICATION, {"recipients": ["reporter"]}, is_async=True),
    ])
    assert result.actions[0].success is False
    assert result.incident.current_state_id == world.states["in_progress"]


# =============================================================================
# Configuration decoding
# =============================================================================

def test_malformed_config_rejected_at_save(world):
    with pytest.raises(ActionConfigError):
        world.workflow_service.set_transition_actions(world.transitions["start"], [
            _action(ActionType.WEBHOOK, {"method": "POST"}),
        ])


def test_json_text_config_is_decoded(world):
    action = TransitionAction(
        action_type=ActionType.FIELD_UPDATE,
        config='{"field": "priority", "value": 2}'
    )
    _, result = _start_with_actions(world, [action])
    assert result.incident.priority == 2
