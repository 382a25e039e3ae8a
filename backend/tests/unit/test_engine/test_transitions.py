"""Transition execution: validation, commit, timestamps, SLA, best-effort steps"""
from datetime import timedelta

import pytest

from incidentflow.domain.enums import RequirementType, RevisionActionType, StateType
from incidentflow.domain.errors import (
    ConcurrencyError, ForbiddenError, IncidentNotFoundError, InvalidTransitionError,
    RequirementNotMetError, TransitionNotFoundError, ValidationError
)
from incidentflow.domain.models import (
    AttachmentCreate, FeedbackInput, IncidentCreate, TransitionCreate, TransitionRequest,
    TransitionRequirement
)

from ...conftest import ROLE_AGENT, default_users, _user


def _start(world, incident, comment="started", actor=None):
    return world.engine.execute_transition(
        incident.incident_id,
        TransitionRequest(transition_id=world.transitions["start"], comment=comment),
        actor or world.agent
    )


def _run(world, incident_id, code, actor=None, **kwargs):
    return world.engine.execute_transition(
        incident_id,
        TransitionRequest(transition_id=world.transitions[code], **kwargs),
        actor or world.agent
    )


# =============================================================================
# Incident creation
# =============================================================================

class TestCreateIncident:

    def test_starts_in_initial_state_with_sla(self, world):
        incident = world.create_incident()

        assert incident.current_state_id == world.states["open"]
        assert incident.incident_number == "INC-2026-000001"
        assert incident.sla_deadline == world.clock.now + timedelta(hours=24)
        assert incident.sla_breached is False
        assert incident.reporter_id == world.admin.user_id

    def test_numbers_are_sequential(self, world):
        first = world.create_incident()
        second = world.create_incident(title="Second")
        assert first.incident_number == "INC-2026-000001"
        assert second.incident_number == "INC-2026-000002"

    def test_writes_creation_revision(self, world):
        incident = world.create_incident()
        revisions = world.revision_repo.list_revisions(incident.incident_id)

        assert len(revisions) == 1
        assert revisions[0].revision_number == 1
        assert revisions[0].action_type == RevisionActionType.CREATED
        assert revisions[0].action_description == "Incident INC-2026-000001 created"

    def test_uses_default_workflow(self, world):
        incident = world.engine.create_incident(IncidentCreate(title="No workflow given"), world.admin)
        assert incident.workflow_id == world.workflow_id

    def test_missing_required_fields(self, world):
        workflow = world.workflow_service.create_workflow(
            "Strict", "STRICT", world.admin, required_fields=["location_id", "asset_tag"]
        )
        world.workflow_service.create_state(workflow.workflow_id, "New", "new", state_type=StateType.INITIAL)

        with pytest.raises(ValidationError) as exc:
            world.create_incident(workflow_id=workflow.workflow_id, location_id=None)
        assert exc.value.details["missing_fields"] == ["location_id", "asset_tag"]

        incident = world.create_incident(workflow_id=workflow.workflow_id, custom_fields={"asset_tag": "A-1"})
        assert incident.workflow_id == workflow.workflow_id

    def test_workflow_without_initial_state(self, world):
        workflow = world.workflow_service.create_workflow("Empty", "EMPTY", world.admin)
        with pytest.raises(ValidationError):
            world.create_incident(workflow_id=workflow.workflow_id)


# =============================================================================
# End-to-end scenario
# =============================================================================

class TestStartWorkScenario:

    def test_first_call_commits_everything(self, world):
        incident = world.create_incident()
        result = _start(world, incident)
        updated = result.incident

        assert updated.current_state_id == world.states["in_progress"]
        assert updated.sla_deadline == world.clock.now + timedelta(hours=8)
        assert updated.sla_breached is False
        assert updated.assignee_id == "USR-A"
        assert updated.assignee_ids == ["USR-A", "USR-B", "USR-C"]
        assert result.diagnostics == []

        history = world.incident_repo.list_transition_history(incident.incident_id)
        assert len(history) == 1
        assert history[0].transition_id == world.transitions["start"]
        assert history[0].comment == "started"
        assert result.transition_history_id == history[0].history_id

        comments = world.incident_repo.list_comments(incident.incident_id)
        assert len(comments) == 1
        assert comments[0].is_internal is True
        assert comments[0].content == "started"
        assert comments[0].transition_history_id == history[0].history_id

        status_revisions = world.revision_repo.list_revisions(
            incident.incident_id, action_type=RevisionActionType.STATUS_CHANGED
        )
        assert len(status_revisions) == 1
        assert status_revisions[0].action_description == "Status changed from Open to In Progress"

    def test_second_call_is_invalid(self, world):
        incident = world.create_incident()
        _start(world, incident)

        with pytest.raises(InvalidTransitionError):
            _start(world, incident)

        assert len(world.incident_repo.list_transition_history(incident.incident_id)) == 1


# =============================================================================
# Validation failures leave the incident untouched
# =============================================================================

class TestValidation:

    def test_unknown_incident(self, world):
        with pytest.raises(IncidentNotFoundError):
            world.engine.execute_transition(
                "INC-missing", TransitionRequest(transition_id=world.transitions["start"]), world.agent
            )

    def test_empty_transition_id(self, world):
        incident = world.create_incident()
        with pytest.raises(ValidationError):
            world.engine.execute_transition(incident.incident_id, TransitionRequest(transition_id=" "), world.agent)

    def test_unknown_transition(self, world):
        incident = world.create_incident()
        with pytest.raises(TransitionNotFoundError):
            world.engine.execute_transition(incident.incident_id, TransitionRequest(transition_id="TRN-x"), world.agent)

    def test_transition_from_other_workflow(self, world):
        other = world.workflow_service.create_workflow("Other", "OTHER", world.admin)
        a = world.workflow_service.create_state(other.workflow_id, "A", "a", state_type=StateType.INITIAL)
        b = world.workflow_service.create_state(other.workflow_id, "B", "b")
        foreign = world.workflow_service.create_transition(
            other.workflow_id, TransitionCreate(name="Go", from_state_id=a.state_id, to_state_id=b.state_id)
        )
        incident = world.create_incident()

        with pytest.raises(InvalidTransitionError):
            world.engine.execute_transition(
                incident.incident_id, TransitionRequest(transition_id=foreign.transition_id), world.agent
            )

    def test_inactive_transition(self, world):
        incident = world.create_incident()
        world.workflow_repo.update_transition(world.transitions["start"], {"is_active": False})

        with pytest.raises(InvalidTransitionError):
            _start(world, incident)

    def test_role_gate_forbids_and_changes_nothing(self, world):
        incident = world.create_incident()
        _start(world, incident)
        before = world.incident_repo.get_incident(incident.incident_id)

        with pytest.raises(ForbiddenError):
            _run(world, incident.incident_id, "escalate", actor=world.agent)

        after = world.incident_repo.get_incident(incident.incident_id)
        assert after.current_state_id == before.current_state_id
        assert after.assignee_id == before.assignee_id
        assert after.assignee_ids == before.assignee_ids
        assert after.sla_deadline == before.sla_deadline
        assert after.sla_breached == before.sla_breached
        assert len(world.incident_repo.list_transition_history(incident.incident_id)) == 1

    def test_role_gate_allows_holder(self, world):
        incident = world.create_incident()
        _start(world, incident)
        result = _run(world, incident.incident_id, "escalate", actor=world.admin)
        assert result.incident.current_state_id == world.states["escalated"]

    @pytest.mark.parametrize("comment", ["", "   "])
    def test_mandatory_comment(self, world, comment):
        incident = world.create_incident()

        with pytest.raises(RequirementNotMetError) as exc:
            _start(world, incident, comment=comment)

        assert exc.value.message == "Comment is required for this transition"
        assert world.incident_repo.list_transition_history(incident.incident_id) == []
        assert world.incident_repo.get_incident(incident.incident_id).current_state_id == world.states["open"]

    def test_custom_requirement_message_and_feedback(self, world):
        world.workflow_service.set_transition_requirements(world.transitions["resolve"], [
            TransitionRequirement(
                requirement_type=RequirementType.FEEDBACK,
                error_message="Please rate the service"
            ),
        ])
        incident = world.create_incident()
        _start(world, incident)

        with pytest.raises(RequirementNotMetError) as exc:
            _run(world, incident.incident_id, "resolve", feedback=FeedbackInput(rating=0))
        assert exc.value.message == "Please rate the service"

        result = _run(world, incident.incident_id, "resolve", feedback=FeedbackInput(rating=4, comment="quick"))
        feedback = world.incident_repo.list_feedback(incident.incident_id)
        assert len(feedback) == 1
        assert feedback[0].rating == 4
        assert feedback[0].transition_history_id == result.transition_history_id

    def test_optional_requirement_becomes_warning(self, world):
        world.workflow_service.set_transition_requirements(world.transitions["resolve"], [
            TransitionRequirement(requirement_type=RequirementType.ATTACHMENT, is_mandatory=False),
        ])
        incident = world.create_incident()
        _start(world, incident)

        result = _run(world, incident.incident_id, "resolve")
        assert result.warnings == ["Attachment is required for this transition"]
        assert result.incident.current_state_id == world.states["resolved"]


# =============================================================================
# Terminal states and SLA
# =============================================================================

class TestTerminalAndSla:

    def test_resolved_state_sets_both_timestamps(self, world):
        incident = world.create_incident()
        _start(world, incident)
        world.clock.advance(hours=2)

        result = _run(world, incident.incident_id, "resolve")
        assert result.incident.closed_at == world.clock.now
        assert result.incident.resolved_at == world.clock.now

    def test_closed_state_sets_only_closed_at(self, world):
        incident = world.create_incident()
        _start(world, incident)

        result = _run(world, incident.incident_id, "close")
        assert result.incident.closed_at == world.clock.now
        assert result.incident.resolved_at is None

    def test_sla_state_resets_breach(self, world):
        incident = world.create_incident()
        world.clock.advance(hours=25)
        assert world.incident_repo.mark_sla_breached(world.clock.now) == 1

        result = _start(world, incident)
        assert result.incident.sla_breached is False
        assert result.incident.sla_deadline == world.clock.now + timedelta(hours=8)

    def test_state_without_sla_keeps_deadline_and_flag(self, world):
        incident = world.create_incident()
        started = _start(world, incident).incident
        world.clock.advance(hours=9)
        world.incident_repo.mark_sla_breached(world.clock.now)

        result = _run(world, incident.incident_id, "escalate", actor=world.admin)
        assert result.incident.sla_deadline == started.sla_deadline
        assert result.incident.sla_breached is True


# =============================================================================
# Departments, assignment policies, attachments
# =============================================================================

class TestAssignmentAndDepartment:

    def _add_transition(self, world, **kwargs):
        transition = world.workflow_service.create_transition(world.workflow_id, TransitionCreate(
            name="Route",
            from_state_id=world.states["open"],
            to_state_id=world.states["in_progress"],
            **kwargs
        ))
        return transition.transition_id

    def test_static_assignee(self, world):
        transition_id = self._add_transition(world, assign_user_id="USR-Z")
        incident = world.create_incident()

        result = world.engine.execute_transition(
            incident.incident_id, TransitionRequest(transition_id=transition_id), world.agent
        )
        assert result.incident.assignee_id == "USR-Z"
        assert result.incident.assignee_ids == ["USR-Z"]

    def test_manual_select(self, world):
        transition_id = self._add_transition(world, manual_select_user=True, assignment_role_id=ROLE_AGENT)
        incident = world.create_incident()

        result = world.engine.execute_transition(
            incident.incident_id, TransitionRequest(transition_id=transition_id, user_id="USR-B"), world.agent
        )
        assert result.incident.assignee_ids == ["USR-B"]

    def test_manual_select_without_pick_keeps_assignee(self, world):
        transition_id = self._add_transition(world, manual_select_user=True, assignment_role_id=ROLE_AGENT)
        incident = world.create_incident()

        result = world.engine.execute_transition(
            incident.incident_id, TransitionRequest(transition_id=transition_id), world.agent
        )
        assert result.incident.assignee_id is None
        assert result.incident.assignee_ids == []

    def test_static_department_wins_over_caller(self, world):
        transition_id = self._add_transition(
            world, assign_department_id="DEP-NET", auto_detect_department=True
        )
        incident = world.create_incident()

        result = world.engine.execute_transition(
            incident.incident_id,
            TransitionRequest(transition_id=transition_id, department_id="DEP-HR"),
            world.agent
        )
        assert result.incident.department_id == "DEP-NET"

    def test_auto_detected_department(self, world):
        transition_id = self._add_transition(world, auto_detect_department=True)
        incident = world.create_incident()

        result = world.engine.execute_transition(
            incident.incident_id,
            TransitionRequest(transition_id=transition_id, department_id="DEP-HR"),
            world.agent
        )
        assert result.incident.department_id == "DEP-HR"

    def test_auto_match_uses_new_department(self, make_world):
        users = default_users() + [
            _user("USR-F", "Fay", [ROLE_AGENT], classification_ids=["CLS-HW"],
                  location_ids=["LOC-HQ"], department_id="DEP-FIN"),
        ]
        world = make_world(users=users)
        transition_id = self._add_transition(
            world, assign_department_id="DEP-FIN", auto_match_user=True, assignment_role_id=ROLE_AGENT
        )
        incident = world.create_incident()

        result = world.engine.execute_transition(
            incident.incident_id, TransitionRequest(transition_id=transition_id), world.agent
        )
        assert result.incident.department_id == "DEP-FIN"
        assert result.incident.assignee_ids == ["USR-F"]

    def test_attachments_linked_to_history(self, world):
        incident = world.create_incident()
        attachment = world.incident_service.add_attachment(
            incident.incident_id,
            AttachmentCreate(file_name="log.txt", file_path="incidents/log.txt"),
            world.agent
        )

        result = _run(
            world, incident.incident_id, "start",
            comment="with logs", attachment_ids=[attachment.attachment_id]
        )
        stored = world.incident_repo.get_attachment(attachment.attachment_id)
        assert stored.transition_history_id == result.transition_history_id


# =============================================================================
# Concurrency and best-effort steps
# =============================================================================

class TestCommitSemantics:

    def test_stale_read_raises_concurrency_error(self, world, monkeypatch):
        incident = world.create_incident()
        _start(world, incident)
        repo = world.incident_repo
        original = repo.get_incident_or_raise

        def stale_read(incident_id):
            snapshot = original(incident_id)
            # Another request closes the incident right after our read
            repo.incidents[incident_id].current_state_id = world.states["closed"]
            return snapshot

        monkeypatch.setattr(repo, "get_incident_or_raise", stale_read)

        with pytest.raises(ConcurrencyError):
            _run(world, incident.incident_id, "resolve")

        assert repo.incidents[incident.incident_id].current_state_id == world.states["closed"]
        assert repo.incidents[incident.incident_id].resolved_at is None
        assert len(repo.list_transition_history(incident.incident_id)) == 1

    def test_version_increments_on_commit(self, world):
        incident = world.create_incident()
        result = _start(world, incident)
        assert result.incident.version == incident.version + 1

    def test_failed_side_effect_is_a_diagnostic(self, world):
        incident = world.create_incident()
        world.revision_repo.fail_writes = True

        result = _start(world, incident)

        assert result.incident.current_state_id == world.states["in_progress"]
        assert any(d.startswith("status revision") for d in result.diagnostics)
        assert len(world.incident_repo.list_transition_history(incident.incident_id)) == 1


# =============================================================================
# Available transitions
# =============================================================================

class TestAvailableTransitions:

    def test_flags_by_role(self, world):
        incident = world.create_incident()
        _start(world, incident)

        available = {
            a.transition.code: a
            for a in world.engine.get_available_transitions(incident.incident_id, world.agent)
        }
        assert set(available) == {"resolve", "close", "escalate"}
        assert available["resolve"].can_execute is True
        assert available["escalate"].can_execute is False
        assert available["escalate"].reason == "Insufficient permissions"

    def test_inactive_transition_listed_as_not_executable(self, world):
        incident = world.create_incident()
        world.workflow_repo.update_transition(world.transitions["start"], {"is_active": False})

        available = world.engine.get_available_transitions(incident.incident_id, world.admin)
        assert len(available) == 1
        assert available[0].can_execute is False
        assert available[0].reason == "Transition is inactive"
        assert available[0].requirements[0].requirement_type == RequirementType.COMMENT
