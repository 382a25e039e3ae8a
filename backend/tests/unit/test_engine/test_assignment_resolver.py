"""Assignment policies, auto-match criteria and fallback"""
from incidentflow.domain.enums import AssignmentMode
from incidentflow.domain.models import Incident, WorkflowTransition
from incidentflow.engine.assignment_resolver import AssignmentResolver

from ...conftest import ROLE_AGENT, default_users, _user
from ...fakes import FakeUserRepository


def _incident(**kwargs) -> Incident:
    data = dict(
        incident_id="INC-1",
        incident_number="INC-2026-000001",
        title="Disk full",
        workflow_id="WF-1",
        current_state_id="ST-open",
        classification_id="CLS-HW",
        location_id="LOC-HQ",
        department_id="DEP-IT",
    )
    data.update(kwargs)
    return Incident(**data)


def _transition(**kwargs) -> WorkflowTransition:
    return WorkflowTransition(
        transition_id="TRN-1",
        workflow_id="WF-1",
        name="Assign",
        from_state_id="ST-open",
        to_state_id="ST-wip",
        **kwargs
    )


AUTO = dict(auto_match_user=True, assignment_role_id=ROLE_AGENT)


def test_three_full_matches_all_assigned_with_first_as_primary():
    resolver = AssignmentResolver(FakeUserRepository(default_users()))

    result = resolver.resolve(_transition(**AUTO), _incident())

    assert result.mode == AssignmentMode.AUTO_MATCH
    assert result.assignee_ids == ["USR-A", "USR-B", "USR-C"]
    assert result.primary_assignee_id == "USR-A"


def test_falls_back_to_role_only():
    users = [
        _user("USR-P", "Pia", [ROLE_AGENT], department_id="DEP-OPS"),
        _user("USR-Q", "Quin", [ROLE_AGENT], department_id="DEP-OPS"),
        _user("USR-R", "Rex", ["ROLE-OTHER"], classification_ids=["CLS-HW"],
              location_ids=["LOC-HQ"], department_id="DEP-IT"),
    ]
    resolver = AssignmentResolver(FakeUserRepository(users))

    result = resolver.resolve(_transition(**AUTO), _incident())

    assert result.assignee_ids == ["USR-P", "USR-Q"]
    assert result.primary_assignee_id == "USR-P"


def test_current_assignee_is_excluded():
    resolver = AssignmentResolver(FakeUserRepository(default_users()))

    result = resolver.resolve(_transition(**AUTO), _incident(assignee_id="USR-A", assignee_ids=["USR-A"]))

    assert result.assignee_ids == ["USR-B", "USR-C"]
    assert result.primary_assignee_id == "USR-B"


def test_department_list_counts_as_match():
    users = [
        _user("USR-D", "Dee", [ROLE_AGENT], classification_ids=["CLS-HW"], location_ids=["LOC-HQ"],
              department_id="DEP-HR", department_ids=["DEP-IT"]),
    ]
    resolver = AssignmentResolver(FakeUserRepository(users))

    result = resolver.resolve(_transition(**AUTO), _incident())

    assert result.assignee_ids == ["USR-D"]


def test_no_users_means_no_change():
    resolver = AssignmentResolver(FakeUserRepository([]))

    result = resolver.resolve(_transition(**AUTO), _incident())

    assert result.changes_assignment is False
    assert result.assignee_ids == []


def test_lookup_failure_degrades_to_no_change():
    repo = FakeUserRepository(default_users())
    repo.fail_lookups = True

    result = AssignmentResolver(repo).resolve(_transition(**AUTO), _incident())

    assert result.mode == AssignmentMode.AUTO_MATCH
    assert result.changes_assignment is False


def test_auto_match_without_role_is_no_policy():
    resolver = AssignmentResolver(FakeUserRepository(default_users()))

    result = resolver.resolve(_transition(auto_match_user=True), _incident())

    assert result.mode == AssignmentMode.NONE
    assert result.changes_assignment is False


def test_static_beats_other_policies():
    resolver = AssignmentResolver(FakeUserRepository(default_users()))

    result = resolver.resolve(_transition(assign_user_id="USR-Z", manual_select_user=True, **AUTO), _incident(), "USR-B")

    assert result.mode == AssignmentMode.STATIC
    assert result.assignee_ids == ["USR-Z"]


def test_manual_select_beats_auto_match():
    resolver = AssignmentResolver(FakeUserRepository(default_users()))

    result = resolver.resolve(_transition(manual_select_user=True, **AUTO), _incident(), "USR-C")

    assert result.mode == AssignmentMode.MANUAL_SELECT
    assert result.primary_assignee_id == "USR-C"
