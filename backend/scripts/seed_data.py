"""
Seed Data Script - Creates the sample incident and request workflows
Run: python -m scripts.seed_data
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from incidentflow.repositories.mongo_client import create_indexes
from incidentflow.repositories.user_repo import UserRepository
from incidentflow.services.workflow_service import WorkflowService
from incidentflow.domain.models import (
    ActorContext, User, TransitionCreate, TransitionRequirement, TransitionAction
)
from incidentflow.domain.enums import RecordType, StateType, RequirementType, ActionType

SEED_ACTOR = ActorContext(user_id="USR-SYSTEM", display_name="Seed Script")

ROLE_SERVICE_DESK = "ROLE-SERVICE-DESK"
ROLE_MANAGER = "ROLE-MANAGER"

SAMPLE_USERS = [
    User(user_id="USR-0001", username="amina", email="amina@example.com", first_name="Amina", last_name="Okafor",
         role_ids=[ROLE_MANAGER], role_codes=["manager"], department_id="DEP-IT"),
    User(user_id="USR-0002", username="jonas", email="jonas@example.com", first_name="Jonas", last_name="Berg",
         role_ids=[ROLE_SERVICE_DESK], role_codes=["service_desk"], department_id="DEP-IT",
         classification_ids=["CLS-HARDWARE", "CLS-NETWORK"], location_ids=["LOC-HQ"]),
    User(user_id="USR-0003", username="priya", email="priya@example.com", first_name="Priya", last_name="Nair",
         role_ids=[ROLE_SERVICE_DESK], role_codes=["service_desk"], department_id="DEP-IT",
         classification_ids=["CLS-HARDWARE"], location_ids=["LOC-HQ", "LOC-PLANT"]),
]


def seed_users(repo: UserRepository) -> None:
    for user in SAMPLE_USERS:
        if repo.get_user(user.user_id):
            continue
        repo.create_user(user)
        print(f"Created user: {user.display_name}")


def create_incident_workflow(service: WorkflowService) -> None:
    """
    Open --triage--> In Progress --resolve--> Resolved --close--> Closed
    In Progress --escalate--> Escalated (managers only)
    """
    workflow = service.create_workflow(
        "IT Incident", "IT_INCIDENT", SEED_ACTOR,
        description="Standard IT incident lifecycle",
        required_fields=["classification_id", "location_id"],
        is_default=True
    )
    states = {}
    for code, name, state_type, sla_hours, order in (
        ("open", "Open", StateType.INITIAL, 4, 1),
        ("in_progress", "In Progress", StateType.NORMAL, 24, 2),
        ("escalated", "Escalated", StateType.NORMAL, 8, 3),
        ("resolved", "Resolved", StateType.NORMAL, 72, 4),
        ("closed", "Closed", StateType.TERMINAL, None, 5),
    ):
        states[code] = service.create_state(
            workflow.workflow_id, name, code, state_type=state_type, sla_hours=sla_hours, sort_order=order
        ).state_id

    notify_assignee = TransitionAction(
        action_type=ActionType.NOTIFICATION,
        name="Notify assignee",
        config={
            "recipients": ["assignee"],
            "title": "{{incident_number}} assigned to you",
            "message": "{{incident_title}} moved to {{to_state}} by {{performed_by}}",
        }
    )
    transitions = [
        TransitionCreate(
            name="Triage", code="triage",
            from_state_id=states["open"], to_state_id=states["in_progress"],
            allowed_role_ids=[ROLE_SERVICE_DESK, ROLE_MANAGER],
            assignment_role_id=ROLE_SERVICE_DESK, auto_match_user=True,
            auto_detect_department=True,
            actions=[notify_assignee]
        ),
        TransitionCreate(
            name="Escalate", code="escalate",
            from_state_id=states["in_progress"], to_state_id=states["escalated"],
            allowed_role_ids=[ROLE_MANAGER],
            requirements=[TransitionRequirement(
                requirement_type=RequirementType.COMMENT,
                error_message="Explain why the incident is escalated"
            )],
            actions=[TransitionAction(
                action_type=ActionType.EMAIL,
                name="Email managers",
                config={
                    "recipients": ["role:manager"],
                    "subject": "[{{incident_number}}] escalated",
                    "body": "{{incident_title}} was escalated by {{performed_by}}",
                }
            )]
        ),
        TransitionCreate(
            name="De-escalate", code="deescalate",
            from_state_id=states["escalated"], to_state_id=states["in_progress"],
            allowed_role_ids=[ROLE_MANAGER]
        ),
        TransitionCreate(
            name="Resolve", code="resolve",
            from_state_id=states["in_progress"], to_state_id=states["resolved"],
            requirements=[TransitionRequirement(requirement_type=RequirementType.COMMENT)]
        ),
        TransitionCreate(
            name="Close", code="close",
            from_state_id=states["resolved"], to_state_id=states["closed"],
            requirements=[TransitionRequirement(requirement_type=RequirementType.FEEDBACK, is_mandatory=False)]
        ),
    ]
    for transition in transitions:
        service.create_transition(workflow.workflow_id, transition)

    print(f"Created workflow: {workflow.code} ({workflow.workflow_id})")


def create_request_workflow(service: WorkflowService) -> None:
    workflow = service.create_workflow(
        "Service Request", "SERVICE_REQUEST", SEED_ACTOR,
        record_type=RecordType.REQUEST,
        description="Requests raised directly or converted from incidents",
        is_default=True
    )
    submitted = service.create_state(
        workflow.workflow_id, "Submitted", "submitted", state_type=StateType.INITIAL, sla_hours=48
    )
    fulfilled = service.create_state(
        workflow.workflow_id, "Fulfilled", "fulfilled", state_type=StateType.TERMINAL
    )
    service.create_transition(workflow.workflow_id, TransitionCreate(
        name="Fulfil", code="fulfil",
        from_state_id=submitted.state_id, to_state_id=fulfilled.state_id,
        allowed_role_ids=[ROLE_SERVICE_DESK]
    ))
    print(f"Created workflow: {workflow.code} ({workflow.workflow_id})")


def main():
    print("=== Seeding database ===")
    print("-" * 40)

    create_indexes()
    seed_users(UserRepository())

    service = WorkflowService()
    if service.repo.get_workflow_by_code("IT_INCIDENT"):
        print("Workflows already seeded. Skipping.")
    else:
        create_incident_workflow(service)
        create_request_workflow(service)

    print("-" * 40)
    print("Done!")


if __name__ == "__main__":
    main()
