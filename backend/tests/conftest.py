"""
Pytest Configuration and Fixtures

Every fixture runs against the in-memory repositories in tests/fakes.py;
no MongoDB instance is needed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from incidentflow.domain.models import (
    ActorContext, User, TransitionCreate, TransitionRequirement, IncidentCreate, Incident
)
from incidentflow.domain.enums import RequirementType, StateType
from incidentflow.engine.engine import WorkflowEngine
from incidentflow.engine.action_executor import ActionExecutor
from incidentflow.engine.revision_writer import RevisionWriter
from incidentflow.services.notification_service import NotificationService
from incidentflow.services.workflow_service import WorkflowService
from incidentflow.services.incident_service import IncidentService

from .fakes import (
    FakeWorkflowRepository, FakeIncidentRepository, FakeUserRepository,
    FakeRevisionRepository, FakeNotificationRepository
)


ROLE_AGENT = "ROLE-AGENT"
ROLE_MANAGER = "ROLE-MANAGER"


class FixedClock:
    """Manually advanced UTC clock"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class WebhookRecorder:
    """httpx MockTransport handler that records requests and answers with a fixed status"""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.error: Optional[Exception] = None
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json={"ok": self.status_code < 400})

    def client_factory(self) -> Callable[[], httpx.Client]:
        return lambda: httpx.Client(transport=httpx.MockTransport(self))


@dataclass
class World:
    """A fully wired engine over fakes plus a standard workflow"""
    clock: FixedClock
    workflow_repo: FakeWorkflowRepository
    incident_repo: FakeIncidentRepository
    user_repo: FakeUserRepository
    revision_repo: FakeRevisionRepository
    notification_repo: FakeNotificationRepository
    webhook: WebhookRecorder
    engine: WorkflowEngine
    workflow_service: WorkflowService
    incident_service: IncidentService
    admin: ActorContext
    agent: ActorContext
    states: Dict[str, str] = field(default_factory=dict)
    transitions: Dict[str, str] = field(default_factory=dict)
    workflow_id: str = ""

    def create_incident(self, **overrides) -> Incident:
        data = {
            "title": "Printer on fire",
            "description": "Third floor printer",
            "classification_id": "CLS-HW",
            "location_id": "LOC-HQ",
            "department_id": "DEP-IT",
            "workflow_id": self.workflow_id,
        }
        data.update(overrides)
        return self.engine.create_incident(IncidentCreate(**data), self.admin)


def _user(user_id: str, first: str, roles: List[str], **kwargs) -> User:
    return User(
        user_id=user_id,
        username=user_id.lower(),
        email=f"{user_id.lower()}@example.com",
        first_name=first,
        last_name="Tester",
        role_ids=roles,
        **kwargs
    )


def default_users() -> List[User]:
    full = dict(classification_ids=["CLS-HW"], location_ids=["LOC-HQ"], department_id="DEP-IT")
    return [
        _user("USR-ADMIN", "Ada", [ROLE_MANAGER], role_codes=["manager"]),
        _user("USR-C", "Cleo", [ROLE_AGENT], role_codes=["agent"], **full),
        _user("USR-A", "Abe", [ROLE_AGENT], role_codes=["agent"], **full),
        _user("USR-B", "Bea", [ROLE_AGENT], role_codes=["agent"], **full),
        # Holds the role but matches nothing else
        _user("USR-Z", "Zed", [ROLE_AGENT], role_codes=["agent"], department_id="DEP-FIN"),
        _user("USR-OFF", "Otto", [ROLE_AGENT], is_active=False, **full),
    ]


def build_world(users: Optional[List[User]] = None, webhook_status: int = 200) -> World:
    clock = FixedClock()
    workflow_repo = FakeWorkflowRepository()
    incident_repo = FakeIncidentRepository(workflow_repo)
    user_repo = FakeUserRepository(default_users() if users is None else users)
    revision_repo = FakeRevisionRepository()
    notification_repo = FakeNotificationRepository()
    webhook = WebhookRecorder(webhook_status)

    executor = ActionExecutor(
        incident_repo=incident_repo,
        user_repo=user_repo,
        workflow_repo=workflow_repo,
        notification_service=NotificationService(repo=notification_repo),
        revision_writer=RevisionWriter(revision_repo, clock=clock),
        http_client_factory=webhook.client_factory(),
        max_workers=2
    )
    engine = WorkflowEngine(
        incident_repo=incident_repo,
        workflow_repo=workflow_repo,
        user_repo=user_repo,
        revision_repo=revision_repo,
        action_executor=executor,
        clock=clock
    )

    admin = ActorContext(user_id="USR-ADMIN", display_name="Ada Tester", role_ids=[ROLE_MANAGER])
    agent = ActorContext(user_id="USR-A", role_ids=[ROLE_AGENT])
    world = World(
        clock=clock,
        workflow_repo=workflow_repo,
        incident_repo=incident_repo,
        user_repo=user_repo,
        revision_repo=revision_repo,
        notification_repo=notification_repo,
        webhook=webhook,
        engine=engine,
        workflow_service=WorkflowService(repo=workflow_repo),
        incident_service=IncidentService(engine=engine),
        admin=admin,
        agent=agent
    )
    _seed_standard_workflow(world)
    return world


def _seed_standard_workflow(world: World) -> None:
    """
    Open (initial, 24h) --start--> In Progress (normal, 8h)
    In Progress --resolve--> Resolved (terminal)
    In Progress --close--> Closed (terminal)
    In Progress --escalate--> Escalated (normal, no SLA), managers only
    """
    service = world.workflow_service
    workflow = service.create_workflow("IT Incidents", "IT_INC", world.admin, is_default=True)
    world.workflow_id = workflow.workflow_id

    for code, name, state_type, sla in (
        ("open", "Open", StateType.INITIAL, 24),
        ("in_progress", "In Progress", StateType.NORMAL, 8),
        ("escalated", "Escalated", StateType.NORMAL, None),
        ("resolved", "Resolved", StateType.TERMINAL, None),
        ("closed", "Closed", StateType.TERMINAL, None),
    ):
        state = service.create_state(workflow.workflow_id, name, code, state_type=state_type, sla_hours=sla)
        world.states[code] = state.state_id

    def add(code: str, name: str, source: str, target: str, **kwargs) -> None:
        transition = service.create_transition(workflow.workflow_id, TransitionCreate(
            name=name,
            code=code,
            from_state_id=world.states[source],
            to_state_id=world.states[target],
            **kwargs
        ))
        world.transitions[code] = transition.transition_id

    add(
        "start", "Start Work", "open", "in_progress",
        requirements=[TransitionRequirement(requirement_type=RequirementType.COMMENT)],
        assignment_role_id=ROLE_AGENT,
        auto_match_user=True
    )
    add("resolve", "Resolve", "in_progress", "resolved")
    add("close", "Close", "in_progress", "closed")
    add("escalate", "Escalate", "in_progress", "escalated", allowed_role_ids=[ROLE_MANAGER])


@pytest.fixture
def world():
    w = build_world()
    yield w
    w.engine.action_executor.shutdown(wait=True)


@pytest.fixture
def make_world():
    built: List[World] = []

    def factory(**kwargs) -> World:
        w = build_world(**kwargs)
        built.append(w)
        return w

    yield factory
    for w in built:
        w.engine.action_executor.shutdown(wait=True)
