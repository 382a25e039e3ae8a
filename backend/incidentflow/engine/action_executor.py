"""
Action Executor - Side effects attached to workflow transitions

Runs a transition's active actions in ascending execution_order (ties keep
declaration order). Each action is independent: a failure is logged and
reported in its ActionOutcome, never raised to the caller and never stops
later actions.

Synchronous actions run inline. Async actions are handed to an owned
thread pool and outlive the request that triggered them; their failures
are logged from the future's done-callback.
"""
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

import httpx

from ..domain.models import (
    ActorContext, Incident, WorkflowTransition, TransitionAction, ActionOutcome,
    NotificationActionConfig, EmailActionConfig, WebhookActionConfig, FieldUpdateActionConfig
)
from ..domain.enums import UPDATABLE_ACTION_FIELDS
from ..domain.errors import ActionFailureError
from ..config.settings import settings
from ..utils.logger import get_logger, get_context_logger, ContextLogger

if TYPE_CHECKING:
    from ..repositories.incident_repo import IncidentRepository
    from ..repositories.user_repo import UserRepository
    from ..repositories.workflow_repo import WorkflowRepository
    from ..services.notification_service import NotificationService
    from .revision_writer import RevisionWriter

logger = get_logger(__name__)


PLACEHOLDER_TOKENS = (
    "incident_number",
    "incident_title",
    "incident_id",
    "priority",
    "severity",
    "transition_name",
    "from_state",
    "to_state",
    "performed_by",
    "assignee",
    "current_state",
)

FIELD_LABELS = {
    "priority": "Priority",
    "severity": "Severity",
    "assignee_id": "Assigned To",
    "department_id": "Department",
}


def render_placeholders(template: str, context: Dict[str, str]) -> str:
    """
    Replace {{token}} occurrences of the known tokens with context values

    Literal string replacement; unknown tokens stay untouched.
    """
    if not template:
        return template
    rendered = template
    for token in PLACEHOLDER_TOKENS:
        if token in context:
            rendered = rendered.replace("{{" + token + "}}", context[token])
    return rendered


def _action_logger(action: TransitionAction, incident_id: str) -> ContextLogger:
    return get_context_logger(
        __name__,
        incident_id=incident_id,
        action_id=action.action_id,
        action_type=action.action_type.value
    )


class ActionExecutor:
    """Dispatch notification / email / webhook / field_update actions"""

    def __init__(
        self,
        incident_repo: "IncidentRepository",
        user_repo: "UserRepository",
        workflow_repo: "WorkflowRepository",
        notification_service: "NotificationService",
        revision_writer: "RevisionWriter",
        http_client_factory: Optional[Callable[[], httpx.Client]] = None,
        max_workers: Optional[int] = None
    ):
        self.incident_repo = incident_repo
        self.user_repo = user_repo
        self.workflow_repo = workflow_repo
        self.notification_service = notification_service
        self.revision_writer = revision_writer
        self._http_client_factory = http_client_factory or self._default_http_client
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers or settings.async_action_workers,
            thread_name_prefix="transition-action"
        )

    @staticmethod
    def _default_http_client() -> httpx.Client:
        return httpx.Client(timeout=settings.webhook_timeout_seconds)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting async actions; optionally wait for in-flight ones"""
        self._pool.shutdown(wait=wait)

    # =========================================================================
    # Dispatch
    # =========================================================================

    def execute_actions(
        self,
        transition: WorkflowTransition,
        incident: Incident,
        performer: ActorContext
    ) -> List[ActionOutcome]:
        """Run every active action of the transition and report per-action outcomes"""
        actions = sorted(
            (a for a in transition.actions if a.is_active),
            key=lambda a: a.execution_order
        )
        if not actions:
            return []

        context = self.build_context(incident, transition, performer)
        outcomes: List[ActionOutcome] = []

        for action in actions:
            outcome = ActionOutcome(
                action_id=action.action_id,
                action_type=action.action_type,
                name=action.name,
                is_async=action.is_async
            )
            if action.is_async:
                try:
                    future = self._pool.submit(self._run_action, action, incident, performer, context)
                    future.add_done_callback(partial(self._on_async_done, action, incident.incident_id))
                except RuntimeError as e:
                    # Pool already shut down
                    outcome.success = False
                    outcome.error = str(e)
                    self._log_failure(action, incident.incident_id, e)
            else:
                try:
                    self._run_action(action, incident, performer, context)
                except Exception as e:
                    outcome.success = False
                    outcome.error = str(e)
                    self._log_failure(action, incident.incident_id, e)
            outcomes.append(outcome)

        return outcomes

    def _run_action(
        self,
        action: TransitionAction,
        incident: Incident,
        performer: ActorContext,
        context: Dict[str, str]
    ) -> None:
        config = action.decode_config()

        if isinstance(config, NotificationActionConfig):
            self._send_notification(config, incident, context)
        elif isinstance(config, EmailActionConfig):
            self._send_email(config, incident, context)
        elif isinstance(config, WebhookActionConfig):
            self._call_webhook(config, context)
        elif isinstance(config, FieldUpdateActionConfig):
            self._apply_field_update(config, incident, performer)

        _action_logger(action, incident.incident_id).info(f"Action executed: {action.name or action.action_type.value}")

    def _on_async_done(self, action: TransitionAction, incident_id: str, future: Future) -> None:
        error = future.exception()
        if error is not None:
            self._log_failure(action, incident_id, error)

    @staticmethod
    def _log_failure(action: TransitionAction, incident_id: str, error: BaseException) -> None:
        _action_logger(action, incident_id).error(f"Action {action.name or action.action_type.value} failed: {error}")

    # =========================================================================
    # Action types
    # =========================================================================

    def _send_notification(self, config: NotificationActionConfig, incident: Incident, context: Dict[str, str]) -> None:
        user_ids = self.resolve_recipient_ids(config.recipients, incident)
        self.notification_service.notify_users(
            user_ids=user_ids,
            title=render_placeholders(config.title, context),
            message=render_placeholders(config.message, context),
            incident_id=incident.incident_id
        )

    def _send_email(self, config: EmailActionConfig, incident: Incident, context: Dict[str, str]) -> None:
        emails = self.resolve_recipient_emails(config.recipients, incident)
        self.notification_service.enqueue_email(
            recipients=emails,
            subject=render_placeholders(config.subject, context),
            body=render_placeholders(config.body, context),
            is_html=config.is_html,
            incident_id=incident.incident_id
        )

    def _call_webhook(self, config: WebhookActionConfig, context: Dict[str, str]) -> None:
        headers = {"Content-Type": "application/json", **config.headers}
        body = render_placeholders(config.body, context)

        try:
            with self._http_client_factory() as client:
                response = client.request(
                    config.method,
                    config.url,
                    content=body.encode("utf-8"),
                    headers=headers
                )
        except httpx.HTTPError as e:
            raise ActionFailureError(
                f"Webhook request failed: {e}",
                details={"url": config.url}
            ) from e

        if response.status_code >= 400:
            raise ActionFailureError(
                f"Webhook returned error status: {response.status_code}",
                details={"url": config.url, "status_code": response.status_code}
            )
        logger.info(f"Webhook executed: {config.method} {config.url} -> {response.status_code}")

    def _apply_field_update(self, config: FieldUpdateActionConfig, incident: Incident, performer: ActorContext) -> None:
        field = config.field
        if field not in UPDATABLE_ACTION_FIELDS:
            raise ActionFailureError(f"Unsupported field for update: {field}", details={"field": field})

        if field in ("priority", "severity"):
            value: Any = self._coerce_level(field, config.value)
        elif config.value is None or str(config.value) in ("", "null"):
            value = None
        else:
            value = str(config.value)

        old_value = getattr(incident, field)
        self.incident_repo.update_fields(incident.incident_id, {field: value})
        self.revision_writer.write_field_change(
            incident.incident_id,
            field,
            FIELD_LABELS[field],
            old_value,
            value,
            performer.user_id
        )

    @staticmethod
    def _coerce_level(field: str, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ActionFailureError(f"{field} must be an integer", details={"value": value})
        level = int(value)
        if not 1 <= level <= 5:
            raise ActionFailureError(f"{field} must be between 1 and 5", details={"value": value})
        return level

    # =========================================================================
    # Recipients & placeholders
    # =========================================================================

    def resolve_recipient_ids(self, recipients: List[str], incident: Incident) -> List[str]:
        """Map assignee / reporter / user:<id> / role:<code> tokens to user IDs"""
        user_ids: List[str] = []

        def add(user_id: Optional[str]) -> None:
            if user_id and user_id not in user_ids:
                user_ids.append(user_id)

        for recipient in recipients:
            if recipient == "assignee":
                add(incident.assignee_id)
            elif recipient == "reporter":
                add(incident.reporter_id)
            elif recipient.startswith("user:"):
                add(recipient[len("user:"):])
            elif recipient.startswith("role:"):
                for user in self.user_repo.find_by_role_code(recipient[len("role:"):]):
                    add(user.user_id)
            else:
                logger.warning(f"Unknown recipient token: {recipient}", extra={"incident_id": incident.incident_id})
        return user_ids

    def resolve_recipient_emails(self, recipients: List[str], incident: Incident) -> List[str]:
        """Same tokens as resolve_recipient_ids plus email:<addr>, mapped to addresses"""
        emails: List[str] = []

        def add(email: Optional[str]) -> None:
            if email and email not in emails:
                emails.append(email)

        def user_email(user_id: Optional[str]) -> Optional[str]:
            if not user_id:
                return None
            user = self.user_repo.get_user(user_id)
            return user.email if user else None

        for recipient in recipients:
            if recipient == "assignee":
                add(user_email(incident.assignee_id))
            elif recipient == "reporter":
                add(user_email(incident.reporter_id) or incident.reporter_email)
            elif recipient.startswith("email:"):
                add(recipient[len("email:"):])
            elif recipient.startswith("user:"):
                add(user_email(recipient[len("user:"):]))
            elif recipient.startswith("role:"):
                for user in self.user_repo.find_by_role_code(recipient[len("role:"):]):
                    add(user.email)
            else:
                logger.warning(f"Unknown recipient token: {recipient}", extra={"incident_id": incident.incident_id})
        return emails

    def build_context(
        self,
        incident: Incident,
        transition: WorkflowTransition,
        performer: ActorContext
    ) -> Dict[str, str]:
        """
        Values for every placeholder token

        Directory and state lookups that fail fall back to the raw id (or
        an empty string) so one unreachable store never skips the actions.
        """
        context = {
            "incident_number": incident.incident_number,
            "incident_title": incident.title,
            "incident_id": incident.incident_id,
            "priority": str(incident.priority),
            "severity": str(incident.severity),
            "transition_name": transition.name,
            "from_state": transition.from_state.name if transition.from_state else "",
            "to_state": transition.to_state.name if transition.to_state else "",
            "performed_by": performer.display_name or self._user_name(performer.user_id, incident.incident_id),
            "assignee": "Unassigned",
            "current_state": "",
        }

        if incident.assignee_id:
            context["assignee"] = self._user_name(incident.assignee_id, incident.incident_id)

        if transition.to_state and transition.to_state.state_id == incident.current_state_id:
            context["current_state"] = transition.to_state.name
        else:
            try:
                state = self.workflow_repo.get_state(incident.current_state_id)
            except Exception as e:
                logger.error(
                    f"State lookup failed for placeholders: {e}",
                    extra={"incident_id": incident.incident_id, "state_id": incident.current_state_id}
                )
                state = None
            context["current_state"] = state.name if state else ""

        return context

    def _user_name(self, user_id: str, incident_id: str) -> str:
        try:
            user = self.user_repo.get_user(user_id)
        except Exception as e:
            logger.error(
                f"User lookup failed for placeholders: {e}",
                extra={"incident_id": incident_id, "user_id": user_id}
            )
            return user_id
        return user.display_name if user else user_id
