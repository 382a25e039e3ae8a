"""API Dependencies - Common dependencies for routes"""
from typing import List, Optional
from fastapi import Depends, Header, HTTPException, Request, status

from ..domain.models import ActorContext
from ..engine.engine import WorkflowEngine
from ..services.incident_service import IncidentService
from ..services.workflow_service import WorkflowService
from ..utils.logger import set_correlation_id
from ..utils.idgen import generate_correlation_id


async def get_correlation_id_dep(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """
    Get or generate correlation ID for request tracing

    If client provides X-Correlation-Id, use it.
    Otherwise generate a new one.
    """
    correlation_id = x_correlation_id or generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


def _split_roles(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return list(dict.fromkeys(r.strip() for r in raw.split(",") if r.strip()))


async def get_current_actor_dep(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_roles: Optional[str] = Header(None, alias="X-User-Roles"),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
    x_user_name: Optional[str] = Header(None, alias="X-User-Name")
) -> ActorContext:
    """
    Build the acting user from trusted gateway headers

    Authentication happens upstream; the gateway forwards the user id and a
    comma-separated role id list.

    Raises:
        HTTPException: 401 if the user header is missing
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "AUTHENTICATION_ERROR", "message": "X-User-Id header is missing"}}
        )
    return ActorContext(
        user_id=x_user_id,
        role_ids=_split_roles(x_user_roles),
        email=x_user_email or None,
        display_name=x_user_name or None
    )


def get_engine_dep(request: Request) -> WorkflowEngine:
    """The engine is built once by the application lifespan"""
    return request.app.state.engine


def get_incident_service_dep(engine: WorkflowEngine = Depends(get_engine_dep)) -> IncidentService:
    return IncidentService(engine=engine)


def get_workflow_service_dep(engine: WorkflowEngine = Depends(get_engine_dep)) -> WorkflowService:
    return WorkflowService(repo=engine.workflow_repo)
