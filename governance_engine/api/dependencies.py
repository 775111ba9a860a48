"""
Service and actor dependencies
"""

from typing import List, Optional

from fastapi import Header, HTTPException

from ..collaborators import Actor
from ..service import GovernanceService


_service: Optional[GovernanceService] = None


def get_service() -> GovernanceService:
    """Return the process-wide governance service, creating it on first use"""
    global _service
    if _service is None:
        _service = GovernanceService()
    return _service


def set_service(service: Optional[GovernanceService]) -> None:
    """Replace the process-wide service (used by tests and embedding apps)"""
    global _service
    _service = service


def _split(header: Optional[str]) -> List[str]:
    if not header:
        return []
    return [part.strip() for part in header.split(",") if part.strip()]


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_name: Optional[str] = Header(None),
    x_actor_roles: Optional[str] = Header(None),
    x_actor_committees: Optional[str] = Header(None)
) -> Actor:
    """
    Actor context from request headers

    Authentication happens upstream; this layer trusts the identity headers
    set by the gateway.
    """
    if not x_actor_id:
        raise HTTPException(status_code=401, detail="X-Actor-Id header is required")
    return Actor(
        id=x_actor_id,
        display_name=x_actor_name or x_actor_id,
        roles=_split(x_actor_roles),
        committees=_split(x_actor_committees),
    )
