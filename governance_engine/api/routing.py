"""
Document routing endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import get_actor, get_service
from .schemas import RoutingRequest
from ..collaborators import Actor
from ..service import GovernanceService


router = APIRouter()


@router.post("/suggest")
async def suggest_workflows(
    request: RoutingRequest,
    service: GovernanceService = Depends(get_service)
):
    """Rank workflows whose assignment rules match a document"""
    suggestions = service.suggest_workflows(request.to_context())
    return {"suggestions": [s.to_dict() for s in suggestions]}


@router.post("/route")
async def route_document(
    request: RoutingRequest,
    actor: Actor = Depends(get_actor),
    service: GovernanceService = Depends(get_service)
):
    """Start the best matching workflow for a document"""
    result = service.route_document(request.to_context(), actor,
                                    correlation_id=request.correlation_id)
    return {
        "matched": result.matched,
        "instance": result.instance.to_dict() if result.instance else None,
        "definition_id": result.definition.id if result.definition else None,
        "rule_id": result.rule.id if result.rule else None,
        "reasons": result.reasons,
    }
