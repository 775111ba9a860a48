"""
Workflow definition and template endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from .dependencies import get_actor, get_service
from .schemas import CreateDefinitionRequest, CreateFromTemplateRequest
from ..collaborators import Actor
from ..service import GovernanceService


router = APIRouter()
templates_router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_definition(
    request: CreateDefinitionRequest,
    actor: Actor = Depends(get_actor),
    service: GovernanceService = Depends(get_service)
):
    """Validate and publish a workflow definition"""
    definition = service.create_definition(request.to_definition_data(), created_by=actor.id)
    return {"definition_id": definition.id, "message": "Workflow definition created successfully"}


@router.get("")
async def list_definitions(
    category: Optional[str] = None,
    is_active: Optional[bool] = None,
    service: GovernanceService = Depends(get_service)
):
    """List workflow definitions in publication order"""
    definitions = service.list_definitions(category=category, is_active=is_active)
    return {"definitions": [d.to_dict() for d in definitions]}


@router.get("/{definition_id}")
async def get_definition(
    definition_id: str,
    service: GovernanceService = Depends(get_service)
):
    """Get workflow definition by ID"""
    return service.get_definition(definition_id).to_dict()


@router.post("/{definition_id}/activate")
async def activate_definition(
    definition_id: str,
    actor: Actor = Depends(get_actor),
    service: GovernanceService = Depends(get_service)
):
    definition = service.activate_definition(definition_id)
    return {"definition_id": definition.id, "is_active": definition.is_active}


@router.post("/{definition_id}/deactivate")
async def deactivate_definition(
    definition_id: str,
    actor: Actor = Depends(get_actor),
    service: GovernanceService = Depends(get_service)
):
    definition = service.deactivate_definition(definition_id)
    return {"definition_id": definition.id, "is_active": definition.is_active}


@templates_router.get("")
async def list_templates(
    category: Optional[str] = None,
    service: GovernanceService = Depends(get_service)
):
    """List pre-built workflow templates"""
    return {"templates": [t.to_dict() for t in service.list_templates(category)]}


@templates_router.get("/{template_id}")
async def get_template(
    template_id: str,
    service: GovernanceService = Depends(get_service)
):
    template = service.get_template(template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return template.to_dict()


@templates_router.post("/instantiate", status_code=status.HTTP_201_CREATED)
async def create_from_template(
    request: CreateFromTemplateRequest,
    actor: Actor = Depends(get_actor),
    service: GovernanceService = Depends(get_service)
):
    """Publish a new workflow definition cloned from a template"""
    definition = service.create_from_template(
        request.template_id,
        definition_id=request.definition_id,
        created_by=actor.id,
        overrides=request.overrides,
    )
    return {"definition_id": definition.id, "message": "Workflow definition created from template"}
