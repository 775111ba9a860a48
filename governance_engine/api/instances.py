"""
Workflow instance endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from .dependencies import get_actor, get_service
from .schemas import (
    CastVoteRequest,
    ExecuteTransitionRequest,
    StartWorkflowRequest,
    UpdateFieldsRequest
)
from ..collaborators import Actor
from ..service import GovernanceService


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def start_workflow(
    request: StartWorkflowRequest,
    actor: Actor = Depends(get_actor),
    service: GovernanceService = Depends(get_service)
):
    """Start a workflow instance"""
    instance = service.start_workflow(
        request.definition_id,
        actor,
        initial_field_values=request.field_values,
        document_ref=request.document_ref,
        assigned_committee=request.assigned_committee,
        correlation_id=request.correlation_id,
    )
    return instance.to_dict()


@router.get("")
async def list_instances(
    definition_id: Optional[str] = None,
    status: Optional[str] = None,
    current_state: Optional[str] = None,
    committee: Optional[str] = None,
    document_ref: Optional[str] = None,
    service: GovernanceService = Depends(get_service)
):
    """List workflow instances"""
    instances = service.list_instances(
        definition_id=definition_id,
        status=status,
        current_state=current_state,
        committee=committee,
        document_ref=document_ref,
    )
    return {"instances": [i.to_dict() for i in instances]}


@router.get("/{instance_id}")
async def get_instance(
    instance_id: str,
    service: GovernanceService = Depends(get_service)
):
    """Get workflow instance by ID"""
    return service.get_instance(instance_id).to_dict()


@router.get("/{instance_id}/transitions")
async def list_available_transitions(
    instance_id: str,
    service: GovernanceService = Depends(get_service)
):
    """Transitions leaving the instance's current state"""
    transitions = service.list_available_transitions(instance_id)
    return {"transitions": [t.to_dict() for t in transitions]}


@router.post("/{instance_id}/transitions/{transition_id}")
async def execute_transition(
    instance_id: str,
    transition_id: str,
    request: ExecuteTransitionRequest,
    actor: Actor = Depends(get_actor),
    service: GovernanceService = Depends(get_service)
):
    """Execute a transition, or open the vote for a vote-gated one"""
    instance = service.execute_transition(
        instance_id,
        transition_id,
        actor,
        comment=request.comment,
        attachments=request.attachments,
        field_updates=request.field_updates,
        correlation_id=request.correlation_id,
        eligible_voters=request.eligible_voters,
    )
    return instance.to_dict()


@router.post("/{instance_id}/transitions/{transition_id}/votes")
async def cast_vote(
    instance_id: str,
    transition_id: str,
    request: CastVoteRequest,
    actor: Actor = Depends(get_actor),
    service: GovernanceService = Depends(get_service)
):
    """Cast a ballot on a vote-gated transition"""
    instance = service.cast_vote(
        instance_id,
        transition_id,
        actor,
        request.vote,
        comment=request.comment,
        correlation_id=request.correlation_id,
    )
    return instance.to_dict()


@router.patch("/{instance_id}/fields")
async def update_field_values(
    instance_id: str,
    request: UpdateFieldsRequest,
    actor: Actor = Depends(get_actor),
    service: GovernanceService = Depends(get_service)
):
    """Update custom field values"""
    instance = service.update_field_values(
        instance_id, request.updates, actor, correlation_id=request.correlation_id
    )
    return instance.to_dict()


@router.get("/{instance_id}/history")
async def get_history(
    instance_id: str,
    service: GovernanceService = Depends(get_service)
):
    """Audit history of an instance, oldest first"""
    events = service.get_history(instance_id)
    return {"events": [e.to_dict() for e in events]}
