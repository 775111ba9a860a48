"""
Audit chain endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .dependencies import get_service
from ..service import GovernanceService


router = APIRouter()


@router.get("/partitions")
async def list_partitions(service: GovernanceService = Depends(get_service)):
    """List audit partitions that have at least one event"""
    return {"partitions": service.list_partitions()}


@router.get("/verify")
async def verify_audit_chain(
    partition: Optional[str] = None,
    service: GovernanceService = Depends(get_service)
):
    """Verify the hash chain of one partition"""
    return service.verify_audit_chain(partition)
