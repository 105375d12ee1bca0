"""Confirmation of AI-proposed actions."""

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from ledgerline_api.db.session import Database, get_database, tenant_scope
from ledgerline_api.errors import ValidationError
from ledgerline_api.proposals.service import ProposalService

router = APIRouter(prefix="/actions", tags=["actions"])


class ConfirmRequest(BaseModel):
    """User confirmation of a proposal."""

    proposal_id: Optional[str] = None
    user_id: Optional[str] = None
    tenant_id: Optional[str] = None


@router.post("/confirm", status_code=status.HTTP_200_OK)
def confirm(
    request_data: ConfirmRequest,
    database: Database = Depends(get_database),
):
    """Execute a proposal after explicit user confirmation."""
    if not request_data.proposal_id or not request_data.user_id or not request_data.tenant_id:
        raise ValidationError("Missing required fields: proposal_id, user_id, tenant_id")

    with tenant_scope(database, request_data.tenant_id) as db:
        result = ProposalService(db).confirm(
            request_data.proposal_id, request_data.user_id, request_data.tenant_id
        )

    return {"success": True, "action_type": result["action_type"], "effect": result["effect"]}
