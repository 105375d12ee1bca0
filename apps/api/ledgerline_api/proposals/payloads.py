"""Typed payloads for AI action proposals.

The set of action types is closed. Supporting a new one means adding a
payload model here and an explicit branch in ``ProposalService``.
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ledgerline_api.errors import ValidationError

RECATEGORIZE = "recategorize"


class RecategorizePayload(BaseModel):
    """Move a transaction to a different category."""

    model_config = ConfigDict(extra="ignore")

    action_type: Literal["recategorize"] = RECATEGORIZE
    transaction_id: str = Field(..., min_length=1)
    category_name: str = Field(..., min_length=1)
    reason: Optional[str] = None


ProposalPayload = Union[RecategorizePayload]

# Tool name exposed to the LLM -> action type it proposes
TOOL_ACTIONS = {
    "propose_recategorize": RECATEGORIZE,
}


def parse_payload(action_type: str, arguments: Optional[dict]) -> ProposalPayload:
    """Validate raw arguments into the payload for ``action_type``."""
    if not isinstance(arguments, dict):
        raise ValidationError(f"Arguments for {action_type} must be an object")

    try:
        if action_type == RECATEGORIZE:
            return RecategorizePayload.model_validate({**arguments, "action_type": RECATEGORIZE})
    except PydanticValidationError as e:
        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors())
        raise ValidationError(f"Invalid {action_type} arguments: {fields}") from e

    raise ValidationError(f"Unsupported action type: {action_type}")
