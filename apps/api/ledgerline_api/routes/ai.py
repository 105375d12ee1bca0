"""AI assistant routes."""

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from ledgerline_api.ai.assistant import AssistantService
from ledgerline_api.ai.llm import CompletionClient, get_completion_client
from ledgerline_api.db.session import Database, get_database

router = APIRouter(prefix="/ai", tags=["ai"])


class ChatRequest(BaseModel):
    """Question for the assistant."""

    tenant_id: Optional[str] = None
    user_id: Optional[str] = None
    question: Optional[str] = None


@router.post("/chat", status_code=status.HTTP_200_OK)
def chat(
    request_data: ChatRequest,
    database: Database = Depends(get_database),
    client: Optional[CompletionClient] = Depends(get_completion_client),
):
    """Answer from the tenant's transactions with verified citations."""
    assistant = AssistantService(database, client)
    return assistant.answer(request_data.tenant_id, request_data.user_id, request_data.question)
