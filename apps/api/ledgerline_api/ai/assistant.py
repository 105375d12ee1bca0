"""Read-only finance assistant with verified citations."""

import json
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ledgerline_api.ai.citations import CitationVerifier, apply_fail_closed, extract_citations
from ledgerline_api.ai.llm import CompletionClient, ToolCall
from ledgerline_api.audit.service import AuditRecorder
from ledgerline_api.db.session import Database, tenant_scope
from ledgerline_api.errors import UpstreamUnavailable, ValidationError
from ledgerline_api.models import AIInteraction
from ledgerline_api.proposals.payloads import TOOL_ACTIONS
from ledgerline_api.proposals.service import ProposalService
from ledgerline_api.settings import get_settings
from ledgerline_api.transactions.store import TransactionStore

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a finance assistant. Rules:
1. Answer ONLY from the transaction data provided. Never invent numbers or transactions.
2. For every numeric claim, cite the exact transaction IDs (the "id" field).
3. If the data doesn't contain the answer, say "I cannot answer from the available data."
4. You may propose actions (e.g. recategorize a transaction) via the propose_recategorize tool, but you must NOT claim the action is done; only that you propose it.
5. Format citations as [tx:<id>] for each transaction ID."""

TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "propose_recategorize",
            "description": (
                "Propose recategorizing a transaction to a different category. "
                "Requires transaction_id and category_name."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "transaction_id": {"type": "string", "description": "ID of the transaction"},
                    "category_name": {"type": "string", "description": "Target category name"},
                    "reason": {"type": "string", "description": "Brief reason"},
                },
                "required": ["transaction_id", "category_name"],
            },
        },
    },
]

UNAVAILABLE_FALLBACK = (
    "[assistant unavailable] No answer was generated because the language model "
    "service could not be reached. Your transaction data is unchanged."
)


class AssistantService:
    """Answers questions strictly from the tenant's current transactions.

    The LLM call happens between two units of work so no connection is held
    while waiting on it.
    """

    def __init__(self, database: Database, client: Optional[CompletionClient]):
        """Initialize assistant."""
        self.database = database
        self.client = client
        self.settings = get_settings()

    def answer(self, tenant_id: str, user_id: str, question: str) -> dict:
        """Answer ``question`` and optionally record an action proposal."""
        if not tenant_id or not user_id or not question:
            raise ValidationError("Missing required fields: tenant_id, user_id, question")
        if self.client is None:
            raise UpstreamUnavailable("LLM service is not configured", fallback=UNAVAILABLE_FALLBACK)

        with tenant_scope(self.database, tenant_id) as db:
            store = TransactionStore(db)
            transactions = [
                tx.to_dict() for tx in store.current_view(tenant_id, limit=self.settings.assistant_context_limit)
            ]
            categories = [category.name for category in store.list_categories(tenant_id)]

        try:
            completion = self.client.complete(
                SYSTEM_PROMPT, self._build_user_content(transactions, categories, question), TOOLS
            )
        except UpstreamUnavailable as e:
            e.fallback = e.fallback or UNAVAILABLE_FALLBACK
            raise

        citations = extract_citations(completion.text)

        with tenant_scope(self.database, tenant_id) as db:
            check = CitationVerifier(db).verify(tenant_id, citations)
            response_text, verified_citations = apply_fail_closed(completion.text, citations, check)
            if not check["all_valid"]:
                logger.warning(
                    "Answer withheld: unverifiable citations",
                    extra={
                        "tenant_id": tenant_id,
                        "unverified": sorted(set(citations) - check["verified_ids"]),
                    },
                )

            interaction = AIInteraction(
                tenant_id=tenant_id,
                user_id=user_id,
                question=question,
                response=response_text,
                citations=verified_citations,
            )
            db.add(interaction)
            db.flush()

            AuditRecorder(db).record(
                tenant_id=tenant_id,
                actor_type="ai",
                actor_id=None,
                event_type="chat_answered",
                entity_type="ai_interactions",
                entity_id=interaction.id,
                diff={
                    "question": question[:200],
                    "citation_count": len(citations),
                    "citations_verified": check["all_valid"],
                },
            )

            action_proposal = self._propose(db, tenant_id, user_id, interaction.id, completion.tool_call)
            interaction_id = interaction.id

        return {
            "response": response_text,
            "citations": verified_citations,
            "action_proposal": action_proposal,
            "interaction_id": interaction_id,
        }

    def _build_user_content(self, transactions: list[dict], categories: list[str], question: str) -> str:
        context = [
            {
                "id": tx["id"],
                "provider_tx_id": tx["provider_tx_id"],
                "amount": tx["amount"],
                "currency": tx["currency"],
                "description": tx["description"],
                "occurred_at": tx["occurred_at"],
                "status": tx["status"],
            }
            for tx in transactions
        ]
        return (
            f"Transaction data:\n{json.dumps(context, indent=2)}\n\n"
            f"Categories: {', '.join(categories)}\n\n"
            f"Question: {question}"
        )

    def _propose(
        self,
        db: Session,
        tenant_id: str,
        user_id: str,
        interaction_id: str,
        tool_call: Optional[ToolCall],
    ) -> Optional[dict]:
        if tool_call is None:
            return None

        action_type = TOOL_ACTIONS.get(tool_call.name)
        if action_type is None or tool_call.arguments is None:
            logger.warning(
                "Ignoring unsupported tool call",
                extra={"tenant_id": tenant_id, "tool": tool_call.name},
            )
            return None

        try:
            proposal = ProposalService(db).propose(
                tenant_id, user_id, interaction_id, action_type, tool_call.arguments
            )
        except ValidationError as e:
            logger.warning(
                f"Rejected action proposal: {e.message}",
                extra={"tenant_id": tenant_id, "tool": tool_call.name},
            )
            return None

        return {
            "proposal_id": proposal.id,
            "action_type": proposal.action_type,
            "payload": proposal.payload,
        }
