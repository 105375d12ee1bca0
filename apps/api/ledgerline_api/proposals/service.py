"""AI action proposal lifecycle: proposed -> executed."""

import logging
from datetime import datetime
from typing import Optional

from ledgerline_api.audit.service import AuditRecorder
from ledgerline_api.errors import Forbidden, InvalidState, NotFound, TenantMismatch, ValidationError
from ledgerline_api.models import ActionProposal
from ledgerline_api.models.ai import PROPOSAL_EXECUTED, PROPOSAL_PROPOSED
from ledgerline_api.proposals.payloads import ProposalPayload, RecategorizePayload, parse_payload
from ledgerline_api.services.base import TenantScopedService
from ledgerline_api.transactions.store import TransactionStore
from ledgerline_api.utils.metrics import proposals

logger = logging.getLogger(__name__)


class ProposalService(TenantScopedService):
    """Gates AI-suggested mutations behind explicit user confirmation."""

    def propose(
        self,
        tenant_id: str,
        user_id: str,
        ai_interaction_id: Optional[str],
        action_type: str,
        arguments: Optional[dict],
    ) -> ActionProposal:
        """Create a proposal in state ``proposed``.

        Unknown action types and malformed arguments are rejected here,
        before anything is written.
        """
        tenant_id = self._enforce_tenant(tenant_id)
        if not user_id:
            raise ValidationError("user_id is required")
        payload = parse_payload(action_type, arguments)
        payload_json = payload.model_dump(exclude={"action_type"}, exclude_none=True)

        proposal = ActionProposal(
            tenant_id=tenant_id,
            user_id=user_id,
            ai_interaction_id=ai_interaction_id,
            action_type=payload.action_type,
            payload=payload_json,
            status=PROPOSAL_PROPOSED,
        )
        self.db.add(proposal)
        self.db.flush()

        AuditRecorder(self.db).record(
            tenant_id=tenant_id,
            actor_type="ai",
            actor_id=None,
            event_type="action_proposed",
            entity_type="ai_action_proposals",
            entity_id=proposal.id,
            diff=payload_json,
        )
        proposals.labels(action_type=payload.action_type, outcome="proposed").inc()
        return proposal

    def confirm(self, proposal_id: str, user_id: str, tenant_id: str) -> dict:
        """Execute a proposal on behalf of its owner. Not re-invocable."""
        if not proposal_id or not user_id or not tenant_id:
            raise ValidationError("Missing required fields: proposal_id, user_id, tenant_id")
        tenant_id = self._enforce_tenant(tenant_id)

        proposal = self.db.query(ActionProposal).filter(ActionProposal.id == proposal_id).first()
        if proposal is None:
            raise NotFound("Proposal not found")
        if proposal.user_id != user_id:
            raise Forbidden("Proposal does not belong to user")
        if proposal.tenant_id != tenant_id:
            raise TenantMismatch("Tenant mismatch")
        if proposal.status != PROPOSAL_PROPOSED:
            raise InvalidState(f"Proposal already {proposal.status}", current_state=proposal.status)

        payload = parse_payload(proposal.action_type, proposal.payload)

        # Claim first; the mutation and audit rows below roll back with it on failure
        self._claim(proposal)
        effect = self._execute(tenant_id, user_id, payload)

        AuditRecorder(self.db).record(
            tenant_id=tenant_id,
            actor_type="user",
            actor_id=user_id,
            event_type="proposal_executed",
            entity_type="ai_action_proposals",
            entity_id=proposal.id,
            diff={"action_type": proposal.action_type, **effect},
        )
        proposals.labels(action_type=proposal.action_type, outcome="executed").inc()
        logger.info(
            "Proposal executed",
            extra={"tenant_id": tenant_id, "proposal_id": proposal.id, "action_type": proposal.action_type},
        )
        return {"action_type": proposal.action_type, "effect": effect}

    def _claim(self, proposal: ActionProposal) -> None:
        """Move ``proposed`` to ``executed``; exactly one concurrent caller wins."""
        now = datetime.utcnow()
        claimed = (
            self.db.query(ActionProposal)
            .filter(ActionProposal.id == proposal.id, ActionProposal.status == PROPOSAL_PROPOSED)
            .update(
                {"status": PROPOSAL_EXECUTED, "confirmed_at": now, "executed_at": now},
                synchronize_session=False,
            )
        )
        self.db.refresh(proposal)
        if claimed == 0:
            raise InvalidState(f"Proposal already {proposal.status}", current_state=proposal.status)

    def _execute(self, tenant_id: str, user_id: str, payload: ProposalPayload) -> dict:
        if isinstance(payload, RecategorizePayload):
            return self._execute_recategorize(tenant_id, user_id, payload)
        raise ValidationError(f"Unsupported action type: {payload.action_type}")

    def _execute_recategorize(self, tenant_id: str, user_id: str, payload: RecategorizePayload) -> dict:
        store = TransactionStore(self.db)

        category = store.resolve_category(tenant_id, payload.category_name)
        if category is None:
            raise NotFound(f'Category "{payload.category_name}" not found')

        target = store.get_current(tenant_id, payload.transaction_id)
        if target is None:
            raise NotFound("Transaction not found")

        change = store.apply_category_change(
            tenant_id, target.id, category.id, actor_type="user", actor_id=user_id
        )
        return {
            "transaction_id": target.id,
            "category_id": category.id,
            "category_name": category.name,
            **change,
        }
