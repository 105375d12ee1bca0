"""Citation extraction and fail-closed verification."""

import re
from typing import Iterable

from ledgerline_api.services.base import TenantScopedService
from ledgerline_api.transactions.store import TransactionStore
from ledgerline_api.utils.metrics import citation_checks

CITATION_PATTERN = re.compile(r"\[tx:([A-Za-z0-9][A-Za-z0-9_-]*)\]")

UNVERIFIED_ANSWER = (
    "I cannot confidently answer from the available data. "
    "Some referenced transactions could not be verified."
)


def extract_citations(text: str) -> list[str]:
    """Cited transaction ids in order of first appearance."""
    seen = {}
    for match in CITATION_PATTERN.finditer(text or ""):
        seen.setdefault(match.group(1), None)
    return list(seen)


class CitationVerifier(TenantScopedService):
    """Checks cited ids against the tenant's current transaction view."""

    def verify(self, tenant_id: str, claimed_ids: Iterable[str]) -> dict:
        """Resolve every claimed id; ``all_valid`` only if none are missing."""
        tenant_id = self._enforce_tenant(tenant_id)
        claimed = set(claimed_ids)
        if not claimed:
            citation_checks.labels(result="none").inc()
            return {"verified_ids": set(), "all_valid": True}

        verified = TransactionStore(self.db).current_ids(tenant_id, claimed)
        all_valid = verified == claimed
        citation_checks.labels(result="verified" if all_valid else "rejected").inc()
        return {"verified_ids": verified, "all_valid": all_valid}


def apply_fail_closed(text: str, citations: list[str], check: dict) -> tuple[str, list[str]]:
    """Drop the whole answer and every citation if any citation failed."""
    if not check["all_valid"]:
        return UNVERIFIED_ANSWER, []
    return text, citations
