"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Webhook metrics
webhook_events = Counter(
    "ledgerline_webhook_events_total",
    "Inbound webhook events by admission outcome",
    ["source", "outcome"],  # admitted, duplicate
)

transactions_ingested = Counter(
    "ledgerline_transactions_ingested_total",
    "Transaction versions written by batch ingestion",
)

transactions_skipped = Counter(
    "ledgerline_transactions_skipped_total",
    "Batch inputs skipped because the version already exists",
)

# Audit metrics
audit_events_recorded = Counter(
    "ledgerline_audit_events_total",
    "Audit events appended",
    ["event_type"],
)

# Assistant metrics
citation_checks = Counter(
    "ledgerline_citation_checks_total",
    "Citation verifications by result",
    ["result"],  # verified, rejected, none
)

llm_request_duration = Histogram(
    "ledgerline_llm_request_duration_seconds",
    "LLM completion latency",
)

# Proposal metrics
proposals = Counter(
    "ledgerline_proposals_total",
    "Action proposals by lifecycle outcome",
    ["action_type", "outcome"],  # proposed, executed
)
