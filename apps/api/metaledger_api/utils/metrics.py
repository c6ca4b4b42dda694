"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Ledger metrics
ledger_writes = Counter(
    "metaledger_ledger_writes_total",
    "Total value entries appended to the ledger",
    ["source", "pending"],
)

entry_reviews = Counter(
    "metaledger_entry_reviews_total",
    "Total approval decisions on pending entries",
    ["action"],
)

skipped_pipeline_writes = Counter(
    "metaledger_skipped_pipeline_writes_total",
    "Pipeline writes ignored because the field is manually overridden or unchanged",
    ["reason"],
)

resolve_duration = Histogram(
    "metaledger_resolve_duration_seconds",
    "Canonical state resolution duration",
)

# Hybrid override metrics
hybrid_transitions = Counter(
    "metaledger_hybrid_transitions_total",
    "Total hybrid field override/revert transitions",
    ["transition"],
)

# Candidate metrics
candidate_reviews = Counter(
    "metaledger_candidate_reviews_total",
    "Total candidate review actions",
    ["action"],
)

candidates_recorded = Counter(
    "metaledger_candidates_recorded_total",
    "Candidate intake outcomes",
    ["outcome"],
)

# Bulk metrics
bulk_previews = Counter(
    "metaledger_bulk_previews_total",
    "Total bulk previews issued",
    ["operation"],
)

bulk_asset_results = Counter(
    "metaledger_bulk_asset_results_total",
    "Per-asset bulk execution outcomes",
    ["outcome"],
)

bulk_execute_duration = Histogram(
    "metaledger_bulk_execute_duration_seconds",
    "Bulk execute duration",
)

# Side effects
activity_record_failures = Counter(
    "metaledger_activity_record_failures_total",
    "Activity events that failed to record",
)

event_dispatches = Counter(
    "metaledger_event_dispatches_total",
    "State-complete event dispatch attempts",
    ["status"],
)
