"""
Prometheus instruments for the warehouse load path.
"""

from prometheus_client import Counter, Gauge, Histogram

ROWS_UPSERTED = Counter(
    "sales_warehouse_rows_upserted_total",
    "Rows written by upserts",
    ["entity", "operation"],
)

VALIDATION_MESSAGES = Counter(
    "sales_warehouse_validation_messages_total",
    "Validation messages produced while transforming or loading",
    ["entity"],
)

FACT_CANDIDATES_UNRESOLVED = Counter(
    "sales_warehouse_fact_candidates_unresolved_total",
    "Fact candidates dropped because a dimension row was missing",
    ["dimension"],
)

FACTS_LOADED = Gauge(
    "sales_warehouse_facts_loaded",
    "Fact rows inserted by the most recent fact load",
)

STAGE_DURATION = Histogram(
    "sales_warehouse_stage_duration_seconds",
    "Time spent per orchestrator stage",
    ["stage", "status"],
)
