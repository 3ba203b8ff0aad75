"""
Services Module

Business logic for the operations dashboard. The pipeline modules are pure
functions over in-memory collections; the persistence helpers bracket them
with snapshot reads and writes.

Services:
- entity_resolution: Merge raw records that refer to the same person
- sale_dedup: Collapse complaints into distinct sales with the 3-month window
- metrics: Percentages, driver rankings and trend direction
- chat_analysis: Daily chat analysis snapshots
- complaints: Complaint dataset and daily upload workflows
- nps: Net Promoter Score aggregation
- pnl_config / pnl: P&L configuration and computation
- delay_time: Agent delay / response time processing
- payments: Billing export mapping and deduplication
- conversions: Prospect conversions split by complaints
- operations: Daily operations backlog
- agent_hours: Agent logged hours per day
- classification: Bounded-concurrency LLM classification of transcripts
"""

# =============================================================================
# Entity Resolution and Sale Deduplication
# =============================================================================

from opsboard.services.entity_resolution import (
    RawRecord,
    ResolvedEntity,
    ResolutionResult,
    merge,
    resolve_entities,
)
from opsboard.services.sale_dedup import (
    Complaint,
    ComplaintsDataset,
    SalePeriod,
    build_sale_periods,
    process_complaints,
)

# =============================================================================
# Metrics and Snapshots
# =============================================================================

from opsboard.services.metrics import percentage, rank_drivers, round_half_up
from opsboard.services.chat_analysis import aggregate_conversations
from opsboard.services.nps import aggregate_nps, calculate_metrics
from opsboard.services.pnl import aggregate_pnl_documents, compute_pnl_from_sales, service_pnl_from_volume
from opsboard.services.delay_time import (
    classify_delay_records,
    parse_duration_to_seconds,
    process_delay_records,
)
from opsboard.services.payments import payment_service_for, process_payments
from opsboard.services.conversions import build_conversion_report
from opsboard.services.classification import run_bounded


__all__ = [
    # Entity resolution
    "RawRecord",
    "ResolvedEntity",
    "ResolutionResult",
    "merge",
    "resolve_entities",
    # Sale deduplication
    "Complaint",
    "ComplaintsDataset",
    "SalePeriod",
    "build_sale_periods",
    "process_complaints",
    # Metrics
    "percentage",
    "rank_drivers",
    "round_half_up",
    "aggregate_conversations",
    "aggregate_nps",
    "calculate_metrics",
    "aggregate_pnl_documents",
    "compute_pnl_from_sales",
    "service_pnl_from_volume",
    # Delay time
    "classify_delay_records",
    "parse_duration_to_seconds",
    "process_delay_records",
    # Payments and conversions
    "payment_service_for",
    "process_payments",
    "build_conversion_report",
    # Classification
    "run_bounded",
]
