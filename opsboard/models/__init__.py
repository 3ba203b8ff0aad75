"""
Package initialization file for opsboard models.

Re-exports the enumerations so callers can import them from
``opsboard.models`` directly. Request/response schemas live in
``opsboard.models.schemas``; they wrap pipeline dataclasses and are imported
from there to keep this package free of service imports.

Usage:
    from opsboard.models import ServiceKey, TrendDirection
    from opsboard.models.schemas import ApiResponse, ChatAnalysisRequest
"""

from opsboard.models.enums import (
    ALL_SERVICE_KEYS,
    ComplaintsIngestMode,
    ConfigSource,
    DelayRecordFormat,
    InsightTrending,
    PersonType,
    ServiceKey,
    TrendDirection,
)


__all__ = [
    "ALL_SERVICE_KEYS",
    "ComplaintsIngestMode",
    "ConfigSource",
    "DelayRecordFormat",
    "InsightTrending",
    "PersonType",
    "ServiceKey",
    "TrendDirection",
]
