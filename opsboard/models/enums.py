"""
Enumeration definitions for the opsboard service.

All enums inherit from both ``str`` and ``Enum`` so pydantic serializes them as
their plain values in API responses and persisted documents.
"""

from enum import Enum


class ServiceKey(str, Enum):
    """
    Line-of-business codes used to bucket complaints into sales.

    Values match the keys of persisted P&L and complaints documents.
    """
    OEC = "oec"
    OWWA = "owwa"
    TTL = "ttl"
    TTE = "tte"
    TTJ = "ttj"
    SCHENGEN = "schengen"
    GCC = "gcc"
    ETHIOPIAN_PP = "ethiopianPP"
    FILIPINA_PP = "filipinaPP"


class TrendDirection(str, Enum):
    """Day-over-day movement of a percentage metric."""
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class InsightTrending(str, Enum):
    """Trending marker shown next to a main-issue insight."""
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class PersonType(str, Enum):
    """
    Kind of real-world actor behind a resolved conversation entity.

    Contract and client identifiers both resolve to ``client``.
    """
    CLIENT = "client"
    MAID = "maid"
    UNKNOWN = "unknown"


class ConfigSource(str, Enum):
    """Where the active P&L configuration was loaded from."""
    BLOB = "blob"
    REMOTE = "remote"
    DEFAULT = "default"


class ComplaintsIngestMode(str, Enum):
    """
    How an upload combines with the stored complaints dataset.

    - replace: the upload becomes the whole dataset
    - append: the upload is merged with the stored complaints and reprocessed
    """
    REPLACE = "replace"
    APPEND = "append"


class DelayRecordFormat(str, Enum):
    """Shape of an agent delay-time upload, decided at ingestion."""
    LEGACY = "legacy"
    AGENT_RESPONSE_TIME = "agent_response_time"


class PaymentStatus(str, Enum):
    """
    Normalized state of an uploaded payment row.

    Only ``received`` payments count as conversions.
    """
    RECEIVED = "received"
    PRE_PDP = "pre_pdp"
    OTHER = "other"


ALL_SERVICE_KEYS = [key.value for key in ServiceKey]
