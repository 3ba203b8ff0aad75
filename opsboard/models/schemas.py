"""
Pydantic request/response models for the opsboard API.

Field names are camelCase to match the JSON the dashboard and the upload
scripts already exchange. Request models convert themselves into the plain
dataclasses used by the pipeline services (``to_record``, ``to_complaint``)
so the services never depend on pydantic.

All models use Pydantic v2 syntax.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from opsboard.services.entity_resolution import RawRecord
from opsboard.services.sale_dedup import Complaint, normalize_complaint


# =============================================================================
# Response Envelope
# =============================================================================


class ApiResponse(BaseModel):
    """
    Envelope for every JSON response.

    ``data`` is set on success, ``error`` on failure; ``message`` is a short
    human-readable summary.
    """
    success: bool = Field(..., description="Whether the request succeeded")
    message: Optional[str] = Field(None, description="Human-readable summary")
    data: Optional[Any] = Field(None, description="Response payload")
    error: Optional[str] = Field(None, description="Error detail on failure")


# =============================================================================
# Chat Analysis
# =============================================================================


class ConversationRecord(BaseModel):
    """
    One analysed conversation as uploaded by the chat analysis job.

    ``conversationId`` may already hold several comma-separated IDs when the
    upstream export merged conversations.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        coerce_numbers_to_str=True,
        extra='ignore',
        json_schema_extra={
            "example": {
                "conversationId": "conv_001",
                "chatStartDateTime": "2026-02-13T09:15:00Z",
                "frustrated": True,
                "confused": False,
                "mainIssues": ["Long wait time"],
                "keyPhrases": ["waiting too long"],
                "clientId": "67890",
                "contractType": "CC",
            }
        },
    )

    conversationId: str = Field(..., min_length=1)
    frustrated: bool
    confused: bool
    mainIssues: List[str] = Field(default_factory=list)
    keyPhrases: List[str] = Field(default_factory=list)
    chatStartDateTime: Optional[str] = None
    service: Optional[str] = None
    skill: Optional[str] = None
    clientId: Optional[str] = None
    maidId: Optional[str] = None
    contractId: Optional[str] = None
    clientName: Optional[str] = None
    maidName: Optional[str] = None
    contractType: Optional[str] = None

    def to_record(self) -> RawRecord:
        return RawRecord(
            conversation_id=self.conversationId,
            frustrated=self.frustrated,
            confused=self.confused,
            main_issues=tuple(self.mainIssues),
            key_phrases=tuple(self.keyPhrases),
            timestamp=self.chatStartDateTime or None,
            contract_id=self.contractId or None,
            client_id=self.clientId or None,
            maid_id=self.maidId or None,
            client_name=self.clientName or None,
            maid_name=self.maidName or None,
            contract_type=self.contractType or None,
            service=self.service or None,
            skill=self.skill or None,
        )


class ChatAnalysisRequest(BaseModel):
    """Body of ``POST /chat-analysis``; ``analysisDate`` defaults to today (UTC)."""
    analysisDate: Optional[str] = None
    conversations: List[ConversationRecord]


class TranscriptItem(BaseModel):
    """A raw transcript to classify, with the identifiers carried through to aggregation."""
    model_config = ConfigDict(coerce_numbers_to_str=True, extra='ignore')

    conversationId: str = Field(..., min_length=1)
    transcript: str
    chatStartDateTime: Optional[str] = None
    service: Optional[str] = None
    skill: Optional[str] = None
    clientId: Optional[str] = None
    maidId: Optional[str] = None
    contractId: Optional[str] = None
    clientName: Optional[str] = None
    maidName: Optional[str] = None
    contractType: Optional[str] = None


class ClassifyRequest(BaseModel):
    """
    Body of ``POST /chat-analysis/classify``.

    When ``save`` is true the classified conversations are aggregated and
    stored as the snapshot for ``analysisDate``.
    """
    analysisDate: Optional[str] = None
    conversations: List[TranscriptItem] = Field(..., min_length=1)
    save: bool = False


# =============================================================================
# Complaints
# =============================================================================


class ComplaintsIngestRequest(BaseModel):
    """
    Body of complaint uploads.

    Rows are accepted with either export column names (``CONTRACT_ID``,
    ``COMPLAINT_TYPE``...) or camelCase names (``contractId``,
    ``complaintType``...).
    """
    complaints: List[Dict[str, Any]] = Field(..., min_length=1)

    def to_complaints(self) -> List[Complaint]:
        return [normalize_complaint(row) for row in self.complaints]


class DailyComplaintsRequest(ComplaintsIngestRequest):
    """Body of ``POST /complaints-daily``."""
    date: str


# =============================================================================
# NPS
# =============================================================================


class NPSIngestRequest(BaseModel):
    """
    Body of ``POST /ingest/nps``: day key -> ``{date, scores}``.

    Accepted either wrapped as ``{"data": {...}}`` or as the raw mapping.
    """
    model_config = ConfigDict(extra='allow')

    data: Optional[Dict[str, Any]] = None

    def to_raw(self) -> Dict[str, Any]:
        if self.data is not None:
            return self.data
        return dict(self.model_extra or {})


# =============================================================================
# Delay Time
# =============================================================================


class DelayTimeRequest(BaseModel):
    """
    Body of ``POST /delay-time``.

    Rows stay untyped here; the format is decided once by
    ``delay_time.classify_delay_records``.
    """
    analysisDate: Optional[str] = None
    records: List[Dict[str, Any]]


# =============================================================================
# P&L
# =============================================================================


class PnLConfigBody(BaseModel):
    """Body of ``PUT /pnl/config``; values are validated key by key on save."""
    serviceCosts: Dict[str, Any] = Field(default_factory=dict)
    serviceFees: Dict[str, Any] = Field(default_factory=dict)
    monthlyFixedCosts: Dict[str, Any] = Field(default_factory=dict)


class PnLServiceFigures(BaseModel):
    model_config = ConfigDict(extra='ignore')

    name: Optional[str] = None
    volume: float = 0
    price: float = 0
    serviceFees: float = 0
    totalRevenue: float = 0
    totalCost: float = 0
    grossProfit: float = 0


class PnLDocument(BaseModel):
    """One already-computed P&L document, e.g. parsed from an uploaded spreadsheet."""
    model_config = ConfigDict(extra='ignore')

    fileName: Optional[str] = None
    services: Dict[str, PnLServiceFigures] = Field(default_factory=dict)
    summary: Dict[str, Any] = Field(default_factory=dict)


class PnLAggregateRequest(BaseModel):
    """Body of ``POST /pnl/aggregate``."""
    documents: List[PnLDocument] = Field(..., min_length=1)


# =============================================================================
# Payments and Conversions
# =============================================================================


class PaymentsIngestRequest(BaseModel):
    """
    Body of ``POST /ingest/payments``.

    Rows keep the billing export column names (``PAYMENT_TYPE``,
    ``CONTRACT_ID``, ``STATUS``, ``DATE_OF_PAYMENT``...).
    """
    payments: List[Dict[str, Any]] = Field(..., min_length=1)


class ProspectRow(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, coerce_numbers_to_str=True, extra='ignore')

    contractId: str = ''
    maidId: str = ''
    clientId: str = ''
    isOECProspect: bool = False
    isOWWAProspect: bool = False
    isTravelVisaProspect: bool = False
    isFilipinaPassportRenewalProspect: bool = False
    isEthiopianPassportRenewalProspect: bool = False


class ProspectsRequest(BaseModel):
    """Body of ``POST /prospects``."""
    analysisDate: str
    prospects: List[ProspectRow] = Field(..., min_length=1)


# =============================================================================
# Operations
# =============================================================================


class OperationMetric(BaseModel):
    model_config = ConfigDict(extra='ignore')

    serviceType: str
    pendingUs: int = 0
    pendingClient: int = 0
    pendingProVisit: int = 0
    pendingGov: int = 0
    doneToday: int = 0
    casesDelayed: int = 0
    delayedNotes: Optional[str] = None


class OperationsRequest(BaseModel):
    """Body of ``POST /ingest/operations``; ``summary`` is computed when omitted."""
    analysisDate: str
    operations: List[OperationMetric] = Field(default_factory=list)
    prospects: List[Dict[str, Any]] = Field(default_factory=list)
    sales: List[Dict[str, Any]] = Field(default_factory=list)
    summary: Optional[Dict[str, Any]] = None


# =============================================================================
# Agent Hours
# =============================================================================


class AgentHoursRow(BaseModel):
    model_config = ConfigDict(extra='ignore')

    FULL_NAME: str
    HOURS_LOGGED: Optional[float] = 0
    FIRST_LOGIN: Optional[str] = None
    LAST_LOGOUT: Optional[str] = None


class AgentHoursRequest(BaseModel):
    """Body of ``POST /agent-hours``."""
    analysisDate: str
    agents: List[AgentHoursRow] = Field(..., min_length=1)
