"""
API package initialization.

This package contains FastAPI router modules for the operations dashboard:
- chat_analysis: Chat analysis snapshots, trends and batch classification
- complaints: Complaint uploads feeding the sales dataset and daily complaint files
- nps: Net Promoter Score ingestion and aggregation
- pnl: Profit and loss report, configuration and multi-file aggregation
- delay_time: Agent delay / response time snapshots
- payments: Billing export uploads
- conversions: Prospects and complaint-aware conversions
- operations: Daily operations backlog and trends
- agent_hours: Agent logged hours per day
"""

from fastapi import APIRouter

from opsboard.api.agent_hours import router as agent_hours_router
from opsboard.api.chat_analysis import router as chat_analysis_router
from opsboard.api.complaints import daily_router as complaints_daily_router
from opsboard.api.complaints import router as pnl_complaints_router
from opsboard.api.conversions import prospects_router
from opsboard.api.conversions import router as conversions_router
from opsboard.api.delay_time import router as delay_time_router
from opsboard.api.nps import router as nps_router
from opsboard.api.operations import ingest_router as operations_ingest_router
from opsboard.api.operations import router as operations_router
from opsboard.api.payments import router as payments_router
from opsboard.api.pnl import router as pnl_router

# Create main API router
api_router = APIRouter()

api_router.include_router(chat_analysis_router, prefix="/chat-analysis", tags=["chat-analysis"])
api_router.include_router(pnl_complaints_router, prefix="/ingest/pnl-complaints", tags=["complaints"])
api_router.include_router(complaints_daily_router, prefix="/complaints-daily", tags=["complaints"])
api_router.include_router(nps_router, tags=["nps"])  # nps router carries full paths
api_router.include_router(pnl_router, prefix="/pnl", tags=["pnl"])
api_router.include_router(delay_time_router, prefix="/delay-time", tags=["delay-time"])
api_router.include_router(payments_router, prefix="/ingest/payments", tags=["payments"])
api_router.include_router(prospects_router, prefix="/prospects", tags=["conversions"])
api_router.include_router(conversions_router, prefix="/conversions-with-complaints", tags=["conversions"])
api_router.include_router(operations_ingest_router, prefix="/ingest/operations", tags=["operations"])
api_router.include_router(operations_router, prefix="/operations", tags=["operations"])
api_router.include_router(agent_hours_router, prefix="/agent-hours", tags=["agent-hours"])

__all__ = [
    "agent_hours_router",
    "api_router",
    "chat_analysis_router",
    "complaints_daily_router",
    "conversions_router",
    "delay_time_router",
    "nps_router",
    "operations_ingest_router",
    "operations_router",
    "payments_router",
    "pnl_complaints_router",
    "pnl_router",
    "prospects_router",
]
