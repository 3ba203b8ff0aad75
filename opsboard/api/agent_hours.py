"""
FastAPI router for agent logged hours.

Key Endpoints:
- POST /agent-hours - Store one day's agent hours (auth)
- GET /agent-hours - The stored day for ?date= (required)
- GET /agent-hours/dates - Days with stored hours
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from opsboard.api.common import ok, validate_date
from opsboard.core.dependencies import SnapshotStoreDep, require_api_key
from opsboard.core.storage import StorageError
from opsboard.models.schemas import AgentHoursRequest, ApiResponse
from opsboard.services.agent_hours import (
    build_agent_hours,
    get_agent_hours,
    list_agent_hours_dates,
    store_agent_hours,
)


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=ApiResponse, dependencies=[Depends(require_api_key)])
async def post_agent_hours(body: AgentHoursRequest, store: SnapshotStoreDep) -> ApiResponse:
    day = validate_date(body.analysisDate, 'analysisDate')
    document = build_agent_hours(day, [agent.model_dump() for agent in body.agents])
    try:
        pathname = await store_agent_hours(store, document)
    except StorageError as e:
        logger.exception(f"Failed to store agent hours for {day}")
        raise HTTPException(status_code=500, detail=f"Failed to store agent hours data: {e}")
    return ok(
        {'analysisId': pathname, 'processedRecords': document['totalAgents'], 'analysisDate': day},
        f"Successfully stored agent hours data for {day}",
    )


@router.get("", response_model=ApiResponse)
async def get_agent_hours_data(store: SnapshotStoreDep, date: Optional[str] = Query(None)) -> ApiResponse:
    if not date:
        raise HTTPException(status_code=400, detail='date parameter is required')
    validate_date(date)
    document = await get_agent_hours(store, date)
    if document is None:
        raise HTTPException(status_code=404, detail=f"No agent hours data found for date: {date}")
    return ok(document)


@router.get("/dates", response_model=ApiResponse)
async def get_agent_hours_dates(store: SnapshotStoreDep) -> ApiResponse:
    dates = await list_agent_hours_dates(store)
    return ok({'dates': dates, 'count': len(dates)})
