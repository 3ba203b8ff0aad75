"""
FastAPI routers for prospects and complaint-aware conversions.

Key Endpoints:
- POST /prospects - Store one day's prospects (auth)
- GET /prospects/dates - Days with stored prospects
- GET /conversions-with-complaints/{date} - Conversions split into clean and complained
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from opsboard.api.common import ok, validate_date
from opsboard.core.dependencies import SnapshotStoreDep, require_api_key
from opsboard.core.storage import StorageError
from opsboard.models.schemas import ApiResponse, ProspectsRequest
from opsboard.services.conversions import (
    Prospect,
    conversions_with_complaints,
    list_prospect_dates,
    save_prospects,
)


logger = logging.getLogger(__name__)

prospects_router = APIRouter()
router = APIRouter()


@prospects_router.post("", response_model=ApiResponse, dependencies=[Depends(require_api_key)])
async def post_prospects(body: ProspectsRequest, store: SnapshotStoreDep) -> ApiResponse:
    day = validate_date(body.analysisDate, 'analysisDate')
    prospects = [Prospect.from_dict(row.model_dump()) for row in body.prospects]
    try:
        document = await save_prospects(store, day, prospects)
    except StorageError as e:
        logger.exception(f"Failed to store prospects for {day}")
        raise HTTPException(status_code=500, detail=f"Failed to store prospects: {e}")
    return ok(
        {'analysisDate': day, 'totalProspects': document['totalProspects']},
        f"Stored {document['totalProspects']} prospects for {day}",
    )


@prospects_router.get("/dates", response_model=ApiResponse)
async def get_prospect_dates(store: SnapshotStoreDep) -> ApiResponse:
    dates = await list_prospect_dates(store)
    return ok({'dates': dates, 'count': len(dates)})


@router.get("/{date}", response_model=ApiResponse)
async def get_conversions_with_complaints(date: str, store: SnapshotStoreDep) -> ApiResponse:
    validate_date(date)
    report = await conversions_with_complaints(store, date)
    if report is None:
        raise HTTPException(status_code=404, detail=f"No prospect data found for {date}")

    data = report.to_dict()
    message = None if report.has_payments else 'No payment data available'
    return ok(data, message)
