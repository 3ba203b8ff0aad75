"""
FastAPI routers for the daily operations backlog.

Key Endpoints:
- POST /ingest/operations - Store one day's operations export (auth)
- GET /operations - One day (?date=) or a range (?startDate=&endDate=)
- GET /operations/dates - Days with stored operations
- GET /operations/trends - Delayed vs done totals per day (?endDate=&days=)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from opsboard.api.common import ok, validate_date
from opsboard.core.dependencies import SnapshotStoreDep, require_api_key
from opsboard.core.storage import StorageError
from opsboard.models.schemas import ApiResponse, OperationsRequest
from opsboard.services.dates import today_iso
from opsboard.services.operations import (
    DEFAULT_TREND_DAYS,
    MAX_TREND_DAYS,
    build_operations_document,
    get_operations,
    get_operations_range,
    get_operations_trend,
    list_operations_dates,
    save_operations,
)


logger = logging.getLogger(__name__)

ingest_router = APIRouter()
router = APIRouter()


@ingest_router.post("", response_model=ApiResponse, dependencies=[Depends(require_api_key)])
async def ingest_operations(body: OperationsRequest, store: SnapshotStoreDep) -> ApiResponse:
    day = validate_date(body.analysisDate, 'analysisDate')
    document = build_operations_document(
        day,
        [row.model_dump(exclude_none=True) for row in body.operations],
        body.prospects,
        body.sales,
        body.summary,
    )
    try:
        await save_operations(store, document)
    except StorageError as e:
        logger.exception(f"Failed to store operations for {day}")
        raise HTTPException(status_code=500, detail=f"Failed to store operations data: {e}")
    return ok(document, 'Operations data ingested successfully')


@router.get("", response_model=ApiResponse)
async def get_operations_data(
    store: SnapshotStoreDep,
    date: Optional[str] = Query(None),
    startDate: Optional[str] = Query(None),
    endDate: Optional[str] = Query(None),
) -> ApiResponse:
    validate_date(date)
    validate_date(startDate, 'startDate')
    validate_date(endDate, 'endDate')

    if startDate and endDate:
        if startDate > endDate:
            raise HTTPException(status_code=400, detail='startDate must not be after endDate')
        if startDate != endDate:
            documents = await get_operations_range(store, startDate, endDate)
            return ok(documents, f"Found {len(documents)} days of operations data")
        date = startDate

    if not date:
        raise HTTPException(status_code=400, detail='date or startDate and endDate are required')

    document = await get_operations(store, date)
    if document is None:
        raise HTTPException(status_code=404, detail=f"No operations data found for {date}")
    return ok(document)


@router.get("/dates", response_model=ApiResponse)
async def get_operations_dates(store: SnapshotStoreDep) -> ApiResponse:
    dates = await list_operations_dates(store)
    return ok({'dates': dates, 'count': len(dates)})


@router.get("/trends", response_model=ApiResponse)
async def get_operations_trends(
    store: SnapshotStoreDep,
    endDate: Optional[str] = Query(None),
    days: int = Query(DEFAULT_TREND_DAYS, ge=1, le=MAX_TREND_DAYS),
) -> ApiResponse:
    end_day = validate_date(endDate, 'endDate') or today_iso()
    trend = await get_operations_trend(store, end_day, days)
    return ok({'endDate': end_day, 'days': days, 'count': len(trend), 'trend': trend})
