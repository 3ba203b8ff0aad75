"""
FastAPI router for agent delay / response times.

Key Endpoints:
- POST /delay-time - Ingest a day's delay rows, either upload format (auth)
- GET /delay-time - Latest snapshot, or the one for ?date=
- GET /delay-time/dates - Days with a stored snapshot
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from opsboard.api.common import ok, validate_date
from opsboard.core.dependencies import SnapshotStoreDep, require_api_key
from opsboard.core.storage import StorageError
from opsboard.models.schemas import ApiResponse, DelayTimeRequest
from opsboard.services.delay_time import (
    UnknownDelayFormatError,
    classify_delay_records,
    default_analysis_date,
    get_delay_snapshot,
    list_delay_dates,
    process_delay_records,
    record_format_of,
    save_delay_snapshot,
)


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=ApiResponse, dependencies=[Depends(require_api_key)])
async def post_delay_time(body: DelayTimeRequest, store: SnapshotStoreDep) -> ApiResponse:
    try:
        records = classify_delay_records(body.records)
    except UnknownDelayFormatError as e:
        raise HTTPException(status_code=400, detail=str(e))

    analysis_date = body.analysisDate or default_analysis_date(records)
    if not analysis_date:
        raise HTTPException(
            status_code=400,
            detail='analysisDate is required (can be provided in body or extracted from REPORT_DATE)',
        )
    validate_date(analysis_date, 'analysisDate')

    snapshot = process_delay_records(records, analysis_date)
    try:
        await save_delay_snapshot(store, snapshot)
    except StorageError as e:
        logger.exception(f"Failed to save delay time data for {analysis_date}")
        raise HTTPException(status_code=500, detail=f"Failed to save delay time data: {e}")

    return ok(
        {
            'analysisId': f"delay-{analysis_date}",
            'processedRecords': len(records),
            'analysisDate': analysis_date,
            'format': record_format_of(records).value,
        },
        'Delay time data ingested successfully',
    )


@router.get("", response_model=ApiResponse)
async def get_delay_time(
    store: SnapshotStoreDep,
    date: Optional[str] = Query(None),
) -> ApiResponse:
    validate_date(date)
    snapshot = await get_delay_snapshot(store, date)
    if snapshot is None:
        message = f"No delay time data available for {date}" if date else 'No delay time data available yet'
        return ok(None, message)
    return ok(snapshot)


@router.get("/dates", response_model=ApiResponse)
async def get_delay_time_dates(store: SnapshotStoreDep) -> ApiResponse:
    dates = await list_delay_dates(store)
    return ok({'dates': dates, 'count': len(dates)})
