"""
FastAPI routers for complaint uploads.

Key Endpoints:
- POST /ingest/pnl-complaints - Replace (default) or append (?mode=append) the sales dataset (auth)
- DELETE /ingest/pnl-complaints - Clear complaints created within ?startDate..?endDate (auth)
- GET /ingest/pnl-complaints - Dataset status
- POST /complaints-daily - Store one day's raw complaints (auth)
- GET /complaints-daily - One day (?date=) or a deduplicated range (?startDate=&endDate=)
- GET /complaints-daily/dates - Days with stored complaints

Writes to ``pnl-complaints.json`` run under the ``pnl-complaints`` advisory
lock; a lock that cannot be acquired in time answers 409.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from opsboard.api.common import ok, validate_date
from opsboard.core.dependencies import LockServiceDep, SettingsDep, SnapshotStoreDep, require_api_key
from opsboard.core.locks import LockResult, LockStorageUnavailable, LockTimedOut, hold_lock
from opsboard.core.storage import StorageError
from opsboard.models.enums import ComplaintsIngestMode
from opsboard.models.schemas import ApiResponse, ComplaintsIngestRequest, DailyComplaintsRequest
from opsboard.services.complaints import (
    PNL_COMPLAINTS_LOCK,
    aggregate_daily_complaints,
    append_complaints,
    clear_complaints_range,
    complaints_status,
    get_daily_complaints,
    list_daily_complaint_dates,
    load_complaints_dataset,
    replace_complaints,
    service_breakdown,
    store_daily_complaints,
    summarize_complaints,
)


logger = logging.getLogger(__name__)

router = APIRouter()
daily_router = APIRouter()


def ensure_acquired(result: LockResult) -> None:
    """
    Raises:
        HTTPException 409: the lock is held elsewhere past the wait budget.
        HTTPException 503: lock storage failed on every attempt.
    """
    if isinstance(result, LockTimedOut):
        logger.warning(f"Lock {result.resource_id} not acquired after {result.waited_seconds:.1f}s")
        raise HTTPException(
            status_code=409,
            detail='Another complaints update is in progress, try again shortly',
        )
    if isinstance(result, LockStorageUnavailable):
        raise HTTPException(status_code=503, detail=f"Lock storage unavailable: {result.error}")


# =============================================================================
# /ingest/pnl-complaints
# =============================================================================


@router.post("", response_model=ApiResponse, dependencies=[Depends(require_api_key)])
async def ingest_pnl_complaints(
    body: ComplaintsIngestRequest,
    store: SnapshotStoreDep,
    locks: LockServiceDep,
    settings: SettingsDep,
    mode: ComplaintsIngestMode = Query(ComplaintsIngestMode.REPLACE),
) -> ApiResponse:
    complaints = body.to_complaints()
    try:
        async with hold_lock(locks, PNL_COMPLAINTS_LOCK, settings.lock_ttl_seconds) as lock:
            ensure_acquired(lock)
            if mode == ComplaintsIngestMode.APPEND:
                document = await append_complaints(store, complaints)
            else:
                document = await replace_complaints(store, complaints)
    except StorageError as e:
        logger.exception("Failed to save complaints dataset")
        raise HTTPException(status_code=500, detail=f"Failed to save complaints: {e}")

    summary = summarize_complaints(document)
    logger.info(
        f"Ingested {len(complaints)} complaints ({mode.value}): "
        f"{summary['totalSales']} unique sales"
    )
    return ok(
        {
            'mode': mode.value,
            'receivedComplaints': len(complaints),
            'processedComplaints': document['rawComplaintsCount'],
            'skipped': document['skipped'],
            'totalSales': summary['totalSales'],
            'salesByService': summary['salesByService'],
            'services': service_breakdown(document),
            'lastUpdated': document['lastUpdated'],
        },
        f"Processed {document['rawComplaintsCount']} complaints into {summary['totalSales']} unique sales",
    )


@router.delete("", response_model=ApiResponse, dependencies=[Depends(require_api_key)])
async def clear_pnl_complaints(
    store: SnapshotStoreDep,
    locks: LockServiceDep,
    settings: SettingsDep,
    startDate: Optional[str] = Query(None),
    endDate: Optional[str] = Query(None),
) -> ApiResponse:
    validate_date(startDate, 'startDate')
    validate_date(endDate, 'endDate')
    if startDate and endDate and startDate > endDate:
        raise HTTPException(status_code=400, detail='startDate must not be after endDate')

    try:
        async with hold_lock(locks, PNL_COMPLAINTS_LOCK, settings.lock_ttl_seconds) as lock:
            ensure_acquired(lock)
            result = await clear_complaints_range(store, startDate, endDate)
    except StorageError as e:
        logger.exception("Failed to clear complaints range")
        raise HTTPException(status_code=500, detail=f"Failed to clear complaints: {e}")

    data = result.to_dict(startDate, endDate)
    return ok(data, f"Removed {data['removed']['sales']} sales")


@router.get("", response_model=ApiResponse)
async def get_pnl_complaints_status(store: SnapshotStoreDep) -> ApiResponse:
    document = await load_complaints_dataset(store)
    return ok(complaints_status(document))


# =============================================================================
# /complaints-daily
# =============================================================================


@daily_router.post("", response_model=ApiResponse, dependencies=[Depends(require_api_key)])
async def post_daily_complaints(body: DailyComplaintsRequest, store: SnapshotStoreDep) -> ApiResponse:
    day = validate_date(body.date)
    complaints = body.to_complaints()
    try:
        document = await store_daily_complaints(store, day, complaints)
    except StorageError as e:
        logger.exception(f"Failed to store daily complaints for {day}")
        raise HTTPException(status_code=500, detail=f"Failed to store complaints: {e}")
    return ok(
        {'date': day, 'totalComplaints': document['totalComplaints']},
        f"Stored {document['totalComplaints']} complaints for {day}",
    )


@daily_router.get("", response_model=ApiResponse)
async def get_daily_complaints_data(
    store: SnapshotStoreDep,
    date: Optional[str] = Query(None),
    startDate: Optional[str] = Query(None),
    endDate: Optional[str] = Query(None),
) -> ApiResponse:
    """
    With ``date`` the stored upload for that day; otherwise the
    deduplicated aggregate of every upload in ``[startDate, endDate]``.
    """
    validate_date(date)
    validate_date(startDate, 'startDate')
    validate_date(endDate, 'endDate')

    if date:
        document = await get_daily_complaints(store, date)
        if document is None:
            return ok(None, f"No complaints data available for {date}")
        return ok(document)

    aggregate = await aggregate_daily_complaints(store, startDate, endDate)
    if aggregate is None:
        return ok(None, 'No complaints data available for the requested range')
    return ok(aggregate)


@daily_router.get("/dates", response_model=ApiResponse)
async def get_daily_complaint_dates(store: SnapshotStoreDep) -> ApiResponse:
    dates = await list_daily_complaint_dates(store)
    return ok({'dates': dates, 'count': len(dates)})
