"""
FastAPI router for Net Promoter Score data.

Key Endpoints:
- POST /ingest/nps - Replace the stored NPS document (auth)
- GET /nps - Overall and per-service NPS for ?startDate=&endDate= (404 without data)
- GET /nps/dates - Days present in the stored document
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from opsboard.api.common import ok, validate_date
from opsboard.core.dependencies import SettingsDep, SnapshotStoreDep, require_api_key
from opsboard.core.storage import StorageError
from opsboard.models.schemas import ApiResponse, NPSIngestRequest
from opsboard.services.nps import aggregate_nps, load_nps_data, nps_dates, store_nps_data


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/ingest/nps", response_model=ApiResponse, dependencies=[Depends(require_api_key)])
async def ingest_nps(body: NPSIngestRequest, store: SnapshotStoreDep) -> ApiResponse:
    raw = body.to_raw()
    if not raw:
        raise HTTPException(status_code=400, detail='NPS data must be a non-empty object keyed by date')
    try:
        count = await store_nps_data(store, raw)
    except StorageError as e:
        logger.exception("Failed to store NPS data")
        raise HTTPException(status_code=500, detail=f"Failed to store NPS data: {e}")
    return ok({'dates': count}, f"Stored NPS data for {count} dates")


@router.get("/nps", response_model=ApiResponse)
async def get_nps(
    store: SnapshotStoreDep,
    settings: SettingsDep,
    startDate: Optional[str] = Query(None),
    endDate: Optional[str] = Query(None),
) -> ApiResponse:
    validate_date(startDate, 'startDate')
    validate_date(endDate, 'endDate')

    raw = await load_nps_data(store)
    if not raw:
        raise HTTPException(status_code=404, detail='No NPS data available')
    return ok(aggregate_nps(raw, startDate, endDate, settings.nps_default_year))


@router.get("/nps/dates", response_model=ApiResponse)
async def get_nps_dates(store: SnapshotStoreDep, settings: SettingsDep) -> ApiResponse:
    raw = await load_nps_data(store) or {}
    dates = nps_dates(raw, settings.nps_default_year)
    return ok({'dates': dates, 'count': len(dates)})
