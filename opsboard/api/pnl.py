"""
FastAPI router for profit and loss.

Key Endpoints:
- GET /pnl - P&L for ?startDate=&endDate= from complaint-derived sales (404 without data)
- GET /pnl/config - Active configuration and where it was loaded from
- PUT /pnl/config - Validate and store a configuration (auth)
- DELETE /pnl/config - Remove the stored configuration (auth)
- POST /pnl/aggregate - Combine already-computed per-file P&L documents
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from opsboard.api.common import ok, validate_date
from opsboard.core.dependencies import HttpClientDep, SettingsDep, SnapshotStoreDep, require_api_key
from opsboard.core.storage import StorageError
from opsboard.models.schemas import ApiResponse, PnLAggregateRequest, PnLConfigBody
from opsboard.services.pnl import aggregate_pnl_documents, build_pnl_report
from opsboard.services.pnl_config import load_pnl_config, reset_pnl_config, save_pnl_config


logger = logging.getLogger(__name__)

router = APIRouter()


async def _load_config(store, client, settings):
    return await load_pnl_config(
        store,
        client=client,
        remote_url=settings.pnl_config_url,
        timeout_seconds=settings.remote_config_timeout_seconds,
        max_retries=settings.remote_config_max_retries,
        retry_delay_seconds=settings.remote_config_retry_delay_seconds,
    )


@router.get("", response_model=ApiResponse)
async def get_pnl(
    store: SnapshotStoreDep,
    client: HttpClientDep,
    settings: SettingsDep,
    startDate: Optional[str] = Query(None),
    endDate: Optional[str] = Query(None),
) -> ApiResponse:
    validate_date(startDate, 'startDate')
    validate_date(endDate, 'endDate')
    if startDate and endDate and startDate > endDate:
        raise HTTPException(status_code=400, detail='startDate must not be after endDate')

    config = await _load_config(store, client, settings)
    report = await build_pnl_report(
        store,
        config,
        start_day=startDate,
        end_day=endDate,
        price_change_date=settings.price_change_date,
    )
    if report is None:
        raise HTTPException(status_code=404, detail='No complaints data available to compute P&L')
    return ok(report)


# =============================================================================
# Configuration
# =============================================================================


@router.get("/config", response_model=ApiResponse)
async def get_pnl_config(
    store: SnapshotStoreDep,
    client: HttpClientDep,
    settings: SettingsDep,
) -> ApiResponse:
    result = await _load_config(store, client, settings)
    data = result.config.to_dict()
    data['source'] = result.source.value
    if result.error:
        data['error'] = result.error
    return ok(data)


@router.put("/config", response_model=ApiResponse, dependencies=[Depends(require_api_key)])
async def put_pnl_config(body: PnLConfigBody, store: SnapshotStoreDep) -> ApiResponse:
    try:
        config = await save_pnl_config(store, body.model_dump())
    except StorageError as e:
        logger.exception("Failed to save P&L config")
        raise HTTPException(status_code=500, detail=f"Failed to save P&L config: {e}")
    return ok(config.to_dict(), 'P&L config saved')


@router.delete("/config", response_model=ApiResponse, dependencies=[Depends(require_api_key)])
async def delete_pnl_config(store: SnapshotStoreDep) -> ApiResponse:
    try:
        removed = await reset_pnl_config(store)
    except StorageError as e:
        logger.exception("Failed to reset P&L config")
        raise HTTPException(status_code=500, detail=f"Failed to reset P&L config: {e}")
    message = 'P&L config reset to defaults' if removed else 'No stored P&L config to reset'
    return ok({'reset': removed}, message)


# =============================================================================
# Multi-file aggregation
# =============================================================================


@router.post("/aggregate", response_model=ApiResponse)
async def aggregate_pnl(body: PnLAggregateRequest) -> ApiResponse:
    documents = [document.model_dump() for document in body.documents]
    return ok(aggregate_pnl_documents(documents))
