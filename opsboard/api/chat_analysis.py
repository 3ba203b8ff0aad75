"""
FastAPI router for chat analysis snapshots.

Key Endpoints:
- POST /chat-analysis - Aggregate analysed conversations into the day's snapshot (auth)
- GET /chat-analysis - Latest snapshot, or the one for ?date=
- GET /chat-analysis/dates - Days with a stored snapshot
- GET /chat-analysis/trends - Daily percentages over a window ending at ?endDate=
- DELETE /chat-analysis - Remove every stored chat snapshot (auth)
- POST /chat-analysis/classify - Classify raw transcripts with the LLM, optionally saving (auth)

A missing snapshot is not an error: GET answers with the "No Data Available"
structure so the dashboard can render placeholders.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from opsboard.api.common import ok, validate_date
from opsboard.core.dependencies import ClassifierDep, SettingsDep, SnapshotStoreDep, require_api_key
from opsboard.core.storage import StorageError
from opsboard.models.schemas import ApiResponse, ChatAnalysisRequest, ClassifyRequest, ConversationRecord
from opsboard.services.chat_analysis import (
    build_chat_snapshot,
    clear_chat_data,
    empty_chat_snapshot,
    get_chat_snapshot,
    get_chat_trend_data,
    list_chat_dates,
    save_chat_snapshot,
)
from opsboard.services.classification import classify_conversations
from opsboard.services.dates import today_iso


logger = logging.getLogger(__name__)

MAX_TREND_DAYS: int = 90

router = APIRouter()


async def _aggregate_and_save(store, settings, records, analysis_date: str) -> dict:
    try:
        snapshot = await build_chat_snapshot(
            store,
            records,
            analysis_date,
            trend_days=settings.trend_window_days,
            top_drivers=settings.top_drivers_limit,
        )
        await save_chat_snapshot(store, snapshot)
    except StorageError as e:
        logger.exception(f"Failed to save chat analysis for {analysis_date}")
        raise HTTPException(status_code=500, detail=f"Failed to save chat analysis: {e}")
    return snapshot


# =============================================================================
# POST /chat-analysis
# =============================================================================


@router.post("", response_model=ApiResponse, dependencies=[Depends(require_api_key)])
async def post_chat_analysis(
    body: ChatAnalysisRequest,
    store: SnapshotStoreDep,
    settings: SettingsDep,
) -> ApiResponse:
    """
    Resolve entities across the uploaded conversations, compute the day's
    metrics and store them as ``chat-analysis/daily/<date>.json`` and
    ``chat-analysis/latest.json``.
    """
    analysis_date = validate_date(body.analysisDate or today_iso(), 'analysisDate')
    if not body.conversations:
        raise HTTPException(status_code=400, detail='Missing or invalid conversations array')

    records = [conversation.to_record() for conversation in body.conversations]
    snapshot = await _aggregate_and_save(store, settings, records, analysis_date)
    processing = snapshot.get('processing', {})

    logger.info(f"Saved chat analysis for {analysis_date}: {len(records)} conversations")
    return ok(
        {
            'analysisId': f"analysis_{analysis_date}",
            'processedConversations': len(records),
            'analysisDate': analysis_date,
            'entities': processing.get('entities', 0),
            'people': processing.get('people', 0),
        },
        'Chat analysis data saved successfully',
    )


# =============================================================================
# GET /chat-analysis
# =============================================================================


@router.get("", response_model=ApiResponse)
async def get_chat_analysis(
    store: SnapshotStoreDep,
    date: Optional[str] = Query(None, description="YYYY-MM-DD; latest when omitted"),
) -> ApiResponse:
    validate_date(date)
    snapshot = await get_chat_snapshot(store, date)
    if snapshot is None:
        return ok(empty_chat_snapshot(date or today_iso()))
    return ok(snapshot)


@router.get("/dates", response_model=ApiResponse)
async def get_chat_analysis_dates(store: SnapshotStoreDep) -> ApiResponse:
    dates = await list_chat_dates(store)
    return ok({'dates': dates, 'count': len(dates)})


@router.get("/trends", response_model=ApiResponse)
async def get_chat_analysis_trends(
    store: SnapshotStoreDep,
    endDate: Optional[str] = Query(None, description="YYYY-MM-DD; today when omitted"),
    days: int = Query(14, ge=1, le=MAX_TREND_DAYS),
) -> ApiResponse:
    end_date = validate_date(endDate or today_iso(), 'endDate')
    trend_data = await get_chat_trend_data(store, end_date, days)
    return ok({'endDate': end_date, 'days': days, 'trendData': trend_data})


# =============================================================================
# DELETE /chat-analysis
# =============================================================================


@router.delete("", response_model=ApiResponse, dependencies=[Depends(require_api_key)])
async def delete_chat_analysis(store: SnapshotStoreDep) -> ApiResponse:
    try:
        removed = await clear_chat_data(store)
    except StorageError as e:
        logger.exception("Failed to clear chat analysis data")
        raise HTTPException(status_code=500, detail=f"Failed to clear chat analysis data: {e}")
    return ok({'deleted': removed}, f"Deleted {removed} chat analysis files")


# =============================================================================
# POST /chat-analysis/classify
# =============================================================================


@router.post("/classify", response_model=ApiResponse, dependencies=[Depends(require_api_key)])
async def classify_chat_transcripts(
    body: ClassifyRequest,
    store: SnapshotStoreDep,
    settings: SettingsDep,
    classifier: ClassifierDep,
) -> ApiResponse:
    """
    Classify transcripts in a bounded worker pool; failed items are listed
    individually. With ``save`` the successful classifications are
    aggregated and stored like a regular upload.
    """
    if classifier is None:
        raise HTTPException(status_code=503, detail='Classification is not configured (OPENAI_API_KEY missing)')
    analysis_date = validate_date(body.analysisDate or today_iso(), 'analysisDate')

    outcome = await classify_conversations(
        classifier,
        [item.model_dump() for item in body.conversations],
        concurrency=settings.classification_concurrency,
    )

    saved = False
    if body.save and outcome['results']:
        records = [ConversationRecord.model_validate(row).to_record() for row in outcome['results']]
        await _aggregate_and_save(store, settings, records, analysis_date)
        saved = True

    return ok(
        {
            'analysisDate': analysis_date,
            'classified': len(outcome['results']),
            'failed': len(outcome['failures']),
            'saved': saved,
            'results': outcome['results'],
            'failures': outcome['failures'],
        },
        f"Classified {len(outcome['results'])} of {len(body.conversations)} conversations",
    )
