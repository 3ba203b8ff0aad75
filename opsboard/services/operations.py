"""
Daily operations backlog.

One document per day, written by the operations export job:

    {
        "lastUpdated": "...",
        "analysisDate": "2026-02-13",
        "operations": [{"serviceType", "pendingUs", "pendingClient",
                        "pendingProVisit", "pendingGov", "doneToday",
                        "casesDelayed", "delayedNotes"?}, ...],
        "prospects": [{"product", "count"}, ...],
        "sales": [{"product", "dailySales"}, ...],
        "summary": {"totalPendingUs": 0, ...}
    }

When the upload carries no summary it is computed from the rows. Documents
live in ``operations/daily/<date>.json`` and ``operations/latest.json``.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from opsboard.core.storage import SnapshotStore
from opsboard.services.dates import shift_day, utc_now_iso


logger = logging.getLogger(__name__)

OPERATIONS_PREFIX = 'operations'
DEFAULT_TREND_DAYS = 14
MAX_TREND_DAYS = 90

_PENDING_FIELDS = ('pendingUs', 'pendingClient', 'pendingProVisit', 'pendingGov')

# serviceType labels of the export -> dashboard service keys
OPERATIONS_SERVICE_MAPPING: Dict[str, str] = {
    'oec': 'oec',
    'owwa': 'owwa',
    'visa to lebanon': 'ttl',
    'travel to lebanon': 'ttl',
    'visa to egypt': 'tte',
    'travel to egypt': 'tte',
    'travel to jordan': 'ttj',
    'schengen': 'schengen',
    'schengen visa': 'schengen',
    'gcc': 'gcc',
    'ethiopian passport renewal': 'ethiopianPP',
    'filipina passport renewal': 'filipinaPP',
    'golden visa': 'goldenVisa',
    'family visa': 'familyVisa',
    'contract verification': 'contractVerification',
}


def operations_service_key(service_type: Optional[str]) -> Optional[str]:
    return OPERATIONS_SERVICE_MAPPING.get((service_type or '').strip().lower())


def _number(row: Dict[str, Any], name: str) -> int:
    value = row.get(name) or 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def summarize_operations(
    operations: Sequence[Dict[str, Any]],
    prospects: Sequence[Dict[str, Any]] = (),
    sales: Sequence[Dict[str, Any]] = (),
) -> Dict[str, int]:
    summary = {
        'totalProspects': sum(_number(row, 'count') for row in prospects),
        'totalDoneToday': sum(_number(row, 'doneToday') for row in operations),
        'totalCasesDelayed': sum(_number(row, 'casesDelayed') for row in operations),
        'totalDailySales': sum(_number(row, 'dailySales') for row in sales),
    }
    for name in _PENDING_FIELDS:
        summary[f"total{name[0].upper()}{name[1:]}"] = sum(_number(row, name) for row in operations)
    return summary


def build_operations_document(
    analysis_date: str,
    operations: Sequence[Dict[str, Any]],
    prospects: Sequence[Dict[str, Any]] = (),
    sales: Sequence[Dict[str, Any]] = (),
    summary: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    rows = []
    for row in operations:
        row = dict(row)
        service_key = operations_service_key(row.get('serviceType'))
        if service_key:
            row['serviceKey'] = service_key
        rows.append(row)
    return {
        'lastUpdated': utc_now_iso(),
        'analysisDate': analysis_date,
        'operations': rows,
        'prospects': list(prospects),
        'sales': list(sales),
        'summary': summary or summarize_operations(operations, prospects, sales),
    }


def day_totals(document: Optional[Dict[str, Any]], day: str) -> Dict[str, Any]:
    operations = (document or {}).get('operations') or []
    return {
        'date': day,
        'casesDelayed': sum(_number(row, 'casesDelayed') for row in operations),
        'doneToday': sum(_number(row, 'doneToday') for row in operations),
    }


# =============================================================================
# Persistence
# =============================================================================

async def save_operations(store: SnapshotStore, document: Dict[str, Any]) -> None:
    await store.save_daily_snapshot(OPERATIONS_PREFIX, document['analysisDate'], document)
    logger.info(
        f"Stored {len(document['operations'])} operations rows for {document['analysisDate']}"
    )


async def get_operations(store: SnapshotStore, day: str) -> Optional[Dict[str, Any]]:
    return await store.get_daily_snapshot(OPERATIONS_PREFIX, day)


async def list_operations_dates(store: SnapshotStore) -> List[str]:
    return await store.list_dates(f"{OPERATIONS_PREFIX}/daily/")


async def get_operations_range(store: SnapshotStore, start_day: str, end_day: str) -> List[Dict[str, Any]]:
    """Stored documents for days within ``[start_day, end_day]``, oldest first."""
    documents = []
    for day in await list_operations_dates(store):
        if start_day <= day <= end_day:
            document = await get_operations(store, day)
            if document is not None:
                documents.append(document)
    return documents


async def get_operations_trend(store: SnapshotStore, end_day: str, days: int = DEFAULT_TREND_DAYS) -> List[Dict[str, Any]]:
    """Delayed vs done totals for each of the ``days`` days ending at ``end_day``; zeros for missing days."""
    stored = set(await list_operations_dates(store))
    trend = []
    for offset in range(days - 1, -1, -1):
        day = shift_day(end_day, -offset)
        document = await get_operations(store, day) if day in stored else None
        trend.append(day_totals(document, day))
    return trend
