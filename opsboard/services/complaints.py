"""
Persistence workflows for complaint data.

Two independent stores are kept:

- ``pnl-complaints.json``: the deduplicated sales dataset that drives P&L
  volumes. Uploads either replace it or are appended to it; a date range can
  be cleared. Every write reprocesses the full complaint set from scratch.
- ``complaints-daily/<date>.json``: raw complaint uploads per day. A date
  range is aggregated on demand by running the same deduplication over every
  complaint in range.

Callers hold the ``pnl-complaints`` advisory lock around the read-modify-write
workflows here.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from opsboard.core.storage import SnapshotStore
from opsboard.models.enums import ALL_SERVICE_KEYS
from opsboard.services.dates import utc_now_iso
from opsboard.services.sale_dedup import (
    SERVICE_NAMES,
    Complaint,
    ComplaintsDataset,
    extract_raw_complaints,
    filter_complaints_by_date_range,
    normalize_complaint,
    process_complaints,
    service_volumes,
)


logger = logging.getLogger(__name__)

PNL_COMPLAINTS_PATH = 'pnl-complaints.json'
PNL_COMPLAINTS_LOCK = 'pnl-complaints'
DAILY_COMPLAINTS_PREFIX = 'complaints-daily'


# =============================================================================
# Deduplicated sales dataset
# =============================================================================

async def load_complaints_dataset(store: SnapshotStore) -> Optional[Dict[str, Any]]:
    return await store.read_json(PNL_COMPLAINTS_PATH)


async def _save(store: SnapshotStore, dataset: ComplaintsDataset) -> Dict[str, Any]:
    document = dataset.to_dict()
    await store.write_json(PNL_COMPLAINTS_PATH, document)
    return document


async def replace_complaints(store: SnapshotStore, complaints: Sequence[Complaint]) -> Dict[str, Any]:
    """Process ``complaints`` and store the result as the whole dataset."""
    logger.info(f"Replacing complaints dataset with {len(complaints)} complaints")
    return await _save(store, process_complaints(complaints))


async def append_complaints(store: SnapshotStore, complaints: Sequence[Complaint]) -> Dict[str, Any]:
    """Merge ``complaints`` with the stored dataset and reprocess everything."""
    existing = await load_complaints_dataset(store)
    if existing is None:
        return await replace_complaints(store, complaints)

    previous = extract_raw_complaints(existing)
    logger.info(f"Appending {len(complaints)} complaints to {len(previous)} stored complaints")
    return await _save(store, process_complaints(previous + list(complaints)))


@dataclass
class ClearRangeResult:
    before: Dict[str, Any]
    after: Dict[str, Any]
    document: Dict[str, Any]

    def to_dict(self, start_day: Optional[str], end_day: Optional[str]) -> Dict[str, Any]:
        return {
            'clearedRange': {
                'startDate': start_day or 'beginning',
                'endDate': end_day or 'end',
            },
            'before': {
                'totalSales': self.before['totalSales'],
                'totalComplaints': self.before['totalComplaints'],
            },
            'after': {
                'totalSales': self.after['totalSales'],
                'totalComplaints': self.after['totalComplaints'],
            },
            'removed': {
                'sales': self.before['totalSales'] - self.after['totalSales'],
                'complaints': self.before['totalComplaints'] - self.after['totalComplaints'],
            },
        }


async def clear_complaints_range(
    store: SnapshotStore,
    start_day: Optional[str],
    end_day: Optional[str],
) -> ClearRangeResult:
    """
    Drop complaints created within ``[start_day, end_day]`` and reprocess the rest.

    Missing bounds are open. With no stored dataset an empty one is written.
    """
    existing = await load_complaints_dataset(store)
    before = summarize_complaints(existing)
    remaining = filter_complaints_by_date_range(
        extract_raw_complaints(existing), start_day, end_day, keep_inside=False
    )
    document = await _save(store, process_complaints(remaining))
    after = summarize_complaints(document)
    logger.info(
        f"Cleared complaints from {start_day or 'beginning'} to {end_day or 'end'}: "
        f"{before['totalSales'] - after['totalSales']} sales removed"
    )
    return ClearRangeResult(before=before, after=after, document=document)


def summarize_complaints(document: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """totalSales, totalComplaints, salesByService and lastUpdated for a dataset."""
    if not document:
        return {
            'totalSales': 0,
            'totalComplaints': 0,
            'salesByService': service_volumes(None),
            'lastUpdated': None,
        }
    return {
        'totalSales': (document.get('summary') or {}).get('totalUniqueSales', 0),
        'totalComplaints': document.get('rawComplaintsCount', 0),
        'salesByService': service_volumes(document),
        'lastUpdated': document.get('lastUpdated'),
    }


def complaints_status(document: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not document:
        return {
            'hasData': False,
            'lastUpdated': None,
            'totalComplaints': 0,
            'totalUniqueSales': 0,
            'services': {},
        }
    volumes = service_volumes(document)
    return {
        'hasData': True,
        'lastUpdated': document.get('lastUpdated'),
        'totalComplaints': document.get('rawComplaintsCount', 0),
        'totalUniqueSales': (document.get('summary') or {}).get('totalUniqueSales', 0),
        'services': {
            key: {'name': SERVICE_NAMES[key], 'uniqueSales': volumes[key]}
            for key in ALL_SERVICE_KEYS
        },
    }


def service_breakdown(document: Dict[str, Any]) -> Dict[str, Dict[str, int]]:
    """uniqueSales and totalComplaints for every service that saw complaints."""
    breakdown = {}
    for key, service in (document.get('services') or {}).items():
        if service.get('uniqueSales') or service.get('totalComplaints'):
            breakdown[key] = {
                'uniqueSales': service.get('uniqueSales', 0),
                'totalComplaints': service.get('totalComplaints', 0),
            }
    return breakdown


# =============================================================================
# Daily complaint uploads
# =============================================================================

def daily_complaints_path(day: str) -> str:
    return f"{DAILY_COMPLAINTS_PREFIX}/{day}.json"


async def store_daily_complaints(
    store: SnapshotStore,
    day: str,
    complaints: Sequence[Complaint],
) -> Dict[str, Any]:
    document = {
        'date': day,
        'lastUpdated': utc_now_iso(),
        'complaints': [complaint.to_dict() for complaint in complaints],
        'totalComplaints': len(complaints),
    }
    await store.write_json(daily_complaints_path(day), document)
    logger.info(f"Stored {len(complaints)} complaints for {day}")
    return document


async def get_daily_complaints(store: SnapshotStore, day: str) -> Optional[Dict[str, Any]]:
    return await store.read_json(daily_complaints_path(day))


async def list_daily_complaint_dates(store: SnapshotStore) -> List[str]:
    return await store.list_dates(f"{DAILY_COMPLAINTS_PREFIX}/")


async def aggregate_daily_complaints(
    store: SnapshotStore,
    start_day: Optional[str] = None,
    end_day: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Deduplicate every stored daily complaint in ``[start_day, end_day]``.

    Returns None when no daily upload falls in the range.
    """
    days = [
        day for day in await list_daily_complaint_dates(store)
        if (not start_day or day >= start_day) and (not end_day or day <= end_day)
    ]
    if not days:
        return None

    complaints: List[Complaint] = []
    for day in days:
        document = await get_daily_complaints(store, day)
        if document is None:
            continue
        complaints.extend(normalize_complaint(raw) for raw in document.get('complaints') or [])

    dataset = process_complaints(complaints)
    return {
        'totalComplaints': len(complaints),
        'dateRange': {'start': days[0], 'end': days[-1]},
        'volumes': {key: service.unique_sales for key, service in dataset.services.items()},
        'services': {
            key: service.to_dict()
            for key, service in dataset.services.items()
            if service.total_complaints
        },
        'skipped': dataset.skipped.to_dict(),
    }
