"""
Tests for the complaint persistence workflows.

Covers replace/append of the deduplicated sales dataset, clearing a date
range, dataset status, and aggregation of daily complaint uploads.
"""

import pytest

from opsboard.services.complaints import (
    PNL_COMPLAINTS_PATH,
    aggregate_daily_complaints,
    append_complaints,
    clear_complaints_range,
    complaints_status,
    get_daily_complaints,
    list_daily_complaint_dates,
    replace_complaints,
    service_breakdown,
    store_daily_complaints,
    summarize_complaints,
)
from opsboard.services.sale_dedup import Complaint, normalize_complaint


pytestmark = pytest.mark.asyncio


def complaint(contract_id: str, complaint_type: str, creation_date: str) -> Complaint:
    return Complaint(contract_id=contract_id, complaint_type=complaint_type, creation_date=creation_date)


@pytest.fixture
def initial_complaints(sample_complaints):
    return [normalize_complaint(row) for row in sample_complaints]


# =============================================================================
# SALES DATASET
# =============================================================================


class TestSalesDataset:

    async def test_replace_stores_processed_dataset(self, snapshot_store, initial_complaints):
        document = await replace_complaints(snapshot_store, initial_complaints)

        stored = await snapshot_store.read_json(PNL_COMPLAINTS_PATH)
        assert stored['summary']['totalUniqueSales'] == 2
        assert stored['services']['oec']['byMonth'] == {'2026-01': 1, '2026-06': 1}
        assert document['rawComplaintsCount'] == 3

    async def test_replace_discards_previous_data(self, snapshot_store, initial_complaints):
        await replace_complaints(snapshot_store, initial_complaints)

        document = await replace_complaints(snapshot_store, [complaint('C5', 'TTL', '2026-03-01')])

        assert document['services']['oec']['uniqueSales'] == 0
        assert document['services']['ttl']['uniqueSales'] == 1

    async def test_append_reprocesses_with_stored_complaints(self, snapshot_store, initial_complaints):
        await replace_complaints(snapshot_store, initial_complaints)

        document = await append_complaints(snapshot_store, [
            complaint('C1', 'OEC', '2026-02-10'),
            complaint('C2', 'Schengen Visa', '2026-02-11'),
        ])

        assert document['rawComplaintsCount'] == 5
        assert document['services']['oec']['uniqueSales'] == 2
        assert document['services']['oec']['sales'][0]['occurrenceCount'] == 3
        assert document['services']['schengen']['uniqueSales'] == 1

    async def test_append_twice_keeps_schengen(self, snapshot_store):
        await append_complaints(snapshot_store, [complaint('C2', 'Schengen Visa', '2026-02-11')])

        document = await append_complaints(snapshot_store, [complaint('C3', 'OEC', '2026-02-12')])

        assert document['services']['schengen']['uniqueSales'] == 1
        assert document['skipped']['unmappedType'] == 0

    async def test_append_without_stored_dataset(self, snapshot_store, initial_complaints):
        document = await append_complaints(snapshot_store, initial_complaints)

        assert document['summary']['totalUniqueSales'] == 2

    async def test_clear_range(self, snapshot_store, initial_complaints):
        await replace_complaints(snapshot_store, initial_complaints)

        result = await clear_complaints_range(snapshot_store, '2026-06-01', '2026-06-30')

        assert result.to_dict('2026-06-01', '2026-06-30') == {
            'clearedRange': {'startDate': '2026-06-01', 'endDate': '2026-06-30'},
            'before': {'totalSales': 2, 'totalComplaints': 3},
            'after': {'totalSales': 1, 'totalComplaints': 2},
            'removed': {'sales': 1, 'complaints': 1},
        }
        stored = await snapshot_store.read_json(PNL_COMPLAINTS_PATH)
        assert stored['services']['oec']['byMonth'] == {'2026-01': 1}

    async def test_clear_open_range_empties_dataset(self, snapshot_store, initial_complaints):
        await replace_complaints(snapshot_store, initial_complaints)

        result = await clear_complaints_range(snapshot_store, None, None)

        data = result.to_dict(None, None)
        assert data['clearedRange'] == {'startDate': 'beginning', 'endDate': 'end'}
        assert data['after'] == {'totalSales': 0, 'totalComplaints': 0}

    async def test_clear_without_dataset(self, snapshot_store):
        result = await clear_complaints_range(snapshot_store, '2026-01-01', None)

        assert result.before['totalSales'] == 0
        assert result.after['totalSales'] == 0


class TestDatasetSummaries:

    async def test_status_and_breakdown(self, snapshot_store, initial_complaints):
        assert complaints_status(None)['hasData'] is False

        document = await replace_complaints(snapshot_store, initial_complaints)
        status = complaints_status(document)

        assert status['hasData'] is True
        assert status['totalComplaints'] == 3
        assert status['totalUniqueSales'] == 2
        assert status['services']['oec'] == {'name': 'Overseas Employment Certificate', 'uniqueSales': 2}
        assert service_breakdown(document) == {'oec': {'uniqueSales': 2, 'totalComplaints': 3}}
        assert summarize_complaints(document)['salesByService']['oec'] == 2


# =============================================================================
# DAILY UPLOADS
# =============================================================================


class TestDailyComplaints:

    async def test_store_and_read_day(self, snapshot_store):
        document = await store_daily_complaints(
            snapshot_store, '2026-02-20', [complaint('C1', 'OEC', '2026-02-20 09:00:00')]
        )

        assert document['totalComplaints'] == 1
        stored = await get_daily_complaints(snapshot_store, '2026-02-20')
        assert stored['complaints'][0]['contractId'] == 'C1'
        assert await list_daily_complaint_dates(snapshot_store) == ['2026-02-20']

    async def test_aggregate_deduplicates_across_days(self, snapshot_store):
        await store_daily_complaints(snapshot_store, '2026-02-20', [complaint('C1', 'OEC', '2026-02-20')])
        await store_daily_complaints(snapshot_store, '2026-02-25', [
            complaint('C1', 'OEC', '2026-02-25'),
            complaint('C2', 'Tourist Visa to Egypt', '2026-02-25'),
        ])

        aggregate = await aggregate_daily_complaints(snapshot_store)

        assert aggregate['totalComplaints'] == 3
        assert aggregate['dateRange'] == {'start': '2026-02-20', 'end': '2026-02-25'}
        assert aggregate['volumes']['oec'] == 1
        assert aggregate['volumes']['tte'] == 1
        assert set(aggregate['services']) == {'oec', 'tte'}

    async def test_aggregate_range(self, snapshot_store):
        await store_daily_complaints(snapshot_store, '2026-02-20', [complaint('C1', 'OEC', '2026-02-20')])
        await store_daily_complaints(snapshot_store, '2026-02-25', [complaint('C2', 'TTJ', '2026-02-25')])

        aggregate = await aggregate_daily_complaints(snapshot_store, '2026-02-21', '2026-02-28')

        assert aggregate['totalComplaints'] == 1
        assert aggregate['volumes']['ttj'] == 1
        assert aggregate['volumes']['oec'] == 0

    async def test_aggregate_without_uploads(self, snapshot_store):
        assert await aggregate_daily_complaints(snapshot_store) is None
        assert await aggregate_daily_complaints(snapshot_store, '2026-01-01', '2026-01-31') is None
