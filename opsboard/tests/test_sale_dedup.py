"""
Tests for complaint-to-sale deduplication.

Covers:
1. Complaint type mapping and field aliases
2. Sale periods built with the three-calendar-month window
3. Per-service rollups (unique sales, clients, contracts, month histogram)
4. Skipped complaint accounting
5. Re-expansion of a stored dataset and date range filtering
"""

from datetime import datetime
from typing import List

import pytest

from opsboard.models.enums import ALL_SERVICE_KEYS
from opsboard.services.sale_dedup import (
    Complaint,
    build_sale_periods,
    extract_raw_complaints,
    filter_complaints_by_date_range,
    normalize_complaint,
    process_complaints,
    service_key_for,
    service_volumes,
)


pytestmark = pytest.mark.pipeline


def oec(contract_id: str, creation_date: str, client_id: str = '') -> Complaint:
    return Complaint(
        contract_id=contract_id,
        client_id=client_id,
        complaint_type='Overseas Employment Certificate',
        creation_date=creation_date,
    )


def total_complaints(complaints: List[Complaint]) -> int:
    return len(complaints)


# =============================================================================
# MAPPING AND NORMALIZATION
# =============================================================================


class TestServiceMapping:

    @pytest.mark.parametrize('complaint_type,expected', [
        ('Overseas Employment Certificate', 'oec'),
        ('  OWWA Registration ', 'owwa'),
        ('Tourist Visa to Lebanon', 'ttl'),
        ('travel to egypt', 'tte'),
        ('Tourist visa to Jordan', 'ttj'),
        ('Ethiopian Passport Renewal', 'ethiopianPP'),
        ('Filipina PP', 'filipinaPP'),
        ('GCC Travel', 'gcc'),
        ('Schengen Visa', 'schengen'),
        ('Salary dispute', None),
        ('', None),
    ])
    def test_service_key_for(self, complaint_type, expected):
        assert service_key_for(complaint_type) == expected

    def test_normalize_accepts_export_columns(self):
        complaint = normalize_complaint({
            'CONTRACT_ID': 123,
            'CLIENT_ID': 'K1',
            'HOUSEMAID_ID': 'H1',
            'COMPLAINT_TYPE': 'OEC',
            'CREATION_DATE': '2026-01-01 10:00:00.000',
        })

        assert complaint.contract_id == '123'
        assert complaint.client_id == 'K1'
        assert complaint.housemaid_id == 'H1'
        assert complaint.service_key is None

    def test_normalize_accepts_camel_case_and_service_key(self):
        complaint = normalize_complaint({
            'contractId': 'C1',
            'complaintType': 'Schengen Countries',
            'creationDate': '2026-01-01',
            'serviceKey': 'schengen',
        })

        assert complaint.contract_id == 'C1'
        assert complaint.service_key == 'schengen'

    def test_normalize_ignores_unknown_service_key(self):
        assert normalize_complaint({'serviceKey': 'lunch'}).service_key is None


# =============================================================================
# SALE PERIODS
# =============================================================================


class TestSalePeriods:

    def test_first_two_merge_and_third_opens_new_period(self):
        periods = build_sale_periods([
            datetime(2026, 6, 1),
            datetime(2026, 1, 1),
            datetime(2026, 1, 20),
        ])

        assert len(periods) == 2
        assert periods[0].start == datetime(2026, 1, 1)
        assert periods[0].end == datetime(2026, 1, 20)
        assert len(periods[0].dates) == 2
        assert periods[1].start == datetime(2026, 6, 1)

    def test_window_is_anchored_at_period_start(self):
        # Mar 1 joins the Jan 1 period, Apr 2 is past Jan 1 + 3 months
        periods = build_sale_periods([datetime(2026, 1, 1), datetime(2026, 3, 1), datetime(2026, 4, 2)])

        assert [len(p.dates) for p in periods] == [2, 1]

    def test_no_dates(self):
        assert build_sale_periods([]) == []

    def test_adding_complaints_never_shrinks_the_period_count(self):
        additions = [
            datetime(2026, 1, 1),
            datetime(2026, 2, 10),   # inside the Jan 1 window
            datetime(2026, 4, 1),    # Jan 1 + 3 months: new period
            datetime(2026, 3, 31),   # back inside the Jan 1 window
            datetime(2026, 5, 15),   # inside the Apr 1 window
            datetime(2026, 9, 1),
            datetime(2026, 1, 15),   # inside the first window again
            datetime(2027, 1, 1),
        ]
        dates: List[datetime] = []
        previous: List[datetime] = []

        for when in additions:
            dates.append(when)
            starts = [p.start for p in build_sale_periods(dates)]

            assert len(starts) >= len(previous)
            assert starts[:len(previous)] == previous
            previous = starts

        assert previous == [datetime(2026, 1, 1), datetime(2026, 4, 1), datetime(2026, 9, 1), datetime(2027, 1, 1)]

    def test_later_complaints_keep_closed_periods(self):
        dates = [datetime(2026, 1, 1), datetime(2026, 1, 20), datetime(2026, 6, 1)]
        before = build_sale_periods(dates)

        after = build_sale_periods(dates + [datetime(2026, 6, 20), datetime(2026, 10, 1)])

        assert len(after) == 3
        assert [(p.start, p.end) for p in after[:2]] == [
            (before[0].start, before[0].end),
            (datetime(2026, 6, 1), datetime(2026, 6, 20)),
        ]
        assert after[0].dates == before[0].dates


# =============================================================================
# PROCESSING
# =============================================================================


class TestProcessComplaints:

    def test_two_sales_for_one_contract(self):
        dataset = process_complaints([
            oec('C1', '2026-01-01'),
            oec('C1', '2026-01-20'),
            oec('C1', '2026-06-01'),
        ])

        service = dataset.services['oec']
        assert service.unique_sales == 2
        assert service.total_complaints == 3
        assert service.by_month == {'2026-01': 1, '2026-06': 1}
        assert service.unique_contracts == 1
        assert dataset.total_unique_sales == 2
        assert dataset.raw_complaints_count == 3

    def test_sale_records(self):
        dataset = process_complaints([oec('C1', '2026-01-20'), oec('C1', '2026-01-01 09:00:00')])

        (sale,) = dataset.services['oec'].sales
        assert sale.id == 'sale_oec_C1_no-client_no-housemaid_2026-01-01'
        assert sale.first_sale_date == '2026-01-01T09:00:00'
        assert sale.last_sale_date == '2026-01-20T00:00:00'
        assert sale.occurrence_count == 2
        assert sale.complaint_dates == ['2026-01-01T09:00:00', '2026-01-20T00:00:00']

    def test_groups_are_separate_per_identity(self):
        dataset = process_complaints([
            oec('C1', '2026-01-01', client_id='K1'),
            oec('C2', '2026-01-02', client_id='K1'),
            Complaint(contract_id='C1', client_id='K1', complaint_type='TTL', creation_date='2026-01-03'),
        ])

        assert dataset.services['oec'].unique_sales == 2
        assert dataset.services['oec'].unique_clients == 1
        assert dataset.services['oec'].unique_contracts == 2
        assert dataset.services['ttl'].unique_sales == 1
        assert dataset.total_unique_clients == 1
        assert dataset.total_unique_contracts == 2

    def test_occurrences_partition_complaints(self):
        complaints = [oec('C1', f"2026-{month:02d}-10") for month in range(1, 13)]

        dataset = process_complaints(complaints)

        service = dataset.services['oec']
        assert sum(sale.occurrence_count for sale in service.sales) == total_complaints(complaints)
        assert service.unique_sales <= service.total_complaints
        assert service.unique_sales == 4

    def test_untracked_and_undated_complaints_are_skipped(self):
        dataset = process_complaints([
            oec('C1', '2026-01-01'),
            Complaint(contract_id='C1', complaint_type='Salary dispute', creation_date='2026-01-01'),
            oec('C1', 'sometime'),
        ])

        assert dataset.skipped.unmapped_type == 1
        assert dataset.skipped.invalid_date == 1
        assert dataset.raw_complaints_count == 1
        assert dataset.to_dict()['skipped'] == {'unmappedType': 1, 'invalidDate': 1}

    def test_every_service_is_present(self):
        document = process_complaints([]).to_dict()

        assert list(document['services']) == ALL_SERVICE_KEYS
        assert document['summary']['totalUniqueSales'] == 0


# =============================================================================
# STORED DATASET HELPERS
# =============================================================================


class TestStoredDataset:

    def test_reprocessing_the_stored_dataset_is_stable(self):
        document = process_complaints([
            oec('C1', '2026-01-01'),
            oec('C1', '2026-01-20'),
            oec('C1', '2026-06-01'),
            Complaint(contract_id='C9', complaint_type='Schengen Visa', creation_date='2026-02-02'),
        ]).to_dict()

        complaints = extract_raw_complaints(document)
        again = process_complaints(complaints).to_dict()

        assert len(complaints) == 4
        assert again['services']['oec']['uniqueSales'] == 2
        # Display names do not map back through the complaint types
        assert again['services']['schengen']['uniqueSales'] == 1
        assert again['skipped'] == {'unmappedType': 0, 'invalidDate': 0}

    def test_extract_from_nothing(self):
        assert extract_raw_complaints(None) == []

    def test_filter_bounds_are_inclusive_days(self):
        complaints = [
            oec('C1', '2026-01-31 23:59:59'),
            oec('C1', '2026-02-01 00:00:00'),
            oec('C1', '2026-02-28 18:00:00'),
            oec('C1', '2026-03-01 00:00:01'),
            oec('C1', 'n/a'),
        ]

        inside = filter_complaints_by_date_range(complaints, '2026-02-01', '2026-02-28')
        outside = filter_complaints_by_date_range(complaints, '2026-02-01', '2026-02-28', keep_inside=False)

        assert [c.creation_date for c in inside] == ['2026-02-01 00:00:00', '2026-02-28 18:00:00']
        assert len(outside) == 3

    def test_open_ended_filter(self):
        complaints = [oec('C1', '2026-01-01'), oec('C1', '2026-05-01')]

        assert len(filter_complaints_by_date_range(complaints, start_day='2026-02-01')) == 1
        assert len(filter_complaints_by_date_range(complaints, end_day='2026-02-01')) == 1
        assert len(filter_complaints_by_date_range(complaints)) == 2

    def test_service_volumes(self):
        document = process_complaints([oec('C1', '2026-01-01')]).to_dict()

        volumes = service_volumes(document)

        assert volumes['oec'] == 1
        assert volumes['ttl'] == 0
        assert service_volumes(None) == dict.fromkeys(ALL_SERVICE_KEYS, 0)
