"""
Tests for complaint-aware prospect conversions.

Covers:
1. Prospect flags and the service groups they count towards
2. Conversions from received payments on the analysis day
3. Clean vs complained conversions, matched by contract, maid or client
4. The stored-data workflow and its missing-data cases
"""

from typing import List

import pytest

from opsboard.models.enums import PaymentStatus
from opsboard.services.complaints import store_daily_complaints
from opsboard.services.conversions import (
    Prospect,
    build_conversion_report,
    complaints_for,
    conversions_with_complaints,
    group_for_service,
    list_prospect_dates,
    load_prospects,
    save_prospects,
)
from opsboard.services.payments import Payment, process_payments, save_payments
from opsboard.services.sale_dedup import Complaint


DAY = '2026-02-13'


def paid(contract_id: str, service: str, day: str = DAY,
         status: PaymentStatus = PaymentStatus.RECEIVED) -> Payment:
    return Payment(contract_id=contract_id, payment_type=service, service=service,
                   status=status, date_of_payment=day)


@pytest.fixture
def prospects() -> List[Prospect]:
    return [
        Prospect.from_dict({'contractId': 'C1', 'maidId': 'M1', 'clientId': 'K1',
                            'isOECProspect': True, 'isTravelVisaProspect': True}),
        Prospect.from_dict({'contractId': 'C2', 'isOECProspect': True}),
        Prospect.from_dict({'contractId': 'C3', 'isFilipinaPassportRenewalProspect': True}),
        Prospect.from_dict({'contractId': '', 'isOWWAProspect': True}),
    ]


@pytest.fixture
def payments() -> List[Payment]:
    return [
        paid('C1', 'oec'),
        paid('C1', 'ttl'),
        paid('C2', 'oec', status=PaymentStatus.PRE_PDP),
        paid('C3', 'filipinaPP', day='2026-02-12'),
        paid('C9', 'owwa'),
    ]


# =============================================================================
# BUILDING BLOCKS
# =============================================================================


class TestProspects:

    def test_flags_become_groups(self, prospects):
        assert prospects[0].groups == frozenset({'oec', 'travelVisa'})
        assert prospects[2].groups == frozenset({'filipinaPassportRenewal'})

    def test_only_true_flags_count(self):
        prospect = Prospect.from_dict({'contractId': 'C1', 'isOECProspect': 'true', 'isOWWAProspect': False})

        assert prospect.groups == frozenset()

    def test_to_dict_lists_every_flag(self, prospects):
        document = prospects[1].to_dict()

        assert document['isOECProspect'] is True
        assert document['isTravelVisaProspect'] is False
        assert Prospect.from_dict(document) == prospects[1]

    @pytest.mark.parametrize('service,group', [
        ('oec', 'oec'),
        ('schengen', 'travelVisa'),
        ('gcc', 'travelVisa'),
        ('ethiopianPP', 'ethiopianPassportRenewal'),
        ('other', None),
    ])
    def test_group_for_service(self, service, group):
        assert group_for_service(service) == group

    def test_complaints_match_any_identifier(self, prospects):
        complaints = [
            Complaint(contract_id='C1', complaint_type='OEC'),
            Complaint(housemaid_id='M1', complaint_type='OEC'),
            Complaint(client_id='K1', complaint_type='OEC'),
            Complaint(contract_id='C2', complaint_type='OEC'),
        ]

        assert len(complaints_for(prospects[0], complaints)) == 3
        assert complaints_for(prospects[0], [Complaint(complaint_type='OEC')]) == []


# =============================================================================
# REPORT
# =============================================================================


class TestConversionReport:

    def test_counts_per_group(self, prospects, payments):
        complaints = [Complaint(housemaid_id='M1', complaint_type='Overseas Employment Certificate')]

        report = build_conversion_report(DAY, prospects, payments, complaints).to_dict()

        assert report['services']['oec'] == {
            'prospects': 2,
            'conversions': 1,
            'cleanConversions': 0,
            'withComplaints': 1,
            'conversionRate': 50.0,
            'cleanConversionRate': 0.0,
        }
        assert report['services']['travelVisa']['conversions'] == 1
        assert report['services']['travelVisa']['cleanConversionRate'] == 100.0
        assert report['services']['filipinaPassportRenewal']['conversions'] == 0
        assert report['services']['owwa']['prospects'] == 0
        assert report['totals'] == {
            'prospects': 4,
            'conversions': 2,
            'cleanConversions': 1,
            'withComplaints': 1,
            'conversionRate': 50.0,
            'cleanConversionRate': 25.0,
        }

    def test_prospects_count_only_towards_flagged_groups(self, prospects, payments):
        report = build_conversion_report(DAY, prospects, payments, []).to_dict()

        assert report['services']['travelVisa']['prospects'] == 1
        assert report['services']['ethiopianPassportRenewal']['prospects'] == 0

    def test_conversion_entries(self, prospects, payments):
        complaints = [Complaint(contract_id='C1', complaint_type='Visa', service_key='ttl')]

        report = build_conversion_report(DAY, prospects, payments, complaints)

        assert report.conversions == [
            {'contractId': 'C1', 'clientId': 'K1', 'maidId': 'M1', 'service': 'oec',
             'paymentDates': [DAY], 'hasComplaint': False, 'complaintTypes': []},
            {'contractId': 'C1', 'clientId': 'K1', 'maidId': 'M1', 'service': 'travelVisa',
             'paymentDates': [DAY], 'hasComplaint': True, 'complaintTypes': ['Visa']},
        ]

    def test_untracked_complaints_keep_conversions_clean(self, prospects, payments):
        complaints = [Complaint(contract_id='C1', complaint_type='Salary dispute')]

        report = build_conversion_report(DAY, prospects, payments, complaints).to_dict()

        assert report['totals']['withComplaints'] == 0
        assert report['totals']['cleanConversions'] == 2

    def test_without_payments(self, prospects):
        report = build_conversion_report(DAY, prospects, [], [])

        assert report.has_payments is False
        assert report.to_dict()['totals']['conversions'] == 0
        assert report.to_dict()['totals']['conversionRate'] == 0.0


# =============================================================================
# STORED DATA
# =============================================================================


class TestStoredConversions:

    @pytest.mark.asyncio
    async def test_no_prospects_for_day(self, snapshot_store):
        assert await load_prospects(snapshot_store, DAY) is None
        assert await conversions_with_complaints(snapshot_store, DAY) is None

    @pytest.mark.asyncio
    async def test_end_to_end(self, snapshot_store, prospects):
        await save_prospects(snapshot_store, DAY, prospects)
        await save_payments(snapshot_store, process_payments([
            {'PAYMENT_TYPE': "Maid's OEC", 'CONTRACT_ID': 'C2', 'STATUS': 'RECEIVED',
             'DATE_OF_PAYMENT': f"{DAY} 11:00:00"},
        ]))
        await store_daily_complaints(snapshot_store, DAY, [
            Complaint(contract_id='C2', complaint_type='OEC', creation_date=DAY),
        ])

        report = (await conversions_with_complaints(snapshot_store, DAY)).to_dict()

        assert report['hasPaymentData'] is True
        assert report['services']['oec']['conversions'] == 1
        assert report['services']['oec']['withComplaints'] == 1
        assert await list_prospect_dates(snapshot_store) == [DAY]

    @pytest.mark.asyncio
    async def test_prospects_without_payments(self, snapshot_store, prospects):
        await save_prospects(snapshot_store, DAY, prospects)

        report = await conversions_with_complaints(snapshot_store, DAY)

        assert report.has_payments is False
        assert report.to_dict()['totals']['prospects'] == 4
