"""
Prospect conversions, split by whether the customer also complained.

A prospect is a contract the chat pipeline flagged as interested in one or
more service groups. It converts when a received payment for that group is
made on the analysis day; a conversion is *clean* when no complaint about the
same group was logged for the same customer that day.

Service groups and the payment services that convert them:

    oec                       -> oec
    owwa                      -> owwa
    travelVisa                -> ttl, tte, ttj, schengen, gcc
    filipinaPassportRenewal   -> filipinaPP
    ethiopianPassportRenewal  -> ethiopianPP

A prospect counts only towards the groups it is flagged for.

Prospects are stored per day in ``prospects/daily/<date>.json`` and
``prospects/latest.json``; payments and complaints come from
``payments-data.json`` and ``complaints-daily/<date>.json``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set

from opsboard.core.storage import SnapshotStore
from opsboard.models.enums import ServiceKey
from opsboard.services.complaints import get_daily_complaints
from opsboard.services.dates import utc_now_iso
from opsboard.services.metrics import round_to
from opsboard.services.payments import Payment, filter_payments_by_date, load_payments
from opsboard.services.sale_dedup import Complaint, normalize_complaint, service_key_for


logger = logging.getLogger(__name__)

PROSPECTS_PREFIX = 'prospects'

SERVICE_GROUPS: Dict[str, FrozenSet[str]] = {
    'oec': frozenset({ServiceKey.OEC.value}),
    'owwa': frozenset({ServiceKey.OWWA.value}),
    'travelVisa': frozenset({
        ServiceKey.TTL.value,
        ServiceKey.TTE.value,
        ServiceKey.TTJ.value,
        ServiceKey.SCHENGEN.value,
        ServiceKey.GCC.value,
    }),
    'filipinaPassportRenewal': frozenset({ServiceKey.FILIPINA_PP.value}),
    'ethiopianPassportRenewal': frozenset({ServiceKey.ETHIOPIAN_PP.value}),
}

PROSPECT_FLAGS: Dict[str, str] = {
    'isOECProspect': 'oec',
    'isOWWAProspect': 'owwa',
    'isTravelVisaProspect': 'travelVisa',
    'isFilipinaPassportRenewalProspect': 'filipinaPassportRenewal',
    'isEthiopianPassportRenewalProspect': 'ethiopianPassportRenewal',
}


def group_for_service(service: Optional[str]) -> Optional[str]:
    for group, services in SERVICE_GROUPS.items():
        if service in services:
            return group
    return None


# =============================================================================
# PROSPECTS
# =============================================================================

@dataclass(frozen=True)
class Prospect:
    contract_id: str
    maid_id: str = ''
    client_id: str = ''
    groups: FrozenSet[str] = frozenset()

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> 'Prospect':
        groups = frozenset(group for flag, group in PROSPECT_FLAGS.items() if row.get(flag) is True)
        return cls(
            contract_id=str(row.get('contractId') or '').strip(),
            maid_id=str(row.get('maidId') or '').strip(),
            client_id=str(row.get('clientId') or '').strip(),
            groups=groups,
        )

    def to_dict(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {
            'contractId': self.contract_id,
            'maidId': self.maid_id,
            'clientId': self.client_id,
        }
        for flag, group in PROSPECT_FLAGS.items():
            document[flag] = group in self.groups
        return document


async def save_prospects(store: SnapshotStore, day: str, prospects: Sequence[Prospect]) -> Dict[str, Any]:
    document = {
        'analysisDate': day,
        'lastUpdated': utc_now_iso(),
        'totalProspects': len(prospects),
        'prospects': [prospect.to_dict() for prospect in prospects],
    }
    await store.save_daily_snapshot(PROSPECTS_PREFIX, day, document)
    logger.info(f"Stored {len(prospects)} prospects for {day}")
    return document


async def load_prospects(store: SnapshotStore, day: str) -> Optional[List[Prospect]]:
    """The day's prospects, or None when nothing was stored for it."""
    document = await store.get_daily_snapshot(PROSPECTS_PREFIX, day)
    if document is None:
        return None
    return [Prospect.from_dict(row) for row in document.get('prospects') or [] if isinstance(row, dict)]


async def list_prospect_dates(store: SnapshotStore) -> List[str]:
    return await store.list_dates(f"{PROSPECTS_PREFIX}/daily/")


# =============================================================================
# CONVERSIONS
# =============================================================================

@dataclass
class GroupStats:
    prospects: int = 0
    conversions: int = 0
    clean_conversions: int = 0
    with_complaints: int = 0

    def add(self, converted: bool, complained: bool) -> None:
        self.prospects += 1
        if converted:
            self.conversions += 1
            if complained:
                self.with_complaints += 1
            else:
                self.clean_conversions += 1

    def _rate(self, part: int) -> float:
        return round_to(part / self.prospects * 100) if self.prospects else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'prospects': self.prospects,
            'conversions': self.conversions,
            'cleanConversions': self.clean_conversions,
            'withComplaints': self.with_complaints,
            'conversionRate': self._rate(self.conversions),
            'cleanConversionRate': self._rate(self.clean_conversions),
        }


@dataclass
class ConversionReport:
    day: str
    groups: Dict[str, GroupStats] = field(default_factory=lambda: {g: GroupStats() for g in SERVICE_GROUPS})
    conversions: List[Dict[str, Any]] = field(default_factory=list)
    has_payments: bool = True

    def to_dict(self) -> Dict[str, Any]:
        totals = GroupStats(
            prospects=sum(stats.prospects for stats in self.groups.values()),
            conversions=sum(stats.conversions for stats in self.groups.values()),
            clean_conversions=sum(stats.clean_conversions for stats in self.groups.values()),
            with_complaints=sum(stats.with_complaints for stats in self.groups.values()),
        )
        return {
            'date': self.day,
            'hasPaymentData': self.has_payments,
            'services': {group: stats.to_dict() for group, stats in self.groups.items()},
            'totals': totals.to_dict(),
            'conversions': self.conversions,
        }


def complaints_for(prospect: Prospect, complaints: Sequence[Complaint]) -> List[Complaint]:
    """Complaints logged against the prospect's contract, maid or client."""
    matches = []
    for complaint in complaints:
        if (
            (prospect.contract_id and complaint.contract_id == prospect.contract_id)
            or (prospect.maid_id and complaint.housemaid_id == prospect.maid_id)
            or (prospect.client_id and complaint.client_id == prospect.client_id)
        ):
            matches.append(complaint)
    return matches


def _paid_groups(payments: Sequence[Payment]) -> Dict[str, Dict[str, Set[str]]]:
    """contract -> group -> payment days."""
    paid: Dict[str, Dict[str, Set[str]]] = {}
    for payment in payments:
        group = group_for_service(payment.service)
        if group is None:
            continue
        paid.setdefault(payment.contract_id, {}).setdefault(group, set()).add(payment.date_of_payment)
    return paid


def build_conversion_report(
    day: str,
    prospects: Sequence[Prospect],
    payments: Sequence[Payment],
    complaints: Sequence[Complaint],
) -> ConversionReport:
    """
    Per-group conversion counts for one day.

    ``payments`` may hold any days and statuses; only payments received on
    ``day`` convert.
    """
    report = ConversionReport(day=day, has_payments=bool(payments))
    paid = _paid_groups(filter_payments_by_date(payments, day))

    for prospect in prospects:
        if not prospect.contract_id or not prospect.groups:
            continue
        matched = complaints_for(prospect, complaints)
        complained_groups: Dict[str, List[str]] = {}
        for complaint in matched:
            group = group_for_service(complaint.service_key or service_key_for(complaint.complaint_type))
            if group is not None:
                complained_groups.setdefault(group, []).append(complaint.complaint_type)

        contract_paid = paid.get(prospect.contract_id, {})
        for group in SERVICE_GROUPS:
            if group not in prospect.groups:
                continue
            converted = group in contract_paid
            complained = group in complained_groups
            report.groups[group].add(converted, complained)
            if converted:
                report.conversions.append({
                    'contractId': prospect.contract_id,
                    'clientId': prospect.client_id,
                    'maidId': prospect.maid_id,
                    'service': group,
                    'paymentDates': sorted(contract_paid[group]),
                    'hasComplaint': complained,
                    'complaintTypes': complained_groups.get(group, []),
                })

    logger.info(
        f"Conversions for {day}: {len(report.conversions)} from {len(prospects)} prospects"
    )
    return report


async def conversions_with_complaints(store: SnapshotStore, day: str) -> Optional[ConversionReport]:
    """The day's report, or None when no prospects were stored for ``day``."""
    prospects = await load_prospects(store, day)
    if prospects is None:
        return None

    payments = await load_payments(store)
    if not payments:
        logger.warning(f"No payment data available for conversions on {day}")

    daily = await get_daily_complaints(store, day)
    complaints = [
        normalize_complaint(row) for row in (daily or {}).get('complaints') or [] if isinstance(row, dict)
    ]
    return build_conversion_report(day, prospects, payments, complaints)
