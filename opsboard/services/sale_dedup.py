"""
Complaint-to-sale deduplication.

Complaints are the only signal the business has that a service was sold, and
customers complain repeatedly about one purchase. This module turns a raw
complaint log into distinct sales per service.

Algorithm Overview:
    1. Map each complaint type onto a service key (COMPLAINT_TYPE_MAP). Types
       that are not tracked are dropped.
    2. Parse the creation date. Complaints without a parseable date are
       dropped.
    3. Group by (service, contract, client, housemaid).
    4. Within each group, walk complaints in chronological order. A complaint
       joins the first sale period whose start date is within three calendar
       months of it (see ``dates.is_within_three_months``); otherwise it opens
       a new period anchored at its own date.
    5. Each period is one sale. Sales feed per-service counts and a month
       histogram keyed by the period's start month.

Dropped complaints are counted in ``ComplaintsDataset.skipped`` and logged so
ingestion problems stay visible.

Persisted shape (``pnl-complaints.json``):
    {
        "lastUpdated": "...",
        "rawComplaintsCount": 3,
        "skipped": {"unmappedType": 0, "invalidDate": 0},
        "services": {"oec": {"serviceKey": "oec", "uniqueSales": 2, ...}, ...},
        "summary": {"totalUniqueSales": 2, ...}
    }
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from opsboard.models.enums import ALL_SERVICE_KEYS, ServiceKey
from opsboard.services.dates import is_within_three_months, month_key, parse_timestamp, to_iso, utc_now_iso


logger = logging.getLogger(__name__)


# =============================================================================
# SERVICE MAPPING
# =============================================================================

COMPLAINT_TYPE_MAP: Dict[str, str] = {
    'overseas employment certificate': ServiceKey.OEC.value,
    'overseas': ServiceKey.OEC.value,
    'oec': ServiceKey.OEC.value,

    'client owwa registration': ServiceKey.OWWA.value,
    'owwa registration': ServiceKey.OWWA.value,
    'owwa': ServiceKey.OWWA.value,

    'tourist visa to lebanon': ServiceKey.TTL.value,
    'travel to lebanon': ServiceKey.TTL.value,
    'ttl': ServiceKey.TTL.value,

    'tourist visa to egypt': ServiceKey.TTE.value,
    'travel to egypt': ServiceKey.TTE.value,
    'tte': ServiceKey.TTE.value,

    'tourist visa to jordan': ServiceKey.TTJ.value,
    'travel to jordan': ServiceKey.TTJ.value,
    'ttj': ServiceKey.TTJ.value,

    'ethiopian passport renewal': ServiceKey.ETHIOPIAN_PP.value,
    'ethiopian pp': ServiceKey.ETHIOPIAN_PP.value,
    'ethiopian pp renewal': ServiceKey.ETHIOPIAN_PP.value,

    'filipina passport renewal': ServiceKey.FILIPINA_PP.value,
    'filipina pp': ServiceKey.FILIPINA_PP.value,
    'filipina pp renewal': ServiceKey.FILIPINA_PP.value,

    'gcc travel': ServiceKey.GCC.value,
    'gcc': ServiceKey.GCC.value,

    'schengen': ServiceKey.SCHENGEN.value,
    'schengen visa': ServiceKey.SCHENGEN.value,
}

SERVICE_NAMES: Dict[str, str] = {
    ServiceKey.OEC.value: 'Overseas Employment Certificate',
    ServiceKey.OWWA.value: 'OWWA Registration',
    ServiceKey.TTL.value: 'Travel to Lebanon',
    ServiceKey.TTE.value: 'Travel to Egypt',
    ServiceKey.TTJ.value: 'Travel to Jordan',
    ServiceKey.SCHENGEN.value: 'Schengen Countries',
    ServiceKey.GCC.value: 'GCC',
    ServiceKey.ETHIOPIAN_PP.value: 'Ethiopian Passport Renewal',
    ServiceKey.FILIPINA_PP.value: 'Filipina Passport Renewal',
}

# Upload field aliases: export column names first, then camelCase
_FIELD_ALIASES = {
    'contract_id': ('CONTRACT_ID', 'contractId'),
    'housemaid_id': ('HOUSEMAID_ID', 'housemaidId'),
    'client_id': ('CLIENT_ID', 'clientId'),
    'complaint_type': ('COMPLAINT_TYPE', 'complaintType'),
    'creation_date': ('CREATION_DATE', 'creationDate'),
}


def service_key_for(complaint_type: Optional[str]) -> Optional[str]:
    """Service key for a complaint type, or None when the type is not tracked."""
    if not complaint_type:
        return None
    return COMPLAINT_TYPE_MAP.get(complaint_type.strip().lower())


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class Complaint:
    """
    One complaint row.

    ``service_key`` is set when the row is re-expanded from a stored dataset;
    fresh uploads leave it empty and rely on ``complaint_type``.
    """
    contract_id: str = ''
    client_id: str = ''
    housemaid_id: str = ''
    complaint_type: str = ''
    creation_date: str = ''
    service_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        document = {
            'contractId': self.contract_id,
            'clientId': self.client_id,
            'housemaidId': self.housemaid_id,
            'complaintType': self.complaint_type,
            'creationDate': self.creation_date,
        }
        if self.service_key:
            document['serviceKey'] = self.service_key
        return document


@dataclass
class SalePeriod:
    """A window of complaints that counts as one sale."""
    start: datetime
    end: datetime
    dates: List[datetime] = field(default_factory=list)

    def absorb(self, when: datetime) -> None:
        self.dates.append(when)
        if when > self.end:
            self.end = when


@dataclass
class Sale:
    id: str
    service_key: str
    contract_id: str
    client_id: str
    housemaid_id: str
    first_sale_date: str
    last_sale_date: str
    occurrence_count: int
    complaint_dates: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'serviceKey': self.service_key,
            'contractId': self.contract_id,
            'clientId': self.client_id,
            'housemaidId': self.housemaid_id,
            'firstSaleDate': self.first_sale_date,
            'lastSaleDate': self.last_sale_date,
            'occurrenceCount': self.occurrence_count,
            'complaintDates': list(self.complaint_dates),
        }


@dataclass
class ServiceSales:
    """Per-service rollup of deduplicated sales."""
    service_key: str
    service_name: str
    unique_sales: int = 0
    unique_clients: int = 0
    unique_contracts: int = 0
    total_complaints: int = 0
    by_month: Dict[str, int] = field(default_factory=dict)
    sales: List[Sale] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'serviceKey': self.service_key,
            'serviceName': self.service_name,
            'uniqueSales': self.unique_sales,
            'uniqueClients': self.unique_clients,
            'uniqueContracts': self.unique_contracts,
            'totalComplaints': self.total_complaints,
            'byMonth': dict(sorted(self.by_month.items())),
            'sales': [sale.to_dict() for sale in self.sales],
        }


@dataclass
class SkippedComplaints:
    unmapped_type: int = 0
    invalid_date: int = 0

    @property
    def total(self) -> int:
        return self.unmapped_type + self.invalid_date

    def to_dict(self) -> Dict[str, int]:
        return {'unmappedType': self.unmapped_type, 'invalidDate': self.invalid_date}


@dataclass
class ComplaintsDataset:
    services: Dict[str, ServiceSales]
    raw_complaints_count: int = 0
    total_unique_sales: int = 0
    total_unique_clients: int = 0
    total_unique_contracts: int = 0
    skipped: SkippedComplaints = field(default_factory=SkippedComplaints)
    last_updated: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'lastUpdated': self.last_updated,
            'rawComplaintsCount': self.raw_complaints_count,
            'skipped': self.skipped.to_dict(),
            'services': {key: sales.to_dict() for key, sales in self.services.items()},
            'summary': {
                'totalUniqueSales': self.total_unique_sales,
                'totalUniqueClients': self.total_unique_clients,
                'totalUniqueContracts': self.total_unique_contracts,
            },
        }


def empty_services() -> Dict[str, ServiceSales]:
    return {
        key: ServiceSales(service_key=key, service_name=SERVICE_NAMES[key])
        for key in ALL_SERVICE_KEYS
    }


# =============================================================================
# NORMALIZATION
# =============================================================================

def _first_value(raw: Dict[str, Any], aliases: Sequence[str]) -> str:
    for alias in aliases:
        value = raw.get(alias)
        if value not in (None, ''):
            return str(value).strip()
    return ''


def normalize_complaint(raw: Dict[str, Any]) -> Complaint:
    """Build a Complaint from an upload row using either naming convention."""
    values = {name: _first_value(raw, aliases) for name, aliases in _FIELD_ALIASES.items()}
    service_key = raw.get('serviceKey')
    return Complaint(service_key=service_key if service_key in ALL_SERVICE_KEYS else None, **values)


def sale_group_key(service_key: str, contract_id: str, client_id: str, housemaid_id: str) -> str:
    return (
        f"{service_key}_{contract_id or 'no-contract'}_"
        f"{client_id or 'no-client'}_{housemaid_id or 'no-housemaid'}"
    )


# =============================================================================
# DEDUPLICATION
# =============================================================================

def build_sale_periods(dates: Sequence[datetime]) -> List[SalePeriod]:
    """
    Partition complaint dates into sale periods.

    Dates are processed in ascending order. Each date joins the first open
    period whose start is within three calendar months; otherwise it opens a
    new period.
    """
    periods: List[SalePeriod] = []
    for when in sorted(dates):
        target = next((p for p in periods if is_within_three_months(p.start, when)), None)
        if target is None:
            periods.append(SalePeriod(start=when, end=when, dates=[when]))
        else:
            target.absorb(when)
    return periods


@dataclass
class _Group:
    service_key: str
    contract_id: str
    client_id: str
    housemaid_id: str
    dates: List[datetime] = field(default_factory=list)


def process_complaints(complaints: Sequence[Complaint]) -> ComplaintsDataset:
    """
    Deduplicate complaints into sales.

    Args:
        complaints: Complaint rows from an upload or a re-expanded dataset.

    Returns:
        ComplaintsDataset with one ServiceSales per tracked service.
    """
    dataset = ComplaintsDataset(services=empty_services())
    groups: Dict[str, _Group] = {}

    for complaint in complaints:
        service_key = complaint.service_key or service_key_for(complaint.complaint_type)
        if service_key is None:
            dataset.skipped.unmapped_type += 1
            continue
        when = parse_timestamp(complaint.creation_date)
        if when is None:
            dataset.skipped.invalid_date += 1
            continue

        key = sale_group_key(service_key, complaint.contract_id, complaint.client_id, complaint.housemaid_id)
        group = groups.get(key)
        if group is None:
            group = groups[key] = _Group(
                service_key=service_key,
                contract_id=complaint.contract_id,
                client_id=complaint.client_id,
                housemaid_id=complaint.housemaid_id,
            )
        group.dates.append(when)
        dataset.raw_complaints_count += 1

    if dataset.skipped.total:
        logger.warning(
            f"Skipped {dataset.skipped.total} complaints: "
            f"{dataset.skipped.unmapped_type} with an untracked type, "
            f"{dataset.skipped.invalid_date} without a parseable date"
        )

    for key, group in groups.items():
        service = dataset.services[group.service_key]
        periods = build_sale_periods(group.dates)
        service.total_complaints += len(group.dates)
        service.unique_sales += len(periods)

        for period in periods:
            start_month = month_key(period.start)
            service.by_month[start_month] = service.by_month.get(start_month, 0) + 1
            start_iso = to_iso(period.start)
            service.sales.append(Sale(
                id=f"sale_{key}_{start_iso[:10]}",
                service_key=group.service_key,
                contract_id=group.contract_id,
                client_id=group.client_id,
                housemaid_id=group.housemaid_id,
                first_sale_date=start_iso,
                last_sale_date=to_iso(period.end),
                occurrence_count=len(period.dates),
                complaint_dates=[to_iso(d) for d in period.dates],
            ))

    all_clients = set()
    all_contracts = set()
    for service in dataset.services.values():
        clients = {sale.client_id for sale in service.sales if sale.client_id}
        contracts = {sale.contract_id for sale in service.sales if sale.contract_id}
        service.unique_clients = len(clients)
        service.unique_contracts = len(contracts)
        all_clients |= clients
        all_contracts |= contracts

    dataset.total_unique_sales = sum(s.unique_sales for s in dataset.services.values())
    dataset.total_unique_clients = len(all_clients)
    dataset.total_unique_contracts = len(all_contracts)

    logger.info(
        f"Processed {dataset.raw_complaints_count} complaints into "
        f"{dataset.total_unique_sales} unique sales across {len(groups)} groups"
    )
    return dataset


# =============================================================================
# STORED DATASET HELPERS
# =============================================================================

def extract_raw_complaints(document: Optional[Dict[str, Any]]) -> List[Complaint]:
    """
    Re-expand a stored dataset document into one Complaint per absorbed date.

    The service key is carried on each complaint so reprocessing never depends
    on display names mapping back through COMPLAINT_TYPE_MAP.
    """
    if not document:
        return []
    complaints: List[Complaint] = []
    for service_key, service in (document.get('services') or {}).items():
        if service_key not in ALL_SERVICE_KEYS:
            continue
        for sale in service.get('sales') or []:
            for creation_date in sale.get('complaintDates') or []:
                complaints.append(Complaint(
                    contract_id=sale.get('contractId') or '',
                    client_id=sale.get('clientId') or '',
                    housemaid_id=sale.get('housemaidId') or '',
                    complaint_type=service.get('serviceName') or SERVICE_NAMES[service_key],
                    creation_date=creation_date,
                    service_key=service_key,
                ))
    return complaints


def _in_range(when: datetime, start_day: Optional[str], end_day: Optional[str]) -> bool:
    day = when.date().isoformat()
    if start_day and day < start_day[:10]:
        return False
    if end_day and day > end_day[:10]:
        return False
    return True


def filter_complaints_by_date_range(
    complaints: Sequence[Complaint],
    start_day: Optional[str] = None,
    end_day: Optional[str] = None,
    keep_inside: bool = True,
) -> List[Complaint]:
    """
    Select complaints by creation day.

    Both bounds are inclusive whole days. With ``keep_inside=False`` the
    complement is returned (used when clearing a range). Complaints without a
    parseable date are never inside a range.
    """
    selected = []
    for complaint in complaints:
        when = parse_timestamp(complaint.creation_date)
        inside = when is not None and _in_range(when, start_day, end_day)
        if inside == keep_inside:
            selected.append(complaint)
    return selected


def service_volumes(document: Optional[Dict[str, Any]]) -> Dict[str, int]:
    """uniqueSales per service key; zeros when there is no dataset."""
    volumes = dict.fromkeys(ALL_SERVICE_KEYS, 0)
    if not document:
        return volumes
    services = document.get('services') or {}
    for key in ALL_SERVICE_KEYS:
        volumes[key] = int((services.get(key) or {}).get('uniqueSales', 0))
    return volumes
