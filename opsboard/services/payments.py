"""
Payment uploads.

Payment rows come from the billing export:

    {"PAYMENT_TYPE": "Travel to Lebanon Visa", "CONTRACT_ID": "C1",
     "CLIENT_ID": "K1", "STATUS": "RECEIVED", "DATE_OF_PAYMENT": "2026-02-13",
     "AMOUNT_OF_PAYMENT": "1,250.00"}

Each row is mapped onto a service key through ``PAYMENT_TYPE_MAP`` and, for
types the map does not know, keyword matching; anything else is ``other``.
Rows repeating the same (contract, service, payment day) are kept once.

An upload replaces the stored document (``payments-data.json``):

    {
        "uploadDate": "...",
        "totalPayments": 120,
        "receivedPayments": 98,
        "payments": [{"contractId", "clientId", "paymentType", "service",
                      "status", "dateOfPayment", "amount"}, ...]
    }
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from opsboard.core.storage import SnapshotStore
from opsboard.models.enums import ALL_SERVICE_KEYS, PaymentStatus, ServiceKey
from opsboard.services.dates import parse_timestamp, utc_now_iso


logger = logging.getLogger(__name__)

PAYMENTS_PATH = 'payments-data.json'
OTHER_SERVICE = 'other'


# =============================================================================
# SERVICE MAPPING
# =============================================================================

PAYMENT_TYPE_MAP: Dict[str, str] = {
    "maid's oec": ServiceKey.OEC.value,
    'overseas employment certificate': ServiceKey.OEC.value,
    'oec': ServiceKey.OEC.value,
    'contract verification': ServiceKey.OEC.value,

    'owwa registration': ServiceKey.OWWA.value,
    'owwa': ServiceKey.OWWA.value,

    'travel to lebanon visa': ServiceKey.TTL.value,
    'travel to lebanon': ServiceKey.TTL.value,
    'travel to egypt visa': ServiceKey.TTE.value,
    'travel to egypt': ServiceKey.TTE.value,
    'travel to jordan visa': ServiceKey.TTJ.value,
    'travel to jordan': ServiceKey.TTJ.value,

    'travel to morocco visa': ServiceKey.SCHENGEN.value,
    'travel to morocco': ServiceKey.SCHENGEN.value,
    'travel to turkey visa': ServiceKey.SCHENGEN.value,
    'travel to turkey': ServiceKey.SCHENGEN.value,
    'schengen visa': ServiceKey.SCHENGEN.value,

    'filipina passport renewal': ServiceKey.FILIPINA_PP.value,
    'filipino passport renewal': ServiceKey.FILIPINA_PP.value,
    'philippine passport renewal': ServiceKey.FILIPINA_PP.value,
    'philippines passport renewal': ServiceKey.FILIPINA_PP.value,

    'ethiopian passport renewal': ServiceKey.ETHIOPIAN_PP.value,
    'ethiopia passport renewal': ServiceKey.ETHIOPIAN_PP.value,
    'passport renewal': ServiceKey.ETHIOPIAN_PP.value,

    'good conduct certificate': ServiceKey.GCC.value,
    'good conduct certificate application': ServiceKey.GCC.value,
    'gcc': ServiceKey.GCC.value,
}

# Checked in order; the first keyword found in the type wins
_KEYWORD_RULES = (
    (('oec', 'employment certificate', 'contract verification'), ServiceKey.OEC.value),
    (('owwa',), ServiceKey.OWWA.value),
    (('lebanon',), ServiceKey.TTL.value),
    (('egypt',), ServiceKey.TTE.value),
    (('jordan',), ServiceKey.TTJ.value),
    (('morocco', 'turkey', 'schengen'), ServiceKey.SCHENGEN.value),
    (('gcc', 'good conduct'), ServiceKey.GCC.value),
)
_FILIPINA_WORDS = ('filipina', 'filipino', 'philippine')
_ETHIOPIAN_WORDS = ('ethiopia',)

_AMOUNT_NOISE = re.compile(r'[^0-9.\-]')


def payment_service_for(payment_type: Optional[str]) -> str:
    """Service key for a payment type; ``other`` when nothing matches."""
    normalized = (payment_type or '').strip().lower()
    if not normalized:
        return OTHER_SERVICE
    if normalized in PAYMENT_TYPE_MAP:
        return PAYMENT_TYPE_MAP[normalized]

    for keywords, service in _KEYWORD_RULES:
        if any(keyword in normalized for keyword in keywords):
            return service
    if 'passport' in normalized:
        if any(word in normalized for word in _FILIPINA_WORDS):
            return ServiceKey.FILIPINA_PP.value
        return ServiceKey.ETHIOPIAN_PP.value
    return OTHER_SERVICE


def normalize_status(status: Optional[str]) -> PaymentStatus:
    normalized = (status or '').strip().lower().replace('-', '_').replace(' ', '_')
    if normalized == PaymentStatus.RECEIVED.value:
        return PaymentStatus.RECEIVED
    if normalized == PaymentStatus.PRE_PDP.value:
        return PaymentStatus.PRE_PDP
    return PaymentStatus.OTHER


def parse_amount(value: Any) -> float:
    """Numeric amount with currency marks and separators stripped; 0 when unreadable."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(_AMOUNT_NOISE.sub('', str(value or '')))
    except ValueError:
        return 0.0


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class Payment:
    contract_id: str
    payment_type: str
    service: str
    status: PaymentStatus
    date_of_payment: str
    client_id: str = ''
    amount: float = 0.0

    @property
    def dedup_key(self) -> str:
        return f"{self.contract_id}-{self.service}-{self.date_of_payment}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'contractId': self.contract_id,
            'clientId': self.client_id,
            'paymentType': self.payment_type,
            'service': self.service,
            'status': self.status.value,
            'dateOfPayment': self.date_of_payment,
            'amount': self.amount,
        }

    @classmethod
    def from_dict(cls, document: Dict[str, Any]) -> 'Payment':
        return cls(
            contract_id=str(document.get('contractId') or ''),
            client_id=str(document.get('clientId') or ''),
            payment_type=str(document.get('paymentType') or ''),
            service=str(document.get('service') or OTHER_SERVICE),
            status=normalize_status(document.get('status')),
            date_of_payment=str(document.get('dateOfPayment') or ''),
            amount=parse_amount(document.get('amount')),
        )


@dataclass
class SkippedPayments:
    missing_fields: int = 0
    invalid_date: int = 0
    duplicates: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'missingFields': self.missing_fields,
            'invalidDate': self.invalid_date,
            'duplicates': self.duplicates,
        }


@dataclass
class PaymentsBatch:
    payments: List[Payment] = field(default_factory=list)
    skipped: SkippedPayments = field(default_factory=SkippedPayments)

    @property
    def received_count(self) -> int:
        return sum(1 for payment in self.payments if payment.status == PaymentStatus.RECEIVED)

    def to_document(self) -> Dict[str, Any]:
        return {
            'uploadDate': utc_now_iso(),
            'totalPayments': len(self.payments),
            'receivedPayments': self.received_count,
            'payments': [payment.to_dict() for payment in self.payments],
        }


# =============================================================================
# PROCESSING
# =============================================================================

def _text(row: Dict[str, Any], name: str) -> str:
    value = row.get(name)
    return '' if value is None else str(value).strip()


def process_payments(rows: Sequence[Dict[str, Any]]) -> PaymentsBatch:
    """
    Turn billing export rows into deduplicated payments.

    Rows without CONTRACT_ID, STATUS or DATE_OF_PAYMENT, and rows whose
    payment date cannot be read, are skipped and counted. The payment date
    is reduced to its ``YYYY-MM-DD`` day.
    """
    batch = PaymentsBatch()
    seen = set()
    for row in rows:
        contract_id = _text(row, 'CONTRACT_ID')
        status = _text(row, 'STATUS')
        raw_date = _text(row, 'DATE_OF_PAYMENT')
        if not contract_id or not status or not raw_date:
            batch.skipped.missing_fields += 1
            continue

        when = parse_timestamp(raw_date)
        if when is None:
            batch.skipped.invalid_date += 1
            continue

        payment_type = _text(row, 'PAYMENT_TYPE')
        payment = Payment(
            contract_id=contract_id,
            client_id=_text(row, 'CLIENT_ID'),
            payment_type=payment_type,
            service=payment_service_for(payment_type),
            status=normalize_status(status),
            date_of_payment=when.date().isoformat(),
            amount=parse_amount(row.get('AMOUNT_OF_PAYMENT')),
        )
        if payment.dedup_key in seen:
            batch.skipped.duplicates += 1
            continue
        seen.add(payment.dedup_key)
        batch.payments.append(payment)

    logger.info(
        f"Processed {len(rows)} payment rows into {len(batch.payments)} payments "
        f"({batch.received_count} received, skipped {batch.skipped.to_dict()})"
    )
    return batch


def filter_payments_by_date(
    payments: Sequence[Payment],
    day: str,
    status: Optional[PaymentStatus] = PaymentStatus.RECEIVED,
) -> List[Payment]:
    """Payments made on ``day``; ``status=None`` keeps every status."""
    return [
        payment for payment in payments
        if payment.date_of_payment == day and (status is None or payment.status == status)
    ]


def received_by_service(payments: Sequence[Payment]) -> Dict[str, int]:
    """Received payment counts for every service key plus ``other``."""
    counts = dict.fromkeys(ALL_SERVICE_KEYS + [OTHER_SERVICE], 0)
    for payment in payments:
        if payment.status == PaymentStatus.RECEIVED:
            counts[payment.service] = counts.get(payment.service, 0) + 1
    return counts


def payments_summary(document: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not document:
        return {'hasData': False, 'totalPayments': 0, 'receivedPayments': 0, 'uploadDate': None}
    payments = load_payment_list(document)
    dates = sorted({payment.date_of_payment for payment in payments})
    return {
        'hasData': True,
        'uploadDate': document.get('uploadDate'),
        'totalPayments': document.get('totalPayments', len(payments)),
        'receivedPayments': document.get('receivedPayments', 0),
        'receivedByService': received_by_service(payments),
        'dateRange': {'startDate': dates[0], 'endDate': dates[-1]} if dates else None,
    }


def load_payment_list(document: Optional[Dict[str, Any]]) -> List[Payment]:
    if not document:
        return []
    return [Payment.from_dict(row) for row in document.get('payments') or [] if isinstance(row, dict)]


# =============================================================================
# PERSISTENCE
# =============================================================================

async def save_payments(store: SnapshotStore, batch: PaymentsBatch) -> Dict[str, Any]:
    document = batch.to_document()
    await store.write_json(PAYMENTS_PATH, document)
    return document


async def load_payments_document(store: SnapshotStore) -> Optional[Dict[str, Any]]:
    return await store.read_json(PAYMENTS_PATH)


async def load_payments(store: SnapshotStore) -> List[Payment]:
    return load_payment_list(await load_payments_document(store))
