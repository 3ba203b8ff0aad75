"""
FastAPI router for payment uploads.

Key Endpoints:
- POST /ingest/payments - Replace the stored payments with a billing export (auth)
- GET /ingest/payments - Stored payments summary
- GET /ingest/payments/{date} - Payments made on one day (?status=received|all)
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from opsboard.api.common import ok, validate_date
from opsboard.core.dependencies import SnapshotStoreDep, require_api_key
from opsboard.core.storage import StorageError
from opsboard.models.enums import PaymentStatus
from opsboard.models.schemas import ApiResponse, PaymentsIngestRequest
from opsboard.services.payments import (
    filter_payments_by_date,
    load_payments,
    load_payments_document,
    payments_summary,
    process_payments,
    received_by_service,
    save_payments,
)


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=ApiResponse, dependencies=[Depends(require_api_key)])
async def ingest_payments(body: PaymentsIngestRequest, store: SnapshotStoreDep) -> ApiResponse:
    batch = process_payments(body.payments)
    try:
        document = await save_payments(store, batch)
    except StorageError as e:
        logger.exception("Failed to save payments")
        raise HTTPException(status_code=500, detail=f"Failed to save payments: {e}")

    return ok(
        {
            'receivedRows': len(body.payments),
            'totalPayments': document['totalPayments'],
            'receivedPayments': document['receivedPayments'],
            'skipped': batch.skipped.to_dict(),
            'receivedByService': received_by_service(batch.payments),
            'uploadDate': document['uploadDate'],
        },
        f"Stored {document['totalPayments']} payments ({document['receivedPayments']} received)",
    )


@router.get("", response_model=ApiResponse)
async def get_payments_status(store: SnapshotStoreDep) -> ApiResponse:
    return ok(payments_summary(await load_payments_document(store)))


@router.get("/{date}", response_model=ApiResponse)
async def get_payments_for_day(
    date: str,
    store: SnapshotStoreDep,
    status: str = Query(PaymentStatus.RECEIVED.value, pattern='^(received|all)$'),
) -> ApiResponse:
    validate_date(date)
    wanted = None if status == 'all' else PaymentStatus.RECEIVED
    payments = filter_payments_by_date(await load_payments(store), date, wanted)
    return ok({
        'date': date,
        'status': status,
        'count': len(payments),
        'receivedByService': received_by_service(payments),
        'payments': [payment.to_dict() for payment in payments],
    })
