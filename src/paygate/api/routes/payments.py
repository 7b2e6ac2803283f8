"""Payment ingestion and queue listing routes."""

import logging

from fastapi import APIRouter

from paygate.dependencies import Orchestrator, Store
from paygate.models.payment import PaymentCreate, PaymentRequest
from paygate.storage.payment_store import PartitionListing

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


def _listing_body(listing: PartitionListing) -> dict:
    return {
        "success": True,
        "count": listing.count,
        "payments": listing.records,
        "errors": listing.errors,
    }


@router.post("")
async def create_payment(body: PaymentCreate, orchestrator: Orchestrator, store: Store):
    """Accept a payment instruction, record it as pending and settle it."""
    request = PaymentRequest.from_create(body)
    logger.info(
        "New payment request %s (transaction=%s, network=%s, amount=%d)",
        request.id, request.transaction_id, request.network, request.amount,
    )

    # Not durably recorded means not accepted
    await store.save(request)

    result = await orchestrator.process(request)
    return {
        "success": True,
        "message": "Payment processed successfully",
        "paymentId": request.id,
        "transactionHash": result.transaction_hash,
    }


@router.get("/pending")
async def list_pending(store: Store):
    """List every record in the pending partition, error annotations included."""
    return _listing_body(await store.list_pending())


@router.get("/sent")
async def list_sent(store: Store):
    """List every completed payment."""
    return _listing_body(await store.list_sent())
