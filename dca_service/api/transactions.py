"""Transaction API - read-only view of the purchase ledger.

Implements:
- GET /dca/transactions - All purchases, newest first
- GET /dca/transactions/{wallet_address} - Purchases of a wallet
- GET /dca/transactions/{wallet_address}/latest - Most recent purchase of a wallet
"""

from fastapi import APIRouter, HTTPException

from dca_service.logging_config import get_logger
from dca_service.models import PurchaseResponse
from dca_service.repositories.purchase_ledger import get_purchase_ledger

logger = get_logger(__name__)
router = APIRouter(tags=["Transactions"], prefix="/dca/transactions")


def _no_transactions(wallet_address: str) -> HTTPException:
    logger.warning("transactions_not_found", wallet_address=wallet_address)
    return HTTPException(
        status_code=404,
        detail={
            "error": "Transactions not found",
            "message": f"No transactions recorded for wallet {wallet_address}",
        },
    )


@router.get("", response_model=list[PurchaseResponse], summary="List transactions")
async def list_transactions() -> list[PurchaseResponse]:
    return [PurchaseResponse.from_record(r) for r in get_purchase_ledger().get_all()]


@router.get(
    "/{wallet_address}",
    response_model=list[PurchaseResponse],
    summary="List transactions of a wallet",
)
async def list_wallet_transactions(wallet_address: str) -> list[PurchaseResponse]:
    """Purchases made for a wallet, newest first.

    Raises:
        404: No purchase recorded for the wallet
    """
    records = get_purchase_ledger().get_by_wallet(wallet_address)
    if not records:
        raise _no_transactions(wallet_address)
    return [PurchaseResponse.from_record(r) for r in records]


@router.get(
    "/{wallet_address}/latest",
    response_model=PurchaseResponse,
    summary="Latest transaction of a wallet",
)
async def latest_wallet_transaction(wallet_address: str) -> PurchaseResponse:
    record = get_purchase_ledger().find_latest_by_wallet(wallet_address)
    if record is None:
        raise _no_transactions(wallet_address)
    return PurchaseResponse.from_record(record)
