"""Schedule API - register and manage DCA subscriptions.

Implements:
- GET /dca/schedules - List all schedules
- GET /dca/schedules/{wallet_address} - Schedule of a wallet
- GET /dca/schedules/id/{schedule_id} - Schedule by id
- POST /dca/schedules - Register a schedule
- PATCH /dca/schedules/{schedule_id}/activate - Resume purchases
- PATCH /dca/schedules/{schedule_id}/deactivate - Stop purchases
"""

from fastapi import APIRouter, HTTPException

from dca_service.logging_config import get_logger
from dca_service.models import CreateScheduleRequest, ScheduleResponse
from dca_service.repositories.subscription_store import (
    SubscriptionExistsError,
    SubscriptionNotFoundError,
)
from dca_service.services.subscription_manager import (
    InvalidSubscriptionError,
    SubscriptionManager,
    get_subscription_manager,
)

logger = get_logger(__name__)
router = APIRouter(tags=["Schedules"], prefix="/dca/schedules")


def _manager() -> SubscriptionManager:
    return get_subscription_manager()


def _not_found(schedule_id: str) -> HTTPException:
    logger.warning("schedule_not_found", schedule_id=schedule_id)
    return HTTPException(
        status_code=404,
        detail={
            "error": "Schedule not found",
            "message": f"Schedule '{schedule_id}' does not exist",
        },
    )


@router.get("", response_model=list[ScheduleResponse], summary="List schedules")
async def list_schedules() -> list[ScheduleResponse]:
    """List every registered schedule, oldest first."""
    return [ScheduleResponse.from_subscription(s) for s in _manager().list_all()]


@router.get(
    "/id/{schedule_id}",
    response_model=ScheduleResponse,
    summary="Get schedule by id",
)
async def get_schedule(schedule_id: str) -> ScheduleResponse:
    try:
        subscription = _manager().get(schedule_id)
    except SubscriptionNotFoundError:
        raise _not_found(schedule_id)
    return ScheduleResponse.from_subscription(subscription)


@router.get(
    "/{wallet_address}",
    response_model=ScheduleResponse,
    summary="Get schedule of a wallet",
)
async def get_wallet_schedule(wallet_address: str) -> ScheduleResponse:
    """Look up the schedule of a wallet (address match is case-insensitive).

    Raises:
        404: Wallet has no schedule
    """
    subscription = _manager().find_by_wallet(wallet_address)
    if subscription is None:
        logger.warning("wallet_schedule_not_found", wallet_address=wallet_address)
        raise HTTPException(
            status_code=404,
            detail={
                "error": "Schedule not found",
                "message": f"No schedule registered for wallet {wallet_address}",
            },
        )
    return ScheduleResponse.from_subscription(subscription)


@router.post(
    "",
    response_model=ScheduleResponse,
    status_code=201,
    summary="Register schedule",
)
async def create_schedule(request: CreateScheduleRequest) -> ScheduleResponse:
    """Register a recurring purchase for a wallet.

    The first purchase happens once the interval has elapsed after
    registration.

    Raises:
        400: Invalid address, amount or interval
        409: Wallet already has a schedule
    """
    logger.info(
        "create_schedule_request",
        wallet_address=request.wallet_address,
        interval_seconds=request.purchase_interval_seconds,
        amount=request.purchase_amount,
    )

    try:
        subscription = _manager().register(
            wallet_address=request.wallet_address,
            purchase_interval_seconds=request.purchase_interval_seconds,
            purchase_amount=request.purchase_amount,
        )
    except InvalidSubscriptionError as e:
        logger.warning("invalid_schedule_request", error=str(e))
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid schedule", "message": str(e)},
        )
    except SubscriptionExistsError as e:
        logger.warning("schedule_already_exists", wallet_address=request.wallet_address)
        raise HTTPException(
            status_code=409,
            detail={"error": "Schedule already exists", "message": str(e)},
        )

    return ScheduleResponse.from_subscription(subscription)


@router.patch(
    "/{schedule_id}/activate",
    response_model=ScheduleResponse,
    summary="Activate schedule",
)
async def activate_schedule(schedule_id: str) -> ScheduleResponse:
    try:
        subscription = _manager().activate(schedule_id)
    except SubscriptionNotFoundError:
        raise _not_found(schedule_id)
    return ScheduleResponse.from_subscription(subscription)


@router.patch(
    "/{schedule_id}/deactivate",
    response_model=ScheduleResponse,
    summary="Deactivate schedule",
)
async def deactivate_schedule(schedule_id: str) -> ScheduleResponse:
    """Exclude the schedule from future ticks. Its transactions stay queryable."""
    try:
        subscription = _manager().deactivate(schedule_id)
    except SubscriptionNotFoundError:
        raise _not_found(schedule_id)
    return ScheduleResponse.from_subscription(subscription)
