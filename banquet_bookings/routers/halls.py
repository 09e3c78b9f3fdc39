from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from banquet_bookings.cache import get_slots_cache, set_slots_cache
from banquet_bookings.crud import booking_crud
from banquet_bookings.deps import CurrentUser, get_current_user
from banquet_bookings.schemas import BookingSlot, HallResponse

router = APIRouter(prefix="/halls", tags=["halls"])


@router.get("/", response_model=list[HallResponse])
async def list_halls(
    _: CurrentUser = Depends(get_current_user),
) -> list[HallResponse]:
    return await booking_crud.list_halls()


@router.get("/{hall_id}", response_model=HallResponse)
async def get_hall(
    hall_id: UUID,
    _: CurrentUser = Depends(get_current_user),
) -> HallResponse:
    hall = await booking_crud.get_hall(hall_id)
    if not hall:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Hall not found")
    return hall


@router.get("/{hall_id}/slots", response_model=list[BookingSlot])
async def get_hall_slots(
    hall_id: UUID,
    _: CurrentUser = Depends(get_current_user),
) -> list[BookingSlot]:
    """
    Returns occupied time windows for a hall.
    Any authenticated user can call this; the response contains NO user identity.
    """
    cached = await get_slots_cache(hall_id)
    if cached is not None:
        logger.debug("Cache hit for slots: hall_id={}", hall_id)
        return [BookingSlot(**s) for s in cached]

    logger.debug("Cache miss for slots: hall_id={}", hall_id)
    slots = await booking_crud.list_occupied_slots(hall_id)
    await set_slots_cache(hall_id, [s.model_dump(mode="json") for s in slots])
    return slots
