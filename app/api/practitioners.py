"""Practitioner schedule endpoints"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import get_tenant_context, verify_tenant_access
from app.database import get_db
from app.schemas.auth import TokenPayload
from app.schemas.reservation import BookedSlotResponse, BookedSlotsResponse
from app.services.context import TenantContext
from app.services.reservation_store import ReservationStore

router = APIRouter()


@router.get("/{practitioner_id}/booked-slots", response_model=BookedSlotsResponse)
async def get_booked_slots(
    practitioner_id: UUID,
    date: date,
    ctx: TenantContext = Depends(get_tenant_context),
    current_user: TokenPayload = Depends(verify_tenant_access),
    db: AsyncSession = Depends(get_db),
):
    """Occupied time ranges of a practitioner's day (customers see times only)"""
    slots = await ReservationStore(db).get_booked_slots(ctx, practitioner_id, date)
    return BookedSlotsResponse(
        practitioner_id=practitioner_id,
        date=date,
        slots=[
            BookedSlotResponse(
                start_time=slot.start_time.strftime("%H:%M"),
                end_time=slot.end_time.strftime("%H:%M"),
            )
            for slot in slots
        ],
    )
