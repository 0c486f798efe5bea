"""Admin booking management endpoints."""

import uuid
from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.api.middleware.auth import require_admin
from inrecord.api.middleware.error_handler import run_side_effect
from inrecord.api.routes.bookings import get_email_service, serialize_booking
from inrecord.models.booking import NOTIFY_ON_STATUSES, BookingStatus, BookingUpdate, RoomType
from inrecord.services.bookings import BookingService
from inrecord.services.database import get_db_session
from inrecord.services.email import EmailService

router = APIRouter(
    prefix="/api/admin/bookings",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


@router.get("")
async def list_bookings(
    status: BookingStatus | None = Query(None),
    room_type: RoomType | None = Query(None, alias="roomType"),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    bookings = await BookingService(db).list_bookings(
        status=status.value if status else None,
        room_type=room_type.value if room_type else None,
        start_date=start_date,
        end_date=end_date,
    )
    return {
        "success": True,
        "bookings": [serialize_booking(b) for b in bookings],
        "count": len(bookings),
    }


@router.get("/stats")
async def booking_stats(db: AsyncSession = Depends(get_db_session)) -> dict:
    return {"success": True, "stats": await BookingService(db).get_booking_stats()}


@router.get("/{booking_id}")
async def get_booking(booking_id: uuid.UUID, db: AsyncSession = Depends(get_db_session)) -> dict:
    booking = await BookingService(db).get_booking(booking_id)
    return {"success": True, "booking": serialize_booking(booking)}


@router.patch("/{booking_id}")
async def update_booking(
    booking_id: uuid.UUID,
    request: BookingUpdate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service),
) -> dict:
    """Update status, DAO funding flag or notes.

    Moving a booking into confirmed, cancelled or completed emails the
    customer after the response.
    """
    booking, previous_status = await BookingService(db).update_booking(booking_id, request)

    if booking.status != previous_status and booking.status in NOTIFY_ON_STATUSES:
        background_tasks.add_task(
            run_side_effect,
            "booking_status_email",
            email_service.send_status_update,
            booking,
            previous_status,
        )

    return {"success": True, "booking": serialize_booking(booking)}


@router.delete("/{booking_id}")
async def delete_booking(booking_id: uuid.UUID, db: AsyncSession = Depends(get_db_session)) -> dict:
    await BookingService(db).delete_booking(booking_id)
    return {"success": True, "message": "Booking deleted successfully"}
