"""Public studio booking endpoints."""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from pydantic import EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.api.middleware.error_handler import run_side_effect
from inrecord.api.middleware.rate_limiter import check_rate_limit
from inrecord.models.booking import BookingCreate, RoomType, StudioSession, parse_session_date
from inrecord.services.bookings import BookingService
from inrecord.services.database import get_db_session
from inrecord.services.email import EmailService
from inrecord.services.errors import ValidationFailedError

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


def get_email_service() -> EmailService:
    """Email service dependency; overridden in tests."""
    return EmailService()


def serialize_booking(booking) -> dict:
    return StudioSession.model_validate(booking).model_dump(mode="json")


@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(check_rate_limit)])
async def create_booking(
    request: BookingCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service),
) -> dict:
    """Book a studio session.

    The customer confirmation and the admin notice are sent after the
    response; their failures are only logged.

    Returns:
        Summary of the pending booking
    """
    booking = await BookingService(db).create_booking(request)

    background_tasks.add_task(
        run_side_effect, "booking_confirmation_email", email_service.send_booking_confirmation, booking
    )
    background_tasks.add_task(
        run_side_effect, "booking_admin_notification", email_service.send_admin_notification, booking
    )

    return {
        "success": True,
        "booking": {
            "id": str(booking.id),
            "session_date": booking.session_date.isoformat(),
            "session_time": booking.session_time.isoformat(),
            "room_type": booking.room_type,
            "total_cost": float(booking.total_cost),
            "status": booking.status,
        },
    }


@router.get("")
async def get_user_bookings(
    email: EmailStr = Query(..., description="Customer email"),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    bookings = await BookingService(db).get_bookings_by_email(str(email))
    return {
        "success": True,
        "bookings": [serialize_booking(b) for b in bookings],
        "count": len(bookings),
    }


@router.get("/availability")
async def check_availability(
    date: str = Query(..., description="Session date (YYYY-MM-DD)"),
    room_type: RoomType = Query(..., alias="roomType"),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Hourly availability of one room on one day.

    Raises:
        ValidationFailedError: If the date is malformed or in the past
    """
    try:
        session_date = parse_session_date(date)
    except ValueError as e:
        raise ValidationFailedError(
            "Invalid query parameters", details=[{"field": "date", "message": str(e)}]
        ) from e

    slots = await BookingService(db).check_availability(session_date, room_type.value)
    return {
        "success": True,
        "date": session_date.isoformat(),
        "roomType": room_type.value,
        "slots": [slot.model_dump(mode="json", exclude_none=True) for slot in slots],
    }


@router.get("/pricing")
async def get_pricing(db: AsyncSession = Depends(get_db_session)) -> dict:
    pricing = await BookingService(db).get_room_pricing()
    return {"success": True, "pricing": [p.model_dump() for p in pricing]}
