"""Studio booking service: pricing, availability and booking lifecycle."""

import uuid
from datetime import date

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.models.base import today_utc
from inrecord.models.booking import (
    BLOCKING_STATUSES,
    DEFAULT_HOURLY_RATES,
    LAST_START_HOUR,
    OPENING_HOUR,
    BookingCreate,
    BookingStatus,
    BookingUpdate,
    RoomPricing,
    RoomPricingDB,
    StudioSessionDB,
    TimeSlot,
)
from inrecord.services.errors import NotFoundError, ValidationFailedError

logger = structlog.get_logger(__name__)


class BookingService:
    """Manages studio sessions and room pricing."""

    def __init__(self, db_session: AsyncSession):
        """Initialize booking service.

        Args:
            db_session: Async database session
        """
        self.db_session = db_session

    # ========== Pricing ==========

    async def get_room_pricing(self) -> list[RoomPricing]:
        """All room prices, cheapest first.

        Rooms without a pricing row are reported at their default rate.
        """
        result = await self.db_session.execute(select(RoomPricingDB).order_by(RoomPricingDB.hourly_rate.asc()))
        pricing = [RoomPricing.model_validate(row) for row in result.scalars().all()]

        priced = {p.room_type for p in pricing}
        for room_type, rate in DEFAULT_HOURLY_RATES.items():
            if room_type not in priced:
                pricing.append(RoomPricing(room_type=room_type, hourly_rate=rate))

        return sorted(pricing, key=lambda p: p.hourly_rate)

    async def get_hourly_rate(self, room_type: str) -> float:
        result = await self.db_session.execute(
            select(RoomPricingDB.hourly_rate).where(RoomPricingDB.room_type == room_type)
        )
        rate = result.scalar_one_or_none()
        if rate is None:
            rate = DEFAULT_HOURLY_RATES.get(room_type)
        if rate is None:
            raise NotFoundError(f"Room pricing not found for {room_type}")
        return float(rate)

    async def calculate_booking_cost(self, room_type: str, duration_hours: int) -> float:
        rate = await self.get_hourly_rate(room_type)
        return round(rate * duration_hours, 2)

    # ========== Availability ==========

    async def check_availability(self, session_date: date, room_type: str) -> list[TimeSlot]:
        """Hourly slots for one room on one day.

        A pending or confirmed session starting at hour ``s`` for ``d`` hours
        occupies every slot ``h`` with ``s <= h < s + d``.

        Raises:
            ValidationFailedError: If the date is in the past
        """
        if session_date < today_utc():
            raise ValidationFailedError("Cannot check availability for past dates")

        result = await self.db_session.execute(
            select(StudioSessionDB).where(
                StudioSessionDB.session_date == session_date,
                StudioSessionDB.room_type == room_type,
                StudioSessionDB.status.in_(BLOCKING_STATUSES),
            )
        )
        booked = result.scalars().all()

        slots = []
        for hour in range(OPENING_HOUR, LAST_START_HOUR + 1):
            occupant = next(
                (
                    s
                    for s in booked
                    if s.session_time.hour <= hour < s.session_time.hour + s.duration_hours
                ),
                None,
            )
            slots.append(
                TimeSlot(
                    time=f"{hour:02d}:00:00",
                    available=occupant is None,
                    session_id=occupant.id if occupant else None,
                )
            )
        return slots

    # ========== Bookings ==========

    async def create_booking(self, data: BookingCreate) -> StudioSessionDB:
        """Persist a pending booking priced at the room's hourly rate."""
        total_cost = await self.calculate_booking_cost(data.room_type, data.duration_hours)

        booking = StudioSessionDB(
            id=uuid.uuid4(),
            user_email=str(data.user_email),
            user_name=data.user_name,
            user_phone=data.user_phone,
            user_wallet=data.user_wallet,
            room_type=data.room_type,
            session_date=data.session_date,
            session_time=data.session_time,
            duration_hours=data.duration_hours,
            total_cost=total_cost,
            status=BookingStatus.PENDING.value,
            dao_funded=False,
            notes=data.notes,
        )
        self.db_session.add(booking)
        await self.db_session.commit()

        logger.info(
            "booking_created",
            booking_id=str(booking.id),
            room_type=booking.room_type,
            session_date=booking.session_date.isoformat(),
            total_cost=total_cost,
        )
        return booking

    async def get_booking(self, booking_id: uuid.UUID) -> StudioSessionDB:
        booking = await self.db_session.get(StudioSessionDB, booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    async def get_bookings_by_email(self, email: str) -> list[StudioSessionDB]:
        result = await self.db_session.execute(
            select(StudioSessionDB)
            .where(StudioSessionDB.user_email == email)
            .order_by(StudioSessionDB.session_date.desc(), StudioSessionDB.session_time.desc())
        )
        return list(result.scalars().all())

    async def list_bookings(
        self,
        status: str | None = None,
        room_type: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[StudioSessionDB]:
        """Admin listing with optional filters, latest sessions first."""
        query = select(StudioSessionDB)
        if status:
            query = query.where(StudioSessionDB.status == status)
        if room_type:
            query = query.where(StudioSessionDB.room_type == room_type)
        if start_date:
            query = query.where(StudioSessionDB.session_date >= start_date)
        if end_date:
            query = query.where(StudioSessionDB.session_date <= end_date)

        query = query.order_by(StudioSessionDB.session_date.desc(), StudioSessionDB.session_time.desc())
        result = await self.db_session.execute(query)
        return list(result.scalars().all())

    async def update_booking(
        self, booking_id: uuid.UUID, update: BookingUpdate
    ) -> tuple[StudioSessionDB, str]:
        """Apply an admin update.

        Returns:
            Tuple of (updated booking, status before the update)
        """
        booking = await self.get_booking(booking_id)
        previous_status = booking.status

        if update.status is not None:
            booking.status = update.status
        if update.dao_funded is not None:
            booking.dao_funded = update.dao_funded
        if update.notes is not None:
            booking.notes = update.notes

        await self.db_session.commit()

        logger.info(
            "booking_updated",
            booking_id=str(booking_id),
            previous_status=previous_status,
            status=booking.status,
        )
        return booking, previous_status

    async def delete_booking(self, booking_id: uuid.UUID) -> None:
        result = await self.db_session.execute(
            delete(StudioSessionDB).where(StudioSessionDB.id == booking_id)
        )
        if result.rowcount == 0:
            raise NotFoundError("Booking not found")
        await self.db_session.commit()
        logger.info("booking_deleted", booking_id=str(booking_id))

    async def get_booking_stats(self) -> dict:
        """Counts per status, DAO-funded count and realized revenue."""
        status_rows = await self.db_session.execute(
            select(StudioSessionDB.status, func.count(StudioSessionDB.id)).group_by(StudioSessionDB.status)
        )
        by_status = {row[0]: row[1] for row in status_rows.all()}

        dao_funded = await self.db_session.execute(
            select(func.count(StudioSessionDB.id)).where(StudioSessionDB.dao_funded.is_(True))
        )
        revenue = await self.db_session.execute(
            select(func.coalesce(func.sum(StudioSessionDB.total_cost), 0)).where(
                StudioSessionDB.status.in_(
                    [BookingStatus.CONFIRMED.value, BookingStatus.COMPLETED.value]
                )
            )
        )

        return {
            "total": sum(by_status.values()),
            "pending": by_status.get(BookingStatus.PENDING.value, 0),
            "confirmed": by_status.get(BookingStatus.CONFIRMED.value, 0),
            "completed": by_status.get(BookingStatus.COMPLETED.value, 0),
            "cancelled": by_status.get(BookingStatus.CANCELLED.value, 0),
            "daoFunded": dao_funded.scalar() or 0,
            "totalRevenue": round(float(revenue.scalar() or 0), 2),
        }
