"""
Request-scoped service wiring.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.infrastructure.sql_stores import SqlBookingStore, SqlEventStore, SqlUnitOfWork
from app.services.booking_service import BookingService


async def get_booking_service(db: AsyncSession = Depends(get_db)) -> BookingService:
    return BookingService(
        events=SqlEventStore(db),
        bookings=SqlBookingStore(db),
        uow=SqlUnitOfWork(db),
    )
