"""Doctor directory service."""

from uuid import UUID

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.redis_client import CacheManager, doctor_list_key
from app.models.doctors import doctor_schedules, doctors
from app.schemas.doctors import DoctorProfile, DoctorSchedule

logger = structlog.get_logger(__name__)

APPROVED = "approved"
UNKNOWN_DOCTOR = "Dr. Unknown"


def resolve_doctor_name(doctor: DoctorProfile) -> str:
    """Display name for a doctor: full name, then e-mail, then a placeholder."""
    for candidate in (doctor.full_name, doctor.email):
        if candidate and candidate.strip():
            return candidate.strip()
    return UNKNOWN_DOCTOR


class DoctorService:
    """Directory of approved doctors and their declared schedules.

    Doctor listings are cached in Redis; availability never is.
    """

    DOCTOR_LIST_CACHE_TTL = 300  # 5 minutes for lists

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache_manager: CacheManager | None = None,
        cache_ttl: int | None = None,
    ):
        """Initialize service with a session factory and optional cache manager."""
        self.session_factory = session_factory
        self.cache = cache_manager
        self.cache_ttl = cache_ttl or self.DOCTOR_LIST_CACHE_TTL

    async def get_approved_doctors(
        self,
        city: str | None = None,
        locality: str | None = None,
    ) -> list[DoctorProfile]:
        """Get approved doctors, optionally filtered by city and locality."""
        cache_key = doctor_list_key(city, locality)
        if self.cache:
            cached = self.cache.get_json(cache_key)
            if cached is not None:
                return [DoctorProfile.model_validate(item) for item in cached]

        conditions = [doctors.c.status == APPROVED]

        if city:
            conditions.append(func.lower(doctors.c.city) == city.strip().lower())

        if locality:
            conditions.append(func.lower(doctors.c.locality) == locality.strip().lower())

        async with self.session_factory() as session:
            result = await session.execute(
                select(doctors).where(and_(*conditions)).order_by(doctors.c.created_at)
            )
            rows = result.mappings().all()

        doctor_list = [DoctorProfile.model_validate(dict(row)) for row in rows]

        if self.cache:
            self.cache.set_json(
                cache_key,
                [doctor.model_dump(mode="json") for doctor in doctor_list],
                ttl=self.cache_ttl,
            )

        logger.debug("approved_doctors_loaded", count=len(doctor_list), city=city)
        return doctor_list

    async def get_doctor(self, doctor_id: UUID) -> DoctorProfile | None:
        """Get doctor by ID, whatever its approval status."""
        async with self.session_factory() as session:
            result = await session.execute(select(doctors).where(doctors.c.id == doctor_id))
            row = result.mappings().first()

        return DoctorProfile.model_validate(dict(row)) if row else None

    async def get_schedule(self, doctor_id: UUID) -> DoctorSchedule | None:
        """Get the declared weekly schedule of a doctor, if any."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(doctor_schedules).where(doctor_schedules.c.doctor_id == doctor_id)
            )
            row = result.mappings().first()

        return DoctorSchedule.model_validate(dict(row)) if row else None
