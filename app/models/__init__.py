"""Database models."""

from sqlalchemy import MetaData

from app.models.appointments import appointments
from app.models.appointments import metadata as appointments_metadata
from app.models.doctors import doctor_schedules, doctors
from app.models.doctors import metadata as doctors_metadata
from app.models.organization_bookings import metadata as organization_bookings_metadata
from app.models.organization_bookings import organization_bookings

# Combined metadata for create_all and migrations
metadata = MetaData()
for _source in (doctors_metadata, appointments_metadata, organization_bookings_metadata):
    for _table in _source.tables.values():
        _table.to_metadata(metadata)

__all__ = [
    "appointments",
    "doctor_schedules",
    "doctors",
    "metadata",
    "organization_bookings",
]
