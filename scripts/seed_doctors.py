#!/usr/bin/env python3
"""
Seed approved doctors and their weekly schedules.

Usage:
    python scripts/seed_doctors.py [path/to/doctors.json]

The JSON file holds a list of objects with the doctor fields plus an optional
``schedule`` object. Without a file a small sample roster is loaded.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.dialects.postgresql import insert  # noqa: E402

from app.core.redis_client import CacheManager, get_redis_client  # noqa: E402
from app.database import AsyncSessionLocal, engine  # noqa: E402
from app.models import doctor_schedules, doctors  # noqa: E402

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday"]

SAMPLE_DOCTORS: list[dict[str, Any]] = [
    {
        "full_name": "Dr. Meera Raman",
        "email": "meera.raman@example.com",
        "specialization": "General",
        "city": "Chennai",
        "locality": "Adyar",
        "schedule": {
            "days": WEEKDAYS,
            "start_time": "09:00",
            "end_time": "17:00",
            "break_start_time": "13:00",
            "break_end_time": "14:00",
        },
    },
    {
        "full_name": "Dr. Arjun Prakash",
        "email": "arjun.prakash@example.com",
        "specialization": "Pediatrics",
        "city": "Chennai",
        "locality": "T-Nagar",
        "schedule": {"days": WEEKDAYS + ["saturday"], "start_time": "10:00", "end_time": "18:00"},
    },
    {
        "full_name": "Dr. Kavya Sundar",
        "email": "kavya.sundar@example.com",
        "specialization": "General",
        "city": "Madurai",
        "locality": "Anna Nagar",
    },
]


async def seed(entries: list[dict[str, Any]]) -> int:
    """Upsert doctors by email and replace their schedules."""
    async with AsyncSessionLocal() as session:
        for entry in entries:
            schedule = entry.pop("schedule", None)
            values = {"status": "approved", **entry}

            result = await session.execute(
                insert(doctors)
                .values(**values)
                .on_conflict_do_update(index_elements=["email"], set_=values)
                .returning(doctors.c.id)
            )
            doctor_id = result.scalar_one()

            if schedule:
                schedule_values = {"doctor_id": doctor_id, "blocked_dates": [], **schedule}
                await session.execute(
                    insert(doctor_schedules)
                    .values(**schedule_values)
                    .on_conflict_do_update(index_elements=["doctor_id"], set_=schedule_values)
                )

            print(f"✓ {values['full_name']} ({values.get('city') or '-'})")

        await session.commit()

    await engine.dispose()
    return len(entries)


def main() -> None:
    """Load the roster and invalidate cached doctor listings."""
    if len(sys.argv) > 1:
        entries = json.loads(Path(sys.argv[1]).read_text())
    else:
        entries = [dict(doctor) for doctor in SAMPLE_DOCTORS]

    count = asyncio.run(seed(entries))

    removed = CacheManager(get_redis_client()).invalidate_doctor_lists()
    print(f"✓ Seeded {count} doctors, cleared {removed} cached listings")


if __name__ == "__main__":
    main()
