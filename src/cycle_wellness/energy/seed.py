"""Load the coefficient catalogue into the `energy_reference` table."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.database.models import EnergyReference
from cycle_wellness.energy.coefficients import EVENT_COEFFICIENTS

logger = logging.getLogger(__name__)


async def seed_energy_reference(db: AsyncSession) -> int:
    """Insert missing catalogue rows and refresh existing ones.

    Returns:
        Number of newly inserted rows
    """
    result = await db.execute(select(EnergyReference))
    existing = {row.event_name: row for row in result.scalars().all()}

    inserted = 0
    for coef in EVENT_COEFFICIENTS:
        values = {
            "category": coef.category,
            "base": coef.base,
            "menstrual": coef.menstrual,
            "follicular": coef.follicular,
            "ovulation": coef.ovulation,
            "luteal": coef.luteal,
            "morning": coef.morning,
            "afternoon": coef.afternoon,
            "evening": coef.evening,
            "stress_coefficient": coef.stress_coefficient,
        }
        row = existing.get(coef.event_type)
        if row is None:
            db.add(EnergyReference(event_name=coef.event_type, **values))
            inserted += 1
        else:
            for key, value in values.items():
                setattr(row, key, value)

    await db.commit()
    logger.info(f"Energy reference seeded: {inserted} inserted, {len(existing)} existing")
    return inserted
