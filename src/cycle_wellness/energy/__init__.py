"""Energy impact of events and the resulting daily energy/wellness outlook.

## Components

- `coefficients`: reference table of everyday activities
- `impact`: stress-aware impact of one event (reference table or AI estimate)
- `breakdown`: today's energy (1-5) explained part by part
- `forecast`: day-by-day wellness index (0-100) for the coming weeks
- `seed`: loads the reference table into the database
"""

from cycle_wellness.energy.breakdown import EnergyBreakdown, EnergyBreakdownService
from cycle_wellness.energy.coefficients import (
    EVENT_COEFFICIENTS,
    EventCoefficient,
    get_event_coefficient,
    simple_coefficient,
)
from cycle_wellness.energy.forecast import ForecastDay, WellnessForecastService
from cycle_wellness.energy.impact import EventImpact, EventImpactCalculator

__all__ = [
    "EVENT_COEFFICIENTS",
    "EnergyBreakdown",
    "EnergyBreakdownService",
    "EventCoefficient",
    "EventImpact",
    "EventImpactCalculator",
    "ForecastDay",
    "WellnessForecastService",
    "get_event_coefficient",
    "simple_coefficient",
]
