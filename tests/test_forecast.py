"""Tests for the multi-day wellness forecast."""

from datetime import date

import pytest

from conftest import utc
from cycle_wellness.cycle.phase import CyclePhase
from cycle_wellness.energy.forecast import (
    WellnessForecastService,
    clamp_wellness,
    impact_points,
)
from cycle_wellness.energy.impact import EventImpactCalculator
from cycle_wellness.energy.seed import seed_energy_reference


class TestHelpers:
    def test_impact_points(self):
        assert impact_points(0.42) == 21
        assert impact_points(-0.2) == -10

    def test_clamp(self):
        assert clamp_wellness(120) == 100
        assert clamp_wellness(-5) == 0


class TestWellnessForecastService:
    """Tests for the day-by-day forecast."""

    @pytest.mark.asyncio
    async def test_baseline_follows_phases(self, db_session, user, cycle, llm):
        service = WellnessForecastService(db_session, EventImpactCalculator(db_session, llm))

        forecast = await service.forecast(user.id, days=28, start=date(2024, 6, 1))

        assert len(forecast) == 28
        assert forecast[0].cycle_phase is CyclePhase.MENSTRUAL
        assert forecast[0].wellness_index == 40
        assert forecast[5].cycle_phase is CyclePhase.FOLLICULAR
        assert forecast[5].wellness_index == 70
        assert forecast[13].wellness_index == 85
        assert forecast[20].wellness_index == 55

    @pytest.mark.asyncio
    async def test_events_adjust_their_day(self, db_session, user, cycle, make_event, llm):
        await seed_energy_reference(db_session)
        await make_event("Презентация", utc(2024, 6, 2, 10), utc(2024, 6, 2, 11))
        await make_event("Что-то новое", utc(2024, 6, 2, 15), utc(2024, 6, 2, 16))
        service = WellnessForecastService(db_session, EventImpactCalculator(db_session, llm))

        forecast = await service.forecast(user.id, days=3, start=date(2024, 6, 1))

        assert forecast[0].events == []
        day = forecast[1]
        assert [e.name for e in day.events] == ["Презентация", "Что-то новое"]
        assert [e.impact for e in day.events] == [21, -10]
        assert day.events[0].time == "10:00"
        assert day.events_impact == 11
        assert day.wellness_index == 51
