"""Tests for today's energy breakdown."""

from datetime import date

import pytest

from conftest import utc
from cycle_wellness.cycle.phase import CyclePhase
from cycle_wellness.database.models import SymptomLog
from cycle_wellness.energy.breakdown import (
    EnergyBreakdownService,
    classify_event,
    combine_energy,
    confidence_from_logs,
    sleep_modifier,
    stress_energy_modifier,
)
from cycle_wellness.energy.impact import EventImpactCalculator
from cycle_wellness.energy.seed import seed_energy_reference


class TestHelpers:
    """Tests for the pure parts of the breakdown."""

    def test_classify_event(self):
        assert classify_event("Утренняя тренировка") == "Тренировка"
        assert classify_event("Team meeting") == "Встреча"
        assert classify_event("Поход к врачу") == "Другое"

    def test_sleep_and_stress_modifiers(self):
        assert sleep_modifier(5) == pytest.approx(0.3)
        assert sleep_modifier(None) == 0
        assert stress_energy_modifier(5) == pytest.approx(-0.2)
        assert stress_energy_modifier(1) == pytest.approx(0.2)

    def test_energy_is_clamped(self):
        assert combine_energy(4.5, 2.0, 0.3, 0.2) == 5.0
        assert combine_energy(2.0, -3.0, 0.0, 0.0) == 1.0

    def test_confidence(self):
        assert confidence_from_logs(0) == 50
        assert confidence_from_logs(10) == 65
        assert confidence_from_logs(100) == 100


class TestEnergyBreakdownService:
    """Tests for the assembled breakdown."""

    @pytest.mark.asyncio
    async def test_without_cycle_or_events(self, db_session, user, llm):
        service = EnergyBreakdownService(db_session, EventImpactCalculator(db_session, llm))

        breakdown = await service.today(user.id, today=date(2024, 6, 14))

        assert breakdown.cycle_phase is CyclePhase.FOLLICULAR
        assert breakdown.base_energy == 4.0
        assert breakdown.events == []
        assert breakdown.final_energy == 4.0
        assert breakdown.confidence == 50

    @pytest.mark.asyncio
    async def test_with_events_and_symptoms(self, db_session, user, cycle, make_event, llm):
        await seed_energy_reference(db_session)
        await make_event("Совещание (30-60м)", utc(2024, 6, 14, 9), utc(2024, 6, 14, 10))
        await make_event("Вечер дома", utc(2024, 6, 15, 19), utc(2024, 6, 15, 21))
        db_session.add(
            SymptomLog(
                user_id=user.id,
                log_date=date(2024, 6, 14),
                sleep_quality=5,
                stress_level=3,
                physical_symptoms=["headache"],
            )
        )
        await db_session.commit()

        service = EnergyBreakdownService(db_session, EventImpactCalculator(db_session, llm))
        breakdown = await service.today(user.id, today=date(2024, 6, 14))

        assert breakdown.cycle_phase is CyclePhase.OVULATION
        assert breakdown.base_energy == 4.5
        assert [e.title for e in breakdown.events] == ["Совещание (30-60м)"]
        event = breakdown.events[0]
        assert event.time_of_day == "morning"
        assert event.event_type == "Другое"
        # -0.4 + (-0.4 * -0.1) + (-0.4 * -0.6)
        assert event.energy_impact == pytest.approx(-0.12)
        assert breakdown.sleep_modifier == pytest.approx(0.3)
        assert breakdown.stress_modifier == 0
        assert breakdown.final_energy == pytest.approx(4.7)
        assert breakdown.symptoms == ["headache"]
        assert breakdown.confidence == 52
        assert breakdown.calculation()["formula"].endswith("= 4.7")

    @pytest.mark.asyncio
    async def test_unknown_title_scored_by_type(self, db_session, user, make_event, llm):
        await make_event("Тренировка в зале", utc(2024, 6, 14, 18), utc(2024, 6, 14, 19))
        service = EnergyBreakdownService(db_session, EventImpactCalculator(db_session, llm))

        breakdown = await service.today(user.id, today=date(2024, 6, 14))

        event = breakdown.events[0]
        assert event.event_type == "Тренировка"
        assert event.is_ai_estimate is True
        assert event.energy_impact == pytest.approx(-0.2)
