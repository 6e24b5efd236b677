"""Tests for the stress-aware event impact."""

import pytest

from conftest import make_llm
from cycle_wellness.ai.client import LLMError
from cycle_wellness.cycle.phase import CyclePhase, TimeOfDay
from cycle_wellness.energy.coefficients import get_event_coefficient
from cycle_wellness.energy.impact import (
    AI_FALLBACK_IMPACT,
    EventImpactCalculator,
    calculate_impact,
    clamp_stress,
    parse_estimate,
    stress_modifier,
)
from cycle_wellness.energy.seed import seed_energy_reference


class TestFormula:
    """Tests for the pure formula."""

    def test_neutral_stress(self):
        assert stress_modifier(3, 0.6) == 1.0

    def test_stress_scales_with_coefficient(self):
        assert stress_modifier(5, 1.0) == pytest.approx(1.4)
        assert stress_modifier(1, 1.0) == pytest.approx(0.6)

    def test_clamp_stress(self):
        assert clamp_stress(None) == 3
        assert clamp_stress(0) == 1
        assert clamp_stress(9) == 5

    def test_meeting_impact(self):
        impact = calculate_impact(
            get_event_coefficient("Совещание (30-60м)"),
            CyclePhase.MENSTRUAL,
            TimeOfDay.MORNING,
            stress_level=3,
        )
        # -0.4 + (-0.4 * -0.7) + (-0.4 * -0.6)
        assert impact.final_impact == pytest.approx(0.12)
        assert impact.stress_modifier == 1.0
        assert impact.event_name == "Совещание (30-60м)"
        assert impact.is_ai_estimate is False

    def test_high_stress_amplifies(self):
        impact = calculate_impact(
            get_event_coefficient("Совещание (30-60м)"),
            CyclePhase.MENSTRUAL,
            TimeOfDay.MORNING,
            stress_level=5,
        )
        assert impact.stress_modifier == pytest.approx(1.24)
        assert impact.final_impact == pytest.approx(0.149)

    def test_to_dict_uses_enum_values(self):
        impact = calculate_impact(
            get_event_coefficient("Презентация"), CyclePhase.LUTEAL, TimeOfDay.EVENING
        )
        data = impact.to_dict()
        assert data["phase"] == "luteal"
        assert data["time_of_day"] == "evening"


class TestParseEstimate:
    """Tests for reading the model's number."""

    def test_plain_number(self):
        assert parse_estimate("-0.45") == -0.45

    def test_number_in_text(self):
        assert parse_estimate("Коэффициент: 0.3") == 0.3

    def test_out_of_range(self):
        assert parse_estimate("-1.5") is None

    def test_no_number(self):
        assert parse_estimate("не знаю") is None
        assert parse_estimate("") is None


class TestEventImpactCalculator:
    """Tests for scoring against the reference table."""

    @pytest.mark.asyncio
    async def test_reference_lookup(self, db_session):
        await seed_energy_reference(db_session)
        calculator = EventImpactCalculator(db_session)

        impact = await calculator.calculate(
            "совещание (30-60м)", CyclePhase.MENSTRUAL, TimeOfDay.MORNING, 3
        )

        assert impact.is_ai_estimate is False
        assert impact.final_impact == pytest.approx(0.12)

    @pytest.mark.asyncio
    async def test_cyrillic_names_match_in_any_case(self, db_session):
        await seed_energy_reference(db_session)
        calculator = EventImpactCalculator(db_session)

        exact = await calculator.lookup("Совещание (30-60м)")
        shouted = await calculator.lookup("  СОВЕЩАНИЕ (30-60М) ")

        assert exact is not None
        assert shouted is exact
        assert await calculator.lookup("Совещание") is None

    @pytest.mark.asyncio
    async def test_unknown_event_without_llm(self, db_session, llm):
        calculator = EventImpactCalculator(db_session, llm)

        impact = await calculator.calculate(
            "Йога на крыше", CyclePhase.FOLLICULAR, TimeOfDay.MORNING
        )

        assert impact.is_ai_estimate is True
        assert impact.final_impact == AI_FALLBACK_IMPACT
        llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_event_estimated_once(self, db_session):
        llm = make_llm(text="0.4")
        calculator = EventImpactCalculator(db_session, llm)

        first = await calculator.calculate("Йога", CyclePhase.LUTEAL, TimeOfDay.EVENING)
        second = await calculator.calculate("йога ", CyclePhase.LUTEAL, TimeOfDay.MORNING)

        assert first.final_impact == 0.4
        assert second.final_impact == 0.4
        assert llm.complete.await_count == 1

    @pytest.mark.asyncio
    async def test_invalid_estimate_falls_back(self, db_session):
        calculator = EventImpactCalculator(db_session, make_llm(text="7"))
        impact = await calculator.calculate("Йога", CyclePhase.LUTEAL, TimeOfDay.EVENING)
        assert impact.final_impact == AI_FALLBACK_IMPACT

    @pytest.mark.asyncio
    async def test_llm_error_falls_back(self, db_session):
        calculator = EventImpactCalculator(db_session, make_llm(text=LLMError("down")))
        impact = await calculator.calculate("Йога", CyclePhase.LUTEAL, TimeOfDay.EVENING)
        assert impact.final_impact == AI_FALLBACK_IMPACT
