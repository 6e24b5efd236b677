"""Energy routes.

- /catalogue: reference activities with their coefficients
- /calculate: stress-aware impact of one event
- /today: today's energy breakdown
- /forecast: day-by-day wellness forecast
"""

from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.ai.client import LLMClient
from cycle_wellness.api.deps import get_llm_client
from cycle_wellness.auth.dependencies import get_current_user
from cycle_wellness.config import get_settings
from cycle_wellness.cycle.phase import CyclePhase, TimeOfDay
from cycle_wellness.database.connection import get_db_session
from cycle_wellness.database.models import User
from cycle_wellness.energy.breakdown import EnergyBreakdownService
from cycle_wellness.energy.coefficients import (
    EventCoefficient,
    get_all_categories,
    get_event_coefficient,
    get_events_by_category,
    search_events,
    simple_coefficient,
)
from cycle_wellness.energy.forecast import WellnessForecastService
from cycle_wellness.energy.impact import EventImpactCalculator

router = APIRouter()


class CoefficientResponse(BaseModel):
    category: str
    event_type: str
    base: float
    menstrual: float
    follicular: float
    ovulation: float
    luteal: float
    morning: float
    afternoon: float
    evening: float
    stress_coefficient: float
    coefficient: float | None = None


class CalculateRequest(BaseModel):
    event_name: str = Field(..., min_length=1, max_length=255)
    cycle_phase: CyclePhase = CyclePhase.FOLLICULAR
    time_of_day: TimeOfDay = TimeOfDay.AFTERNOON
    stress_level: int = Field(default=3, ge=1, le=5)


class ImpactResponse(BaseModel):
    event_name: str
    phase: str
    time_of_day: str
    base: float
    cycle_modifier: float
    time_modifier: float
    stress_coefficient: float
    stress_modifier: float
    final_impact: float
    is_ai_estimate: bool


class EventEnergyResponse(BaseModel):
    id: str
    title: str
    start_time: datetime
    end_time: datetime
    event_type: str
    time_of_day: str
    energy_impact: float
    is_ai_estimate: bool


class BreakdownResponse(BaseModel):
    date: date
    cycle_phase: str
    base_energy: float
    events: list[EventEnergyResponse]
    total_event_impact: float
    sleep_modifier: float
    stress_modifier: float
    final_energy: float
    confidence: int
    symptoms: list[str]
    calculation: dict


class ForecastEventResponse(BaseModel):
    name: str
    impact: int
    time: str


class ForecastDayResponse(BaseModel):
    date: date
    wellness_index: int
    cycle_phase: str
    base_wellness: int
    events_impact: int
    events: list[ForecastEventResponse]


def _coefficient_response(
    coefficient: EventCoefficient,
    phase: CyclePhase | None = None,
    time_of_day: TimeOfDay | None = None,
) -> CoefficientResponse:
    value = None
    if phase is not None and time_of_day is not None:
        value = simple_coefficient(coefficient, phase, time_of_day)
    return CoefficientResponse(
        category=coefficient.category,
        event_type=coefficient.event_type,
        base=coefficient.base,
        menstrual=coefficient.menstrual,
        follicular=coefficient.follicular,
        ovulation=coefficient.ovulation,
        luteal=coefficient.luteal,
        morning=coefficient.morning,
        afternoon=coefficient.afternoon,
        evening=coefficient.evening,
        stress_coefficient=coefficient.stress_coefficient,
        coefficient=value,
    )


@router.get("/catalogue/categories", response_model=list[str])
async def list_categories() -> list[str]:
    return get_all_categories()


@router.get("/catalogue", response_model=list[CoefficientResponse])
async def list_catalogue(
    category: str | None = None,
    q: str | None = Query(default=None, max_length=100),
) -> list[CoefficientResponse]:
    """Catalogue activities, filtered by category or a name search."""
    if q:
        items = search_events(q)
    elif category:
        items = get_events_by_category(category)
    else:
        items = [c for name in get_all_categories() for c in get_events_by_category(name)]
    return [_coefficient_response(c) for c in items]


@router.get("/catalogue/{event_type}", response_model=CoefficientResponse)
async def get_catalogue_entry(
    event_type: str,
    phase: CyclePhase | None = None,
    time_of_day: TimeOfDay | None = None,
) -> CoefficientResponse:
    """One activity; with `phase` and `time_of_day` the additive coefficient is included."""
    coefficient = get_event_coefficient(event_type)
    if coefficient is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Unknown activity",
        )
    return _coefficient_response(coefficient, phase, time_of_day)


@router.post("/calculate", response_model=ImpactResponse)
async def calculate_impact(
    data: CalculateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> ImpactResponse:
    calculator = EventImpactCalculator(db, llm)
    impact = await calculator.calculate(
        data.event_name, data.cycle_phase, data.time_of_day, data.stress_level
    )
    await db.commit()
    return ImpactResponse(**impact.to_dict())


@router.get("/today", response_model=BreakdownResponse)
async def today_breakdown(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> BreakdownResponse:
    breakdown = await EnergyBreakdownService(db, EventImpactCalculator(db, llm)).today(user.id)
    await db.commit()

    return BreakdownResponse(
        date=breakdown.day,
        cycle_phase=breakdown.cycle_phase.value,
        base_energy=breakdown.base_energy,
        events=[
            EventEnergyResponse(
                id=e.id,
                title=e.title,
                start_time=e.start_time,
                end_time=e.end_time,
                event_type=e.event_type,
                time_of_day=e.time_of_day,
                energy_impact=e.energy_impact,
                is_ai_estimate=e.is_ai_estimate,
            )
            for e in breakdown.events
        ],
        total_event_impact=breakdown.total_event_impact,
        sleep_modifier=breakdown.sleep_modifier,
        stress_modifier=breakdown.stress_modifier,
        final_energy=breakdown.final_energy,
        confidence=breakdown.confidence,
        symptoms=breakdown.symptoms,
        calculation=breakdown.calculation(),
    )


@router.get("/forecast", response_model=list[ForecastDayResponse])
async def wellness_forecast(
    days: int | None = Query(default=None, ge=1, le=60),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> list[ForecastDayResponse]:
    service = WellnessForecastService(db, EventImpactCalculator(db, llm))
    forecast = await service.forecast(user.id, days=days or get_settings().forecast_days)
    await db.commit()

    return [
        ForecastDayResponse(
            date=day.date,
            wellness_index=day.wellness_index,
            cycle_phase=day.cycle_phase.value,
            base_wellness=day.base_wellness,
            events_impact=day.events_impact,
            events=[
                ForecastEventResponse(name=e.name, impact=e.impact, time=e.time)
                for e in day.events
            ],
        )
        for day in forecast
    ]
